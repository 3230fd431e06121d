"""Process-local event bus.

Threshold and blocking events from the usage recorder reach the alert
subscriber through this bus. Everything runs in the publishing process;
a broker-backed bus would implement the same EventBus protocol.
"""

import asyncio
import fnmatch
import logging
from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voicemeter.core.protocols.event_bus import DomainEvent, EventHandler

# stdlib logger: voicemeter.core.logging imports settings, which would cycle here
logger = logging.getLogger(__name__)


def _event_name(event: "DomainEvent") -> str:
    return str(getattr(event.event_type, "value", event.event_type))


def _handler_name(handler: "EventHandler") -> str:
    return getattr(handler, "__qualname__", None) or type(handler).__name__


class InMemoryEventBus:
    """EventBus that routes by glob pattern and awaits every match concurrently.

    Example:
        bus = InMemoryEventBus()
        bus.subscribe("metering.threshold_crossed", subscriber.handle)
        await bus.publish(UsageThresholdCrossedEvent(...))
    """

    def __init__(self) -> None:
        """Start with no subscriptions."""
        self._routes: dict[str, list["EventHandler"]] = defaultdict(list)

    def subscribe(self, event_pattern: str, handler: "EventHandler") -> None:
        """Route events whose type matches ``event_pattern`` to ``handler``."""
        self._routes[event_pattern].append(handler)
        logger.debug("Event bus route added: %s -> %s", event_pattern, _handler_name(handler))

    @property
    def patterns(self) -> list[str]:
        """Subscribed patterns, in registration order."""
        return list(self._routes)

    def _handlers_for(self, name: str) -> list["EventHandler"]:
        return [
            handler
            for pattern, handlers in self._routes.items()
            if fnmatch.fnmatchcase(name, pattern)
            for handler in handlers
        ]

    async def publish(self, event: "DomainEvent") -> None:
        """Deliver ``event`` to every matching handler.

        Handler exceptions are logged per handler and never raised to the
        publisher, so the recorder's result does not depend on alert delivery.
        """
        name = _event_name(event)
        handlers = self._handlers_for(name)
        if not handlers:
            logger.info("Event %s for tenant %s has no subscribers", name, event.tenant_id)
            return

        outcomes = await asyncio.gather(
            *(handler(event) for handler in handlers), return_exceptions=True
        )
        for handler, outcome in zip(handlers, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "Subscriber %s failed on %s for tenant %s: %s",
                    _handler_name(handler),
                    name,
                    event.tenant_id,
                    outcome,
                    exc_info=outcome,
                )
