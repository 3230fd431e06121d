"""Event bus contract between the usage recorder and its listeners.

The recorder announces threshold crossings and blocks after its transaction
commits. Listeners such as the alert dispatcher subscribe by glob pattern on
``event_type`` and never share a transaction with the recorder.
"""

from datetime import datetime
from typing import Awaitable, Callable, Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class DomainEvent(Protocol):
    """What the bus needs from an event: a routable name, a time and a tenant."""

    @property
    def event_type(self) -> str: ...

    @property
    def timestamp(self) -> datetime: ...

    @property
    def tenant_id(self) -> UUID: ...


EventHandler = Callable[[DomainEvent], Awaitable[None]]


@runtime_checkable
class EventBus(Protocol):
    """Fan-out of domain events to pattern subscribers.

    A failing handler is logged and must not stop delivery to the rest.
    """

    async def publish(self, event: DomainEvent) -> None:
        """Deliver ``event`` to every handler whose pattern matches its type."""
        ...

    def subscribe(self, event_pattern: str, handler: EventHandler) -> None:
        """Route events matching ``event_pattern`` (e.g. ``metering.*``) to ``handler``."""
        ...


@runtime_checkable
class EventSubscriber(Protocol):
    """A listener wired by the container factory.

    ``handle`` is subscribed once per entry of ``EVENT_PATTERNS``.
    """

    EVENT_PATTERNS: list[str]

    async def handle(self, event: DomainEvent) -> None: ...
