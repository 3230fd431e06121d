"""Recording event bus for tests."""

import fnmatch
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from voicemeter.core.protocols.event_bus import DomainEvent, EventHandler


def _name(event: "DomainEvent") -> str:
    return str(getattr(event.event_type, "value", event.event_type))


class FakeEventBus:
    """EventBus double that keeps every published event in ``events``.

    Subscribers are only invoked when built with ``call_subscribers=True``,
    which lets recorder tests drive the alert subscriber end to end.
    """

    def __init__(self, call_subscribers: bool = False) -> None:
        """Initialize with subscriber invocation on or off."""
        self.events: list["DomainEvent"] = []
        self._routes: list[tuple[str, "EventHandler"]] = []
        self._call_subscribers = call_subscribers
        self._failure: Optional[Exception] = None

    def fail_with(self, exc: Optional[Exception]) -> None:
        """Make every publish raise ``exc`` (None disarms)."""
        self._failure = exc

    def subscribe(self, event_pattern: str, handler: "EventHandler") -> None:
        """Remember the route."""
        self._routes.append((event_pattern, handler))

    async def publish(self, event: "DomainEvent") -> None:
        """Record ``event``, then run matching subscribers if enabled."""
        if self._failure is not None:
            raise self._failure
        self.events.append(event)
        if not self._call_subscribers:
            return
        for pattern, handler in self._routes:
            if fnmatch.fnmatchcase(_name(event), pattern):
                await handler(event)

    def get_events(self, event_type: str) -> list["DomainEvent"]:
        """Published events of one type, oldest first."""
        return [e for e in self.events if _name(e) == event_type]

    def assert_published(self, event_type: str) -> "DomainEvent":
        """Return the first event of ``event_type`` or fail listing what was published."""
        matches = self.get_events(event_type)
        if not matches:
            raise AssertionError(
                f"No '{event_type}' event published; got {[_name(e) for e in self.events]}"
            )
        return matches[0]
