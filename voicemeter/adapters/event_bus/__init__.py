"""Event bus adapters."""

from voicemeter.adapters.event_bus.fake import FakeEventBus
from voicemeter.adapters.event_bus.in_memory import InMemoryEventBus

__all__ = ["FakeEventBus", "InMemoryEventBus"]
