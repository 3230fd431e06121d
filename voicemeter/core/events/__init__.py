"""Domain events for the event bus."""

from voicemeter.core.events.base import DomainEvent
from voicemeter.core.events.enums import EventType, MeteringEventType
from voicemeter.core.events.metering import TenantBlockedEvent, UsageThresholdCrossedEvent

__all__ = [
    "DomainEvent",
    "EventType",
    "MeteringEventType",
    "TenantBlockedEvent",
    "UsageThresholdCrossedEvent",
]
