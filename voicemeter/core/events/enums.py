"""Event type enums, the vocabulary of the event bus.

Every domain event must use one of these enums for its event_type field.
"""

from enum import Enum


class MeteringEventType(str, Enum):
    """Metering lifecycle event types."""

    THRESHOLD_CROSSED = "metering.threshold_crossed"
    TENANT_BLOCKED = "metering.tenant_blocked"


# DomainEvent.event_type is typed to this, ensuring only known values are used.
EventType = MeteringEventType
