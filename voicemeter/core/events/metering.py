"""Domain events emitted by the usage recorder.

Published only after the recording transaction commits, so subscribers
never observe usage that was rolled back.

Consumers:
- ThresholdAlertSubscriber: dispatches one alert per crossed threshold
"""

from typing import Optional
from uuid import UUID

from voicemeter.core.events.base import DomainEvent
from voicemeter.core.events.enums import MeteringEventType


class UsageThresholdCrossedEvent(DomainEvent):
    """One newly crossed alert threshold in a period."""

    event_type: MeteringEventType = MeteringEventType.THRESHOLD_CROSSED

    period_id: UUID
    threshold: int
    usage_percent: float
    included_minutes: int
    included_minutes_used: int
    overage_minutes_used: int
    overage_charges: int
    policy: str


class TenantBlockedEvent(DomainEvent):
    """The tenant's current period transitioned to blocked."""

    event_type: MeteringEventType = MeteringEventType.TENANT_BLOCKED

    period_id: UUID
    blocked_reason: Optional[str] = None
    overage_charges: int
