"""Unit tests for metering domain events.

Tests:
- DomainEvent frozen immutability and serialization
- UsageThresholdCrossedEvent / TenantBlockedEvent defaults
"""

import json
from datetime import datetime
from uuid import uuid4

import pytest

from voicemeter.core.events.base import DomainEvent
from voicemeter.core.events.enums import MeteringEventType
from voicemeter.core.events.metering import TenantBlockedEvent, UsageThresholdCrossedEvent

TENANT_ID = uuid4()
PERIOD_ID = uuid4()


def _threshold_event(**overrides) -> UsageThresholdCrossedEvent:
    values = dict(
        tenant_id=TENANT_ID,
        period_id=PERIOD_ID,
        threshold=85,
        usage_percent=86.5,
        included_minutes=200,
        included_minutes_used=173,
        overage_minutes_used=0,
        overage_charges=0,
        policy="charge",
    )
    values.update(overrides)
    return UsageThresholdCrossedEvent(**values)


class TestDomainEvent:
    """Tests for the DomainEvent base class."""

    def test_frozen(self):
        class MyEvent(DomainEvent):
            foo: str = "bar"

        event = MyEvent(event_type=MeteringEventType.THRESHOLD_CROSSED, tenant_id=TENANT_ID)
        with pytest.raises(Exception):
            event.foo = "baz"

    def test_timestamp_auto_generated(self):
        class MyEvent(DomainEvent):
            pass

        event = MyEvent(event_type=MeteringEventType.TENANT_BLOCKED, tenant_id=TENANT_ID)
        assert isinstance(event.timestamp, datetime)
        assert event.timestamp.tzinfo is not None

    def test_rejects_unknown_event_type(self):
        with pytest.raises(Exception):
            DomainEvent(event_type="metering.refunded", tenant_id=TENANT_ID)


class TestMeteringEvents:
    def test_threshold_event_type(self):
        event = _threshold_event()
        assert event.event_type == MeteringEventType.THRESHOLD_CROSSED
        assert event.event_type.value == "metering.threshold_crossed"

    def test_threshold_event_json_safe(self):
        dumped = _threshold_event().model_dump(mode="json")

        assert dumped["event_type"] == "metering.threshold_crossed"
        assert dumped["tenant_id"] == str(TENANT_ID)
        assert dumped["period_id"] == str(PERIOD_ID)
        assert dumped["threshold"] == 85
        json.dumps(dumped)

    def test_threshold_event_is_immutable(self):
        event = _threshold_event()
        with pytest.raises(Exception):
            event.threshold = 95

    def test_blocked_event_defaults(self):
        event = TenantBlockedEvent(tenant_id=TENANT_ID, period_id=PERIOD_ID, overage_charges=0)
        assert event.event_type.value == "metering.tenant_blocked"
        assert event.blocked_reason is None
