"""Tests for ThresholdAlertSubscriber and the recorder -> alert flow."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest

from voicemeter.adapters.event_bus.fake import FakeEventBus
from voicemeter.core.events.metering import TenantBlockedEvent, UsageThresholdCrossedEvent
from voicemeter.domains.alerts.dispatcher import AlertDispatcher
from voicemeter.domains.alerts.fakes.dispatcher import FakeAlertDispatcher
from voicemeter.domains.alerts.fakes.repository import FakeUsageAlertRepository
from voicemeter.domains.alerts.subscribers.threshold_listener import ThresholdAlertSubscriber
from voicemeter.domains.metering.tests.conftest import MID_PERIOD, _make_harness, minutes

TENANT_ID = UUID("00000000-0000-0000-0000-000000000001")
PERIOD_ID = uuid4()


def _event(threshold: int = 70) -> UsageThresholdCrossedEvent:
    return UsageThresholdCrossedEvent(
        tenant_id=TENANT_ID,
        timestamp=datetime(2026, 1, 16, tzinfo=timezone.utc),
        period_id=PERIOD_ID,
        threshold=threshold,
        usage_percent=float(threshold),
        included_minutes=100,
        included_minutes_used=threshold,
        overage_minutes_used=0,
        overage_charges=0,
        policy="charge",
    )


class TestRouting:
    @pytest.mark.asyncio
    async def test_dispatches_crossed_threshold(self):
        dispatcher = FakeAlertDispatcher()
        listener = ThresholdAlertSubscriber(dispatcher=dispatcher)

        await listener.handle(_event(85))

        assert dispatcher.dispatched == [(TENANT_ID, PERIOD_ID, 85)]

    @pytest.mark.asyncio
    async def test_ignores_other_events(self):
        dispatcher = FakeAlertDispatcher()
        listener = ThresholdAlertSubscriber(dispatcher=dispatcher)

        await listener.handle(
            TenantBlockedEvent(
                tenant_id=TENANT_ID,
                timestamp=datetime(2026, 1, 16, tzinfo=timezone.utc),
                period_id=PERIOD_ID,
                overage_charges=1050,
            )
        )

        assert dispatcher.dispatched == []

    @pytest.mark.asyncio
    async def test_swallows_dispatch_errors(self):
        listener = ThresholdAlertSubscriber(
            dispatcher=FakeAlertDispatcher(should_raise=RuntimeError("boom"))
        )

        await listener.handle(_event())

    def test_subscribes_to_threshold_events(self):
        assert ThresholdAlertSubscriber.EVENT_PATTERNS == ["metering.threshold_crossed"]


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_recording_past_thresholds_creates_one_alert_each(self):
        metering = _make_harness(event_bus=FakeEventBus(call_subscribers=True))
        alert_repo = FakeUsageAlertRepository()
        listener = ThresholdAlertSubscriber(
            dispatcher=AlertDispatcher(
                alert_repo=alert_repo,
                config_repo=metering.config_repo,
                period_repo=metering.period_repo,
                channels={},
                session_factory=metering.sessions,
            )
        )
        for pattern in listener.EVENT_PATTERNS:
            metering.event_bus.subscribe(pattern, listener.handle)
        metering.seed_active_tenant(included_minutes=100)

        await metering.recorder.record_usage(TENANT_ID, "c1", minutes(70), now=MID_PERIOD)
        await metering.recorder.record_usage(TENANT_ID, "c2", minutes(40), now=MID_PERIOD)

        alerts = sorted(alert_repo.all(TENANT_ID), key=lambda a: a.threshold)
        assert [a.threshold for a in alerts] == [70, 85, 95, 100]
        assert [a.severity for a in alerts] == ["info", "warning", "warning", "critical"]
