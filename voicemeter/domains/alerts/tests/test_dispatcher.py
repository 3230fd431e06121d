"""Tests for the alert dispatcher."""

import asyncio
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from voicemeter.domains.alerts.exceptions import AlertDeliveryError
from voicemeter.domains.alerts.tests.conftest import (
    ACTION_URL,
    NOON,
    OTHER_TENANT_ID,
    TENANT_ID,
    _all_channels,
    _make_harness,
)
from voicemeter.schemas.alert import AlertSeverity


class TestDispatch:
    @pytest.mark.asyncio
    async def test_in_app_only_by_default(self, harness):
        period = harness.seed_tenant(period_overrides={"included_minutes_used": 70})

        alert = await harness.dispatcher.dispatch(TENANT_ID, period.id, 70, now=NOON)

        assert alert is not None
        assert alert.sent_via == ["in_app"]
        assert alert.severity == AlertSeverity.INFO
        assert alert.usage_percent == 70.0
        assert alert.action_url == ACTION_URL
        assert all(c.attempts == 0 for c in harness.channels.values())
        assert len(harness.alert_repo.all(TENANT_ID)) == 1

    @pytest.mark.asyncio
    async def test_fans_out_to_configured_channels(self, harness):
        period = harness.seed_tenant(
            period_overrides={"included_minutes_used": 100, "overage_minutes_used": 6},
            **_all_channels(),
        )

        alert = await harness.dispatcher.dispatch(TENANT_ID, period.id, 100, now=NOON)

        assert alert.sent_via == ["in_app", "email", "messaging", "webhook"]
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.minutes_used == 106
        sent = harness.channels["email"].sent[0]
        assert sent.email_recipients == ["ops@example.com"]
        assert sent.alert_id == str(alert.id)
        assert harness.channels["webhook"].sent[0].webhook_url == "https://hooks.example.com/usage"
        stored = harness.alert_repo.all(TENANT_ID)[0]
        assert stored.sent_via == alert.sent_via

    @pytest.mark.asyncio
    async def test_second_dispatch_of_same_threshold_is_a_no_op(self, harness):
        period = harness.seed_tenant(**_all_channels())

        first = await harness.dispatcher.dispatch(TENANT_ID, period.id, 85, now=NOON)
        second = await harness.dispatcher.dispatch(TENANT_ID, period.id, 85, now=NOON)

        assert first is not None
        assert second is None
        assert harness.channels["email"].attempts == 1
        assert len(harness.alert_repo.all()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_dispatches_send_once(self, harness):
        period = harness.seed_tenant(**_all_channels())

        results = await asyncio.gather(
            *[harness.dispatcher.dispatch(TENANT_ID, period.id, 95, now=NOON) for _ in range(4)]
        )

        assert sum(1 for r in results if r is not None) == 1
        assert harness.channels["webhook"].attempts == 1

    @pytest.mark.asyncio
    async def test_same_threshold_in_new_period_alerts_again(self, harness):
        first = harness.seed_tenant()
        second = harness.period_repo.seed_period(
            TENANT_ID,
            period_start=datetime(2026, 2, 1, tzinfo=timezone.utc),
            period_end=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )

        a = await harness.dispatcher.dispatch(TENANT_ID, first.id, 70, now=NOON)
        b = await harness.dispatcher.dispatch(TENANT_ID, second.id, 70, now=NOON)

        assert a is not None and b is not None

    @pytest.mark.asyncio
    async def test_unknown_period_or_foreign_period_is_skipped(self, harness):
        harness.seed_tenant()
        foreign = harness.seed_tenant(OTHER_TENANT_ID)

        assert await harness.dispatcher.dispatch(TENANT_ID, uuid4(), 70) is None
        assert await harness.dispatcher.dispatch(TENANT_ID, foreign.id, 70) is None
        assert harness.alert_repo.all() == []


class TestChannelFailures:
    @pytest.mark.asyncio
    async def test_one_failing_channel_does_not_block_others(self):
        h = _make_harness(channel_errors={"email": AlertDeliveryError("email", "smtp down")})
        period = h.seed_tenant(**_all_channels())

        alert = await h.dispatcher.dispatch(TENANT_ID, period.id, 85, now=NOON)

        assert alert.sent_via == ["in_app", "messaging", "webhook"]
        assert h.channels["email"].attempts == 1
        assert len(h.channels["webhook"].sent) == 1

    @pytest.mark.asyncio
    async def test_all_external_channels_failing_keeps_in_app_alert(self):
        boom = RuntimeError("down")
        h = _make_harness(channel_errors={"email": boom, "messaging": boom, "webhook": boom})
        period = h.seed_tenant(**_all_channels())

        alert = await h.dispatcher.dispatch(TENANT_ID, period.id, 85, now=NOON)

        assert alert.sent_via == ["in_app"]
        assert h.alert_repo.call_count("set_sent_via") == 0
        assert len(h.alert_repo.all()) == 1

    @pytest.mark.asyncio
    async def test_store_failure_propagates_before_any_send(self, harness):
        period = harness.seed_tenant(**_all_channels())
        harness.sessions.fail_next_commit(ConnectionError("connection reset"))

        with pytest.raises(ConnectionError):
            await harness.dispatcher.dispatch(TENANT_ID, period.id, 70, now=NOON)

        assert harness.alert_repo.all() == []
        assert all(c.attempts == 0 for c in harness.channels.values())

    @pytest.mark.asyncio
    async def test_sent_via_write_failure_is_logged_only(self, harness, monkeypatch):
        period = harness.seed_tenant(**_all_channels())

        async def failing_set_sent_via(db, *, alert_id, channels):
            raise ConnectionError("db gone")

        monkeypatch.setattr(harness.alert_repo, "set_sent_via", failing_set_sent_via)

        alert = await harness.dispatcher.dispatch(TENANT_ID, period.id, 70, now=NOON)

        assert alert.sent_via == ["in_app", "email", "messaging", "webhook"]
        assert harness.alert_repo.all()[0].sent_via == ["in_app"]


class TestDeliveryRules:
    @pytest.mark.asyncio
    async def test_quiet_hours_suppress_external_channels(self, harness):
        period = harness.seed_tenant(
            **_all_channels(quiet_hours_start=22, quiet_hours_end=7)
        )

        alert = await harness.dispatcher.dispatch(
            TENANT_ID, period.id, 85, now=datetime(2026, 1, 16, 23, 30, tzinfo=timezone.utc)
        )

        assert alert.sent_via == ["in_app"]
        assert all(c.attempts == 0 for c in harness.channels.values())

    @pytest.mark.asyncio
    async def test_outside_quiet_hours_delivers(self, harness):
        period = harness.seed_tenant(
            **_all_channels(quiet_hours_start=22, quiet_hours_end=7)
        )

        alert = await harness.dispatcher.dispatch(TENANT_ID, period.id, 85, now=NOON)

        assert "email" in alert.sent_via

    @pytest.mark.asyncio
    async def test_opted_out_channels_are_not_used(self, harness):
        period = harness.seed_tenant(**_all_channels(alert_channels=["in_app", "webhook"]))

        alert = await harness.dispatcher.dispatch(TENANT_ID, period.id, 70, now=NOON)

        assert alert.sent_via == ["in_app", "webhook"]
        assert harness.channels["email"].attempts == 0

    @pytest.mark.asyncio
    async def test_channels_missing_destination_are_skipped(self, harness):
        period = harness.seed_tenant(
            **_all_channels(email_recipients=None, webhook_url=None)
        )

        alert = await harness.dispatcher.dispatch(TENANT_ID, period.id, 70, now=NOON)

        assert alert.sent_via == ["in_app", "messaging"]
        assert harness.channels["email"].attempts == 0
        assert harness.channels["webhook"].attempts == 0
