"""Alerts domain test fixtures and helpers."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import pytest

from voicemeter.adapters.notifications.fake import FakeAlertChannel
from voicemeter.domains.alerts.dispatcher import AlertDispatcher
from voicemeter.domains.alerts.fakes.repository import FakeUsageAlertRepository
from voicemeter.domains.alerts.service import AlertService
from voicemeter.domains.metering.fakes.repository import (
    FakeMeteringConfigRepository,
    FakeUsagePeriodRepository,
)
from voicemeter.domains.metering.fakes.session import FakeSessionFactory

TENANT_ID = UUID("00000000-0000-0000-0000-000000000001")
OTHER_TENANT_ID = UUID("00000000-0000-0000-0000-000000000002")
USER_ID = UUID("00000000-0000-0000-0000-0000000000aa")
NOON = datetime(2026, 1, 16, 12, tzinfo=timezone.utc)
ACTION_URL = "https://app.example.com/settings/voice/usage"


@dataclass
class AlertsHarness:
    """Alert services wired to shared fakes."""

    sessions: FakeSessionFactory
    config_repo: FakeMeteringConfigRepository
    period_repo: FakeUsagePeriodRepository
    alert_repo: FakeUsageAlertRepository
    channels: dict[str, FakeAlertChannel] = field(default_factory=dict)
    dispatcher: Optional[AlertDispatcher] = None
    service: Optional[AlertService] = None

    def seed_tenant(
        self, tenant_id: UUID = TENANT_ID, *, period_overrides: Optional[dict] = None, **config
    ):
        """Seed an active config and a current period; return the period."""
        self.config_repo.seed_config(tenant_id, **config)
        return self.period_repo.seed_period(tenant_id, **(period_overrides or {}))


def _make_harness(channel_errors: Optional[dict[str, Exception]] = None) -> AlertsHarness:
    errors = channel_errors or {}
    sessions = FakeSessionFactory()
    config_repo = FakeMeteringConfigRepository()
    period_repo = FakeUsagePeriodRepository(config_repo=config_repo)
    alert_repo = FakeUsageAlertRepository()
    channels = {
        name: FakeAlertChannel(name, should_raise=errors.get(name))
        for name in ("email", "messaging", "webhook")
    }
    harness = AlertsHarness(
        sessions=sessions,
        config_repo=config_repo,
        period_repo=period_repo,
        alert_repo=alert_repo,
        channels=channels,
    )
    harness.dispatcher = AlertDispatcher(
        alert_repo=alert_repo,
        config_repo=config_repo,
        period_repo=period_repo,
        channels=channels,
        session_factory=sessions,
        action_url=ACTION_URL,
        currency="mxn",
    )
    harness.service = AlertService(alert_repo=alert_repo, session_factory=sessions)
    return harness


def _all_channels(**overrides: Any) -> dict:
    values = {
        "alert_channels": ["in_app", "email", "messaging", "webhook"],
        "email_recipients": ["ops@example.com"],
        "webhook_url": "https://hooks.example.com/usage",
    }
    values.update(overrides)
    return values


@pytest.fixture
def harness() -> AlertsHarness:
    """Fresh alert services over empty fakes."""
    return _make_harness()
