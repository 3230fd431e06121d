"""Metering domain test fixtures and helpers.

Every service is wired against in-memory fakes that emulate the row lock
and rollback behaviour of the real database.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import pytest

from voicemeter.adapters.event_bus.fake import FakeEventBus
from voicemeter.domains.metering.config_service import MeteringConfigService
from voicemeter.domains.metering.fakes.repository import (
    FakeMeteringConfigRepository,
    FakeUsagePeriodRepository,
    FakeUsageTransactionRepository,
)
from voicemeter.domains.metering.fakes.session import FakeSessionFactory
from voicemeter.domains.metering.gate import MeteringGate
from voicemeter.domains.metering.period_sync import PeriodSynchronizer
from voicemeter.domains.metering.queries import MeteringQueryService
from voicemeter.domains.metering.recorder import UsageRecorder
from voicemeter.domains.metering.types import MeteringDefaults

DEFAULT_TENANT_ID = UUID("00000000-0000-0000-0000-000000000001")
OTHER_TENANT_ID = UUID("00000000-0000-0000-0000-000000000002")

PERIOD_START = datetime(2026, 1, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2026, 2, 1, tzinfo=timezone.utc)
MID_PERIOD = datetime(2026, 1, 16, 12, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@dataclass
class MeteringHarness:
    """All metering services wired to shared fakes."""

    sessions: FakeSessionFactory
    config_repo: FakeMeteringConfigRepository
    period_repo: FakeUsagePeriodRepository
    transaction_repo: FakeUsageTransactionRepository
    event_bus: FakeEventBus
    config_service: MeteringConfigService
    gate: MeteringGate
    recorder: UsageRecorder
    period_sync: PeriodSynchronizer
    queries: MeteringQueryService

    def seed_active_tenant(
        self,
        tenant_id: UUID = DEFAULT_TENANT_ID,
        *,
        with_period: bool = True,
        period_overrides: Optional[dict] = None,
        **config_overrides: Any,
    ):
        """Seed an active config (and by default a current January period)."""
        config = self.config_repo.seed_config(tenant_id, **config_overrides)
        period = None
        if with_period:
            period = self.period_repo.seed_period(tenant_id, **(period_overrides or {}))
        return config, period


def _make_harness(
    defaults: Optional[MeteringDefaults] = None,
    safety_cap: Optional[int] = None,
    event_bus: Optional[FakeEventBus] = None,
) -> MeteringHarness:
    """Wire every metering service to fresh fakes."""
    sessions = FakeSessionFactory()
    config_repo = FakeMeteringConfigRepository()
    transaction_repo = FakeUsageTransactionRepository()
    period_repo = FakeUsagePeriodRepository(
        config_repo=config_repo, transaction_repo=transaction_repo
    )
    event_bus = event_bus or FakeEventBus()
    config_service = MeteringConfigService(
        config_repo=config_repo,
        period_repo=period_repo,
        session_factory=sessions,
        defaults=defaults or MeteringDefaults(),
    )
    return MeteringHarness(
        sessions=sessions,
        config_repo=config_repo,
        period_repo=period_repo,
        transaction_repo=transaction_repo,
        event_bus=event_bus,
        config_service=config_service,
        gate=MeteringGate(
            config_service=config_service, period_repo=period_repo, session_factory=sessions
        ),
        recorder=UsageRecorder(
            config_service=config_service,
            period_repo=period_repo,
            transaction_repo=transaction_repo,
            event_bus=event_bus,
            session_factory=sessions,
            safety_cap=safety_cap,
        ),
        period_sync=PeriodSynchronizer(
            config_service=config_service, period_repo=period_repo, session_factory=sessions
        ),
        queries=MeteringQueryService(
            config_service=config_service,
            config_repo=config_repo,
            period_repo=period_repo,
            transaction_repo=transaction_repo,
            session_factory=sessions,
        ),
    )


def minutes(n: int) -> int:
    """Seconds in ``n`` whole minutes."""
    return n * 60


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def harness() -> MeteringHarness:
    """Fresh metering services over empty fakes."""
    return _make_harness()
