"""Metering domain service protocols.

MeteringGateProtocol: optimistic pre-use admission check (fail-closed).
UsageRecorderProtocol: atomic post-use counter update.
PeriodSynchronizerProtocol: enable, roll over and disable usage periods.
MeteringConfigServiceProtocol: per-tenant limit configuration store.
MeteringQueryServiceProtocol: summary, history and overage preview.

Every service owns its database sessions; callers never pass one.
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable
from uuid import UUID

from voicemeter.schemas.billing import RolloverReport
from voicemeter.schemas.metering_config import (
    MeteringConfig,
    MeteringConfigUpdate,
    OveragePolicy,
)
from voicemeter.schemas.usage import (
    Admission,
    OveragePreview,
    Page,
    RecordResult,
    UsagePeriod,
    UsageSummary,
    UsageTransaction,
)


@runtime_checkable
class MeteringGateProtocol(Protocol):
    """Read-mostly admission check consulted before a unit of work starts."""

    async def check_limit(self, tenant_id: UUID, now: Optional[datetime] = None) -> Admission:
        """Decide whether a new unit of work may start.

        Never raises for infrastructure failures; returns a denial with
        reason ``infrastructure_error`` instead.
        """
        ...


@runtime_checkable
class UsageRecorderProtocol(Protocol):
    """Atomic read-modify-write of the current period after a unit of work."""

    async def record_usage(
        self,
        tenant_id: UUID,
        call_reference: str,
        seconds_used: int,
        *,
        call_metadata: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> RecordResult:
        """Record consumption, idempotent on ``call_reference``.

        Raises InvalidUsageAmountError, MeteringDisabledError or
        UsageRecordingError.
        """
        ...


@runtime_checkable
class PeriodSynchronizerProtocol(Protocol):
    """Lifecycle of a tenant's usage periods."""

    async def enable(
        self,
        tenant_id: UUID,
        config: Optional[MeteringConfigUpdate] = None,
        *,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> UsagePeriod:
        """Activate metering and open a period if none is current (idempotent)."""
        ...

    async def rollover(
        self, tenant_id: UUID, new_period_start: datetime, new_period_end: datetime
    ) -> UsagePeriod:
        """Retire the current period and open a zeroed one, atomically."""
        ...

    async def disable(self, tenant_id: UUID, now: Optional[datetime] = None) -> None:
        """Deactivate metering and retire the current period."""
        ...

    async def rollover_due_periods(self, now: Optional[datetime] = None) -> RolloverReport:
        """Roll over every current period whose end has passed."""
        ...


@runtime_checkable
class MeteringConfigServiceProtocol(Protocol):
    """Per-tenant limit configuration."""

    async def get_config(self, tenant_id: UUID) -> MeteringConfig:
        """Get a tenant's config. Raises MeteringConfigNotFoundError."""
        ...

    async def get_or_create_config(self, tenant_id: UUID) -> MeteringConfig:
        """Get a tenant's config, creating it from defaults if missing."""
        ...

    async def update_config(self, tenant_id: UUID, update: MeteringConfigUpdate) -> MeteringConfig:
        """Apply a validated partial update."""
        ...

    async def update_policy(self, tenant_id: UUID, policy: OveragePolicy) -> MeteringConfig:
        """Change only the overage policy."""
        ...


@runtime_checkable
class MeteringQueryServiceProtocol(Protocol):
    """Read-side views over the ledger and transaction log."""

    async def get_summary(self, tenant_id: UUID, now: Optional[datetime] = None) -> UsageSummary:
        """Current-period snapshot for dashboards."""
        ...

    async def list_periods(
        self, tenant_id: UUID, limit: int = 12, offset: int = 0
    ) -> Page[UsagePeriod]:
        """Billing history, newest first."""
        ...

    async def list_transactions(
        self,
        tenant_id: UUID,
        limit: int = 50,
        offset: int = 0,
        period_id: Optional[UUID] = None,
    ) -> Page[UsageTransaction]:
        """Transaction history, newest first."""
        ...

    async def preview(self, tenant_id: UUID, now: Optional[datetime] = None) -> OveragePreview:
        """Current overage plus a linear end-of-period projection."""
        ...
