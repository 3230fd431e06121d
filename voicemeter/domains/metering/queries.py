"""Read-side metering views: summary, history and overage preview."""

import math
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from voicemeter.db import SessionFactory
from voicemeter.domains.metering.config_service import MeteringConfigService
from voicemeter.domains.metering.ledger import UsagePeriodLedger
from voicemeter.domains.metering.protocols import MeteringQueryServiceProtocol
from voicemeter.domains.metering.repository import (
    MeteringConfigRepositoryProtocol,
    UsagePeriodRepositoryProtocol,
    UsageTransactionRepositoryProtocol,
)
from voicemeter.domains.metering.types import build_snapshot, days_between
from voicemeter.schemas.metering_config import OveragePolicy
from voicemeter.schemas.usage import (
    OveragePreview,
    Page,
    UsagePeriod,
    UsageSummary,
    UsageTransaction,
)


class MeteringQueryService(MeteringQueryServiceProtocol):
    """Dashboards and history. Only ``get_summary`` writes (lazy creation)."""

    def __init__(
        self,
        config_service: MeteringConfigService,
        config_repo: MeteringConfigRepositoryProtocol,
        period_repo: UsagePeriodRepositoryProtocol,
        transaction_repo: UsageTransactionRepositoryProtocol,
        session_factory: SessionFactory,
    ) -> None:
        """Initialize with repositories and a session factory."""
        self._config_service = config_service
        self._config_repo = config_repo
        self._period_repo = period_repo
        self._transaction_repo = transaction_repo
        self._ledger = UsagePeriodLedger(period_repo)
        self._session_factory = session_factory

    async def get_summary(self, tenant_id: UUID, now: Optional[datetime] = None) -> UsageSummary:
        """Current-period snapshot, creating config and period like the gate does.

        Unlike the gate this does not fail closed: errors propagate.
        """
        now = now or datetime.now(timezone.utc)
        async with self._session_factory() as db:
            try:
                config = await self._config_service.ensure(db, tenant_id)
                period = await self._period_repo.get_current(db, tenant_id=tenant_id)
                if period is None or period.period_end <= now:
                    period = await self._ledger.ensure_current(db, tenant_id, now)
                snapshot = build_snapshot(config, period)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        return UsageSummary(
            **snapshot.model_dump(),
            days_remaining=math.ceil(days_between(now, snapshot.period_end)),
            is_at_limit=snapshot.remaining_included == 0,
        )

    async def list_periods(
        self, tenant_id: UUID, limit: int = 12, offset: int = 0
    ) -> Page[UsagePeriod]:
        """Billing history, newest first."""
        async with self._session_factory() as db:
            rows = await self._period_repo.list_by_tenant(
                db, tenant_id=tenant_id, limit=limit, offset=offset
            )
            total = await self._period_repo.count_by_tenant(db, tenant_id=tenant_id)
        return Page[UsagePeriod](
            items=[UsagePeriod.model_validate(r, from_attributes=True) for r in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def list_transactions(
        self,
        tenant_id: UUID,
        limit: int = 50,
        offset: int = 0,
        period_id: Optional[UUID] = None,
    ) -> Page[UsageTransaction]:
        """Transaction history, newest first."""
        async with self._session_factory() as db:
            rows = await self._transaction_repo.list_by_tenant(
                db, tenant_id=tenant_id, limit=limit, offset=offset, period_id=period_id
            )
            total = await self._transaction_repo.count_by_tenant(
                db, tenant_id=tenant_id, period_id=period_id
            )
        return Page[UsageTransaction](
            items=[UsageTransaction.model_validate(r, from_attributes=True) for r in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def preview(self, tenant_id: UUID, now: Optional[datetime] = None) -> OveragePreview:
        """Current overage and a linear projection to period end.

        projected = current * days_total / days_elapsed, never below current.
        Read-only: a tenant without config or period previews as zero.
        """
        now = now or datetime.now(timezone.utc)
        async with self._session_factory() as db:
            config = await self._config_repo.get_by_tenant(db, tenant_id=tenant_id)
            period = await self._period_repo.get_current(db, tenant_id=tenant_id)

        if config is None or period is None:
            return OveragePreview(
                tenant_id=tenant_id,
                current_overage_minutes=0,
                current_overage_charges=0,
                overage_price_per_minute=config.overage_price_per_minute if config else 0,
                days_elapsed=0.0,
                days_total=0.0,
                projected_overage_minutes=0,
                projected_overage_charges=0,
                will_be_billed=False,
            )

        days_total = days_between(period.period_start, period.period_end)
        days_elapsed = min(days_between(period.period_start, now), days_total)
        current = period.overage_minutes_used
        if days_elapsed > 0 and days_total > 0:
            projected = max(current, math.ceil(current * days_total / days_elapsed))
        else:
            projected = current
        price = config.overage_price_per_minute
        policy = OveragePolicy(config.overage_policy)

        return OveragePreview(
            tenant_id=tenant_id,
            period_start=period.period_start,
            period_end=period.period_end,
            current_overage_minutes=current,
            current_overage_charges=period.overage_charges,
            overage_price_per_minute=price,
            days_elapsed=round(days_elapsed, 2),
            days_total=round(days_total, 2),
            projected_overage_minutes=projected,
            projected_overage_charges=projected * price,
            will_be_billed=policy == OveragePolicy.CHARGE and projected > 0,
        )
