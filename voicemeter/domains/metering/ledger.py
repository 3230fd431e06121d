"""Usage period ledger: locking, lazy creation and rollover of current periods.

Shared by the gate, the recorder, the config service and the period
synchronizer so that scheduled, webhook-driven and lazy rollovers all go
through the same ``rollover_locked`` step. Every method runs inside the
caller's transaction and never commits.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter.core.logging import logger
from voicemeter.domains.metering.exceptions import UsagePeriodNotFoundError
from voicemeter.domains.metering.repository import UsagePeriodRepositoryProtocol
from voicemeter.domains.metering.types import next_period_bounds, start_of_next_month
from voicemeter.models.usage_period import UsagePeriod


class UsagePeriodLedger:
    """Row-lock discipline around a tenant's single current period."""

    def __init__(self, period_repo: UsagePeriodRepositoryProtocol) -> None:
        """Initialize with the period repository."""
        self._period_repo = period_repo

    async def lock_current(self, db: AsyncSession, tenant_id: UUID) -> UsagePeriod | None:
        """Lock the current period.

        A caller that queued behind a rollover sees the retired row drop out
        of the ``is_current`` predicate and gets None; selecting once more
        picks up the period the rollover created.
        """
        period = await self._period_repo.get_current_for_update(db, tenant_id=tenant_id)
        if period is None:
            period = await self._period_repo.get_current_for_update(db, tenant_id=tenant_id)
        return period

    async def ensure_current(self, db: AsyncSession, tenant_id: UUID, now: datetime) -> UsagePeriod:
        """Lock the current period, opening or rolling it forward as needed.

        The returned row is locked and satisfies ``period_start <= now < period_end``.
        """
        period = await self.lock_current(db, tenant_id)
        if period is None:
            created = await self._period_repo.create_current_if_absent(
                db, tenant_id=tenant_id, period_start=now, period_end=start_of_next_month(now)
            )
            if created:
                logger.with_context(tenant_id=str(tenant_id)).info("Opened first usage period")
            period = await self.lock_current(db, tenant_id)
            if period is None:
                raise UsagePeriodNotFoundError(tenant_id)

        if period.period_end <= now:
            new_start, new_end = next_period_bounds(period.period_end, now)
            period = await self.rollover_locked(db, period, new_start, new_end)
        return period

    async def rollover_locked(
        self,
        db: AsyncSession,
        current: UsagePeriod,
        new_start: datetime,
        new_end: datetime,
    ) -> UsagePeriod:
        """Retire ``current`` at ``new_start`` and open a zeroed period.

        ``current`` must already be locked by this transaction. Usage recorded
        concurrently either committed against ``current`` before the lock was
        granted or waits and lands in the new period.
        """
        tenant_id = current.tenant_id
        await self._period_repo.update(
            db, db_obj=current, values={"is_current": False, "period_end": new_start}
        )
        await self._period_repo.create_current_if_absent(
            db, tenant_id=tenant_id, period_start=new_start, period_end=new_end
        )
        new_period = await self._period_repo.get_current_for_update(db, tenant_id=tenant_id)
        if new_period is None:
            raise UsagePeriodNotFoundError(tenant_id)

        logger.with_context(
            tenant_id=str(tenant_id),
            period_id=str(new_period.id),
        ).info(
            f"Rolled over usage period {current.id} "
            f"({new_start.isoformat()} -> {new_end.isoformat()})"
        )
        return new_period
