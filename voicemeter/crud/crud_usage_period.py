"""CRUD operations for UsagePeriod."""

from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, func, or_, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter.crud._base import CRUDBase
from voicemeter.models.metering_config import TenantMeteringConfig
from voicemeter.models.usage_period import UsagePeriod
from voicemeter.models.usage_transaction import UsageTransaction


class CRUDUsagePeriod(CRUDBase[UsagePeriod]):
    """CRUD operations for UsagePeriod."""

    async def get_current(self, db: AsyncSession, *, tenant_id: UUID) -> Optional[UsagePeriod]:
        """Get the current period without locking it."""
        result = await db.execute(
            select(self.model).where(
                and_(self.model.tenant_id == tenant_id, self.model.is_current.is_(True))
            )
        )
        return result.scalar_one_or_none()

    async def get_current_for_update(
        self, db: AsyncSession, *, tenant_id: UUID
    ) -> Optional[UsagePeriod]:
        """Lock and return the current period (SELECT ... FOR UPDATE).

        The lock is held until the caller's transaction ends. Under READ
        COMMITTED, a caller that waited on a rollover re-evaluates the
        ``is_current`` predicate against the retired row and gets None; a
        second call in a fresh statement sees the new current row.
        """
        result = await db.execute(
            select(self.model)
            .where(and_(self.model.tenant_id == tenant_id, self.model.is_current.is_(True)))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_current_if_absent(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        period_start: datetime,
        period_end: datetime,
    ) -> bool:
        """Insert a new current period unless the tenant already has one.

        Returns True when this call created the row.
        """
        stmt = (
            pg_insert(self.model)
            .values(
                tenant_id=tenant_id,
                period_start=period_start,
                period_end=period_end,
                included_minutes_used=0,
                overage_minutes_used=0,
                overage_charges=0,
                billable_overage_minutes=0,
                billable_charges=0,
                total_calls=0,
                triggered_thresholds=[],
                is_current=True,
                is_blocked=False,
                is_billed=False,
            )
            .on_conflict_do_nothing(index_elements=["tenant_id"], index_where=text("is_current"))
            .returning(self.model.id)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, limit: int, offset: int
    ) -> Sequence[UsagePeriod]:
        """List a tenant's periods, newest first."""
        result = await db.execute(
            select(self.model)
            .where(self.model.tenant_id == tenant_id)
            .order_by(self.model.period_start.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def count_by_tenant(self, db: AsyncSession, *, tenant_id: UUID) -> int:
        """Count a tenant's periods."""
        result = await db.execute(
            select(func.count()).select_from(self.model).where(self.model.tenant_id == tenant_id)
        )
        return int(result.scalar_one())

    async def get_due_for_rollover(
        self, db: AsyncSession, *, now: datetime
    ) -> Sequence[UsagePeriod]:
        """Current periods whose end has passed."""
        result = await db.execute(
            select(self.model).where(
                and_(self.model.is_current.is_(True), self.model.period_end <= now)
            )
        )
        return result.scalars().all()

    async def get_unbilled_overage(
        self, db: AsyncSession, *, now: datetime
    ) -> Sequence[tuple[UsagePeriod, TenantMeteringConfig]]:
        """Closed (or past-end) periods with unbilled overage accrued under ``charge``.

        The tenant's current policy plays no part: a period is billed for the
        overage it accrued while ``charge`` was in force, however the policy
        has changed since.
        """
        result = await db.execute(
            select(self.model, TenantMeteringConfig)
            .join(TenantMeteringConfig, TenantMeteringConfig.tenant_id == self.model.tenant_id)
            .where(
                and_(
                    self.model.billable_overage_minutes > 0,
                    self.model.is_billed.is_(False),
                    or_(self.model.is_current.is_(False), self.model.period_end <= now),
                )
            )
            .order_by(self.model.period_start)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def mark_billed(
        self,
        db: AsyncSession,
        *,
        period_id: UUID,
        billed_reference: str,
        idempotency_key: str,
        billed_at: datetime,
    ) -> bool:
        """Flag a period billed and stamp its ``charge`` overage transactions.

        Guarded by ``NOT is_billed`` so a concurrent sweep cannot overwrite
        the reference. Returns False when the period was already billed.
        """
        result = await db.execute(
            update(self.model)
            .where(and_(self.model.id == period_id, self.model.is_billed.is_(False)))
            .values(
                is_billed=True,
                billed_reference=billed_reference,
                billing_idempotency_key=idempotency_key,
                billed_at=billed_at,
            )
            .returning(self.model.id)
        )
        if result.scalar_one_or_none() is None:
            return False

        await db.execute(
            update(UsageTransaction)
            .where(
                and_(
                    UsageTransaction.period_id == period_id,
                    UsageTransaction.is_overage.is_(True),
                    UsageTransaction.overage_policy == "charge",
                    UsageTransaction.billed_reference.is_(None),
                )
            )
            .values(billed_reference=billed_reference)
        )
        return True

    async def get_by_idempotency_key(
        self, db: AsyncSession, *, idempotency_key: str
    ) -> Optional[UsagePeriod]:
        """Find the period billed under an idempotency key."""
        result = await db.execute(
            select(self.model).where(self.model.billing_idempotency_key == idempotency_key)
        )
        return result.scalar_one_or_none()


usage_period = CRUDUsagePeriod(UsagePeriod)
