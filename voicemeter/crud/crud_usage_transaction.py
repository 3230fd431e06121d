"""CRUD operations for UsageTransaction."""

from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter.crud._base import CRUDBase
from voicemeter.models.usage_transaction import UsageTransaction


class CRUDUsageTransaction(CRUDBase[UsageTransaction]):
    """CRUD operations for the append-only transaction log."""

    async def get_by_call_reference(
        self, db: AsyncSession, *, tenant_id: UUID, call_reference: str
    ) -> Optional[UsageTransaction]:
        """Find the transaction recorded for a unit-of-work reference."""
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.tenant_id == tenant_id,
                    self.model.call_reference == call_reference,
                )
            )
        )
        return result.scalar_one_or_none()

    def _tenant_filter(self, tenant_id: UUID, period_id: Optional[UUID]):
        clauses = [self.model.tenant_id == tenant_id]
        if period_id is not None:
            clauses.append(self.model.period_id == period_id)
        return and_(*clauses)

    async def list_by_tenant(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        limit: int,
        offset: int,
        period_id: Optional[UUID] = None,
    ) -> Sequence[UsageTransaction]:
        """List transactions newest first, optionally within one period."""
        result = await db.execute(
            select(self.model)
            .where(self._tenant_filter(tenant_id, period_id))
            .order_by(self.model.recorded_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def count_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, period_id: Optional[UUID] = None
    ) -> int:
        """Count transactions, optionally within one period."""
        result = await db.execute(
            select(func.count())
            .select_from(self.model)
            .where(self._tenant_filter(tenant_id, period_id))
        )
        return int(result.scalar_one())


usage_transaction = CRUDUsageTransaction(UsageTransaction)
