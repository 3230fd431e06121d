"""CRUD operations for UsageAlert."""

from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter.crud._base import CRUDBase
from voicemeter.models.usage_alert import UsageAlert


class CRUDUsageAlert(CRUDBase[UsageAlert]):
    """CRUD operations for UsageAlert."""

    async def create_if_absent(
        self, db: AsyncSession, *, values: dict[str, Any]
    ) -> Optional[UsageAlert]:
        """Insert an alert unless (tenant, period, threshold) already exists.

        Returns the new row, or None when the dedup key was already taken.
        """
        stmt = (
            pg_insert(self.model)
            .values(**values)
            .on_conflict_do_nothing(constraint="uq_usage_alert_dedup")
            .returning(self.model.id)
        )
        result = await db.execute(stmt)
        alert_id = result.scalar_one_or_none()
        if alert_id is None:
            return None
        return await self.get(db, alert_id)

    async def set_sent_via(self, db: AsyncSession, *, alert_id: UUID, channels: list[str]) -> None:
        """Record which channels delivered the alert."""
        await db.execute(
            update(self.model).where(self.model.id == alert_id).values(sent_via=channels)
        )

    async def get_for_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, alert_id: UUID
    ) -> Optional[UsageAlert]:
        """Get an alert scoped to its tenant."""
        result = await db.execute(
            select(self.model).where(
                and_(self.model.id == alert_id, self.model.tenant_id == tenant_id)
            )
        )
        return result.scalar_one_or_none()

    def _list_filter(self, tenant_id: UUID, unacknowledged_only: bool):
        clauses = [self.model.tenant_id == tenant_id]
        if unacknowledged_only:
            clauses.append(self.model.acknowledged.is_(False))
        return and_(*clauses)

    async def list_by_tenant(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        unacknowledged_only: bool,
        limit: int,
        offset: int,
    ) -> Sequence[UsageAlert]:
        """List alerts newest first."""
        result = await db.execute(
            select(self.model)
            .where(self._list_filter(tenant_id, unacknowledged_only))
            .order_by(self.model.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def count_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, unacknowledged_only: bool
    ) -> int:
        """Count alerts for a tenant."""
        result = await db.execute(
            select(func.count())
            .select_from(self.model)
            .where(self._list_filter(tenant_id, unacknowledged_only))
        )
        return int(result.scalar_one())


usage_alert = CRUDUsageAlert(UsageAlert)
