"""CRUD operations for TenantMeteringConfig."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter.crud._base import CRUDBase
from voicemeter.models.metering_config import TenantMeteringConfig
from voicemeter.schemas.metering_config import MeteringConfigCreate


class CRUDMeteringConfig(CRUDBase[TenantMeteringConfig]):
    """CRUD operations for TenantMeteringConfig."""

    async def get_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID
    ) -> Optional[TenantMeteringConfig]:
        """Get the config row for a tenant."""
        result = await db.execute(select(self.model).where(self.model.tenant_id == tenant_id))
        return result.scalar_one_or_none()

    async def create_if_absent(
        self, db: AsyncSession, *, obj_in: MeteringConfigCreate
    ) -> TenantMeteringConfig:
        """Insert a config unless one exists, then return the stored row.

        Concurrent first calls for the same tenant both succeed; only one
        insert wins and both read back the same row.
        """
        values = obj_in.model_dump(mode="json")
        values["tenant_id"] = obj_in.tenant_id
        stmt = (
            pg_insert(self.model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["tenant_id"])
        )
        await db.execute(stmt)
        result = await db.execute(
            select(self.model).where(self.model.tenant_id == obj_in.tenant_id)
        )
        return result.scalar_one()

    async def get_by_external_customer(
        self, db: AsyncSession, *, customer_id: str
    ) -> Optional[TenantMeteringConfig]:
        """Find the config carrying a payment-provider customer reference."""
        result = await db.execute(
            select(self.model).where(self.model.external_customer_id == customer_id)
        )
        return result.scalars().first()

    async def get_by_external_subscription(
        self, db: AsyncSession, *, subscription_id: str
    ) -> Optional[TenantMeteringConfig]:
        """Find the config carrying a payment-provider subscription reference."""
        result = await db.execute(
            select(self.model).where(self.model.external_subscription_id == subscription_id)
        )
        return result.scalars().first()


metering_config = CRUDMeteringConfig(TenantMeteringConfig)
