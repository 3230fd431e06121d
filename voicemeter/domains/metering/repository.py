"""Metering repositories wrapping the crud singletons.

Repositories never commit. The service that owns the atomic unit decides
when the transaction ends.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter import crud
from voicemeter.models.metering_config import TenantMeteringConfig
from voicemeter.models.usage_period import UsagePeriod
from voicemeter.models.usage_transaction import UsageTransaction
from voicemeter.schemas.metering_config import MeteringConfigCreate


class MeteringConfigRepositoryProtocol(Protocol):
    """Data access for tenant metering configuration."""

    async def get_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID
    ) -> Optional[TenantMeteringConfig]:
        """Get a tenant's config."""
        ...

    async def create_if_absent(
        self, db: AsyncSession, *, obj_in: MeteringConfigCreate
    ) -> TenantMeteringConfig:
        """Insert the config unless present; return the stored row."""
        ...

    async def update(
        self, db: AsyncSession, *, db_obj: TenantMeteringConfig, values: dict[str, Any]
    ) -> TenantMeteringConfig:
        """Apply field updates."""
        ...

    async def get_by_external_customer(
        self, db: AsyncSession, *, customer_id: str
    ) -> Optional[TenantMeteringConfig]:
        """Find a config by payment-provider customer reference."""
        ...

    async def get_by_external_subscription(
        self, db: AsyncSession, *, subscription_id: str
    ) -> Optional[TenantMeteringConfig]:
        """Find a config by payment-provider subscription reference."""
        ...


class UsagePeriodRepositoryProtocol(Protocol):
    """Data access for the usage period ledger."""

    async def get(self, db: AsyncSession, *, period_id: UUID) -> Optional[UsagePeriod]:
        """Get a period by id."""
        ...

    async def get_current(self, db: AsyncSession, *, tenant_id: UUID) -> Optional[UsagePeriod]:
        """Get the current period without locking."""
        ...

    async def get_current_for_update(
        self, db: AsyncSession, *, tenant_id: UUID
    ) -> Optional[UsagePeriod]:
        """Lock the current period until the transaction ends."""
        ...

    async def create_current_if_absent(
        self, db: AsyncSession, *, tenant_id: UUID, period_start: datetime, period_end: datetime
    ) -> bool:
        """Open a current period unless one exists. True when created."""
        ...

    async def update(
        self, db: AsyncSession, *, db_obj: UsagePeriod, values: dict[str, Any]
    ) -> UsagePeriod:
        """Apply field updates to a (locked) period."""
        ...

    async def list_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, limit: int, offset: int
    ) -> Sequence[UsagePeriod]:
        """Periods newest first."""
        ...

    async def count_by_tenant(self, db: AsyncSession, *, tenant_id: UUID) -> int:
        """Number of periods."""
        ...

    async def get_due_for_rollover(
        self, db: AsyncSession, *, now: datetime
    ) -> Sequence[UsagePeriod]:
        """Current periods whose end has passed."""
        ...

    async def get_unbilled_overage(
        self, db: AsyncSession, *, now: datetime
    ) -> Sequence[tuple[UsagePeriod, TenantMeteringConfig]]:
        """Closed periods with unbilled ``charge`` overage, paired with their tenant config."""
        ...

    async def mark_billed(
        self,
        db: AsyncSession,
        *,
        period_id: UUID,
        billed_reference: str,
        idempotency_key: str,
        billed_at: datetime,
    ) -> bool:
        """Flag a period billed. False if it already was."""
        ...

    async def get_by_idempotency_key(
        self, db: AsyncSession, *, idempotency_key: str
    ) -> Optional[UsagePeriod]:
        """Find the period billed under a key."""
        ...


class UsageTransactionRepositoryProtocol(Protocol):
    """Data access for the append-only transaction log."""

    async def get_by_call_reference(
        self, db: AsyncSession, *, tenant_id: UUID, call_reference: str
    ) -> Optional[UsageTransaction]:
        """Find the transaction for a unit-of-work reference."""
        ...

    async def add(self, db: AsyncSession, *, obj: UsageTransaction) -> UsageTransaction:
        """Append a transaction."""
        ...

    async def list_by_tenant(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        limit: int,
        offset: int,
        period_id: Optional[UUID] = None,
    ) -> Sequence[UsageTransaction]:
        """Transactions newest first."""
        ...

    async def count_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, period_id: Optional[UUID] = None
    ) -> int:
        """Number of transactions."""
        ...


class MeteringConfigRepository(MeteringConfigRepositoryProtocol):
    """Delegates to the crud.metering_config singleton."""

    async def get_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID
    ) -> Optional[TenantMeteringConfig]:
        """Get a tenant's config."""
        return await crud.metering_config.get_by_tenant(db, tenant_id=tenant_id)

    async def create_if_absent(
        self, db: AsyncSession, *, obj_in: MeteringConfigCreate
    ) -> TenantMeteringConfig:
        """Insert the config unless present; return the stored row."""
        return await crud.metering_config.create_if_absent(db, obj_in=obj_in)

    async def update(
        self, db: AsyncSession, *, db_obj: TenantMeteringConfig, values: dict[str, Any]
    ) -> TenantMeteringConfig:
        """Apply field updates."""
        return await crud.metering_config.update(db, db_obj=db_obj, values=values)

    async def get_by_external_customer(
        self, db: AsyncSession, *, customer_id: str
    ) -> Optional[TenantMeteringConfig]:
        """Find a config by payment-provider customer reference."""
        return await crud.metering_config.get_by_external_customer(db, customer_id=customer_id)

    async def get_by_external_subscription(
        self, db: AsyncSession, *, subscription_id: str
    ) -> Optional[TenantMeteringConfig]:
        """Find a config by payment-provider subscription reference."""
        return await crud.metering_config.get_by_external_subscription(
            db, subscription_id=subscription_id
        )


class UsagePeriodRepository(UsagePeriodRepositoryProtocol):
    """Delegates to the crud.usage_period singleton."""

    async def get(self, db: AsyncSession, *, period_id: UUID) -> Optional[UsagePeriod]:
        """Get a period by id."""
        return await crud.usage_period.get(db, period_id)

    async def get_current(self, db: AsyncSession, *, tenant_id: UUID) -> Optional[UsagePeriod]:
        """Get the current period without locking."""
        return await crud.usage_period.get_current(db, tenant_id=tenant_id)

    async def get_current_for_update(
        self, db: AsyncSession, *, tenant_id: UUID
    ) -> Optional[UsagePeriod]:
        """Lock the current period until the transaction ends."""
        return await crud.usage_period.get_current_for_update(db, tenant_id=tenant_id)

    async def create_current_if_absent(
        self, db: AsyncSession, *, tenant_id: UUID, period_start: datetime, period_end: datetime
    ) -> bool:
        """Open a current period unless one exists. True when created."""
        return await crud.usage_period.create_current_if_absent(
            db, tenant_id=tenant_id, period_start=period_start, period_end=period_end
        )

    async def update(
        self, db: AsyncSession, *, db_obj: UsagePeriod, values: dict[str, Any]
    ) -> UsagePeriod:
        """Apply field updates to a (locked) period."""
        return await crud.usage_period.update(db, db_obj=db_obj, values=values)

    async def list_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, limit: int, offset: int
    ) -> Sequence[UsagePeriod]:
        """Periods newest first."""
        return await crud.usage_period.list_by_tenant(
            db, tenant_id=tenant_id, limit=limit, offset=offset
        )

    async def count_by_tenant(self, db: AsyncSession, *, tenant_id: UUID) -> int:
        """Number of periods."""
        return await crud.usage_period.count_by_tenant(db, tenant_id=tenant_id)

    async def get_due_for_rollover(
        self, db: AsyncSession, *, now: datetime
    ) -> Sequence[UsagePeriod]:
        """Current periods whose end has passed."""
        return await crud.usage_period.get_due_for_rollover(db, now=now)

    async def get_unbilled_overage(
        self, db: AsyncSession, *, now: datetime
    ) -> Sequence[tuple[UsagePeriod, TenantMeteringConfig]]:
        """Closed periods with unbilled ``charge`` overage, paired with their tenant config."""
        return await crud.usage_period.get_unbilled_overage(db, now=now)

    async def mark_billed(
        self,
        db: AsyncSession,
        *,
        period_id: UUID,
        billed_reference: str,
        idempotency_key: str,
        billed_at: datetime,
    ) -> bool:
        """Flag a period billed. False if it already was."""
        return await crud.usage_period.mark_billed(
            db,
            period_id=period_id,
            billed_reference=billed_reference,
            idempotency_key=idempotency_key,
            billed_at=billed_at,
        )

    async def get_by_idempotency_key(
        self, db: AsyncSession, *, idempotency_key: str
    ) -> Optional[UsagePeriod]:
        """Find the period billed under a key."""
        return await crud.usage_period.get_by_idempotency_key(db, idempotency_key=idempotency_key)


class UsageTransactionRepository(UsageTransactionRepositoryProtocol):
    """Delegates to the crud.usage_transaction singleton."""

    async def get_by_call_reference(
        self, db: AsyncSession, *, tenant_id: UUID, call_reference: str
    ) -> Optional[UsageTransaction]:
        """Find the transaction for a unit-of-work reference."""
        return await crud.usage_transaction.get_by_call_reference(
            db, tenant_id=tenant_id, call_reference=call_reference
        )

    async def add(self, db: AsyncSession, *, obj: UsageTransaction) -> UsageTransaction:
        """Append a transaction."""
        return await crud.usage_transaction.add(db, obj)

    async def list_by_tenant(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        limit: int,
        offset: int,
        period_id: Optional[UUID] = None,
    ) -> Sequence[UsageTransaction]:
        """Transactions newest first."""
        return await crud.usage_transaction.list_by_tenant(
            db, tenant_id=tenant_id, limit=limit, offset=offset, period_id=period_id
        )

    async def count_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, period_id: Optional[UUID] = None
    ) -> int:
        """Number of transactions."""
        return await crud.usage_transaction.count_by_tenant(
            db, tenant_id=tenant_id, period_id=period_id
        )
