"""Usage alert repository wrapping the crud singleton.

Never commits. The dispatcher and the alert service own their sessions.
"""

from typing import Any, Optional, Protocol, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter import crud
from voicemeter.models.usage_alert import UsageAlert


class UsageAlertRepositoryProtocol(Protocol):
    """Data access for threshold alerts."""

    async def create_if_absent(
        self, db: AsyncSession, *, values: dict[str, Any]
    ) -> Optional[UsageAlert]:
        """Insert unless (tenant, period, threshold) exists. None when it did."""
        ...

    async def set_sent_via(self, db: AsyncSession, *, alert_id: UUID, channels: list[str]) -> None:
        """Record the channels that delivered the alert."""
        ...

    async def get_for_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, alert_id: UUID
    ) -> Optional[UsageAlert]:
        """Get an alert scoped to its tenant."""
        ...

    async def list_by_tenant(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        unacknowledged_only: bool,
        limit: int,
        offset: int,
    ) -> Sequence[UsageAlert]:
        """Alerts newest first."""
        ...

    async def count_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, unacknowledged_only: bool
    ) -> int:
        """Number of alerts."""
        ...

    async def update(
        self, db: AsyncSession, *, db_obj: UsageAlert, values: dict[str, Any]
    ) -> UsageAlert:
        """Apply field updates."""
        ...


class UsageAlertRepository(UsageAlertRepositoryProtocol):
    """Delegates to the crud.usage_alert singleton."""

    async def create_if_absent(
        self, db: AsyncSession, *, values: dict[str, Any]
    ) -> Optional[UsageAlert]:
        """Insert unless (tenant, period, threshold) exists. None when it did."""
        return await crud.usage_alert.create_if_absent(db, values=values)

    async def set_sent_via(self, db: AsyncSession, *, alert_id: UUID, channels: list[str]) -> None:
        """Record the channels that delivered the alert."""
        await crud.usage_alert.set_sent_via(db, alert_id=alert_id, channels=channels)

    async def get_for_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, alert_id: UUID
    ) -> Optional[UsageAlert]:
        """Get an alert scoped to its tenant."""
        return await crud.usage_alert.get_for_tenant(db, tenant_id=tenant_id, alert_id=alert_id)

    async def list_by_tenant(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        unacknowledged_only: bool,
        limit: int,
        offset: int,
    ) -> Sequence[UsageAlert]:
        """Alerts newest first."""
        return await crud.usage_alert.list_by_tenant(
            db,
            tenant_id=tenant_id,
            unacknowledged_only=unacknowledged_only,
            limit=limit,
            offset=offset,
        )

    async def count_by_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, unacknowledged_only: bool
    ) -> int:
        """Number of alerts."""
        return await crud.usage_alert.count_by_tenant(
            db, tenant_id=tenant_id, unacknowledged_only=unacknowledged_only
        )

    async def update(
        self, db: AsyncSession, *, db_obj: UsageAlert, values: dict[str, Any]
    ) -> UsageAlert:
        """Apply field updates."""
        return await crud.usage_alert.update(db, db_obj=db_obj, values=values)
