"""Alert listing and acknowledgement."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from voicemeter.core.logging import logger
from voicemeter.db import SessionFactory
from voicemeter.domains.alerts.exceptions import AlertNotFoundError
from voicemeter.domains.alerts.protocols import AlertServiceProtocol
from voicemeter.domains.alerts.repository import UsageAlertRepositoryProtocol
from voicemeter.schemas.alert import UsageAlert
from voicemeter.schemas.usage import Page


class AlertService(AlertServiceProtocol):
    """Read side of usage alerts plus acknowledgement."""

    def __init__(
        self, alert_repo: UsageAlertRepositoryProtocol, session_factory: SessionFactory
    ) -> None:
        """Initialize with the alert repository and a session factory."""
        self._alert_repo = alert_repo
        self._session_factory = session_factory

    async def list_alerts(
        self,
        tenant_id: UUID,
        unacknowledged_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[UsageAlert]:
        """Alerts newest first."""
        async with self._session_factory() as db:
            rows = await self._alert_repo.list_by_tenant(
                db,
                tenant_id=tenant_id,
                unacknowledged_only=unacknowledged_only,
                limit=limit,
                offset=offset,
            )
            total = await self._alert_repo.count_by_tenant(
                db, tenant_id=tenant_id, unacknowledged_only=unacknowledged_only
            )
        return Page[UsageAlert](
            items=[UsageAlert.model_validate(r, from_attributes=True) for r in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def count_unacknowledged(self, tenant_id: UUID) -> int:
        """Number of alerts awaiting acknowledgement."""
        async with self._session_factory() as db:
            return await self._alert_repo.count_by_tenant(
                db, tenant_id=tenant_id, unacknowledged_only=True
            )

    async def acknowledge(
        self,
        tenant_id: UUID,
        alert_id: UUID,
        acknowledged_by: UUID,
        now: Optional[datetime] = None,
    ) -> UsageAlert:
        """Mark an alert acknowledged. Acknowledging twice keeps the first acknowledgement."""
        now = now or datetime.now(timezone.utc)
        async with self._session_factory() as db:
            try:
                alert = await self._alert_repo.get_for_tenant(
                    db, tenant_id=tenant_id, alert_id=alert_id
                )
                if alert is None:
                    raise AlertNotFoundError(f"Alert {alert_id} not found")
                if not alert.acknowledged:
                    alert = await self._alert_repo.update(
                        db,
                        db_obj=alert,
                        values={
                            "acknowledged": True,
                            "acknowledged_at": now,
                            "acknowledged_by": acknowledged_by,
                        },
                    )
                    logger.with_context(tenant_id=str(tenant_id), alert_id=str(alert_id)).info(
                        "Alert acknowledged"
                    )
                result = UsageAlert.model_validate(alert, from_attributes=True)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return result
