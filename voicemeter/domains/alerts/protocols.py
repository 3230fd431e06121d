"""Alert domain service protocols.

AlertDispatcherProtocol: send one notification per crossed threshold.
AlertServiceProtocol: list and acknowledge a tenant's alerts.
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable
from uuid import UUID

from voicemeter.schemas.alert import UsageAlert
from voicemeter.schemas.usage import Page


@runtime_checkable
class AlertDispatcherProtocol(Protocol):
    """Delivers threshold alerts across a tenant's configured channels."""

    async def dispatch(
        self,
        tenant_id: UUID,
        period_id: UUID,
        threshold: int,
        now: Optional[datetime] = None,
    ) -> Optional[UsageAlert]:
        """Send the alert for ``threshold`` in ``period_id`` at most once.

        Returns the stored alert, or None when it was already sent or the
        tenant/period no longer exists.
        """
        ...


@runtime_checkable
class AlertServiceProtocol(Protocol):
    """Read and acknowledge alerts."""

    async def list_alerts(
        self,
        tenant_id: UUID,
        unacknowledged_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[UsageAlert]:
        """Alerts newest first."""
        ...

    async def count_unacknowledged(self, tenant_id: UUID) -> int:
        """Number of alerts awaiting acknowledgement."""
        ...

    async def acknowledge(
        self,
        tenant_id: UUID,
        alert_id: UUID,
        acknowledged_by: UUID,
        now: Optional[datetime] = None,
    ) -> UsageAlert:
        """Mark an alert acknowledged.

        Raises:
            AlertNotFoundError: The alert does not belong to the tenant.
        """
        ...
