"""API endpoints for usage alerts."""

from uuid import UUID

from fastapi import APIRouter, Query

from voicemeter import schemas
from voicemeter.api.deps import Inject
from voicemeter.domains.alerts.protocols import AlertServiceProtocol

router = APIRouter()


@router.get("/{tenant_id}", response_model=schemas.Page[schemas.UsageAlert])
async def list_alerts(
    tenant_id: UUID,
    unacknowledged_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    alerts: AlertServiceProtocol = Inject(AlertServiceProtocol),
) -> schemas.Page[schemas.UsageAlert]:
    """Alerts newest first."""
    return await alerts.list_alerts(
        tenant_id, unacknowledged_only=unacknowledged_only, limit=limit, offset=offset
    )


@router.get("/{tenant_id}/unacknowledged-count", response_model=schemas.UnacknowledgedCount)
async def count_unacknowledged(
    tenant_id: UUID,
    alerts: AlertServiceProtocol = Inject(AlertServiceProtocol),
) -> schemas.UnacknowledgedCount:
    """Number of alerts awaiting acknowledgement, for notification badges."""
    return schemas.UnacknowledgedCount(count=await alerts.count_unacknowledged(tenant_id))


@router.post("/{tenant_id}/{alert_id}/acknowledge", response_model=schemas.UsageAlert)
async def acknowledge_alert(
    tenant_id: UUID,
    alert_id: UUID,
    request: schemas.AcknowledgeAlertRequest,
    alerts: AlertServiceProtocol = Inject(AlertServiceProtocol),
) -> schemas.UsageAlert:
    """Mark an alert acknowledged."""
    return await alerts.acknowledge(tenant_id, alert_id, request.acknowledged_by)
