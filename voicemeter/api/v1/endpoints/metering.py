"""API endpoints for usage metering.

Admission checks, usage recording, configuration and read-side views over a
tenant's voice minute usage. Business logic lives in the metering domain.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Query

from voicemeter import schemas
from voicemeter.api.deps import Inject
from voicemeter.domains.metering.protocols import (
    MeteringConfigServiceProtocol,
    MeteringGateProtocol,
    MeteringQueryServiceProtocol,
    PeriodSynchronizerProtocol,
    UsageRecorderProtocol,
)

router = APIRouter()


@router.get("/{tenant_id}/admission", response_model=schemas.Admission)
async def check_admission(
    tenant_id: UUID,
    gate: MeteringGateProtocol = Inject(MeteringGateProtocol),
) -> schemas.Admission:
    """Decide whether the tenant may start a new call.

    Denials are returned with 200 and ``allowed=false`` so callers can read
    the reason.
    """
    return await gate.check_limit(tenant_id)


@router.post("/{tenant_id}/usage", response_model=schemas.RecordResult)
async def record_usage(
    tenant_id: UUID,
    request: schemas.RecordUsageRequest,
    recorder: UsageRecorderProtocol = Inject(UsageRecorderProtocol),
) -> schemas.RecordResult:
    """Record the duration of a completed call.

    Idempotent on ``call_reference``: a replay returns the original result.
    """
    return await recorder.record_usage(
        tenant_id,
        request.call_reference,
        request.seconds_used,
        call_metadata=request.call_metadata,
    )


@router.get("/{tenant_id}/summary", response_model=schemas.UsageSummary)
async def get_summary(
    tenant_id: UUID,
    queries: MeteringQueryServiceProtocol = Inject(MeteringQueryServiceProtocol),
) -> schemas.UsageSummary:
    """Current-period usage for dashboards."""
    return await queries.get_summary(tenant_id)


@router.get("/{tenant_id}/config", response_model=schemas.MeteringConfig)
async def get_config(
    tenant_id: UUID,
    config_service: MeteringConfigServiceProtocol = Inject(MeteringConfigServiceProtocol),
) -> schemas.MeteringConfig:
    """Get the tenant's limits, creating them from defaults if missing."""
    return await config_service.get_or_create_config(tenant_id)


@router.patch("/{tenant_id}/config", response_model=schemas.MeteringConfig)
async def update_config(
    tenant_id: UUID,
    update: schemas.MeteringConfigUpdate,
    config_service: MeteringConfigServiceProtocol = Inject(MeteringConfigServiceProtocol),
) -> schemas.MeteringConfig:
    """Partially update the tenant's limits."""
    return await config_service.update_config(tenant_id, update)


@router.put("/{tenant_id}/config/policy", response_model=schemas.MeteringConfig)
async def update_policy(
    tenant_id: UUID,
    request: schemas.PolicyUpdateRequest,
    config_service: MeteringConfigServiceProtocol = Inject(MeteringConfigServiceProtocol),
) -> schemas.MeteringConfig:
    """Change only the overage policy."""
    return await config_service.update_policy(tenant_id, request.overage_policy)


@router.post("/{tenant_id}/enable", response_model=schemas.UsagePeriod)
async def enable_metering(
    tenant_id: UUID,
    config: Optional[schemas.MeteringConfigUpdate] = Body(None),
    period_sync: PeriodSynchronizerProtocol = Inject(PeriodSynchronizerProtocol),
) -> schemas.UsagePeriod:
    """Activate metering and open a period if none is current."""
    return await period_sync.enable(tenant_id, config)


@router.post("/{tenant_id}/disable", response_model=schemas.MeteringConfig)
async def disable_metering(
    tenant_id: UUID,
    period_sync: PeriodSynchronizerProtocol = Inject(PeriodSynchronizerProtocol),
    config_service: MeteringConfigServiceProtocol = Inject(MeteringConfigServiceProtocol),
) -> schemas.MeteringConfig:
    """Deactivate metering and retire the current period."""
    await period_sync.disable(tenant_id)
    return await config_service.get_config(tenant_id)


@router.get(
    "/{tenant_id}/transactions", response_model=schemas.Page[schemas.UsageTransaction]
)
async def list_transactions(
    tenant_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    period_id: Optional[UUID] = Query(None),
    queries: MeteringQueryServiceProtocol = Inject(MeteringQueryServiceProtocol),
) -> schemas.Page[schemas.UsageTransaction]:
    """Recorded calls, newest first."""
    return await queries.list_transactions(
        tenant_id, limit=limit, offset=offset, period_id=period_id
    )


@router.get("/{tenant_id}/periods", response_model=schemas.Page[schemas.UsagePeriod])
async def list_periods(
    tenant_id: UUID,
    limit: int = Query(12, ge=1, le=120),
    offset: int = Query(0, ge=0),
    queries: MeteringQueryServiceProtocol = Inject(MeteringQueryServiceProtocol),
) -> schemas.Page[schemas.UsagePeriod]:
    """Billing history, newest first."""
    return await queries.list_periods(tenant_id, limit=limit, offset=offset)


@router.get("/{tenant_id}/preview", response_model=schemas.OveragePreview)
async def preview_overage(
    tenant_id: UUID,
    queries: MeteringQueryServiceProtocol = Inject(MeteringQueryServiceProtocol),
) -> schemas.OveragePreview:
    """Current overage and its projection to the end of the period."""
    return await queries.preview(tenant_id)
