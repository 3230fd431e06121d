"""API endpoints for overage billing.

The sweep and rollover endpoints are triggered by an external scheduler.
The webhook endpoint receives payment-provider events.
"""

from typing import Optional

from fastapi import APIRouter, Header, Request, Response

from voicemeter import schemas
from voicemeter.api.deps import Inject
from voicemeter.core.logging import logger
from voicemeter.domains.billing.protocols import BillingWebhookProtocol, OverageInvoicerProtocol
from voicemeter.domains.metering.protocols import PeriodSynchronizerProtocol

router = APIRouter()


@router.post("/sweep", response_model=schemas.SweepReport)
async def run_billing_sweep(
    invoicer: OverageInvoicerProtocol = Inject(OverageInvoicerProtocol),
) -> schemas.SweepReport:
    """Bill every closed period with unbilled overage."""
    return await invoicer.run_billing_sweep()


@router.post("/rollover", response_model=schemas.RolloverReport)
async def run_scheduled_rollover(
    period_sync: PeriodSynchronizerProtocol = Inject(PeriodSynchronizerProtocol),
) -> schemas.RolloverReport:
    """Roll over every current period whose end has passed."""
    return await period_sync.rollover_due_periods()


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    webhook: BillingWebhookProtocol = Inject(BillingWebhookProtocol),
) -> Response:
    """Handle payment-provider webhook events.

    Args:
        request: Raw HTTP request
        stripe_signature: Provider signature header
        webhook: Webhook processor (handles signature verification + processing)

    Returns:
        200 OK on success, 400 on signature error, 500 on processing error
    """
    try:
        payload = await request.body()
    except Exception:
        return Response(status_code=400)

    if not stripe_signature:
        return Response(status_code=400)

    try:
        await webhook.process_webhook(payload, stripe_signature)
        return Response(status_code=200)
    except ValueError:
        logger.warning("Rejected webhook with invalid signature")
        return Response(status_code=400)
    except Exception as e:
        logger.error(f"Webhook processing failed: {e}", exc_info=True)
        return Response(status_code=500)
