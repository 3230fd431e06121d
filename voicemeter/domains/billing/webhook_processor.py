"""Webhook processor for payment-provider events.

Plan-change events drive the period synchronizer; invoice payment events
record payment against billed overage periods. Metering counters are never
touched here.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from uuid import UUID

from voicemeter.core.logging import ContextualLogger, logger
from voicemeter.core.protocols.payment import PaymentGatewayProtocol
from voicemeter.db import SessionFactory
from voicemeter.domains.billing.exceptions import wrap_gateway_errors
from voicemeter.domains.billing.protocols import BillingWebhookProtocol
from voicemeter.domains.billing.types import (
    METERED_OVERAGE_LINE_TYPE,
    SubscriptionAction,
    classify_subscription_update,
    from_unix,
    is_metered_subscription,
)
from voicemeter.domains.metering.protocols import PeriodSynchronizerProtocol
from voicemeter.domains.metering.repository import (
    MeteringConfigRepositoryProtocol,
    UsagePeriodRepositoryProtocol,
)
from voicemeter.schemas.metering_config import MeteringConfigUpdate


class BillingWebhookProcessor(BillingWebhookProtocol):
    """Process payment-provider webhook events for metering."""

    def __init__(
        self,
        payment_gateway: PaymentGatewayProtocol,
        config_repo: MeteringConfigRepositoryProtocol,
        period_repo: UsagePeriodRepositoryProtocol,
        period_sync: PeriodSynchronizerProtocol,
        session_factory: SessionFactory,
        metered_plans: Iterable[str] = ("growth",),
    ) -> None:
        """Initialize with all required dependencies."""
        self._payment_gateway = payment_gateway
        self._config_repo = config_repo
        self._period_repo = period_repo
        self._period_sync = period_sync
        self._session_factory = session_factory
        self._metered_plans = frozenset(metered_plans)

        # Event handler mapping
        self.handlers = {
            "customer.subscription.created": self._handle_subscription_created,
            "customer.subscription.updated": self._handle_subscription_updated,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "invoice.payment_succeeded": self._handle_invoice_paid,
            "invoice.paid": self._handle_invoice_paid,
        }

    @wrap_gateway_errors
    async def process_webhook(self, payload: bytes, signature: str) -> None:
        """Verify webhook signature and process the resulting event.

        Raises ValueError if the signature is invalid.
        """
        event = self._payment_gateway.verify_webhook_signature(payload, signature)
        await self.process_event(event)

    async def process_event(self, event: Any) -> None:
        """Process a verified provider event."""
        tenant_id = await self._resolve_tenant(event)
        log_kwargs: dict[str, str] = {"event_type": event.type, "stripe_event_id": event.id}
        if tenant_id:
            log_kwargs["tenant_id"] = str(tenant_id)
        log = logger.with_context(**log_kwargs)

        handler = self.handlers.get(event.type)
        if handler:
            try:
                log.info(f"Processing webhook event: {event.type}")
                await handler(event, tenant_id, log)
            except Exception as e:
                log.error(f"Error handling {event.type}: {e}", exc_info=True)
                raise
        else:
            log.info(f"Unhandled webhook event type: {event.type}")

    async def _resolve_tenant(self, event: Any) -> Optional[UUID]:
        """Tenant from event metadata, else by subscription or customer reference."""
        obj = event.data.object

        metadata = getattr(obj, "metadata", None) or {}
        raw = metadata.get("tenant_id")
        if raw:
            try:
                return UUID(str(raw))
            except ValueError:
                logger.warning(f"Ignoring malformed tenant_id in event metadata: {raw!r}")

        async with self._session_factory() as db:
            config = None
            if event.type.startswith("customer.subscription") and getattr(obj, "id", None):
                config = await self._config_repo.get_by_external_subscription(
                    db, subscription_id=obj.id
                )
            if config is None and getattr(obj, "customer", None):
                config = await self._config_repo.get_by_external_customer(
                    db, customer_id=obj.customer
                )
            if config is None and getattr(obj, "subscription", None):
                config = await self._config_repo.get_by_external_subscription(
                    db, subscription_id=obj.subscription
                )
        return config.tenant_id if config else None

    # Subscription lifecycle

    async def _handle_subscription_created(
        self, event: Any, tenant_id: Optional[UUID], log: ContextualLogger
    ) -> None:
        """Enable metering for a new subscription on a metered plan."""
        subscription = event.data.object
        if not tenant_id:
            log.error(f"No tenant for subscription {subscription.id}")
            return
        if not is_metered_subscription(subscription, self._metered_plans):
            log.info("Subscription plan is not metered; ignoring")
            return

        period = await self._period_sync.enable(
            tenant_id,
            self._references(subscription),
            period_start=from_unix(subscription.current_period_start),
            period_end=from_unix(subscription.current_period_end),
        )
        log.info(f"Metering enabled from subscription {subscription.id} (period {period.id})")

    async def _handle_subscription_updated(
        self, event: Any, tenant_id: Optional[UUID], log: ContextualLogger
    ) -> None:
        """Enable, disable or roll over depending on what changed."""
        subscription = event.data.object
        if not tenant_id:
            log.error(f"No tenant for subscription {subscription.id}")
            return

        async with self._session_factory() as db:
            config = await self._config_repo.get_by_tenant(db, tenant_id=tenant_id)
            is_active = bool(config and config.is_active)

        previous = getattr(event.data, "previous_attributes", None) or {}
        action = classify_subscription_update(
            is_metered=is_metered_subscription(subscription, self._metered_plans),
            is_active=is_active,
            period_moved="current_period_start" in previous,
        )
        period_start = from_unix(subscription.current_period_start)
        period_end = from_unix(subscription.current_period_end)

        if action == SubscriptionAction.ENABLE:
            await self._period_sync.enable(
                tenant_id,
                self._references(subscription),
                period_start=period_start,
                period_end=period_end,
            )
        elif action == SubscriptionAction.DISABLE:
            await self._period_sync.disable(tenant_id)
        elif action == SubscriptionAction.ROLLOVER:
            await self._period_sync.rollover(tenant_id, period_start, period_end)
        log.info(f"Subscription {subscription.id} updated: {action.value}")

    async def _handle_subscription_deleted(
        self, event: Any, tenant_id: Optional[UUID], log: ContextualLogger
    ) -> None:
        """Disable metering when the subscription ends."""
        subscription = event.data.object
        if not tenant_id:
            log.error(f"No tenant for subscription {subscription.id}")
            return
        await self._period_sync.disable(tenant_id)
        log.info(f"Metering disabled; subscription {subscription.id} deleted")

    @staticmethod
    def _references(subscription: Any) -> MeteringConfigUpdate:
        return MeteringConfigUpdate(
            external_customer_id=getattr(subscription, "customer", None),
            external_subscription_id=subscription.id,
        )

    # Payment confirmation

    async def _handle_invoice_paid(
        self, event: Any, tenant_id: Optional[UUID], log: ContextualLogger
    ) -> None:
        """Record payment on every overage period the invoice settles."""
        invoice = event.data.object
        lines = getattr(invoice, "lines", None)
        line_items = list(getattr(lines, "data", None) or [])
        if lines is not None and getattr(lines, "has_more", False):
            line_items = await self._payment_gateway.list_invoice_lines(invoice.id)

        transitions = getattr(invoice, "status_transitions", None)
        paid_at = from_unix(getattr(transitions, "paid_at", None)) or datetime.now(timezone.utc)

        matched = 0
        for line in line_items:
            metadata = getattr(line, "metadata", None) or {}
            if metadata.get("type") != METERED_OVERAGE_LINE_TYPE:
                continue
            key = metadata.get("idempotency_key")
            if not key:
                log.warning(f"Overage line {getattr(line, 'id', '?')} has no idempotency key")
                continue
            if await self._mark_paid(key, invoice.id, paid_at, log):
                matched += 1

        log.info(f"Invoice {invoice.id} paid; {matched} overage period(s) settled")

    async def _mark_paid(
        self, idempotency_key: str, invoice_id: str, paid_at: datetime, log: ContextualLogger
    ) -> bool:
        async with self._session_factory() as db:
            try:
                period = await self._period_repo.get_by_idempotency_key(
                    db, idempotency_key=idempotency_key
                )
                if period is None:
                    log.warning(f"No billed period for idempotency key {idempotency_key}")
                    return False
                if period.paid_at is not None:
                    return False
                await self._period_repo.update(
                    db,
                    db_obj=period,
                    values={"paid_at": paid_at, "invoice_reference": invoice_id},
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return True
