"""Container Factory.

All construction logic lives here. The factory reads settings and builds
the container with environment-appropriate implementations.

Design principles:
- Single place for all wiring decisions
- Environment-aware: Stripe only when enabled
- Fail fast: broken wiring crashes at startup, not at 3am
- Testable: can unit test factory logic with mock settings
"""

from typing import Mapping, Optional

from voicemeter.adapters.event_bus.in_memory import InMemoryEventBus
from voicemeter.adapters.notifications.null import LoggingAlertChannel
from voicemeter.adapters.notifications.webhook import HttpWebhookAlertChannel
from voicemeter.core.config import Settings
from voicemeter.core.container.container import Container
from voicemeter.core.logging import logger
from voicemeter.core.protocols import AlertChannel, EventBus, PaymentGatewayProtocol
from voicemeter.db import SessionFactory
from voicemeter.domains.alerts.dispatcher import AlertDispatcher
from voicemeter.domains.alerts.repository import UsageAlertRepository
from voicemeter.domains.alerts.service import AlertService
from voicemeter.domains.alerts.subscribers.threshold_listener import ThresholdAlertSubscriber
from voicemeter.domains.billing.invoicer import OverageInvoicer
from voicemeter.domains.billing.retry import RetryPolicy
from voicemeter.domains.billing.webhook_processor import BillingWebhookProcessor
from voicemeter.domains.metering.config_service import MeteringConfigService
from voicemeter.domains.metering.gate import MeteringGate
from voicemeter.domains.metering.period_sync import PeriodSynchronizer
from voicemeter.domains.metering.queries import MeteringQueryService
from voicemeter.domains.metering.recorder import UsageRecorder
from voicemeter.domains.metering.repository import (
    MeteringConfigRepository,
    UsagePeriodRepository,
    UsageTransactionRepository,
)
from voicemeter.domains.metering.types import MeteringDefaults


def create_container(
    settings: Settings, session_factory: Optional[SessionFactory] = None
) -> Container:
    """Build container with environment-appropriate implementations.

    This is the single source of truth for dependency wiring.

    Args:
        settings: Application settings (from core/config)
        session_factory: Session factory override; defaults to the engine-backed one

    Returns:
        Fully constructed Container ready for use
    """
    if session_factory is None:
        from voicemeter.db.session import get_db_context

        session_factory = get_db_context

    # -----------------------------------------------------------------
    # Repositories (thin wrappers around crud singletons)
    # -----------------------------------------------------------------
    config_repo = MeteringConfigRepository()
    period_repo = UsagePeriodRepository()
    transaction_repo = UsageTransactionRepository()
    alert_repo = UsageAlertRepository()

    # -----------------------------------------------------------------
    # Alerts: the dispatcher is subscribed to the bus before anything
    # can publish on it
    # -----------------------------------------------------------------
    alert_dispatcher = AlertDispatcher(
        alert_repo=alert_repo,
        config_repo=config_repo,
        period_repo=period_repo,
        channels=_create_alert_channels(settings),
        session_factory=session_factory,
        action_url=settings.ALERT_ACTION_URL,
        currency=settings.BILLING_CURRENCY,
    )
    event_bus = _create_event_bus(alert_dispatcher)

    # -----------------------------------------------------------------
    # Metering
    # -----------------------------------------------------------------
    metering = _create_metering_services(
        settings, config_repo, period_repo, transaction_repo, event_bus, session_factory
    )

    # -----------------------------------------------------------------
    # Billing
    # -----------------------------------------------------------------
    payment_gateway = _create_payment_gateway(settings)
    overage_invoicer = OverageInvoicer(
        payment_gateway=payment_gateway,
        period_repo=period_repo,
        session_factory=session_factory,
        retry_policy=RetryPolicy.from_settings(settings),
        currency=settings.BILLING_CURRENCY,
    )
    billing_webhook = BillingWebhookProcessor(
        payment_gateway=payment_gateway,
        config_repo=config_repo,
        period_repo=period_repo,
        period_sync=metering["period_sync"],
        session_factory=session_factory,
        metered_plans=settings.METERED_PLANS,
    )

    return Container(
        event_bus=event_bus,
        payment_gateway=payment_gateway,
        metering_config=metering["metering_config"],
        metering_gate=metering["metering_gate"],
        usage_recorder=metering["usage_recorder"],
        period_sync=metering["period_sync"],
        metering_queries=metering["metering_queries"],
        alert_dispatcher=alert_dispatcher,
        alert_service=AlertService(alert_repo=alert_repo, session_factory=session_factory),
        overage_invoicer=overage_invoicer,
        billing_webhook=billing_webhook,
    )


# ---------------------------------------------------------------------------
# Private factory functions
# ---------------------------------------------------------------------------


def _create_event_bus(alert_dispatcher: AlertDispatcher) -> EventBus:
    """Create event bus with subscribers wired up.

    The event bus fans out domain events to:
    - ThresholdAlertSubscriber: persists and delivers usage alerts
    """
    bus = InMemoryEventBus()

    alert_subscriber = ThresholdAlertSubscriber(alert_dispatcher)
    for pattern in alert_subscriber.EVENT_PATTERNS:
        bus.subscribe(pattern, alert_subscriber.handle)

    return bus


def _create_alert_channels(settings: Settings) -> Mapping[str, AlertChannel]:
    """External alert channels keyed by the names tenants opt into."""
    return {
        "email": LoggingAlertChannel("email"),
        "messaging": LoggingAlertChannel("messaging"),
        "webhook": HttpWebhookAlertChannel(timeout=settings.ALERT_WEBHOOK_TIMEOUT),
    }


def _create_metering_services(
    settings: Settings,
    config_repo: MeteringConfigRepository,
    period_repo: UsagePeriodRepository,
    transaction_repo: UsageTransactionRepository,
    event_bus: EventBus,
    session_factory: SessionFactory,
) -> dict:
    """Create the metering services over shared repositories."""
    config_service = MeteringConfigService(
        config_repo=config_repo,
        period_repo=period_repo,
        session_factory=session_factory,
        defaults=MeteringDefaults.from_settings(settings),
    )
    return {
        "metering_config": config_service,
        "metering_gate": MeteringGate(
            config_service=config_service,
            period_repo=period_repo,
            session_factory=session_factory,
        ),
        "usage_recorder": UsageRecorder(
            config_service=config_service,
            period_repo=period_repo,
            transaction_repo=transaction_repo,
            event_bus=event_bus,
            session_factory=session_factory,
            safety_cap=settings.METERING_GLOBAL_SAFETY_CAP,
        ),
        "period_sync": PeriodSynchronizer(
            config_service=config_service,
            period_repo=period_repo,
            session_factory=session_factory,
        ),
        "metering_queries": MeteringQueryService(
            config_service=config_service,
            config_repo=config_repo,
            period_repo=period_repo,
            transaction_repo=transaction_repo,
            session_factory=session_factory,
        ),
    }


def _create_payment_gateway(settings: Settings) -> PaymentGatewayProtocol:
    """Create payment gateway: Stripe if enabled, otherwise a null implementation."""
    if settings.STRIPE_ENABLED:
        from voicemeter.adapters.payment.stripe import StripePaymentGateway

        if not settings.STRIPE_SECRET_KEY:
            raise ValueError("STRIPE_SECRET_KEY is required when STRIPE_ENABLED is true")
        return StripePaymentGateway(
            api_key=settings.STRIPE_SECRET_KEY, webhook_secret=settings.STRIPE_WEBHOOK_SECRET
        )

    from voicemeter.adapters.payment.null import NullPaymentGateway

    logger.info("Stripe disabled; overage billing uses the null payment gateway")
    return NullPaymentGateway()
