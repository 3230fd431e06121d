"""Billing domain test fixtures and helpers.

Wires the invoicer and webhook processor to the metering fakes and the
fake payment gateway, plus builders for provider event shapes.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import pytest

from voicemeter.adapters.payment.fake import FakePaymentGateway, _obj
from voicemeter.domains.billing.invoicer import OverageInvoicer
from voicemeter.domains.billing.retry import RetryPolicy
from voicemeter.domains.billing.webhook_processor import BillingWebhookProcessor
from voicemeter.domains.metering.tests.conftest import MeteringHarness
from voicemeter.domains.metering.tests.conftest import _make_harness as _make_metering_harness

DEFAULT_TENANT_ID = UUID("00000000-0000-0000-0000-000000000001")
OTHER_TENANT_ID = UUID("00000000-0000-0000-0000-000000000002")
CUSTOMER_ID = "cus_test"
SUBSCRIPTION_ID = "sub_test"

JANUARY = datetime(2026, 1, 1, tzinfo=timezone.utc)
FEBRUARY = datetime(2026, 2, 1, tzinfo=timezone.utc)
MARCH = datetime(2026, 3, 1, tzinfo=timezone.utc)
SWEEP_AT = datetime(2026, 2, 2, 3, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@dataclass
class BillingHarness:
    """Billing services over metering fakes and a fake gateway."""

    metering: MeteringHarness
    gateway: FakePaymentGateway
    sleep: RecordingSleep
    invoicer: OverageInvoicer
    webhooks: BillingWebhookProcessor

    def seed_closed_period(
        self,
        tenant_id: UUID = DEFAULT_TENANT_ID,
        *,
        overage_minutes: int = 20,
        price: int = 350,
        customer_id: Optional[str] = CUSTOMER_ID,
        billable_minutes: Optional[int] = None,
        **config_overrides: Any,
    ):
        """Seed a config and a retired January period with overage.

        Unless ``billable_minutes`` says otherwise, the overage counts as
        billable exactly when the seeded policy is ``charge``.
        """
        if billable_minutes is None:
            charging = config_overrides.get("overage_policy", "charge") == "charge"
            billable_minutes = overage_minutes if charging else 0
        self.metering.config_repo.seed_config(
            tenant_id,
            overage_price_per_minute=price,
            external_customer_id=customer_id,
            external_subscription_id=SUBSCRIPTION_ID if customer_id else None,
            **config_overrides,
        )
        return self.metering.period_repo.seed_period(
            tenant_id,
            period_start=JANUARY,
            period_end=FEBRUARY,
            is_current=False,
            included_minutes_used=100,
            overage_minutes_used=overage_minutes,
            overage_charges=overage_minutes * price,
            billable_overage_minutes=billable_minutes,
            billable_charges=billable_minutes * price,
        )


def _make_harness(gateway: Optional[FakePaymentGateway] = None, max_attempts: int = 5):
    metering = _make_metering_harness()
    gateway = gateway or FakePaymentGateway()
    sleep = RecordingSleep()
    invoicer = OverageInvoicer(
        payment_gateway=gateway,
        period_repo=metering.period_repo,
        session_factory=metering.sessions,
        retry_policy=RetryPolicy(max_attempts=max_attempts, jitter=0.0, sleep=sleep),
        currency="mxn",
    )
    webhooks = BillingWebhookProcessor(
        payment_gateway=gateway,
        config_repo=metering.config_repo,
        period_repo=metering.period_repo,
        period_sync=metering.period_sync,
        session_factory=metering.sessions,
        metered_plans=["growth"],
    )
    return BillingHarness(
        metering=metering, gateway=gateway, sleep=sleep, invoicer=invoicer, webhooks=webhooks
    )


def _ts(moment: datetime) -> int:
    return int(moment.timestamp())


def _make_subscription_obj(
    *,
    plan: Optional[str] = "growth",
    tenant_id: Optional[UUID] = DEFAULT_TENANT_ID,
    status: str = "active",
    period_start: datetime = JANUARY,
    period_end: datetime = FEBRUARY,
) -> _obj:
    """Provider subscription shape."""
    metadata: dict[str, str] = {}
    if plan:
        metadata["plan"] = plan
    if tenant_id:
        metadata["tenant_id"] = str(tenant_id)
    return _obj(
        id=SUBSCRIPTION_ID,
        customer=CUSTOMER_ID,
        status=status,
        metadata=metadata,
        current_period_start=_ts(period_start),
        current_period_end=_ts(period_end),
    )


def _make_line(idempotency_key: Optional[str], line_type: str = "metered_overage") -> _obj:
    metadata = {"type": line_type}
    if idempotency_key:
        metadata["idempotency_key"] = idempotency_key
    return _obj(id=f"il_{uuid4().hex[:10]}", metadata=metadata)


def _make_invoice_obj(
    lines: list[_obj], *, has_more: bool = False, paid_at: Optional[datetime] = SWEEP_AT
) -> _obj:
    """Provider invoice shape."""
    return _obj(
        id=f"in_{uuid4().hex[:10]}",
        customer=CUSTOMER_ID,
        metadata={},
        lines=_obj(data=lines, has_more=has_more),
        status_transitions=_obj(paid_at=_ts(paid_at) if paid_at else None),
    )


def _make_event(
    event_type: str, obj: _obj, previous_attributes: Optional[dict] = None
) -> _obj:
    """Provider event envelope."""
    return _obj(
        id=f"evt_{uuid4().hex[:10]}",
        type=event_type,
        data=_obj(object=obj, previous_attributes=previous_attributes),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def harness() -> BillingHarness:
    """Billing services over empty fakes."""
    return _make_harness()
