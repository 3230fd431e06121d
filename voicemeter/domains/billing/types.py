"""Billing value types and pure helpers."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import UUID

METERED_OVERAGE_LINE_TYPE = "metered_overage"

# Subscription states that no longer entitle the tenant to the metered resource.
INACTIVE_SUBSCRIPTION_STATUSES = frozenset({"canceled", "unpaid", "incomplete_expired"})


@dataclass(frozen=True)
class BillableOverage:
    """A closed period with unbilled overage, detached from its session."""

    tenant_id: UUID
    period_id: UUID
    period_start: datetime
    period_end: datetime
    overage_minutes: int
    amount: int
    customer_id: Optional[str]


class SubscriptionAction(str, Enum):
    """What a subscription update means for metering."""

    ENABLE = "enable"
    DISABLE = "disable"
    ROLLOVER = "rollover"
    NONE = "none"


def billing_idempotency_key(tenant_id: UUID, period_id: UUID) -> str:
    """Provider idempotency key for a period's overage line item."""
    return f"overage-{tenant_id}-{period_id}"


def overage_description(minutes: int, period_start: datetime, period_end: datetime) -> str:
    """Human-readable invoice line description."""
    return (
        f"Voice minutes overage: {minutes} min "
        f"({period_start:%Y-%m-%d} to {period_end:%Y-%m-%d})"
    )


def from_unix(timestamp: Optional[int]) -> Optional[datetime]:
    """Aware UTC datetime from a provider epoch timestamp."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def is_metered_subscription(subscription: Any, metered_plans: Iterable[str]) -> bool:
    """Whether a subscription's plan includes the metered resource."""
    if getattr(subscription, "status", None) in INACTIVE_SUBSCRIPTION_STATUSES:
        return False
    metadata = getattr(subscription, "metadata", None) or {}
    return metadata.get("plan") in set(metered_plans)


def classify_subscription_update(
    *, is_metered: bool, is_active: bool, period_moved: bool
) -> SubscriptionAction:
    """Map a subscription update onto a period synchronizer operation."""
    if is_metered and not is_active:
        return SubscriptionAction.ENABLE
    if not is_metered and is_active:
        return SubscriptionAction.DISABLE
    if is_metered and period_moved:
        return SubscriptionAction.ROLLOVER
    return SubscriptionAction.NONE
