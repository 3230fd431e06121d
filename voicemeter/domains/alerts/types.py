"""Alert content rendering and delivery rules.

Pure functions: severity per threshold, human-readable title and message,
and the quiet-hours window check.
"""

from dataclasses import dataclass
from typing import Optional

from voicemeter.schemas.alert import AlertSeverity
from voicemeter.schemas.metering_config import OveragePolicy

IN_APP_CHANNEL = "in_app"


@dataclass(frozen=True)
class AlertContent:
    """Rendered alert text."""

    severity: AlertSeverity
    title: str
    message: str


def severity_for(threshold: int) -> AlertSeverity:
    """Map a usage threshold to its severity."""
    if threshold >= 100:
        return AlertSeverity.CRITICAL
    if threshold >= 85:
        return AlertSeverity.WARNING
    return AlertSeverity.INFO


def format_money(amount: int, currency: str) -> str:
    """Format minor units, e.g. ``350`` -> ``$3.50 MXN``."""
    return f"${amount / 100:,.2f} {currency.upper()}"


def _title_for(threshold: int) -> str:
    if threshold >= 100:
        return "Included voice minutes used up"
    if threshold >= 95:
        return "Voice minutes almost used up"
    if threshold >= 85:
        return "Approaching your voice minute allowance"
    return "Voice minute usage update"


def _policy_consequence(
    policy: OveragePolicy,
    *,
    exhausted: bool,
    overage_price_per_minute: int,
    max_overage_charge: int,
    currency: str,
) -> str:
    price = format_money(overage_price_per_minute, currency)
    if policy == OveragePolicy.CHARGE:
        if exhausted:
            return f"Additional minutes are billed at {price} per minute."
        return f"After that, additional minutes are billed at {price} per minute."
    if policy == OveragePolicy.BLOCK:
        cap = format_money(max_overage_charge, currency)
        return (
            f"Additional minutes are billed at {price} per minute, and new calls "
            f"will be blocked once overage charges exceed {cap}."
        )
    return "Calls will continue and no additional charges apply."


def build_alert_content(
    threshold: int,
    *,
    usage_percent: float,
    included_minutes: int,
    included_minutes_used: int,
    overage_minutes_used: int,
    overage_charges: int,
    policy: OveragePolicy,
    overage_price_per_minute: int,
    max_overage_charge: int,
    currency: str,
) -> AlertContent:
    """Render the title and message for a crossed threshold.

    The message always states current usage, remaining allowance and what
    the tenant's overage policy does next.
    """
    remaining = max(0, included_minutes - included_minutes_used)
    exhausted = remaining == 0
    consequence = _policy_consequence(
        policy,
        exhausted=exhausted,
        overage_price_per_minute=overage_price_per_minute,
        max_overage_charge=max_overage_charge,
        currency=currency,
    )

    if exhausted:
        message = f"You have used all {included_minutes} included voice minutes."
        if overage_minutes_used > 0:
            message += (
                f" {overage_minutes_used} additional minutes so far "
                f"({format_money(overage_charges, currency)})."
            )
    else:
        message = (
            f"You have used {usage_percent:.0f}% of your voice minutes "
            f"({included_minutes_used} of {included_minutes}). "
            f"{remaining} included minutes remain."
        )

    return AlertContent(
        severity=severity_for(threshold),
        title=_title_for(threshold),
        message=f"{message} {consequence}",
    )


def is_quiet_hour(hour: int, start: Optional[int], end: Optional[int]) -> bool:
    """Whether ``hour`` (UTC) falls inside the quiet window [start, end).

    The window may wrap midnight (e.g. 22 -> 7). Unset or empty windows are
    never quiet.
    """
    if start is None or end is None or start == end:
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end
