"""Pure metering logic: allocation, thresholds, blocking and period bounds.

Nothing here touches storage. Services feed row values in and persist
what comes out, so every rule below is unit-testable on its own.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from voicemeter.schemas.metering_config import OveragePolicy
from voicemeter.schemas.usage import BlockedReason, UsageSnapshot

SECONDS_PER_MINUTE = 60


@dataclass(frozen=True)
class MeteringDefaults:
    """Values applied when a tenant config is created lazily."""

    included_minutes: int = 200
    overage_price_per_minute: int = 350
    overage_policy: OveragePolicy = OveragePolicy.CHARGE
    max_overage_charge: int = 200_000
    alert_thresholds: tuple[int, ...] = (70, 85, 95, 100)
    auto_activate: bool = False

    @classmethod
    def from_settings(cls, settings: Any) -> "MeteringDefaults":
        """Build from application settings."""
        return cls(
            included_minutes=settings.METERING_DEFAULT_INCLUDED_MINUTES,
            overage_price_per_minute=settings.METERING_DEFAULT_OVERAGE_PRICE,
            overage_policy=OveragePolicy(settings.METERING_DEFAULT_POLICY),
            max_overage_charge=settings.METERING_DEFAULT_MAX_OVERAGE_CHARGE,
            alert_thresholds=tuple(settings.METERING_DEFAULT_ALERT_THRESHOLDS),
            auto_activate=settings.METERING_AUTO_ACTIVATE,
        )


@dataclass(frozen=True)
class Allocation:
    """How one recorded amount splits across the included and overage buckets."""

    minutes: int
    included_portion: int
    overage_portion: int
    charge_amount: int

    @property
    def is_overage(self) -> bool:
        return self.overage_portion > 0


def seconds_to_minutes(seconds: int) -> int:
    """Billable whole minutes for one unit of work (ceiling per transaction)."""
    return math.ceil(seconds / SECONDS_PER_MINUTE)


def allocate(
    minutes: int,
    *,
    included_minutes: int,
    included_minutes_used: int,
    overage_price_per_minute: int,
) -> Allocation:
    """Fill the remaining allowance first; the rest is overage at the current price."""
    remaining = max(0, included_minutes - included_minutes_used)
    included_portion = min(minutes, remaining)
    overage_portion = minutes - included_portion
    return Allocation(
        minutes=minutes,
        included_portion=included_portion,
        overage_portion=overage_portion,
        charge_amount=overage_portion * overage_price_per_minute,
    )


def usage_percent(included_minutes_used: int, included_minutes: int) -> float:
    """Share of the allowance consumed. A zero allowance counts as fully used."""
    if included_minutes <= 0:
        return 100.0
    return included_minutes_used / included_minutes * 100


def newly_crossed_thresholds(
    thresholds: Iterable[int], triggered: Iterable[int], percent: float
) -> list[int]:
    """Thresholds reached by ``percent`` that have not fired yet, ascending."""
    already = set(triggered)
    return sorted(t for t in set(thresholds) if t not in already and percent >= t)


def evaluate_block(
    policy: OveragePolicy,
    overage_charges: int,
    max_overage_charge: int,
    safety_cap: Optional[int] = None,
) -> Optional[BlockedReason]:
    """Return why the period must be blocked, or None.

    The global safety cap applies under every policy; the per-tenant cap
    only under ``block``.
    """
    if safety_cap is not None and overage_charges > safety_cap:
        return BlockedReason.SAFETY_CAP
    if policy == OveragePolicy.BLOCK and overage_charges > max_overage_charge:
        return BlockedReason.OVERAGE_CAP
    return None


def start_of_next_month(moment: datetime) -> datetime:
    """First instant of the calendar month after ``moment`` (same tzinfo)."""
    if moment.month == 12:
        return moment.replace(
            year=moment.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0
        )
    return moment.replace(month=moment.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)


def next_period_bounds(previous_end: datetime, now: datetime) -> tuple[datetime, datetime]:
    """Bounds of the period that follows one ending at ``previous_end``.

    Periods are contiguous calendar months. If several boundaries passed
    without activity, skip ahead to the month that contains ``now``.
    """
    start = previous_end
    end = start_of_next_month(start)
    while end <= now:
        start = end
        end = start_of_next_month(start)
    return start, end


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from start to end (never negative)."""
    return max(0.0, (end - start) / timedelta(days=1))


def build_snapshot(config: Any, period: Any) -> UsageSnapshot:
    """Snapshot from a config row and a period row."""
    return UsageSnapshot(
        tenant_id=period.tenant_id,
        period_id=period.id,
        period_start=period.period_start,
        period_end=period.period_end,
        policy=OveragePolicy(config.overage_policy),
        included_minutes=config.included_minutes,
        included_minutes_used=period.included_minutes_used,
        overage_minutes_used=period.overage_minutes_used,
        remaining_included=max(0, config.included_minutes - period.included_minutes_used),
        overage_charges=period.overage_charges,
        overage_price_per_minute=config.overage_price_per_minute,
        usage_percent=round(
            usage_percent(period.included_minutes_used, config.included_minutes), 2
        ),
        total_calls=period.total_calls,
        is_blocked=period.is_blocked,
        blocked_reason=period.blocked_reason,
    )
