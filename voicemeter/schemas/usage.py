"""Usage metering schemas: snapshots, admission decisions, recording results, history."""

from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from voicemeter.schemas.metering_config import OveragePolicy

T = TypeVar("T")


class DenialReason(str, Enum):
    """Why an admission check denied a new unit of work.

    The three values need different remediation, so callers must be able to
    tell them apart.
    """

    METERING_DISABLED = "metering_disabled"
    BLOCKED = "blocked"
    INFRASTRUCTURE_ERROR = "infrastructure_error"


class BlockedReason(str, Enum):
    """Why a usage period was blocked."""

    OVERAGE_CAP = "overage_cap_exceeded"
    SAFETY_CAP = "global_safety_cap_exceeded"


class UsageSnapshot(BaseModel):
    """Point-in-time view of a tenant's current period."""

    tenant_id: UUID
    period_id: UUID
    period_start: datetime
    period_end: datetime
    policy: OveragePolicy
    included_minutes: int
    included_minutes_used: int
    overage_minutes_used: int
    remaining_included: int
    overage_charges: int
    overage_price_per_minute: int
    usage_percent: float
    total_calls: int
    is_blocked: bool
    blocked_reason: Optional[str] = None


class Admission(BaseModel):
    """Result of a pre-use admission check."""

    allowed: bool
    reason: Optional[DenialReason] = None
    error_code: Optional[str] = None
    snapshot: Optional[UsageSnapshot] = None


class RecordUsageRequest(BaseModel):
    """Request body for recording consumption of one unit of work."""

    call_reference: str = Field(..., min_length=1, max_length=255)
    seconds_used: int = Field(..., description="Seconds consumed; must be > 0")
    call_metadata: Optional[dict] = None


class RecordResult(BaseModel):
    """Outcome of a recording call."""

    success: bool
    transaction_id: UUID
    duplicate: bool = False
    minutes_recorded: int
    included_portion: int
    overage_portion: int
    charge_amount: int
    new_thresholds: List[int] = Field(default_factory=list)
    is_blocked: bool
    snapshot: UsageSnapshot


class UsageSummary(UsageSnapshot):
    """Snapshot enriched for dashboards."""

    days_remaining: int
    is_at_limit: bool


class UsagePeriod(BaseModel):
    """Historical view of one billing period."""

    id: UUID
    tenant_id: UUID
    period_start: datetime
    period_end: datetime
    included_minutes_used: int
    overage_minutes_used: int
    overage_charges: int
    billable_overage_minutes: int = Field(0, description="Overage minutes accrued under charge")
    billable_charges: int = Field(0, description="Amount the billing sweep invoices")
    total_calls: int
    is_current: bool
    is_blocked: bool
    is_billed: bool
    billed_reference: Optional[str] = None
    invoice_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_minutes_used(self) -> int:
        """Included plus overage minutes."""
        return self.included_minutes_used + self.overage_minutes_used


class UsageTransaction(BaseModel):
    """One recorded metering event."""

    id: UUID
    tenant_id: UUID
    period_id: UUID
    call_reference: str
    seconds_used: int
    minutes_billed: int
    included_portion: int
    overage_portion: int
    charge_amount: int
    is_overage: bool
    overage_policy: OveragePolicy = OveragePolicy.CHARGE
    recorded_at: datetime
    billed_reference: Optional[str] = None
    call_metadata: Optional[dict] = None

    model_config = ConfigDict(from_attributes=True)


class Page(BaseModel, Generic[T]):
    """Offset-paginated list."""

    items: List[T]
    total: int
    limit: int
    offset: int


class OveragePreview(BaseModel):
    """Current-period overage with a linear end-of-period projection."""

    tenant_id: UUID
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    current_overage_minutes: int
    current_overage_charges: int
    overage_price_per_minute: int
    days_elapsed: float
    days_total: float
    projected_overage_minutes: int
    projected_overage_charges: int
    will_be_billed: bool
