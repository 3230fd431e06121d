"""Usage period ledger model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from voicemeter.models._base import TenantBase


class UsagePeriod(TenantBase):
    """Running counters for one tenant over one billing cycle.

    At most one row per tenant has ``is_current = true`` (partial unique index).
    Counters are whole minutes; charges are monetary minor units. The
    ``billable_*`` counters only grow while the policy is ``charge``; they are
    what the billing sweep invoices, whatever the policy is at sweep time.
    """

    __tablename__ = "usage_period"

    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    included_minutes_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overage_minutes_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overage_charges: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    billable_overage_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    billable_charges: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_calls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    triggered_thresholds: Mapped[list[int]] = mapped_column(
        ARRAY(Integer), nullable=False, default=list
    )

    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blocked_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    blocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_billed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    billed_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    invoice_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_usage_period_current_tenant",
            "tenant_id",
            unique=True,
            postgresql_where=text("is_current"),
        ),
        Index("idx_usage_period_tenant_start", "tenant_id", "period_start"),
        Index(
            "idx_usage_period_unbilled",
            "is_billed",
            "period_end",
            postgresql_where=text("billable_overage_minutes > 0 AND NOT is_billed"),
        ),
        Index("idx_usage_period_idempotency_key", "billing_idempotency_key"),
        CheckConstraint("period_end > period_start", name="ck_usage_period_bounds"),
        CheckConstraint("included_minutes_used >= 0", name="ck_usage_period_included"),
        CheckConstraint("overage_minutes_used >= 0", name="ck_usage_period_overage"),
        CheckConstraint("overage_charges >= 0", name="ck_usage_period_charges"),
        CheckConstraint(
            "billable_overage_minutes BETWEEN 0 AND overage_minutes_used",
            name="ck_usage_period_billable_minutes",
        ),
        CheckConstraint(
            "billable_charges BETWEEN 0 AND overage_charges",
            name="ck_usage_period_billable_charges",
        ),
    )
