"""Append-only usage transaction log."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from voicemeter.models._base import TenantBase


class UsageTransaction(TenantBase):
    """One metering event. Written in the same transaction as the period update."""

    __tablename__ = "usage_transaction"

    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("usage_period.id", ondelete="CASCADE", name="fk_usage_transaction_period_id"),
        nullable=False,
    )
    call_reference: Mapped[str] = mapped_column(String(255), nullable=False)
    seconds_used: Mapped[int] = mapped_column(Integer, nullable=False)
    minutes_billed: Mapped[int] = mapped_column(Integer, nullable=False)
    included_portion: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overage_portion: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    charge_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_overage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # policy in force when recorded; only "charge" overage is invoiced
    overage_policy: Mapped[str] = mapped_column(String(20), nullable=False, default="charge")
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    billed_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    call_metadata: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "call_reference", name="uq_usage_transaction_call_ref"),
        Index("idx_usage_transaction_period", "period_id"),
        Index("idx_usage_transaction_tenant_recorded", "tenant_id", "recorded_at"),
        CheckConstraint("seconds_used > 0", name="ck_usage_transaction_seconds"),
        CheckConstraint(
            "included_portion + overage_portion = minutes_billed",
            name="ck_usage_transaction_portions",
        ),
    )
