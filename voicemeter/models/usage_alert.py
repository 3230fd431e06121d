"""Usage threshold alert model."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    ARRAY,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from voicemeter.models._base import TenantBase


class UsageAlert(TenantBase):
    """Record that a threshold notification was sent for a period.

    The unique key (tenant_id, period_id, threshold) is the dedup guard.
    """

    __tablename__ = "usage_alert"

    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("usage_period.id", ondelete="CASCADE", name="fk_usage_alert_period_id"),
        nullable=False,
    )
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    usage_percent: Mapped[float] = mapped_column(Float, nullable=False)
    minutes_used: Mapped[int] = mapped_column(Integer, nullable=False)
    included_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    overage_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overage_charges: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    action_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_via: Mapped[list[str]] = mapped_column(ARRAY(String(20)), nullable=False, default=list)
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    acknowledged_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "period_id", "threshold", name="uq_usage_alert_dedup"),
        Index("idx_usage_alert_tenant_ack", "tenant_id", "acknowledged", "created_at"),
    )
