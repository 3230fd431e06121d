"""Tenant metering configuration model."""

from typing import Optional

from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from voicemeter.models._base import TenantBase


class TenantMeteringConfig(TenantBase):
    """Per-tenant allowance, overage policy, price and alert settings."""

    __tablename__ = "tenant_metering_config"

    included_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    overage_policy: Mapped[str] = mapped_column(String(20), nullable=False, default="charge")
    overage_price_per_minute: Mapped[int] = mapped_column(Integer, nullable=False, default=350)
    max_overage_charge: Mapped[int] = mapped_column(Integer, nullable=False, default=200_000)
    alert_thresholds: Mapped[list[int]] = mapped_column(
        ARRAY(Integer), nullable=False, default=lambda: [70, 85, 95, 100]
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Alert delivery preferences (read by the dispatcher, owned by the tenant admin)
    alert_channels: Mapped[list[str]] = mapped_column(
        ARRAY(String(20)), nullable=False, default=lambda: ["in_app"]
    )
    email_recipients: Mapped[Optional[list[str]]] = mapped_column(ARRAY(Text), nullable=True)
    webhook_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quiet_hours_start: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quiet_hours_end: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # External billing references
    external_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_tenant_metering_config_tenant"),
        Index("idx_metering_config_customer", "external_customer_id"),
        Index("idx_metering_config_subscription", "external_subscription_id"),
        CheckConstraint("included_minutes >= 0", name="ck_metering_config_included"),
        CheckConstraint("overage_price_per_minute >= 0", name="ck_metering_config_price"),
        CheckConstraint("max_overage_charge >= 0", name="ck_metering_config_max_charge"),
        CheckConstraint(
            "overage_policy IN ('block', 'charge', 'notify_only')",
            name="ck_metering_config_policy",
        ),
    )
