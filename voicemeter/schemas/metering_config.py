"""Tenant metering configuration schemas."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class OveragePolicy(str, Enum):
    """What happens once the included allowance is exhausted."""

    BLOCK = "block"
    CHARGE = "charge"
    NOTIFY_ONLY = "notify_only"


class AlertChannelName(str, Enum):
    """Delivery channels for threshold alerts."""

    IN_APP = "in_app"
    EMAIL = "email"
    MESSAGING = "messaging"
    WEBHOOK = "webhook"


def _normalize_thresholds(value: Optional[List[int]]) -> Optional[List[int]]:
    if value is None:
        return None
    for threshold in value:
        if threshold < 0 or threshold > 100:
            raise ValueError(f"Alert threshold {threshold} must be a percentage in [0, 100]")
    return sorted(set(value))


def _validate_hour(value: Optional[int]) -> Optional[int]:
    if value is not None and not 0 <= value <= 23:
        raise ValueError("Quiet hours must be an hour of day in [0, 23]")
    return value


class MeteringConfigBase(BaseModel):
    """Fields shared by config creation and responses."""

    included_minutes: int = Field(200, ge=0, description="Allowance consumed before overage")
    overage_policy: OveragePolicy = Field(OveragePolicy.CHARGE)
    overage_price_per_minute: int = Field(
        350, ge=0, description="Overage price per minute in monetary minor units"
    )
    max_overage_charge: int = Field(
        200_000, ge=0, description="Overage charge cap in minor units (enforced by 'block')"
    )
    alert_thresholds: List[int] = Field(default_factory=lambda: [70, 85, 95, 100])
    alert_channels: List[AlertChannelName] = Field(
        default_factory=lambda: [AlertChannelName.IN_APP]
    )
    email_recipients: Optional[List[str]] = None
    webhook_url: Optional[str] = None
    quiet_hours_start: Optional[int] = None
    quiet_hours_end: Optional[int] = None
    external_customer_id: Optional[str] = None
    external_subscription_id: Optional[str] = None

    @field_validator("alert_thresholds")
    @classmethod
    def check_thresholds(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return _normalize_thresholds(v)

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def check_quiet_hours(cls, v: Optional[int]) -> Optional[int]:
        return _validate_hour(v)


class MeteringConfigCreate(MeteringConfigBase):
    """Schema for creating a tenant config."""

    tenant_id: UUID
    is_active: bool = False


class MeteringConfigUpdate(BaseModel):
    """Partial update for a tenant config. Unset fields are left untouched."""

    included_minutes: Optional[int] = Field(None, ge=0)
    overage_policy: Optional[OveragePolicy] = None
    overage_price_per_minute: Optional[int] = Field(None, ge=0)
    max_overage_charge: Optional[int] = Field(None, ge=0)
    alert_thresholds: Optional[List[int]] = None
    alert_channels: Optional[List[AlertChannelName]] = None
    email_recipients: Optional[List[str]] = None
    webhook_url: Optional[str] = None
    quiet_hours_start: Optional[int] = None
    quiet_hours_end: Optional[int] = None
    external_customer_id: Optional[str] = None
    external_subscription_id: Optional[str] = None

    @field_validator("alert_thresholds")
    @classmethod
    def check_thresholds(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return _normalize_thresholds(v)

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def check_quiet_hours(cls, v: Optional[int]) -> Optional[int]:
        return _validate_hour(v)

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "MeteringConfigUpdate":
        for name in (
            "included_minutes",
            "overage_policy",
            "overage_price_per_minute",
            "max_overage_charge",
            "alert_thresholds",
            "alert_channels",
        ):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class PolicyUpdateRequest(BaseModel):
    """Request body for changing only the overage policy."""

    overage_policy: OveragePolicy


class MeteringConfig(MeteringConfigBase):
    """Complete tenant config schema."""

    id: UUID
    tenant_id: UUID
    is_active: bool
    created_at: datetime
    modified_at: datetime

    model_config = ConfigDict(from_attributes=True)
