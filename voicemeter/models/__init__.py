"""Models for the voicemeter service."""

from voicemeter.models._base import Base
from voicemeter.models.metering_config import TenantMeteringConfig
from voicemeter.models.usage_alert import UsageAlert
from voicemeter.models.usage_period import UsagePeriod
from voicemeter.models.usage_transaction import UsageTransaction

__all__ = [
    "Base",
    "TenantMeteringConfig",
    "UsageAlert",
    "UsagePeriod",
    "UsageTransaction",
]
