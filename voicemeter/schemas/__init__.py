"""Schemas for the voicemeter service."""

from voicemeter.schemas.alert import (
    AcknowledgeAlertRequest,
    AlertSeverity,
    UnacknowledgedCount,
    UsageAlert,
)
from voicemeter.schemas.billing import BillingResult, RolloverReport, SweepReport
from voicemeter.schemas.metering_config import (
    AlertChannelName,
    MeteringConfig,
    MeteringConfigCreate,
    MeteringConfigUpdate,
    OveragePolicy,
    PolicyUpdateRequest,
)
from voicemeter.schemas.usage import (
    Admission,
    BlockedReason,
    DenialReason,
    OveragePreview,
    Page,
    RecordResult,
    RecordUsageRequest,
    UsagePeriod,
    UsageSnapshot,
    UsageSummary,
    UsageTransaction,
)

__all__ = [
    "AcknowledgeAlertRequest",
    "Admission",
    "AlertChannelName",
    "AlertSeverity",
    "BillingResult",
    "BlockedReason",
    "DenialReason",
    "MeteringConfig",
    "MeteringConfigCreate",
    "MeteringConfigUpdate",
    "OveragePolicy",
    "OveragePreview",
    "Page",
    "PolicyUpdateRequest",
    "RecordResult",
    "RecordUsageRequest",
    "RolloverReport",
    "SweepReport",
    "UnacknowledgedCount",
    "UsageAlert",
    "UsagePeriod",
    "UsageSnapshot",
    "UsageSummary",
    "UsageTransaction",
]
