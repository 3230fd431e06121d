"""Metering domain exceptions."""

from typing import Optional
from uuid import UUID

from voicemeter.core.exceptions import InvalidStateError, NotFoundException, VoiceMeterException


class InvalidUsageAmountError(VoiceMeterException):
    """Recorded usage was zero or negative. A caller bug, never a silent no-op."""

    code = "invalid_usage_amount"

    def __init__(self, amount: int, message: Optional[str] = None) -> None:
        """Initialize with the rejected amount."""
        self.amount = amount
        super().__init__(message or f"Usage amount must be greater than zero, got {amount}")


class MeteringDisabledError(InvalidStateError):
    """Usage was recorded for a tenant whose plan does not include metered minutes."""

    code = "metering_disabled"

    def __init__(self, tenant_id: UUID, message: Optional[str] = None) -> None:
        """Initialize with the tenant."""
        self.tenant_id = tenant_id
        super().__init__(message or f"Metering is not active for tenant {tenant_id}")


class UsagePeriodNotFoundError(NotFoundException):
    """A tenant has no current usage period."""

    code = "usage_period_not_found"

    def __init__(self, tenant_id: UUID) -> None:
        """Initialize with the tenant."""
        self.tenant_id = tenant_id
        super().__init__(f"No current usage period for tenant {tenant_id}")


class MeteringConfigNotFoundError(NotFoundException):
    """A tenant has no metering configuration."""

    code = "metering_config_not_found"

    def __init__(self, tenant_id: UUID) -> None:
        """Initialize with the tenant."""
        self.tenant_id = tenant_id
        super().__init__(f"No metering configuration for tenant {tenant_id}")


class InvalidMeteringConfigError(VoiceMeterException):
    """A configuration change was rejected (negative limits, bad thresholds)."""

    code = "invalid_metering_config"
    default_message = "Invalid metering configuration"


class UsageRecordingError(VoiceMeterException):
    """Usage could not be persisted.

    The unit of work is unrecorded. Callers must retry with the same
    call reference; the retry is idempotent.
    """

    code = "usage_recording_failed"

    def __init__(self, tenant_id: UUID, call_reference: str, message: Optional[str] = None):
        """Initialize with the tenant and the unrecorded call reference."""
        self.tenant_id = tenant_id
        self.call_reference = call_reference
        super().__init__(message or f"Failed to record usage for call {call_reference}")
