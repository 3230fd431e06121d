"""Usage alert schemas."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AlertSeverity(str, Enum):
    """Severity of a threshold alert."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class UsageAlert(BaseModel):
    """Complete usage alert schema."""

    id: UUID
    tenant_id: UUID
    period_id: UUID
    threshold: int
    severity: AlertSeverity
    usage_percent: float
    minutes_used: int
    included_minutes: int
    overage_minutes: int
    overage_charges: int
    title: str
    message: str
    action_url: Optional[str] = None
    sent_via: List[str]
    acknowledged: bool
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AcknowledgeAlertRequest(BaseModel):
    """Request body for acknowledging an alert."""

    acknowledged_by: UUID


class UnacknowledgedCount(BaseModel):
    """Number of alerts awaiting acknowledgement."""

    count: int
