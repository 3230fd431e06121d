"""Overage billing schemas: sweep and rollover reports."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BillingResult(BaseModel):
    """Outcome of billing one closed period."""

    tenant_id: UUID
    period_id: UUID
    success: bool
    recovered: bool = False
    invoice_item_id: Optional[str] = None
    amount: int = 0
    overage_minutes: int = 0
    attempts: int = 0
    error: Optional[str] = None
    permanent: bool = False


class SweepReport(BaseModel):
    """Summary emitted by one billing sweep run."""

    processed_at: datetime
    tenants_processed: int = 0
    tenants_billed: int = 0
    tenants_recovered: int = 0
    tenants_failed: int = 0
    total_overage_minutes: int = 0
    total_amount: int = 0
    results: List[BillingResult] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    duration_ms: int = 0


class RolloverReport(BaseModel):
    """Summary of a scheduled period rollover run."""

    processed_at: datetime
    periods_rolled_over: int = 0
    tenant_ids: List[UUID] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
