"""Fake alert dispatcher for testing subscribers."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from voicemeter.domains.alerts.protocols import AlertDispatcherProtocol
from voicemeter.schemas.alert import UsageAlert


class FakeAlertDispatcher(AlertDispatcherProtocol):
    """Records dispatch calls; optionally raises."""

    def __init__(self, should_raise: Optional[Exception] = None) -> None:
        """Initialize with optional error injection."""
        self.dispatched: list[tuple[UUID, UUID, int]] = []
        self._should_raise = should_raise

    async def dispatch(
        self,
        tenant_id: UUID,
        period_id: UUID,
        threshold: int,
        now: Optional[datetime] = None,
    ) -> Optional[UsageAlert]:
        """Record the call."""
        if self._should_raise:
            raise self._should_raise
        self.dispatched.append((tenant_id, period_id, threshold))
        return None
