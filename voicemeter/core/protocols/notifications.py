"""Alert channel protocol.

One implementation per outbound delivery channel (email, messaging, webhook).
The in-app channel is the persisted alert row and has no adapter.
"""

from typing import List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel


class AlertNotification(BaseModel):
    """Rendered alert handed to a delivery channel."""

    tenant_id: str
    alert_id: str
    threshold: int
    severity: str
    title: str
    message: str
    action_url: Optional[str] = None
    email_recipients: List[str] = []
    webhook_url: Optional[str] = None


@runtime_checkable
class AlertChannel(Protocol):
    """Delivers a rendered alert over one channel."""

    @property
    def name(self) -> str:
        """Channel name as stored in ``alert_channels`` and ``sent_via``."""
        ...

    async def send(self, notification: AlertNotification) -> None:
        """Deliver the alert. Raises on failure."""
        ...
