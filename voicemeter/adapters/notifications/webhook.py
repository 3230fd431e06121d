"""HTTP webhook alert channel.

POSTs the rendered alert as JSON to the tenant's configured webhook URL.
Implements the AlertChannel protocol.
"""

from typing import Optional

import httpx

from voicemeter.core.protocols.notifications import AlertChannel, AlertNotification
from voicemeter.domains.alerts.exceptions import AlertDeliveryError


class HttpWebhookAlertChannel(AlertChannel):
    """Deliver alerts to a tenant-owned HTTP endpoint."""

    def __init__(
        self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """Initialize with the request timeout in seconds and an optional httpx transport."""
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        """Channel name."""
        return "webhook"

    async def send(self, notification: AlertNotification) -> None:
        """POST the alert payload.

        Raises:
            AlertDeliveryError: No URL configured, the endpoint is unreachable,
                or it answered with a non-2xx status.
        """
        if not notification.webhook_url:
            raise AlertDeliveryError(self.name, "No webhook URL configured")

        payload = {
            "type": "usage.threshold_crossed",
            "tenant_id": notification.tenant_id,
            "alert_id": notification.alert_id,
            "threshold": notification.threshold,
            "severity": notification.severity,
            "title": notification.title,
            "message": notification.message,
            "action_url": notification.action_url,
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(notification.webhook_url, json=payload)
                response.raise_for_status()
            except httpx.TimeoutException as exc:
                raise AlertDeliveryError(self.name, "Webhook endpoint timed out") from exc
            except httpx.HTTPStatusError as exc:
                raise AlertDeliveryError(
                    self.name, f"Webhook endpoint returned {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                raise AlertDeliveryError(self.name, f"Failed to reach endpoint: {exc}") from exc
