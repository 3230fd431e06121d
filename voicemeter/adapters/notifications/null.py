"""Log-only alert channel.

Used for email and messaging until an outbound transport is wired in.
"""

import logging

from voicemeter.core.protocols.notifications import AlertChannel, AlertNotification

logger = logging.getLogger(__name__)


class LoggingAlertChannel(AlertChannel):
    """Pretend-delivers alerts by logging them."""

    def __init__(self, name: str) -> None:
        """Initialize with the channel name this adapter stands in for."""
        self._name = name

    @property
    def name(self) -> str:
        """Channel name."""
        return self._name

    async def send(self, notification: AlertNotification) -> None:
        """Log the alert."""
        logger.info(
            f"Alert [{self._name}] tenant={notification.tenant_id} "
            f"threshold={notification.threshold}: {notification.title}"
        )
