"""Fake alert channel for testing."""

from typing import Optional

from voicemeter.core.protocols.notifications import AlertChannel, AlertNotification


class FakeAlertChannel(AlertChannel):
    """Records sent notifications; optionally fails every send."""

    def __init__(self, name: str, should_raise: Optional[Exception] = None) -> None:
        """Initialize with a channel name and optional error injection."""
        self._name = name
        self._should_raise = should_raise
        self.sent: list[AlertNotification] = []
        self.attempts = 0

    @property
    def name(self) -> str:
        """Channel name."""
        return self._name

    async def send(self, notification: AlertNotification) -> None:
        """Record the notification or raise the injected error."""
        self.attempts += 1
        if self._should_raise:
            raise self._should_raise
        self.sent.append(notification)
