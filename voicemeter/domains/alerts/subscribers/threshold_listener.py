"""Threshold alert listener: EventBus subscriber for crossed usage thresholds."""

import logging
from typing import List

from voicemeter.core.events.base import DomainEvent
from voicemeter.core.events.metering import UsageThresholdCrossedEvent
from voicemeter.core.protocols.event_bus import EventSubscriber
from voicemeter.domains.alerts.protocols import AlertDispatcherProtocol

logger = logging.getLogger(__name__)


class ThresholdAlertSubscriber(EventSubscriber):
    """Routes ``metering.threshold_crossed`` events to the alert dispatcher.

    Failures are logged and swallowed so they never reach the publisher.
    """

    EVENT_PATTERNS: List[str] = ["metering.threshold_crossed"]

    def __init__(self, dispatcher: AlertDispatcherProtocol) -> None:
        """Initialize with the dispatcher that sends alerts."""
        self._dispatcher = dispatcher

    async def handle(self, event: DomainEvent) -> None:
        """Dispatch one alert for the crossed threshold."""
        if not isinstance(event, UsageThresholdCrossedEvent):
            return
        try:
            await self._dispatcher.dispatch(event.tenant_id, event.period_id, event.threshold)
        except Exception as e:
            logger.error(
                "ThresholdAlertSubscriber failed for tenant %s threshold %s: %s",
                event.tenant_id,
                event.threshold,
                e,
                exc_info=True,
            )
