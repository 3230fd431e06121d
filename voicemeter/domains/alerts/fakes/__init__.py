"""In-memory fakes for the alerts domain."""

from voicemeter.domains.alerts.fakes.dispatcher import FakeAlertDispatcher
from voicemeter.domains.alerts.fakes.repository import FakeUsageAlertRepository

__all__ = ["FakeAlertDispatcher", "FakeUsageAlertRepository"]
