"""In-memory fakes for the metering domain."""

from voicemeter.domains.metering.fakes.repository import (
    FakeMeteringConfigRepository,
    FakeUsagePeriodRepository,
    FakeUsageTransactionRepository,
)
from voicemeter.domains.metering.fakes.session import FakeSession, FakeSessionFactory

__all__ = [
    "FakeMeteringConfigRepository",
    "FakeSession",
    "FakeSessionFactory",
    "FakeUsagePeriodRepository",
    "FakeUsageTransactionRepository",
]
