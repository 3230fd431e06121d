"""API test fixtures.

Provides an async HTTP client wired to the FastAPI app with the DI container
overridden to use in-memory fakes. Available to all colocated API tests under api/.

Pattern:
    1. Build real domain services over fakes (BillingHarness wires metering too)
    2. Override get_container -> returns the test container
    3. Test hits the endpoint, asserts on HTTP response + fake state
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from voicemeter.api.deps import get_container
from voicemeter.core.container import Container
from voicemeter.domains.alerts.fakes import FakeAlertDispatcher, FakeUsageAlertRepository
from voicemeter.domains.alerts.service import AlertService
from voicemeter.domains.billing.tests.conftest import BillingHarness
from voicemeter.domains.billing.tests.conftest import _make_harness as _make_billing_harness

API_PREFIX = "/api/v1"


@pytest.fixture
def api_harness() -> BillingHarness:
    """Billing services over fresh metering fakes."""
    return _make_billing_harness()


@pytest.fixture
def alert_repo() -> FakeUsageAlertRepository:
    """Alert store backing the alert endpoints."""
    return FakeUsageAlertRepository()


@pytest.fixture
def test_container(api_harness: BillingHarness, alert_repo: FakeUsageAlertRepository):
    """A Container whose services run over in-memory fakes.

    For partial overrides, use container.replace():
        test_container.replace(billing_webhook=AsyncMock())
    """
    metering = api_harness.metering
    return Container(
        event_bus=metering.event_bus,
        payment_gateway=api_harness.gateway,
        metering_config=metering.config_service,
        metering_gate=metering.gate,
        usage_recorder=metering.recorder,
        period_sync=metering.period_sync,
        metering_queries=metering.queries,
        alert_dispatcher=FakeAlertDispatcher(),
        alert_service=AlertService(alert_repo=alert_repo, session_factory=metering.sessions),
        overage_invoicer=api_harness.invoicer,
        billing_webhook=api_harness.webhooks,
    )


@pytest_asyncio.fixture
async def client(test_container):
    """Async HTTP client with faked DI container."""
    from voicemeter.main import app

    app.dependency_overrides[get_container] = lambda: test_container

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=f"http://test{API_PREFIX}") as ac:
        yield ac

    app.dependency_overrides.clear()
