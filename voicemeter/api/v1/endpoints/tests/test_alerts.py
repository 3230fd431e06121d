"""API tests for alert endpoints."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from voicemeter.domains.metering.tests.conftest import DEFAULT_TENANT_ID, OTHER_TENANT_ID

PERIOD_ID = uuid4()
NOW = datetime(2026, 1, 20, 12, tzinfo=timezone.utc)


def _seed(alert_repo, threshold: int, **overrides):
    overrides.setdefault("created_at", NOW + timedelta(minutes=threshold))
    return alert_repo.seed_alert(DEFAULT_TENANT_ID, PERIOD_ID, threshold, **overrides)


class TestListAlerts:
    @pytest.mark.asyncio
    async def test_newest_first(self, client, alert_repo):
        _seed(alert_repo, 70)
        _seed(alert_repo, 85, severity="warning")

        response = await client.get(f"/alerts/{DEFAULT_TENANT_ID}")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [a["threshold"] for a in body["items"]] == [85, 70]
        assert body["items"][0]["severity"] == "warning"

    @pytest.mark.asyncio
    async def test_unacknowledged_filter(self, client, alert_repo):
        _seed(alert_repo, 70, acknowledged=True, acknowledged_at=NOW)
        _seed(alert_repo, 85)

        body = (
            await client.get(f"/alerts/{DEFAULT_TENANT_ID}?unacknowledged_only=true")
        ).json()

        assert [a["threshold"] for a in body["items"]] == [85]

    @pytest.mark.asyncio
    async def test_unacknowledged_count(self, client, alert_repo):
        _seed(alert_repo, 70)
        _seed(alert_repo, 85)

        response = await client.get(f"/alerts/{DEFAULT_TENANT_ID}/unacknowledged-count")

        assert response.json() == {"count": 2}


class TestAcknowledge:
    @pytest.mark.asyncio
    async def test_acknowledge(self, client, alert_repo):
        alert = _seed(alert_repo, 70)
        user_id = uuid4()

        response = await client.post(
            f"/alerts/{DEFAULT_TENANT_ID}/{alert.id}/acknowledge",
            json={"acknowledged_by": str(user_id)},
        )

        assert response.status_code == 200
        assert response.json()["acknowledged"] is True
        assert response.json()["acknowledged_by"] == str(user_id)

    @pytest.mark.asyncio
    async def test_other_tenants_alert_is_404(self, client, alert_repo):
        alert = _seed(alert_repo, 70)

        response = await client.post(
            f"/alerts/{OTHER_TENANT_ID}/{alert.id}/acknowledge",
            json={"acknowledged_by": str(uuid4())},
        )

        assert response.status_code == 404
        assert not alert.acknowledged
