"""API tests for metering endpoints.

Real metering services run over in-memory fakes; these tests verify HTTP
routing, serialization and the domain error to status code mapping.
"""

from uuid import uuid4

import pytest

from voicemeter.domains.metering.tests.conftest import DEFAULT_TENANT_ID

TENANT = str(DEFAULT_TENANT_ID)


async def _enable(client, **config) -> dict:
    response = await client.post(f"/metering/{TENANT}/enable", json=config or None)
    assert response.status_code == 200
    return response.json()


class TestAdmission:
    @pytest.mark.asyncio
    async def test_unknown_tenant_is_denied_with_200(self, client):
        response = await client.get(f"/metering/{uuid4()}/admission")

        assert response.status_code == 200
        body = response.json()
        assert body["allowed"] is False
        assert body["reason"] == "metering_disabled"

    @pytest.mark.asyncio
    async def test_enabled_tenant_is_allowed(self, client):
        await _enable(client)

        response = await client.get(f"/metering/{TENANT}/admission")

        assert response.json()["allowed"] is True
        assert response.json()["snapshot"]["included_minutes"] == 200


class TestRecordUsage:
    @pytest.mark.asyncio
    async def test_records_rounded_up_minutes(self, client):
        await _enable(client)

        response = await client.post(
            f"/metering/{TENANT}/usage",
            json={"call_reference": "call-1", "seconds_used": 61},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["minutes_recorded"] == 2
        assert body["included_portion"] == 2
        assert body["duplicate"] is False

    @pytest.mark.asyncio
    async def test_replay_is_reported_as_duplicate(self, client):
        await _enable(client)
        payload = {"call_reference": "call-1", "seconds_used": 60}

        first = await client.post(f"/metering/{TENANT}/usage", json=payload)
        second = await client.post(f"/metering/{TENANT}/usage", json=payload)

        assert second.json()["duplicate"] is True
        assert second.json()["transaction_id"] == first.json()["transaction_id"]

    @pytest.mark.asyncio
    async def test_non_positive_amount_is_422(self, client):
        await _enable(client)

        response = await client.post(
            f"/metering/{TENANT}/usage",
            json={"call_reference": "call-1", "seconds_used": 0},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_inactive_tenant_is_403(self, client):
        response = await client.post(
            f"/metering/{TENANT}/usage",
            json={"call_reference": "call-1", "seconds_used": 60},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "metering_disabled"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get(
            f"/metering/{TENANT}/admission", headers={"X-Request-ID": "req-42"}
        )

        assert response.headers["X-Request-ID"] == "req-42"

    @pytest.mark.asyncio
    async def test_missing_body_field_is_422(self, client):
        response = await client.post(f"/metering/{TENANT}/usage", json={"seconds_used": 60})

        assert response.status_code == 422
        assert "errors" in response.json()


class TestConfig:
    @pytest.mark.asyncio
    async def test_get_creates_inactive_defaults(self, client):
        response = await client.get(f"/metering/{TENANT}/config")

        assert response.status_code == 200
        body = response.json()
        assert body["is_active"] is False
        assert body["alert_thresholds"] == [70, 85, 95, 100]

    @pytest.mark.asyncio
    async def test_patch_updates_only_given_fields(self, client):
        await _enable(client)

        response = await client.patch(
            f"/metering/{TENANT}/config", json={"included_minutes": 500}
        )

        assert response.status_code == 200
        assert response.json()["included_minutes"] == 500
        assert response.json()["overage_policy"] == "charge"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"included_minutes": -1},
            {"alert_thresholds": [50, 150]},
            {"overage_policy": "free"},
            {"included_minutes": None},
        ],
    )
    async def test_invalid_config_is_422(self, client, payload):
        response = await client.patch(f"/metering/{TENANT}/config", json=payload)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_half_set_quiet_hours_is_422(self, client):
        await _enable(client)

        response = await client.patch(f"/metering/{TENANT}/config", json={"quiet_hours_start": 22})

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_metering_config"

    @pytest.mark.asyncio
    async def test_put_policy(self, client):
        await _enable(client)

        response = await client.put(
            f"/metering/{TENANT}/config/policy", json={"overage_policy": "block"}
        )

        assert response.status_code == 200
        assert response.json()["overage_policy"] == "block"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_enable_applies_config_and_opens_period(self, client):
        period = await _enable(client, included_minutes=300)

        assert period["is_current"] is True
        config = (await client.get(f"/metering/{TENANT}/config")).json()
        assert config["is_active"] is True
        assert config["included_minutes"] == 300

    @pytest.mark.asyncio
    async def test_disable_deactivates(self, client):
        await _enable(client)

        response = await client.post(f"/metering/{TENANT}/disable")

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        admission = (await client.get(f"/metering/{TENANT}/admission")).json()
        assert admission["reason"] == "metering_disabled"


class TestReadViews:
    @pytest.mark.asyncio
    async def test_summary_transactions_and_periods(self, client):
        await _enable(client)
        for i in range(3):
            await client.post(
                f"/metering/{TENANT}/usage",
                json={"call_reference": f"call-{i}", "seconds_used": 600},
            )

        summary = (await client.get(f"/metering/{TENANT}/summary")).json()
        assert summary["included_minutes_used"] == 30
        assert summary["total_calls"] == 3

        page = (await client.get(f"/metering/{TENANT}/transactions?limit=2")).json()
        assert page["total"] == 3
        assert len(page["items"]) == 2

        periods = (await client.get(f"/metering/{TENANT}/periods")).json()
        assert periods["total"] == 1
        assert periods["items"][0]["total_minutes_used"] == 30

    @pytest.mark.asyncio
    async def test_preview_without_overage(self, client):
        await _enable(client)

        response = await client.get(f"/metering/{TENANT}/preview")

        assert response.status_code == 200
        assert response.json()["current_overage_minutes"] == 0

    @pytest.mark.asyncio
    async def test_invalid_paging_is_422(self, client):
        response = await client.get(f"/metering/{TENANT}/transactions?limit=0")

        assert response.status_code == 422
