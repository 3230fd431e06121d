"""Tests for the overage billing sweep."""

from datetime import datetime, timezone

import pytest

from voicemeter.adapters.payment.fake import FakePaymentGateway
from voicemeter.core.exceptions import ExternalServiceError, ExternalServiceUnavailableError
from voicemeter.domains.billing.tests.conftest import (
    CUSTOMER_ID,
    DEFAULT_TENANT_ID,
    FEBRUARY,
    MARCH,
    OTHER_TENANT_ID,
    SWEEP_AT,
    _make_harness,
)
from voicemeter.domains.billing.types import billing_idempotency_key
from voicemeter.domains.metering.tests.conftest import MID_PERIOD, minutes
from voicemeter.schemas.metering_config import OveragePolicy


class TestBillingSweep:
    @pytest.mark.asyncio
    async def test_bills_closed_period_once(self, harness):
        period = harness.seed_closed_period(overage_minutes=20, price=350)

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert report.tenants_processed == 1
        assert report.tenants_billed == 1
        assert report.total_overage_minutes == 20
        assert report.total_amount == 7000
        assert report.errors == []

        [(_, kwargs)] = harness.gateway.calls_for("create_invoice_item")
        key = billing_idempotency_key(DEFAULT_TENANT_ID, period.id)
        assert kwargs == {
            "customer_id": CUSTOMER_ID,
            "amount": 7000,
            "currency": "mxn",
            "idempotency_key": key,
        }
        item = harness.gateway.invoice_items[key]
        assert item.metadata["type"] == "metered_overage"
        assert item.metadata["period_id"] == str(period.id)
        assert item.metadata["overage_minutes"] == "20"
        assert item.description == "Voice minutes overage: 20 min (2026-01-01 to 2026-02-01)"

        assert period.is_billed
        assert period.billed_reference == item.id
        assert period.billing_idempotency_key == key
        assert period.billed_at == SWEEP_AT

    @pytest.mark.asyncio
    async def test_second_sweep_bills_nothing(self, harness):
        harness.seed_closed_period()

        await harness.invoicer.run_billing_sweep(now=SWEEP_AT)
        second = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert second.tenants_processed == 0
        assert harness.gateway.call_count("create_invoice_item") == 1

    @pytest.mark.asyncio
    async def test_overage_transactions_stamped_with_reference(self, harness):
        period = harness.seed_closed_period()
        repo = harness.metering.transaction_repo
        overage = repo.seed_transaction(
            tenant_id=DEFAULT_TENANT_ID,
            period_id=period.id,
            call_reference="call-overage",
            seconds_used=1200,
            minutes_billed=20,
            overage_portion=20,
            charge_amount=7000,
            is_overage=True,
        )
        included = repo.seed_transaction(
            tenant_id=DEFAULT_TENANT_ID,
            period_id=period.id,
            call_reference="call-included",
            seconds_used=6000,
            minutes_billed=100,
            included_portion=100,
            is_overage=False,
        )

        await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert overage.billed_reference == period.billed_reference
        assert included.billed_reference is None


class TestEligibility:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("policy", ["block", "notify_only"])
    async def test_overage_accrued_outside_charge_is_not_billed(self, harness, policy):
        harness.seed_closed_period(overage_policy=policy)

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert report.tenants_processed == 0
        assert harness.gateway.call_count("create_invoice_item") == 0

    @pytest.mark.asyncio
    async def test_period_without_overage_is_skipped(self, harness):
        harness.seed_closed_period(overage_minutes=0)

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert report.tenants_processed == 0

    @pytest.mark.asyncio
    async def test_open_current_period_is_not_billed(self, harness):
        harness.metering.config_repo.seed_config(
            DEFAULT_TENANT_ID, external_customer_id=CUSTOMER_ID
        )
        harness.metering.period_repo.seed_period(
            DEFAULT_TENANT_ID,
            overage_minutes_used=5,
            overage_charges=1750,
            billable_overage_minutes=5,
            billable_charges=1750,
        )

        report = await harness.invoicer.run_billing_sweep(
            now=datetime(2026, 1, 20, tzinfo=timezone.utc)
        )

        assert report.tenants_processed == 0

    @pytest.mark.asyncio
    async def test_current_period_past_its_end_is_billed(self, harness):
        harness.metering.config_repo.seed_config(
            DEFAULT_TENANT_ID, external_customer_id=CUSTOMER_ID
        )
        period = harness.metering.period_repo.seed_period(
            DEFAULT_TENANT_ID,
            overage_minutes_used=5,
            overage_charges=1750,
            billable_overage_minutes=5,
            billable_charges=1750,
        )

        report = await harness.invoicer.run_billing_sweep(now=FEBRUARY)

        assert report.tenants_billed == 1
        assert period.is_billed


class TestPolicyChanges:
    @pytest.mark.asyncio
    async def test_switch_to_charge_does_not_bill_notify_only_overage(self, harness):
        harness.seed_closed_period(overage_policy="notify_only")
        await harness.metering.config_service.update_policy(
            DEFAULT_TENANT_ID, OveragePolicy.CHARGE
        )

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert report.tenants_processed == 0
        assert harness.gateway.call_count("create_invoice_item") == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("policy", [OveragePolicy.NOTIFY_ONLY, OveragePolicy.BLOCK])
    async def test_charge_overage_is_billed_after_leaving_charge(self, harness, policy):
        period = harness.seed_closed_period(overage_minutes=20, price=350)
        await harness.metering.config_service.update_policy(DEFAULT_TENANT_ID, policy)

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert report.tenants_billed == 1
        assert report.total_amount == 7000
        assert period.is_billed

    @pytest.mark.asyncio
    async def test_mixed_period_bills_only_usage_recorded_under_charge(self, harness):
        metering = harness.metering
        _, period = metering.seed_active_tenant(
            overage_policy="notify_only", external_customer_id=CUSTOMER_ID
        )
        await metering.recorder.record_usage(
            DEFAULT_TENANT_ID, "informational", minutes(110), now=MID_PERIOD
        )
        await metering.config_service.update_policy(DEFAULT_TENANT_ID, OveragePolicy.CHARGE)
        await metering.recorder.record_usage(
            DEFAULT_TENANT_ID, "charged", minutes(4), now=MID_PERIOD
        )
        await metering.period_sync.rollover(DEFAULT_TENANT_ID, FEBRUARY, MARCH)

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        (result,) = report.results
        assert result.period_id == period.id
        assert result.overage_minutes == 4
        assert result.amount == 4 * 350
        [(_, kwargs)] = harness.gateway.calls_for("create_invoice_item")
        assert kwargs["amount"] == 4 * 350
        stamped = {
            t.call_reference: t.billed_reference
            for t in metering.transaction_repo.all(period.id)
        }
        assert stamped == {"informational": None, "charged": period.billed_reference}


class TestCrashRecovery:
    @pytest.mark.asyncio
    async def test_lost_response_does_not_double_charge(self):
        h = _make_harness(gateway=FakePaymentGateway(lose_response=True))
        period = h.seed_closed_period()

        report = await h.invoicer.run_billing_sweep(now=SWEEP_AT)

        (result,) = report.results
        assert result.success
        assert result.recovered
        assert result.attempts == 2
        assert h.gateway.call_count("create_invoice_item") == 1
        assert len(h.gateway.invoice_items) == 1
        assert period.is_billed

    @pytest.mark.asyncio
    async def test_item_from_earlier_run_is_reused(self, harness):
        period = harness.seed_closed_period()
        key = billing_idempotency_key(DEFAULT_TENANT_ID, period.id)
        item = harness.gateway.seed_invoice_item(
            customer_id=CUSTOMER_ID, idempotency_key=key, amount=7000
        )

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert report.tenants_recovered == 1
        assert report.results[0].invoice_item_id == item.id
        assert harness.gateway.call_count("create_invoice_item") == 0
        assert period.billed_reference == item.id

    @pytest.mark.asyncio
    async def test_crash_before_marking_billed_is_recovered_next_sweep(self, harness):
        period = harness.seed_closed_period()
        harness.metering.period_repo.fail_next_mark_billed(RuntimeError("connection reset"))

        first = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert first.tenants_failed == 1
        assert not first.results[0].permanent
        assert "marking billed failed" in first.results[0].error
        assert not period.is_billed

        second = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert second.tenants_billed == 1
        assert second.tenants_recovered == 1
        assert harness.gateway.call_count("create_invoice_item") == 1
        assert period.is_billed


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        gateway = FakePaymentGateway(
            fail_times=2, fail_with=ExternalServiceUnavailableError("Stripe", "rate limited")
        )
        h = _make_harness(gateway=gateway)
        period = h.seed_closed_period()

        report = await h.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert report.tenants_billed == 1
        assert report.results[0].attempts == 3
        assert h.sleep.delays == [1.0, 2.0]
        assert period.is_billed

    @pytest.mark.asyncio
    async def test_exhausted_retries_leave_period_unbilled(self):
        gateway = FakePaymentGateway(
            fail_times=10, fail_with=ExternalServiceUnavailableError("Stripe", "down")
        )
        h = _make_harness(gateway=gateway, max_attempts=3)
        period = h.seed_closed_period()

        report = await h.invoicer.run_billing_sweep(now=SWEEP_AT)

        (result,) = report.results
        assert not result.success
        assert not result.permanent
        assert result.attempts == 3
        assert report.tenants_failed == 1
        assert len(report.errors) == 1
        assert not period.is_billed

    @pytest.mark.asyncio
    async def test_rejected_request_is_permanent_and_not_retried(self):
        gateway = FakePaymentGateway(
            fail_times=1, fail_with=ExternalServiceError("Stripe", "No such customer")
        )
        h = _make_harness(gateway=gateway)
        period = h.seed_closed_period()

        report = await h.invoicer.run_billing_sweep(now=SWEEP_AT)

        (result,) = report.results
        assert result.permanent
        assert result.attempts == 1
        assert h.sleep.delays == []
        assert not period.is_billed

    @pytest.mark.asyncio
    async def test_missing_customer_reference_is_permanent(self, harness):
        harness.seed_closed_period(customer_id=None)

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        (result,) = report.results
        assert result.permanent
        assert "no external customer reference" in result.error
        assert harness.gateway.call_count("find_invoice_item") == 0

    @pytest.mark.asyncio
    async def test_one_failing_tenant_does_not_stop_others(self, harness):
        harness.seed_closed_period(DEFAULT_TENANT_ID, customer_id=None)
        other = harness.seed_closed_period(
            OTHER_TENANT_ID, overage_minutes=4, customer_id="cus_other"
        )

        report = await harness.invoicer.run_billing_sweep(now=SWEEP_AT)

        assert report.tenants_processed == 2
        assert report.tenants_billed == 1
        assert report.tenants_failed == 1
        assert report.total_amount == 4 * 350
        assert other.is_billed
