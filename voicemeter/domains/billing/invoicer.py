"""Overage invoicer: the scheduled billing sweep.

For each closed period with unbilled overage accrued under ``charge``:

1. look for a line item a previous run already created under the
   period's idempotency key
2. otherwise create it (the same key is sent to the provider)
3. only after the provider confirms, mark the period billed

A crash between 2 and 3 is recovered by step 1 on the next sweep, so a
period is charged at most once.
"""

import time
from datetime import datetime, timezone
from typing import Any, Optional

from voicemeter.core.exceptions import ExternalServiceError, ExternalServiceUnavailableError
from voicemeter.core.logging import ContextualLogger, logger
from voicemeter.core.protocols.payment import PaymentGatewayProtocol
from voicemeter.db import SessionFactory
from voicemeter.domains.billing.exceptions import (
    MissingCustomerReferenceError,
    PermanentBillingError,
)
from voicemeter.domains.billing.protocols import OverageInvoicerProtocol
from voicemeter.domains.billing.retry import RetryPolicy
from voicemeter.domains.billing.types import (
    METERED_OVERAGE_LINE_TYPE,
    BillableOverage,
    billing_idempotency_key,
    overage_description,
)
from voicemeter.domains.metering.repository import UsagePeriodRepositoryProtocol
from voicemeter.schemas.billing import BillingResult, SweepReport


class OverageInvoicer(OverageInvoicerProtocol):
    """Bill accrued overage through the payment gateway."""

    def __init__(
        self,
        payment_gateway: PaymentGatewayProtocol,
        period_repo: UsagePeriodRepositoryProtocol,
        session_factory: SessionFactory,
        retry_policy: RetryPolicy,
        currency: str = "mxn",
    ) -> None:
        """Initialize with the gateway, period repository and retry policy."""
        self._payment_gateway = payment_gateway
        self._period_repo = period_repo
        self._session_factory = session_factory
        self._retry = retry_policy
        self._currency = currency

    async def run_billing_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Bill every closed, unbilled period for the overage it accrued under ``charge``."""
        now = now or datetime.now(timezone.utc)
        started = time.monotonic()
        report = SweepReport(processed_at=now)

        async with self._session_factory() as db:
            rows = await self._period_repo.get_unbilled_overage(db, now=now)
            candidates = [
                BillableOverage(
                    tenant_id=period.tenant_id,
                    period_id=period.id,
                    period_start=period.period_start,
                    period_end=period.period_end,
                    overage_minutes=period.billable_overage_minutes,
                    amount=period.billable_charges,
                    customer_id=config.external_customer_id,
                )
                for period, config in rows
            ]

        logger.info(f"Billing sweep started: {len(candidates)} period(s) to bill")

        for candidate in candidates:
            result = await self._bill_period(candidate, now)
            report.results.append(result)
            report.tenants_processed += 1
            if result.success:
                report.tenants_billed += 1
                report.total_overage_minutes += result.overage_minutes
                report.total_amount += result.amount
                if result.recovered:
                    report.tenants_recovered += 1
            else:
                report.tenants_failed += 1
                report.errors.append(f"{candidate.tenant_id}/{candidate.period_id}: {result.error}")

        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Billing sweep complete: {report.tenants_billed}/{report.tenants_processed} billed, "
            f"{report.tenants_failed} failed, total {report.total_amount} "
            f"in {report.duration_ms}ms"
        )
        return report

    async def _bill_period(self, candidate: BillableOverage, now: datetime) -> BillingResult:
        key = billing_idempotency_key(candidate.tenant_id, candidate.period_id)
        log = logger.with_context(
            tenant_id=str(candidate.tenant_id),
            period_id=str(candidate.period_id),
            idempotency_key=key,
        )
        result = BillingResult(
            tenant_id=candidate.tenant_id,
            period_id=candidate.period_id,
            success=False,
            amount=candidate.amount,
            overage_minutes=candidate.overage_minutes,
        )
        started = time.monotonic()
        attempts = 0

        async def _find_or_create() -> tuple[Any, bool]:
            nonlocal attempts
            attempts += 1
            existing = await self._payment_gateway.find_invoice_item(
                customer_id=candidate.customer_id, idempotency_key=key
            )
            if existing is not None:
                return existing, True
            item = await self._payment_gateway.create_invoice_item(
                customer_id=candidate.customer_id,
                amount=candidate.amount,
                currency=self._currency,
                description=overage_description(
                    candidate.overage_minutes, candidate.period_start, candidate.period_end
                ),
                idempotency_key=key,
                metadata={
                    "type": METERED_OVERAGE_LINE_TYPE,
                    "tenant_id": str(candidate.tenant_id),
                    "period_id": str(candidate.period_id),
                    "overage_minutes": str(candidate.overage_minutes),
                },
            )
            return item, False

        try:
            if not candidate.customer_id:
                raise MissingCustomerReferenceError(candidate.tenant_id)
            item, recovered = await self._retry.call("create_invoice_item", _find_or_create, log)
        except PermanentBillingError as e:
            return self._failed(result, log, e, attempts, started, permanent=True)
        except ExternalServiceUnavailableError as e:
            return self._failed(result, log, e, attempts, started, permanent=False)
        except ExternalServiceError as e:
            return self._failed(result, log, e, attempts, started, permanent=True)
        except Exception as e:
            return self._failed(result, log, e, attempts, started, permanent=False)

        result.attempts = attempts
        result.invoice_item_id = item.id
        result.recovered = recovered
        if recovered:
            log.info(f"Found line item {item.id} from an earlier run; not creating another")

        try:
            async with self._session_factory() as db:
                try:
                    marked = await self._period_repo.mark_billed(
                        db,
                        period_id=candidate.period_id,
                        billed_reference=item.id,
                        idempotency_key=key,
                        billed_at=now,
                    )
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
        except Exception as e:
            # The line item exists; the next sweep finds it by key and marks the period.
            result.error = f"Line item {item.id} created but marking billed failed: {e}"
            log.error(result.error, exc_info=True)
            return result

        if not marked:
            log.info("Period already marked billed by a concurrent sweep")
        result.success = True
        log.info(
            f"Billed {candidate.overage_minutes} overage minute(s), amount {candidate.amount} "
            f"{self._currency.upper()} as {item.id} after {attempts} attempt(s) "
            f"in {time.monotonic() - started:.2f}s"
        )
        return result

    @staticmethod
    def _failed(
        result: BillingResult,
        log: ContextualLogger,
        error: Exception,
        attempts: int,
        started: float,
        *,
        permanent: bool,
    ) -> BillingResult:
        result.attempts = attempts
        result.permanent = permanent
        result.error = str(error)
        kind = "Permanent" if permanent else "Transient"
        log.error(
            f"{kind} billing failure after {attempts} attempt(s) "
            f"in {time.monotonic() - started:.2f}s: {error}",
            exc_info=not permanent,
        )
        return result
