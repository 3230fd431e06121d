"""Usage recorder: atomic post-use update of the current period.

One call is one transaction:

1. lock the tenant's current period (SELECT ... FOR UPDATE)
2. split the billable minutes between allowance and overage
3. update counters and charges, evaluate blocking and thresholds
4. append the transaction row
5. commit, then publish threshold events

Concurrent calls for the same tenant serialize on the row lock. Replaying
a ``call_reference`` returns the original result without touching counters.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter.core.events.metering import TenantBlockedEvent, UsageThresholdCrossedEvent
from voicemeter.core.logging import ContextualLogger, logger
from voicemeter.core.protocols.event_bus import EventBus
from voicemeter.db import SessionFactory
from voicemeter.domains.metering.config_service import MeteringConfigService
from voicemeter.domains.metering.exceptions import (
    InvalidUsageAmountError,
    MeteringDisabledError,
    UsageRecordingError,
)
from voicemeter.domains.metering.ledger import UsagePeriodLedger
from voicemeter.domains.metering.protocols import UsageRecorderProtocol
from voicemeter.domains.metering.repository import (
    UsagePeriodRepositoryProtocol,
    UsageTransactionRepositoryProtocol,
)
from voicemeter.domains.metering.types import (
    allocate,
    build_snapshot,
    evaluate_block,
    newly_crossed_thresholds,
    seconds_to_minutes,
    usage_percent,
)
from voicemeter.models.metering_config import TenantMeteringConfig
from voicemeter.models.usage_transaction import UsageTransaction
from voicemeter.schemas.metering_config import OveragePolicy
from voicemeter.schemas.usage import RecordResult


class UsageRecorder(UsageRecorderProtocol):
    """Record consumption against a tenant's current usage period."""

    def __init__(
        self,
        config_service: MeteringConfigService,
        period_repo: UsagePeriodRepositoryProtocol,
        transaction_repo: UsageTransactionRepositoryProtocol,
        event_bus: EventBus,
        session_factory: SessionFactory,
        safety_cap: Optional[int] = None,
    ) -> None:
        """Initialize with repositories, the event bus and an optional global safety cap."""
        self._config_service = config_service
        self._period_repo = period_repo
        self._transaction_repo = transaction_repo
        self._ledger = UsagePeriodLedger(period_repo)
        self._event_bus = event_bus
        self._session_factory = session_factory
        self._safety_cap = safety_cap

    async def record_usage(
        self,
        tenant_id: UUID,
        call_reference: str,
        seconds_used: int,
        *,
        call_metadata: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> RecordResult:
        """Record consumption, idempotent on ``call_reference``."""
        if seconds_used <= 0:
            raise InvalidUsageAmountError(seconds_used)

        now = now or datetime.now(timezone.utc)
        log = logger.with_context(tenant_id=str(tenant_id), call_reference=call_reference)

        try:
            result, events = await self._record(
                tenant_id, call_reference, seconds_used, call_metadata, now, log
            )
        except (InvalidUsageAmountError, MeteringDisabledError):
            raise
        except Exception as e:
            log.error(f"Failed to record {seconds_used}s of usage: {e}", exc_info=True)
            raise UsageRecordingError(tenant_id, call_reference) from e

        for event in events:
            try:
                await self._event_bus.publish(event)
            except Exception as e:
                log.error(f"Failed to publish {event.event_type.value}: {e}", exc_info=True)

        return result

    async def _record(
        self,
        tenant_id: UUID,
        call_reference: str,
        seconds_used: int,
        call_metadata: Optional[dict],
        now: datetime,
        log: ContextualLogger,
    ) -> tuple[RecordResult, list]:
        async with self._session_factory() as db:
            try:
                config = await self._config_service.ensure(db, tenant_id)

                prior = await self._find_prior(db, tenant_id, call_reference, config)
                if prior is not None:
                    await db.rollback()
                    log.info("Duplicate usage record ignored")
                    return prior, []

                if not config.is_active:
                    raise MeteringDisabledError(tenant_id)

                period = await self._ledger.ensure_current(db, tenant_id, now)

                # Re-check under the lock: a concurrent replay may have won.
                prior = await self._find_prior(db, tenant_id, call_reference, config)
                if prior is not None:
                    await db.rollback()
                    log.info("Duplicate usage record ignored")
                    return prior, []

                policy = OveragePolicy(config.overage_policy)
                minutes = seconds_to_minutes(seconds_used)
                allocation = allocate(
                    minutes,
                    included_minutes=config.included_minutes,
                    included_minutes_used=period.included_minutes_used,
                    overage_price_per_minute=config.overage_price_per_minute,
                )

                included_used = period.included_minutes_used + allocation.included_portion
                overage_used = period.overage_minutes_used + allocation.overage_portion
                overage_charges = period.overage_charges + allocation.charge_amount

                values: dict = {
                    "included_minutes_used": included_used,
                    "overage_minutes_used": overage_used,
                    "overage_charges": overage_charges,
                    "total_calls": period.total_calls + 1,
                }
                # Only overage used while the policy is "charge" is ever invoiced.
                if policy == OveragePolicy.CHARGE and allocation.overage_portion:
                    values["billable_overage_minutes"] = (
                        period.billable_overage_minutes + allocation.overage_portion
                    )
                    values["billable_charges"] = period.billable_charges + allocation.charge_amount

                events: list = []
                newly_blocked = False
                if not period.is_blocked:
                    reason = evaluate_block(
                        policy, overage_charges, config.max_overage_charge, self._safety_cap
                    )
                    if reason is not None:
                        newly_blocked = True
                        values.update(
                            is_blocked=True, blocked_reason=reason.value, blocked_at=now
                        )

                percent = usage_percent(included_used, config.included_minutes)
                crossed = newly_crossed_thresholds(
                    config.alert_thresholds, period.triggered_thresholds or [], percent
                )
                if crossed:
                    values["triggered_thresholds"] = sorted(
                        set(period.triggered_thresholds or []) | set(crossed)
                    )

                period = await self._period_repo.update(db, db_obj=period, values=values)
                transaction = await self._transaction_repo.add(
                    db,
                    obj=UsageTransaction(
                        tenant_id=tenant_id,
                        period_id=period.id,
                        call_reference=call_reference,
                        seconds_used=seconds_used,
                        minutes_billed=allocation.minutes,
                        included_portion=allocation.included_portion,
                        overage_portion=allocation.overage_portion,
                        charge_amount=allocation.charge_amount,
                        is_overage=allocation.is_overage,
                        overage_policy=policy.value,
                        recorded_at=now,
                        call_metadata=call_metadata,
                    ),
                )
                snapshot = build_snapshot(config, period)
                await db.commit()
            except IntegrityError:
                # The unique (tenant_id, call_reference) key caught a replay
                # that raced past both checks (e.g. across a rollover).
                await db.rollback()
                config = await self._config_service.ensure(db, tenant_id)
                prior = await self._find_prior(db, tenant_id, call_reference, config)
                if prior is None:
                    raise
                return prior, []
            except Exception:
                await db.rollback()
                raise

        for threshold in crossed:
            events.append(
                UsageThresholdCrossedEvent(
                    tenant_id=tenant_id,
                    period_id=period.id,
                    threshold=threshold,
                    usage_percent=snapshot.usage_percent,
                    included_minutes=snapshot.included_minutes,
                    included_minutes_used=snapshot.included_minutes_used,
                    overage_minutes_used=snapshot.overage_minutes_used,
                    overage_charges=snapshot.overage_charges,
                    policy=policy.value,
                )
            )
        if newly_blocked:
            events.append(
                TenantBlockedEvent(
                    tenant_id=tenant_id,
                    period_id=period.id,
                    blocked_reason=snapshot.blocked_reason,
                    overage_charges=snapshot.overage_charges,
                )
            )
            log.warning(f"Tenant blocked: {snapshot.blocked_reason}")

        log.with_context(period_id=str(period.id)).info(
            f"Recorded {allocation.minutes}m "
            f"(included={allocation.included_portion}, overage={allocation.overage_portion})"
        )
        return (
            RecordResult(
                success=True,
                transaction_id=transaction.id,
                minutes_recorded=allocation.minutes,
                included_portion=allocation.included_portion,
                overage_portion=allocation.overage_portion,
                charge_amount=allocation.charge_amount,
                new_thresholds=crossed,
                is_blocked=snapshot.is_blocked,
                snapshot=snapshot,
            ),
            events,
        )

    async def _find_prior(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        call_reference: str,
        config: TenantMeteringConfig,
    ) -> Optional[RecordResult]:
        """Result of an earlier recording of ``call_reference``, if any."""
        existing = await self._transaction_repo.get_by_call_reference(
            db, tenant_id=tenant_id, call_reference=call_reference
        )
        if existing is None:
            return None
        period = await self._period_repo.get(db, period_id=existing.period_id)
        snapshot = build_snapshot(config, period)
        return RecordResult(
            success=True,
            transaction_id=existing.id,
            duplicate=True,
            minutes_recorded=existing.minutes_billed,
            included_portion=existing.included_portion,
            overage_portion=existing.overage_portion,
            charge_amount=existing.charge_amount,
            new_thresholds=[],
            is_blocked=snapshot.is_blocked,
            snapshot=snapshot,
        )
