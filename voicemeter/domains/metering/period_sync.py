"""Period synchronizer: the metering lifecycle of a tenant.

    disabled -> active -> active (rolled over)* -> disabled

Plan-change webhooks and the scheduled monthly job both converge on
``UsagePeriodLedger.rollover_locked`` so there is a single rollover path.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from voicemeter.core.exceptions import InvalidStateError
from voicemeter.core.logging import logger
from voicemeter.db import SessionFactory
from voicemeter.domains.metering.config_service import MeteringConfigService
from voicemeter.domains.metering.exceptions import UsagePeriodNotFoundError
from voicemeter.domains.metering.ledger import UsagePeriodLedger
from voicemeter.domains.metering.protocols import PeriodSynchronizerProtocol
from voicemeter.domains.metering.repository import UsagePeriodRepositoryProtocol
from voicemeter.domains.metering.types import next_period_bounds, start_of_next_month
from voicemeter.schemas.billing import RolloverReport
from voicemeter.schemas.metering_config import MeteringConfigUpdate
from voicemeter.schemas.usage import UsagePeriod


class PeriodSynchronizer(PeriodSynchronizerProtocol):
    """Create, roll over and retire usage periods."""

    def __init__(
        self,
        config_service: MeteringConfigService,
        period_repo: UsagePeriodRepositoryProtocol,
        session_factory: SessionFactory,
    ) -> None:
        """Initialize with the config store, period repository and session factory."""
        self._config_service = config_service
        self._period_repo = period_repo
        self._ledger = UsagePeriodLedger(period_repo)
        self._session_factory = session_factory

    async def enable(
        self,
        tenant_id: UUID,
        config: Optional[MeteringConfigUpdate] = None,
        *,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> UsagePeriod:
        """Activate metering and open a period if none is current.

        Calling it again for an active tenant leaves the current period alone.
        """
        start = period_start or datetime.now(timezone.utc)
        end = period_end or start_of_next_month(start)
        if end <= start:
            raise InvalidStateError("Period end must be after period start")

        log = logger.with_context(tenant_id=str(tenant_id))
        async with self._session_factory() as db:
            try:
                row = await self._config_service.ensure(db, tenant_id)
                values = config.model_dump(mode="json", exclude_unset=True) if config else {}
                if not row.is_active:
                    values["is_active"] = True
                if values:
                    await self._config_service.apply(db, row, values)

                period = await self._ledger.lock_current(db, tenant_id)
                if period is None:
                    await self._period_repo.create_current_if_absent(
                        db, tenant_id=tenant_id, period_start=start, period_end=end
                    )
                    period = await self._ledger.lock_current(db, tenant_id)
                    if period is None:
                        raise UsagePeriodNotFoundError(tenant_id)
                    log.info(f"Metering enabled; period {start.isoformat()} -> {end.isoformat()}")
                else:
                    log.info("Metering already enabled; keeping current period")
                result = UsagePeriod.model_validate(period, from_attributes=True)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return result

    async def rollover(
        self, tenant_id: UUID, new_period_start: datetime, new_period_end: datetime
    ) -> UsagePeriod:
        """Retire the current period and open a zeroed one.

        A replayed or out-of-order request (the new start is not after the
        current start) returns the current period unchanged.
        """
        if new_period_end <= new_period_start:
            raise InvalidStateError("Period end must be after period start")

        async with self._session_factory() as db:
            try:
                current = await self._ledger.lock_current(db, tenant_id)
                if current is None:
                    raise UsagePeriodNotFoundError(tenant_id)
                if new_period_start <= current.period_start:
                    logger.with_context(tenant_id=str(tenant_id)).info(
                        "Rollover skipped; current period already starts at or after "
                        f"{new_period_start.isoformat()}"
                    )
                    period = current
                else:
                    period = await self._ledger.rollover_locked(
                        db, current, new_period_start, new_period_end
                    )
                result = UsagePeriod.model_validate(period, from_attributes=True)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return result

    async def disable(self, tenant_id: UUID, now: Optional[datetime] = None) -> None:
        """Deactivate metering and retire the current period without opening another."""
        now = now or datetime.now(timezone.utc)
        log = logger.with_context(tenant_id=str(tenant_id))
        async with self._session_factory() as db:
            try:
                config = await self._config_service.ensure(db, tenant_id)
                if config.is_active:
                    await self._config_service.apply(db, config, {"is_active": False})

                period = await self._ledger.lock_current(db, tenant_id)
                if period is not None:
                    values: dict = {"is_current": False}
                    if period.period_start < now < period.period_end:
                        values["period_end"] = now
                    await self._period_repo.update(db, db_obj=period, values=values)
                    log.info(f"Retired usage period {period.id} on disable")
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        log.info("Metering disabled")

    async def rollover_due_periods(self, now: Optional[datetime] = None) -> RolloverReport:
        """Roll over every current period whose end has passed.

        Each tenant gets its own transaction; one failure does not stop the run.
        """
        now = now or datetime.now(timezone.utc)
        report = RolloverReport(processed_at=now)

        async with self._session_factory() as db:
            due = await self._period_repo.get_due_for_rollover(db, now=now)
            tenant_ids = [period.tenant_id for period in due]

        for tenant_id in tenant_ids:
            try:
                if await self._rollover_if_due(tenant_id, now):
                    report.periods_rolled_over += 1
                    report.tenant_ids.append(tenant_id)
            except Exception as e:
                logger.with_context(tenant_id=str(tenant_id)).error(
                    f"Scheduled rollover failed: {e}", exc_info=True
                )
                report.errors.append(f"{tenant_id}: {e}")

        logger.info(
            f"Scheduled rollover complete: {report.periods_rolled_over} rolled over, "
            f"{len(report.errors)} failed"
        )
        return report

    async def _rollover_if_due(self, tenant_id: UUID, now: datetime) -> bool:
        async with self._session_factory() as db:
            try:
                current = await self._ledger.lock_current(db, tenant_id)
                # A concurrent lazy rollover may have beaten us to it.
                if current is None or current.period_end > now:
                    await db.rollback()
                    return False
                new_start, new_end = next_period_bounds(current.period_end, now)
                await self._ledger.rollover_locked(db, current, new_start, new_end)
                await db.commit()
                return True
            except Exception:
                await db.rollback()
                raise

