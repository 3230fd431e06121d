"""Metering gate: pre-use admission check.

The gate is optimistic. It reads the ledger without reserving
capacity, so calls admitted in the window before a block lands can push
usage past the cap. Any failure while deciding denies (fail-closed).
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from voicemeter.core.logging import logger
from voicemeter.db import SessionFactory
from voicemeter.domains.metering.config_service import MeteringConfigService
from voicemeter.domains.metering.ledger import UsagePeriodLedger
from voicemeter.domains.metering.protocols import MeteringGateProtocol
from voicemeter.domains.metering.repository import UsagePeriodRepositoryProtocol
from voicemeter.domains.metering.types import build_snapshot
from voicemeter.schemas.usage import Admission, DenialReason

METERING_UNAVAILABLE = "METERING_UNAVAILABLE"


class MeteringGate(MeteringGateProtocol):
    """Admit or deny a new unit of work for a tenant."""

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

    async def check_limit(self, tenant_id: UUID, now: Optional[datetime] = None) -> Admission:
        """Decide whether a new unit of work may start.

        Order of evaluation:
        1. inactive config -> deny ``metering_disabled``
        2. blocked current period -> deny ``blocked`` (any policy)
        3. otherwise allow
        """
        now = now or datetime.now(timezone.utc)
        log = logger.with_context(tenant_id=str(tenant_id))
        try:
            return await self._decide(tenant_id, now)
        except Exception as e:
            log.error(f"Admission check failed, denying: {e}", exc_info=True)
            return Admission(
                allowed=False,
                reason=DenialReason.INFRASTRUCTURE_ERROR,
                error_code=METERING_UNAVAILABLE,
            )

    async def _decide(self, tenant_id: UUID, now: datetime) -> Admission:
        async with self._session_factory() as db:
            try:
                config = await self._config_service.ensure(db, tenant_id)
                if not config.is_active:
                    await db.commit()
                    return Admission(allowed=False, reason=DenialReason.METERING_DISABLED)

                period = await self._period_repo.get_current(db, tenant_id=tenant_id)
                if period is None or period.period_end <= now:
                    period = await self._ledger.ensure_current(db, tenant_id, now)
                snapshot = build_snapshot(config, period)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        if snapshot.is_blocked:
            return Admission(allowed=False, reason=DenialReason.BLOCKED, snapshot=snapshot)
        return Admission(allowed=True, snapshot=snapshot)
