"""Limit configuration store.

Holds each tenant's allowance, overage policy, price, cap and alert
settings. Configs are created lazily from ``MeteringDefaults`` the first
time a tenant is seen.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter.core.logging import logger
from voicemeter.db import SessionFactory
from voicemeter.domains.metering.exceptions import (
    InvalidMeteringConfigError,
    MeteringConfigNotFoundError,
)
from voicemeter.domains.metering.ledger import UsagePeriodLedger
from voicemeter.domains.metering.protocols import MeteringConfigServiceProtocol
from voicemeter.domains.metering.repository import (
    MeteringConfigRepositoryProtocol,
    UsagePeriodRepositoryProtocol,
)
from voicemeter.domains.metering.types import MeteringDefaults, evaluate_block
from voicemeter.models.metering_config import TenantMeteringConfig
from voicemeter.schemas.metering_config import (
    MeteringConfig,
    MeteringConfigCreate,
    MeteringConfigUpdate,
    OveragePolicy,
)
from voicemeter.schemas.usage import BlockedReason


def _check_merged(config: TenantMeteringConfig, values: dict[str, Any]) -> None:
    """Reject updates whose result is inconsistent across fields."""
    merged = {
        name: values.get(name, getattr(config, name))
        for name in ("quiet_hours_start", "quiet_hours_end", "alert_channels", "webhook_url")
    }
    if (merged["quiet_hours_start"] is None) != (merged["quiet_hours_end"] is None):
        raise InvalidMeteringConfigError(
            "quiet_hours_start and quiet_hours_end must be set together"
        )
    if "webhook" in (merged["alert_channels"] or []) and not merged["webhook_url"]:
        raise InvalidMeteringConfigError("The webhook alert channel requires webhook_url")


class MeteringConfigService(MeteringConfigServiceProtocol):
    """Read and write tenant metering configuration."""

    def __init__(
        self,
        config_repo: MeteringConfigRepositoryProtocol,
        period_repo: UsagePeriodRepositoryProtocol,
        session_factory: SessionFactory,
        defaults: MeteringDefaults,
    ) -> None:
        """Initialize with repositories, a session factory and lazy-creation defaults."""
        self._config_repo = config_repo
        self._period_repo = period_repo
        self._ledger = UsagePeriodLedger(period_repo)
        self._session_factory = session_factory
        self._defaults = defaults

    # ------------------------------------------------------------------
    # Session-scoped helpers (used by gate, recorder and synchronizer)
    # ------------------------------------------------------------------

    async def ensure(self, db: AsyncSession, tenant_id: UUID) -> TenantMeteringConfig:
        """Return the tenant's config, inserting the defaults if it has none."""
        config = await self._config_repo.get_by_tenant(db, tenant_id=tenant_id)
        if config is not None:
            return config

        defaults = self._defaults
        config = await self._config_repo.create_if_absent(
            db,
            obj_in=MeteringConfigCreate(
                tenant_id=tenant_id,
                included_minutes=defaults.included_minutes,
                overage_policy=defaults.overage_policy,
                overage_price_per_minute=defaults.overage_price_per_minute,
                max_overage_charge=defaults.max_overage_charge,
                alert_thresholds=list(defaults.alert_thresholds),
                is_active=defaults.auto_activate,
            ),
        )
        logger.with_context(tenant_id=str(tenant_id)).info(
            f"Created metering config from defaults (active={config.is_active})"
        )
        return config

    async def apply(
        self, db: AsyncSession, config: TenantMeteringConfig, values: dict[str, Any]
    ) -> TenantMeteringConfig:
        """Persist config changes and lift an overage-cap block the new config no longer implies.

        Switching to ``charge`` or ``notify_only`` (or raising the cap) unblocks
        the current period. A block set by the global safety cap stays.
        """
        config = await self._config_repo.update(db, db_obj=config, values=values)

        period = await self._period_repo.get_current(db, tenant_id=config.tenant_id)
        if period is None or not period.is_blocked:
            return config
        if period.blocked_reason not in (None, BlockedReason.OVERAGE_CAP.value):
            return config

        period = await self._ledger.lock_current(db, config.tenant_id)
        if period is None or not period.is_blocked:
            return config
        still_blocked = evaluate_block(
            OveragePolicy(config.overage_policy),
            period.overage_charges,
            config.max_overage_charge,
        )
        if still_blocked is None:
            await self._period_repo.update(
                db,
                db_obj=period,
                values={"is_blocked": False, "blocked_reason": None, "blocked_at": None},
            )
            logger.with_context(tenant_id=str(config.tenant_id), period_id=str(period.id)).info(
                f"Unblocked current period after config change (policy={config.overage_policy})"
            )
        return config

    # ------------------------------------------------------------------
    # Public operations (own their session)
    # ------------------------------------------------------------------

    async def get_config(self, tenant_id: UUID) -> MeteringConfig:
        """Get a tenant's config."""
        async with self._session_factory() as db:
            config = await self._config_repo.get_by_tenant(db, tenant_id=tenant_id)
            if config is None:
                raise MeteringConfigNotFoundError(tenant_id)
            return MeteringConfig.model_validate(config, from_attributes=True)

    async def get_or_create_config(self, tenant_id: UUID) -> MeteringConfig:
        """Get a tenant's config, creating it from defaults if missing."""
        async with self._session_factory() as db:
            config = await self.ensure(db, tenant_id)
            await db.commit()
            return MeteringConfig.model_validate(config, from_attributes=True)

    async def update_config(self, tenant_id: UUID, update: MeteringConfigUpdate) -> MeteringConfig:
        """Apply a validated partial update."""
        values = update.model_dump(mode="json", exclude_unset=True)
        async with self._session_factory() as db:
            try:
                config = await self.ensure(db, tenant_id)
                if values:
                    _check_merged(config, values)
                    config = await self.apply(db, config, values)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            return MeteringConfig.model_validate(config, from_attributes=True)

    async def update_policy(self, tenant_id: UUID, policy: OveragePolicy) -> MeteringConfig:
        """Change only the overage policy."""
        return await self.update_config(tenant_id, MeteringConfigUpdate(overage_policy=policy))
