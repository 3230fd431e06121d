"""Alert dispatcher: one notification per crossed threshold.

The ``usage_alert`` row doubles as the dedup guard and the in-app channel.
It is committed before any external channel is tried, so a crashed or
replayed dispatch never sends the same threshold twice. Each external
channel fails independently of the others.
"""

from datetime import datetime, timezone
from typing import Mapping, Optional
from uuid import UUID

from voicemeter.core.logging import logger
from voicemeter.core.protocols.notifications import AlertChannel, AlertNotification
from voicemeter.db import SessionFactory
from voicemeter.domains.alerts.protocols import AlertDispatcherProtocol
from voicemeter.domains.alerts.repository import UsageAlertRepositoryProtocol
from voicemeter.domains.alerts.types import IN_APP_CHANNEL, build_alert_content, is_quiet_hour
from voicemeter.domains.metering.repository import (
    MeteringConfigRepositoryProtocol,
    UsagePeriodRepositoryProtocol,
)
from voicemeter.domains.metering.types import usage_percent
from voicemeter.models.metering_config import TenantMeteringConfig
from voicemeter.schemas.alert import UsageAlert
from voicemeter.schemas.metering_config import OveragePolicy


class AlertDispatcher(AlertDispatcherProtocol):
    """Persist and deliver threshold alerts."""

    def __init__(
        self,
        alert_repo: UsageAlertRepositoryProtocol,
        config_repo: MeteringConfigRepositoryProtocol,
        period_repo: UsagePeriodRepositoryProtocol,
        channels: Mapping[str, AlertChannel],
        session_factory: SessionFactory,
        action_url: Optional[str] = None,
        currency: str = "mxn",
    ) -> None:
        """Initialize with repositories, channel adapters keyed by name and rendering options."""
        self._alert_repo = alert_repo
        self._config_repo = config_repo
        self._period_repo = period_repo
        self._channels = dict(channels)
        self._session_factory = session_factory
        self._action_url = action_url
        self._currency = currency

    async def dispatch(
        self,
        tenant_id: UUID,
        period_id: UUID,
        threshold: int,
        now: Optional[datetime] = None,
    ) -> Optional[UsageAlert]:
        """Store the alert row, then fan out to the configured channels."""
        now = now or datetime.now(timezone.utc)
        log = logger.with_context(
            tenant_id=str(tenant_id), period_id=str(period_id), threshold=threshold
        )

        async with self._session_factory() as db:
            try:
                config = await self._config_repo.get_by_tenant(db, tenant_id=tenant_id)
                period = await self._period_repo.get(db, period_id=period_id)
                if config is None or period is None or period.tenant_id != tenant_id:
                    log.warning("Alert skipped: tenant config or period not found")
                    return None

                percent = usage_percent(period.included_minutes_used, config.included_minutes)
                content = build_alert_content(
                    threshold,
                    usage_percent=percent,
                    included_minutes=config.included_minutes,
                    included_minutes_used=period.included_minutes_used,
                    overage_minutes_used=period.overage_minutes_used,
                    overage_charges=period.overage_charges,
                    policy=OveragePolicy(config.overage_policy),
                    overage_price_per_minute=config.overage_price_per_minute,
                    max_overage_charge=config.max_overage_charge,
                    currency=self._currency,
                )
                row = await self._alert_repo.create_if_absent(
                    db,
                    values={
                        "tenant_id": tenant_id,
                        "period_id": period_id,
                        "threshold": threshold,
                        "severity": content.severity.value,
                        "usage_percent": round(percent, 2),
                        "minutes_used": period.included_minutes_used
                        + period.overage_minutes_used,
                        "included_minutes": config.included_minutes,
                        "overage_minutes": period.overage_minutes_used,
                        "overage_charges": period.overage_charges,
                        "title": content.title,
                        "message": content.message,
                        "action_url": self._action_url,
                        "sent_via": [IN_APP_CHANNEL],
                    },
                )
                if row is None:
                    await db.rollback()
                    log.info("Alert already sent for this threshold")
                    return None
                alert = UsageAlert.model_validate(row, from_attributes=True)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        sent_via = [IN_APP_CHANNEL]
        for name in self._external_channels(config, now, log):
            channel = self._channels[name]
            try:
                await channel.send(
                    AlertNotification(
                        tenant_id=str(tenant_id),
                        alert_id=str(alert.id),
                        threshold=threshold,
                        severity=alert.severity.value,
                        title=alert.title,
                        message=alert.message,
                        action_url=alert.action_url,
                        email_recipients=list(config.email_recipients or []),
                        webhook_url=config.webhook_url,
                    )
                )
                sent_via.append(name)
            except Exception as e:
                log.error(f"Alert delivery via {name} failed: {e}", exc_info=True)

        if len(sent_via) > 1:
            try:
                async with self._session_factory() as db:
                    await self._alert_repo.set_sent_via(db, alert_id=alert.id, channels=sent_via)
                    await db.commit()
            except Exception as e:
                log.error(f"Failed to record alert channels {sent_via}: {e}", exc_info=True)

        log.info(f"Alert dispatched ({alert.severity.value}) via {', '.join(sent_via)}")
        return alert.model_copy(update={"sent_via": sent_via})

    def _external_channels(self, config: TenantMeteringConfig, now: datetime, log) -> list[str]:
        """Opted-in channels that can deliver right now."""
        wanted = [c for c in (config.alert_channels or []) if c != IN_APP_CHANNEL]
        if not wanted:
            return []
        hour = now.astimezone(timezone.utc).hour
        if is_quiet_hour(hour, config.quiet_hours_start, config.quiet_hours_end):
            log.info(f"Quiet hours; suppressing {', '.join(wanted)}")
            return []

        names = []
        for name in wanted:
            if name not in self._channels:
                log.warning(f"No adapter for alert channel '{name}'")
            elif name == "email" and not config.email_recipients:
                log.info("Email alerts enabled without recipients; skipping")
            elif name == "webhook" and not config.webhook_url:
                log.info("Webhook alerts enabled without a URL; skipping")
            else:
                names.append(name)
        return names
