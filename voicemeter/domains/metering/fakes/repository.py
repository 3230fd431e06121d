"""In-memory fakes for the metering repositories.

Changes register undo steps on the FakeSession, so a rollback restores
the previous state. ``FakeUsagePeriodRepository.get_current_for_update``
takes a per-tenant asyncio.Lock held until the session's transaction
ends, which makes concurrent recorder calls serialize the way they do on
a real row lock.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError

from voicemeter.models.metering_config import TenantMeteringConfig
from voicemeter.models.usage_period import UsagePeriod
from voicemeter.models.usage_transaction import UsageTransaction
from voicemeter.schemas.metering_config import MeteringConfigCreate


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _apply(db: Any, obj: Any, values: dict[str, Any]) -> None:
    old = {field: getattr(obj, field) for field in values}

    def _undo() -> None:
        for field, value in old.items():
            setattr(obj, field, value)

    for field, value in values.items():
        setattr(obj, field, value)
    db.on_rollback(_undo)


class _Recorder:
    def __init__(self) -> None:
        self._calls: list[tuple] = []
        self._should_raise: Optional[Exception] = None

    def _record(self, name: str, *args: Any) -> None:
        self._calls.append((name, *args))
        if self._should_raise is not None:
            raise self._should_raise

    def call_count(self, method: str) -> int:
        """Return the number of times a method was called."""
        return sum(1 for name, *_ in self._calls if name == method)

    def fail_with(self, exc: Optional[Exception]) -> None:
        """Make every subsequent call raise ``exc`` (None disarms)."""
        self._should_raise = exc


class FakeMeteringConfigRepository(_Recorder):
    """In-memory fake for MeteringConfigRepositoryProtocol."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        super().__init__()
        self._by_tenant: dict[UUID, TenantMeteringConfig] = {}

    def seed_config(self, tenant_id: UUID, **overrides: Any) -> TenantMeteringConfig:
        """Insert a config directly (active by default)."""
        values: dict[str, Any] = {
            "included_minutes": 100,
            "overage_policy": "charge",
            "overage_price_per_minute": 350,
            "max_overage_charge": 200_000,
            "alert_thresholds": [70, 85, 95, 100],
            "is_active": True,
            "alert_channels": ["in_app"],
            "email_recipients": None,
            "webhook_url": None,
            "quiet_hours_start": None,
            "quiet_hours_end": None,
            "external_customer_id": None,
            "external_subscription_id": None,
        }
        values.update(overrides)
        config = TenantMeteringConfig(
            id=uuid4(), tenant_id=tenant_id, created_at=_now(), modified_at=_now(), **values
        )
        self._by_tenant[tenant_id] = config
        return config

    def get_stored(self, tenant_id: UUID) -> Optional[TenantMeteringConfig]:
        """Inspect the stored row without recording a call."""
        return self._by_tenant.get(tenant_id)

    async def get_by_tenant(self, db: Any, *, tenant_id: UUID) -> Optional[TenantMeteringConfig]:
        """Get a tenant's config."""
        self._record("get_by_tenant", tenant_id)
        return self._by_tenant.get(tenant_id)

    async def create_if_absent(
        self, db: Any, *, obj_in: MeteringConfigCreate
    ) -> TenantMeteringConfig:
        """Insert unless present; return the stored row."""
        self._record("create_if_absent", obj_in.tenant_id)
        existing = self._by_tenant.get(obj_in.tenant_id)
        if existing is not None:
            return existing
        values = obj_in.model_dump(mode="json")
        values.pop("tenant_id")
        config = self.seed_config(obj_in.tenant_id, **values)
        db.on_rollback(lambda: self._by_tenant.pop(obj_in.tenant_id, None))
        return config

    async def update(
        self, db: Any, *, db_obj: TenantMeteringConfig, values: dict[str, Any]
    ) -> TenantMeteringConfig:
        """Apply field updates."""
        self._record("update", db_obj.tenant_id, values)
        _apply(db, db_obj, values)
        return db_obj

    async def get_by_external_customer(
        self, db: Any, *, customer_id: str
    ) -> Optional[TenantMeteringConfig]:
        """Find a config by customer reference."""
        self._record("get_by_external_customer", customer_id)
        for config in self._by_tenant.values():
            if config.external_customer_id == customer_id:
                return config
        return None

    async def get_by_external_subscription(
        self, db: Any, *, subscription_id: str
    ) -> Optional[TenantMeteringConfig]:
        """Find a config by subscription reference."""
        self._record("get_by_external_subscription", subscription_id)
        for config in self._by_tenant.values():
            if config.external_subscription_id == subscription_id:
                return config
        return None


class FakeUsageTransactionRepository(_Recorder):
    """In-memory fake for UsageTransactionRepositoryProtocol."""

    def __init__(self) -> None:
        """Initialize an empty log."""
        super().__init__()
        self._rows: list[UsageTransaction] = []

    def all(self, period_id: Optional[UUID] = None) -> list[UsageTransaction]:
        """Every stored transaction, optionally within one period."""
        return [t for t in self._rows if period_id is None or t.period_id == period_id]

    def seed_transaction(self, **values: Any) -> UsageTransaction:
        """Insert a transaction directly."""
        values.setdefault("id", uuid4())
        values.setdefault("recorded_at", _now())
        values.setdefault("billed_reference", None)
        values.setdefault("call_metadata", None)
        values.setdefault("overage_policy", "charge")
        row = UsageTransaction(**values)
        self._rows.append(row)
        return row

    def stamp_billed(self, period_id: UUID, billed_reference: str) -> None:
        """Mirror the billed-reference stamp done alongside mark_billed."""
        for row in self._rows:
            if (
                row.period_id == period_id
                and row.is_overage
                and row.overage_policy == "charge"
                and row.billed_reference is None
            ):
                row.billed_reference = billed_reference

    async def get_by_call_reference(
        self, db: Any, *, tenant_id: UUID, call_reference: str
    ) -> Optional[UsageTransaction]:
        """Find the transaction for a reference."""
        self._record("get_by_call_reference", tenant_id, call_reference)
        for row in self._rows:
            if row.tenant_id == tenant_id and row.call_reference == call_reference:
                return row
        return None

    async def add(self, db: Any, *, obj: UsageTransaction) -> UsageTransaction:
        """Append, enforcing the (tenant_id, call_reference) unique key."""
        self._record("add", obj.tenant_id, obj.call_reference)
        for row in self._rows:
            if row.tenant_id == obj.tenant_id and row.call_reference == obj.call_reference:
                raise IntegrityError(
                    "INSERT INTO usage_transaction", {}, Exception("uq_usage_transaction_call_ref")
                )
        if obj.id is None:
            obj.id = uuid4()
        self._rows.append(obj)
        db.on_rollback(lambda: self._rows.remove(obj))
        await asyncio.sleep(0)
        return obj

    async def list_by_tenant(
        self,
        db: Any,
        *,
        tenant_id: UUID,
        limit: int,
        offset: int,
        period_id: Optional[UUID] = None,
    ) -> Sequence[UsageTransaction]:
        """Transactions newest first."""
        self._record("list_by_tenant", tenant_id)
        rows = [
            t
            for t in self._rows
            if t.tenant_id == tenant_id and (period_id is None or t.period_id == period_id)
        ]
        rows.sort(key=lambda t: t.recorded_at, reverse=True)
        return rows[offset : offset + limit]

    async def count_by_tenant(
        self, db: Any, *, tenant_id: UUID, period_id: Optional[UUID] = None
    ) -> int:
        """Number of transactions."""
        self._record("count_by_tenant", tenant_id)
        return sum(
            1
            for t in self._rows
            if t.tenant_id == tenant_id and (period_id is None or t.period_id == period_id)
        )


class FakeUsagePeriodRepository(_Recorder):
    """In-memory fake for UsagePeriodRepositoryProtocol with emulated row locks."""

    def __init__(
        self,
        config_repo: Optional[FakeMeteringConfigRepository] = None,
        transaction_repo: Optional[FakeUsageTransactionRepository] = None,
    ) -> None:
        """Initialize an empty ledger.

        The config repo backs ``get_unbilled_overage``; the transaction repo
        receives billed-reference stamps from ``mark_billed``.
        """
        super().__init__()
        self._periods: dict[UUID, UsagePeriod] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._config_repo = config_repo
        self._transaction_repo = transaction_repo
        self._mark_billed_failure: Optional[Exception] = None

    # ---- Test helpers ----

    def seed_period(self, tenant_id: UUID, **overrides: Any) -> UsagePeriod:
        """Insert a period directly (current by default)."""
        start = overrides.pop("period_start", datetime(2026, 1, 1, tzinfo=timezone.utc))
        end = overrides.pop("period_end", datetime(2026, 2, 1, tzinfo=timezone.utc))
        values: dict[str, Any] = {
            "included_minutes_used": 0,
            "overage_minutes_used": 0,
            "overage_charges": 0,
            "billable_overage_minutes": 0,
            "billable_charges": 0,
            "total_calls": 0,
            "triggered_thresholds": [],
            "is_current": True,
            "is_blocked": False,
            "blocked_reason": None,
            "blocked_at": None,
            "is_billed": False,
            "billed_reference": None,
            "billing_idempotency_key": None,
            "billed_at": None,
            "invoice_reference": None,
            "paid_at": None,
        }
        values.update(overrides)
        period = UsagePeriod(
            id=values.pop("id", uuid4()),
            tenant_id=tenant_id,
            period_start=start,
            period_end=end,
            created_at=_now(),
            modified_at=_now(),
            **values,
        )
        self._periods[period.id] = period
        return period

    def periods_for(self, tenant_id: UUID) -> list[UsagePeriod]:
        """All periods of a tenant, oldest first."""
        rows = [p for p in self._periods.values() if p.tenant_id == tenant_id]
        return sorted(rows, key=lambda p: p.period_start)

    def current_of(self, tenant_id: UUID) -> Optional[UsagePeriod]:
        """The current period without recording a call."""
        for period in self._periods.values():
            if period.tenant_id == tenant_id and period.is_current:
                return period
        return None

    def fail_next_mark_billed(self, exc: Exception) -> None:
        """Make the next mark_billed raise ``exc``."""
        self._mark_billed_failure = exc

    # ---- Protocol ----

    async def get(self, db: Any, *, period_id: UUID) -> Optional[UsagePeriod]:
        """Get a period by id."""
        self._record("get", period_id)
        return self._periods.get(period_id)

    async def get_current(self, db: Any, *, tenant_id: UUID) -> Optional[UsagePeriod]:
        """Current period, no lock."""
        self._record("get_current", tenant_id)
        return self.current_of(tenant_id)

    async def get_current_for_update(
        self, db: Any, *, tenant_id: UUID
    ) -> Optional[UsagePeriod]:
        """Take the tenant lock (until the transaction ends) and return the current period."""
        self._record("get_current_for_update", tenant_id)
        if tenant_id not in db.held_locks:
            lock = self._locks.setdefault(tenant_id, asyncio.Lock())
            await lock.acquire()
            db.held_locks.add(tenant_id)
            db.on_end(lock.release)
        await asyncio.sleep(0)
        return self.current_of(tenant_id)

    async def create_current_if_absent(
        self, db: Any, *, tenant_id: UUID, period_start: datetime, period_end: datetime
    ) -> bool:
        """Open a current period unless one exists."""
        self._record("create_current_if_absent", tenant_id, period_start, period_end)
        if self.current_of(tenant_id) is not None:
            return False
        period = self.seed_period(tenant_id, period_start=period_start, period_end=period_end)
        db.on_rollback(lambda: self._periods.pop(period.id, None))
        return True

    async def update(self, db: Any, *, db_obj: UsagePeriod, values: dict[str, Any]) -> UsagePeriod:
        """Apply field updates."""
        self._record("update", db_obj.id, values)
        _apply(db, db_obj, values)
        await asyncio.sleep(0)
        return db_obj

    async def list_by_tenant(
        self, db: Any, *, tenant_id: UUID, limit: int, offset: int
    ) -> Sequence[UsagePeriod]:
        """Periods newest first."""
        self._record("list_by_tenant", tenant_id)
        return list(reversed(self.periods_for(tenant_id)))[offset : offset + limit]

    async def count_by_tenant(self, db: Any, *, tenant_id: UUID) -> int:
        """Number of periods."""
        self._record("count_by_tenant", tenant_id)
        return len(self.periods_for(tenant_id))

    async def get_due_for_rollover(self, db: Any, *, now: datetime) -> Sequence[UsagePeriod]:
        """Current periods whose end has passed."""
        self._record("get_due_for_rollover", now)
        return [p for p in self._periods.values() if p.is_current and p.period_end <= now]

    async def get_unbilled_overage(
        self, db: Any, *, now: datetime
    ) -> Sequence[tuple[UsagePeriod, TenantMeteringConfig]]:
        """Billable periods paired with their config."""
        self._record("get_unbilled_overage", now)
        rows = []
        for period in sorted(self._periods.values(), key=lambda p: p.period_start):
            config = self._config_repo.get_stored(period.tenant_id) if self._config_repo else None
            if config is None:
                continue
            if period.billable_overage_minutes <= 0 or period.is_billed:
                continue
            if period.is_current and period.period_end > now:
                continue
            rows.append((period, config))
        return rows

    async def mark_billed(
        self,
        db: Any,
        *,
        period_id: UUID,
        billed_reference: str,
        idempotency_key: str,
        billed_at: datetime,
    ) -> bool:
        """Flag billed unless already billed."""
        self._record("mark_billed", period_id, billed_reference)
        if self._mark_billed_failure is not None:
            exc, self._mark_billed_failure = self._mark_billed_failure, None
            raise exc
        period = self._periods.get(period_id)
        if period is None or period.is_billed:
            return False
        _apply(
            db,
            period,
            {
                "is_billed": True,
                "billed_reference": billed_reference,
                "billing_idempotency_key": idempotency_key,
                "billed_at": billed_at,
            },
        )
        if self._transaction_repo is not None:
            self._transaction_repo.stamp_billed(period_id, billed_reference)
        return True

    async def get_by_idempotency_key(
        self, db: Any, *, idempotency_key: str
    ) -> Optional[UsagePeriod]:
        """Find the period billed under a key."""
        self._record("get_by_idempotency_key", idempotency_key)
        for period in self._periods.values():
            if period.billing_idempotency_key == idempotency_key:
                return period
        return None
