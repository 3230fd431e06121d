"""In-memory fake for the usage alert repository."""

from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

from voicemeter.models.usage_alert import UsageAlert


class FakeUsageAlertRepository:
    """In-memory fake for UsageAlertRepositoryProtocol.

    Enforces the (tenant_id, period_id, threshold) dedup key and registers
    undo steps on the fake session.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._rows: list[UsageAlert] = []
        self._calls: list[tuple] = []
        self._should_raise: Optional[Exception] = None

    def call_count(self, method: str) -> int:
        """Return the number of times a method was called."""
        return sum(1 for name, *_ in self._calls if name == method)

    def fail_with(self, exc: Optional[Exception]) -> None:
        """Make every subsequent call raise ``exc`` (None disarms)."""
        self._should_raise = exc

    def _record(self, name: str, *args: Any) -> None:
        self._calls.append((name, *args))
        if self._should_raise is not None:
            raise self._should_raise

    def all(self, tenant_id: Optional[UUID] = None) -> list[UsageAlert]:
        """Every stored alert, optionally for one tenant."""
        return [a for a in self._rows if tenant_id is None or a.tenant_id == tenant_id]

    def seed_alert(self, tenant_id: UUID, period_id: UUID, threshold: int, **overrides: Any):
        """Insert an alert directly."""
        values: dict[str, Any] = {
            "severity": "info",
            "usage_percent": float(threshold),
            "minutes_used": threshold,
            "included_minutes": 100,
            "overage_minutes": 0,
            "overage_charges": 0,
            "title": f"Threshold {threshold}",
            "message": f"{threshold}% used",
            "action_url": None,
            "sent_via": ["in_app"],
            "acknowledged": False,
            "acknowledged_at": None,
            "acknowledged_by": None,
            "created_at": datetime.now(timezone.utc),
        }
        values.update(overrides)
        row = UsageAlert(
            id=values.pop("id", uuid4()),
            tenant_id=tenant_id,
            period_id=period_id,
            threshold=threshold,
            modified_at=datetime.now(timezone.utc),
            **values,
        )
        self._rows.append(row)
        return row

    async def create_if_absent(self, db: Any, *, values: dict[str, Any]) -> Optional[UsageAlert]:
        """Insert unless the dedup key is taken."""
        self._record("create_if_absent", values["tenant_id"], values["threshold"])
        for row in self._rows:
            if (row.tenant_id, row.period_id, row.threshold) == (
                values["tenant_id"],
                values["period_id"],
                values["threshold"],
            ):
                return None
        fields = dict(values)
        row = self.seed_alert(
            fields.pop("tenant_id"), fields.pop("period_id"), fields.pop("threshold"), **fields
        )
        db.on_rollback(lambda: self._rows.remove(row))
        return row

    async def set_sent_via(self, db: Any, *, alert_id: UUID, channels: list[str]) -> None:
        """Record the delivering channels."""
        self._record("set_sent_via", alert_id, channels)
        for row in self._rows:
            if row.id == alert_id:
                previous = row.sent_via
                row.sent_via = list(channels)
                db.on_rollback(
                    lambda row=row, previous=previous: setattr(row, "sent_via", previous)
                )

    async def get_for_tenant(
        self, db: Any, *, tenant_id: UUID, alert_id: UUID
    ) -> Optional[UsageAlert]:
        """Get an alert scoped to its tenant."""
        self._record("get_for_tenant", tenant_id, alert_id)
        for row in self._rows:
            if row.id == alert_id and row.tenant_id == tenant_id:
                return row
        return None

    def _filtered(self, tenant_id: UUID, unacknowledged_only: bool) -> list[UsageAlert]:
        return [
            a
            for a in self._rows
            if a.tenant_id == tenant_id and not (unacknowledged_only and a.acknowledged)
        ]

    async def list_by_tenant(
        self,
        db: Any,
        *,
        tenant_id: UUID,
        unacknowledged_only: bool,
        limit: int,
        offset: int,
    ) -> Sequence[UsageAlert]:
        """Alerts newest first."""
        self._record("list_by_tenant", tenant_id)
        rows = sorted(
            self._filtered(tenant_id, unacknowledged_only),
            key=lambda a: a.created_at,
            reverse=True,
        )
        return rows[offset : offset + limit]

    async def count_by_tenant(
        self, db: Any, *, tenant_id: UUID, unacknowledged_only: bool
    ) -> int:
        """Number of alerts."""
        self._record("count_by_tenant", tenant_id)
        return len(self._filtered(tenant_id, unacknowledged_only))

    async def update(self, db: Any, *, db_obj: UsageAlert, values: dict[str, Any]) -> UsageAlert:
        """Apply field updates."""
        self._record("update", db_obj.id, values)
        old = {field: getattr(db_obj, field) for field in values}
        for field, value in values.items():
            setattr(db_obj, field, value)

        def _undo() -> None:
            for field, value in old.items():
                setattr(db_obj, field, value)

        db.on_rollback(_undo)
        return db_obj
