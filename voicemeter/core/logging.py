"""Logging configuration.

Exposes a module-level ``logger`` and the ``ContextualLogger`` adapter.
Context dimensions (tenant_id, period_id, stripe_event_id, ...) are attached
with ``with_context`` and travel with every record the adapter emits.

Usage:
    from voicemeter.core.logging import logger

    log = logger.with_context(tenant_id=str(tenant_id))
    log.info("Recorded usage")
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping

from voicemeter.core.config import settings

_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


class _JSONFormatter(logging.Formatter):
    """One JSON object per line, context fields merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class _LocalFormatter(logging.Formatter):
    """Human-readable formatter that appends context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RESERVED_ATTRS and not k.startswith("_")
        }
        if not extras:
            return base
        rendered = " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
        return f"{base} [{rendered}]"


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter carrying structured context and an optional message prefix."""

    def __init__(
        self,
        logger: logging.Logger,
        extra: MutableMapping[str, Any] | None = None,
        prefix: str = "",
    ) -> None:
        """Wrap ``logger`` with the given context dimensions."""
        super().__init__(logger, dict(extra or {}))
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, Any]:
        """Merge adapter context into the record's extra and apply the prefix."""
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return f"{self.prefix}{msg}", kwargs

    def with_context(self, **kwargs: Any) -> "ContextualLogger":
        """Return a child logger with additional context dimensions."""
        merged = dict(self.extra or {})
        merged.update({k: v for k, v in kwargs.items() if v is not None})
        return ContextualLogger(self.logger, merged, prefix=self.prefix)

    def with_prefix(self, prefix: str) -> "ContextualLogger":
        """Return a child logger whose messages start with ``prefix``."""
        return ContextualLogger(self.logger, dict(self.extra or {}), prefix=self.prefix + prefix)


def _configure_root_logger() -> logging.Logger:
    base = logging.getLogger("voicemeter")
    base.setLevel(settings.LOG_LEVEL.value)

    if not base.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if settings.is_local:
            handler.setFormatter(
                _LocalFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
        else:
            handler.setFormatter(_JSONFormatter())
        base.addHandler(handler)
        base.propagate = False

    return base


logger = ContextualLogger(_configure_root_logger())
