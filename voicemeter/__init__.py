"""Voicemeter: usage metering and overage billing for per-tenant voice minutes."""
