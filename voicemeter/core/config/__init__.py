"""Configuration module for the voicemeter service.

Provides centralized configuration management with type-safe enums.

Usage:
    from voicemeter.core.config import settings, Environment

    if settings.ENVIRONMENT == Environment.PRD:
        ...
"""

from voicemeter.core.config.enums import Environment, LogLevel
from voicemeter.core.config.settings import Settings

__all__ = [
    "Settings",
    "Environment",
    "LogLevel",
    "settings",
]

# Singleton settings instance
settings = Settings()
