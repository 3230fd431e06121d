"""Application settings loaded from the environment."""

from typing import List, Optional

from pydantic import Field, PostgresDsn, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from voicemeter.core.config.enums import Environment, LogLevel


class Settings(BaseSettings):
    """Settings for the voicemeter service.

    Every field can be overridden through an environment variable of the same name.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------
    ENVIRONMENT: Environment = Environment.LOCAL
    LOG_LEVEL: LogLevel = LogLevel.INFO
    TESTING: bool = False
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "voicemeter"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "voicemeter"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "voicemeter"
    POSTGRES_SSLMODE: str = "prefer"
    DB_POOL_SIZE: int = 20
    DB_POOL_MAX_OVERFLOW: int = 40

    # ------------------------------------------------------------------
    # Payment provider
    # ------------------------------------------------------------------
    STRIPE_ENABLED: bool = False
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    BILLING_CURRENCY: str = "mxn"

    # ------------------------------------------------------------------
    # Metering defaults (applied when a tenant config is created lazily)
    # ------------------------------------------------------------------
    METERING_DEFAULT_INCLUDED_MINUTES: int = Field(default=200, ge=0)
    METERING_DEFAULT_OVERAGE_PRICE: int = Field(default=350, ge=0)
    METERING_DEFAULT_POLICY: str = "charge"
    METERING_DEFAULT_MAX_OVERAGE_CHARGE: int = Field(default=200_000, ge=0)
    METERING_DEFAULT_ALERT_THRESHOLDS: List[int] = [70, 85, 95, 100]
    METERING_AUTO_ACTIVATE: bool = False
    METERING_GLOBAL_SAFETY_CAP: Optional[int] = Field(default=None, ge=0)
    METERED_PLANS: List[str] = ["growth"]

    # ------------------------------------------------------------------
    # Billing retry policy
    # ------------------------------------------------------------------
    BILLING_RETRY_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    BILLING_RETRY_BASE_DELAY: float = Field(default=1.0, ge=0)
    BILLING_RETRY_MAX_DELAY: float = Field(default=30.0, ge=0)
    BILLING_RETRY_JITTER: float = Field(default=1.0, ge=0)

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------
    ALERT_WEBHOOK_TIMEOUT: float = 10.0
    ALERT_ACTION_URL: str = "https://app.example.com/settings/voice/usage"

    @field_validator("METERING_DEFAULT_POLICY")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        if v not in ("block", "charge", "notify_only"):
            raise ValueError(f"Unknown overage policy: {v}")
        return v

    @field_validator("METERING_DEFAULT_ALERT_THRESHOLDS")
    @classmethod
    def validate_thresholds(cls, v: List[int]) -> List[int]:
        if any(t < 0 or t > 100 for t in v):
            raise ValueError("Alert thresholds must be percentages in [0, 100]")
        return sorted(set(v))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_ASYNC_DATABASE_URI(self) -> str:  # noqa: N802
        """Async SQLAlchemy connection string (asyncpg driver)."""
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD or None,
                host=self.POSTGRES_HOST,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    @property
    def db_pool_size(self) -> int:
        """Base connection pool size."""
        return self.DB_POOL_SIZE

    @property
    def db_pool_max_overflow(self) -> int:
        """Overflow connections allowed above the base pool."""
        return self.DB_POOL_MAX_OVERFLOW

    @property
    def is_local(self) -> bool:
        """Whether human-readable logs should be used."""
        return self.ENVIRONMENT in (Environment.LOCAL, Environment.TEST)
