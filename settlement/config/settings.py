"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from settlement.config.business_constants import (
    DEFAULT_BENEFIT_DAILY_RATE,
    DEFAULT_BENEFIT_DAYS,
    DEFAULT_DIRECT_PERCENT,
    DEFAULT_DIRECT_UNLOCK_DAYS,
    DEFAULT_PARENT_PERCENT,
    DEFAULT_PARENT_UNLOCK_DAYS,
    MAX_SCHEDULE_DAYS,
    MAX_UNLOCK_DAYS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (rate configuration store and Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0
    task_max_retries: int = Field(
        default=3, ge=0, description="Retries of a failed background task"
    )

    # External ledger
    ledger_base_url: str = Field(
        default="http://localhost:8000/api/ledger",
        description="Base URL of the ledger posting API"
    )
    ledger_api_token: str | None = None
    ledger_timeout_seconds: float = Field(
        default=10.0, gt=0, le=120,
        description="Timeout for a single ledger posting call"
    )

    # Settlement sweep
    settlement_enabled: bool = Field(
        default=True,
        description="Kill switch for releasing benefits and commissions"
    )
    settlement_cron: str = Field(
        default="0 2 * * *",
        description="Cron expression for the periodic settlement sweep"
    )
    settlement_timezone: str = "UTC"
    settlement_concurrency: int = Field(
        default=4, ge=1, le=64,
        description="Schedules settled in parallel within one sweep"
    )

    # Rate configuration
    rate_config_cache_ttl_seconds: int = Field(
        default=60, ge=0, le=3600,
        description="How long rate configuration is cached in-process"
    )
    rate_config_redis_key: str = "settlement:rates"

    # Fallback rates (used when the configuration store is unavailable)
    benefit_daily_rate: Decimal = Field(
        default=DEFAULT_BENEFIT_DAILY_RATE, gt=0, le=1
    )
    benefit_days: int = Field(
        default=DEFAULT_BENEFIT_DAYS, ge=1, le=MAX_SCHEDULE_DAYS
    )
    direct_percent: Decimal = Field(default=DEFAULT_DIRECT_PERCENT, ge=0, le=1)
    direct_unlock_days: int = Field(
        default=DEFAULT_DIRECT_UNLOCK_DAYS, ge=1, le=MAX_UNLOCK_DAYS
    )
    parent_percent: Decimal = Field(default=DEFAULT_PARENT_PERCENT, ge=0, le=1)
    parent_unlock_days: int = Field(
        default=DEFAULT_PARENT_UNLOCK_DAYS, ge=1, le=MAX_UNLOCK_DAYS
    )

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    health_check_port: int = Field(
        default=8081, ge=1, le=65535, description="Health check HTTP server port"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )
            if not self.ledger_api_token:
                logger.warning(
                    'LEDGER_API_TOKEN is not set. '
                    'Ledger postings will be sent unauthenticated.'
                )
        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(('postgresql://', 'postgresql+asyncpg://')):
            raise ValueError(
                'DATABASE_URL must start with postgresql:// or postgresql+asyncpg://'
            )
        return v

    @field_validator('ledger_base_url')
    @classmethod
    def validate_ledger_base_url(cls, v: str) -> str:
        """Validate ledger URL and strip trailing slash."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('LEDGER_BASE_URL must be an http(s) URL')
        return v.rstrip('/')

    @field_validator('settlement_cron')
    @classmethod
    def validate_settlement_cron(cls, v: str) -> str:
        """Validate cron expression format."""
        try:
            CronTrigger.from_crontab(v)
        except ValueError as exc:
            raise ValueError(f'Invalid SETTLEMENT_CRON expression: {v}') from exc
        return v

    @property
    def async_database_url(self) -> str:
        """Database URL with the asyncpg driver."""
        if self.database_url.startswith('postgresql://'):
            return self.database_url.replace(
                'postgresql://', 'postgresql+asyncpg://', 1
            )
        return self.database_url


# Global settings instance
settings = Settings()
