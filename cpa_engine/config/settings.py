"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cpa_engine.config.constants import (
    CONFIG_CACHE_TTL_SECONDS,
    CONFIG_SERVICE_TIMEOUT,
    CONFIG_WS_MAX_BACKOFF_SECONDS,
    CONFIG_WS_MAX_RECONNECT_ATTEMPTS,
    CONFIG_WS_RECONNECT_DELAY,
    DATABASE_OPERATION_TIMEOUT,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False
    database_pool_size: int = Field(default=10, ge=1)
    database_max_overflow: int = Field(default=5, ge=0)
    database_pool_timeout: float = Field(
        default=10.0, gt=0, description="Seconds to wait for a pooled connection"
    )
    database_operation_timeout: float = Field(
        default=DATABASE_OPERATION_TIMEOUT,
        gt=0,
        description="Upper bound for a single unit of work against the database",
    )

    # Operation database (source of pending CPA events)
    operation_database_url: str | None = None
    operation_min_deposit: float = Field(
        default=30.0,
        ge=0,
        description="Minimum deposit for a user to be picked up by the batch job",
    )

    # Config service
    config_service_url: str = "http://localhost:3000/api/v1"
    config_service_ws_url: str = "ws://localhost:3000/ws/config"
    config_service_api_key: str | None = None
    config_service_timeout: float = Field(
        default=CONFIG_SERVICE_TIMEOUT, gt=0, description="HTTP timeout in seconds"
    )
    config_cache_ttl: int = Field(
        default=CONFIG_CACHE_TTL_SECONDS,
        gt=0,
        description="Freshness horizon of cached configuration values (seconds)",
    )
    enable_config_push: bool = True
    config_ws_reconnect_delay: float = Field(
        default=CONFIG_WS_RECONNECT_DELAY, gt=0
    )
    config_ws_max_backoff: float = Field(
        default=CONFIG_WS_MAX_BACKOFF_SECONDS, gt=0
    )
    config_ws_max_reconnect_attempts: int = Field(
        default=CONFIG_WS_MAX_RECONNECT_ATTEMPTS, ge=0
    )

    # Eligibility policy: reject events when no rule set is configured
    validation_fail_closed: bool = False

    # Redis (for Dramatiq and the batch lock)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str = "logs/engine.log"

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

            if not self.config_service_api_key:
                logger.warning(
                    'CONFIG_SERVICE_API_KEY is not set. '
                    'Requests to the config service will be unauthenticated.'
                )

        return self

    @field_validator('database_url', 'operation_database_url')
    @classmethod
    def validate_database_url(cls, v: str | None) -> str | None:
        """Validate database URL."""
        if v is None:
            return v
        if not v.startswith(('postgresql://', 'postgresql+asyncpg://')):
            raise ValueError(
                'Database URLs must start with postgresql:// or postgresql+asyncpg://'
            )
        return v

    @field_validator('config_service_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the config service base URL."""
        return v.rstrip('/')


# Global settings instance
settings = Settings()
