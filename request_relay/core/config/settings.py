#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

Type-safe, environment-based configuration shared by every relay component
(scheduler, executor, reconciler, intake). All configuration lives here so the
three processes agree on topic names and Redis key layout.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Grouped read-only views (settings.redis, settings.bus, ...)
- Easy testing with reload_settings()
"""

from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from request_relay.core.exceptions import ConfigurationError


class RedisSettings(BaseSettings):
    """
    Redis connection configuration.

    STAGE-REDIS: Connection pool used by the bus, the job store and the
    request store. One pool per process.
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_KEY_PREFIX: str = Field(default="relay", description="Prefix for every key the relay owns")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class BusSettings(BaseSettings):
    """
    Message bus topology and consumer configuration.

    STAGE-BUS: Topic base names are suffixed with the normalized tenant id
    at runtime, e.g. "perform-request" -> "perform-request-acme".
    """

    TENANTS: Annotated[list[str], NoDecode] = Field(default=["default"], description="Tenants served by this process")

    PLAN_REQUEST_JOB_EXCHANGE: str = Field(default="plan-request-job")
    SCHEDULE_ROUTING_KEY: str = Field(default="schedule-request")
    SCHEDULED_REQUESTS_QUEUE: str = Field(default="scheduled-requests")

    PERFORM_REQUEST_EXCHANGE: str = Field(default="perform-request")
    PERFORM_REQUEST_ROUTING_KEY: str = Field(default="perform-request")
    PERFORM_REQUEST_QUEUE: str = Field(default="perform-request")

    REQUEST_COMPLETED_EXCHANGE: str = Field(default="request-completed")
    REQUEST_COMPLETED_ROUTING_KEY: str = Field(default="request-completed")
    REQUEST_COMPLETED_QUEUE: str = Field(default="request-completed")

    BUS_CONSUMER_BATCH_SIZE: int = Field(default=10, description="Messages read per XREADGROUP call")
    BUS_CONSUMER_BLOCK_MS: int = Field(default=2000, description="Blocking read timeout")
    BUS_ERROR_BACKOFF_SECONDS: float = Field(default=5.0, description="Backoff after consumer loop errors")
    BUS_SHUTDOWN_TIMEOUT_SECONDS: float = Field(default=10.0, description="Drain timeout for in-flight handlers")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class SchedulerSettings(BaseSettings):
    """
    Delayed execution scheduler configuration.

    STAGE-SCHED: Tick cadence, per-tick batch, recovery concurrency and the
    lifetime after which a job lock is considered stale.
    """

    SCHEDULER_TICK_SECONDS: float = Field(default=5.0, description="Interval between due-job scans")
    SCHEDULER_BATCH_SIZE: int = Field(default=20, description="Maximum jobs fired per tick")
    SCHEDULER_RECOVERY_CONCURRENCY: int = Field(default=5, description="Parallel missed-job executions at startup")
    SCHEDULER_LOCK_LIFETIME_SECONDS: int = Field(default=600, description="Age after which a lock is stale")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ExecutorSettings(BaseSettings):
    """
    Request executor configuration.

    STAGE-EXEC: Outbound HTTP client behaviour.
    """

    EXECUTOR_HTTP_TIMEOUT: float = Field(default=30.0, description="Outbound request timeout in seconds")
    EXECUTOR_FOLLOW_REDIRECTS: bool = Field(default=True, description="Follow 3xx responses")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Request Relay", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from request_relay.core.config.settings import get_settings

        settings = get_settings()
        host = settings.redis.REDIS_HOST
        tick = settings.scheduler.SCHEDULER_TICK_SECONDS
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_KEY_PREFIX: str = Field(default="relay", description="Prefix for every key the relay owns")

    # Tenants (comma separated in the environment)
    TENANTS: Annotated[list[str], NoDecode] = Field(
        default=["default"], description="Tenants served by this process"
    )

    # Topic settings
    PLAN_REQUEST_JOB_EXCHANGE: str = Field(default="plan-request-job")
    SCHEDULE_ROUTING_KEY: str = Field(default="schedule-request")
    SCHEDULED_REQUESTS_QUEUE: str = Field(default="scheduled-requests")
    PERFORM_REQUEST_EXCHANGE: str = Field(default="perform-request")
    PERFORM_REQUEST_ROUTING_KEY: str = Field(default="perform-request")
    PERFORM_REQUEST_QUEUE: str = Field(default="perform-request")
    REQUEST_COMPLETED_EXCHANGE: str = Field(default="request-completed")
    REQUEST_COMPLETED_ROUTING_KEY: str = Field(default="request-completed")
    REQUEST_COMPLETED_QUEUE: str = Field(default="request-completed")

    # Consumer settings
    BUS_CONSUMER_BATCH_SIZE: int = Field(default=10, description="Messages read per XREADGROUP call")
    BUS_CONSUMER_BLOCK_MS: int = Field(default=2000, description="Blocking read timeout")
    BUS_ERROR_BACKOFF_SECONDS: float = Field(default=5.0, description="Backoff after consumer loop errors")
    BUS_SHUTDOWN_TIMEOUT_SECONDS: float = Field(default=10.0, description="Drain timeout for in-flight handlers")

    # Scheduler settings
    SCHEDULER_TICK_SECONDS: float = Field(default=5.0, description="Interval between due-job scans")
    SCHEDULER_BATCH_SIZE: int = Field(default=20, description="Maximum jobs fired per tick")
    SCHEDULER_RECOVERY_CONCURRENCY: int = Field(default=5, description="Parallel missed-job executions at startup")
    SCHEDULER_LOCK_LIFETIME_SECONDS: int = Field(default=600, description="Age after which a lock is stale")

    # Executor settings
    EXECUTOR_HTTP_TIMEOUT: float = Field(default=30.0, description="Outbound request timeout in seconds")
    EXECUTOR_FOLLOW_REDIRECTS: bool = Field(default=True, description="Follow 3xx responses")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Request Relay", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    @field_validator("TENANTS", mode="before")
    @classmethod
    def split_tenants(cls, v):
        """Accept "acme, globex" as well as a list."""
        if isinstance(v, str):
            v = v.split(",")
        tenants = [t.strip() for t in v if t and t.strip()]
        if not tenants:
            raise ValueError("TENANTS must name at least one tenant")
        return tenants

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("SCHEDULER_RECOVERY_CONCURRENCY", "SCHEDULER_BATCH_SIZE", "BUS_CONSUMER_BATCH_SIZE")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    # Nested configuration views
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_KEY_PREFIX=self.REDIS_KEY_PREFIX,
        )

    @property
    def bus(self) -> 'BusSettings':
        """Get message bus settings."""
        return BusSettings(
            TENANTS=self.TENANTS,
            PLAN_REQUEST_JOB_EXCHANGE=self.PLAN_REQUEST_JOB_EXCHANGE,
            SCHEDULE_ROUTING_KEY=self.SCHEDULE_ROUTING_KEY,
            SCHEDULED_REQUESTS_QUEUE=self.SCHEDULED_REQUESTS_QUEUE,
            PERFORM_REQUEST_EXCHANGE=self.PERFORM_REQUEST_EXCHANGE,
            PERFORM_REQUEST_ROUTING_KEY=self.PERFORM_REQUEST_ROUTING_KEY,
            PERFORM_REQUEST_QUEUE=self.PERFORM_REQUEST_QUEUE,
            REQUEST_COMPLETED_EXCHANGE=self.REQUEST_COMPLETED_EXCHANGE,
            REQUEST_COMPLETED_ROUTING_KEY=self.REQUEST_COMPLETED_ROUTING_KEY,
            REQUEST_COMPLETED_QUEUE=self.REQUEST_COMPLETED_QUEUE,
            BUS_CONSUMER_BATCH_SIZE=self.BUS_CONSUMER_BATCH_SIZE,
            BUS_CONSUMER_BLOCK_MS=self.BUS_CONSUMER_BLOCK_MS,
            BUS_ERROR_BACKOFF_SECONDS=self.BUS_ERROR_BACKOFF_SECONDS,
            BUS_SHUTDOWN_TIMEOUT_SECONDS=self.BUS_SHUTDOWN_TIMEOUT_SECONDS,
        )

    @property
    def scheduler(self) -> 'SchedulerSettings':
        """Get scheduler settings."""
        return SchedulerSettings(
            SCHEDULER_TICK_SECONDS=self.SCHEDULER_TICK_SECONDS,
            SCHEDULER_BATCH_SIZE=self.SCHEDULER_BATCH_SIZE,
            SCHEDULER_RECOVERY_CONCURRENCY=self.SCHEDULER_RECOVERY_CONCURRENCY,
            SCHEDULER_LOCK_LIFETIME_SECONDS=self.SCHEDULER_LOCK_LIFETIME_SECONDS,
        )

    @property
    def executor(self) -> 'ExecutorSettings':
        """Get executor settings."""
        return ExecutorSettings(
            EXECUTOR_HTTP_TIMEOUT=self.EXECUTOR_HTTP_TIMEOUT,
            EXECUTOR_FOLLOW_REDIRECTS=self.EXECUTOR_FOLLOW_REDIRECTS,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def _load() -> Settings:
    try:
        return Settings()
    except PydanticValidationError as e:
        raise ConfigurationError(
            "Invalid configuration",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance

    Raises:
        ConfigurationError: If the environment holds invalid values
    """
    global _settings

    if _settings is None:
        _settings = _load()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = _load()
    return _settings
