"""Configuration management for Hookline."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class RetryPolicy(BaseModel):
    """Attempt ceiling and exponential backoff schedule for deliveries.

    With the defaults a delivery that keeps failing is retried after
    1, 2, 4 and 8 minutes, and dead-lettered when the fifth attempt fails.

    Attributes:
        max_attempts: Maximum HTTP attempts per delivery.
        initial_backoff_seconds: Delay after the first failed attempt.
        max_backoff_seconds: Upper bound for any single delay.
    """

    max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum HTTP attempts per delivery",
    )
    initial_backoff_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Delay after the first failed attempt (doubles each attempt)",
    )
    max_backoff_seconds: float = Field(
        default=24 * 60 * 60.0,
        gt=0.0,
        description="Upper bound for a single retry delay",
    )

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> RetryPolicy:
        """Ensure the backoff cap is not below the initial delay."""
        if self.max_backoff_seconds < self.initial_backoff_seconds:
            raise ValueError(
                f"max_backoff_seconds ({self.max_backoff_seconds}) must be >= "
                f"initial_backoff_seconds ({self.initial_backoff_seconds})"
            )
        return self

    @property
    def initial_backoff(self) -> timedelta:
        return timedelta(seconds=self.initial_backoff_seconds)

    @property
    def max_backoff(self) -> timedelta:
        return timedelta(seconds=self.max_backoff_seconds)

    def next_delay(self, attempt: int) -> timedelta:
        """Delay before the attempt that follows failed attempt number ``attempt``."""
        from hookline.webhooks.backoff import calculate_backoff

        return calculate_backoff(attempt, self.initial_backoff, self.max_backoff)

    def is_exhausted(self, attempts: int) -> bool:
        """Whether ``attempts`` completed attempts reach the ceiling."""
        return attempts >= self.max_attempts


class SchedulerSettings(BaseModel):
    """Background scan loop and worker pool settings.

    Attributes:
        workers: Number of concurrent delivery workers.
        scan_interval_seconds: How often to look for due deliveries.
        batch_size: Maximum deliveries claimed per scan.
        queue_size: Capacity of the in-process work queue.
        claim_ttl_seconds: Age after which an unreleased claim may be taken over.
        shutdown_grace_seconds: How long stop() waits for in-flight attempts.
        cleanup_interval_seconds: How often terminal deliveries are purged.
        retention_days: Age after which terminal deliveries are purged.
    """

    workers: int = Field(default=3, ge=1, le=64, description="Concurrent delivery workers")
    scan_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds between scans for due deliveries",
    )
    batch_size: int = Field(default=50, ge=1, le=1000, description="Deliveries claimed per scan")
    queue_size: int = Field(default=100, ge=1, description="In-process work queue capacity")
    claim_ttl_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds before an abandoned claim can be taken over",
    )
    shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Seconds stop() waits for in-flight deliveries before cancelling",
    )
    cleanup_interval_seconds: float = Field(
        default=24 * 60 * 60.0,
        gt=0.0,
        description="Seconds between retention cleanups",
    )
    retention_days: int = Field(
        default=30,
        ge=1,
        description="Days to keep delivered and dead deliveries",
    )


class DebounceSettings(BaseModel):
    """Coalescing of rapid-fire events for the same entity.

    Attributes:
        enabled: Whether dispatch_event() goes through the debouncer.
        interval_seconds: Quiet period that triggers dispatch.
        max_wait_seconds: Dispatch no later than this after the first event.
    """

    enabled: bool = Field(default=True, description="Debounce dispatch_event() calls")
    interval_seconds: float = Field(default=1.0, gt=0.0, description="Debounce window")
    max_wait_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Maximum time an event may be held back",
    )

    @model_validator(mode="after")
    def validate_windows(self) -> DebounceSettings:
        """The hold-back ceiling must cover at least one debounce window."""
        if self.max_wait_seconds < self.interval_seconds:
            raise ValueError(
                f"max_wait_seconds ({self.max_wait_seconds}) must be >= "
                f"interval_seconds ({self.interval_seconds})"
            )
        return self


class Settings(BaseSettings):
    """Hookline configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKLINE_ prefix. Nested settings use a double underscore:
        HOOKLINE_DATABASE_URL=postgresql+asyncpg://user:pass@db/hookline
        HOOKLINE_RETRY__MAX_ATTEMPTS=8
        HOOKLINE_SCHEDULER__WORKERS=5
    """

    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./hookline.db",
        description="SQLAlchemy async database URL",
    )
    database_echo: bool = Field(default=False, description="Log SQL statements")

    # Outbound HTTP
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Total time allowed for one delivery attempt",
    )
    max_response_bytes: int = Field(
        default=10 * 1024,
        ge=0,
        description="Response body bytes kept for diagnostics",
    )
    user_agent: str = Field(default="hookline/0.1.0", description="User-Agent header value")

    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Retry schedule")
    scheduler: SchedulerSettings = Field(
        default_factory=SchedulerSettings,
        description="Scan loop and worker pool",
    )
    debounce: DebounceSettings = Field(
        default_factory=DebounceSettings,
        description="Event debouncing",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log output format")

    model_config = {
        "env_prefix": "HOOKLINE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_claim_ttl(self) -> Settings:
        """A claim must outlive the longest possible attempt."""
        if self.scheduler.claim_ttl_seconds <= self.request_timeout_seconds:
            raise ValueError(
                f"scheduler.claim_ttl_seconds ({self.scheduler.claim_ttl_seconds}) must be > "
                f"request_timeout_seconds ({self.request_timeout_seconds})"
            )
        return self

    @model_validator(mode="after")
    def validate_production_settings(self) -> Settings:
        """Warn about development-only storage in production."""
        if self.env == "production" and self.database_url.startswith("sqlite"):
            logger.warning(
                "SQLite in production: claims are only exclusive within one host"
            )
        return self


settings = Settings()
