"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class RetryConfig(BaseModel):
    """Retry ceiling and backoff constants.

    Shared by the notification service (which schedules retries) and the
    retry scheduler (which selects due entries), so both agree on when a
    lineage is exhausted.
    """

    max_retries: int = Field(
        3, ge=0, le=10, description="Total send attempts per lineage, including the first"
    )
    base_delay_seconds: int = Field(
        30, ge=1, le=3600, description="Delay before the first retry"
    )
    max_delay_seconds: int = Field(
        300, ge=1, le=86400, description="Upper bound for any single retry delay"
    )
    jitter_factor: float = Field(
        0.0, ge=0.0, le=1.0, description="Random spread applied to each delay (0.3 = +/-30%)"
    )

    @model_validator(mode="after")
    def validate_delay_bounds(self):
        """Ensure the delay cap is not below the base delay."""
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError(
                f"max_delay_seconds ({self.max_delay_seconds}) must be >= "
                f"base_delay_seconds ({self.base_delay_seconds})"
            )
        return self


class BatchConfig(BaseModel):
    """Batch dispatch settings."""

    concurrency: int = Field(
        10, ge=1, le=100, description="Maximum in-flight sends within one batch"
    )
    retry_batch_size: int = Field(
        100, ge=1, le=10000, description="Maximum entries picked up per retry sweep"
    )


class SchedulerConfig(BaseModel):
    """Periodic retry sweep settings."""

    enabled: bool = Field(True, description="Run the retry sweep on a timer in daemon mode")
    retry_interval: str = Field("1m", description="Interval between retry sweeps")

    # Computed field
    retry_interval_seconds: Optional[int] = None

    @field_validator("retry_interval")
    @classmethod
    def validate_retry_interval(cls, v: str) -> str:
        """Validate the interval parses and lies between 10 seconds and one day."""
        try:
            validate_duration_range(parse_duration(v), min_seconds=10, max_seconds=86400)
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_interval_seconds(self):
        self.retry_interval_seconds = parse_duration(self.retry_interval)
        return self


class BusinessContext(BaseModel):
    """Business details exposed to every template as ``business``."""

    name: str = Field("Puppy Day", min_length=1)
    address: str = "14936 Leffingwell Rd, La Mirada, CA 90638"
    phone: str = "(657) 252-2903"
    email: str = "puppyday14936@gmail.com"
    hours: str = "Monday-Saturday, 9:00 AM - 5:00 PM"
    website: Optional[str] = "https://thepuppyday.com"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification core.

    Every section has defaults, so an empty mapping is a valid config.
    """

    retry: RetryConfig = Field(default_factory=RetryConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    business: BusinessContext = Field(default_factory=BusinessContext)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid"}
