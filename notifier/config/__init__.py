"""Configuration management for the notification core."""

from .duration import DurationParseError, parse_duration, validate_duration_range
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import build_app_config, load_config
from .models import (
    AppConfig,
    BatchConfig,
    BusinessContext,
    LogFormat,
    LogLevel,
    LoggingConfig,
    RetryConfig,
    SchedulerConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "build_app_config",
    "load_environment_config",
    "parse_duration",
    "validate_duration_range",
    # Configuration models
    "AppConfig",
    "RetryConfig",
    "BatchConfig",
    "SchedulerConfig",
    "BusinessContext",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
    "DurationParseError",
]
