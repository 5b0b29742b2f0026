"""Configuration management for the mailer service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import build_app_config, load_config
from .models import (
    AppConfig,
    EmailConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    RetryConfig,
    TrackingConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "build_app_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "TrackingConfig",
    "RetryConfig",
    "EmailConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
