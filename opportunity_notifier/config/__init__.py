"""Configuration management for the opportunity notifier."""

from .duration import DurationParseError, parse_duration
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, validate_config_file
from .models import (
    AppConfig,
    CatalogSettings,
    LogFormat,
    LogLevel,
    LoggingConfig,
    NotificationSettings,
    TelegramSettings,
)

__all__ = [
    "load_config",
    "validate_config_file",
    "load_environment_config",
    "parse_duration",
    "AppConfig",
    "NotificationSettings",
    "TelegramSettings",
    "CatalogSettings",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
    "DurationParseError",
]
