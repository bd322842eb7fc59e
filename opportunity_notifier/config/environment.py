"""Environment variable loading and validation."""

import os
import re
from typing import Dict, Optional

from .exceptions import ConfigurationError

# Bot API tokens look like "123456789:AA...".
_BOT_TOKEN_PATTERN = re.compile(r"^\d+:[A-Za-z0-9_-]{20,}$")

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Environment variable -> (section, field) in AppConfig.
OVERRIDE_VARIABLES = {
    "POLL_INTERVAL": ("notifications", "poll_interval"),
    "NOTIFICATION_DELAY_HOURS": ("notifications", "delay_hours"),
    "VISIBILITY_WINDOW_MINUTES": ("notifications", "window_minutes"),
    "RATE_LIMIT_PER_SECOND": ("notifications", "rate_limit_per_second"),
    "DISPATCH_MAX_WORKERS": ("notifications", "max_workers"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
    "APP_ENV": ("logging", "environment"),
}


class EnvironmentConfig:
    """Credentials and connection strings taken from the environment."""

    def __init__(
        self,
        telegram_bot_token: str,
        database_url: str,
        catalog_database_url: str,
        overrides: Optional[Dict[str, str]] = None,
    ):
        self.telegram_bot_token = telegram_bot_token
        self.database_url = database_url
        self.catalog_database_url = catalog_database_url
        self.overrides = overrides or {}

    @property
    def log_level(self) -> Optional[str]:
        return self.overrides.get("LOG_LEVEL")

    def __repr__(self) -> str:
        return (
            f"EnvironmentConfig(database_url={self.database_url!r}, "
            f"catalog_database_url=<set>, telegram_bot_token=<redacted>, "
            f"overrides={sorted(self.overrides)})"
        )


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - TELEGRAM_BOT_TOKEN: Bot API token used for every send
    - BOT_DATABASE_URL: Owned store (recipients, preferences, ledger)
    - CATALOG_DATABASE_URL: Read-only upstream catalog of opportunities

    Optional overrides (take precedence over the config file):
    - POLL_INTERVAL, NOTIFICATION_DELAY_HOURS, VISIBILITY_WINDOW_MINUTES,
      RATE_LIMIT_PER_SECOND, DISPATCH_MAX_WORKERS, LOG_LEVEL, LOG_FORMAT, APP_ENV

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    token = (os.getenv("TELEGRAM_BOT_TOKEN") or "").strip()
    database_url = (os.getenv("BOT_DATABASE_URL") or "").strip()
    catalog_url = (os.getenv("CATALOG_DATABASE_URL") or "").strip()

    if not token:
        errors.append("Missing required environment variable: TELEGRAM_BOT_TOKEN")
    elif not _BOT_TOKEN_PATTERN.match(token):
        errors.append("TELEGRAM_BOT_TOKEN does not look like a Bot API token (expected '<id>:<secret>')")

    if not database_url:
        errors.append("Missing required environment variable: BOT_DATABASE_URL")
    elif "://" not in database_url:
        errors.append(f"Invalid BOT_DATABASE_URL: '{database_url}'. Expected a SQLAlchemy URL")

    if not catalog_url:
        errors.append("Missing required environment variable: CATALOG_DATABASE_URL")
    elif "://" not in catalog_url:
        errors.append("Invalid CATALOG_DATABASE_URL: expected a SQLAlchemy URL")

    overrides = {}
    for name in OVERRIDE_VARIABLES:
        value = os.getenv(name)
        if value is not None and value.strip():
            overrides[name] = value.strip()

    log_level = overrides.get("LOG_LEVEL")
    if log_level is not None:
        if log_level.upper() not in _VALID_LOG_LEVELS:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(_VALID_LOG_LEVELS)}"
            )
        else:
            overrides["LOG_LEVEL"] = log_level.upper()

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Ensure all required environment variables are set",
            ],
        )

    return EnvironmentConfig(
        telegram_bot_token=token,
        database_url=database_url,
        catalog_database_url=catalog_url,
        overrides=overrides,
    )


def apply_environment_overrides(config_dict: dict, env_config: EnvironmentConfig) -> dict:
    """Return a copy of ``config_dict`` with environment overrides merged in."""
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in config_dict.items()}
    for name, value in env_config.overrides.items():
        section, field = OVERRIDE_VARIABLES[name]
        current = merged.get(section)
        if not isinstance(current, dict):
            current = {}
        current[field] = value
        merged[section] = current
    return merged
