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


class NotificationSettings(BaseModel):
    """Timing and throughput of the delivery pipeline."""

    poll_interval: str = Field("5m", description="How often a tick runs")
    delay_hours: float = Field(
        12.0, ge=0, le=168, description="Hours an opportunity must be public before it is announced"
    )
    window_minutes: int = Field(
        5, ge=1, le=120, description="Half-width of the visibility window around the delay point"
    )
    rate_limit_per_second: float = Field(
        30.0, gt=0, le=1000, description="Upper bound on outbound messages per second"
    )
    opportunity_pause_seconds: float = Field(
        1.0, ge=0, le=60, description="Pause between consecutive opportunities within a tick"
    )
    max_workers: int = Field(
        1, ge=1, le=64, description="Concurrent sends for a single opportunity"
    )
    deactivate_unreachable: bool = Field(
        True, description="Pause recipients whose chat rejects the bot"
    )
    include_grants: bool = Field(True, description="Announce open grants on every tick")

    # Computed field
    poll_interval_seconds: Optional[int] = None

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: str) -> str:
        """Validate poll interval format and bounds."""
        try:
            validate_duration_range(parse_duration(v), min_seconds=60, max_seconds=86400)
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_poll_seconds(self):
        self.poll_interval_seconds = parse_duration(self.poll_interval)
        return self


class TelegramSettings(BaseModel):
    """Bot API connection settings. The token itself lives in the environment."""

    api_base_url: str = Field("https://api.telegram.org", description="Bot API root URL")
    request_timeout: int = Field(10, ge=1, le=120, description="Per-request timeout (seconds)")
    disable_link_preview: bool = Field(False, description="Suppress link previews in alerts")

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        stripped = v.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("api_base_url must be an http(s) URL")
        return stripped


class CatalogSettings(BaseModel):
    """How opportunities are read from the upstream catalog and linked to."""

    listing_base_url: str = Field(
        "https://earn.superteam.fun", description="Public site hosting listing pages"
    )
    utm_source: Optional[str] = Field(
        "telegrambot", description="utm_source tag appended to outbound links"
    )
    query_timeout_seconds: int = Field(
        30, ge=1, le=600, description="Upper bound on a single catalog query"
    )

    @field_validator("listing_base_url")
    @classmethod
    def normalize_base_url(cls, v: str) -> str:
        stripped = v.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("listing_base_url must be an http(s) URL")
        return stripped

    @field_validator("utm_source")
    @classmethod
    def blank_utm_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )
    environment: str = Field("local", min_length=1, description="Environment label on every record")

    model_config = {"use_enum_values": True, "validate_default": True}


class AppConfig(BaseModel):
    """Root configuration object for the opportunity notifier.

    Every section has defaults, so an empty document is a valid
    configuration; the environment supplies credentials and overrides.
    """

    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid"}
