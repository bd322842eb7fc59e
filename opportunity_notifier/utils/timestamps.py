"""UTC helpers.

Every datetime that crosses a module boundary in this package is
timezone-aware UTC. The catalog and the owned store may hand back naive
values; those are interpreted as UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return ``dt`` as aware UTC.

    Naive values are treated as UTC; aware values are converted.

    Example:
        >>> ensure_utc(datetime(2025, 11, 4, 12, 0)).tzinfo == timezone.utc
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    """Drop tzinfo after converting to UTC, for stores holding naive UTC columns."""
    return ensure_utc(dt).replace(tzinfo=None)


def start_of_utc_day(dt: Optional[datetime] = None) -> datetime:
    """Midnight UTC of the day containing ``dt`` (default: now)."""
    dt = ensure_utc(dt) if dt is not None else utc_now()
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into aware UTC.

    Returns None for blank or unparseable input.

    Example:
        >>> parse_iso_datetime("2025-11-04T12:00:00Z").hour
        12
    """
    if not value or not value.strip():
        return None

    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def coerce_utc(value) -> Optional[datetime]:
    """Accept a datetime or ISO string from a database row and return aware UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise TypeError(f"Cannot interpret {type(value).__name__} as a timestamp")


def visibility_window(now: datetime, delay: timedelta, half_width: timedelta) -> tuple:
    """Return ``(start, end)`` of the window centred on ``now - delay``.

    Both bounds are inclusive.
    """
    centre = ensure_utc(now) - delay
    return centre - half_width, centre + half_width
