"""Duration strings used by the configuration (``poll_interval`` etc.)."""

import re

_ISO_PATTERN = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$")
_HUMAN_PATTERN = re.compile(r"(\d+)\s*([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(value: str) -> int:
    """Parse a duration string into whole seconds.

    Accepts the short form (``"30s"``, ``"5m"``, ``"1h30m"``, ``"2d"``) and
    ISO-8601 durations (``"PT5M"``, ``"P1D"``).

    Args:
        value: Duration string

    Returns:
        Duration in seconds, always positive

    Raises:
        DurationParseError: If the string is empty, malformed or zero

    Examples:
        >>> parse_duration("5m")
        300
        >>> parse_duration("PT1H")
        3600
    """
    value = value.strip()
    if not value:
        raise DurationParseError("Duration string cannot be empty")

    if value.upper().startswith("P"):
        seconds = _parse_iso8601(value)
    else:
        seconds = _parse_short_form(value)

    if seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{value}'")
    return seconds


def _parse_iso8601(value: str) -> int:
    match = _ISO_PATTERN.match(value.upper())
    if not match:
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{value}'. "
            "Expected format like 'P1D', 'PT1H30M', 'PT5M', or 'PT30S'"
        )

    days, hours, minutes, seconds = match.groups()
    total = 0
    if days:
        total += int(days) * _UNIT_SECONDS["d"]
    if hours:
        total += int(hours) * _UNIT_SECONDS["h"]
    if minutes:
        total += int(minutes) * _UNIT_SECONDS["m"]
    if seconds:
        total += int(float(seconds))
    return total


def _parse_short_form(value: str) -> int:
    lowered = value.lower()
    matches = _HUMAN_PATTERN.findall(lowered)
    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{value}'. "
            "Expected format like '5m', '1h', '30s', '2d', or combinations like '1h30m'"
        )

    # Reject leftovers such as "5m!" or "5x".
    if "".join(f"{num}{unit}" for num, unit in matches) != re.sub(r"\s+", "", lowered):
        raise DurationParseError(
            f"Invalid characters in duration: '{value}'. "
            "Use only digits and units: s (seconds), m (minutes), h (hours), d (days)"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in matches)


def validate_duration_range(
    seconds: int,
    min_seconds: int = 60,
    max_seconds: int = 86400,
    label: str = "Poll interval",
) -> None:
    """Check that ``seconds`` lies within ``[min_seconds, max_seconds]``.

    Raises:
        DurationParseError: If the value is out of range
    """
    if seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {humanize_seconds(seconds)}. "
            f"Minimum is {humanize_seconds(min_seconds)}."
        )
    if seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {humanize_seconds(seconds)}. "
            f"Maximum is {humanize_seconds(max_seconds)}."
        )


def humanize_seconds(seconds: int) -> str:
    """Render seconds as the largest whole unit, e.g. ``"5 minutes"``."""
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
