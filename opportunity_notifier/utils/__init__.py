"""Shared time utilities."""

from .timestamps import (
    coerce_utc,
    ensure_utc,
    parse_iso_datetime,
    start_of_utc_day,
    to_naive_utc,
    utc_now,
    visibility_window,
)

__all__ = [
    "coerce_utc",
    "ensure_utc",
    "parse_iso_datetime",
    "start_of_utc_day",
    "to_naive_utc",
    "utc_now",
    "visibility_window",
]
