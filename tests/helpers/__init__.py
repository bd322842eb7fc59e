"""Test helper utilities for opportunity notifier tests."""

from .factories import (
    NOW,
    make_grant,
    make_opportunity,
    make_preferences,
    make_recipient,
    make_subscriber,
)

__all__ = [
    "NOW",
    "make_grant",
    "make_opportunity",
    "make_preferences",
    "make_recipient",
    "make_subscriber",
]
