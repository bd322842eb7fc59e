"""Soft checks that warn about risky but valid configuration."""

import warnings
from typing import List

from .models import AppConfig


def check_for_warnings(config: AppConfig) -> List[str]:
    """Return human-readable warnings for a validated configuration.

    Args:
        config: Validated application configuration

    Returns:
        List of warning messages (empty when nothing looks off)
    """
    messages = []
    notifications = config.notifications

    # The window must cover at least one poll period or listings can fall between ticks.
    window_span = 2 * notifications.window_minutes * 60
    if notifications.poll_interval_seconds and window_span < notifications.poll_interval_seconds:
        messages.append(
            f"Visibility window ({window_span}s wide) is narrower than poll_interval "
            f"({notifications.poll_interval}); some opportunities will never be announced"
        )

    if notifications.rate_limit_per_second > 30:
        messages.append(
            f"rate_limit_per_second={notifications.rate_limit_per_second} exceeds the "
            "Bot API broadcast limit of 30 messages per second"
        )

    if notifications.max_workers > 1 and notifications.rate_limit_per_second < notifications.max_workers:
        messages.append(
            f"max_workers ({notifications.max_workers}) exceeds rate_limit_per_second; "
            "extra workers will mostly wait on the rate limiter"
        )

    return messages


def emit_warnings(messages: List[str]) -> None:
    """Emit each message through the ``warnings`` module."""
    for message in messages:
        warnings.warn(message, UserWarning, stacklevel=2)
