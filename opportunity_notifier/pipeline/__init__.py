"""Notification pipeline: tick orchestration, rate limiting and run statistics."""

from .models import OpportunityRunStats, TickResult
from .rate_limiter import TokenBucket
from .runner import NotificationPipeline

__all__ = [
    "NotificationPipeline",
    "OpportunityRunStats",
    "TickResult",
    "TokenBucket",
]
