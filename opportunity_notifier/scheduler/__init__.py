"""Scheduling module for periodic execution of the notification pipeline."""

from .service import SchedulerService

__all__ = [
    "SchedulerService",
]
