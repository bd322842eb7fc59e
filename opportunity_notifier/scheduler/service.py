"""Scheduler service for periodic notification ticks."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from opportunity_notifier.logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_ID = "opportunity-tick"


class SchedulerService:
    """
    Wraps APScheduler to run the notification tick at a fixed interval.

    Uses BackgroundScheduler so the main thread stays free to handle
    signals and coordinate shutdown. At most one tick runs at a time;
    missed ticks are coalesced into one.
    """

    def __init__(
        self,
        tick_callable: Callable[[], object],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            tick_callable: Function to call on each tick (e.g., pipeline.run_once)
            interval_seconds: Interval between ticks in seconds
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.tick_callable = tick_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """
        Register the tick job and start the scheduler.

        The first tick executes immediately; later ticks follow the interval.
        Calling start on a running scheduler does nothing.
        """
        if self.scheduler.running:
            logger.warning("Scheduler already running", extra={"event": "scheduler.already_running"})
            return

        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self.tick_callable,
            trigger=trigger,
            id=JOB_ID,
            name="Opportunity notification tick",
            replace_existing=True,
            next_run_time=next_run,
        )

        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop scheduling new ticks.

        Args:
            wait: If True, wait for a running tick to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self):
        """Run one tick synchronously in the current thread and return its result."""
        logger.info("Triggering immediate tick", extra={"event": "scheduler.trigger_now"})
        return self.tick_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled tick time.

        Returns:
            Next run time, or None if not scheduled
        """
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
