"""Notification pipeline: one tick of fetch, filter, dispatch and record."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import AbstractContextManager
from contextvars import copy_context
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from opportunity_notifier.config.models import NotificationSettings
from opportunity_notifier.domain.models import (
    DeliveryStats,
    Opportunity,
    Recipient,
    RecipientWithPreferences,
)
from opportunity_notifier.eligibility import EligibilityChecker, EligibilityFilter
from opportunity_notifier.logging import get_logger, log_context
from opportunity_notifier.notifications.models import (
    NotificationTemplateError,
    SendResult,
    SendStatus,
)
from opportunity_notifier.notifications.service import DispatchSender
from opportunity_notifier.persistence.database import get_session
from opportunity_notifier.persistence.exceptions import PersistenceError
from opportunity_notifier.persistence.repositories import LedgerRepository, RecipientRepository
from opportunity_notifier.sources.base import BaseOpportunitySource
from opportunity_notifier.sources.exceptions import OpportunityNotFoundError, SourceError
from opportunity_notifier.utils.timestamps import start_of_utc_day, utc_now

from .models import OpportunityRunStats, TickResult
from .rate_limiter import TokenBucket

logger = get_logger(__name__, component="pipeline")

SessionFactory = Callable[[], AbstractContextManager]


class NotificationPipeline:
    """
    Runs the notification flow for newly visible opportunities.

    Per tick: fetch delay-gated opportunities and open grants, then for each
    opportunity evaluate every active recipient, send to the eligible ones
    through a bounded worker pool, and write a ledger entry after each
    confirmed send. Database work stays on the calling thread; workers only
    perform sends.
    """

    def __init__(
        self,
        source: BaseOpportunitySource,
        sender: DispatchSender,
        settings: NotificationSettings,
        checker: Optional[EligibilityChecker] = None,
        session_factory: SessionFactory = get_session,
        send_limiter: Optional[TokenBucket] = None,
        opportunity_limiter: Optional[TokenBucket] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            source: Opportunity source (catalog)
            sender: Dispatch sender for the messaging channel
            settings: Timing, throughput and deactivation settings
            checker: External eligibility collaborator, if any
            session_factory: Context manager yielding an owned-store session
            send_limiter: Outbound rate limiter (built from settings if None)
            opportunity_limiter: Pause between opportunities (built from settings if None)
            clock: Time source for ledger timestamps and stats
        """
        self.source = source
        self.sender = sender
        self.settings = settings
        self.checker = checker
        self.session_factory = session_factory
        self.send_limiter = send_limiter or TokenBucket(rate=settings.rate_limit_per_second)
        self.opportunity_limiter = opportunity_limiter or TokenBucket.per_interval(
            settings.opportunity_pause_seconds
        )
        self.clock = clock or utc_now
        self._lock = threading.Lock()

    def run_once(self) -> TickResult:
        """
        Execute one tick.

        A tick that starts while another is still running is skipped. Source
        failures are logged and recorded in the result; they never raise.

        Returns:
            TickResult with per-opportunity statistics
        """
        started_at = self.clock()
        tick_id = uuid4().hex

        if not self._lock.acquire(blocking=False):
            with log_context(tick_id=tick_id):
                logger.warning(
                    "Tick skipped: previous tick still in progress",
                    extra={"event": "tick.skipped", "reason": "lock_held"},
                )
            return TickResult(tick_id=tick_id, started_at=started_at, finished_at=self.clock(), skipped=True)

        try:
            with log_context(tick_id=tick_id):
                logger.info("Tick started", extra={"event": "tick.started"})

                opportunities, source_errors = self._collect_opportunities()
                stats = []
                for index, opportunity in enumerate(opportunities):
                    if index and self.opportunity_limiter is not None:
                        self.opportunity_limiter.acquire()
                    stats.append(self._process_isolated(opportunity))

                result = TickResult(
                    tick_id=tick_id,
                    started_at=started_at,
                    finished_at=self.clock(),
                    opportunity_stats=stats,
                    source_errors=source_errors,
                )
                logger.info(
                    "Tick completed",
                    extra={
                        "event": "tick.completed",
                        "duration_ms": int(result.duration_seconds * 1000),
                        "opportunity_count": result.opportunities_processed,
                        "eligible": result.total_eligible,
                        "sent": result.total_sent,
                        "failed": result.total_failed,
                        "unreachable": result.total_unreachable,
                        "errors": result.total_errors,
                    },
                )
                return result
        finally:
            self._lock.release()

    def trigger_opportunity(self, opportunity_id: str) -> OpportunityRunStats:
        """
        Run the eligibility, dispatch and ledger path for one opportunity now,
        ignoring the visibility window.

        Waits for a running tick to finish first, so the two never dispatch
        the same opportunity concurrently.

        Raises:
            OpportunityNotFoundError: If no open opportunity has this id
            SourceError: If the lookup itself fails
            PersistenceError: If the owned store fails
        """
        with self._lock, log_context(trigger_id=uuid4().hex):
            opportunity = self.source.get_opportunity(opportunity_id)
            if opportunity is None:
                logger.warning(
                    f"Manual trigger for unknown opportunity {opportunity_id}",
                    extra={"event": "trigger.not_found", "opportunity_id": opportunity_id},
                )
                raise OpportunityNotFoundError(opportunity_id)

            logger.info(
                f"Manual trigger for opportunity {opportunity_id}",
                extra={"event": "trigger.started", "opportunity_id": opportunity_id},
            )
            return self.process_opportunity(opportunity)

    def get_stats(self) -> DeliveryStats:
        """
        Read-only counters for recipients and deliveries.

        "Today" starts at UTC midnight. Returns zeros if the store is unavailable.
        """
        try:
            with self.session_factory() as session:
                recipients = RecipientRepository(session)
                ledger = LedgerRepository(session)
                return DeliveryStats(
                    total_recipients=recipients.count_all(),
                    active_recipients=recipients.count_active(),
                    total_notifications=ledger.count_all(),
                    notifications_today=ledger.count_since(start_of_utc_day(self.clock())),
                )
        except (PersistenceError, SQLAlchemyError) as e:
            logger.error(
                f"Failed to read delivery stats: {e}",
                extra={"event": "stats.failed", "error_type": type(e).__name__},
            )
            return DeliveryStats()

    def process_opportunity(self, opportunity: Opportunity) -> OpportunityRunStats:
        """
        Fan one opportunity out to every eligible active recipient.

        Raises:
            PersistenceError: If recipients cannot be loaded
            NotificationTemplateError: If the alert cannot be rendered
        """
        started = time.monotonic()
        stats = OpportunityRunStats(
            opportunity_id=opportunity.id, category=opportunity.category.value
        )

        with log_context(opportunity_id=opportunity.id):
            text = self.sender.render(opportunity)
            eligible = self._eligible_recipients(opportunity, stats)

            unreachable = []
            for result in self._dispatch(opportunity, eligible, text):
                if result.ok:
                    stats.sent_count += 1
                    self._record_delivery(result, stats)
                elif result.status == SendStatus.UNREACHABLE:
                    stats.unreachable_count += 1
                    unreachable.append(result.recipient_id)
                else:
                    stats.failed_count += 1

            if unreachable and self.settings.deactivate_unreachable:
                self._deactivate(unreachable, stats)

            stats.duration_seconds = time.monotonic() - started
            logger.info(
                f"Processed opportunity {opportunity.id}",
                extra={
                    "event": "opportunity.processed",
                    "category": stats.category,
                    "considered": stats.recipients_considered,
                    "eligible": stats.eligible_count,
                    "sent": stats.sent_count,
                    "failed": stats.failed_count,
                    "unreachable": stats.unreachable_count,
                    "rejections": dict(stats.rejections),
                    "duration_ms": int(stats.duration_seconds * 1000),
                },
            )
        return stats

    def close(self) -> None:
        """Release the source engine and the channel session."""
        self.source.close()
        self.sender.close()

    def _collect_opportunities(self) -> Tuple[List[Opportunity], List[str]]:
        fetches = [
            (
                "fetch_visible",
                lambda: self.source.fetch_visible(
                    self.settings.delay_hours, self.settings.window_minutes
                ),
            )
        ]
        if self.settings.include_grants:
            fetches.append(("fetch_open_grants", self.source.fetch_open_grants))

        opportunities: List[Opportunity] = []
        seen = set()
        errors = []
        for operation, fetch in fetches:
            try:
                fetched = fetch()
            except SourceError as e:
                errors.append(f"{operation}: {e}")
                logger.error(
                    f"Source error during {operation}: {e}",
                    extra={
                        "event": "tick.source_failed",
                        "operation": operation,
                        "error_type": type(e).__name__,
                    },
                )
                continue
            for opportunity in fetched:
                if opportunity.id not in seen:
                    seen.add(opportunity.id)
                    opportunities.append(opportunity)

        return opportunities, errors

    def _process_isolated(self, opportunity: Opportunity) -> OpportunityRunStats:
        try:
            return self.process_opportunity(opportunity)
        except (PersistenceError, SQLAlchemyError, NotificationTemplateError) as e:
            logger.error(
                f"Opportunity {opportunity.id} aborted: {e}",
                extra={
                    "event": "opportunity.failed",
                    "opportunity_id": opportunity.id,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return OpportunityRunStats(
                opportunity_id=opportunity.id,
                category=opportunity.category.value,
                error_message=str(e),
            )

    def _eligible_recipients(
        self, opportunity: Opportunity, stats: OpportunityRunStats
    ) -> List[Recipient]:
        with self.session_factory() as session:
            candidates: List[RecipientWithPreferences] = RecipientRepository(session).list_active()
            eligibility = EligibilityFilter(
                ledger_lookup=LedgerRepository(session).has_been_notified,
                checker=self.checker,
            )

            eligible = []
            for candidate in candidates:
                decision = eligibility.evaluate(candidate.recipient, candidate.preferences, opportunity)
                if decision.eligible:
                    eligible.append(candidate.recipient)
                else:
                    stats.rejections[decision.reason.value] += 1

        stats.recipients_considered = len(candidates)
        stats.eligible_count = len(eligible)
        return eligible

    def _dispatch(self, opportunity: Opportunity, recipients: List[Recipient], text: str):
        """Yield send results as workers finish, bounded by max_workers and the rate limiter."""
        if not recipients:
            return

        with ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="dispatch"
        ) as executor:
            futures = [
                # Each worker runs inside a copy of the caller's log context.
                executor.submit(copy_context().run, self._send_one, recipient, opportunity, text)
                for recipient in recipients
            ]
            for future in as_completed(futures):
                yield future.result()

    def _send_one(self, recipient: Recipient, opportunity: Opportunity, text: str) -> SendResult:
        self.send_limiter.acquire()
        with log_context(recipient_id=recipient.id):
            try:
                return self.sender.send(recipient, opportunity, text=text)
            except Exception as e:
                # A crashed send counts as failed for this recipient only.
                logger.error(
                    f"Unexpected error sending to recipient {recipient.id}: {e}",
                    extra={"event": "dispatch.crashed", "error_type": type(e).__name__},
                    exc_info=True,
                )
                return SendResult(recipient.id, opportunity.id, SendStatus.FAILED, error=str(e))

    def _record_delivery(self, result: SendResult, stats: OpportunityRunStats) -> None:
        try:
            with self.session_factory() as session:
                inserted = LedgerRepository(session).record(
                    result.recipient_id, result.opportunity_id, self.clock()
                )
        except (PersistenceError, SQLAlchemyError) as e:
            stats.error_count += 1
            logger.error(
                f"Delivered but failed to record ledger entry: {e}",
                extra={
                    "event": "ledger.record_failed",
                    "recipient_id": result.recipient_id,
                    "opportunity_id": result.opportunity_id,
                },
            )
            return

        if inserted:
            stats.recorded_count += 1
        else:
            stats.duplicate_count += 1

    def _deactivate(self, recipient_ids: List[int], stats: OpportunityRunStats) -> None:
        for recipient_id in recipient_ids:
            try:
                with self.session_factory() as session:
                    RecipientRepository(session).set_active(recipient_id, False, now=self.clock())
                stats.deactivated_count += 1
            except (PersistenceError, SQLAlchemyError) as e:
                stats.error_count += 1
                logger.error(
                    f"Failed to deactivate unreachable recipient {recipient_id}: {e}",
                    extra={"event": "recipient.deactivate_failed", "recipient_id": recipient_id},
                )
