"""Data models for tick execution tracking and reporting."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class OpportunityRunStats:
    """
    Statistics for one opportunity's fan-out within a tick or manual trigger.

    Attributes:
        opportunity_id: Opportunity identifier
        category: Opportunity category value
        recipients_considered: Active recipients evaluated
        eligible_count: Recipients that passed every eligibility step
        sent_count: Confirmed deliveries
        recorded_count: New ledger entries written
        duplicate_count: Confirmed deliveries whose ledger write found an existing entry
        failed_count: Transient delivery failures
        unreachable_count: Recipients that blocked the bot or vanished
        deactivated_count: Recipients paused after being unreachable
        error_count: Internal errors (ledger writes, template problems)
        rejections: Rejection counts keyed by reason
        duration_seconds: Wall time spent on this opportunity
        error_message: Description of a failure that aborted the opportunity
    """

    opportunity_id: str
    category: Optional[str] = None
    recipients_considered: int = 0
    eligible_count: int = 0
    sent_count: int = 0
    recorded_count: int = 0
    duplicate_count: int = 0
    failed_count: int = 0
    unreachable_count: int = 0
    deactivated_count: int = 0
    error_count: int = 0
    rejections: Counter = field(default_factory=Counter)
    duration_seconds: float = 0.0
    error_message: Optional[str] = None

    @property
    def had_errors(self) -> bool:
        return self.error_count > 0 or self.error_message is not None


@dataclass
class TickResult:
    """
    Aggregate results of one scheduler tick.

    Attributes:
        tick_id: Unique identifier used in log context
        started_at: UTC timestamp when the tick began
        finished_at: UTC timestamp when the tick completed
        opportunity_stats: Per-opportunity statistics
        source_errors: Messages from source fetches that failed
        skipped: True when a previous tick was still running
    """

    tick_id: str
    started_at: datetime
    finished_at: datetime
    opportunity_stats: List[OpportunityRunStats] = field(default_factory=list)
    source_errors: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def opportunities_processed(self) -> int:
        return len(self.opportunity_stats)

    @property
    def total_sent(self) -> int:
        return sum(s.sent_count for s in self.opportunity_stats)

    @property
    def total_failed(self) -> int:
        return sum(s.failed_count for s in self.opportunity_stats)

    @property
    def total_unreachable(self) -> int:
        return sum(s.unreachable_count for s in self.opportunity_stats)

    @property
    def total_eligible(self) -> int:
        return sum(s.eligible_count for s in self.opportunity_stats)

    @property
    def total_errors(self) -> int:
        return len(self.source_errors) + sum(
            s.error_count + (1 if s.error_message else 0) for s in self.opportunity_stats
        )

    @property
    def had_errors(self) -> bool:
        return self.total_errors > 0
