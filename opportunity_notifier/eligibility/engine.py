"""Eligibility filter: ordered, short-circuiting conjunction of predicates."""

import logging
from typing import Callable, Optional

from opportunity_notifier.domain.models import Opportunity, Preferences, Recipient
from opportunity_notifier.logging import get_logger

from .checker import EligibilityChecker
from .models import EligibilityDecision, EligibilityVerdict, RejectionReason
from .predicates import matches_category, matches_geography, matches_reward, matches_skills

logger = get_logger(__name__, component="eligibility")

# (recipient_id, opportunity_id) -> already delivered?
LedgerLookup = Callable[[int, str], bool]


class EligibilityFilter:
    """Decides, per recipient, whether an opportunity should be delivered.

    Evaluation order:
    1. Not already notified (ledger lookup)
    2. Category toggle
    3. Reward band
    4. Skills
    5. Geography
    6. External eligibility, only for recipients linked to an external identity

    The first failing step decides the rejection reason. An ``UNKNOWN``
    external verdict, or an exception from the checker, counts as eligible.
    """

    def __init__(
        self,
        ledger_lookup: LedgerLookup,
        checker: Optional[EligibilityChecker] = None,
        logger_instance: Optional[logging.LoggerAdapter] = None,
    ):
        """
        Args:
            ledger_lookup: Returns True if the pair already has a ledger entry
            checker: External eligibility collaborator; None skips step 6
            logger_instance: Optional logger (defaults to module logger)
        """
        self.ledger_lookup = ledger_lookup
        self.checker = checker
        self.logger = logger_instance or logger

    def evaluate(
        self, recipient: Recipient, preferences: Preferences, opportunity: Opportunity
    ) -> EligibilityDecision:
        """Run every step in order and explain the outcome.

        Raises:
            PersistenceError: If the ledger lookup fails (not fail-open)
        """
        if self.ledger_lookup(recipient.id, opportunity.id):
            return EligibilityDecision.reject(RejectionReason.ALREADY_NOTIFIED)
        if not matches_category(preferences, opportunity):
            return EligibilityDecision.reject(RejectionReason.CATEGORY)
        if not matches_reward(preferences, opportunity):
            return EligibilityDecision.reject(RejectionReason.REWARD)
        if not matches_skills(preferences, opportunity):
            return EligibilityDecision.reject(RejectionReason.SKILLS)
        if not matches_geography(recipient.geography, opportunity):
            return EligibilityDecision.reject(RejectionReason.GEOGRAPHY)

        if self.checker is None or not recipient.external_user_id:
            return EligibilityDecision.accept()

        verdict = self._external_verdict(recipient, opportunity)
        if verdict == EligibilityVerdict.INELIGIBLE:
            return EligibilityDecision.reject(RejectionReason.EXTERNAL, external_verdict=verdict)
        # ELIGIBLE and UNKNOWN both deliver: fail-open.
        return EligibilityDecision.accept(external_verdict=verdict)

    def is_eligible(
        self, recipient: Recipient, preferences: Preferences, opportunity: Opportunity
    ) -> bool:
        """Boolean form of :meth:`evaluate`."""
        return self.evaluate(recipient, preferences, opportunity).eligible

    def _external_verdict(self, recipient: Recipient, opportunity: Opportunity) -> EligibilityVerdict:
        try:
            verdict = self.checker.check(recipient.external_user_id, opportunity.id)
        except Exception as e:
            self.logger.warning(
                f"External eligibility check failed, treating as unknown: {e}",
                extra={
                    "event": "eligibility.check_failed",
                    "recipient_id": recipient.id,
                    "opportunity_id": opportunity.id,
                    "error_type": type(e).__name__,
                },
            )
            return EligibilityVerdict.UNKNOWN

        if verdict == EligibilityVerdict.UNKNOWN:
            self.logger.debug(
                "External eligibility unknown, delivering",
                extra={
                    "event": "eligibility.unknown",
                    "recipient_id": recipient.id,
                    "opportunity_id": opportunity.id,
                },
            )
        return verdict
