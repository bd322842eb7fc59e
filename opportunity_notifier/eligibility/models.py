"""Result types for the eligibility filter."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EligibilityVerdict(str, Enum):
    """Answer from an external eligibility collaborator.

    UNKNOWN covers every case where the collaborator could not decide
    (outage, timeout, opportunity it does not know about).
    """

    ELIGIBLE = "eligible"
    INELIGIBLE = "ineligible"
    UNKNOWN = "unknown"


class RejectionReason(str, Enum):
    """First predicate that rejected a recipient, in evaluation order."""

    ALREADY_NOTIFIED = "already_notified"
    CATEGORY = "category"
    REWARD = "reward"
    SKILLS = "skills"
    GEOGRAPHY = "geography"
    EXTERNAL = "external"


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of evaluating one recipient against one opportunity.

    Attributes:
        eligible: True if the opportunity should be delivered
        reason: Predicate that rejected the pair, None when eligible
        external_verdict: Verdict from the external check, if it ran
    """

    eligible: bool
    reason: Optional[RejectionReason] = None
    external_verdict: Optional[EligibilityVerdict] = None

    @classmethod
    def accept(cls, external_verdict: Optional[EligibilityVerdict] = None) -> "EligibilityDecision":
        return cls(eligible=True, external_verdict=external_verdict)

    @classmethod
    def reject(
        cls, reason: RejectionReason, external_verdict: Optional[EligibilityVerdict] = None
    ) -> "EligibilityDecision":
        return cls(eligible=False, reason=reason, external_verdict=external_verdict)

    def __bool__(self) -> bool:
        return self.eligible
