"""External eligibility collaborator contract."""

from abc import ABC, abstractmethod

from .models import EligibilityVerdict


class EligibilityChecker(ABC):
    """Decides whether a linked external identity may take part in an opportunity.

    Implementations should return ``UNKNOWN`` rather than raise when they
    cannot decide. The filter also maps stray exceptions to ``UNKNOWN``.
    """

    @abstractmethod
    def check(self, external_user_id: str, opportunity_id: str) -> EligibilityVerdict:
        """Return the verdict for one identity and one opportunity."""
