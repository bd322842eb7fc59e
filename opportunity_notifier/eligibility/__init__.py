"""Eligibility filter deciding which recipients receive an opportunity.

This package provides:
- EligibilityFilter: ordered evaluation with fail-open external checks
- EligibilityChecker: contract for the external eligibility collaborator
- Pure predicates for category, reward, skills and geography
"""

from .checker import EligibilityChecker
from .engine import EligibilityFilter
from .models import EligibilityDecision, EligibilityVerdict, RejectionReason
from .predicates import (
    GLOBAL_SENTINELS,
    effective_max_usd,
    effective_min_usd,
    is_global,
    matches_category,
    matches_geography,
    matches_reward,
    matches_skills,
    skills_overlap,
)

__all__ = [
    "EligibilityChecker",
    "EligibilityFilter",
    "EligibilityDecision",
    "EligibilityVerdict",
    "RejectionReason",
    "GLOBAL_SENTINELS",
    "effective_max_usd",
    "effective_min_usd",
    "is_global",
    "matches_category",
    "matches_geography",
    "matches_reward",
    "matches_skills",
    "skills_overlap",
]
