"""Pure eligibility predicates.

Each predicate looks at one aspect of a (preferences, opportunity) pair and
has no side effects, so they can be tested and reordered independently.
"""

from typing import Iterable, Optional

from opportunity_notifier.domain.models import Opportunity, OpportunityCategory, Preferences

# Geography values meaning "open to everyone", compared case-insensitively.
GLOBAL_SENTINELS = frozenset({"global", "worldwide"})


def matches_category(preferences: Preferences, opportunity: Opportunity) -> bool:
    """Category toggle check.

    Bounties and projects follow their own toggle. Grants have no toggle of
    their own and pass if either toggle is on.
    """
    if opportunity.category == OpportunityCategory.BOUNTY:
        return preferences.notify_bounties
    if opportunity.category == OpportunityCategory.PROJECT:
        return preferences.notify_projects
    return preferences.notify_bounties or preferences.notify_projects


def effective_min_usd(opportunity: Opportunity) -> float:
    """Lower USD bound of the reward (0 when unknown)."""
    return opportunity.reward.effective_min_usd


def effective_max_usd(opportunity: Opportunity) -> float:
    """Upper USD bound of the reward; the minimum when there is no range."""
    return opportunity.reward.effective_max_usd


def matches_reward(preferences: Preferences, opportunity: Opportunity) -> bool:
    """Reward band check against the recipient's optional min/max bounds."""
    if preferences.min_usd is not None and effective_min_usd(opportunity) < preferences.min_usd:
        return False
    if preferences.max_usd is not None and effective_max_usd(opportunity) > preferences.max_usd:
        return False
    return True


def _normalized(values: Iterable[str]) -> list:
    return [value.strip().lower() for value in values if value and value.strip()]


def skills_overlap(left: str, right: str) -> bool:
    """Fuzzy skill equivalence: equal, or either contains the other.

    Case-insensitive and symmetric, so "React" matches "React.js" and
    "react.js" matches "React".
    """
    a, b = left.strip().lower(), right.strip().lower()
    if not a or not b:
        return False
    return a == b or a in b or b in a


def matches_skills(preferences: Preferences, opportunity: Opportunity) -> bool:
    """Pass when either side has no skills, or any pair overlaps."""
    wanted = _normalized(preferences.skills)
    required = _normalized(opportunity.skills)
    if not wanted or not required:
        return True
    return any(skills_overlap(w, r) for w in wanted for r in required)


def is_global(geography: Iterable[str]) -> bool:
    """True if the list is empty or contains a global sentinel."""
    values = _normalized(geography)
    return not values or any(value in GLOBAL_SENTINELS for value in values)


def matches_geography(recipient_geography: Optional[str], opportunity: Opportunity) -> bool:
    """Region check.

    Global opportunities reach everyone. Otherwise a recipient without a
    region is excluded, and one with a region passes when it equals,
    contains or is contained by any listed region.
    """
    if is_global(opportunity.geography):
        return True
    if not recipient_geography or not recipient_geography.strip():
        return False

    region = recipient_geography.strip().lower()
    return any(
        region == listed or region in listed or listed in region
        for listed in _normalized(opportunity.geography)
    )
