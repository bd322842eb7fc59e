"""Conversion of catalog rows into :class:`Opportunity` models.

Rows arrive as mappings keyed by the column keys declared in
``catalog_schema`` plus a ``sponsor_name`` label from the sponsor join.
"""

from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from opportunity_notifier.domain.models import (
    FixedReward,
    Opportunity,
    OpportunityCategory,
    RangeReward,
    UnspecifiedReward,
)
from opportunity_notifier.utils.timestamps import coerce_utc

GLOBAL_REGION = "GLOBAL"
DEFAULT_TOKEN = "USDC"

# Tokens whose nominal amount is already a USD figure.
USD_PEGGED_TOKENS = frozenset({"USDC", "USDT", "USD"})


class NormalizationError(ValueError):
    """A catalog row cannot be turned into an Opportunity."""

    def __init__(self, message: str, opportunity_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.opportunity_id = opportunity_id


def extract_skills(raw: Any) -> List[str]:
    """Flatten the catalog's skills column into a list of names.

    Entries are either plain strings or objects of the form
    ``{"skills": "Frontend", "subskills": ["React", "Vue"]}``; both the
    parent and the sub-skills are kept. Order is preserved, duplicates
    dropped.

    Example:
        >>> extract_skills([{"skills": "Frontend", "subskills": ["React"]}, "Rust"])
        ['Frontend', 'React', 'Rust']
    """
    if not isinstance(raw, list):
        return []

    names: List[str] = []
    for entry in raw:
        if isinstance(entry, str):
            candidates: Iterable[Any] = [entry]
        elif isinstance(entry, Mapping):
            candidates = [entry.get("skills"), *(entry.get("subskills") or [])]
        else:
            continue
        for candidate in candidates:
            if isinstance(candidate, str) and candidate.strip() and candidate.strip() not in names:
                names.append(candidate.strip())
    return names


def bounty_reward(row: Mapping[str, Any]):
    """Pick the reward shape for a bounty or project row.

    ``compensation_type`` of ``range`` or ``variable`` yields a range built
    from the ask bounds. Anything else is treated as a fixed payout; its USD
    value falls back to the nominal amount only for USD-pegged tokens.
    """
    token = (row.get("token") or DEFAULT_TOKEN).strip() or DEFAULT_TOKEN
    compensation = (row.get("compensation_type") or "fixed").lower()

    if compensation in ("range", "variable"):
        return RangeReward(
            min_usd=row.get("min_reward_ask"),
            max_usd=row.get("max_reward_ask"),
            variable=compensation == "variable",
            token=token,
        )

    amount = row.get("reward_amount")
    usd_value = row.get("usd_value")
    if usd_value is None and amount is not None and token.upper() in USD_PEGGED_TOKENS:
        usd_value = amount

    if amount is None and usd_value is None:
        return UnspecifiedReward()
    return FixedReward(amount=amount, token=token, usd_value=usd_value)


def _geography(region: Optional[str]) -> List[str]:
    if region and region.strip():
        return [region.strip()]
    return [GLOBAL_REGION]


def bounty_to_opportunity(row: Mapping[str, Any], base_url: str) -> Opportunity:
    """Normalize a ``Bounties`` row (bounty or project).

    Raises:
        NormalizationError: If required fields are missing or invalid
    """
    opportunity_id = row.get("id")
    category = (
        OpportunityCategory.PROJECT
        if (row.get("type") or "").lower() == "project"
        else OpportunityCategory.BOUNTY
    )
    try:
        return Opportunity(
            id=opportunity_id,
            title=row.get("title") or "Untitled",
            sponsor_name=row.get("sponsor_name"),
            category=category,
            reward=bounty_reward(row),
            deadline=coerce_utc(row.get("deadline")),
            geography=_geography(row.get("region")),
            skills=extract_skills(row.get("skills")),
            url=f"{base_url}/listings/{row.get('slug') or opportunity_id}",
            published_at=coerce_utc(row.get("published_at")),
        )
    except (ValidationError, TypeError) as e:
        raise NormalizationError(f"Invalid bounty row {opportunity_id}: {e}", opportunity_id) from e


def grant_to_opportunity(row: Mapping[str, Any], base_url: str) -> Opportunity:
    """Normalize a ``Grants`` row. Grants are always variable-range rewards.

    Raises:
        NormalizationError: If required fields are missing or invalid
    """
    opportunity_id = row.get("id")
    try:
        return Opportunity(
            id=opportunity_id,
            title=row.get("title") or "Untitled Grant",
            sponsor_name=row.get("sponsor_name"),
            category=OpportunityCategory.GRANT,
            reward=RangeReward(
                min_usd=row.get("min_reward"),
                max_usd=row.get("max_reward"),
                variable=True,
                token=row.get("token") or DEFAULT_TOKEN,
            ),
            deadline=None,
            geography=_geography(row.get("region")),
            skills=extract_skills(row.get("skills")),
            url=f"{base_url}/grants/{row.get('slug') or opportunity_id}",
            published_at=coerce_utc(row.get("created_at")),
        )
    except (ValidationError, TypeError) as e:
        raise NormalizationError(f"Invalid grant row {opportunity_id}: {e}", opportunity_id) from e
