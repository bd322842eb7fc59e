"""Template context for opportunity alerts."""

import math
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from opportunity_notifier.domain.models import (
    FixedReward,
    Opportunity,
    OpportunityCategory,
    RangeReward,
)
from opportunity_notifier.utils.timestamps import ensure_utc, utc_now

FALLBACK_REWARD = "See listing for details"

HEADINGS = {
    OpportunityCategory.BOUNTY: "New Bounty Alert!",
    OpportunityCategory.PROJECT: "New Project Alert!",
    OpportunityCategory.GRANT: "New Grant Alert!",
}


def format_number(value: float) -> str:
    """Thousands separators, at most two decimals: 1500 -> "1,500", 2.5 -> "2.5"."""
    text = f"{value:,.2f}"
    return text.rstrip("0").rstrip(".")


def format_reward(opportunity: Opportunity) -> str:
    """Human-readable reward line.

    Examples: "Variable Comp", "$500 - $2,000 USD", "1,000 USDC (~$1,000 USD)".
    """
    reward = opportunity.reward

    if isinstance(reward, RangeReward):
        if reward.variable:
            return "Variable Comp"
        if reward.min_usd is not None and reward.max_usd is not None:
            return f"${format_number(reward.min_usd)} - ${format_number(reward.max_usd)} USD"
        if reward.min_usd is not None:
            return f"From ${format_number(reward.min_usd)} USD"
        if reward.max_usd is not None:
            return f"Up to ${format_number(reward.max_usd)} USD"
        return FALLBACK_REWARD

    if isinstance(reward, FixedReward):
        if reward.usd_value:
            usd = f"${format_number(reward.usd_value)} USD"
            if reward.amount and reward.token:
                return f"{format_number(reward.amount)} {reward.token} (~{usd})"
            return usd
        if reward.amount and reward.token:
            return f"{format_number(reward.amount)} {reward.token}"

    return FALLBACK_REWARD


def format_deadline(deadline: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Relative deadline: Expired, Today, Tomorrow, "N days" up to a week, then a date.

    The year is shown only when it differs from the current one.
    """
    if deadline is None:
        return "No deadline"

    now = ensure_utc(now) if now is not None else utc_now()
    deadline = ensure_utc(deadline)
    days = math.floor((deadline - now).total_seconds() / 86400)

    if days < 0:
        return "Expired"
    if days == 0:
        return "Today"
    if days == 1:
        return "Tomorrow"
    if days <= 7:
        return f"{days} days"
    if deadline.year != now.year:
        return f"{deadline:%b} {deadline.day}, {deadline.year}"
    return f"{deadline:%b} {deadline.day}"


def add_utm_source(url: str, utm_source: Optional[str]) -> str:
    """Append ``utm_source`` to the query string unless already present."""
    if not utm_source:
        return url
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if any(key == "utm_source" for key, _ in query):
        return url
    query.append(("utm_source", utm_source))
    return urlunsplit(parts._replace(query=urlencode(query)))


def build_message_context(
    opportunity: Opportunity,
    utm_source: Optional[str] = "telegrambot",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build the template context for an opportunity alert.

    Args:
        opportunity: Opportunity being announced
        utm_source: Tracking tag for the link, None to leave the URL untouched
        now: Reference time for the relative deadline

    Returns:
        Dictionary with heading, title, sponsor, reward, deadline and url
    """
    return {
        "opportunity_id": opportunity.id,
        "heading": HEADINGS[opportunity.category],
        "category": opportunity.category.value,
        "title": opportunity.title,
        "sponsor": opportunity.sponsor_name or "Unknown Sponsor",
        "reward": format_reward(opportunity),
        "deadline": format_deadline(opportunity.deadline, now=now),
        "skills": list(opportunity.skills),
        "url": add_utm_source(opportunity.url, utm_source),
    }
