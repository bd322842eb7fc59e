"""Builders for domain objects used across test modules."""

from datetime import datetime, timezone

from opportunity_notifier.domain.models import (
    FixedReward,
    Opportunity,
    OpportunityCategory,
    Preferences,
    RangeReward,
    Recipient,
    RecipientWithPreferences,
)

NOW = datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)


def make_opportunity(**overrides) -> Opportunity:
    """Build a global, skill-less $500 USDC bounty unless overridden."""
    values = {
        "id": "bounty-1",
        "title": "Build a Solana indexer",
        "sponsor_name": "Example DAO",
        "category": OpportunityCategory.BOUNTY,
        "reward": FixedReward(amount=500, token="USDC", usd_value=500),
        "deadline": datetime(2025, 11, 30, 23, 59, tzinfo=timezone.utc),
        "geography": ("GLOBAL",),
        "skills": (),
        "url": "https://earn.superteam.fun/listings/build-a-solana-indexer",
        "published_at": datetime(2025, 11, 4, 0, 0, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return Opportunity(**values)


def make_grant(**overrides) -> Opportunity:
    values = {
        "id": "grant-1",
        "title": "Ecosystem Grant",
        "category": OpportunityCategory.GRANT,
        "reward": RangeReward(min_usd=1000, max_usd=10000, variable=True),
        "deadline": None,
        "url": "https://earn.superteam.fun/grants/ecosystem-grant",
    }
    values.update(overrides)
    return make_opportunity(**values)


def make_recipient(recipient_id: int = 1, **overrides) -> Recipient:
    values = {
        "id": recipient_id,
        "channel_id": str(1000 + recipient_id),
        "external_user_id": None,
        "geography": None,
        "is_active": True,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return Recipient(**values)


def make_preferences(recipient_id: int = 1, **overrides) -> Preferences:
    return Preferences(recipient_id=recipient_id, **overrides)


def make_subscriber(recipient_id: int = 1, preferences=None, **recipient_overrides) -> RecipientWithPreferences:
    return RecipientWithPreferences(
        recipient=make_recipient(recipient_id, **recipient_overrides),
        preferences=make_preferences(recipient_id, **(preferences or {})),
    )
