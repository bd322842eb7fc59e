"""Domain models for the opportunity notifier."""

from .models import (
    DeliveryStats,
    FixedReward,
    LedgerEntry,
    Opportunity,
    OpportunityCategory,
    Preferences,
    RangeReward,
    Recipient,
    RecipientWithPreferences,
    Reward,
    UnspecifiedReward,
)

__all__ = [
    "DeliveryStats",
    "FixedReward",
    "LedgerEntry",
    "Opportunity",
    "OpportunityCategory",
    "Preferences",
    "RangeReward",
    "Recipient",
    "RecipientWithPreferences",
    "Reward",
    "UnspecifiedReward",
]
