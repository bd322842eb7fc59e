"""Core domain models for recipients, opportunities and deliveries.

This module defines the data structures shared by every component:
- Recipient / Preferences: subscribers and their filters (owned store)
- Opportunity and its reward shapes: read-only records from the catalog
- LedgerEntry: proof that a (recipient, opportunity) pair was notified
- DeliveryStats: the read-only stats snapshot
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from opportunity_notifier.utils.timestamps import ensure_utc


class OpportunityCategory(str, Enum):
    """Closed set of opportunity categories."""

    BOUNTY = "bounty"
    PROJECT = "project"
    GRANT = "grant"


class FixedReward(BaseModel):
    """A single fixed payout, optionally in a token with a USD equivalent."""

    kind: Literal["fixed"] = "fixed"
    amount: Optional[float] = Field(None, ge=0, description="Payout in `token` units")
    token: Optional[str] = Field(None, description="Payout token symbol, e.g. USDC")
    usd_value: Optional[float] = Field(None, ge=0, description="USD equivalent of the payout")

    model_config = {"frozen": True}

    @property
    def effective_min_usd(self) -> float:
        return self.usd_value or 0.0

    @property
    def effective_max_usd(self) -> float:
        return self.effective_min_usd


class RangeReward(BaseModel):
    """A bounded USD range; ``variable`` marks compensation decided per applicant."""

    kind: Literal["range"] = "range"
    min_usd: Optional[float] = Field(None, ge=0)
    max_usd: Optional[float] = Field(None, ge=0)
    variable: bool = False
    token: Optional[str] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_usd is not None and self.max_usd is not None and self.min_usd > self.max_usd:
            raise ValueError(f"min_usd ({self.min_usd}) exceeds max_usd ({self.max_usd})")
        return self

    @property
    def effective_min_usd(self) -> float:
        return self.min_usd or 0.0

    @property
    def effective_max_usd(self) -> float:
        if self.max_usd is not None:
            return self.max_usd
        return self.effective_min_usd


class UnspecifiedReward(BaseModel):
    """No reward information published."""

    kind: Literal["unspecified"] = "unspecified"

    model_config = {"frozen": True}

    @property
    def effective_min_usd(self) -> float:
        return 0.0

    @property
    def effective_max_usd(self) -> float:
        return 0.0


Reward = Annotated[Union[FixedReward, RangeReward, UnspecifiedReward], Field(discriminator="kind")]


class Opportunity(BaseModel):
    """A publishable bounty, project or grant, normalized from the catalog.

    Immutable once built. ``geography`` is empty or contains region names
    and/or a global sentinel; ``skills`` is empty when the opportunity is
    open to all skills.
    """

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    sponsor_name: Optional[str] = None
    category: OpportunityCategory
    reward: Reward = Field(default_factory=UnspecifiedReward)
    deadline: Optional[datetime] = None
    geography: Tuple[str, ...] = ()
    skills: Tuple[str, ...] = ()
    url: str = Field(..., min_length=1)
    published_at: Optional[datetime] = Field(None, description="Visibility timestamp (UTC)")

    model_config = {
        "frozen": True,
        "use_enum_values": False,
        "json_schema_extra": {"example": {
            "id": "c1b8a6d0",
            "title": "Build a Solana indexer",
            "sponsor_name": "Example DAO",
            "category": "bounty",
            "reward": {"kind": "fixed", "amount": 500, "token": "USDC", "usd_value": 500},
            "deadline": "2025-11-30T23:59:59Z",
            "geography": ["GLOBAL"],
            "skills": ["Rust", "Backend"],
            "url": "https://earn.superteam.fun/listings/build-a-solana-indexer",
            "published_at": "2025-11-04T10:00:00Z",
        }},
    }

    @field_validator("title", "id")
    @classmethod
    def strip_required(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped

    @field_validator("geography", "skills", mode="before")
    @classmethod
    def clean_string_list(cls, v):
        if v is None:
            return ()
        return tuple(item.strip() for item in v if isinstance(item, str) and item.strip())

    @field_validator("deadline", "published_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class Recipient(BaseModel):
    """A subscriber reachable on the messaging channel."""

    id: int
    channel_id: str = Field(..., min_length=1, description="Chat id on the messaging channel")
    external_user_id: Optional[str] = Field(
        None, description="Linked identity in the catalog, enables the external eligibility check"
    )
    geography: Optional[str] = Field(None, description="Single region name; unset sees only global")
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    @field_validator("geography")
    @classmethod
    def blank_geography_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("created_at", "updated_at")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Preferences(BaseModel):
    """A recipient's filters. Defaults are permissive."""

    recipient_id: int
    min_usd: Optional[float] = Field(None, ge=0)
    max_usd: Optional[float] = Field(None, ge=0)
    notify_bounties: bool = True
    notify_projects: bool = True
    skills: List[str] = Field(default_factory=list)

    @field_validator("skills", mode="before")
    @classmethod
    def clean_skills(cls, v):
        if v is None:
            return []
        seen = []
        for item in v:
            if isinstance(item, str) and item.strip() and item.strip() not in seen:
                seen.append(item.strip())
        return seen

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_usd is not None and self.max_usd is not None and self.min_usd > self.max_usd:
            raise ValueError(f"min_usd ({self.min_usd}) exceeds max_usd ({self.max_usd})")
        return self


class RecipientWithPreferences(BaseModel):
    """An active recipient paired with their preferences, as loaded per opportunity."""

    recipient: Recipient
    preferences: Preferences


class LedgerEntry(BaseModel):
    """A confirmed delivery of one opportunity to one recipient."""

    recipient_id: int
    opportunity_id: str
    sent_at: datetime

    @field_validator("sent_at")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class DeliveryStats(BaseModel):
    """Read-only operational counters."""

    total_recipients: int = 0
    active_recipients: int = 0
    total_notifications: int = 0
    notifications_today: int = 0
