"""Owned store schema: recipients, preferences and the delivery ledger.

ORM models convert to and from domain models. Timestamps are stored as
fixed-width ISO-8601 UTC strings so they sort and compare lexically on
every backend.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from opportunity_notifier.domain.models import LedgerEntry, Preferences, Recipient

logger = logging.getLogger(__name__)

Base = declarative_base()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class RecipientModel(Base):
    """ORM model for the recipients table. Rows are never hard-deleted."""

    __tablename__ = "recipients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(String(64), nullable=False, unique=True)
    external_user_id = Column(String(255), nullable=True)
    geography = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(String(32), nullable=False)
    updated_at = Column(String(32), nullable=False)

    __table_args__ = (Index("idx_recipients_active", "is_active"),)

    def to_domain(self) -> Recipient:
        return Recipient(
            id=self.id,
            channel_id=self.channel_id,
            external_user_id=self.external_user_id,
            geography=self.geography,
            is_active=bool(self.is_active),
            created_at=parse_timestamp(self.created_at),
            updated_at=parse_timestamp(self.updated_at),
        )


class PreferencesModel(Base):
    """ORM model for the preferences table (one row per recipient)."""

    __tablename__ = "preferences"

    recipient_id = Column(
        Integer, ForeignKey("recipients.id", ondelete="CASCADE"), primary_key=True
    )
    min_usd = Column(Float, nullable=True)
    max_usd = Column(Float, nullable=True)
    notify_bounties = Column(Boolean, nullable=False, default=True)
    notify_projects = Column(Boolean, nullable=False, default=True)
    skills = Column(JSON, nullable=False, default=list)

    def to_domain(self) -> Preferences:
        return Preferences(
            recipient_id=self.recipient_id,
            min_usd=self.min_usd,
            max_usd=self.max_usd,
            notify_bounties=bool(self.notify_bounties),
            notify_projects=bool(self.notify_projects),
            skills=list(self.skills or []),
        )

    @classmethod
    def from_domain(cls, preferences: Preferences) -> "PreferencesModel":
        return cls(
            recipient_id=preferences.recipient_id,
            min_usd=preferences.min_usd,
            max_usd=preferences.max_usd,
            notify_bounties=preferences.notify_bounties,
            notify_projects=preferences.notify_projects,
            skills=list(preferences.skills),
        )


class LedgerEntryModel(Base):
    """ORM model for notification_ledger.

    The unique constraint on (recipient_id, opportunity_id) is what makes
    delivery at-most-once across overlapping ticks and processes.
    """

    __tablename__ = "notification_ledger"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(
        Integer, ForeignKey("recipients.id", ondelete="CASCADE"), nullable=False
    )
    opportunity_id = Column(String(255), nullable=False)
    sent_at = Column(String(32), nullable=False)

    __table_args__ = (
        UniqueConstraint("recipient_id", "opportunity_id", name="uq_ledger_recipient_opportunity"),
        Index("idx_ledger_sent_at", "sent_at"),
    )

    def to_domain(self) -> LedgerEntry:
        return LedgerEntry(
            recipient_id=self.recipient_id,
            opportunity_id=self.opportunity_id,
            sent_at=parse_timestamp(self.sent_at),
        )


def format_timestamp(dt: datetime) -> str:
    """Format an aware or naive-UTC datetime for storage."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into aware UTC."""
    if not value:
        return None
    value = value.rstrip("Z")
    try:
        dt = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S")
    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    Base.metadata.create_all(engine, checkfirst=True)
    logger.info(
        "Database schema ready",
        extra={
            "event": "database.schema.ready",
            "component": "database",
            "tables": sorted(inspect(engine).get_table_names()),
        },
    )
