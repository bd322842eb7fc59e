"""Repositories over the owned store.

Repositories take a session, return domain models, and wrap SQLAlchemy
failures in persistence exceptions. They never commit; the session scope
from :func:`get_session` decides the transaction boundary.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from opportunity_notifier.domain.models import (
    LedgerEntry,
    Preferences,
    Recipient,
    RecipientWithPreferences,
)
from opportunity_notifier.utils.timestamps import utc_now

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    LedgerEntryModel,
    PreferencesModel,
    RecipientModel,
    format_timestamp,
)

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = frozenset(
    {"min_usd", "max_usd", "notify_bounties", "notify_projects", "skills"}
)


class RecipientRepository:
    """Recipient lifecycle: creation on first contact, pause/resume, profile links."""

    def __init__(self, session: Session):
        self.session = session

    def get_or_create(
        self, channel_id: str, now: Optional[datetime] = None
    ) -> Tuple[Recipient, bool]:
        """Return the recipient for ``channel_id``, creating it on first contact.

        New recipients get permissive preferences. A returning recipient that
        had been paused is reactivated.

        Args:
            channel_id: Chat id on the messaging channel
            now: Timestamp for created_at/updated_at (defaults to current UTC)

        Returns:
            Tuple of (recipient, created)

        Raises:
            PersistenceError: If database error occurs
        """
        now_str = format_timestamp(now or utc_now())
        try:
            existing = self._get_model_by_channel(channel_id)
            if existing is not None:
                if not existing.is_active:
                    existing.is_active = True
                    existing.updated_at = now_str
                    self.session.flush()
                    logger.info(
                        f"Recipient {existing.id} reactivated",
                        extra={"event": "recipient.reactivated", "recipient_id": existing.id},
                    )
                return existing.to_domain(), False

            model = RecipientModel(
                channel_id=channel_id, is_active=True, created_at=now_str, updated_at=now_str
            )
            self.session.add(model)
            self.session.flush()
            self.session.add(PreferencesModel.from_domain(Preferences(recipient_id=model.id)))
            self.session.flush()

            logger.info(
                f"Recipient {model.id} created",
                extra={"event": "recipient.created", "recipient_id": model.id},
            )
            return model.to_domain(), True

        except IntegrityError as e:
            raise DataIntegrityError(f"Failed to create recipient {channel_id}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating recipient {channel_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create recipient: {e}") from e

    def get(self, recipient_id: int) -> Optional[Recipient]:
        try:
            model = self.session.get(RecipientModel, recipient_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to retrieve recipient: {e}") from e

    def get_by_channel_id(self, channel_id: str) -> Optional[Recipient]:
        try:
            model = self._get_model_by_channel(channel_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving recipient {channel_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve recipient: {e}") from e

    def set_active(self, recipient_id: int, active: bool, now: Optional[datetime] = None) -> None:
        """Pause or resume a recipient.

        Raises:
            RecordNotFoundError: If the recipient doesn't exist
            PersistenceError: If database error occurs
        """
        self._update(recipient_id, now, is_active=active)
        logger.info(
            f"Recipient {recipient_id} {'resumed' if active else 'paused'}",
            extra={
                "event": "recipient.activated" if active else "recipient.deactivated",
                "recipient_id": recipient_id,
            },
        )

    def update_geography(
        self, recipient_id: int, geography: Optional[str], now: Optional[datetime] = None
    ) -> None:
        """Set or clear (``None``/blank) the recipient's region."""
        cleaned = geography.strip() if geography else None
        self._update(recipient_id, now, geography=cleaned or None)

    def link_external_user(
        self, recipient_id: int, external_user_id: Optional[str], now: Optional[datetime] = None
    ) -> None:
        """Link (or unlink with ``None``) the recipient's catalog identity."""
        self._update(recipient_id, now, external_user_id=external_user_id)

    def list_active(self) -> List[RecipientWithPreferences]:
        """Active recipients with their preferences, ordered by id.

        A recipient missing its preferences row gets permissive defaults.
        """
        try:
            stmt = (
                select(RecipientModel, PreferencesModel)
                .outerjoin(PreferencesModel, PreferencesModel.recipient_id == RecipientModel.id)
                .where(RecipientModel.is_active.is_(True))
                .order_by(RecipientModel.id)
            )
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing active recipients: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list active recipients: {e}") from e

        return [
            RecipientWithPreferences(
                recipient=recipient.to_domain(),
                preferences=(
                    preferences.to_domain()
                    if preferences is not None
                    else Preferences(recipient_id=recipient.id)
                ),
            )
            for recipient, preferences in rows
        ]

    def count_all(self) -> int:
        return self._count(select(func.count(RecipientModel.id)))

    def count_active(self) -> int:
        return self._count(
            select(func.count(RecipientModel.id)).where(RecipientModel.is_active.is_(True))
        )

    def _count(self, stmt) -> int:
        try:
            return int(self.session.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to count recipients: {e}") from e

    def _get_model_by_channel(self, channel_id: str) -> Optional[RecipientModel]:
        stmt = select(RecipientModel).where(RecipientModel.channel_id == channel_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def _update(self, recipient_id: int, now: Optional[datetime], **values) -> None:
        values["updated_at"] = format_timestamp(now or utc_now())
        try:
            result = self.session.execute(
                update(RecipientModel).where(RecipientModel.id == recipient_id).values(**values)
            )
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error updating recipient {recipient_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update recipient: {e}") from e

        if result.rowcount == 0:
            raise RecordNotFoundError(f"Recipient {recipient_id} not found")


class PreferencesRepository:
    """Reads and explicit updates of a recipient's filters."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, recipient_id: int) -> Optional[Preferences]:
        try:
            model = self.session.get(PreferencesModel, recipient_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to retrieve preferences: {e}") from e

    def upsert(self, recipient_id: int, **changes) -> Preferences:
        """Apply ``changes`` on top of the current (or default) preferences.

        Args:
            recipient_id: Owner of the preferences
            **changes: Any of min_usd, max_usd, notify_bounties,
                notify_projects, skills

        Returns:
            The stored preferences

        Raises:
            ValueError: On unknown fields or values that fail validation
            RecordNotFoundError: If the recipient doesn't exist
            PersistenceError: If database error occurs
        """
        unknown = set(changes) - PREFERENCE_FIELDS
        if unknown:
            raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")

        try:
            if self.session.get(RecipientModel, recipient_id) is None:
                raise RecordNotFoundError(f"Recipient {recipient_id} not found")

            model = self.session.get(PreferencesModel, recipient_id)
            current = model.to_domain() if model is not None else Preferences(recipient_id=recipient_id)
            # Re-validate the merged result so bounds stay consistent.
            merged = Preferences.model_validate({**current.model_dump(), **changes})

            if model is None:
                self.session.add(PreferencesModel.from_domain(merged))
            else:
                model.min_usd = merged.min_usd
                model.max_usd = merged.max_usd
                model.notify_bounties = merged.notify_bounties
                model.notify_projects = merged.notify_projects
                model.skills = list(merged.skills)
            self.session.flush()
            return merged

        except IntegrityError as e:
            raise DataIntegrityError(f"Failed to store preferences: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error storing preferences for {recipient_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to store preferences: {e}") from e


class LedgerRepository:
    """The delivery ledger: at most one entry per (recipient, opportunity)."""

    def __init__(self, session: Session):
        self.session = session

    def has_been_notified(self, recipient_id: int, opportunity_id: str) -> bool:
        """Check whether the pair already has a ledger entry.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(LedgerEntryModel.id).where(
                LedgerEntryModel.recipient_id == recipient_id,
                LedgerEntryModel.opportunity_id == opportunity_id,
            )
            return self.session.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            logger.error(
                f"Error checking ledger for recipient {recipient_id}, opportunity {opportunity_id}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to check ledger: {e}") from e

    def record(self, recipient_id: int, opportunity_id: str, sent_at: datetime) -> bool:
        """Record a confirmed delivery.

        The storage layer's uniqueness constraint arbitrates concurrent
        writers: a conflicting insert is a no-op, reported as ``False``.

        Args:
            recipient_id: Recipient that received the message
            opportunity_id: Opportunity that was announced
            sent_at: When the send was confirmed (UTC)

        Returns:
            True if a new entry was written, False if the pair was already recorded

        Raises:
            PersistenceError: If database error occurs
        """
        values = {
            "recipient_id": recipient_id,
            "opportunity_id": opportunity_id,
            "sent_at": format_timestamp(sent_at),
        }
        dialect = self.session.get_bind().dialect.name

        try:
            if dialect in ("sqlite", "postgresql"):
                insert_fn = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = insert_fn(LedgerEntryModel.__table__).values(**values).on_conflict_do_nothing(
                    index_elements=["recipient_id", "opportunity_id"]
                )
                inserted = self.session.execute(stmt).rowcount == 1
            else:
                inserted = self._insert_with_savepoint(values)
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                f"Error recording delivery for recipient {recipient_id}, opportunity {opportunity_id}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to record delivery: {e}") from e

        if not inserted:
            logger.info(
                "Delivery already recorded",
                extra={
                    "event": "ledger.duplicate",
                    "recipient_id": recipient_id,
                    "opportunity_id": opportunity_id,
                },
            )
        return inserted

    def _insert_with_savepoint(self, values: dict) -> bool:
        try:
            with self.session.begin_nested():
                self.session.execute(insert(LedgerEntryModel.__table__).values(**values))
            return True
        except IntegrityError:
            return False

    def count_all(self) -> int:
        return self._count(select(func.count(LedgerEntryModel.id)))

    def count_since(self, cutoff: datetime) -> int:
        """Entries with ``sent_at >= cutoff``."""
        return self._count(
            select(func.count(LedgerEntryModel.id)).where(
                LedgerEntryModel.sent_at >= format_timestamp(cutoff)
            )
        )

    def count_for_recipient(self, recipient_id: int) -> int:
        return self._count(
            select(func.count(LedgerEntryModel.id)).where(
                LedgerEntryModel.recipient_id == recipient_id
            )
        )

    def recent_for_recipient(self, recipient_id: int, limit: int = 10) -> List[LedgerEntry]:
        """Most recent deliveries to a recipient, newest first."""
        try:
            stmt = (
                select(LedgerEntryModel)
                .where(LedgerEntryModel.recipient_id == recipient_id)
                .order_by(LedgerEntryModel.sent_at.desc(), LedgerEntryModel.id.desc())
                .limit(limit)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read ledger: {e}") from e

    def _count(self, stmt) -> int:
        try:
            return int(self.session.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to count ledger entries: {e}") from e
