"""Unit tests for persistence layer."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
from pydantic import ValidationError
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from opportunity_notifier.persistence import (
    DatabaseConnectionError,
    LedgerRepository,
    PersistenceError,
    PreferencesRepository,
    RecipientRepository,
    RecordNotFoundError,
    close_database,
    get_engine,
    get_session,
    init_database,
    redact_url,
)
from opportunity_notifier.persistence.schema import format_timestamp, parse_timestamp

T0 = datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """Initialise an in-memory owned store for one test."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


def create_recipient(channel_id: str = "1001", now: datetime = T0) -> int:
    with get_session() as session:
        recipient, _ = RecipientRepository(session).get_or_create(channel_id, now=now)
    return recipient.id


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_file_creates_parent_directories(self, tmp_path):
        """Test file databases create missing parent directories."""
        db_file = tmp_path / "nested" / "dir" / "notifier.db"
        init_database(f"sqlite:///{db_file}")
        try:
            assert db_file.exists()
            tables = set(inspect(get_engine()).get_table_names())
            assert {"recipients", "preferences", "notification_ledger"} <= tables
        finally:
            close_database()

    def test_init_database_is_idempotent(self, tmp_path):
        """Test schema creation can run more than once."""
        url = f"sqlite:///{tmp_path / 'notifier.db'}"
        init_database(url)
        close_database()
        init_database(url)
        close_database()

    @pytest.mark.parametrize("url", ["", None, "not a url"])
    def test_init_database_invalid_url_raises_error(self, url):
        """Test unusable URLs raise DatabaseConnectionError."""
        with pytest.raises(DatabaseConnectionError):
            init_database(url)

    def test_get_session_before_init_raises(self):
        """Test sessions require initialisation."""
        close_database()
        with pytest.raises(DatabaseConnectionError):
            with get_session():
                pass

    def test_session_rolls_back_on_error(self, db):
        """Test an exception inside the scope discards the writes."""
        with pytest.raises(RuntimeError):
            with get_session() as session:
                RecipientRepository(session).get_or_create("1001", now=T0)
                raise RuntimeError("boom")

        with get_session() as session:
            assert RecipientRepository(session).count_all() == 0

    def test_commit_failure_raises_persistence_error(self, db):
        """Test a database error at commit time surfaces as PersistenceError."""
        with pytest.raises(PersistenceError) as exc_info:
            with get_session() as session:
                RecipientRepository(session).get_or_create("1001", now=T0)
                session.commit = Mock(side_effect=OperationalError("COMMIT", {}, Exception("disk full")))

        assert isinstance(exc_info.value.__cause__, OperationalError)
        with get_session() as session:
            assert RecipientRepository(session).count_all() == 0

    def test_close_database_is_safe_to_repeat(self, db):
        """Test close can be called more than once."""
        close_database()
        close_database()
        with pytest.raises(DatabaseConnectionError):
            get_engine()

    def test_redact_url_hides_password(self):
        """Test passwords never reach the logs."""
        redacted = redact_url("postgresql://bot:hunter2@db/notifier")
        assert "hunter2" not in redacted
        assert "bot" in redacted
        assert redact_url("") == "<invalid url>"


class TestTimestamps:
    """Tests for stored timestamp format."""

    def test_format_is_fixed_width_utc(self):
        """Test stored timestamps sort lexically."""
        est = timezone(timedelta(hours=-5))
        assert format_timestamp(datetime(2025, 11, 4, 7, 0, tzinfo=est)) == "2025-11-04T12:00:00.000000Z"
        assert format_timestamp(datetime(2025, 11, 4, 12, 0)) == "2025-11-04T12:00:00.000000Z"

    def test_parse_accepts_both_precisions(self):
        """Test parsing with and without microseconds."""
        assert parse_timestamp("2025-11-04T12:00:00.000000Z") == T0
        assert parse_timestamp("2025-11-04T12:00:00Z") == T0
        assert parse_timestamp(None) is None


class TestRecipientRepository:
    """Tests for RecipientRepository."""

    def test_get_or_create_new_recipient(self, db):
        """Test first contact creates an active recipient with default preferences."""
        with get_session() as session:
            recipient, created = RecipientRepository(session).get_or_create("1001", now=T0)

        assert created is True
        assert recipient.channel_id == "1001"
        assert recipient.is_active is True
        assert recipient.created_at == T0

        with get_session() as session:
            preferences = PreferencesRepository(session).get(recipient.id)
        assert preferences.min_usd is None
        assert preferences.notify_bounties is True
        assert preferences.skills == []

    def test_get_or_create_existing_recipient(self, db):
        """Test a second contact returns the same recipient."""
        first_id = create_recipient("1001")
        with get_session() as session:
            recipient, created = RecipientRepository(session).get_or_create("1001")
        assert created is False
        assert recipient.id == first_id

    def test_get_or_create_reactivates_paused_recipient(self, db):
        """Test a paused recipient returning is resumed."""
        recipient_id = create_recipient("1001")
        with get_session() as session:
            RecipientRepository(session).set_active(recipient_id, False)
        with get_session() as session:
            recipient, created = RecipientRepository(session).get_or_create("1001")
        assert created is False
        assert recipient.is_active is True

    def test_set_active_and_list_active(self, db):
        """Test paused recipients are excluded from the active list."""
        first = create_recipient("1001")
        second = create_recipient("1002")
        later = T0 + timedelta(hours=1)
        with get_session() as session:
            RecipientRepository(session).set_active(first, False, now=later)

        with get_session() as session:
            repo = RecipientRepository(session)
            active = repo.list_active()
            paused = repo.get(first)

        assert [entry.recipient.id for entry in active] == [second]
        assert active[0].preferences.recipient_id == second
        assert paused.is_active is False
        assert paused.updated_at == later

    def test_set_active_unknown_recipient(self, db):
        """Test updating a missing recipient raises RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                RecipientRepository(session).set_active(999, False)

    def test_update_geography_and_link_external_user(self, db):
        """Test profile fields are stored and cleared."""
        recipient_id = create_recipient()
        with get_session() as session:
            repo = RecipientRepository(session)
            repo.update_geography(recipient_id, "  India ")
            repo.link_external_user(recipient_id, "user-42")
        with get_session() as session:
            recipient = RecipientRepository(session).get_by_channel_id("1001")
        assert recipient.geography == "India"
        assert recipient.external_user_id == "user-42"

        with get_session() as session:
            RecipientRepository(session).update_geography(recipient_id, "   ")
        with get_session() as session:
            assert RecipientRepository(session).get(recipient_id).geography is None

    def test_counts(self, db):
        """Test total and active counts."""
        create_recipient("1001")
        paused = create_recipient("1002")
        with get_session() as session:
            RecipientRepository(session).set_active(paused, False)
        with get_session() as session:
            repo = RecipientRepository(session)
            assert repo.count_all() == 2
            assert repo.count_active() == 1

    def test_get_missing_returns_none(self, db):
        """Test lookups for unknown recipients return None."""
        with get_session() as session:
            repo = RecipientRepository(session)
            assert repo.get(123) is None
            assert repo.get_by_channel_id("nope") is None


class TestPreferencesRepository:
    """Tests for PreferencesRepository."""

    def test_upsert_merges_changes(self, db):
        """Test partial updates keep untouched fields."""
        recipient_id = create_recipient()
        with get_session() as session:
            repo = PreferencesRepository(session)
            repo.upsert(recipient_id, min_usd=100, skills=["Rust", "rust ", "Rust"])
            stored = repo.upsert(recipient_id, notify_projects=False)

        assert stored.min_usd == 100
        assert stored.notify_projects is False
        assert stored.skills == ["Rust", "rust"]

        with get_session() as session:
            assert PreferencesRepository(session).get(recipient_id) == stored

    def test_upsert_rejects_inverted_bounds(self, db):
        """Test merged bounds are re-validated."""
        recipient_id = create_recipient()
        with get_session() as session:
            PreferencesRepository(session).upsert(recipient_id, max_usd=50)
        with pytest.raises(ValidationError):
            with get_session() as session:
                PreferencesRepository(session).upsert(recipient_id, min_usd=100)

    def test_upsert_rejects_unknown_fields(self, db):
        """Test unknown preference names are refused."""
        recipient_id = create_recipient()
        with pytest.raises(ValueError, match="Unknown preference fields"):
            with get_session() as session:
                PreferencesRepository(session).upsert(recipient_id, geography="India")

    def test_upsert_unknown_recipient(self, db):
        """Test preferences require an existing recipient."""
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                PreferencesRepository(session).upsert(999, min_usd=1)


class TestLedgerRepository:
    """Tests for the delivery ledger."""

    def test_record_and_check(self, db):
        """Test a recorded pair is reported as notified."""
        recipient_id = create_recipient()
        with get_session() as session:
            ledger = LedgerRepository(session)
            assert ledger.has_been_notified(recipient_id, "bounty-1") is False
            assert ledger.record(recipient_id, "bounty-1", T0) is True
            assert ledger.has_been_notified(recipient_id, "bounty-1") is True
            assert ledger.has_been_notified(recipient_id, "bounty-2") is False

    def test_duplicate_record_is_noop(self, db):
        """Test a second record for the same pair writes nothing and reports False."""
        recipient_id = create_recipient()
        with get_session() as session:
            assert LedgerRepository(session).record(recipient_id, "bounty-1", T0) is True
        with get_session() as session:
            ledger = LedgerRepository(session)
            assert ledger.record(recipient_id, "bounty-1", T0 + timedelta(minutes=1)) is False
            assert ledger.count_all() == 1
            assert ledger.recent_for_recipient(recipient_id)[0].sent_at == T0

    def test_same_opportunity_for_different_recipients(self, db):
        """Test uniqueness is per (recipient, opportunity) pair."""
        first = create_recipient("1001")
        second = create_recipient("1002")
        with get_session() as session:
            ledger = LedgerRepository(session)
            assert ledger.record(first, "bounty-1", T0) is True
            assert ledger.record(second, "bounty-1", T0) is True
            assert ledger.count_all() == 2

    def test_count_since_and_per_recipient(self, db):
        """Test time-bounded and per-recipient counts."""
        recipient_id = create_recipient()
        with get_session() as session:
            ledger = LedgerRepository(session)
            ledger.record(recipient_id, "old", T0 - timedelta(days=1))
            ledger.record(recipient_id, "new", T0 + timedelta(minutes=5))

        with get_session() as session:
            ledger = LedgerRepository(session)
            assert ledger.count_since(T0) == 1
            assert ledger.count_since(T0 - timedelta(days=2)) == 2
            assert ledger.count_for_recipient(recipient_id) == 2

    def test_recent_for_recipient_newest_first(self, db):
        """Test recent entries are ordered newest first and limited."""
        recipient_id = create_recipient()
        with get_session() as session:
            ledger = LedgerRepository(session)
            for minutes in range(5):
                ledger.record(recipient_id, f"bounty-{minutes}", T0 + timedelta(minutes=minutes))

        with get_session() as session:
            recent = LedgerRepository(session).recent_for_recipient(recipient_id, limit=2)
        assert [entry.opportunity_id for entry in recent] == ["bounty-4", "bounty-3"]

    def test_database_errors_are_wrapped(self, db):
        """Test SQLAlchemy failures surface as PersistenceError."""
        with get_session() as session:
            ledger = LedgerRepository(session)
            with patch.object(session, "execute", side_effect=OperationalError("stmt", {}, Exception("locked"))):
                with pytest.raises(PersistenceError):
                    ledger.has_been_notified(1, "bounty-1")
                with pytest.raises(PersistenceError):
                    ledger.record(1, "bounty-1", T0)
