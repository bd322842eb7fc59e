"""Owned store: recipients, preferences and the delivery ledger.

Public API:
    - init_database(database_url) / get_session() / close_database() / get_engine()
    - create_database_engine(database_url, query_timeout_seconds=None)
    - RecipientRepository, PreferencesRepository, LedgerRepository
    - PersistenceError and subclasses

Example usage:
    >>> init_database("sqlite:///./data/notifier.db")
    >>> with get_session() as session:
    ...     recipient, created = RecipientRepository(session).get_or_create("123456")
"""

from .database import (
    close_database,
    create_database_engine,
    get_engine,
    get_session,
    init_database,
    redact_url,
)
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import LedgerRepository, PreferencesRepository, RecipientRepository

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "create_database_engine",
    "redact_url",
    "RecipientRepository",
    "PreferencesRepository",
    "LedgerRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
