"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can
catch storage problems with a single clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""


class DatabaseConnectionError(PersistenceError):
    """Raised when a store cannot be initialized or reached.

    Fatal at startup: the process refuses to run without its stores.
    """


class RecordNotFoundError(PersistenceError):
    """Raised when an operation targets a recipient that does not exist.

    Lookups that may legitimately miss return None instead.
    """


class DataIntegrityError(PersistenceError):
    """Raised on constraint violations other than the benign ledger duplicate."""
