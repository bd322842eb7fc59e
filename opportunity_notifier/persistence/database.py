"""Engine construction and session lifecycle for the owned store.

The owned store (recipients, preferences, ledger) is process-global: it is
initialised once at startup with :func:`init_database` and accessed through
:func:`get_session`. :func:`create_database_engine` is also used to build
the engine for the read-only catalog.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opportunity_notifier.logging import get_logger

from .exceptions import DatabaseConnectionError, PersistenceError

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None

logger = get_logger(__name__, component="database")


def create_database_engine(
    database_url: str,
    query_timeout_seconds: Optional[int] = None,
) -> Engine:
    """Build an engine with per-dialect settings and a bounded query timeout.

    SQLite gets a busy timeout and, for ``:memory:`` databases, a single
    shared connection so every session and thread sees the same data.
    PostgreSQL gets a server-side ``statement_timeout``.

    Args:
        database_url: SQLAlchemy database URL
        query_timeout_seconds: Upper bound on a single statement, if any

    Returns:
        Engine: configured SQLAlchemy engine (not yet connected)

    Raises:
        DatabaseConnectionError: If the URL cannot be parsed
    """
    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise DatabaseConnectionError(f"Invalid database URL: {redact_url(database_url)}") from e

    timeout = query_timeout_seconds or 30
    kwargs = {"pool_pre_ping": True}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": timeout}
        in_memory = url.database in (None, "", ":memory:")
        if in_memory:
            kwargs["poolclass"] = StaticPool
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, **kwargs)
        _configure_sqlite(engine, use_wal=not in_memory)
        return engine

    if url.get_backend_name() == "postgresql":
        kwargs["connect_args"] = {"options": f"-c statement_timeout={timeout * 1000}"}

    return create_engine(url, **kwargs)


def init_database(database_url: str) -> None:
    """Initialise the owned store and create its schema if needed.

    Call once during startup.

    Args:
        database_url: Database connection URL (e.g. "sqlite:///./data/notifier.db")

    Raises:
        DatabaseConnectionError: If the store cannot be reached or prepared
    """
    global _engine, _session_factory

    logger.info(
        "Initializing database",
        extra={"event": "database.initializing", "database_url": redact_url(database_url)},
    )

    try:
        engine = create_database_engine(database_url)
        validate_connection(engine)

        from .schema import create_schema

        create_schema(engine)
    except DatabaseConnectionError:
        raise
    except Exception as e:
        logger.error(
            f"Failed to initialize database: {e}",
            extra={"event": "database.init_failed", "error_type": type(e).__name__},
            exc_info=True,
        )
        raise DatabaseConnectionError(f"Failed to initialize database: {e}") from e

    _engine = engine
    _session_factory = sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)

    logger.info(
        "Database initialized successfully",
        extra={"event": "database.initialised", "database_url": redact_url(database_url)},
    )


def _configure_sqlite(engine: Engine, use_wal: bool) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if use_wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def validate_connection(engine: Engine) -> None:
    """Run ``SELECT 1`` against ``engine``.

    Raises:
        DatabaseConnectionError: If the query fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
    except Exception as e:
        raise DatabaseConnectionError(
            f"Failed to validate database connection to {redact_url(str(engine.url))}: {e}"
        ) from e


def redact_url(url: str) -> str:
    """Mask the password in a database URL for logging."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid url>"


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Provide a session that commits on success and rolls back on error.

    Yields:
        Session: SQLAlchemy session bound to the owned store

    Raises:
        DatabaseConnectionError: If init_database() has not been called
        PersistenceError: If the database rejects the work or the commit

    Example:
        >>> with get_session() as session:
        ...     LedgerRepository(session).has_been_notified(7, "bounty-1")
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Database session rolled back due to exception: {e}",
            extra={"event": "database.session.rolled_back", "error_type": type(e).__name__},
        )
        if isinstance(e, SQLAlchemyError):
            raise PersistenceError(f"Database session failed: {e}") from e
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Return the owned-store engine.

    Raises:
        DatabaseConnectionError: If init_database() has not been called
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )
    return _engine


def close_database() -> None:
    """Dispose of the owned-store engine. Safe to call more than once."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed", extra={"event": "database.closed"})
