"""Database connection and session management.

The module owns a single engine and session factory for the process.
TrackingService opens one session per operation through get_session().
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mailer_service.logging import get_logger

from .exceptions import DatabaseConnectionError

_engine: Engine | None = None
_session_factory: sessionmaker | None = None

logger = get_logger(__name__, component="database")


def init_database(database_url: str) -> None:
    """Create the engine, validate the connection and create the schema.

    Call once at startup. Re-initializing disposes the previous engine.
    In-memory SQLite URLs share one connection so every session sees the
    same database.

    Args:
        database_url: SQLAlchemy URL (e.g., "sqlite:///./data/mailer.db")

    Raises:
        DatabaseConnectionError: If initialization fails
    """
    global _engine, _session_factory

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise DatabaseConnectionError(f"Invalid database URL: {e}") from e

    if _engine is not None:
        close_database()

    logger.info(
        "Initializing database",
        extra={"event": "database.initializing", "database_url": _redact_url(database_url)},
    )

    try:
        is_sqlite = url.get_backend_name() == "sqlite"
        in_memory = is_sqlite and url.database in (None, "", ":memory:")

        if is_sqlite and not in_memory:
            db_file = Path(url.database)
            if not db_file.parent.exists():
                logger.info(
                    f"Creating database directory: {db_file.parent}",
                    extra={"event": "database.directory_created"},
                )
                db_file.parent.mkdir(parents=True, exist_ok=True)

        engine_kwargs = {"pool_pre_ping": True}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if in_memory:
            engine_kwargs["poolclass"] = StaticPool

        _engine = create_engine(database_url, **engine_kwargs)

        if is_sqlite:
            _configure_sqlite(_engine, wal=not in_memory)

        _validate_connection(_engine)

        _session_factory = sessionmaker(
            bind=_engine,
            autoflush=True,
            expire_on_commit=False,
        )

        from .schema import create_schema

        create_schema(_engine)

        logger.info(
            "Database initialized successfully",
            extra={"event": "database.initialised", "database_url": _redact_url(database_url)},
        )

    except DatabaseConnectionError:
        raise
    except Exception as e:
        error_msg = f"Failed to initialize database: {e}"
        logger.error(error_msg, exc_info=True, extra={"event": "database.init_failed"})
        raise DatabaseConnectionError(error_msg) from e


def _configure_sqlite(engine: Engine, wal: bool) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.debug("Database connection validated", extra={"event": "database.validated"})
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def _redact_url(url: str) -> str:
    """Hide the password of a database URL for logging."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid url>"


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Provide a database session with automatic transaction management.

    Commits on successful exit, rolls back and re-raises on exception, and
    always closes the session.

    Raises:
        DatabaseConnectionError: If the database is not initialized

    Example:
        >>> with get_session() as session:
        ...     repo = DeliveryRecordRepository(session)
        ...     record = repo.find_by_id(record_id)
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
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Return the initialized engine.

    Raises:
        DatabaseConnectionError: If the database is not initialized
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )
    return _engine


def close_database() -> None:
    """Dispose of the engine. Safe to call when nothing is initialized."""
    global _engine, _session_factory

    if _engine is not None:
        logger.info("Closing database connections", extra={"event": "database.closing"})
        _engine.dispose()
        _engine = None
        _session_factory = None
