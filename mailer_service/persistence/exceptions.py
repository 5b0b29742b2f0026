"""Persistence layer exceptions.

All store failures derive from PersistenceError so services can catch the
whole family with a single except clause. StoreError is kept as an alias
for callers that think in terms of the Store capability.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


StoreError = PersistenceError


class DatabaseConnectionError(PersistenceError):
    """Raised when the engine cannot be created or the database is not initialized.

    Examples:
    - Empty or malformed DATABASE_URL
    - SQLite file or directory not writable
    - get_session() called before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a row expected to exist is gone.

    Optional lookups return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised on constraint violations, e.g. a duplicate record id."""

    pass
