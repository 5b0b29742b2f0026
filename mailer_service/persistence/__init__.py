"""Persistence layer for delivery records.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository
    - DeliveryRecordRepository: Store operations over delivery records

    # Exceptions
    - PersistenceError (alias StoreError): base exception
    - DatabaseConnectionError, RecordNotFoundError, DataIntegrityError

Example usage:
    >>> from mailer_service.persistence import init_database, get_session, DeliveryRecordRepository
    >>> init_database("sqlite:///./data/mailer.db")
    >>> with get_session() as session:
    ...     record = DeliveryRecordRepository(session).find_by_id(record_id)
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
    StoreError,
)
from .repositories import DEFAULT_PAGE_SIZE, DeliveryRecordRepository

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "DeliveryRecordRepository",
    "DEFAULT_PAGE_SIZE",
    "PersistenceError",
    "StoreError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
