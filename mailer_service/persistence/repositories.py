"""Data access layer (repositories) for persistence operations.

This module provides the repository for delivery records. The repository
encapsulates database operations and returns domain models rather than ORM
models. Every list, lookup and aggregate query excludes soft-deleted rows;
only hard_delete and cleanup_older_than touch them.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mailer_service.domain.models import (
    FAILURE_STATUSES,
    DeliveryRecord,
    EmailEvent,
    MailStatus,
    TrackingFilters,
)

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import DeliveryRecordModel, format_datetime

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50

# Bulk statements reload rows explicitly instead of syncing the identity map
_NO_SYNC = {"synchronize_session": False}

Model = DeliveryRecordModel

# Columns update_status() may write alongside the status itself
_UPDATABLE_FIELDS = frozenset(
    {
        "sent_at",
        "delivered_at",
        "read_at",
        "failed_at",
        "next_retry_at",
        "error_message",
        "error_code",
        "message_id",
        "external_id",
        "provider",
        "retry_count",
        "notes",
    }
)


class DeliveryRecordRepository:
    """Repository for delivery record database operations."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, record: DeliveryRecord) -> DeliveryRecord:
        """Insert a new delivery record.

        Raises:
            DataIntegrityError: If a record with the same id already exists
            PersistenceError: If database error occurs
        """
        try:
            row = Model.from_domain(record)
            self.session.add(row)
            self.session.flush()
            return row.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error creating record {record.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create delivery record: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating record {record.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create delivery record: {e}") from e

    def update_status(
        self, record_id: str, status: MailStatus, updated_at: datetime, **fields: Any
    ) -> Optional[DeliveryRecord]:
        """Unconditionally set status plus any of the lifecycle columns.

        Datetime values are stored in the fixed-width timestamp format.

        Returns:
            Updated record, or None if no live record has this id

        Raises:
            ValueError: If an unknown column is passed
            PersistenceError: If database error occurs
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")

        values: Dict[str, Any] = {
            "status": status.value,
            "updated_at": format_datetime(updated_at),
        }
        for name, value in fields.items():
            values[name] = format_datetime(value) if isinstance(value, datetime) else value

        try:
            stmt = update(Model).where(Model.id == record_id, Model.deleted_at.is_(None)).values(**values)
            result = self.session.execute(stmt, execution_options=_NO_SYNC)
            self.session.flush()

            if result.rowcount == 0:
                return None
            return self._reload(record_id)

        except SQLAlchemyError as e:
            logger.error(f"Error updating status for record {record_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update record status: {e}") from e

    def mark_sent_if_pending(
        self,
        record_id: str,
        sent_at: datetime,
        message_id: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> bool:
        """Compare-and-set PENDING -> SENT in a single UPDATE.

        Clears error fields and resets retry_count. message_id/provider are
        only written when given.

        Returns:
            True if this call performed the transition, False if the record is
            missing or no longer PENDING
        """
        values: Dict[str, Any] = {
            "status": MailStatus.SENT.value,
            "sent_at": format_datetime(sent_at),
            "updated_at": format_datetime(sent_at),
            "error_message": None,
            "error_code": None,
            "retry_count": 0,
            "next_retry_at": None,
        }
        if message_id is not None:
            values["message_id"] = message_id
        if provider is not None:
            values["provider"] = provider

        try:
            stmt = (
                update(Model)
                .where(
                    Model.id == record_id,
                    Model.status == MailStatus.PENDING.value,
                    Model.deleted_at.is_(None),
                )
                .values(**values)
            )
            result = self.session.execute(stmt, execution_options=_NO_SYNC)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error marking record {record_id} as sent: {e}", exc_info=True)
            raise PersistenceError(f"Failed to mark record as sent: {e}") from e

    def reset_for_retry(self, record_id: str, now: datetime) -> bool:
        """Compare-and-set an eligible FAILED record back to PENDING.

        The eligibility predicate is evaluated inside the UPDATE, so of two
        concurrent callers at most one sees rowcount 1.

        Returns:
            True if this call reset the record
        """
        try:
            stmt = (
                update(Model)
                .where(Model.id == record_id, self._retryable_clause(now))
                .values(
                    status=MailStatus.PENDING.value,
                    error_message=None,
                    error_code=None,
                    next_retry_at=None,
                    updated_at=format_datetime(now),
                )
            )
            result = self.session.execute(stmt, execution_options=_NO_SYNC)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error resetting record {record_id} for retry: {e}", exc_info=True)
            raise PersistenceError(f"Failed to reset record for retry: {e}") from e

    def record_failure(
        self,
        record_id: str,
        failed_at: datetime,
        error_message: str,
        error_code: Optional[str],
        schedule_retry: Callable[[int, int], Optional[datetime]],
    ) -> Optional[DeliveryRecord]:
        """Mark a record FAILED and bump its retry counter.

        The counter is incremented in SQL (never past max_retries).
        schedule_retry(retry_count, max_retries) is then called with the new
        counter and its result stored as next_retry_at.

        Returns:
            Updated record, or None if no live record has this id
        """
        try:
            stmt = (
                update(Model)
                .where(Model.id == record_id, Model.deleted_at.is_(None))
                .values(
                    status=MailStatus.FAILED.value,
                    failed_at=format_datetime(failed_at),
                    updated_at=format_datetime(failed_at),
                    error_message=error_message,
                    error_code=error_code,
                    retry_count=case(
                        (Model.retry_count < Model.max_retries, Model.retry_count + 1),
                        else_=Model.retry_count,
                    ),
                )
            )
            result = self.session.execute(stmt, execution_options=_NO_SYNC)
            if result.rowcount == 0:
                return None

            row = self.session.get(Model, record_id, populate_existing=True)
            if row is None:
                raise RecordNotFoundError(f"Delivery record {record_id} vanished during update")

            row.next_retry_at = format_datetime(schedule_retry(row.retry_count, row.max_retries))
            self.session.flush()
            return row.to_domain()

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error recording failure for record {record_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record delivery failure: {e}") from e

    def soft_delete(self, record_id: str, deleted_at: datetime) -> bool:
        """Set deleted_at on a live record. Returns False if none matched."""
        try:
            stmt = (
                update(Model)
                .where(Model.id == record_id, Model.deleted_at.is_(None))
                .values(deleted_at=format_datetime(deleted_at), updated_at=format_datetime(deleted_at))
            )
            result = self.session.execute(stmt, execution_options=_NO_SYNC)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error soft-deleting record {record_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to soft-delete record: {e}") from e

    def hard_delete(self, record_id: str) -> bool:
        """Physically remove a record, soft-deleted or not."""
        try:
            result = self.session.execute(delete(Model).where(Model.id == record_id), execution_options=_NO_SYNC)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error deleting record {record_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete record: {e}") from e

    def cleanup_older_than(self, cutoff: datetime) -> int:
        """Hard-delete every record created before cutoff.

        Args:
            cutoff: Records with created_at strictly before this are removed

        Returns:
            Number of records deleted
        """
        try:
            stmt = delete(Model).where(Model.created_at < format_datetime(cutoff))
            result = self.session.execute(stmt, execution_options=_NO_SYNC)
            self.session.flush()

            deleted_count = result.rowcount
            logger.info(f"Cleaned up {deleted_count} delivery records older than {cutoff}")
            return deleted_count

        except SQLAlchemyError as e:
            logger.error(f"Error cleaning up old records: {e}", exc_info=True)
            raise PersistenceError(f"Failed to cleanup old records: {e}") from e

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_id(self, record_id: str) -> Optional[DeliveryRecord]:
        """Retrieve a live record by id, None if absent or soft-deleted."""
        return self._first(Model.id == record_id)

    def find_by_message_id(self, message_id: str) -> Optional[DeliveryRecord]:
        """Retrieve the newest live record with this transport message id."""
        return self._first(Model.message_id == message_id)

    def find_by_email(
        self, email: str, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> List[DeliveryRecord]:
        """Records for one recipient (case-insensitive exact match), newest first."""
        return self._list([func.lower(Model.recipient) == email.strip().lower()], limit, offset)

    def find_by_event(
        self, event: EmailEvent, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> List[DeliveryRecord]:
        return self._list([Model.event == EmailEvent(event).value], limit, offset)

    def find_by_status(
        self, status: MailStatus, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> List[DeliveryRecord]:
        return self._list([Model.status == MailStatus(status).value], limit, offset)

    def find_failed(self, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> List[DeliveryRecord]:
        """Failed, bounced and spam records, most recent failure first."""
        return self._list(
            [Model.status.in_([status.value for status in FAILURE_STATUSES])],
            limit,
            offset,
            order_by=Model.failed_at.desc(),
        )

    def find_retryable(self, now: datetime, limit: Optional[int] = None) -> List[DeliveryRecord]:
        """Records eligible for retry at `now`, oldest failure first.

        Args:
            now: Evaluation instant for next_retry_at
            limit: Optional cap on the batch size
        """
        try:
            stmt = (
                select(Model)
                .where(self._retryable_clause(now))
                .order_by(Model.failed_at.asc(), Model.id.asc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving retryable records: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve retryable records: {e}") from e

    def find_with_filters(
        self, filters: TrackingFilters, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> List[DeliveryRecord]:
        """Records matching every given filter, newest first."""
        return self._list(self._filter_clauses(filters), limit, offset)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def count_by_status(self, filters: Optional[TrackingFilters] = None) -> Dict[str, int]:
        """Return {status value: count} for live records matching filters."""
        clauses = self._filter_clauses(filters) if filters else []
        stmt = (
            select(Model.status, func.count(Model.id))
            .where(Model.deleted_at.is_(None), *clauses)
            .group_by(Model.status)
        )
        return self._grouped(stmt, "status")

    def count_by_event(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> Dict[str, int]:
        """Return {event value: count} for live records created in [start, end]."""
        clauses = self._date_clauses(start, end)
        stmt = (
            select(Model.event, func.count(Model.id))
            .where(Model.deleted_at.is_(None), *clauses)
            .group_by(Model.event)
            .order_by(func.count(Model.id).desc(), Model.event.asc())
        )
        return self._grouped(stmt, "event")

    def count_by_day(self, since: datetime) -> Dict[str, int]:
        """Return {YYYY-MM-DD: count} for live records created since `since`.

        Stored timestamps are UTC strings, so the first ten characters are the
        UTC calendar day.
        """
        day = func.substr(Model.created_at, 1, 10)
        stmt = (
            select(day, func.count(Model.id))
            .where(Model.deleted_at.is_(None), Model.created_at >= format_datetime(since))
            .group_by(day)
            .order_by(day.asc())
        )
        return self._grouped(stmt, "day")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _retryable_clause(now: datetime):
        return and_(
            Model.deleted_at.is_(None),
            Model.status == MailStatus.FAILED.value,
            Model.retry_count < Model.max_retries,
            or_(Model.next_retry_at.is_(None), Model.next_retry_at <= format_datetime(now)),
        )

    @staticmethod
    def _date_clauses(start: Optional[datetime], end: Optional[datetime]) -> list:
        clauses = []
        if start is not None:
            clauses.append(Model.created_at >= format_datetime(start))
        if end is not None:
            clauses.append(Model.created_at <= format_datetime(end))
        return clauses

    def _filter_clauses(self, filters: TrackingFilters) -> list:
        clauses = self._date_clauses(filters.start_date, filters.end_date)

        if filters.email:
            pattern = f"%{filters.email.strip().lower()}%"
            clauses.append(func.lower(Model.recipient).like(pattern))
        if filters.event is not None:
            clauses.append(Model.event == filters.event.value)
        if filters.status is not None:
            clauses.append(Model.status == filters.status.value)
        if filters.priority is not None:
            clauses.append(Model.priority == filters.priority.value)
        if filters.provider:
            clauses.append(Model.provider == filters.provider)
        if filters.campaign:
            clauses.append(Model.campaign == filters.campaign)
        if filters.segment:
            clauses.append(Model.segment == filters.segment)
        for tag in filters.tags:
            # tags are stored as a JSON array, so match the quoted element
            clauses.append(Model.tags.like(f"%{json.dumps(tag, ensure_ascii=False)}%"))

        return clauses

    def _first(self, *clauses) -> Optional[DeliveryRecord]:
        try:
            stmt = (
                select(Model)
                .where(Model.deleted_at.is_(None), *clauses)
                .order_by(Model.created_at.desc())
                .limit(1)
            )
            row = self.session.execute(stmt).scalar_one_or_none()
            return row.to_domain() if row is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving delivery record: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve delivery record: {e}") from e

    def _list(
        self,
        clauses: Iterable,
        limit: int,
        offset: int,
        order_by=None,
    ) -> List[DeliveryRecord]:
        if limit < 1 or offset < 0:
            raise ValueError(f"Invalid paging: limit={limit}, offset={offset}")

        try:
            stmt = (
                select(Model)
                .where(Model.deleted_at.is_(None), *clauses)
                .order_by(order_by if order_by is not None else Model.created_at.desc(), Model.id.asc())
                .limit(limit)
                .offset(offset)
            )
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error querying delivery records: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query delivery records: {e}") from e

    def _grouped(self, stmt, label: str) -> Dict[str, int]:
        try:
            return {key: count for key, count in self.session.execute(stmt).all()}
        except SQLAlchemyError as e:
            logger.error(f"Error counting records by {label}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count records by {label}: {e}") from e

    def _reload(self, record_id: str) -> Optional[DeliveryRecord]:
        row = self.session.get(Model, record_id, populate_existing=True)
        return row.to_domain() if row is not None else None
