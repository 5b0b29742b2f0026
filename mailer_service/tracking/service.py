"""Delivery record lifecycle.

TrackingService owns every write to a delivery record's status, timestamps,
retry bookkeeping and error fields. State machine:

    PENDING -> SENT | FAILED
    SENT    -> DELIVERED | BOUNCED | SPAM
    DELIVERED -> READ
    any     -> UNSUBSCRIBED
    FAILED  -> PENDING   (only through retry_failed_email)

mark_as_sent and retry_failed_email are compare-and-set UPDATEs, so
concurrent callers never both win. Every operation runs in its own
database session.
"""

import uuid
from contextlib import AbstractContextManager
from datetime import datetime
from functools import partial
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError

from mailer_service.config.environment import DEFAULT_FROM_ADDRESS, DEFAULT_SENDER_NAME
from mailer_service.domain.catalog import get_template, is_transactional
from mailer_service.domain.models import (
    DailyCount,
    DeliveryRecord,
    DeliveryStats,
    EmailEvent,
    EventCount,
    MailStatus,
    TrackingFilters,
)
from mailer_service.logging import get_logger
from mailer_service.logging.context import log_context
from mailer_service.persistence import DEFAULT_PAGE_SIZE, DeliveryRecordRepository, get_session
from mailer_service.utils.timestamps import days_ago, utc_now

from .backoff import next_retry_at
from .exceptions import (
    InvalidStatusTransitionError,
    NotRetryableError,
    TrackingNotFoundError,
    TrackingValidationError,
)
from .models import TrackingRequest

logger = get_logger(__name__, component="tracking")

SessionFactory = Callable[[], AbstractContextManager]


class TrackingService:
    """Create, transition and query delivery records.

    Args:
        session_factory: Context manager factory yielding a SQLAlchemy session
            that commits on success (defaults to persistence.get_session)
        clock: Returns the current UTC time
        max_retries: Retry budget given to new records
        sender_name: Default sender display name stored on new records
        sender_email: Default sender address stored on new records
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = 3,
        sender_name: str = DEFAULT_SENDER_NAME,
        sender_email: str = DEFAULT_FROM_ADDRESS,
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {max_retries}")
        self._session_factory = session_factory
        self._clock = clock
        self.max_retries = max_retries
        self.sender_name = sender_name
        self.sender_email = sender_email

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_tracking(self, data: Union[TrackingRequest, Mapping[str, Any]]) -> DeliveryRecord:
        """Persist a new PENDING record for one send attempt.

        Template and subject default to the catalog entry for the event; the
        transactional flag is always derived from the event kind.

        Raises:
            TrackingValidationError: If recipient or event is missing or invalid
        """
        request = self._parse_request(data)
        entry = get_template(request.event)
        transactional = is_transactional(request.event)
        now = self._clock()

        record = DeliveryRecord(
            id=str(uuid.uuid4()),
            recipient=request.recipient,
            event=request.event,
            status=MailStatus.PENDING,
            priority=request.priority,
            subject=request.subject or entry.subject,
            template=request.template or entry.template,
            context=request.context,
            metadata=request.metadata,
            retry_count=0,
            max_retries=self.max_retries if request.max_retries is None else request.max_retries,
            created_at=now,
            updated_at=now,
            is_transactional=transactional,
            is_marketing=not transactional,
            recipient_name=request.recipient_name,
            sender_name=request.sender_name or self.sender_name,
            sender_email=request.sender_email or self.sender_email,
            campaign=request.campaign,
            segment=request.segment,
            tags=request.tags,
            custom_fields=request.custom_fields,
            notes=request.notes,
        )

        with self._session_factory() as session:
            created = DeliveryRecordRepository(session).create(record)

        with log_context(tracking_id=created.id, event_kind=created.event.value):
            logger.info(
                f"Tracking created for {created.recipient}",
                extra={"event": "tracking.created", "recipient": created.recipient},
            )
        return created

    def mark_as_sent(
        self, record_id: str, message_id: Optional[str] = None, provider: Optional[str] = None
    ) -> DeliveryRecord:
        """PENDING -> SENT. Clears error fields and resets retry_count.

        Raises:
            TrackingNotFoundError: If the record does not exist
            InvalidStatusTransitionError: If the record is not PENDING
        """
        now = self._clock()
        with self._session_factory() as session:
            repo = DeliveryRecordRepository(session)
            if not repo.mark_sent_if_pending(record_id, now, message_id=message_id, provider=provider):
                current = repo.find_by_id(record_id)
                if current is None:
                    raise TrackingNotFoundError(record_id)
                raise InvalidStatusTransitionError(
                    record_id, current.status.value, MailStatus.SENT.value
                )
            record = repo.find_by_id(record_id)

        logger.info(
            f"Email marked as sent: {record_id}",
            extra={"event": "tracking.sent", "tracking_id": record_id, "message_id": message_id},
        )
        return record

    def mark_as_failed(
        self, record_id: str, error_message: str, error_code: Optional[str] = None
    ) -> DeliveryRecord:
        """Record a failed attempt and schedule the next retry if budget remains.

        retry_count is incremented; while it stays below max_retries,
        next_retry_at = failed_at + min(1000 * 2**retry_count, 300000) ms.
        At the budget the record is terminal and next_retry_at is cleared.

        Raises:
            TrackingNotFoundError: If the record does not exist
        """
        now = self._clock()
        with self._session_factory() as session:
            record = DeliveryRecordRepository(session).record_failure(
                record_id,
                failed_at=now,
                error_message=error_message,
                error_code=error_code,
                schedule_retry=partial(next_retry_at, now),
            )
        if record is None:
            raise TrackingNotFoundError(record_id)

        if record.is_permanently_failed():
            logger.error(
                f"Email permanently failed after {record.retry_count} attempts: {error_message}",
                extra={
                    "event": "tracking.failed.terminal",
                    "tracking_id": record_id,
                    "error_code": error_code,
                    "retry_count": record.retry_count,
                },
            )
        else:
            logger.warning(
                f"Email marked as failed: {error_message}",
                extra={
                    "event": "tracking.failed",
                    "tracking_id": record_id,
                    "error_code": error_code,
                    "retry_count": record.retry_count,
                    "next_retry_at": record.next_retry_at,
                },
            )
        return record

    def mark_as_delivered(self, record_id: str) -> DeliveryRecord:
        return self._set_status(record_id, MailStatus.DELIVERED, stamp="delivered_at")

    def mark_as_read(self, record_id: str) -> DeliveryRecord:
        return self._set_status(record_id, MailStatus.READ, stamp="read_at")

    def mark_as_bounced(self, record_id: str) -> DeliveryRecord:
        return self._set_status(record_id, MailStatus.BOUNCED, stamp="failed_at")

    def mark_as_spam(self, record_id: str) -> DeliveryRecord:
        return self._set_status(record_id, MailStatus.SPAM, stamp="failed_at")

    def mark_as_unsubscribed(self, record_id: str) -> DeliveryRecord:
        return self._set_status(record_id, MailStatus.UNSUBSCRIBED)

    def retry_failed_email(self, record_id: str) -> DeliveryRecord:
        """Claim an eligible FAILED record and reset it to PENDING.

        The caller is expected to redeliver the returned record.

        Raises:
            TrackingNotFoundError: If the record does not exist
            NotRetryableError: If the record is not eligible now, or another
                caller claimed it first
        """
        now = self._clock()
        with self._session_factory() as session:
            repo = DeliveryRecordRepository(session)
            current = repo.find_by_id(record_id)
            if current is None:
                raise TrackingNotFoundError(record_id)
            if not current.can_retry(now):
                raise NotRetryableError(record_id, self._ineligibility_reason(current))
            if not repo.reset_for_retry(record_id, now):
                raise NotRetryableError(record_id, "already claimed by another retry")
            record = repo.find_by_id(record_id)

        logger.info(
            f"Email queued for retry: {record_id}",
            extra={"event": "tracking.retry_queued", "tracking_id": record_id, "retry_count": record.retry_count},
        )
        return record

    def delete_tracking(self, record_id: str, hard: bool = False) -> None:
        """Soft-delete a record (default) or remove it physically.

        Raises:
            TrackingNotFoundError: If there is nothing to delete
        """
        now = self._clock()
        with self._session_factory() as session:
            repo = DeliveryRecordRepository(session)
            deleted = repo.hard_delete(record_id) if hard else repo.soft_delete(record_id, now)
        if not deleted:
            raise TrackingNotFoundError(record_id)

        logger.info(
            f"Tracking deleted: {record_id}",
            extra={"event": "tracking.deleted", "tracking_id": record_id, "hard": hard},
        )

    def cleanup_old_records(self, days_to_keep: int = 90) -> int:
        """Hard-delete records created more than `days_to_keep` days ago."""
        try:
            cutoff = days_ago(days_to_keep, now=self._clock())
        except ValueError as e:
            raise TrackingValidationError("Invalid retention period", [str(e)]) from e

        with self._session_factory() as session:
            deleted = DeliveryRecordRepository(session).cleanup_older_than(cutoff)

        logger.info(
            f"Cleaned up {deleted} old tracking records",
            extra={"event": "tracking.cleanup", "deleted": deleted, "days_to_keep": days_to_keep},
        )
        return deleted

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_tracking_by_id(self, record_id: str) -> Optional[DeliveryRecord]:
        with self._session_factory() as session:
            return DeliveryRecordRepository(session).find_by_id(record_id)

    def get_tracking_by_message_id(self, message_id: str) -> Optional[DeliveryRecord]:
        with self._session_factory() as session:
            return DeliveryRecordRepository(session).find_by_message_id(message_id)

    def get_tracking_by_email(
        self, email: str, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> List[DeliveryRecord]:
        with self._session_factory() as session:
            return DeliveryRecordRepository(session).find_by_email(email, limit, offset)

    def get_tracking_by_event(
        self, event: EmailEvent, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> List[DeliveryRecord]:
        with self._session_factory() as session:
            return DeliveryRecordRepository(session).find_by_event(event, limit, offset)

    def get_tracking_by_status(
        self, status: MailStatus, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> List[DeliveryRecord]:
        with self._session_factory() as session:
            return DeliveryRecordRepository(session).find_by_status(status, limit, offset)

    def get_failed_emails(self, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> List[DeliveryRecord]:
        """Failed, bounced and spam records, most recent failure first."""
        with self._session_factory() as session:
            return DeliveryRecordRepository(session).find_failed(limit, offset)

    def search(
        self,
        filters: Optional[TrackingFilters] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> List[DeliveryRecord]:
        with self._session_factory() as session:
            return DeliveryRecordRepository(session).find_with_filters(
                filters or TrackingFilters(), limit, offset
            )

    def get_retryable_emails(self, limit: Optional[int] = None) -> List[DeliveryRecord]:
        """Records eligible for retry right now, oldest failure first."""
        with self._session_factory() as session:
            return DeliveryRecordRepository(session).find_retryable(self._clock(), limit=limit)

    def get_stats(self, filters: Optional[TrackingFilters] = None) -> DeliveryStats:
        with self._session_factory() as session:
            counts = DeliveryRecordRepository(session).count_by_status(filters)
        return DeliveryStats.from_counts(counts)

    def get_event_stats(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[EventCount]:
        """Record counts per event kind, largest first."""
        with self._session_factory() as session:
            counts = DeliveryRecordRepository(session).count_by_event(start, end)
        return [EventCount(event=event, count=count) for event, count in counts.items()]

    def get_daily_stats(self, days: int = 30) -> List[DailyCount]:
        """Record counts per UTC day over the last `days` days, oldest first."""
        try:
            since = days_ago(days, now=self._clock())
        except ValueError as e:
            raise TrackingValidationError("Invalid stats window", [str(e)]) from e

        with self._session_factory() as session:
            counts = DeliveryRecordRepository(session).count_by_day(since)
        return [DailyCount(date=day, count=count) for day, count in counts.items()]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_status(self, record_id: str, status: MailStatus, stamp: Optional[str] = None) -> DeliveryRecord:
        """Unconditional status write; the only caller of update_status."""
        now = self._clock()
        fields = {stamp: now} if stamp else {}
        with self._session_factory() as session:
            record = DeliveryRecordRepository(session).update_status(record_id, status, now, **fields)
        if record is None:
            raise TrackingNotFoundError(record_id)

        logger.info(
            f"Email marked as {status.value}: {record_id}",
            extra={"event": f"tracking.{status.value}", "tracking_id": record_id},
        )
        return record

    @staticmethod
    def _parse_request(data: Union[TrackingRequest, Mapping[str, Any]]) -> TrackingRequest:
        if isinstance(data, TrackingRequest):
            return data
        try:
            return TrackingRequest.model_validate(dict(data))
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(loc) for loc in err['loc']) or 'request'}: {err['msg']}"
                for err in e.errors()
            ]
            raise TrackingValidationError("Invalid tracking request", errors) from e

    def _ineligibility_reason(self, record: DeliveryRecord) -> str:
        if record.status != MailStatus.FAILED:
            return f"status is {record.status.value}"
        if record.retry_count >= record.max_retries:
            return f"retry budget exhausted ({record.retry_count}/{record.max_retries})"
        return f"next retry not before {record.next_retry_at.isoformat()}"
