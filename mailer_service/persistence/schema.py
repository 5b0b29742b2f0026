"""Database schema definition and ORM models.

This module defines the SQLAlchemy ORM model for delivery records and the
conversion between ORM rows and DeliveryRecord domain models.

Timestamps are stored as fixed-width ISO 8601 UTC strings
(YYYY-MM-DDTHH:MM:SS.ffffffZ) so string comparison orders them correctly on
every backend. JSON-valued fields are stored as serialized text.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from mailer_service.domain.models import DeliveryRecord

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

Base = declarative_base()


class DeliveryRecordModel(Base):
    """ORM model for the mail_tracking table (one row per send attempt)."""

    __tablename__ = "mail_tracking"

    id = Column(String(36), primary_key=True, nullable=False)

    recipient = Column(String(255), nullable=False)
    event = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(10), nullable=False, default="normal")

    subject = Column(String(255), nullable=True)
    template = Column(Text, nullable=True)
    context = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", Text, nullable=True)

    message_id = Column(String(255), nullable=True)
    external_id = Column(String(255), nullable=True)
    provider = Column(String(100), nullable=True)

    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    next_retry_at = Column(String(50), nullable=True)

    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=True)
    sent_at = Column(String(50), nullable=True)
    delivered_at = Column(String(50), nullable=True)
    read_at = Column(String(50), nullable=True)
    failed_at = Column(String(50), nullable=True)
    deleted_at = Column(String(50), nullable=True)

    error_message = Column(Text, nullable=True)
    error_code = Column(String(50), nullable=True)

    is_transactional = Column(Boolean, nullable=False, default=False)
    is_marketing = Column(Boolean, nullable=False, default=False)

    recipient_name = Column(String(100), nullable=True)
    sender_name = Column(String(100), nullable=True)
    sender_email = Column(String(255), nullable=True)
    campaign = Column(String(100), nullable=True)
    segment = Column(String(100), nullable=True)
    tags = Column(Text, nullable=True)
    custom_fields = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_mail_tracking_recipient_event", "recipient", "event"),
        Index("idx_mail_tracking_status_created", "status", "created_at"),
        Index("idx_mail_tracking_event_created", "event", "created_at"),
        Index("idx_mail_tracking_message_id", "message_id"),
    )

    def to_domain(self) -> DeliveryRecord:
        """Convert ORM row to domain model."""
        return DeliveryRecord(
            id=self.id,
            recipient=self.recipient,
            event=self.event,
            status=self.status,
            priority=self.priority,
            subject=self.subject,
            template=self.template,
            context=_load_json(self.context, {}),
            metadata=_load_json(self.extra_metadata, {}),
            message_id=self.message_id,
            external_id=self.external_id,
            provider=self.provider,
            retry_count=self.retry_count,
            max_retries=self.max_retries,
            next_retry_at=parse_datetime(self.next_retry_at),
            created_at=parse_datetime(self.created_at),
            updated_at=parse_datetime(self.updated_at),
            sent_at=parse_datetime(self.sent_at),
            delivered_at=parse_datetime(self.delivered_at),
            read_at=parse_datetime(self.read_at),
            failed_at=parse_datetime(self.failed_at),
            deleted_at=parse_datetime(self.deleted_at),
            error_message=self.error_message,
            error_code=self.error_code,
            is_transactional=bool(self.is_transactional),
            is_marketing=bool(self.is_marketing),
            recipient_name=self.recipient_name,
            sender_name=self.sender_name,
            sender_email=self.sender_email,
            campaign=self.campaign,
            segment=self.segment,
            tags=_load_json(self.tags, []),
            custom_fields=_load_json(self.custom_fields, {}),
            notes=self.notes,
        )

    @classmethod
    def from_domain(cls, record: DeliveryRecord) -> "DeliveryRecordModel":
        """Create ORM row from domain model."""
        return cls(
            id=record.id,
            recipient=record.recipient,
            event=record.event.value,
            status=record.status.value,
            priority=record.priority.value,
            subject=record.subject,
            template=record.template,
            context=_dump_json(record.context),
            extra_metadata=_dump_json(record.metadata),
            message_id=record.message_id,
            external_id=record.external_id,
            provider=record.provider,
            retry_count=record.retry_count,
            max_retries=record.max_retries,
            next_retry_at=format_datetime(record.next_retry_at),
            created_at=format_datetime(record.created_at),
            updated_at=format_datetime(record.updated_at),
            sent_at=format_datetime(record.sent_at),
            delivered_at=format_datetime(record.delivered_at),
            read_at=format_datetime(record.read_at),
            failed_at=format_datetime(record.failed_at),
            deleted_at=format_datetime(record.deleted_at),
            error_message=record.error_message,
            error_code=record.error_code,
            is_transactional=record.is_transactional,
            is_marketing=record.is_marketing,
            recipient_name=record.recipient_name,
            sender_name=record.sender_name,
            sender_email=record.sender_email,
            campaign=record.campaign,
            segment=record.segment,
            tags=_dump_json(record.tags),
            custom_fields=_dump_json(record.custom_fields),
            notes=record.notes,
        )


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as a fixed-width ISO 8601 UTC string for storage."""
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime(TIMESTAMP_FORMAT)


def parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp string back into an aware UTC datetime."""
    if not dt_str:
        return None

    dt_str = dt_str.rstrip("Z")
    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    # default=str keeps datetimes and Decimals from caller payloads storable
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def _load_json(value: Optional[str], empty: Any) -> Any:
    if not value:
        return empty
    try:
        return json.loads(value)
    except ValueError:
        logger.warning(f"Discarding unreadable JSON column value: {value[:80]!r}")
        return empty


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
