"""Core domain models for delivery tracking.

This module defines the data structures used throughout the application:
- EmailEvent: the fixed set of event kinds a notification can be sent for
- MailStatus / MailPriority: delivery record state and priority
- DeliveryRecord: one send attempt and its full lifecycle
- TrackingFilters: criteria for filtered record queries
- DeliveryStats / EventCount / DailyCount: aggregate read models
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from mailer_service.utils.timestamps import ensure_utc


class EmailEvent(str, Enum):
    """Event kinds accepted by the gateway. Values are the wire names."""

    USER_REGISTERED = "user.registered"
    ACTIVATION_LINK = "user.verify"
    PASSWORD_RESET_REQUEST = "user.req.reset"
    PASSWORD_RESET_SUCCESS = "user.reset.password.success"
    ACCOUNT_DEACTIVATED = "user.account.deactivated"
    INVENTORY_LOW = "inventory.low"
    INVENTORY_OUT = "inventory.out"
    INVENTORY_TRANSFER_COMPLETE = "inventory.transfer.complete"
    REPORT_DAILY_SUMMARY = "report.daily.summary"
    REPORT_MONTHLY_SUMMARY = "report.monthly.summary"
    REPORT_CUSTOM_GENERATED = "report.custom.generated"


class MailStatus(str, Enum):
    """Delivery record states."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    BOUNCED = "bounced"
    SPAM = "spam"
    UNSUBSCRIBED = "unsubscribed"


class MailPriority(str, Enum):
    """Delivery priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# Statuses reported by get_failed_emails()
FAILURE_STATUSES = (MailStatus.FAILED, MailStatus.BOUNCED, MailStatus.SPAM)


class DeliveryRecord(BaseModel):
    """Persisted lifecycle of one send attempt.

    Only TrackingService mutates status, timestamps, retry bookkeeping and
    error fields; handlers supply creation fields and outcome signals.
    """

    id: str = Field(..., description="Opaque record identity (uuid4)")
    recipient: str = Field(..., description="Recipient email address")
    event: EmailEvent = Field(..., description="Event kind that produced this send")
    status: MailStatus = Field(MailStatus.PENDING)
    priority: MailPriority = Field(MailPriority.NORMAL)
    subject: Optional[str] = None
    template: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict, description="Template render context")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Caller data, opaque to the core")

    message_id: Optional[str] = None
    external_id: Optional[str] = None
    provider: Optional[str] = None

    retry_count: int = Field(0, ge=0)
    max_retries: int = Field(3, ge=0)
    next_retry_at: Optional[datetime] = None

    created_at: datetime
    updated_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    error_message: Optional[str] = None
    error_code: Optional[str] = None

    is_transactional: bool = False
    is_marketing: bool = True

    recipient_name: Optional[str] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    campaign: Optional[str] = None
    segment: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None

    @field_validator(
        "next_retry_at", "created_at", "updated_at", "sent_at",
        "delivered_at", "read_at", "failed_at", "deleted_at",
    )
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def is_retryable(self) -> bool:
        """Failed and still under the retry budget (ignores next_retry_at)."""
        return self.status == MailStatus.FAILED and self.retry_count < self.max_retries

    def can_retry(self, now: datetime) -> bool:
        """Full retry eligibility predicate evaluated at `now`."""
        if not self.is_retryable():
            return False
        if self.next_retry_at is None:
            return True
        return ensure_utc(now) >= self.next_retry_at

    def is_permanently_failed(self) -> bool:
        return self.status == MailStatus.FAILED and self.retry_count >= self.max_retries

    model_config = {"json_schema_extra": {"example": {
        "id": "5b0f2f64-8a53-4c55-9d3c-41c7c2f0a9e1",
        "recipient": "ops@acme.io",
        "event": "inventory.low",
        "status": "sent",
        "priority": "normal",
        "subject": "Low inventory alert",
        "template": "inventory/stock-low",
        "context": {"product": "Widget", "quantity": 2, "location": "WH1"},
        "message_id": "<173000000000.1.123@mailer.local>",
        "provider": "smtp",
        "retry_count": 0,
        "max_retries": 3,
        "created_at": "2025-11-04T10:00:00Z",
        "sent_at": "2025-11-04T10:00:01Z",
        "is_transactional": True,
    }}}


class TrackingFilters(BaseModel):
    """Filter criteria for record searches and stats. Every field is optional."""

    email: Optional[str] = Field(None, description="Case-insensitive substring of the recipient")
    event: Optional[EmailEvent] = None
    status: Optional[MailStatus] = None
    priority: Optional[MailPriority] = None
    start_date: Optional[datetime] = Field(None, description="created_at lower bound (inclusive)")
    end_date: Optional[datetime] = Field(None, description="created_at upper bound (inclusive)")
    provider: Optional[str] = None
    campaign: Optional[str] = None
    segment: Optional[str] = None
    tags: List[str] = Field(default_factory=list, description="Records must carry all of these tags")

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class DeliveryStats(BaseModel):
    """Record counts grouped by status."""

    total: int = 0
    pending: int = 0
    sent: int = 0
    delivered: int = 0
    read: int = 0
    failed: int = 0
    bounced: int = 0
    spam: int = 0
    unsubscribed: int = 0

    @classmethod
    def from_counts(cls, counts: Dict[str, int]) -> "DeliveryStats":
        """Build stats from a {status value: count} mapping."""
        known = {status.value: counts.get(status.value, 0) for status in MailStatus}
        return cls(total=sum(counts.values()), **known)


class EventCount(BaseModel):
    """Number of records for one event kind."""

    event: EmailEvent
    count: int


class DailyCount(BaseModel):
    """Number of records created on one UTC day (YYYY-MM-DD)."""

    date: str
    count: int
