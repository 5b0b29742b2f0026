"""Data models and exceptions for notification delivery.

Exception families:
- PayloadValidationError: the request is rejected before any record exists
- UnroutableEventError / HandlerRegistrationError: dispatch wiring problems
- TransportError: the mailer could not render or hand off the message

Each exception class carries a short `code`; handlers store it as the
delivery record's error_code when an attempt fails.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from mailer_service.domain.models import DeliveryRecord, EmailEvent


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    code = "NOTIFICATION_ERROR"


class PayloadValidationError(NotificationError):
    """Raised when a send request is rejected before a record is created."""

    code = "INVALID_PAYLOAD"


class MissingFieldError(PayloadValidationError):
    """Raised when a field the event's template needs is absent or empty."""

    code = "MISSING_FIELD"

    def __init__(self, field_name: str, event: Optional[str] = None):
        self.field = field_name
        self.event = event
        suffix = f" for event {event}" if event else ""
        super().__init__(f"Missing required field '{field_name}'{suffix}")


class InvalidRecipientError(PayloadValidationError):
    """Raised when the recipient is not a syntactically valid email address."""

    code = "INVALID_RECIPIENT"

    def __init__(self, recipient: str, reason: str):
        self.recipient = recipient
        super().__init__(f"Invalid recipient address '{recipient}': {reason}")


class UnroutableEventError(NotificationError):
    """Raised when no registered handler claims an event."""

    code = "UNROUTABLE_EVENT"

    def __init__(self, event: str):
        self.event = event
        super().__init__(f"No handler found for event: {event}")


class HandlerRegistrationError(NotificationError):
    """Raised at startup when handlers do not cover every event exactly once."""

    code = "HANDLER_REGISTRATION"

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        self.problems = problems or []
        detail = "; ".join(self.problems)
        super().__init__(f"{message}: {detail}" if detail else message)


class TransportError(NotificationError):
    """Raised when the mailer fails to deliver a message."""

    code = "TRANSPORT_ERROR"


class SMTPDeliveryError(TransportError):
    """Raised when the SMTP conversation fails (connection, TLS, auth, or rejection)."""

    code = "SMTP_DELIVERY"


class NotificationTemplateError(TransportError):
    """Raised when template rendering fails due to a missing template or variable."""

    code = "TEMPLATE_RENDER"


def error_code_for(exc: BaseException) -> str:
    """Short code stored on a failed delivery record."""
    return getattr(exc, "code", None) or type(exc).__name__


@dataclass
class MailerResult:
    """Identifiers of a message accepted by the transport."""

    message_id: str
    provider: str


@runtime_checkable
class Mailer(Protocol):
    """Transport capability used by event handlers."""

    def send(
        self, to: str, subject: str, template_id: str, context: Dict[str, Any]
    ) -> MailerResult:
        ...


@dataclass
class DeliveryResult:
    """Outcome of a successful handler send or redelivery.

    Failures are raised, never returned.

    Attributes:
        record: Delivery record after it was marked SENT
        event: Event kind that was delivered
        recipient: Normalized recipient address
        message_id: Transport message id
        provider: Transport label
    """

    record: DeliveryRecord
    event: EmailEvent
    recipient: str
    message_id: Optional[str] = None
    provider: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def tracking_id(self) -> str:
        return self.record.id
