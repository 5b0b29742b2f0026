"""Notification dispatch: routing, event handlers, transport and retries.

- NotificationGateway: inbound send/health entry point
- Dispatcher: ordered first-match routing of events to handlers
- AuthEventHandler / InventoryEventHandler / ReportEventHandler
- SMTPMailer: Mailer capability over Jinja2 templates and SMTP
- RetrySweep: redelivery of failed records whose backoff has elapsed
"""

from .dispatcher import Dispatcher, build_default_dispatcher
from .gateway import NotificationGateway
from .handlers import (
    AuthEventHandler,
    BaseEventHandler,
    InventoryEventHandler,
    ReportEventHandler,
    default_handlers,
    validate_recipient,
)
from .models import (
    DeliveryResult,
    HandlerRegistrationError,
    InvalidRecipientError,
    Mailer,
    MailerResult,
    MissingFieldError,
    NotificationError,
    NotificationTemplateError,
    PayloadValidationError,
    SMTPDeliveryError,
    TransportError,
    UnroutableEventError,
    error_code_for,
)
from .retry import RetrySweep, RetrySweepResult
from .smtp_client import SMTPClient, SMTPMailer, build_sender_address
from .templates import TemplateRenderer

__all__ = [
    # Entry points
    "NotificationGateway",
    "Dispatcher",
    "build_default_dispatcher",
    "RetrySweep",
    "RetrySweepResult",
    # Handlers
    "BaseEventHandler",
    "AuthEventHandler",
    "InventoryEventHandler",
    "ReportEventHandler",
    "default_handlers",
    "validate_recipient",
    # Transport
    "Mailer",
    "MailerResult",
    "SMTPMailer",
    "SMTPClient",
    "TemplateRenderer",
    "build_sender_address",
    # Results
    "DeliveryResult",
    # Exceptions
    "NotificationError",
    "PayloadValidationError",
    "MissingFieldError",
    "InvalidRecipientError",
    "UnroutableEventError",
    "HandlerRegistrationError",
    "TransportError",
    "SMTPDeliveryError",
    "NotificationTemplateError",
    "error_code_for",
]
