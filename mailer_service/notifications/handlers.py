"""Event handlers: one per family of event kinds.

A handler validates a send request, opens a delivery record through
TrackingService, hands the message to the Mailer, and reports the outcome
back to TrackingService. The three concrete handlers partition EmailEvent:

- AuthEventHandler: account lifecycle mail (registration, activation,
  password reset, deactivation)
- InventoryEventHandler: stock alerts and transfer confirmations
- ReportEventHandler: daily, monthly and custom report notices

Handlers never write record state directly.
"""

from typing import Any, Dict, FrozenSet, Mapping, Tuple, Union

from email_validator import EmailNotValidError, validate_email

from mailer_service.domain.catalog import (
    AUTH_EVENTS,
    INVENTORY_EVENTS,
    REPORT_EVENTS,
    get_template,
)
from mailer_service.domain.models import DeliveryRecord, EmailEvent, MailPriority, MailStatus
from mailer_service.logging import get_logger
from mailer_service.logging.context import log_context
from mailer_service.tracking import TrackingService
from mailer_service.tracking.exceptions import InvalidStatusTransitionError, TrackingError
from mailer_service.persistence.exceptions import PersistenceError

from .models import (
    DeliveryResult,
    InvalidRecipientError,
    Mailer,
    MissingFieldError,
    PayloadValidationError,
    UnroutableEventError,
    error_code_for,
)

logger = get_logger(__name__, component="handler")


def validate_recipient(recipient: Any) -> str:
    """Return the normalized address or raise InvalidRecipientError."""
    if not isinstance(recipient, str) or not recipient.strip():
        raise MissingFieldError("recipient")
    try:
        return validate_email(recipient.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise InvalidRecipientError(recipient, str(e)) from e


def is_missing(value: Any) -> bool:
    """Absent, None and empty strings are missing; 0 and False are values."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


class BaseEventHandler:
    """Shared send/deliver flow; subclasses declare events and fields.

    Class attributes:
        events: Event kinds this handler claims
        required_fields: Per event, fields that must be present (in check order)
        optional_fields: Per event, fields filled with a default when absent
    """

    name = "base"
    events: FrozenSet[EmailEvent] = frozenset()
    required_fields: Mapping[EmailEvent, Tuple[str, ...]] = {}
    optional_fields: Mapping[EmailEvent, Mapping[str, Any]] = {}

    def __init__(self, tracking: TrackingService, mailer: Mailer):
        self.tracking = tracking
        self.mailer = mailer

    def can_handle(self, event: Union[EmailEvent, str]) -> bool:
        try:
            return EmailEvent(event) in self.events
        except ValueError:
            return False

    def send(self, recipient: str, payload: Dict[str, Any]) -> DeliveryResult:
        """Validate, record, deliver.

        `payload` carries the template fields plus "event" (set by the
        dispatcher) and optionally "priority" and "metadata".

        Raises:
            PayloadValidationError: On an invalid recipient or missing field;
                no record is created
            UnroutableEventError: If the payload's event is not one of ours
            TransportError: If delivery failed; the record is marked FAILED
            PersistenceError: If the record could not be written
        """
        event = self._resolve_event(payload.get("event"))
        address = validate_recipient(recipient)
        context = self.build_context(event, address, payload)
        entry = get_template(event)

        record = self.tracking.create_tracking(
            {
                "recipient": address,
                "event": event,
                "priority": self._priority(payload),
                "subject": entry.subject,
                "template": entry.template,
                "context": context,
                "metadata": self._metadata(payload),
                "recipient_name": context.get("name") or None,
            }
        )
        return self.deliver(record)

    def deliver(self, record: DeliveryRecord) -> DeliveryResult:
        """Send a PENDING record through the mailer and report the outcome.

        Used for first attempts and for redelivery after a retry reset.

        Raises:
            Exception: Whatever the mailer raised, after the record is marked FAILED
            PersistenceError: If the failure could not be recorded, chained
                from the delivery error
        """
        with log_context(tracking_id=record.id, event_kind=record.event.value, recipient=record.recipient):
            if record.status != MailStatus.PENDING:
                raise InvalidStatusTransitionError(record.id, record.status.value, MailStatus.SENT.value)

            entry = get_template(record.event)
            subject = record.subject or entry.subject
            template = record.template or entry.template

            try:
                result = self.mailer.send(record.recipient, subject, template, record.context)
            except Exception as exc:
                self._record_failure(record, exc)
                raise

            sent = self.tracking.mark_as_sent(record.id, result.message_id, result.provider)
            logger.info(
                "Email delivered to transport",
                extra={"event": "handler.delivered", "handler": self.name, "message_id": result.message_id},
            )
            return DeliveryResult(
                record=sent,
                event=record.event,
                recipient=record.recipient,
                message_id=result.message_id,
                provider=result.provider,
            )

    def build_context(self, event: EmailEvent, recipient: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Template context: required fields, optional fields with defaults, and the address.

        Raises:
            MissingFieldError: For the first required field that is missing
        """
        context: Dict[str, Any] = {"email": recipient}

        for field_name in self.required_fields.get(event, ()):
            value = payload.get(field_name)
            if is_missing(value):
                raise MissingFieldError(field_name, event.value)
            context[field_name] = value

        for field_name, default in self.optional_fields.get(event, {}).items():
            value = payload.get(field_name)
            context[field_name] = default if is_missing(value) else value

        return context

    def _resolve_event(self, raw: Any) -> EmailEvent:
        if raw is None or not self.can_handle(raw):
            raise UnroutableEventError(str(raw))
        return EmailEvent(raw)

    @staticmethod
    def _priority(payload: Mapping[str, Any]) -> MailPriority:
        raw = payload.get("priority")
        if raw is None:
            return MailPriority.NORMAL
        try:
            return MailPriority(raw)
        except ValueError as e:
            raise PayloadValidationError(f"Invalid priority: {raw!r}") from e

    @staticmethod
    def _metadata(payload: Mapping[str, Any]) -> Dict[str, Any]:
        raw = payload.get("metadata")
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise PayloadValidationError("metadata must be an object")
        return dict(raw)

    def _record_failure(self, record: DeliveryRecord, exc: Exception) -> None:
        code = error_code_for(exc)
        logger.warning(
            f"Delivery failed: {exc}",
            extra={"event": "handler.delivery_failed", "handler": self.name, "error_code": code},
        )
        try:
            self.tracking.mark_as_failed(record.id, str(exc) or type(exc).__name__, code)
        except (TrackingError, PersistenceError) as store_exc:
            logger.error(
                f"Could not record delivery failure: {store_exc}",
                extra={"event": "handler.failure_not_recorded", "handler": self.name},
            )
            raise store_exc from exc


class AuthEventHandler(BaseEventHandler):
    """Account lifecycle mail."""

    name = "auth"
    events = AUTH_EVENTS
    required_fields = {
        EmailEvent.USER_REGISTERED: (),
        EmailEvent.ACTIVATION_LINK: ("name", "activationLink"),
        EmailEvent.PASSWORD_RESET_REQUEST: ("name", "resetLink"),
        EmailEvent.PASSWORD_RESET_SUCCESS: ("name",),
        EmailEvent.ACCOUNT_DEACTIVATED: ("name",),
    }


class InventoryEventHandler(BaseEventHandler):
    """Stock alerts for administrators."""

    name = "inventory"
    events = INVENTORY_EVENTS
    required_fields = {
        EmailEvent.INVENTORY_LOW: ("product", "quantity", "location"),
        EmailEvent.INVENTORY_OUT: ("product", "location", "lastUpdate"),
        EmailEvent.INVENTORY_TRANSFER_COMPLETE: (
            "product",
            "quantity",
            "fromLocation",
            "toLocation",
            "date",
        ),
    }


class ReportEventHandler(BaseEventHandler):
    """Report notices. Counters absent from the payload default to zero or empty."""

    name = "report"
    events = REPORT_EVENTS
    required_fields = {
        EmailEvent.REPORT_DAILY_SUMMARY: ("name", "date", "summary"),
        EmailEvent.REPORT_MONTHLY_SUMMARY: ("name", "month", "year"),
        EmailEvent.REPORT_CUSTOM_GENERATED: ("name", "reportName"),
    }
    optional_fields = {
        EmailEvent.REPORT_DAILY_SUMMARY: {
            "sales": 0,
            "purchases": 0,
            "newProducts": 0,
            "stockMovements": 0,
            "transfers": 0,
            "lowStockCount": [],
            "outOfStockCount": [],
        },
        EmailEvent.REPORT_MONTHLY_SUMMARY: {
            "totalSales": 0,
            "totalPurchases": 0,
            "newCustomers": 0,
            "topProducts": [],
            "avgInventory": 0,
            "profitability": 0,
            "reportLink": "",
        },
        EmailEvent.REPORT_CUSTOM_GENERATED: {
            "reportLink": "",
            "description": "",
        },
    }


def default_handlers(tracking: TrackingService, mailer: Mailer) -> Tuple[BaseEventHandler, ...]:
    """The handler set covering every EmailEvent, in registration order."""
    return (
        AuthEventHandler(tracking, mailer),
        InventoryEventHandler(tracking, mailer),
        ReportEventHandler(tracking, mailer),
    )
