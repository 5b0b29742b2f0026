"""Ordered first-match routing from event kind to handler."""

from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from mailer_service.domain.models import DeliveryRecord, EmailEvent
from mailer_service.logging import get_logger
from mailer_service.logging.context import log_context
from mailer_service.tracking import TrackingService

from .handlers import BaseEventHandler, default_handlers
from .models import DeliveryResult, HandlerRegistrationError, Mailer, UnroutableEventError

logger = get_logger(__name__, component="dispatcher")


class Dispatcher:
    """Routes each event to the first registered handler that claims it.

    Handlers are registered at startup and the list is read-only afterwards.
    verify_coverage() checks that every EmailEvent has exactly one claimant.
    """

    def __init__(self, handlers: Optional[Iterable[BaseEventHandler]] = None):
        self._handlers: List[BaseEventHandler] = []
        for handler in handlers or ():
            self.register_handler(handler)

    @property
    def handlers(self) -> Tuple[BaseEventHandler, ...]:
        return tuple(self._handlers)

    def register_handler(self, handler: BaseEventHandler) -> None:
        self._handlers.append(handler)
        logger.debug(
            f"Registered handler {type(handler).__name__}",
            extra={"event": "dispatch.handler_registered", "handler": type(handler).__name__},
        )

    def resolve(self, event: Union[EmailEvent, str]) -> BaseEventHandler:
        """First handler whose can_handle(event) is true.

        Raises:
            UnroutableEventError: If no handler claims the event
        """
        for handler in self._handlers:
            if handler.can_handle(event):
                return handler

        event_name = event.value if isinstance(event, EmailEvent) else str(event)
        logger.error(
            f"No handler found for event: {event_name}",
            extra={"event": "dispatch.unroutable", "event_kind": event_name},
        )
        raise UnroutableEventError(event_name)

    def dispatch(
        self, event: Union[EmailEvent, str], recipient: str, payload: Optional[Dict[str, Any]] = None
    ) -> DeliveryResult:
        """Send one notification through the handler that owns `event`.

        The handler receives the payload with "event" added. Its result is
        returned and its failures propagate unchanged.

        Raises:
            UnroutableEventError: If no handler claims the event
        """
        event_name = event.value if isinstance(event, EmailEvent) else str(event)

        with log_context(event_kind=event_name, recipient=recipient):
            handler = self.resolve(event)
            logger.info(
                f"Dispatching {event_name} to {type(handler).__name__}",
                extra={"event": "dispatch.started", "handler": type(handler).__name__},
            )
            try:
                result = handler.send(recipient, {**(payload or {}), "event": event_name})
            except Exception as exc:
                logger.error(
                    f"Dispatch failed: {exc}",
                    extra={"event": "dispatch.failed", "error_type": type(exc).__name__},
                )
                raise

            logger.info(
                "Dispatch succeeded",
                extra={"event": "dispatch.succeeded", "tracking_id": result.tracking_id},
            )
            return result

    def redeliver(self, record: DeliveryRecord) -> DeliveryResult:
        """Send an existing PENDING record again without creating a new one.

        Raises:
            UnroutableEventError: If no handler claims the record's event
        """
        with log_context(tracking_id=record.id, event_kind=record.event.value):
            handler = self.resolve(record.event)
            logger.info(
                f"Redelivering via {type(handler).__name__}",
                extra={"event": "dispatch.redelivery", "retry_count": record.retry_count},
            )
            return handler.deliver(record)

    def verify_coverage(self) -> None:
        """Check every EmailEvent is claimed by exactly one handler.

        Raises:
            HandlerRegistrationError: Listing unclaimed and doubly claimed events
        """
        problems = []
        for event in EmailEvent:
            claimants = [type(h).__name__ for h in self._handlers if h.can_handle(event)]
            if not claimants:
                problems.append(f"{event.value} has no handler")
            elif len(claimants) > 1:
                problems.append(f"{event.value} is claimed by {', '.join(claimants)}")

        if problems:
            raise HandlerRegistrationError("Handler coverage check failed", problems)

        logger.info(
            f"Handler coverage verified for {len(EmailEvent)} events",
            extra={"event": "dispatch.coverage_verified", "handlers": len(self._handlers)},
        )


def build_default_dispatcher(tracking: TrackingService, mailer: Mailer) -> Dispatcher:
    """Dispatcher with the auth, inventory and report handlers, coverage checked."""
    dispatcher = Dispatcher(default_handlers(tracking, mailer))
    dispatcher.verify_coverage()
    return dispatcher
