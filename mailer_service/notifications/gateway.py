"""Inbound entry point: uniform acknowledgments for send and health requests."""

from typing import Any, Callable, Dict, Optional

from mailer_service.logging import get_logger
from mailer_service.utils.timestamps import format_timestamp, utc_now

from .dispatcher import Dispatcher

logger = get_logger(__name__, component="gateway")


class NotificationGateway:
    """Wraps the dispatcher so callers always get an acknowledgment dict.

    send() never raises: every failure becomes {"success": False, ...}.
    """

    def __init__(self, dispatcher: Dispatcher, clock: Callable = utc_now):
        self.dispatcher = dispatcher
        self._clock = clock

    def send(self, event: str, recipient: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        logger.info(
            f"Received email request for event: {event} to: {recipient}",
            extra={"event": "gateway.send_received", "event_kind": event},
        )
        if data is not None and not isinstance(data, dict):
            return {"success": False, "message": "Failed to send email: data must be an object"}

        try:
            self.dispatcher.dispatch(event, recipient, data or {})
        except Exception as exc:
            logger.error(
                f"Error sending email: {exc}",
                exc_info=True,
                extra={"event": "gateway.send_failed", "error_type": type(exc).__name__},
            )
            return {"success": False, "message": f"Failed to send email: {exc}"}

        return {
            "success": True,
            "message": f"Email sent successfully for event: {event} to {recipient}",
        }

    def health(self) -> Dict[str, str]:
        return {
            "status": "healthy",
            "timestamp": format_timestamp(self._clock(), include_microseconds=True),
        }
