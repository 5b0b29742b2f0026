"""In-memory stand-ins for the clock and the mail transport."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from mailer_service.domain.models import EmailEvent
from mailer_service.notifications.models import MailerResult, SMTPDeliveryError
from mailer_service.notifications.templates import TemplateRenderer


class FakeClock:
    """Deterministic UTC clock. Call it to read the time; advance() moves it."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 11, 4, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class SentMail:
    to: str
    subject: str
    template_id: str
    context: Dict[str, Any]
    message_id: str
    rendered: Optional[Dict[str, str]] = None


class FakeMailer:
    """Mailer that records every send instead of talking to SMTP.

    Args:
        fail_times: Number of initial sends that raise SMTPDeliveryError
        render: Render each message with the real templates so missing
            context fields surface as NotificationTemplateError
    """

    provider = "fake"

    def __init__(self, fail_times: int = 0, render: bool = False):
        self.fail_times = fail_times
        self.renderer = TemplateRenderer() if render else None
        self.sent: List[SentMail] = []
        self.attempts = 0

    def send(self, to: str, subject: str, template_id: str, context: Dict[str, Any]) -> MailerResult:
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise SMTPDeliveryError("SMTP error during message delivery: 451 try again later")

        rendered = self.renderer.render(template_id, context) if self.renderer else None
        message_id = f"<fake-{self.attempts}@mailer.test>"
        self.sent.append(SentMail(to, subject, template_id, dict(context), message_id, rendered))
        return MailerResult(message_id=message_id, provider=self.provider)


# One valid payload per event kind, as a producer would send it
SAMPLE_PAYLOADS: Dict[EmailEvent, Dict[str, Any]] = {
    EmailEvent.USER_REGISTERED: {},
    EmailEvent.ACTIVATION_LINK: {
        "name": "Ana",
        "activationLink": "https://app.ally360.com/activate?token=abc",
    },
    EmailEvent.PASSWORD_RESET_REQUEST: {
        "name": "Ana",
        "resetLink": "https://app.ally360.com/reset?token=xyz",
    },
    EmailEvent.PASSWORD_RESET_SUCCESS: {"name": "Ana"},
    EmailEvent.ACCOUNT_DEACTIVATED: {"name": "Ana"},
    EmailEvent.INVENTORY_LOW: {"product": "Widget", "quantity": 3, "location": "Bodega 1"},
    EmailEvent.INVENTORY_OUT: {
        "product": "Widget",
        "location": "Bodega 1",
        "lastUpdate": "2025-11-04 09:30",
    },
    EmailEvent.INVENTORY_TRANSFER_COMPLETE: {
        "product": "Widget",
        "quantity": 10,
        "fromLocation": "Bodega 1",
        "toLocation": "Tienda Centro",
        "date": "2025-11-04",
    },
    EmailEvent.REPORT_DAILY_SUMMARY: {
        "name": "Ana",
        "date": "2025-11-03",
        "summary": "Día tranquilo",
        "sales": 1520.5,
        "lowStockCount": ["Widget", "Gadget"],
    },
    EmailEvent.REPORT_MONTHLY_SUMMARY: {
        "name": "Ana",
        "month": "Octubre",
        "year": 2025,
        "totalSales": 45000,
        "topProducts": [{"name": "Widget"}, "Gadget"],
        "reportLink": "https://app.ally360.com/reports/2025-10",
    },
    EmailEvent.REPORT_CUSTOM_GENERATED: {
        "name": "Ana",
        "reportName": "Rotación de inventario",
    },
}
