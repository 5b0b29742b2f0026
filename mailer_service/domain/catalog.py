"""Static event catalog: template, subject and classification per event kind.

The catalog is built once at import time and never mutated. TrackingService
uses it for template/subject defaults and the transactional flag; handlers use
it to resolve what they send.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Mapping

from .models import EmailEvent


@dataclass(frozen=True)
class MailTemplate:
    """Template descriptor for one event kind."""

    key: str
    subject: str
    template: str
    description: str


MAIL_TEMPLATES: Mapping[EmailEvent, MailTemplate] = MappingProxyType({
    EmailEvent.USER_REGISTERED: MailTemplate(
        key="auth.register.success",
        subject="🎉 ¡Bienvenido a Ally360!",
        template="auth/register-success",
        description="Sent after a user registers successfully.",
    ),
    EmailEvent.ACTIVATION_LINK: MailTemplate(
        key="auth.activation.link",
        subject="🔐 Activa tu cuenta.",
        template="auth/activation-account",
        description="Sent so the user can verify their account.",
    ),
    EmailEvent.PASSWORD_RESET_REQUEST: MailTemplate(
        key="auth.req.reset.password",
        subject="🔒 Reestablece tu contraseña.",
        template="auth/req-reset-password",
        description="Sent when the user asks to reset their password.",
    ),
    EmailEvent.PASSWORD_RESET_SUCCESS: MailTemplate(
        key="auth.password.reset.success",
        subject="🔑 Tu contraseña ha sido cambiada.",
        template="auth/password-reset-success",
        description="Sent after the password has been changed.",
    ),
    EmailEvent.ACCOUNT_DEACTIVATED: MailTemplate(
        key="auth.account.deactivated",
        subject="⚠️ Tu cuenta ha sido desactivada.",
        template="auth/account-deactivated",
        description="Sent when the account has been deactivated.",
    ),
    EmailEvent.INVENTORY_LOW: MailTemplate(
        key="inventory.low",
        subject="🚨 Alerta de inventario bajo",
        template="inventory/stock-low",
        description="Sent to administrators when a product's stock is low.",
    ),
    EmailEvent.INVENTORY_OUT: MailTemplate(
        key="inventory.out",
        subject="🚫 Producto agotado",
        template="inventory/stock-out",
        description="Sent to administrators when a product is out of stock.",
    ),
    EmailEvent.INVENTORY_TRANSFER_COMPLETE: MailTemplate(
        key="inventory.transfer.complete",
        subject="✅ Transferencia de inventario completada",
        template="inventory/transfer-completed",
        description="Sent to administrators when a stock transfer completes.",
    ),
    EmailEvent.REPORT_DAILY_SUMMARY: MailTemplate(
        key="report.daily.summary",
        subject="📊 Resumen diario de ventas",
        template="reports/daily-summary",
        description="Daily sales summary for administrators.",
    ),
    EmailEvent.REPORT_MONTHLY_SUMMARY: MailTemplate(
        key="report.monthly.summary",
        subject="📈 Resumen mensual de ventas",
        template="reports/monthly-performance",
        description="Monthly sales summary for administrators.",
    ),
    EmailEvent.REPORT_CUSTOM_GENERATED: MailTemplate(
        key="report.custom.generated",
        subject="📑 Informe personalizado generado",
        template="reports/custom-generated",
        description="Sent when a custom report has been generated.",
    ),
})

AUTH_EVENTS: FrozenSet[EmailEvent] = frozenset({
    EmailEvent.USER_REGISTERED,
    EmailEvent.ACTIVATION_LINK,
    EmailEvent.PASSWORD_RESET_REQUEST,
    EmailEvent.PASSWORD_RESET_SUCCESS,
    EmailEvent.ACCOUNT_DEACTIVATED,
})

INVENTORY_EVENTS: FrozenSet[EmailEvent] = frozenset({
    EmailEvent.INVENTORY_LOW,
    EmailEvent.INVENTORY_OUT,
    EmailEvent.INVENTORY_TRANSFER_COMPLETE,
})

REPORT_EVENTS: FrozenSet[EmailEvent] = frozenset({
    EmailEvent.REPORT_DAILY_SUMMARY,
    EmailEvent.REPORT_MONTHLY_SUMMARY,
    EmailEvent.REPORT_CUSTOM_GENERATED,
})

# Identity and operational (inventory) mail is transactional; reports are not.
TRANSACTIONAL_EVENTS: FrozenSet[EmailEvent] = AUTH_EVENTS | INVENTORY_EVENTS


def get_template(event: EmailEvent) -> MailTemplate:
    """Return the catalog entry for an event kind."""
    return MAIL_TEMPLATES[EmailEvent(event)]


def is_transactional(event: EmailEvent) -> bool:
    return EmailEvent(event) in TRANSACTIONAL_EVENTS
