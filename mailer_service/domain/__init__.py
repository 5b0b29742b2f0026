"""Domain models for the mailer service."""

from .catalog import (
    MAIL_TEMPLATES,
    TRANSACTIONAL_EVENTS,
    MailTemplate,
    get_template,
    is_transactional,
)
from .models import (
    DailyCount,
    DeliveryRecord,
    DeliveryStats,
    EmailEvent,
    EventCount,
    MailPriority,
    MailStatus,
    TrackingFilters,
)

__all__ = [
    "EmailEvent",
    "MailStatus",
    "MailPriority",
    "DeliveryRecord",
    "TrackingFilters",
    "DeliveryStats",
    "EventCount",
    "DailyCount",
    "MailTemplate",
    "MAIL_TEMPLATES",
    "TRANSACTIONAL_EVENTS",
    "get_template",
    "is_transactional",
]
