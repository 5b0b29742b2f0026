"""Input model for creating delivery records."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from mailer_service.domain.models import EmailEvent, MailPriority


class TrackingRequest(BaseModel):
    """Creation-time fields supplied by an event handler.

    Everything else on a DeliveryRecord (status, timestamps, retry
    bookkeeping, the transactional flag) is owned by TrackingService.
    """

    recipient: str = Field(..., description="Recipient email address")
    event: EmailEvent
    priority: MailPriority = MailPriority.NORMAL
    subject: Optional[str] = Field(None, description="Defaults to the catalog subject")
    template: Optional[str] = Field(None, description="Defaults to the catalog template id")
    context: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    max_retries: Optional[int] = Field(None, ge=0, description="Defaults to the service setting")

    recipient_name: Optional[str] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    campaign: Optional[str] = None
    segment: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None

    @field_validator("recipient")
    @classmethod
    def recipient_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("recipient must not be empty")
        return v

    @field_validator("subject", "template")
    @classmethod
    def blank_as_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v
