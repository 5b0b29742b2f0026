"""Delivery record lifecycle, retry eligibility and statistics."""

from .backoff import MAX_DELAY_MS, next_retry_at, retry_delay_ms
from .exceptions import (
    InvalidStatusTransitionError,
    NotRetryableError,
    TrackingError,
    TrackingNotFoundError,
    TrackingValidationError,
)
from .models import TrackingRequest
from .service import TrackingService

__all__ = [
    "TrackingService",
    "TrackingRequest",
    "retry_delay_ms",
    "next_retry_at",
    "MAX_DELAY_MS",
    "TrackingError",
    "TrackingValidationError",
    "TrackingNotFoundError",
    "NotRetryableError",
    "InvalidStatusTransitionError",
]
