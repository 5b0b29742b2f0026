"""Tracking service exceptions.

All tracking failures derive from TrackingError. Each class carries a short
machine-readable `code` that handlers store as the record's error_code when
the failure ends a delivery attempt.
"""

from typing import List, Optional


class TrackingError(Exception):
    """Base exception for delivery tracking errors."""

    code = "TRACKING_ERROR"


class TrackingValidationError(TrackingError):
    """Raised when a new delivery record is missing required fields or has invalid ones."""

    code = "TRACKING_VALIDATION"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message if not self.errors else f"{message}: {'; '.join(self.errors)}")


class TrackingNotFoundError(TrackingError):
    """Raised when no live delivery record has the given id."""

    code = "TRACKING_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Delivery record not found: {record_id}")


class NotRetryableError(TrackingError):
    """Raised when a retry is requested for a record that is not eligible.

    A record is eligible when it is FAILED, under its retry budget, and its
    next_retry_at (if any) has passed. Losing a concurrent claim also raises
    this.
    """

    code = "NOT_RETRYABLE"

    def __init__(self, record_id: str, reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Delivery record {record_id} cannot be retried: {reason}")


class InvalidStatusTransitionError(TrackingError):
    """Raised when a guarded transition is attempted from the wrong status."""

    code = "INVALID_TRANSITION"

    def __init__(self, record_id: str, current: str, target: str):
        self.record_id = record_id
        self.current = current
        self.target = target
        super().__init__(
            f"Delivery record {record_id} cannot move from {current} to {target}"
        )
