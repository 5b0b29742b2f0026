"""Background redelivery of failed records whose backoff has elapsed."""

from dataclasses import dataclass, field
from typing import List, Optional

from mailer_service.logging import get_logger
from mailer_service.persistence.exceptions import PersistenceError
from mailer_service.tracking import TrackingService
from mailer_service.tracking.exceptions import NotRetryableError, TrackingNotFoundError

from .dispatcher import Dispatcher

logger = get_logger(__name__, component="retry")


@dataclass
class RetrySweepResult:
    """Counters for one sweep.

    Attributes:
        examined: Retryable records fetched
        retried: Records this sweep claimed and redelivered
        succeeded: Redeliveries that reached the transport
        failed: Redeliveries that failed again
        skipped: Records another caller claimed first, or that vanished
    """

    examined: int = 0
    retried: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "examined": self.examined,
            "retried": self.retried,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class RetrySweep:
    """Claims each eligible record with retry_failed_email and redelivers it.

    A delivery failure on one record never aborts the rest of the batch.
    Store errors propagate.
    """

    def __init__(
        self,
        tracking: TrackingService,
        dispatcher: Dispatcher,
        batch_size: Optional[int] = 100,
    ):
        self.tracking = tracking
        self.dispatcher = dispatcher
        self.batch_size = batch_size

    def run_once(self) -> RetrySweepResult:
        result = RetrySweepResult()
        records = self.tracking.get_retryable_emails(limit=self.batch_size)
        result.examined = len(records)

        for record in records:
            try:
                claimed = self.tracking.retry_failed_email(record.id)
            except (NotRetryableError, TrackingNotFoundError) as exc:
                result.skipped += 1
                logger.debug(
                    f"Skipping {record.id}: {exc}",
                    extra={"event": "retry.skipped", "tracking_id": record.id},
                )
                continue

            result.retried += 1
            try:
                self.dispatcher.redeliver(claimed)
            except PersistenceError:
                raise
            except Exception as exc:
                # handler already recorded the failure and the next backoff
                result.failed += 1
                result.errors.append(f"{record.id}: {exc}")
                logger.warning(
                    f"Retry of {record.id} failed: {exc}",
                    extra={"event": "retry.failed", "tracking_id": record.id, "error_type": type(exc).__name__},
                )
            else:
                result.succeeded += 1

        logger.info(
            f"Retry sweep complete: {result.succeeded}/{result.retried} redelivered",
            extra={"event": "retry.sweep_complete", **result.to_dict()},
        )
        return result
