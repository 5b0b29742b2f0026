"""Periodic execution of the retry sweep and retention cleanup."""

from .service import CLEANUP_JOB_ID, RETRY_SWEEP_JOB_ID, ScheduledJob, SchedulerService

__all__ = [
    "SchedulerService",
    "ScheduledJob",
    "RETRY_SWEEP_JOB_ID",
    "CLEANUP_JOB_ID",
]
