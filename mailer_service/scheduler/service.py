"""Scheduler service for the periodic retry sweep and retention cleanup."""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mailer_service.logging import get_logger

logger = get_logger(__name__, component="scheduler")

RETRY_SWEEP_JOB_ID = "retry-sweep"
CLEANUP_JOB_ID = "retention-cleanup"


@dataclass
class ScheduledJob:
    """A callable run on a fixed interval."""

    job_id: str
    name: str
    func: Callable[[], Any]
    interval_seconds: int
    run_immediately: bool = False


class SchedulerService:
    """
    Wraps APScheduler to run maintenance jobs at configured intervals.

    Uses BackgroundScheduler to run jobs in a separate thread while
    allowing the main thread to handle signals and coordinate shutdown.
    A job never overlaps with itself, and delayed runs are coalesced.
    """

    def __init__(self, shutdown_event: Optional[threading.Event] = None):
        """
        Args:
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.shutdown_event = shutdown_event
        self._jobs: Dict[str, ScheduledJob] = {}

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
            },
            timezone=timezone.utc,
        )

    def add_job(
        self,
        job_id: str,
        name: str,
        func: Callable[[], Any],
        interval_seconds: int,
        run_immediately: bool = False,
    ) -> None:
        """Register a job; must be called before start()."""
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        if self.scheduler.running:
            raise RuntimeError("Cannot add jobs after the scheduler has started")
        self._jobs[job_id] = ScheduledJob(job_id, name, func, interval_seconds, run_immediately)

    @property
    def jobs(self) -> List[ScheduledJob]:
        return list(self._jobs.values())

    def start(self) -> None:
        """
        Schedule every registered job and start the scheduler thread.

        Jobs with run_immediately fire right after startup; the others first
        run one interval later.
        """
        now = datetime.now(timezone.utc)
        for job in self._jobs.values():
            self.scheduler.add_job(
                func=job.func,
                trigger=IntervalTrigger(seconds=job.interval_seconds, timezone=timezone.utc),
                id=job.job_id,
                name=job.name,
                replace_existing=True,
                misfire_grace_time=job.interval_seconds,
                **({"next_run_time": now} if job.run_immediately else {}),
            )

        self.scheduler.start()

        logger.info(
            f"Scheduler started with {len(self._jobs)} jobs",
            extra={
                "event": "scheduler.started",
                "jobs": {job.job_id: job.interval_seconds for job in self._jobs.values()},
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self, job_id: str) -> Any:
        """
        Run one registered job synchronously in the current thread.

        Raises:
            KeyError: If no job has this id
        """
        job = self._jobs[job_id]
        logger.info(
            f"Triggering immediate run of {job.name}",
            extra={"event": "scheduler.trigger_now", "job_id": job_id},
        )
        return job.func()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None
