"""Process-wide worker run state."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from spark_worker.config import Settings

logger = logging.getLogger(__name__)


class JobPhase(str, Enum):
    """Where an in-flight job currently is in the processor."""

    ADMITTED = "admitted"
    CLAIMED = "claimed"
    GENERATING = "generating"
    PUBLISHING = "publishing"
    DELIVERING = "delivering"
    NOTIFYING = "notifying"


class WorkerSession:
    """Run state shared by the dispatcher and the processor.

    Tracks every job handed to the processor, keyed by id, together with
    its current phase. ``active_job_count`` is the number of tracked jobs.
    The semaphore ``limiter`` is the hard ceiling on concurrently executing
    jobs; the count only decides how many jobs to fetch.
    """

    def __init__(
        self,
        max_concurrent: int,
        dry_run: bool = False,
        poll_interval_ms: int = 5000,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.dry_run = dry_run
        self.poll_interval_ms = poll_interval_ms
        self.limiter = asyncio.Semaphore(max_concurrent)
        self._phases: dict[str, JobPhase] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> WorkerSession:
        return cls(
            max_concurrent=settings.max_concurrent_jobs,
            dry_run=settings.dry_run,
            poll_interval_ms=settings.poll_interval_ms,
        )

    @property
    def active_job_count(self) -> int:
        return len(self._phases)

    @property
    def free_slots(self) -> int:
        return self.max_concurrent - self.active_job_count

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    def is_active(self, job_id: str) -> bool:
        return job_id in self._phases

    def admit(self, job_id: str) -> None:
        """Start tracking a job handed to the processor."""
        if job_id in self._phases:
            raise ValueError(f"Job {job_id} is already in flight")
        self._phases[job_id] = JobPhase.ADMITTED

    def set_phase(self, job_id: str, phase: JobPhase) -> None:
        if job_id in self._phases:
            self._phases[job_id] = phase

    def phase_of(self, job_id: str) -> JobPhase | None:
        return self._phases.get(job_id)

    def release(self, job_id: str) -> None:
        """Stop tracking a job that reached the end of processing."""
        if self._phases.pop(job_id, None) is None:
            logger.warning("[job %s] Released a job that was not in flight", job_id)

    def claimed_jobs(self) -> dict[str, JobPhase]:
        """In-flight jobs this process has claimed in the store."""
        return {
            job_id: phase
            for job_id, phase in self._phases.items()
            if phase != JobPhase.ADMITTED
        }
