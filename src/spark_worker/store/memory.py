"""In-memory job store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from spark_worker.errors import truncate_message
from spark_worker.models.job import Job, JobStatus

logger = logging.getLogger(__name__)


class InMemoryJobStore:
    """Job store backed by a dict.

    All mutations happen under one asyncio lock, which makes the
    conditional transitions atomic for every coroutine sharing the store.
    Every applied transition is appended to ``transitions``.
    """

    def __init__(
        self,
        jobs: Iterable[Job] = (),
        max_error_length: int = 1500,
    ) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = asyncio.Lock()
        self._max_error_length = max_error_length
        self.transitions: list[tuple[str, JobStatus, JobStatus]] = []
        for job in jobs:
            self.add(job)

    def add(self, job: Job) -> Job:
        """Insert a job, stamping ``created_at`` if missing."""
        if job.id in self._jobs:
            raise ValueError(f"Duplicate job id: {job.id}")
        if job.created_at is None:
            job = job.model_copy(update={"created_at": _now()})
        self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Job | None:
        """Get a job by ID."""
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[Job]:
        return list(self._jobs.values())

    async def fetch_queued(self, limit: int) -> list[Job]:
        if limit <= 0:
            return []
        async with self._lock:
            queued = [j for j in self._jobs.values() if j.status == JobStatus.QUEUED]
        # sort is stable, so equal keys keep insertion order
        queued.sort(key=_queue_order)
        return queued[:limit]

    async def claim_running(self, job_id: str) -> bool:
        async with self._lock:
            updated = self._transition(
                job_id,
                JobStatus.RUNNING,
                started_at=_now(),
                error=None,
                last_error=None,
            )
            return updated is not None

    async def mark_delivered(
        self, job_id: str, result_url: str, provider_used: str
    ) -> Job | None:
        async with self._lock:
            return self._transition(
                job_id,
                JobStatus.DELIVERED,
                result_url=result_url,
                provider_used=provider_used,
                error=None,
                last_error=None,
            )

    async def mark_failed(
        self, job_id: str, message: str, provider_used: str | None = None
    ) -> Job | None:
        message = truncate_message(message, self._max_error_length)
        async with self._lock:
            return self._transition(
                job_id,
                JobStatus.FAILED,
                provider_used=provider_used,
                result_url=None,
                error=message,
                last_error=message,
            )

    async def record_diagnostic(self, job_id: str, message: str) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning("[job %s] Diagnostic dropped: unknown job", job_id)
                return
            self._jobs[job_id] = job.model_copy(
                update={
                    "last_error": truncate_message(message, self._max_error_length)
                }
            )

    def _transition(self, job_id: str, target: JobStatus, **fields: object) -> Job | None:
        """Apply ``target`` if ``ALLOWED_TRANSITIONS`` permits it; caller holds the lock."""
        job = self._jobs.get(job_id)
        if job is None or not job.can_transition(target):
            return None
        if target.is_terminal:
            fields["finished_at"] = _now()
        updated = job.model_copy(update={"status": target, **fields})
        self._jobs[job.id] = updated
        self.transitions.append((job.id, job.status, target))
        return updated


def _queue_order(job: Job) -> tuple[bool, int, datetime]:
    created = job.created_at or datetime.min.replace(tzinfo=timezone.utc)
    return (job.priority is None, job.priority or 0, created)


def _now() -> datetime:
    return datetime.now(timezone.utc)
