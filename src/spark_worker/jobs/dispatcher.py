"""Bounded fire-and-forget dispatch of fetched jobs."""

from __future__ import annotations

import asyncio
import logging

from spark_worker.jobs.processor import JobOutcome, JobProcessor
from spark_worker.jobs.session import WorkerSession
from spark_worker.models.job import Job
from spark_worker.store.base import JobStore

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Fills free capacity with queued jobs without waiting for them.

    Each fetched job is admitted to the session synchronously and then run
    as its own asyncio task under the session limiter. The admission is
    released in the task's ``finally`` block, whatever the outcome.
    """

    def __init__(
        self,
        store: JobStore,
        processor: JobProcessor,
        session: WorkerSession,
    ) -> None:
        self._store = store
        self._processor = processor
        self._session = session
        self._tasks: set[asyncio.Task[JobOutcome | None]] = set()

    @property
    def in_flight(self) -> set[asyncio.Task[JobOutcome | None]]:
        """Tasks that have been dispatched and not finished yet."""
        return set(self._tasks)

    async def dispatch_available(self) -> int:
        """Fetch as many jobs as there are free slots and start them.

        Returns:
            Number of jobs dispatched this tick.

        Raises:
            StoreUnavailable: If the fetch fails.
        """
        free_slots = self._session.free_slots
        if free_slots <= 0:
            logger.debug(
                "No free slots (%d/%d active)",
                self._session.active_job_count,
                self._session.max_concurrent,
            )
            return 0

        jobs = await self._store.fetch_queued(free_slots)
        dispatched = 0
        for job in jobs:
            if self._session.is_active(job.id):
                continue
            self._start(job)
            dispatched += 1

        if dispatched:
            logger.info(
                "Dispatched %d job(s) (%d/%d active)",
                dispatched,
                self._session.active_job_count,
                self._session.max_concurrent,
            )
        return dispatched

    def _start(self, job: Job) -> None:
        self._session.admit(job.id)
        task = asyncio.create_task(self._run(job), name=f"spark-job-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    async def _run(self, job: Job) -> JobOutcome | None:
        try:
            async with self._session.limiter:
                return await self._processor.process(job)
        except Exception:
            logger.exception("[job %s] Unexpected error in processor", job.id)
            return None
        finally:
            self._session.release(job.id)

    def _on_done(self, task: asyncio.Task[JobOutcome | None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Task %s was cancelled", task.get_name())

    async def wait_idle(self, timeout: float | None = None) -> int:
        """Wait up to ``timeout`` for in-flight jobs to finish.

        Returns:
            Number of jobs still running afterwards.
        """
        pending = self.in_flight
        if not pending:
            return 0
        logger.info("Waiting for %d in-flight job(s)", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        return len(still_running)

    async def cancel_all(self) -> int:
        """Cancel every in-flight job and wait for the cancellations.

        Returns:
            Number of tasks cancelled.
        """
        pending = self.in_flight
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)
