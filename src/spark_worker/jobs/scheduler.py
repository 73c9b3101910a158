"""Top-level poll loop and shutdown routine."""

from __future__ import annotations

import asyncio
import logging

from spark_worker.errors import describe_error
from spark_worker.jobs.dispatcher import JobDispatcher
from spark_worker.jobs.session import JobPhase, WorkerSession
from spark_worker.store.base import JobStore

logger = logging.getLogger(__name__)


class Worker:
    """Polls at a fixed interval until a stop is requested.

    A failed tick is logged and treated like an empty fetch. Shutdown
    drains in-flight jobs for a grace period, cancels the rest, and then
    writes a best-effort diagnostic to every job this process had claimed
    but not finished. Such jobs stay ``running`` in the store; no requeue
    is attempted.
    """

    def __init__(
        self,
        session: WorkerSession,
        store: JobStore,
        dispatcher: JobDispatcher,
        shutdown_grace_seconds: float = 10.0,
        flush_timeout_seconds: float = 5.0,
    ) -> None:
        self._session = session
        self._store = store
        self._dispatcher = dispatcher
        self._shutdown_grace = shutdown_grace_seconds
        self._flush_timeout = flush_timeout_seconds
        self._stop = asyncio.Event()
        self._stop_reason: str | None = None
        self.ticks = 0

    @property
    def stop_reason(self) -> str | None:
        return self._stop_reason

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_stop(self, reason: str) -> None:
        """Ask the loop to stop after the current tick."""
        if not self._stop.is_set():
            logger.info("Stop requested: %s", reason)
            self._stop_reason = reason
            self._stop.set()

    async def tick(self) -> int:
        """Run one dispatch attempt; errors count as an empty fetch."""
        self.ticks += 1
        try:
            return await self._dispatcher.dispatch_available()
        except Exception as e:
            logger.exception("Worker loop error: %s", describe_error(e))
            return 0

    async def run(self, max_ticks: int | None = None) -> None:
        """Poll until stopped (or until ``max_ticks`` ticks have run)."""
        logger.info("=== Spark worker loop starting ===")
        logger.info("Mode: %s", "DRY RUN" if self._session.dry_run else "REAL")
        logger.info("Poll interval: %dms", self._session.poll_interval_ms)
        logger.info("Max concurrent: %d", self._session.max_concurrent)

        while not self._stop.is_set():
            await self.tick()
            if max_ticks is not None and self.ticks >= max_ticks:
                break
            try:
                await asyncio.wait_for(
                    self._stop.wait(), timeout=self._session.poll_interval_seconds
                )
            except asyncio.TimeoutError:
                pass

    async def shutdown(self, reason: str, grace_seconds: float | None = -1.0) -> None:
        """Drain, cancel and flush diagnostics.

        Args:
            reason: Text recorded on jobs orphaned by this shutdown.
            grace_seconds: Drain window; ``None`` waits indefinitely and a
                negative value uses the configured grace period.
        """
        if grace_seconds is not None and grace_seconds < 0:
            grace_seconds = self._shutdown_grace
        remaining = await self._dispatcher.wait_idle(timeout=grace_seconds)
        orphaned = self._session.claimed_jobs()
        if remaining:
            cancelled = await self._dispatcher.cancel_all()
            logger.warning("Cancelled %d job(s) still running at shutdown", cancelled)
        await self.flush_diagnostics(reason, orphaned)
        logger.info("=== Spark worker stopped (%s) ===", reason)

    async def flush_diagnostics(
        self, reason: str, claimed: dict[str, JobPhase] | None = None
    ) -> int:
        """Record ``reason`` on jobs claimed by this process but not finished.

        Args:
            reason: Why the worker stopped.
            claimed: Snapshot of job phases; defaults to the live session.

        Returns:
            Number of jobs a diagnostic was attempted for.
        """
        if claimed is None:
            claimed = self._session.claimed_jobs()
        for job_id, phase in claimed.items():
            message = f"[fatal] worker stopped while job was {phase.value}: {reason}"
            try:
                await asyncio.wait_for(
                    self._store.record_diagnostic(job_id, message),
                    timeout=self._flush_timeout,
                )
            except Exception:
                logger.warning("[job %s] Shutdown diagnostic not written", job_id)
        return len(claimed)
