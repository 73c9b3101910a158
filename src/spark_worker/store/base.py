"""Job store contract.

The worker owns no job state of its own: every status change goes through
an implementation of this protocol. Implementations must make
``claim_running`` an atomic conditional update so that concurrent pollers
cannot both own the same job.
"""

from typing import Protocol

from spark_worker.models.job import Job


class JobStore(Protocol):
    """Interface the worker needs from the job table."""

    async def fetch_queued(self, limit: int) -> list[Job]:
        """Return up to ``limit`` queued jobs.

        Ordered by ``priority`` ascending (unset priorities last), ties
        broken by creation order. A fetched job is not owned until
        ``claim_running`` succeeds for it.

        Raises:
            StoreUnavailable: If the store cannot be reached.
        """
        ...

    async def claim_running(self, job_id: str) -> bool:
        """Atomically move a job from ``queued`` to ``running``.

        Sets ``started_at`` and clears error fields.

        Returns:
            True if this caller now owns the job, False if it was no
            longer queued.
        """
        ...

    async def mark_delivered(
        self, job_id: str, result_url: str, provider_used: str
    ) -> Job | None:
        """Move a job from ``running`` to ``delivered``.

        Returns:
            The updated job, or None if the job was not running.
        """
        ...

    async def mark_failed(
        self, job_id: str, message: str, provider_used: str | None = None
    ) -> Job | None:
        """Move a job from ``running`` to ``failed`` with a bounded message.

        Returns:
            The updated job, or None if the job was not running.
        """
        ...

    async def record_diagnostic(self, job_id: str, message: str) -> None:
        """Best-effort write of ``last_error``; never raises."""
        ...
