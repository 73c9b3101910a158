"""Per-job state machine."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum

from spark_worker.errors import (
    NotifyFailed,
    PublishFailed,
    describe_diagnostic,
    describe_error,
)
from spark_worker.jobs.session import JobPhase, WorkerSession
from spark_worker.models.artifact import GenerationArtifact
from spark_worker.models.job import DeliveryNotice, Job
from spark_worker.services.interfaces import IBlobPublisher, IGenerator, INotifier
from spark_worker.store.base import JobStore

logger = logging.getLogger(__name__)


class JobOutcome(str, Enum):
    """How processing of a single job ended."""

    DELIVERED = "delivered"
    FAILED = "failed"
    CLAIM_LOST = "claim_lost"
    # claim attempt itself failed; job stays queued for a later tick
    SKIPPED = "skipped"
    # terminal write did not land; job is left running in the store
    UNRECORDED = "unrecorded"


class JobProcessor:
    """Runs one job through claim, generate, publish, deliver and notify.

    ``process`` never raises for per-job problems: generation and publish
    errors become a ``failed`` row, notification errors are only logged.
    Each claimed job gets exactly one terminal write attempt.
    """

    def __init__(
        self,
        store: JobStore,
        generator: IGenerator,
        publisher: IBlobPublisher,
        session: WorkerSession,
        notifier: INotifier | None = None,
        call_timeout: float = 120.0,
    ) -> None:
        self._store = store
        self._generator = generator
        self._publisher = publisher
        self._session = session
        self._notifier = notifier
        self._call_timeout = call_timeout

    async def process(self, job: Job) -> JobOutcome:
        """Process a fetched job to its terminal state."""
        try:
            claimed = await self._store.claim_running(job.id)
        except Exception as e:
            logger.warning("[job %s] Claim failed, will retry: %s", job.id, describe_error(e))
            return JobOutcome.SKIPPED
        if not claimed:
            logger.info("[job %s] Already claimed by another worker", job.id)
            return JobOutcome.CLAIM_LOST

        self._session.set_phase(job.id, JobPhase.CLAIMED)
        logger.info(
            "[job %s] Claimed (%d/%d active)",
            job.id,
            self._session.active_job_count,
            self._session.max_concurrent,
        )
        provider = self._generator.name

        try:
            try:
                self._session.set_phase(job.id, JobPhase.GENERATING)
                artifact = await self._generator.generate(job)

                self._session.set_phase(job.id, JobPhase.PUBLISHING)
                result_url = await self._publish(artifact)
            except Exception as e:
                return await self._fail(job, e, provider)

            self._session.set_phase(job.id, JobPhase.DELIVERING)
            delivered = await self._deliver(job, result_url, provider)
            if delivered is None:
                return JobOutcome.UNRECORDED

            self._session.set_phase(job.id, JobPhase.NOTIFYING)
            await self._notify(delivered)
            return JobOutcome.DELIVERED
        finally:
            self._cleanup(job.id)

    async def _publish(self, artifact: GenerationArtifact) -> str:
        try:
            return await asyncio.wait_for(
                self._publisher.publish(artifact),
                timeout=self._call_timeout,
            )
        except asyncio.TimeoutError as e:
            raise PublishFailed(
                f"Publishing timed out after {self._call_timeout:g}s"
            ) from e

    async def _fail(self, job: Job, exc: Exception, provider: str) -> JobOutcome:
        logger.error("[job %s] Failed: %s", job.id, describe_error(exc))
        message = describe_error(exc)
        diagnostic = describe_diagnostic(exc)
        try:
            updated = await self._store.mark_failed(job.id, message, provider)
        except Exception:
            logger.exception("[job %s] Could not record failure", job.id)
            await self._store.record_diagnostic(job.id, diagnostic)
            return JobOutcome.UNRECORDED

        if updated is None:
            logger.warning("[job %s] Failure not recorded: job no longer running", job.id)
            return JobOutcome.UNRECORDED
        if diagnostic != message:
            await self._store.record_diagnostic(job.id, diagnostic)
        return JobOutcome.FAILED

    async def _deliver(self, job: Job, result_url: str, provider: str) -> Job | None:
        try:
            delivered = await self._store.mark_delivered(job.id, result_url, provider)
        except Exception as e:
            logger.exception("[job %s] Could not record delivery", job.id)
            await self._store.record_diagnostic(
                job.id, f"delivery of {result_url} not recorded: {describe_error(e)}"
            )
            return None
        if delivered is None:
            logger.warning("[job %s] Delivery not recorded: job no longer running", job.id)
            return None
        logger.info("[job %s] Delivered %s (provider=%s)", job.id, result_url, provider)
        return delivered

    async def _notify(self, job: Job) -> None:
        if self._notifier is None or not job.activation_id:
            return
        notice = DeliveryNotice(
            activation_id=job.activation_id,
            spark_job_id=job.id,
            result_url=job.result_url or "",
            provider_used=job.provider_used or self._generator.name,
            finished_at=job.finished_at or datetime.now(timezone.utc),
        )
        try:
            await asyncio.wait_for(
                self._notifier.notify(notice), timeout=self._call_timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                "[job %s] Notification timed out after %gs", job.id, self._call_timeout
            )
        except NotifyFailed as e:
            logger.error("[job %s] Notification failed: %s", job.id, describe_error(e))
        except Exception:
            logger.exception("[job %s] Notification failed unexpectedly", job.id)

    def _cleanup(self, job_id: str) -> None:
        try:
            self._generator.cleanup(job_id)
        except OSError:
            logger.warning("[job %s] Artifact cleanup failed", job_id, exc_info=True)
