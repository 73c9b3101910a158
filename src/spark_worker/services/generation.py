"""Generation backends selected by the worker mode."""

import logging

from spark_worker.errors import GenerationFailed
from spark_worker.models.artifact import GenerationArtifact
from spark_worker.models.job import Job
from spark_worker.services.renderer import FFmpegRenderer

logger = logging.getLogger(__name__)

DRY_RUN_PROVIDER = "dry_run"


class PlaceholderGenerator:
    """Dry-run generator that renders a local placeholder clip."""

    def __init__(self, renderer: FFmpegRenderer) -> None:
        self._renderer = renderer

    @property
    def name(self) -> str:
        return DRY_RUN_PROVIDER

    async def generate(self, job: Job) -> GenerationArtifact:
        logger.info(
            "[job %s] DRY RUN generation (pack=%s, template=%s, prompt=%r)",
            job.id,
            job.pack_id,
            job.template_id,
            job.prompt,
        )
        return await self._renderer.render(job.id, provider=self.name)

    def cleanup(self, job_id: str) -> None:
        self._renderer.cleanup(job_id)


class UnavailableProviderGenerator:
    """Stand-in for a remote AI provider that has no integration yet.

    Every job fails with a ``GenerationFailed`` that points operators at
    the dry-run mode.
    """

    def __init__(self, provider: str) -> None:
        self._provider = provider

    @property
    def name(self) -> str:
        return self._provider

    async def generate(self, job: Job) -> GenerationArtifact:
        raise GenerationFailed(
            f"Provider '{self._provider}' integration is not available; "
            "set DRY_RUN=true to render placeholders"
        )

    def cleanup(self, job_id: str) -> None:
        pass
