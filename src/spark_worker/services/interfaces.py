"""Service interfaces (Protocols) for the Spark worker.

These protocols define the collaborators the job processor depends on.
"""

from typing import Protocol

from spark_worker.models.artifact import GenerationArtifact
from spark_worker.models.job import DeliveryNotice, Job


class IGenerator(Protocol):
    """Interface for media generation backends."""

    @property
    def name(self) -> str:
        """Provider identifier recorded as ``provider_used``."""
        ...

    async def generate(self, job: Job) -> GenerationArtifact:
        """Produce the media file for a job.

        Args:
            job: The claimed job with its generation parameters

        Returns:
            GenerationArtifact pointing at a local file
        """
        ...

    def cleanup(self, job_id: str) -> None:
        """Remove local files produced for a job."""
        ...


class IBlobPublisher(Protocol):
    """Interface for durable artifact storage."""

    async def publish(self, artifact: GenerationArtifact) -> str:
        """Upload an artifact and return its public URL.

        Args:
            artifact: Local artifact with its job id and content type

        Returns:
            Publicly resolvable URL
        """
        ...


class INotifier(Protocol):
    """Interface for downstream delivery notification."""

    async def notify(self, notice: DeliveryNotice) -> None:
        """Inform the downstream consumer that a job was delivered."""
        ...
