"""Data models for the Spark worker."""

from spark_worker.models.artifact import GenerationArtifact, RenderProfile
from spark_worker.models.job import DeliveryNotice, Job, JobStatus

__all__ = [
    "DeliveryNotice",
    "GenerationArtifact",
    "Job",
    "JobStatus",
    "RenderProfile",
]
