"""Job domain models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """Status of a job in the job table."""

    QUEUED = "queued"
    RUNNING = "running"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DELIVERED, JobStatus.FAILED)


# Legal status transitions; terminal states have none.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.DELIVERED, JobStatus.FAILED}),
    JobStatus.DELIVERED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def transition_sources(target: JobStatus) -> list[JobStatus]:
    """Statuses from which ``target`` can legally be reached."""
    return [s for s, targets in ALLOWED_TRANSITIONS.items() if target in targets]


class Job(BaseModel):
    """A row of the job table.

    ``error`` holds the failure message written with the terminal ``failed``
    transition. ``last_error`` is purely observational: it is overwritten
    by every failure and by best-effort diagnostics.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Opaque job identifier")
    status: JobStatus = Field(JobStatus.QUEUED)
    prompt: str | None = Field(None, description="Generation prompt")
    pack_id: str | None = Field(None, description="Pack the job was requested from")
    template_id: str | None = Field(None, description="Template within the pack")
    activation_id: str | None = Field(None, description="Downstream activation to notify")
    priority: int | None = Field(None, description="Lower value is served first")
    result_url: str | None = None
    provider_used: str | None = None
    error: str | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def can_transition(self, target: JobStatus) -> bool:
        """Check whether moving to ``target`` is a legal transition."""
        return target in ALLOWED_TRANSITIONS[self.status]


class DeliveryNotice(BaseModel):
    """Payload sent to the downstream consumer after delivery."""

    activation_id: str
    spark_job_id: str
    result_url: str
    provider_used: str
    finished_at: datetime
