"""Job processing engine for the Spark worker."""

from spark_worker.jobs.dispatcher import JobDispatcher
from spark_worker.jobs.processor import JobOutcome, JobProcessor
from spark_worker.jobs.scheduler import Worker
from spark_worker.jobs.session import JobPhase, WorkerSession

__all__ = [
    "JobDispatcher",
    "JobOutcome",
    "JobPhase",
    "JobProcessor",
    "Worker",
    "WorkerSession",
]
