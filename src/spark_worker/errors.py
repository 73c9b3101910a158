"""Custom exceptions for the Spark worker.

Every worker error carries an ``ErrorKind`` tag so that failures can be
reported uniformly. Causes are chained with ``raise ... from`` and rendered
into a single diagnostic string only when they are persisted.
"""

from __future__ import annotations

import traceback
from enum import Enum


class ErrorKind(str, Enum):
    """Classification of worker failures."""

    RENDER_FAILED = "render_failed"
    RENDER_TIMEOUT = "render_timeout"
    GENERATION_FAILED = "generation_failed"
    PUBLISH_FAILED = "publish_failed"
    NOTIFY_FAILED = "notify_failed"
    STORE_UNAVAILABLE = "store_unavailable"
    CONFIGURATION = "configuration"
    FATAL = "fatal"


class SparkWorkerError(Exception):
    """Base exception for the Spark worker."""

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class RenderFailed(SparkWorkerError):
    """Renderer exited non-zero or produced a missing/undersized file."""

    kind = ErrorKind.RENDER_FAILED

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        returncode: int | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.returncode = returncode


class RenderTimeout(RenderFailed):
    """Renderer exceeded its wall-clock timeout and was killed."""

    kind = ErrorKind.RENDER_TIMEOUT

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: float,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.timeout_seconds = timeout_seconds


class GenerationFailed(SparkWorkerError):
    """A non-placeholder generation backend failed."""

    kind = ErrorKind.GENERATION_FAILED


class PublishFailed(SparkWorkerError):
    """Artifact could not be made durable/public."""

    kind = ErrorKind.PUBLISH_FAILED


class NotifyFailed(SparkWorkerError):
    """Downstream delivery notification failed."""

    kind = ErrorKind.NOTIFY_FAILED

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code


class StoreUnavailable(SparkWorkerError):
    """Transient failure talking to the job store."""

    kind = ErrorKind.STORE_UNAVAILABLE

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code


class ConfigurationError(SparkWorkerError):
    """Worker cannot start with the given configuration."""

    kind = ErrorKind.CONFIGURATION


def error_kind(exc: BaseException) -> ErrorKind:
    """Return the kind tag of an exception (``fatal`` for foreign errors)."""
    if isinstance(exc, SparkWorkerError):
        return exc.kind
    return ErrorKind.FATAL


def iter_causes(exc: BaseException, max_depth: int = 5) -> list[BaseException]:
    """Walk the explicit/implicit cause chain of an exception."""
    causes: list[BaseException] = []
    seen = {id(exc)}
    current = exc.__cause__ or exc.__context__
    while current is not None and len(causes) < max_depth:
        if id(current) in seen:
            break
        seen.add(id(current))
        causes.append(current)
        current = current.__cause__ or current.__context__
    return causes


def describe_error(exc: BaseException) -> str:
    """Render an exception as ``[kind] message | caused by Type: msg``."""
    message = str(exc) or type(exc).__name__
    parts = [f"[{error_kind(exc).value}] {message}"]
    for cause in iter_causes(exc):
        parts.append(f"caused by {type(cause).__name__}: {cause}")
    return " | ".join(parts)


def describe_diagnostic(exc: BaseException, traceback_lines: int = 8) -> str:
    """Like ``describe_error`` plus error detail and a traceback tail."""
    sections = [describe_error(exc)]
    detail = getattr(exc, "detail", None)
    if detail:
        sections.append(f"detail:\n{detail}")
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    if exc.__traceback__ is not None:
        tail = "".join(tb).rstrip().splitlines()[-traceback_lines:]
        sections.append("traceback:\n" + "\n".join(tail))
    return "\n".join(sections)


def truncate_message(message: str, max_length: int) -> str:
    """Cap a message for persistence, keeping its head."""
    if len(message) <= max_length:
        return message
    marker = "...[truncated]"
    return message[: max(0, max_length - len(marker))] + marker
