"""Job store backed by a Supabase table through its PostgREST API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from spark_worker.errors import StoreUnavailable, truncate_message
from spark_worker.models.job import Job, JobStatus, transition_sources

logger = logging.getLogger(__name__)

# Lower priority first; unset priorities after every set one; then FIFO.
_QUEUE_ORDER = "priority.asc.nullslast,created_at.asc"


class SupabaseJobStore:
    """Client for the ``spark_jobs`` table.

    Every status change is a single PATCH filtered on both the job id and
    the expected current status, so the database applies the transition
    atomically. An empty representation in the response means the filter
    matched nothing, i.e. the job was not in the expected state.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        table: str = "spark_jobs",
        timeout: float = 30.0,
        max_error_length: int = 1500,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the store client.

        Args:
            base_url: Supabase project URL.
            service_key: Service-role key used for both apikey and bearer auth.
            table: Job table name.
            timeout: HTTP request timeout in seconds.
            max_error_length: Cap applied to persisted error strings.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.timeout = timeout
        self._service_key = service_key
        self._max_error_length = max_error_length
        self._transport = transport

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def fetch_queued(self, limit: int) -> list[Job]:
        if limit <= 0:
            return []
        rows = await self._request(
            "GET",
            {
                "select": "*",
                "status": f"eq.{JobStatus.QUEUED.value}",
                "order": _QUEUE_ORDER,
                "limit": str(limit),
            },
        )
        return [Job.model_validate(row) for row in rows]

    async def claim_running(self, job_id: str) -> bool:
        rows = await self._transition(
            job_id,
            JobStatus.RUNNING,
            {
                "started_at": _now_iso(),
                "error": None,
                "last_error": None,
            },
        )
        return bool(rows)

    async def mark_delivered(
        self, job_id: str, result_url: str, provider_used: str
    ) -> Job | None:
        rows = await self._transition(
            job_id,
            JobStatus.DELIVERED,
            {
                "result_url": result_url,
                "provider_used": provider_used,
                "error": None,
                "last_error": None,
            },
        )
        return Job.model_validate(rows[0]) if rows else None

    async def mark_failed(
        self, job_id: str, message: str, provider_used: str | None = None
    ) -> Job | None:
        message = truncate_message(message, self._max_error_length)
        rows = await self._transition(
            job_id,
            JobStatus.FAILED,
            {
                "provider_used": provider_used,
                "result_url": None,
                "error": message,
                "last_error": message,
            },
        )
        return Job.model_validate(rows[0]) if rows else None

    async def record_diagnostic(self, job_id: str, message: str) -> None:
        try:
            await self._request(
                "PATCH",
                {"id": f"eq.{job_id}"},
                {"last_error": truncate_message(message, self._max_error_length)},
            )
        except Exception:
            logger.warning("[job %s] Failed to record diagnostic", job_id, exc_info=True)

    async def _transition(
        self, job_id: str, target: JobStatus, fields: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """PATCH the row to ``target``, filtered on the statuses that may reach it."""
        payload = {"status": target.value, **fields}
        if target.is_terminal:
            payload["finished_at"] = _now_iso()
        return await self._request(
            "PATCH",
            {"id": f"eq.{job_id}", "status": _status_filter(transition_sources(target))},
            payload,
        )

    async def _request(
        self,
        method: str,
        params: dict[str, str],
        payload: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Send one PostgREST request and return the row representation.

        Raises:
            StoreUnavailable: On connection errors and HTTP error statuses.
        """
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._headers,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(
                    method,
                    f"/rest/v1/{self.table}",
                    params=params,
                    json=payload,
                )
            except httpx.RequestError as e:
                raise StoreUnavailable(
                    f"Failed to reach job store: {e}"
                ) from e

        if response.status_code >= 400:
            raise StoreUnavailable(
                f"Job store returned {response.status_code} for {method}",
                status_code=response.status_code,
                detail=response.text[:500],
            )

        if not response.content:
            return []
        data = response.json()
        if isinstance(data, dict):
            return [data]
        return data


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _status_filter(statuses: list[JobStatus]) -> str:
    if len(statuses) == 1:
        return f"eq.{statuses[0].value}"
    return "in.(" + ",".join(s.value for s in statuses) + ")"
