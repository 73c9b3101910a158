"""Delivery notification client."""

import logging

import httpx

from spark_worker.errors import NotifyFailed
from spark_worker.models.job import DeliveryNotice

logger = logging.getLogger(__name__)

DELIVERED_ENDPOINT = "/api/internal/spark-delivered"


class DeliveryNotifier:
    """Posts delivery notices to the downstream home service.

    Requests carry the shared worker token in the ``x-worker-token``
    header. Any non-2xx response is an error.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = base_url.rstrip("/") + DELIVERED_ENDPOINT
        self.timeout = timeout
        self._token = token
        self._transport = transport

    async def notify(self, notice: DeliveryNotice) -> None:
        """Send a delivery notice.

        Raises:
            NotifyFailed: On connection errors or non-2xx responses.
        """
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    self.url,
                    content=notice.model_dump_json(),
                    headers={
                        "content-type": "application/json",
                        "x-worker-token": self._token,
                    },
                )
            except httpx.RequestError as e:
                raise NotifyFailed(f"Failed to reach notifier: {e}") from e

        if not response.is_success:
            raise NotifyFailed(
                f"spark-delivered failed: {response.status_code} {response.text[:300]}",
                status_code=response.status_code,
            )
        logger.info("[job %s] Delivery notified", notice.spark_job_id)
