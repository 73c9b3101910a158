"""Artifact publishers."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

import httpx

from spark_worker.errors import PublishFailed
from spark_worker.models.artifact import GenerationArtifact

logger = logging.getLogger(__name__)


def storage_path_for(job_id: str) -> str:
    """Object key of a job's final video inside the bucket."""
    return f"spark/{job_id}/final.mp4"


class SupabaseStoragePublisher:
    """Uploads artifacts to a public Supabase storage bucket."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = "public-assets",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self._service_key = service_key
        self._transport = transport

    def public_url(self, object_path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{object_path}"

    async def publish(self, artifact: GenerationArtifact) -> str:
        """Upload (upsert) the artifact and return its public URL.

        Raises:
            PublishFailed: If the file cannot be read or the upload fails.
        """
        job_id = artifact.job_id
        object_path = storage_path_for(job_id)
        try:
            content = await asyncio.to_thread(artifact.path.read_bytes)
        except OSError as e:
            raise PublishFailed(f"Cannot read artifact {artifact.path}: {e}") from e

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/storage/v1/object/{self.bucket}/{object_path}",
                    content=content,
                    headers={
                        "apikey": self._service_key,
                        "Authorization": f"Bearer {self._service_key}",
                        "Content-Type": artifact.content_type,
                        "x-upsert": "true",
                    },
                )
            except httpx.RequestError as e:
                raise PublishFailed(f"Failed to reach blob storage: {e}") from e

        if response.status_code >= 400:
            raise PublishFailed(
                f"Upload of {object_path} failed with {response.status_code}",
                detail=response.text[:500],
            )

        url = self.public_url(object_path)
        logger.info("[job %s] Published %d bytes to %s", job_id, len(content), url)
        return url


class LocalDirectoryPublisher:
    """Copies artifacts into a local directory and returns file URLs.

    Used when no blob store is configured.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    async def publish(self, artifact: GenerationArtifact) -> str:
        job_id = artifact.job_id
        target = self.output_dir / storage_path_for(job_id)
        try:
            await asyncio.to_thread(_copy_file, artifact.path, target)
        except OSError as e:
            raise PublishFailed(f"Failed to copy artifact to {target}: {e}") from e
        url = target.resolve().as_uri()
        logger.info("[job %s] Published to %s", job_id, url)
        return url


def _copy_file(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)
