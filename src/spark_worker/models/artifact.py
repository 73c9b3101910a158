"""Generation artifact models."""

from pathlib import Path

from pydantic import BaseModel, Field


class RenderProfile(BaseModel):
    """Fixed output format of the placeholder renderer."""

    width: int = 1920
    height: int = 1080
    fps: int = 30
    duration_seconds: int = 2
    video_codec: str = "libx264"
    pixel_format: str = "yuv420p"
    color: str = "black"

    @property
    def resolution(self) -> str:
        """Return resolution string (e.g., '1920x1080')."""
        return f"{self.width}x{self.height}"

    @property
    def lavfi_source(self) -> str:
        """Return the lavfi color source description."""
        return (
            f"color=c={self.color}:s={self.resolution}"
            f":r={self.fps}:d={self.duration_seconds}"
        )


class GenerationArtifact(BaseModel):
    """A media file produced for a job."""

    job_id: str = Field(..., description="Job the artifact belongs to")
    path: Path = Field(..., description="Local file path")
    size_bytes: int = Field(..., ge=0, description="File size in bytes")
    content_type: str = Field("video/mp4", description="MIME type of the file")
    provider: str = Field(..., description="Backend that produced the file")
