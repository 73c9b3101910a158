"""Configuration management for the Spark worker."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Worker loop
    dry_run: bool = False
    poll_interval_ms: int = Field(5000, ge=0)
    max_concurrent_jobs: int = Field(3, ge=1)
    shutdown_grace_ms: int = Field(10_000, ge=0)

    # Rendering
    render_timeout_ms: int = Field(300_000, gt=0)
    render_min_output_bytes: int = Field(1000, ge=0)
    work_dir: Path = Path("/tmp/spark")
    ffmpeg_path: str = "ffmpeg"
    video_provider: str = "hailuo"

    # Job store / blob store
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    supabase_jobs_table: str = "spark_jobs"
    supabase_bucket: str = "public-assets"
    output_dir: Path = Path("./outputs")

    # Delivery notification
    notify_base_url: str | None = None
    notify_token: str | None = None

    # External calls
    http_timeout_seconds: float = Field(30.0, gt=0)
    external_call_timeout_seconds: float = Field(120.0, gt=0)
    error_max_length: int = Field(1500, ge=100)

    log_level: str = "INFO"

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def render_timeout_seconds(self) -> float:
        return self.render_timeout_ms / 1000.0

    @property
    def shutdown_grace_seconds(self) -> float:
        return self.shutdown_grace_ms / 1000.0

    @property
    def has_supabase(self) -> bool:
        """Whether both the Supabase endpoint and service key are set."""
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def has_notifier(self) -> bool:
        return bool(self.notify_base_url and self.notify_token)

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.work_dir.mkdir(parents=True, exist_ok=True)
        if not self.has_supabase:
            self.output_dir.mkdir(parents=True, exist_ok=True)

