"""Tests for process wiring and exit codes."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from fakes import FakeGenerator, FakeNotifier, FakePublisher, make_job
from spark_worker import main as worker_main
from spark_worker.config import Settings
from spark_worker.errors import ConfigurationError
from spark_worker.models import JobStatus
from spark_worker.services import (
    DeliveryNotifier,
    LocalDirectoryPublisher,
    PlaceholderGenerator,
    SupabaseStoragePublisher,
    UnavailableProviderGenerator,
)
from spark_worker.store import InMemoryJobStore, SupabaseJobStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DRY_RUN",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "NOTIFY_BASE_URL",
        "NOTIFY_TOKEN",
        "MAX_CONCURRENT_JOBS",
        "POLL_INTERVAL_MS",
    ):
        monkeypatch.delenv(name, raising=False)


def _settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "work_dir": tmp_path / "work",
        "output_dir": tmp_path / "out",
        "poll_interval_ms": 10,
        "shutdown_grace_ms": 100,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FatalCallbackStore(InMemoryJobStore):
    """Schedules a failing loop callback on the first fetch."""

    async def fetch_queued(self, limit: int):
        asyncio.get_running_loop().call_soon(self._boom)
        return []

    @staticmethod
    def _boom() -> None:
        raise RuntimeError("callback exploded")


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

class TestBuilders:
    def test_store_requires_supabase(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="SUPABASE_URL"):
            worker_main.build_store(_settings(tmp_path))

    def test_supabase_collaborators(self, tmp_path: Path) -> None:
        settings = _settings(
            tmp_path,
            supabase_url="https://proj.supabase.test",
            supabase_service_role_key="key",
            supabase_bucket="videos",
        )
        assert isinstance(worker_main.build_store(settings), SupabaseJobStore)
        publisher = worker_main.build_publisher(settings)
        assert isinstance(publisher, SupabaseStoragePublisher)
        assert publisher.bucket == "videos"

    def test_local_publisher_without_supabase(self, tmp_path: Path) -> None:
        publisher = worker_main.build_publisher(_settings(tmp_path))
        assert isinstance(publisher, LocalDirectoryPublisher)

    def test_notifier_optional(self, tmp_path: Path) -> None:
        assert worker_main.build_notifier(_settings(tmp_path)) is None
        notifier = worker_main.build_notifier(
            _settings(tmp_path, notify_base_url="https://home.test", notify_token="t")
        )
        assert isinstance(notifier, DeliveryNotifier)
        assert notifier.url == "https://home.test/api/internal/spark-delivered"

    def test_real_mode_generator(self, tmp_path: Path) -> None:
        generator = worker_main.build_generator(
            _settings(tmp_path, dry_run=False, video_provider="hailuo")
        )
        assert isinstance(generator, UnavailableProviderGenerator)
        assert generator.name == "hailuo"

    def test_dry_run_requires_ffmpeg(self, tmp_path: Path) -> None:
        settings = _settings(tmp_path, dry_run=True, ffmpeg_path=str(tmp_path / "no-ffmpeg"))
        with pytest.raises(ConfigurationError, match="ffmpeg not found"):
            worker_main.build_generator(settings)

    def test_dry_run_generator(self, tmp_path: Path) -> None:
        with patch("spark_worker.main.shutil.which", return_value="/usr/bin/ffmpeg"):
            generator = worker_main.build_generator(_settings(tmp_path, dry_run=True))
        assert isinstance(generator, PlaceholderGenerator)
        assert generator.name == "dry_run"


# ---------------------------------------------------------------------------
# main / run_worker
# ---------------------------------------------------------------------------

class TestMain:
    def test_missing_store_config_exits_fatal(self, tmp_path: Path) -> None:
        assert worker_main.main(_settings(tmp_path), once=True) == worker_main.EXIT_FATAL


class TestRunWorker:
    @pytest.mark.asyncio
    async def test_single_tick_delivers_and_exits_ok(self, tmp_path: Path) -> None:
        store = InMemoryJobStore([make_job("j1"), make_job("j2")])
        notifier = FakeNotifier()
        worker = worker_main.build_worker(
            _settings(tmp_path, dry_run=True),
            store=store,
            generator=FakeGenerator(tmp_path),
            publisher=FakePublisher(),
            notifier=notifier,
        )

        assert await worker_main.run_worker(worker, once=True) == worker_main.EXIT_OK
        assert [j.status for j in store.list_jobs()] == [JobStatus.DELIVERED] * 2
        assert len(notifier.notices) == 2

    @pytest.mark.asyncio
    async def test_real_mode_fails_jobs(self, tmp_path: Path) -> None:
        store = InMemoryJobStore([make_job("j1")])
        worker = worker_main.build_worker(
            _settings(tmp_path, dry_run=False),
            store=store,
            publisher=FakePublisher(),
            notifier=FakeNotifier(),
        )

        assert await worker_main.run_worker(worker, once=True) == worker_main.EXIT_OK
        job = store.get("j1")
        assert job.status == JobStatus.FAILED
        assert job.error.startswith("[generation_failed]")
        assert job.provider_used == "hailuo"

    @pytest.mark.asyncio
    async def test_unhandled_async_error_exits_fatal(self, tmp_path: Path) -> None:
        worker = worker_main.build_worker(
            _settings(tmp_path),
            store=FatalCallbackStore(),
            generator=FakeGenerator(tmp_path),
            publisher=FakePublisher(),
            notifier=FakeNotifier(),
        )
        previous = asyncio.get_running_loop().get_exception_handler()

        code = await asyncio.wait_for(worker_main.run_worker(worker), timeout=2)

        assert code == worker_main.EXIT_FATAL
        assert worker.stop_reason.startswith("unhandled asynchronous error")
        assert asyncio.get_running_loop().get_exception_handler() is previous
