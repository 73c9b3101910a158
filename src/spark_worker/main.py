"""Process bootstrap: wiring, signal handling and exit codes."""

from __future__ import annotations

import asyncio
import logging
import shutil
import signal
from typing import Any

from spark_worker.config import Settings
from spark_worker.errors import ConfigurationError
from spark_worker.jobs import JobDispatcher, JobProcessor, Worker, WorkerSession
from spark_worker.services import (
    DeliveryNotifier,
    FFmpegRenderer,
    IBlobPublisher,
    IGenerator,
    INotifier,
    LocalDirectoryPublisher,
    PlaceholderGenerator,
    SupabaseStoragePublisher,
    UnavailableProviderGenerator,
)
from spark_worker.store import JobStore, SupabaseJobStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_renderer(settings: Settings) -> FFmpegRenderer:
    return FFmpegRenderer(
        work_dir=settings.work_dir,
        ffmpeg_path=settings.ffmpeg_path,
        timeout_seconds=settings.render_timeout_seconds,
        min_output_bytes=settings.render_min_output_bytes,
    )


def build_generator(settings: Settings) -> IGenerator:
    """Select the generation backend for the configured mode.

    Raises:
        ConfigurationError: If dry run is on and ffmpeg is not installed.
    """
    if not settings.dry_run:
        return UnavailableProviderGenerator(settings.video_provider)
    if shutil.which(settings.ffmpeg_path) is None:
        raise ConfigurationError(
            f"ffmpeg not found ({settings.ffmpeg_path!r}); required for dry-run rendering"
        )
    return PlaceholderGenerator(build_renderer(settings))


def build_store(settings: Settings) -> JobStore:
    if not settings.has_supabase:
        raise ConfigurationError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required"
        )
    return SupabaseJobStore(
        base_url=settings.supabase_url,
        service_key=settings.supabase_service_role_key,
        table=settings.supabase_jobs_table,
        timeout=settings.http_timeout_seconds,
        max_error_length=settings.error_max_length,
    )


def build_publisher(settings: Settings) -> IBlobPublisher:
    if settings.has_supabase:
        return SupabaseStoragePublisher(
            base_url=settings.supabase_url,
            service_key=settings.supabase_service_role_key,
            bucket=settings.supabase_bucket,
            timeout=settings.http_timeout_seconds,
        )
    return LocalDirectoryPublisher(settings.output_dir)


def build_notifier(settings: Settings) -> INotifier | None:
    if not settings.has_notifier:
        logger.info("Delivery notifier not configured; notifications disabled")
        return None
    return DeliveryNotifier(
        base_url=settings.notify_base_url,
        token=settings.notify_token,
        timeout=settings.http_timeout_seconds,
    )


def build_worker(
    settings: Settings,
    store: JobStore | None = None,
    generator: IGenerator | None = None,
    publisher: IBlobPublisher | None = None,
    notifier: INotifier | None = None,
) -> Worker:
    """Wire a worker from settings; explicit collaborators take precedence.

    Raises:
        ConfigurationError: If a required collaborator cannot be built.
    """
    session = WorkerSession.from_settings(settings)
    store = store or build_store(settings)
    processor = JobProcessor(
        store=store,
        generator=generator or build_generator(settings),
        publisher=publisher or build_publisher(settings),
        session=session,
        notifier=notifier if notifier is not None else build_notifier(settings),
        call_timeout=settings.external_call_timeout_seconds,
    )
    dispatcher = JobDispatcher(store=store, processor=processor, session=session)
    return Worker(
        session=session,
        store=store,
        dispatcher=dispatcher,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )


async def run_worker(worker: Worker, once: bool = False) -> int:
    """Run the worker until a signal, a fatal error or (``once``) one tick.

    Returns:
        Process exit code.
    """
    loop = asyncio.get_running_loop()
    fatal_errors: list[str] = []

    def _on_async_error(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        message = context.get("message", "unhandled asynchronous error")
        logger.error("Unhandled asynchronous error: %s", message, exc_info=context.get("exception"))
        fatal_errors.append(message)
        worker.request_stop(f"unhandled asynchronous error: {message}")

    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.request_stop, f"signal {sig.name}")
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # not supported on this platform / not the main thread
            pass
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(_on_async_error)

    try:
        try:
            await worker.run(max_ticks=1 if once else None)
        except Exception as e:
            logger.exception("Fatal error in worker loop")
            await worker.shutdown(f"fatal error: {e}")
            return EXIT_FATAL

        if once and not worker.stopping:
            await worker.shutdown("single tick completed", grace_seconds=None)
        else:
            await worker.shutdown(worker.stop_reason or "stopped")
        return EXIT_FATAL if fatal_errors else EXIT_OK
    finally:
        loop.set_exception_handler(previous_handler)
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(settings: Settings, once: bool = False) -> int:
    """Build and run the worker, mapping startup failures to exit code 1."""
    configure_logging(settings.log_level)
    try:
        settings.ensure_directories()
        worker = build_worker(settings)
    except (ConfigurationError, OSError) as e:
        logger.error("Startup failed: %s", e)
        return EXIT_FATAL
    return asyncio.run(run_worker(worker, once=once))
