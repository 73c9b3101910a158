"""Placeholder video renderer using FFmpeg."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from spark_worker.errors import RenderFailed, RenderTimeout
from spark_worker.models.artifact import GenerationArtifact, RenderProfile

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_MIN_OUTPUT_BYTES = 1000
STDERR_TAIL_CHARS = 2000
_READ_CHUNK = 4096
_POLL_SECONDS = 0.1


@dataclass
class ProcessResult:
    """Outcome of a supervised subprocess run."""

    returncode: int | None
    stdout_tail: str
    stderr_tail: str
    timed_out: bool
    elapsed_seconds: float
    cancelled: bool = False


class _TailBuffer:
    """Keeps only the last ``limit`` characters written to it."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._text = ""
        self._lock = threading.Lock()

    def write(self, chunk: str) -> None:
        with self._lock:
            self._text = (self._text + chunk)[-self._limit :]

    def getvalue(self) -> str:
        with self._lock:
            return self._text


def _drain(stream: IO[bytes], buffer: _TailBuffer) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        for chunk in iter(lambda: stream.read1(_READ_CHUNK), b""):
            buffer.write(decoder.decode(chunk))
        buffer.write(decoder.decode(b"", final=True))
    except (OSError, ValueError):
        # stream closed underneath us after a kill
        pass
    finally:
        stream.close()


def _kill_process_tree(proc: subprocess.Popen[bytes]) -> None:
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except PermissionError:
            pass
    proc.kill()


def run_supervised(
    cmd: list[str],
    timeout: float,
    tail_chars: int = STDERR_TAIL_CHARS,
    cancel: threading.Event | None = None,
) -> ProcessResult:
    """Run a command with a wall-clock timeout.

    Both output streams are drained by reader threads into bounded tail
    buffers, so whatever the process printed before a timeout kill is still
    available. The child runs in its own session; on timeout or when
    ``cancel`` is set, the whole process group is killed and reaped before
    returning.

    Args:
        cmd: Command and arguments.
        timeout: Wall-clock limit in seconds.
        tail_chars: Number of trailing characters kept per stream.
        cancel: Optional event another thread sets to stop the process.

    Returns:
        ProcessResult with exit code, output tails and timeout/cancel flags.

    Raises:
        OSError: If the executable cannot be started.
    """
    started = time.monotonic()
    proc = subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        start_new_session=(os.name == "posix"),
    )
    stdout_buf = _TailBuffer(tail_chars)
    stderr_buf = _TailBuffer(tail_chars)
    readers = [
        threading.Thread(target=_drain, args=(proc.stdout, stdout_buf), daemon=True),
        threading.Thread(target=_drain, args=(proc.stderr, stderr_buf), daemon=True),
    ]
    for reader in readers:
        reader.start()

    deadline = started + timeout
    timed_out = False
    cancelled = False
    try:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                timed_out = True
                break
            if cancel is not None and cancel.is_set():
                cancelled = True
                break
            try:
                proc.wait(timeout=min(remaining, _POLL_SECONDS))
                break
            except subprocess.TimeoutExpired:
                continue
        if proc.returncode is None:
            _kill_process_tree(proc)
            proc.wait()
    finally:
        if proc.returncode is None:
            # interrupted by something other than the timeout
            _kill_process_tree(proc)
            proc.wait()
        for reader in readers:
            reader.join(timeout=5)

    return ProcessResult(
        returncode=proc.returncode,
        stdout_tail=stdout_buf.getvalue(),
        stderr_tail=stderr_buf.getvalue(),
        timed_out=timed_out,
        elapsed_seconds=time.monotonic() - started,
        cancelled=cancelled,
    )


class FFmpegRenderer:
    """Renders a fixed-format placeholder clip for a job.

    Output goes to ``<work_dir>/<job_id>/final.mp4``: a 2 second,
    1920x1080, 30 fps, H.264/yuv420p MP4 with the moov atom up front.
    """

    def __init__(
        self,
        work_dir: Path = Path("/tmp/spark"),
        ffmpeg_path: str = "ffmpeg",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        min_output_bytes: int = DEFAULT_MIN_OUTPUT_BYTES,
        profile: RenderProfile | None = None,
    ) -> None:
        self.work_dir = Path(work_dir)
        self.ffmpeg_path = ffmpeg_path
        self.timeout_seconds = timeout_seconds
        self.min_output_bytes = min_output_bytes
        self.profile = profile or RenderProfile()

    def output_path(self, job_id: str) -> Path:
        """Job-scoped output location.

        Raises:
            RenderFailed: If ``job_id`` cannot be used as a single path
                component under ``work_dir``.
        """
        if (
            not job_id
            or job_id in (".", "..")
            or "/" in job_id
            or "\\" in job_id
            or "\0" in job_id
        ):
            raise RenderFailed(f"Invalid job id for output path: {job_id!r}")
        return self.work_dir / job_id / "final.mp4"

    def build_command(self, output_path: Path) -> list[str]:
        """Build the ffmpeg argument vector for ``output_path``."""
        p = self.profile
        return [
            self.ffmpeg_path,
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-f", "lavfi",
            "-i", p.lavfi_source,
            "-vf", f"format={p.pixel_format}",
            "-c:v", p.video_codec,
            "-pix_fmt", p.pixel_format,
            "-movflags", "+faststart",
            str(output_path),
        ]

    async def render(self, job_id: str, provider: str = "dry_run") -> GenerationArtifact:
        """Render the placeholder clip for a job.

        Args:
            job_id: Job identifier, used to scope the output directory.
            provider: Provider id recorded on the artifact.

        Returns:
            GenerationArtifact describing the validated output file.

        Raises:
            RenderTimeout: If ffmpeg exceeded the timeout and was killed.
            RenderFailed: On non-zero exit or missing/undersized output.
        """
        output_path = self.output_path(job_id)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.unlink(missing_ok=True)

        cmd = self.build_command(output_path)
        logger.info("[job %s] Rendering placeholder: %s", job_id, output_path)

        try:
            result = await self._run(cmd)
        except OSError as exc:
            raise RenderFailed(f"FFmpeg could not be started: {exc}") from exc

        if result.timed_out:
            raise RenderTimeout(
                f"FFmpeg timeout after {self.timeout_seconds:g}s",
                timeout_seconds=self.timeout_seconds,
                detail=result.stderr_tail,
            )
        if result.returncode != 0:
            raise RenderFailed(
                f"FFmpeg exited with code {result.returncode}",
                returncode=result.returncode,
                detail=result.stderr_tail,
            )

        if not output_path.exists():
            raise RenderFailed(
                f"FFmpeg did not create output file: {output_path}",
                returncode=result.returncode,
                detail=result.stderr_tail,
            )
        size = output_path.stat().st_size
        if size < self.min_output_bytes:
            raise RenderFailed(
                f"FFmpeg output too small ({size} bytes): {output_path}",
                returncode=result.returncode,
                detail=result.stderr_tail,
            )

        logger.info(
            "[job %s] Rendered %d bytes in %.1fs", job_id, size, result.elapsed_seconds
        )
        return GenerationArtifact(
            job_id=job_id,
            path=output_path,
            size_bytes=size,
            provider=provider,
        )

    async def _run(self, cmd: list[str]) -> ProcessResult:
        """Run ffmpeg in a worker thread, killing it if this task is cancelled."""
        cancel = threading.Event()
        future = asyncio.ensure_future(
            asyncio.to_thread(
                run_supervised, cmd, self.timeout_seconds, STDERR_TAIL_CHARS, cancel
            )
        )
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            cancel.set()
            # the thread kills and reaps the process group before returning
            with contextlib.suppress(Exception):
                await future
            raise

    def cleanup(self, job_id: str) -> None:
        """Remove the job-scoped output directory, ignoring missing files."""
        try:
            job_dir = self.output_path(job_id).parent
        except RenderFailed:
            return
        if not job_dir.exists():
            return
        for child in job_dir.iterdir():
            if child.is_file():
                child.unlink(missing_ok=True)
        try:
            job_dir.rmdir()
        except OSError:
            logger.warning("[job %s] Could not remove %s", job_id, job_dir)
