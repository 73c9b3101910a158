"""Spark worker command-line interface with subcommands.

Usage:
    spark-worker run [--once] [--dry-run] [--max-concurrent N] [--poll-interval-ms N]
    spark-worker render <job_id> [--work-dir DIR] [--timeout-ms N]
"""

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError

from spark_worker import main as worker_main
from spark_worker.config import Settings
from spark_worker.errors import RenderFailed, describe_error


def _load_settings(overrides: dict) -> Settings:
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def cmd_run(args: argparse.Namespace) -> int:
    """Run the polling worker."""
    try:
        settings = _load_settings(
            {
                "dry_run": True if args.dry_run else None,
                "max_concurrent_jobs": args.max_concurrent,
                "poll_interval_ms": args.poll_interval_ms,
            }
        )
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return worker_main.EXIT_FATAL
    return worker_main.main(settings, once=args.once)


def cmd_render(args: argparse.Namespace) -> int:
    """Render one placeholder clip to check the ffmpeg toolchain."""
    try:
        settings = _load_settings(
            {"work_dir": args.work_dir, "render_timeout_ms": args.timeout_ms}
        )
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return worker_main.EXIT_FATAL

    worker_main.configure_logging(settings.log_level)
    renderer = worker_main.build_renderer(settings)
    try:
        artifact = asyncio.run(renderer.render(args.job_id))
    except RenderFailed as e:
        print(f"Render failed: {describe_error(e)}", file=sys.stderr)
        if e.detail:
            print(e.detail, file=sys.stderr)
        return worker_main.EXIT_FATAL

    print(f"{artifact.path} ({artifact.size_bytes} bytes)")
    return worker_main.EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spark-worker",
        description="Render queued Spark video jobs and record their outcome",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Poll the job table and process jobs")
    run.add_argument("--once", action="store_true", help="Run a single poll tick and exit")
    run.add_argument("--dry-run", action="store_true", help="Render placeholders (overrides DRY_RUN)")
    run.add_argument("--max-concurrent", type=int, help="Override MAX_CONCURRENT_JOBS")
    run.add_argument("--poll-interval-ms", type=int, help="Override POLL_INTERVAL_MS")
    run.set_defaults(func=cmd_run)

    render = subparsers.add_parser("render", help="Render one placeholder clip")
    render.add_argument("job_id", help="Job id used for the output directory")
    render.add_argument("--work-dir", type=Path, help="Override WORK_DIR")
    render.add_argument("--timeout-ms", type=int, help="Override RENDER_TIMEOUT_MS")
    render.set_defaults(func=cmd_render)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
