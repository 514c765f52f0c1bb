# shiftops/jobs/cli.py
from __future__ import annotations

import argparse
import sys
from datetime import datetime

import structlog

from shiftops.core.business_time import business_clock, now_utc
from shiftops.core.config import settings
from shiftops.core.logging import configure_logging

"""Точка входа для внешнего планировщика (cron / systemd timer).

Один запуск = один прогон одного sweep-а. Долгоживущего процесса нет.

  shiftops-sweep generate                 # ежечасно
  shiftops-sweep archive-expired          # ежедневно
  shiftops-sweep archive-completed        # ежедневно
  shiftops-sweep archive-after-shift      # каждые 30 минут
"""

log = structlog.get_logger()

SWEEPS = ("generate", "archive-completed", "archive-expired", "archive-after-shift")


def _parse_now(value: str) -> datetime:
    """ISO timestamp; without offset it is business wall-clock time."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO timestamp: {value!r}") from e
    return business_clock.to_utc(parsed)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shiftops-sweep", description="Run one task lifecycle sweep")
    parser.add_argument("sweep", choices=SWEEPS)
    parser.add_argument(
        "--now",
        type=_parse_now,
        default=None,
        help="Override current time (ISO 8601; naive = business timezone)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore the archive day gates / shift grace period",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="archive-after-shift only: report without changing anything",
    )
    parser.add_argument("--log-level", default=settings.log_level)
    parser.add_argument("--log-format", default=settings.log_format, choices=("json", "console"))
    return parser


def run(args: argparse.Namespace):
    # imported here so that --help works without a reachable database
    from shiftops.services.task_archive_service import (
        run_completion_archive_sweep,
        run_expiry_archive_sweep,
        run_shift_archive_sweep,
    )
    from shiftops.services.task_generation_service import run_generation_sweep

    now = args.now or now_utc()

    if args.sweep == "generate":
        return run_generation_sweep(now=now)
    if args.sweep == "archive-completed":
        return run_completion_archive_sweep(now=now, force=args.force)
    if args.sweep == "archive-expired":
        return run_expiry_archive_sweep(now=now, force=args.force)
    return run_shift_archive_sweep(now=now, force=args.force, dry_run=args.dry_run)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    if args.dry_run and args.sweep != "archive-after-shift":
        log.warning("cli.dry_run_ignored", sweep=args.sweep)

    report = run(args)
    print(report.model_dump_json(indent=2))
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
