"""Command line entry point: import one roster file."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from catnat_app.core.config import load_config
from catnat_app.core.container import build_container
from catnat_app.core.errors import CatnatError
from catnat_app.models.import_job import JobStatus

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Send log records to stdout."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import a store roster file.")
    parser.add_argument("file", help="CSV roster to import.")
    parser.add_argument("--uploader", default="cli", help="Name recorded on the job.")
    parser.add_argument(
        "--role",
        default="admin",
        choices=["admin", "broker", "store_manager"],
        help="Role presented to the import queue.",
    )
    parser.add_argument("--session", default="cli", help="Session id to import into.")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a settings YAML file. Defaults to config/settings.yaml.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Seconds to wait for the import to finish.",
    )
    return parser


def run(argv: list[str] | None = None) -> int:
    """Run one import and return the process exit code."""
    args = build_parser().parse_args(argv)
    config = load_config(Path(args.config) if args.config else None)
    configure_logging(config.logging.level)

    container = build_container(config)
    removed = container.audit_repo.cleanup_old_logs(config.logging.audit_retention_days)
    if removed:
        logger.info("Cleaned old audit logs: %d", removed)
    container.init_session(args.session)

    path = Path(args.file)
    try:
        container.file_processor.check_upload(path.name, path.stat().st_size)
        content = path.read_text(encoding="utf-8-sig")
        job = container.import_queue.enqueue(path.name, content, args.uploader, args.role)
    except (CatnatError, OSError, UnicodeDecodeError) as error:
        print(f"[ERROR] {error}")
        return 1

    if not container.import_queue.wait_until_idle(args.timeout):
        print(f"[ERROR] import {job.job_id} did not finish within {args.timeout}s")
        return 1

    finished = container.import_queue.get_job(job.job_id)
    if finished is None:
        print(f"[ERROR] import {job.job_id} disappeared")
        return 1

    print(f"[INFO] {finished.job_id}: {finished.status.value} ({finished.progress}%)")
    if finished.result is not None:
        for problem in finished.result.validation.errors:
            print(f"  row {problem.row} [{problem.field}] {problem.message}")
        for warning in finished.result.validation.warnings:
            print(f"  warning: {warning}")
    if finished.error:
        print(f"[INFO] {finished.error}")

    summary = container.policy_service.get_portfolio_summary()
    print(
        f"[INFO] active policies: {summary.active_policies}, "
        f"total premium: {summary.total_premium}, "
        f"total insured sum: {summary.total_insured_sum}"
    )
    return 0 if finished.status == JobStatus.completed else 1


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
