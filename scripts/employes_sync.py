"""CLI entry points for running the Employes sync components by hand."""

from __future__ import annotations

import argparse
import json
from typing import Any, Mapping

from core.env import load_dotenv_if_available

load_dotenv_if_available()

from core.logging import get_logger, setup_logging  # noqa: E402
from core.settings import load_settings  # noqa: E402
from database import session_scope  # noqa: E402
from ingest.employes_client import EmployesClient  # noqa: E402
from services.change_detector import detect_changes  # noqa: E402
from services.hybrid_sync import SYNC_MODES, run_hybrid_sync  # noqa: E402
from services.processing_queue import run_next_job  # noqa: E402
from services.retry_handler import run_retry_pass  # noqa: E402
from services.timeline_processor import process_timeline  # noqa: E402

logger = get_logger(__name__)


def _print(payload: Mapping[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _handle_sync(session, args) -> None:
    settings = load_settings()
    with EmployesClient(settings) as client:
        outcome = run_hybrid_sync(
            session,
            client,
            settings,
            source=args.source,
            mode=args.mode,
            triggered_by=args.triggered_by,
            employee_ids=args.employee_ids or None,
        )
    if outcome.worker_signal is not None:
        outcome.worker_signal.join(timeout=5)
    _print(outcome.as_dict())


def _handle_retry(session, args) -> None:
    settings = load_settings()
    with EmployesClient(settings) as client:
        result = run_retry_pass(session, client, settings, limit=args.limit, max_retry_count=args.max_retry_count)
    _print({"success": True, "result": result.as_dict()})


def _handle_changes(session, args) -> None:
    settings = load_settings()
    result = detect_changes(session, employee_ids=args.employee_ids or None)
    _print({"success": True, "result": result.as_dict(settings.error_list_limit)})


def _handle_timeline(session, args) -> None:
    settings = load_settings()
    result = process_timeline(session, args.employee_ids, source=args.source)
    _print({"success": True, "result": result.as_dict(settings.error_list_limit)})


def _handle_queue(session, args) -> None:
    processed = 0
    for _ in range(max(1, args.max_jobs)):
        run = run_next_job(session)
        if run is None:
            break
        processed += 1
        _print(run.as_dict())
    if not processed:
        print("Processing queue is empty.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run Employes sync components against the configured database.")
    parser.add_argument("--log-level", default=None, help="Logging level (default: SYNC_LOG_LEVEL or INFO).")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Collect snapshots and build timelines.")
    sync_parser.add_argument("--mode", choices=SYNC_MODES, default="interactive")
    sync_parser.add_argument("--source", default="cli")
    sync_parser.add_argument("--triggered-by", default=None)
    sync_parser.add_argument("employee_ids", nargs="*", help="Restrict the run to these employee ids.")

    retry_parser = subparsers.add_parser("retry", help="Retry partial snapshots once.")
    retry_parser.add_argument("--limit", type=int, default=None)
    retry_parser.add_argument("--max-retry-count", type=int, default=None)

    changes_parser = subparsers.add_parser("changes", help="Detect salary/hours/contract changes.")
    changes_parser.add_argument("employee_ids", nargs="*", help="Scope detection to these employee ids.")

    timeline_parser = subparsers.add_parser("timeline", help="Build timeline events for employees.")
    timeline_parser.add_argument("employee_ids", nargs="+")
    timeline_parser.add_argument("--source", default="cli")

    queue_parser = subparsers.add_parser("queue", help="Drain processing-queue jobs.")
    queue_parser.add_argument("--max-jobs", type=int, default=1, help="Jobs to run before exiting (default: 1).")

    args = parser.parse_args()
    setup_logging(level=args.log_level)
    logger.info("Running Employes sync command: %s", args.command)

    handlers = {
        "sync": _handle_sync,
        "retry": _handle_retry,
        "changes": _handle_changes,
        "timeline": _handle_timeline,
        "queue": _handle_queue,
    }
    with session_scope() as session:
        handlers[args.command](session, args)


if __name__ == "__main__":
    main()
