"""Entry point that collects snapshots and then builds timelines now or later.

``interactive`` runs the timeline processor inline because a user is
waiting on the response. ``background`` enqueues one processing-queue job
for every collected employee and nudges the queue worker without waiting
for it.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence

from sqlalchemy.orm import Session

from core.logging import get_logger
from core.settings import SyncSettings
from ingest.employes_client import EmployesClient
from models.processing_queue import JOB_TIMELINE_PROCESSING
from services import processing_queue, sync_sessions
from services.sync_collector import collect_snapshots
from services.temporal import cap_errors
from services.timeline_processor import process_timeline

logger = get_logger(__name__)

MODE_INTERACTIVE = "interactive"
MODE_BACKGROUND = "background"
SYNC_MODES = (MODE_INTERACTIVE, MODE_BACKGROUND)

QUEUE_TASK_NAME = "employes.process_queue"

Dispatcher = Callable[[], Any]


@dataclass
class HybridSyncOutcome:
    result: Dict[str, Any]
    hybrid_processing: Dict[str, Any]
    sync_session_id: Optional[uuid.UUID] = None
    worker_signal: Optional[threading.Thread] = field(default=None, repr=False)

    def as_dict(self) -> Dict[str, Any]:
        return {"success": True, "result": self.result, "hybrid_processing": self.hybrid_processing}


def celery_dispatcher() -> Any:
    from worker.celery_app import app

    return app.send_task(QUEUE_TASK_NAME)


def _fire(dispatcher: Dispatcher) -> None:
    try:
        dispatcher()
        logger.info("Queue worker triggered.")
    except Exception as exc:  # noqa: BLE001
        logger.warning("Queue worker trigger failed: %s", exc)


def signal_queue_worker(dispatcher: Optional[Dispatcher] = None) -> threading.Thread:
    """Fire-and-forget nudge to the queue worker; the caller never waits on it."""
    thread = threading.Thread(
        target=_fire,
        args=(dispatcher or celery_dispatcher,),
        name="employes-queue-signal",
        daemon=True,
    )
    thread.start()
    return thread


def _enqueue_timeline(
    db: Session,
    settings: SyncSettings,
    employee_ids: Sequence[str],
    *,
    trigger: str,
    sync_id: Optional[uuid.UUID],
    priority: int,
) -> None:
    processing_queue.enqueue_job(
        db,
        job_type=JOB_TIMELINE_PROCESSING,
        payload={
            "employee_ids": list(employee_ids),
            "trigger": trigger,
            "sync_id": str(sync_id) if sync_id else str(uuid.uuid4()),
            "error_limit": settings.error_list_limit,
        },
        priority=priority,
        created_by="sync",
        max_attempts=settings.queue_max_attempts,
    )


def run_hybrid_sync(
    db: Session,
    client: EmployesClient,
    settings: SyncSettings,
    *,
    source: str = "manual",
    mode: str = MODE_INTERACTIVE,
    triggered_by: Optional[str] = None,
    employee_ids: Optional[Sequence[str]] = None,
    dispatcher: Optional[Dispatcher] = None,
) -> HybridSyncOutcome:
    if mode not in SYNC_MODES:
        raise ValueError(f"Unsupported sync mode: {mode!r}")

    started = time.perf_counter()
    session = sync_sessions.open_session(db, source=source, triggered_by=triggered_by)
    try:
        collected = collect_snapshots(
            db,
            client,
            settings,
            employee_ids=employee_ids,
            sync_session_id=session.id,
        )
    except Exception as exc:
        db.rollback()
        sync_sessions.close_session(db, session.id, total=0, successful=0, failed=0, error=str(exc))
        raise

    processed = collected.processed_employee_ids
    errors = list(collected.errors)
    immediate = queued = 0
    timeline: Optional[Dict[str, Any]] = None
    worker_signal: Optional[threading.Thread] = None

    if processed and mode == MODE_INTERACTIVE:
        try:
            timeline_result = process_timeline(db, processed, source="sync_immediate")
            timeline = timeline_result.as_dict(settings.error_list_limit)
            immediate = len(processed)
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.warning("Inline timeline processing failed, deferring to the queue: %s", exc)
            errors.append({"stage": "timeline", "error": str(exc)})
            _enqueue_timeline(
                db,
                settings,
                processed,
                trigger="sync_immediate_fallback",
                sync_id=session.id,
                priority=settings.interactive_priority,
            )
            queued = len(processed)
            worker_signal = signal_queue_worker(dispatcher)
    elif processed:
        _enqueue_timeline(
            db,
            settings,
            processed,
            trigger="sync_background",
            sync_id=session.id,
            priority=settings.background_priority,
        )
        queued = len(processed)
        worker_signal = signal_queue_worker(dispatcher)

    duration_ms = int((time.perf_counter() - started) * 1000)
    result = collected.as_dict(settings.error_list_limit)
    result.update(
        {
            "errors": cap_errors(errors, settings.error_list_limit),
            "error_count": len(errors),
            "immediately_processed": immediate,
            "queued_for_processing": queued,
            "duration_ms": duration_ms,
            "sync_session_id": str(session.id),
        }
    )
    if timeline is not None:
        result["timeline"] = timeline

    sync_sessions.close_session(
        db,
        session.id,
        total=collected.total_employees,
        successful=len(processed),
        failed=collected.total_employees - len(processed),
        details={"mode": mode, "immediate": immediate, "queued": queued, "error_count": len(errors)},
    )
    logger.info(
        "Hybrid sync (%s, source=%s) finished in %dms: %d collected, %d immediate, %d queued.",
        mode,
        source,
        duration_ms,
        len(processed),
        immediate,
        queued,
    )
    return HybridSyncOutcome(
        result=result,
        hybrid_processing={"immediate": immediate, "queued": queued, "mode": mode},
        sync_session_id=session.id,
        worker_signal=worker_signal,
    )


__all__ = [
    "HybridSyncOutcome",
    "MODE_BACKGROUND",
    "MODE_INTERACTIVE",
    "SYNC_MODES",
    "celery_dispatcher",
    "run_hybrid_sync",
    "signal_queue_worker",
]
