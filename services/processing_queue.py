"""Durable job queue used to defer timeline processing out of the request path."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from core.logging import get_logger
from models.processing_queue import (
    JOB_TIMELINE_PROCESSING,
    QUEUE_COMPLETED,
    QUEUE_FAILED,
    QUEUE_PENDING,
    QUEUE_PROCESSING,
    ProcessingQueueEntry,
)
from services import sync_metrics
from services.temporal import utcnow

logger = get_logger(__name__)

STAGE = "queue"
_MAX_ERROR_LENGTH = 4000
DEFAULT_ERROR_LIMIT = 10

JobHandler = Callable[[Session, Mapping[str, Any]], Dict[str, Any]]


@dataclass
class JobRun:
    job_id: uuid.UUID
    job_type: str
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "job_type": self.job_type,
            "status": self.status,
            "result": self.result,
            "error": self.error,
        }


def enqueue_job(
    db: Session,
    *,
    job_type: str,
    payload: Mapping[str, Any],
    priority: int = 0,
    created_by: Optional[str] = None,
    max_attempts: int = 3,
) -> ProcessingQueueEntry:
    entry = ProcessingQueueEntry(
        job_type=job_type,
        payload=dict(payload),
        priority=priority,
        status=QUEUE_PENDING,
        attempts=0,
        max_attempts=max(1, int(max_attempts)),
        created_by=created_by,
        created_at=utcnow(),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("Queued %s job %s (priority=%d).", job_type, entry.id, priority)
    return entry


def has_pending_jobs(db: Session) -> bool:
    return db.query(ProcessingQueueEntry.id).filter(ProcessingQueueEntry.status == QUEUE_PENDING).first() is not None


def claim_next_job(db: Session, *, now: Optional[datetime] = None) -> Optional[ProcessingQueueEntry]:
    """Move the highest-priority, oldest pending job to ``processing`` and return it."""
    query = (
        db.query(ProcessingQueueEntry)
        .filter(ProcessingQueueEntry.status == QUEUE_PENDING)
        .order_by(ProcessingQueueEntry.priority.desc(), ProcessingQueueEntry.created_at.asc())
    )
    if db.get_bind().dialect.name == "postgresql":
        query = query.with_for_update(skip_locked=True)
    entry = query.first()
    if entry is None:
        return None
    entry.status = QUEUE_PROCESSING
    entry.attempts = (entry.attempts or 0) + 1
    entry.started_at = now or utcnow()
    db.commit()
    return entry


def requeue_stale_jobs(db: Session, *, stale_after: timedelta, now: Optional[datetime] = None) -> int:
    """Release jobs stuck in ``processing`` longer than ``stale_after``.

    A stale job goes back to ``pending`` while attempts remain, otherwise it is failed.
    """
    now = now or utcnow()
    stale = (
        db.query(ProcessingQueueEntry)
        .filter(
            ProcessingQueueEntry.status == QUEUE_PROCESSING,
            ProcessingQueueEntry.started_at < now - stale_after,
        )
        .all()
    )
    for entry in stale:
        entry.error_message = f"Worker did not finish within {int(stale_after.total_seconds())}s"
        if (entry.attempts or 0) < (entry.max_attempts or 1):
            entry.status = QUEUE_PENDING
            entry.started_at = None
        else:
            entry.status = QUEUE_FAILED
            entry.completed_at = now
        logger.warning(
            "Released stale job %s (attempt %s/%s) as %s.", entry.id, entry.attempts, entry.max_attempts, entry.status
        )
    if stale:
        db.commit()
    return len(stale)


def mark_completed(
    db: Session,
    entry: ProcessingQueueEntry,
    *,
    result: Optional[Mapping[str, Any]] = None,
    processing_time_ms: Optional[int] = None,
) -> None:
    entry.status = QUEUE_COMPLETED
    entry.result = dict(result) if result is not None else None
    entry.error_message = None
    entry.processing_time_ms = processing_time_ms
    entry.completed_at = utcnow()
    db.commit()


def mark_failed(
    db: Session,
    entry: ProcessingQueueEntry,
    *,
    error: str,
    processing_time_ms: Optional[int] = None,
) -> str:
    """Return the job to ``pending`` while attempts remain, otherwise fail it for good."""
    entry.error_message = (error or "")[:_MAX_ERROR_LENGTH]
    entry.processing_time_ms = processing_time_ms
    if (entry.attempts or 0) < (entry.max_attempts or 1):
        entry.status = QUEUE_PENDING
        entry.started_at = None
    else:
        entry.status = QUEUE_FAILED
        entry.completed_at = utcnow()
    db.commit()
    return entry.status


def _timeline_handler(db: Session, payload: Mapping[str, Any]) -> Dict[str, Any]:
    from services.timeline_processor import process_timeline

    employee_ids = [str(item) for item in payload.get("employee_ids") or []]
    result = process_timeline(db, employee_ids, source="queue")
    return result.as_dict(int(payload.get("error_limit") or DEFAULT_ERROR_LIMIT))


HANDLERS: Dict[str, JobHandler] = {JOB_TIMELINE_PROCESSING: _timeline_handler}


def run_next_job(db: Session, *, handlers: Optional[Mapping[str, JobHandler]] = None) -> Optional[JobRun]:
    """Claim and execute one job; returns ``None`` when the queue is empty."""
    entry = claim_next_job(db)
    if entry is None:
        logger.debug("Processing queue is empty.")
        return None

    registry = handlers if handlers is not None else HANDLERS
    handler = registry.get(entry.job_type)
    started = time.perf_counter()
    if handler is None:
        error = f"Unknown job type: {entry.job_type}"
        status = mark_failed(db, entry, error=error)
        logger.error("Cannot process job %s: %s", entry.id, error)
        sync_metrics.record_result(STAGE, "failure")
        return JobRun(entry.id, entry.job_type, status, error=error)

    try:
        result = handler(db, entry.payload or {})
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        status = mark_failed(db, entry, error=str(exc), processing_time_ms=elapsed_ms)
        logger.warning("Job %s failed (attempt %s/%s): %s", entry.id, entry.attempts, entry.max_attempts, exc)
        sync_metrics.record_error(STAGE, exc)
        sync_metrics.record_result(STAGE, "retry" if status == QUEUE_PENDING else "failure")
        return JobRun(entry.id, entry.job_type, status, error=str(exc))

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    mark_completed(db, entry, result=result, processing_time_ms=elapsed_ms)
    sync_metrics.observe_latency(STAGE, elapsed_ms / 1000)
    sync_metrics.record_result(STAGE, "success")
    logger.info("Job %s (%s) completed in %dms.", entry.id, entry.job_type, elapsed_ms)
    return JobRun(entry.id, entry.job_type, QUEUE_COMPLETED, result=result)


__all__ = [
    "HANDLERS",
    "JobRun",
    "claim_next_job",
    "enqueue_job",
    "has_pending_jobs",
    "mark_completed",
    "mark_failed",
    "requeue_stale_jobs",
    "run_next_job",
]
