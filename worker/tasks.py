"""Celery tasks wrapping the Employes sync components."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Iterator, List, Optional, Tuple

from celery import shared_task
from sqlalchemy.orm import Session

from core.logging import get_logger
from core.settings import SyncSettings, load_settings
from database import session_scope
from ingest.employes_client import EmployesClient
from services import processing_queue
from services.change_detector import detect_changes
from services.hybrid_sync import MODE_BACKGROUND, run_hybrid_sync, signal_queue_worker
from services.retry_handler import run_retry_pass

logger = get_logger(__name__)


@contextmanager
def _client_session() -> Iterator[Tuple[Session, EmployesClient, SyncSettings]]:
    settings = load_settings()
    with session_scope() as db, EmployesClient(settings) as client:
        yield db, client, settings


@shared_task(name="employes.hybrid_sync")
def hybrid_sync(
    source: str = "scheduled",
    mode: str = MODE_BACKGROUND,
    triggered_by: Optional[str] = None,
    employee_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    with _client_session() as (db, client, settings):
        outcome = run_hybrid_sync(
            db,
            client,
            settings,
            source=source,
            mode=mode,
            triggered_by=triggered_by,
            employee_ids=employee_ids,
        )
    return outcome.as_dict()


@shared_task(name="employes.retry_partial")
def retry_partial(limit: Optional[int] = None, max_retry_count: Optional[int] = None) -> Dict[str, Any]:
    """Periodic self-healing pass; also wakes the queue worker when jobs are waiting."""
    with _client_session() as (db, client, settings):
        result = run_retry_pass(db, client, settings, limit=limit, max_retry_count=max_retry_count)
        processing_queue.requeue_stale_jobs(db, stale_after=timedelta(seconds=settings.queue_stale_after_seconds))
        if processing_queue.has_pending_jobs(db):
            logger.info("Pending queue jobs found after retry pass; signalling the queue worker.")
            signal_queue_worker()
    return result.as_dict()


@shared_task(name="employes.detect_changes")
def detect_changes_task(employee_ids: Optional[List[str]] = None) -> Dict[str, Any]:
    settings = load_settings()
    with session_scope() as db:
        result = detect_changes(db, employee_ids=employee_ids)
    return result.as_dict(settings.error_list_limit)


@shared_task(name="employes.process_queue")
def process_queue() -> Dict[str, Any]:
    with session_scope() as db:
        run = processing_queue.run_next_job(db)
    if run is None:
        return {"processed": 0}
    return {"processed": 1, "job": run.as_dict()}


__all__ = ["detect_changes_task", "hybrid_sync", "process_queue", "retry_partial"]
