"""Bounded self-healing for raw snapshots collected in a degraded state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from core.logging import get_logger
from core.settings import SyncSettings
from ingest.employes_client import EmployesClient, FetchOutcome
from models.raw_snapshot import RawSnapshot
from models.retry_log import RetryLogEntry
from services import sync_metrics
from services.temporal import content_hash, utcnow

logger = get_logger(__name__)

STAGE = "retry"


@dataclass
class RetryResult:
    total_processed: int = 0
    successful_retries: int = 0
    failed_retries: int = 0
    max_retries_reached: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "successful_retries": self.successful_retries,
            "failed_retries": self.failed_retries,
            "max_retries_reached": self.max_retries_reached,
            "details": list(self.details),
        }


def select_candidates(
    db: Session,
    *,
    limit: int,
    max_retry_count: int,
    cooldown: timedelta,
    now: datetime,
) -> List[RawSnapshot]:
    """Latest partial rows under the retry ceiling and out of cooldown, fewest retries first."""
    threshold = now - cooldown
    stmt = (
        select(RawSnapshot)
        .where(
            RawSnapshot.is_latest.is_(True),
            RawSnapshot.is_partial.is_(True),
            RawSnapshot.retry_count < max_retry_count,
            or_(RawSnapshot.last_retry_at.is_(None), RawSnapshot.last_retry_at < threshold),
        )
        .order_by(RawSnapshot.retry_count.asc(), RawSnapshot.last_retry_at.asc().nulls_first())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())


def count_backlog(db: Session, *, max_retry_count: int) -> int:
    stmt = select(func.count(RawSnapshot.id)).where(
        RawSnapshot.is_latest.is_(True),
        RawSnapshot.is_partial.is_(True),
        RawSnapshot.retry_count < max_retry_count,
    )
    return int(db.execute(stmt).scalar_one())


def _fetch(client: EmployesClient, record: RawSnapshot) -> FetchOutcome:
    try:
        return client.fetch_with_retry(record.employee_id, record.endpoint)
    except ValueError as exc:
        return FetchOutcome(success=False, issues=[str(exc)], terminal=True)


def _log_attempt(
    db: Session,
    record: RawSnapshot,
    *,
    attempt: int,
    outcome: FetchOutcome,
    error_message: Optional[str],
) -> None:
    db.add(
        RetryLogEntry(
            raw_data_id=record.id,
            employee_id=record.employee_id,
            endpoint=record.endpoint,
            retry_attempt=attempt,
            success=outcome.success,
            http_status_code=outcome.http_status,
            error_message=error_message,
            response_time_ms=outcome.response_time_ms,
            triggered_by="retry_handler",
        )
    )


def retry_record(db: Session, client: EmployesClient, record: RawSnapshot, *, now: datetime) -> FetchOutcome:
    """Re-fetch one partial row and persist either the healed payload or the failure."""
    attempt = (record.retry_count or 0) + 1
    logger.info("Retrying %s %s (attempt %d).", record.employee_id, record.endpoint, attempt)
    outcome = _fetch(client, record)

    if outcome.success:
        payload = outcome.data if outcome.data is not None else {}
        record.api_response = payload
        record.data_hash = content_hash(payload)
        record.is_partial = False
        record.retry_succeeded_at = now
        record.last_retry_at = now
        record.last_verified_at = now
        record.http_status_code = outcome.http_status
        record.error_message = None
        record.collection_issues = outcome.issues or None
        record.confidence_score = 1.0
        _log_attempt(db, record, attempt=attempt, outcome=outcome, error_message=None)
    else:
        error_message = "; ".join(outcome.issues) or "Unknown failure"
        record.retry_count = attempt
        record.last_retry_at = now
        record.http_status_code = outcome.http_status
        record.error_message = error_message[:4000]
        record.collection_issues = outcome.issues or None
        _log_attempt(db, record, attempt=attempt, outcome=outcome, error_message=error_message)

    db.commit()
    return outcome


def run_retry_pass(
    db: Session,
    client: EmployesClient,
    settings: SyncSettings,
    *,
    limit: Optional[int] = None,
    max_retry_count: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RetryResult:
    """Attempt up to ``limit`` partial rows once each; meant to be invoked periodically."""
    started = time.perf_counter()
    now = now or utcnow()
    limit = limit or settings.retry_batch_limit
    ceiling = max_retry_count or settings.max_retry_count

    candidates = select_candidates(
        db,
        limit=limit,
        max_retry_count=ceiling,
        cooldown=timedelta(seconds=settings.retry_cooldown_seconds),
        now=now,
    )
    result = RetryResult(total_processed=len(candidates))
    if not candidates:
        logger.info("No partial snapshots need a retry.")
        sync_metrics.set_partial_backlog(count_backlog(db, max_retry_count=ceiling))
        return result

    logger.info("Retrying %d partial snapshots (max_retry_count=%d).", len(candidates), ceiling)
    for record in candidates:
        attempt = (record.retry_count or 0) + 1
        outcome = retry_record(db, client, record, now=now)
        detail: Dict[str, Any] = {
            "employee_id": record.employee_id,
            "endpoint": record.endpoint,
            "success": outcome.success,
            "retry_attempt": attempt,
            "http_status_code": outcome.http_status,
        }
        if outcome.success:
            result.successful_retries += 1
            sync_metrics.record_retry("success")
        else:
            result.failed_retries += 1
            reached = attempt >= ceiling
            if reached:
                result.max_retries_reached += 1
            detail["error"] = record.error_message
            detail["terminal"] = outcome.terminal
            detail["max_retries_reached"] = reached
            sync_metrics.record_retry("terminal" if outcome.terminal else "failure")
        result.details.append(detail)

    sync_metrics.set_partial_backlog(count_backlog(db, max_retry_count=ceiling))
    sync_metrics.observe_latency(STAGE, time.perf_counter() - started)
    sync_metrics.record_result(STAGE, "success" if not result.failed_retries else "partial_success")
    logger.info(
        "Retry pass done: %d processed, %d healed, %d failed, %d at retry ceiling.",
        result.total_processed,
        result.successful_retries,
        result.failed_retries,
        result.max_retries_reached,
    )
    return result


__all__ = ["RetryResult", "count_backlog", "retry_record", "run_retry_pass", "select_candidates"]
