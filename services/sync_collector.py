"""Bring the raw snapshot table in line with the current Employes state."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from core.logging import get_logger
from core.settings import SyncSettings
from ingest.employes_client import EmployesClient
from models.raw_snapshot import ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS
from services import snapshot_store, sync_metrics
from services.ingest_errors import TransientIngestError
from services.temporal import cap_errors

logger = get_logger(__name__)

STAGE = "collect"


@dataclass
class CollectorResult:
    total_employees: int = 0
    employees_new: int = 0
    employees_unchanged: int = 0
    history_new: int = 0
    history_unchanged: int = 0
    partial_records: int = 0
    processed_employee_ids: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def tally(self, endpoint: str, status: str) -> None:
        if status == snapshot_store.OUTCOME_PARTIAL:
            self.partial_records += 1
            return
        primary = endpoint == ENDPOINT_EMPLOYEE
        if status == snapshot_store.OUTCOME_NEW:
            if primary:
                self.employees_new += 1
            else:
                self.history_new += 1
        elif status == snapshot_store.OUTCOME_UNCHANGED:
            if primary:
                self.employees_unchanged += 1
            else:
                self.history_unchanged += 1

    def as_dict(self, error_limit: int) -> Dict[str, Any]:
        return {
            "total_employees": self.total_employees,
            "employees_processed": self.employees_new,
            "employees_skipped": self.employees_unchanged,
            "history_processed": self.history_new,
            "history_skipped": self.history_unchanged,
            "partial_records": self.partial_records,
            "errors": cap_errors(self.errors, error_limit),
            "error_count": self.error_count,
        }


def _record_failure(
    db: Session,
    result: CollectorResult,
    *,
    employee_id: str,
    endpoint: str,
    exc: Exception,
    sync_session_id: Optional[uuid.UUID],
) -> None:
    logger.warning("Fetch failed for %s %s: %s", employee_id, endpoint, exc)
    sync_metrics.record_error(STAGE, exc)
    result.errors.append({"employee_id": employee_id, "endpoint": endpoint, "error": str(exc)})
    if not isinstance(exc, TransientIngestError):
        return
    try:
        outcome = snapshot_store.record_partial(
            db,
            employee_id=employee_id,
            endpoint=endpoint,
            error_message=str(exc),
            issues=[str(exc)],
            http_status=exc.status_code,
            sync_session_id=sync_session_id,
        )
    except Exception as store_exc:  # noqa: BLE001
        logger.error("Could not store partial snapshot for %s %s: %s", employee_id, endpoint, store_exc)
        sync_metrics.record_error(STAGE, store_exc)
        result.errors.append({"employee_id": employee_id, "endpoint": endpoint, "error": str(store_exc)})
        return
    result.tally(endpoint, outcome.status)


def _collect_endpoint(
    db: Session,
    client: EmployesClient,
    result: CollectorResult,
    *,
    employee_id: str,
    endpoint: str,
    sync_session_id: Optional[uuid.UUID],
) -> bool:
    try:
        payload = client.fetch_endpoint(employee_id, endpoint)
        if payload is None:
            logger.debug("No %s data for %s; nothing to store.", endpoint, employee_id)
            return True
        outcome = snapshot_store.record_snapshot(
            db,
            employee_id=employee_id,
            endpoint=endpoint,
            payload=payload,
            sync_session_id=sync_session_id,
        )
    except Exception as exc:  # noqa: BLE001
        _record_failure(db, result, employee_id=employee_id, endpoint=endpoint, exc=exc, sync_session_id=sync_session_id)
        return False
    result.tally(endpoint, outcome.status)
    sync_metrics.record_result(STAGE, outcome.status)
    return True


def collect_snapshots(
    db: Session,
    client: EmployesClient,
    settings: SyncSettings,
    *,
    employee_ids: Optional[Sequence[str]] = None,
    sync_session_id: Optional[uuid.UUID] = None,
) -> CollectorResult:
    """Fetch every employee (or the given subset) and version their payloads.

    Listing failures abort the run; failures for an individual employee are
    collected into ``errors`` and the loop moves on.
    """
    started = time.perf_counter()
    result = CollectorResult()

    if employee_ids is None:
        targets = [str(item["id"]) for item in client.list_employees()]
    else:
        targets = [str(employee_id) for employee_id in employee_ids if employee_id]
    result.total_employees = len(targets)
    logger.info("Collecting snapshots for %d employees.", len(targets))

    for employee_id in targets:
        primary_ok = _collect_endpoint(
            db,
            client,
            result,
            employee_id=employee_id,
            endpoint=ENDPOINT_EMPLOYEE,
            sync_session_id=sync_session_id,
        )
        if not primary_ok:
            continue
        result.processed_employee_ids.append(employee_id)
        _collect_endpoint(
            db,
            client,
            result,
            employee_id=employee_id,
            endpoint=ENDPOINT_EMPLOYMENTS,
            sync_session_id=sync_session_id,
        )

    duration = time.perf_counter() - started
    sync_metrics.observe_latency(STAGE, duration)
    sync_metrics.record_result(STAGE, "success" if not result.errors else "partial_success")
    logger.info(
        "Collection done in %.1fs: employees %d new / %d unchanged, history %d new / %d unchanged, "
        "%d partial, %d errors.",
        duration,
        result.employees_new,
        result.employees_unchanged,
        result.history_new,
        result.history_unchanged,
        result.partial_records,
        result.error_count,
    )
    if settings.error_list_limit < result.error_count:
        logger.info("Error list truncated to %d of %d entries.", settings.error_list_limit, result.error_count)
    return result


__all__ = ["CollectorResult", "collect_snapshots"]
