"""HTTP entry points for the Employes sync pipeline."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.logging import get_logger
from core.settings import SyncSettings
from database import get_db
from ingest.employes_client import EmployesClient
from schemas.api.employes_sync import (
    ChangeDetectionRequest,
    ChangeDetectionResponse,
    RetryRequest,
    RetryResponse,
    SyncRequest,
    SyncResponse,
    TimelineRequest,
    TimelineResponse,
)
from services.change_detector import detect_changes
from services.hybrid_sync import run_hybrid_sync
from services.retry_handler import run_retry_pass
from services.timeline_processor import process_timeline
from web.deps import get_employes_client, get_sync_settings

logger = get_logger(__name__)

router = APIRouter(prefix="/employes", tags=["Employes Sync"])


def _failure(exc: Exception, *, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": str(exc) or "Unknown error",
            "errorDetails": {"name": exc.__class__.__name__, "message": str(exc)},
        },
    )


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"success": False, "error": message})


@router.post("/sync", response_model=SyncResponse)
def trigger_sync(
    payload: SyncRequest,
    db: Session = Depends(get_db),
    settings: SyncSettings = Depends(get_sync_settings),
    client: EmployesClient = Depends(get_employes_client),
):
    try:
        outcome = run_hybrid_sync(
            db,
            client,
            settings,
            source=payload.source,
            mode=payload.mode,
            triggered_by=payload.triggered_by,
            employee_ids=payload.employee_ids,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Sync run failed (source=%s).", payload.source)
        return _failure(exc)
    return SyncResponse(result=outcome.result, hybrid_processing=outcome.hybrid_processing)


@router.post("/retry", response_model=RetryResponse)
def trigger_retry(
    payload: RetryRequest,
    db: Session = Depends(get_db),
    settings: SyncSettings = Depends(get_sync_settings),
    client: EmployesClient = Depends(get_employes_client),
):
    try:
        result = run_retry_pass(db, client, settings, limit=payload.limit, max_retry_count=payload.max_retry_count)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Retry pass failed.")
        return _failure(exc)
    return RetryResponse(result=result.as_dict())


@router.post("/changes", response_model=ChangeDetectionResponse)
def trigger_change_detection(
    payload: ChangeDetectionRequest,
    db: Session = Depends(get_db),
    settings: SyncSettings = Depends(get_sync_settings),
):
    if payload.mode == "scoped" and not payload.employee_ids:
        return _bad_request("Scoped change detection requires employeeIds")
    started = time.perf_counter()
    try:
        result = detect_changes(db, employee_ids=payload.employee_ids if payload.mode == "scoped" else None)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Change detection failed.")
        return _failure(exc)
    return ChangeDetectionResponse(
        result=result.as_dict(settings.error_list_limit),
        duration_ms=int((time.perf_counter() - started) * 1000),
    )


@router.post("/timeline", response_model=TimelineResponse)
def trigger_timeline(
    payload: TimelineRequest,
    db: Session = Depends(get_db),
    settings: SyncSettings = Depends(get_sync_settings),
):
    if not payload.employee_ids:
        return _bad_request("No employee IDs provided")
    started = time.perf_counter()
    try:
        result = process_timeline(db, payload.employee_ids, source=payload.source)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Timeline processing failed (source=%s).", payload.source)
        return _failure(exc)
    body = result.as_dict(settings.error_list_limit)
    body["duration_ms"] = int((time.perf_counter() - started) * 1000)
    return TimelineResponse(result=body)


__all__ = ["router"]
