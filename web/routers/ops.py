from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from schemas.api.ops import CeleryScheduleEntry, CeleryScheduleResponse, SyncBacklogResponse
from services.processing_queue import has_pending_jobs
from services.retry_handler import count_backlog
from services.schedule_loader import load_schedule_config
from web.deps import get_sync_settings
from web.deps_ops import require_ops_access

router = APIRouter(prefix="/ops", tags=["Ops"], dependencies=[Depends(require_ops_access)])


@router.get("/celery/schedule", response_model=CeleryScheduleResponse)
def read_celery_schedule() -> CeleryScheduleResponse:
    timezone, entries, path = load_schedule_config()
    return CeleryScheduleResponse(
        timezone=timezone,
        path=str(path),
        entries={name: CeleryScheduleEntry(**entry) for name, entry in entries.items()},
    )


@router.get("/sync/backlog", response_model=SyncBacklogResponse)
def read_sync_backlog(db: Session = Depends(get_db), settings=Depends(get_sync_settings)) -> SyncBacklogResponse:
    return SyncBacklogResponse(
        partial_snapshots=count_backlog(db, max_retry_count=settings.max_retry_count),
        pending_jobs=has_pending_jobs(db),
    )
