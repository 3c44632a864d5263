"""Bookkeeping rows for orchestrated sync runs."""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from core.logging import get_logger
from models.sync_session import SESSION_COMPLETED, SESSION_FAILED, SESSION_PARTIAL, SyncSession
from services.temporal import utcnow

logger = get_logger(__name__)


def open_session(
    db: Session,
    *,
    source: str,
    triggered_by: Optional[str] = None,
    session_type: str = "hybrid_sync",
) -> SyncSession:
    session = SyncSession(
        session_type=session_type,
        source=source,
        triggered_by=triggered_by,
        started_at=utcnow(),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info("Opened sync session %s (source=%s).", session.id, source)
    return session


def close_session(
    db: Session,
    session_id: uuid.UUID,
    *,
    total: int,
    successful: int,
    failed: int,
    details: Optional[Mapping[str, Any]] = None,
    error: Optional[str] = None,
) -> Optional[SyncSession]:
    """Stamp the final counts; status is derived from them unless ``error`` is set."""
    session = db.get(SyncSession, session_id)
    if session is None:
        logger.warning("Sync session %s vanished before it could be closed.", session_id)
        return None
    if error is not None:
        session.status = SESSION_FAILED
    elif failed:
        session.status = SESSION_PARTIAL
    else:
        session.status = SESSION_COMPLETED
    session.total_records = total
    session.successful_records = successful
    session.failed_records = failed
    merged = dict(details or {})
    if error is not None:
        merged["error"] = error
    session.details = merged or None
    session.completed_at = utcnow()
    db.commit()
    return session


__all__ = ["close_session", "open_session"]
