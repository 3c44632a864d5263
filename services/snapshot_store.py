"""Persistence rules for the versioned raw snapshot table."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.logging import get_logger
from models.raw_snapshot import RawSnapshot
from services.temporal import content_hash, extract_effective_from, utcnow

logger = get_logger(__name__)

OUTCOME_NEW = "new"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_PARTIAL = "partial"
OUTCOME_SKIPPED = "skipped"


@dataclass(frozen=True)
class StoreOutcome:
    status: str
    snapshot_id: Optional[uuid.UUID] = None


def get_latest(
    db: Session,
    employee_id: str,
    endpoint: str,
    *,
    for_update: bool = False,
) -> Optional[RawSnapshot]:
    stmt = select(RawSnapshot).where(
        RawSnapshot.employee_id == employee_id,
        RawSnapshot.endpoint == endpoint,
        RawSnapshot.is_latest.is_(True),
    )
    if for_update and db.get_bind().dialect.name == "postgresql":
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalars().first()


def list_latest(
    db: Session,
    endpoint: str,
    employee_ids: Optional[Sequence[str]] = None,
) -> List[RawSnapshot]:
    stmt = select(RawSnapshot).where(RawSnapshot.endpoint == endpoint, RawSnapshot.is_latest.is_(True))
    if employee_ids:
        stmt = stmt.where(RawSnapshot.employee_id.in_(list(employee_ids)))
    return list(db.execute(stmt.order_by(RawSnapshot.employee_id)).scalars())


def _supersede(db: Session, employee_id: str, endpoint: str, now: datetime) -> int:
    """Close the current latest row; the caller inserts the successor in the same transaction."""
    result = db.execute(
        update(RawSnapshot)
        .where(
            RawSnapshot.employee_id == employee_id,
            RawSnapshot.endpoint == endpoint,
            RawSnapshot.is_latest.is_(True),
        )
        .values(is_latest=False, effective_to=now)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


def record_snapshot(
    db: Session,
    *,
    employee_id: str,
    endpoint: str,
    payload: Any,
    sync_session_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> StoreOutcome:
    """Touch the latest row when the hash matches, otherwise supersede it with a new version.

    A successor starts exactly where its predecessor ends; only the first
    version of a pair takes its start from the payload.
    """
    now = now or utcnow()
    data_hash = content_hash(payload)
    try:
        latest = get_latest(db, employee_id, endpoint, for_update=True)
        if latest is not None and latest.data_hash == data_hash and not latest.is_partial:
            latest.last_verified_at = now
            if sync_session_id is not None:
                latest.sync_session_id = sync_session_id
            db.commit()
            logger.debug("Snapshot unchanged for %s %s.", employee_id, endpoint)
            return StoreOutcome(OUTCOME_UNCHANGED, latest.id)

        closed = _supersede(db, employee_id, endpoint, now)
        snapshot = RawSnapshot(
            employee_id=employee_id,
            endpoint=endpoint,
            api_response=payload,
            data_hash=data_hash,
            collected_at=now,
            last_verified_at=now,
            effective_from=now if closed else extract_effective_from(payload, now),
            effective_to=None,
            is_latest=True,
            is_partial=False,
            retry_count=0,
            http_status_code=200,
            confidence_score=1.0,
            sync_session_id=sync_session_id,
        )
        db.add(snapshot)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.debug("Stored new snapshot version for %s %s.", employee_id, endpoint)
    return StoreOutcome(OUTCOME_NEW, snapshot.id)


def record_partial(
    db: Session,
    *,
    employee_id: str,
    endpoint: str,
    error_message: str,
    issues: Sequence[str],
    http_status: Optional[int],
    sync_session_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> StoreOutcome:
    """Store a degraded placeholder when nothing trusted exists yet for the pair."""
    now = now or utcnow()
    try:
        latest = get_latest(db, employee_id, endpoint, for_update=True)
        if latest is not None:
            # Never replace a usable version with an empty one.
            return StoreOutcome(OUTCOME_SKIPPED, latest.id)
        snapshot = RawSnapshot(
            employee_id=employee_id,
            endpoint=endpoint,
            api_response={},
            data_hash=content_hash({}),
            collected_at=now,
            last_verified_at=now,
            effective_from=now,
            is_latest=True,
            is_partial=True,
            retry_count=0,
            http_status_code=http_status,
            error_message=error_message[:4000],
            collection_issues=list(issues) or None,
            confidence_score=0.5,
            sync_session_id=sync_session_id,
        )
        db.add(snapshot)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Stored partial snapshot for %s %s: %s", employee_id, endpoint, error_message)
    return StoreOutcome(OUTCOME_PARTIAL, snapshot.id)


__all__ = [
    "OUTCOME_NEW",
    "OUTCOME_PARTIAL",
    "OUTCOME_SKIPPED",
    "OUTCOME_UNCHANGED",
    "StoreOutcome",
    "get_latest",
    "list_latest",
    "record_partial",
    "record_snapshot",
]
