"""Health-related API endpoints."""

from __future__ import annotations

from typing import Optional, Tuple

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import database
from core.settings import load_settings
from services.ingest_errors import ConfigurationError

router = APIRouter(prefix="/health", tags=["Health"])


def ping_database() -> Tuple[bool, Optional[str]]:
    """Return database connectivity status and optional error message."""
    db = database.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True, None
    except SQLAlchemyError as exc:
        return False, str(exc)
    finally:
        db.close()


@router.get(
    "/status",
    summary="Service runtime status",
    description="Database reachability plus the sync pipeline's configuration state.",
)
def read_service_status():
    db_ok, db_error = ping_database()
    try:
        load_settings()
        configured = True
    except ConfigurationError:
        configured = False
    payload = {
        "status": "ok" if db_ok and configured else "degraded",
        "database": {"ok": db_ok},
        "employes": {"configured": configured},
    }
    if db_error:
        payload["database"]["error"] = db_error
    return payload


__all__ = ["router", "ping_database"]
