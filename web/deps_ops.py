"""Dependencies shared by /ops (internal) routers."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status

from core.env import env_str


def require_ops_access(x_ops_token: Optional[str] = Header(default=None)) -> None:
    """Reject callers without the configured ``OPS_ACCESS_TOKEN``."""
    expected = env_str("OPS_ACCESS_TOKEN")
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "ops.disabled", "message": "Ops access token is not configured."},
        )
    if x_ops_token != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "ops.unauthorized", "message": "Ops access denied."},
        )
