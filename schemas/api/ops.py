from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CeleryScheduleEntry(BaseModel):
    task: str
    cron: Optional[str] = None
    every_seconds: Optional[int] = None
    kwargs: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)


class CeleryScheduleResponse(BaseModel):
    timezone: Optional[str]
    path: Optional[str]
    entries: Dict[str, CeleryScheduleEntry]


class SyncBacklogResponse(BaseModel):
    partial_snapshots: int
    pending_jobs: bool
