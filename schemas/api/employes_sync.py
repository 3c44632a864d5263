from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SyncRequest(BaseModel):
    source: str = "manual"
    mode: Literal["interactive", "background"] = "interactive"
    triggered_by: Optional[str] = None
    employee_ids: Optional[List[str]] = None


class HybridProcessing(BaseModel):
    immediate: int
    queued: int
    mode: str


class SyncResponse(BaseModel):
    success: bool = True
    result: Dict[str, Any]
    hybrid_processing: HybridProcessing


class RetryRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=500)
    max_retry_count: Optional[int] = Field(default=None, ge=1, le=50)


class RetryDetail(BaseModel):
    employee_id: str
    endpoint: str
    success: bool
    retry_attempt: int
    http_status_code: Optional[int] = None
    error: Optional[str] = None
    terminal: Optional[bool] = None
    max_retries_reached: Optional[bool] = None


class RetryResultSchema(BaseModel):
    total_processed: int
    successful_retries: int
    failed_retries: int
    max_retries_reached: int
    details: List[RetryDetail] = Field(default_factory=list)


class RetryResponse(BaseModel):
    success: bool = True
    result: RetryResultSchema


class ChangeDetectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mode: Literal["full", "scoped"] = "full"
    employee_ids: Optional[List[str]] = Field(default=None, alias="employeeIds")


class ChangeDetectionResponse(BaseModel):
    success: bool = True
    result: Dict[str, Any]
    duration_ms: int


class TimelineRequest(BaseModel):
    employee_ids: List[str] = Field(default_factory=list)
    source: str = "manual"


class TimelineResultSchema(BaseModel):
    employees_processed: int
    events_created: int
    employees_with_events: int
    errors: List[str] = Field(default_factory=list)
    error_count: int = 0
    duration_ms: Optional[int] = None


class TimelineResponse(BaseModel):
    success: bool = True
    result: TimelineResultSchema


__all__ = [
    "ChangeDetectionRequest",
    "ChangeDetectionResponse",
    "HybridProcessing",
    "RetryDetail",
    "RetryRequest",
    "RetryResponse",
    "RetryResultSchema",
    "SyncRequest",
    "SyncResponse",
    "TimelineRequest",
    "TimelineResponse",
    "TimelineResultSchema",
]
