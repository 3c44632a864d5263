"""Prometheus collectors for the Employes sync pipeline."""

from __future__ import annotations

import time
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

from core.logging import get_logger

logger = get_logger(__name__)

_LATENCY_BUCKETS = (0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0)

_RESULT_COUNTER: Optional[Counter] = None
_ERROR_COUNTER: Optional[Counter] = None
_RETRY_COUNTER: Optional[Counter] = None
_LATENCY_HISTOGRAM: Optional[Histogram] = None
_LAST_SUCCESS_GAUGE: Optional[Gauge] = None
_PARTIAL_GAUGE: Optional[Gauge] = None

try:
    _RESULT_COUNTER = Counter(
        "employes_sync_result_total",
        "Sync pipeline outcomes per stage.",
        ("stage", "result"),
    )
    _ERROR_COUNTER = Counter(
        "employes_sync_errors_total",
        "Per-entity failures grouped by stage and exception.",
        ("stage", "exception"),
    )
    _RETRY_COUNTER = Counter(
        "employes_sync_retries_total",
        "Retry handler attempts by outcome.",
        ("outcome",),
    )
    _LATENCY_HISTOGRAM = Histogram(
        "employes_sync_latency_seconds",
        "Latency distribution for sync stages.",
        ("stage",),
        buckets=_LATENCY_BUCKETS,
    )
    _LAST_SUCCESS_GAUGE = Gauge(
        "employes_sync_last_success_timestamp",
        "Unix timestamp of the last successful run per stage.",
        ("stage",),
    )
    _PARTIAL_GAUGE = Gauge(
        "employes_sync_partial_snapshots",
        "Raw snapshots still flagged partial and eligible for retry.",
    )
except ValueError:  # pragma: no cover - duplicate registration on reload
    logger.debug("Sync metrics already registered; reusing existing collectors.")


def record_result(stage: str, result: str, amount: int = 1) -> None:
    if _RESULT_COUNTER is None or amount <= 0:
        return
    normalized = result or "unknown"
    _RESULT_COUNTER.labels(stage=stage, result=normalized).inc(amount)
    if normalized == "success" and _LAST_SUCCESS_GAUGE is not None:
        _LAST_SUCCESS_GAUGE.labels(stage=stage).set(time.time())


def record_error(stage: str, exception: Exception | str) -> None:
    if _ERROR_COUNTER is None:
        return
    exc_name = exception.__class__.__name__ if isinstance(exception, Exception) else (str(exception) or "UnknownError")
    _ERROR_COUNTER.labels(stage=stage, exception=exc_name).inc()


def record_retry(outcome: str) -> None:
    if _RETRY_COUNTER is None:
        return
    _RETRY_COUNTER.labels(outcome=outcome).inc()


def observe_latency(stage: str, seconds: float) -> None:
    if _LATENCY_HISTOGRAM is None or seconds < 0:
        return
    _LATENCY_HISTOGRAM.labels(stage=stage).observe(seconds)


def set_partial_backlog(count: int) -> None:
    if _PARTIAL_GAUGE is None:
        return
    _PARTIAL_GAUGE.set(float(max(0, count)))


__all__ = ["observe_latency", "record_error", "record_result", "record_retry", "set_partial_backlog"]
