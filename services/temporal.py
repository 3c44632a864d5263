"""Hashing and date helpers shared by the sync components."""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional

# Employes returns this instead of null for unset dates.
_NULL_DATE_SENTINELS = {"0001-01-01T00:00:00", "0001-01-01"}

_EFFECTIVE_DATE_KEYS = (
    "effective_date",
    "start_date",
    "period_start",
    "from_date",
    "contract_start_date",
    "employment_start_date",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def content_hash(payload: Any) -> str:
    """Deterministic SHA-256 over a canonical JSON rendering of ``payload``."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an upstream timestamp; sentinels and garbage yield ``None``."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if not text or text in _NULL_DATE_SENTINELS:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.year <= 1:
        return None
    return as_utc(parsed)


def parse_date(value: Any) -> Optional[date]:
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def first_present(payload: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the first non-empty value among ``keys``."""
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def extract_effective_from(payload: Any, fallback: datetime) -> datetime:
    """Validity start for a snapshot: the payload's own start date, else ``fallback``."""
    if isinstance(payload, Mapping):
        candidate = parse_datetime(first_present(payload, _EFFECTIVE_DATE_KEYS))
        if candidate:
            return candidate
        for nested_key in ("employment", "contract"):
            nested = payload.get(nested_key)
            if isinstance(nested, Mapping):
                candidate = parse_datetime(nested.get("start_date"))
                if candidate:
                    return candidate
    return fallback


def cap_errors(errors: list, limit: int) -> list:
    return list(errors[: max(0, limit)])


__all__ = [
    "as_utc",
    "cap_errors",
    "content_hash",
    "extract_effective_from",
    "first_present",
    "parse_date",
    "parse_datetime",
    "utcnow",
]
