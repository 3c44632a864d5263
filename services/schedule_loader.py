"""Load the Celery beat schedule for the sync pipeline from YAML."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from celery.schedules import crontab

from core.env import env_str

DEFAULT_SCHEDULE_FILE = Path("configs") / "schedules" / "sync.yml"

Schedule = Union[crontab, timedelta]


def _cron_from_string(expr: str) -> crontab:
    fields = str(expr or "").split()
    if len(fields) != 5:
        raise ValueError(f"Invalid cron expression '{expr}'. Expected 5 fields.")
    minute, hour, day_of_month, month, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month,
        day_of_week=day_of_week,
    )


def resolve_schedule_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return path
    override = env_str("SYNC_SCHEDULE_FILE")
    return Path(override) if override else DEFAULT_SCHEDULE_FILE


def load_schedule_config(path: Optional[Path] = None) -> Tuple[Optional[str], Dict[str, Dict[str, Any]], Path]:
    """Return ``(timezone, entries, path)``; a missing file yields no entries.

    Each entry needs a ``task`` and either a 5-field ``cron`` expression or
    ``every_seconds``. Entries with ``enabled: false`` are dropped.
    """
    schedule_path = resolve_schedule_path(path)
    if not schedule_path.exists():
        return None, {}, schedule_path

    try:
        raw = yaml.safe_load(schedule_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Failed to parse sync schedule file: {schedule_path}") from exc

    entries: Dict[str, Dict[str, Any]] = {}
    for name, payload in (raw.get("entries") or {}).items():
        if not isinstance(payload, dict) or payload.get("enabled") is False:
            continue
        task = payload.get("task")
        cron = payload.get("cron")
        every = payload.get("every_seconds")
        if not task or not (cron or every):
            continue
        entries[name] = {
            "task": str(task),
            "cron": str(cron) if cron else None,
            "every_seconds": int(every) if every else None,
            "kwargs": dict(payload.get("kwargs") or {}),
            "options": dict(payload.get("options") or {}),
        }
    return raw.get("timezone"), entries, schedule_path


def _schedule_for(payload: Dict[str, Any]) -> Optional[Schedule]:
    if payload.get("cron"):
        return _cron_from_string(payload["cron"])
    if payload.get("every_seconds"):
        return timedelta(seconds=int(payload["every_seconds"]))
    return None


def as_celery_schedule(entries: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    schedule: Dict[str, Dict[str, Any]] = {}
    for name, payload in entries.items():
        when = _schedule_for(payload)
        if when is None:
            continue
        entry: Dict[str, Any] = {
            "task": payload["task"],
            "schedule": when,
            "kwargs": payload.get("kwargs", {}),
        }
        if payload.get("options"):
            entry["options"] = payload["options"]
        schedule[name] = entry
    return schedule


__all__ = ["DEFAULT_SCHEDULE_FILE", "as_celery_schedule", "load_schedule_config", "resolve_schedule_path"]
