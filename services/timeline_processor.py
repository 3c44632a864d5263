"""Render raw employment snapshots into presentation-ready timeline events.

The processor re-derives events from the nested period arrays of the latest
``/employee`` and ``/employments`` snapshots rather than from change records.
Every event is keyed by (employee, event type, event date) and skipped when
that key already exists, so the processor can be rerun freely.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.logging import get_logger
from models.raw_snapshot import ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS, RawSnapshot
from models.timeline_event import (
    EVENT_CONTRACT_RENEWED,
    EVENT_CONTRACT_STARTED,
    EVENT_EMPLOYEE_ADDED,
    EVENT_HOURS_CHANGE,
    EVENT_SALARY_DECREASE,
    EVENT_SALARY_INCREASE,
    TimelineEvent,
)
from services import snapshot_store, sync_metrics
from services.employment_periods import (
    ContractPeriod,
    EmployeeProfile,
    EmploymentHistory,
    HoursPeriod,
    SalaryPeriod,
)
from services.temporal import cap_errors, utcnow

logger = get_logger(__name__)

STAGE = "timeline"

WARNING_NONE = "none"
WARNING_UPCOMING = "upcoming"
WARNING_URGENT = "urgent"
WARNING_CRITICAL = "critical"

EventKey = Tuple[str, str, date]


@dataclass
class TimelineResult:
    employees_processed: int = 0
    events_created: int = 0
    employees_with_events: int = 0
    errors: List[str] = field(default_factory=list)

    def as_dict(self, error_limit: int) -> Dict[str, Any]:
        return {
            "employees_processed": self.employees_processed,
            "events_created": self.events_created,
            "employees_with_events": self.employees_with_events,
            "errors": cap_errors(self.errors, error_limit),
            "error_count": len(self.errors),
        }


@dataclass
class PendingEvent:
    event_type: str
    event_date: date
    title: str
    description: str
    data: Dict[str, Any]
    change_source: str


def days_until_expiry(end_date: Optional[date], today: date) -> Optional[int]:
    if end_date is None:
        return None
    return max(0, (end_date - today).days)


def expiry_warning_level(days: Optional[int]) -> str:
    if not days or days > 90:
        return WARNING_NONE
    if days <= 7:
        return WARNING_CRITICAL
    if days <= 30:
        return WARNING_URGENT
    return WARNING_UPCOMING


def _covering(periods: Sequence[Any], on: date) -> Optional[Any]:
    """Most recently started period whose window contains ``on``."""
    match = None
    for period in periods:
        if period.start_date <= on and (period.end_date is None or period.end_date >= on):
            match = period
    return match


def _money(value: Optional[float]) -> str:
    if value is None:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def _number(value: Optional[float]) -> str:
    if value is None:
        return "?"
    return str(int(value)) if float(value).is_integer() else str(value)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _wage(period: SalaryPeriod) -> float:
    return period.month_wage or period.hour_wage or 0.0


def state_at(history: EmploymentHistory, on: date, today: date) -> Dict[str, Any]:
    """Employment state that was in force on ``on``, flattened for ``event_data``."""
    state: Dict[str, Any] = {}
    salary: Optional[SalaryPeriod] = _covering(history.salary, on)
    if salary is not None:
        state["month_wage_at_event"] = salary.month_wage
        if salary.yearly_wage:
            state["annual_salary_at_event"] = salary.yearly_wage
        elif salary.month_wage is not None:
            state["annual_salary_at_event"] = salary.month_wage * 12
    hours: Optional[HoursPeriod] = _covering(history.hours, on)
    if hours is not None:
        state["hours_per_week_at_event"] = hours.hours_per_week
    contract: Optional[ContractPeriod] = _covering(history.contracts, on)
    if contract is not None:
        state["contract_type_at_event"] = contract.contract_duration
        state["contract_start_date"] = _iso(contract.start_date)
        state["contract_end_date"] = _iso(contract.end_date)
        if contract.end_date is None:
            state["contract_phase"] = "permanent"
        else:
            remaining = days_until_expiry(contract.end_date, today)
            state["contract_phase"] = "ending_soon" if remaining and remaining <= 90 else "active"
    return state


def _salary_events(name: str, history: EmploymentHistory, today: date) -> List[PendingEvent]:
    events: List[PendingEvent] = []
    for index, period in enumerate(history.salary):
        data: Dict[str, Any] = {
            "hourly_wage": period.hour_wage,
            "yearly_wage": period.yearly_wage,
        }
        if index == 0:
            contract = _covering(history.contracts, period.start_date)
            remaining = days_until_expiry(contract.end_date if contract else None, today)
            data.update(
                {
                    "salary": period.month_wage,
                    "employment_id": history.employment_id,
                    "days_until_expiry": remaining,
                    "expiry_warning_level": expiry_warning_level(remaining),
                }
            )
            title = "Contract Started"
            description = f"{name} started with €{_money(period.month_wage)}/month"
            event_type = EVENT_CONTRACT_STARTED
        else:
            previous = history.salary[index - 1]
            old_wage, new_wage = _wage(previous), _wage(period)
            change = new_wage - old_wage
            if change == 0:
                continue
            percent = change / old_wage * 100 if old_wage else 0.0
            increased = change > 0
            event_type = EVENT_SALARY_INCREASE if increased else EVENT_SALARY_DECREASE
            title = "Salary Increase" if increased else "Salary Decrease"
            sign = "+" if percent > 0 else ""
            description = (
                f"Salary {'increased' if increased else 'decreased'} by €{_money(abs(change))} "
                f"({sign}{percent:.1f}%)"
            )
            data.update(
                {
                    "previous_salary": old_wage,
                    "new_salary": new_wage,
                    "change_amount": change,
                    "change_percentage": percent,
                }
            )
        data.update(state_at(history, period.start_date, today))
        events.append(PendingEvent(event_type, period.start_date, title, description, data, "salary_change"))
    return events


def _hours_events(history: EmploymentHistory, today: date) -> List[PendingEvent]:
    events: List[PendingEvent] = []
    for previous, current in zip(history.hours, history.hours[1:]):
        if previous.hours_per_week == current.hours_per_week:
            continue
        data: Dict[str, Any] = {
            "previous_hours": previous.hours_per_week,
            "new_hours": current.hours_per_week,
            "days_per_week": current.days_per_week,
        }
        data.update(state_at(history, current.start_date, today))
        events.append(
            PendingEvent(
                EVENT_HOURS_CHANGE,
                current.start_date,
                "Working Hours Changed",
                f"Hours changed from {_number(previous.hours_per_week)} to {_number(current.hours_per_week)} hours/week",
                data,
                "hours_change",
            )
        )
    return events


def _contract_events(history: EmploymentHistory, today: date) -> List[PendingEvent]:
    # Every contract after the first is a renewal, even when the label is unchanged.
    events: List[PendingEvent] = []
    for previous, current in zip(history.contracts, history.contracts[1:]):
        remaining = days_until_expiry(current.end_date, today)
        label = current.contract_duration or "unknown"
        if current.end_date is not None:
            description = f"Contract renewed ({label}) until {current.end_date.isoformat()}"
        else:
            description = f"Contract renewed ({label})"
        data: Dict[str, Any] = {
            "previous_contract_type": previous.contract_duration,
            "contract_type": current.contract_duration,
            "start_date": _iso(current.start_date),
            "end_date": _iso(current.end_date),
            "is_signed": current.is_signed,
            "days_until_expiry": remaining,
            "expiry_warning_level": expiry_warning_level(remaining),
        }
        data.update(state_at(history, current.start_date, today))
        events.append(
            PendingEvent(EVENT_CONTRACT_RENEWED, current.start_date, "Contract Renewed", description, data, "contract_change")
        )
    return events


def build_events(
    profile: Optional[EmployeeProfile],
    history: Optional[EmploymentHistory],
    *,
    today: date,
) -> List[PendingEvent]:
    """All candidate events for one employee, before de-duplication."""
    events: List[PendingEvent] = []
    if profile is not None:
        events.append(
            PendingEvent(
                EVENT_EMPLOYEE_ADDED,
                profile.start_date or today,
                "Employee Added",
                f"{profile.display_name} was added to the system",
                {"status": profile.status or "active", "department": profile.department_id},
                "employee_sync",
            )
        )
    if history is not None:
        name = profile.display_name if profile is not None else "Employee"
        events.extend(_salary_events(name, history, today))
        events.extend(_contract_events(history, today))
        events.extend(_hours_events(history, today))
    return events


def _event_exists(db: Session, employee_id: str, event: PendingEvent) -> bool:
    stmt = select(TimelineEvent.id).where(
        TimelineEvent.employee_id == employee_id,
        TimelineEvent.event_type == event.event_type,
    )
    # employee_added is unique per employee regardless of its date.
    if event.event_type != EVENT_EMPLOYEE_ADDED:
        stmt = stmt.where(TimelineEvent.event_date == event.event_date)
    return db.execute(stmt.limit(1)).first() is not None


def _usable(snapshot: Optional[RawSnapshot]) -> Optional[RawSnapshot]:
    if snapshot is None or snapshot.is_partial:
        return None
    return snapshot


def process_employee(db: Session, employee_id: str, *, today: date) -> int:
    """Insert the missing events for one employee and return how many were added."""
    employee = _usable(snapshot_store.get_latest(db, employee_id, ENDPOINT_EMPLOYEE))
    employments = _usable(snapshot_store.get_latest(db, employee_id, ENDPOINT_EMPLOYMENTS))
    if employee is None and employments is None:
        raise LookupError(f"No data found for employee {employee_id}")

    profile = EmployeeProfile.from_payload(employee.api_response) if employee is not None else None
    history = EmploymentHistory.from_payload(employments.api_response) if employments is not None else None

    seen: Set[EventKey] = set()
    created = 0
    for event in build_events(profile, history, today=today):
        key = (employee_id, event.event_type, event.event_date)
        if key in seen or _event_exists(db, employee_id, event):
            continue
        seen.add(key)
        db.add(
            TimelineEvent(
                employee_id=employee_id,
                event_type=event.event_type,
                event_date=event.event_date,
                event_title=event.title,
                event_description=event.description,
                event_data=event.data,
                change_source=event.change_source,
            )
        )
        created += 1
    db.commit()
    return created


def process_timeline(
    db: Session,
    employee_ids: Sequence[str],
    *,
    source: str = "manual",
    today: Optional[date] = None,
) -> TimelineResult:
    started = time.perf_counter()
    today = today or utcnow().date()
    result = TimelineResult(employees_processed=len(employee_ids))
    logger.info("Processing timeline for %d employees (source=%s).", len(employee_ids), source)

    for employee_id in employee_ids:
        try:
            created = process_employee(db, str(employee_id), today=today)
        except LookupError as exc:
            result.errors.append(str(exc))
            continue
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.warning("Timeline processing failed for %s: %s", employee_id, exc)
            sync_metrics.record_error(STAGE, exc)
            result.errors.append(f"Error processing employee {employee_id}: {exc}")
            continue
        result.events_created += created
        if created:
            result.employees_with_events += 1

    sync_metrics.observe_latency(STAGE, time.perf_counter() - started)
    sync_metrics.record_result(STAGE, "success" if not result.errors else "partial_success")
    logger.info(
        "Timeline done: %d events for %d of %d employees, %d errors.",
        result.events_created,
        result.employees_with_events,
        result.employees_processed,
        len(result.errors),
    )
    return result


__all__ = [
    "PendingEvent",
    "TimelineResult",
    "build_events",
    "days_until_expiry",
    "expiry_warning_level",
    "process_employee",
    "process_timeline",
    "state_at",
]
