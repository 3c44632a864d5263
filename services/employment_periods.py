"""Typed views over the loosely-typed Employes payloads.

Raw snapshots keep whatever document the API returned. Business logic only
ever sees the dataclasses below, built by trying a prioritised list of known
key spellings for every field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from core.logging import get_logger
from services.temporal import first_present, parse_date

logger = get_logger(__name__)

_START_KEYS = ("start_date", "startDate", "period_start", "from_date")
_END_KEYS = ("end_date", "endDate", "period_end", "to_date")
_MONTH_WAGE_KEYS = ("month_wage", "monthly_wage", "monthWage", "gross_monthly_wage")
_HOUR_WAGE_KEYS = ("hour_wage", "hourly_wage", "hourWage", "hourly_rate")
_YEAR_WAGE_KEYS = ("yearly_wage", "annual_wage", "yearlyWage", "annual_salary")
_HOURS_KEYS = ("hours_per_week", "hoursPerWeek", "weekly_hours", "hours")
_DAYS_KEYS = ("days_per_week", "daysPerWeek", "weekly_days")
_DURATION_KEYS = ("contract_duration", "contractDuration", "contract_type", "duration")


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", ".").strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class SalaryPeriod:
    start_date: date
    end_date: Optional[date]
    month_wage: Optional[float]
    hour_wage: Optional[float]
    yearly_wage: Optional[float]
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, item: Mapping[str, Any], start: date) -> "SalaryPeriod":
        return cls(
            start_date=start,
            end_date=parse_date(first_present(item, _END_KEYS)),
            month_wage=_to_number(first_present(item, _MONTH_WAGE_KEYS)),
            hour_wage=_to_number(first_present(item, _HOUR_WAGE_KEYS)),
            yearly_wage=_to_number(first_present(item, _YEAR_WAGE_KEYS)),
            raw=item,
        )


@dataclass(frozen=True)
class HoursPeriod:
    start_date: date
    end_date: Optional[date]
    hours_per_week: Optional[float]
    days_per_week: Optional[float]
    employee_type: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, item: Mapping[str, Any], start: date) -> "HoursPeriod":
        return cls(
            start_date=start,
            end_date=parse_date(first_present(item, _END_KEYS)),
            hours_per_week=_to_number(first_present(item, _HOURS_KEYS)),
            days_per_week=_to_number(first_present(item, _DAYS_KEYS)),
            employee_type=item.get("employee_type") or item.get("employment_type"),
            raw=item,
        )


@dataclass(frozen=True)
class ContractPeriod:
    start_date: date
    end_date: Optional[date]
    contract_duration: Optional[str]
    is_signed: bool = False
    sign_date: Optional[date] = None
    employment_type: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, item: Mapping[str, Any], start: date) -> "ContractPeriod":
        duration = first_present(item, _DURATION_KEYS)
        return cls(
            start_date=start,
            end_date=parse_date(first_present(item, _END_KEYS)),
            contract_duration=str(duration).strip().lower() if duration is not None else None,
            is_signed=bool(item.get("is_signed") or item.get("isSigned")),
            sign_date=parse_date(item.get("sign_date") or item.get("signDate")),
            employment_type=item.get("employment_type"),
            raw=item,
        )


P = TypeVar("P", SalaryPeriod, HoursPeriod, ContractPeriod)


def parse_periods(
    items: Any,
    factory: Callable[[Mapping[str, Any], date], P],
    *,
    label: str,
    issues: Optional[List[str]] = None,
) -> List[P]:
    """Build typed periods sorted by start date; malformed items are skipped."""
    if items is None:
        return []
    if not isinstance(items, Sequence) or isinstance(items, (str, bytes)):
        if issues is not None:
            issues.append(f"{label}: expected a list, got {type(items).__name__}")
        return []

    periods: List[P] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            if issues is not None:
                issues.append(f"{label}[{index}]: not an object")
            continue
        start = parse_date(first_present(item, _START_KEYS))
        if start is None:
            if issues is not None:
                issues.append(f"{label}[{index}]: missing start_date")
            continue
        periods.append(factory(item, start))
    # Adjacent-pair diffing is only meaningful in chronological order.
    periods.sort(key=lambda period: period.start_date)
    return periods


@dataclass
class EmploymentHistory:
    employment_id: Optional[str]
    salary: List[SalaryPeriod]
    hours: List[HoursPeriod]
    contracts: List[ContractPeriod]
    issues: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> "EmploymentHistory":
        issues: List[str] = []
        if not isinstance(payload, Mapping):
            return cls(employment_id=None, salary=[], hours=[], contracts=[], issues=["employments payload is not an object"])
        history = cls(
            employment_id=payload.get("id"),
            salary=parse_periods(payload.get("salary"), SalaryPeriod.from_payload, label="salary", issues=issues),
            hours=parse_periods(payload.get("hours"), HoursPeriod.from_payload, label="hours", issues=issues),
            contracts=parse_periods(payload.get("contracts"), ContractPeriod.from_payload, label="contracts", issues=issues),
            issues=issues,
        )
        for issue in issues:
            logger.warning("Skipped malformed employment period: %s", issue)
        return history


@dataclass(frozen=True)
class EmployeeProfile:
    display_name: str
    start_date: Optional[date]
    status: Optional[str]
    department_id: Optional[str]

    @classmethod
    def from_payload(cls, payload: Any) -> "EmployeeProfile":
        if not isinstance(payload, Mapping):
            return cls(display_name="Employee", start_date=None, status=None, department_id=None)
        first = payload.get("first_name") or payload.get("firstName")
        last = payload.get("last_name") or payload.get("lastName")
        if first and last:
            name = f"{first} {last}"
        else:
            name = payload.get("display_name") or payload.get("displayName") or payload.get("name") or "Employee"
        return cls(
            display_name=str(name),
            start_date=parse_date(first_present(payload, ("start_date", "employment_start_date", "hire_date"))),
            status=payload.get("status"),
            department_id=payload.get("department_id") or payload.get("departmentId"),
        )


def merge_employments(items: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Fold several employment documents into one with concatenated period arrays."""
    starts: List[Tuple[date, Any]] = []
    merged: Dict[str, Any] = {"salary": [], "hours": [], "contracts": [], "employments": list(items)}
    for item in items:
        for key in ("salary", "hours", "contracts"):
            values = item.get(key)
            if isinstance(values, list):
                merged[key].extend(values)
        start = parse_date(item.get("start_date"))
        if start:
            starts.append((start, item.get("start_date")))
    if starts:
        merged["start_date"] = min(starts, key=lambda pair: pair[0])[1]
    return merged


__all__ = [
    "ContractPeriod",
    "EmployeeProfile",
    "EmploymentHistory",
    "HoursPeriod",
    "SalaryPeriod",
    "merge_employments",
    "parse_periods",
]
