"""Turn the period arrays inside ``/employments`` snapshots into change records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.logging import get_logger
from models.change_record import CHANGE_CONTRACT, CHANGE_HOURS, CHANGE_SALARY, ChangeRecord
from models.raw_snapshot import ENDPOINT_EMPLOYMENTS
from services import snapshot_store, sync_metrics
from services.employment_periods import ContractPeriod, EmploymentHistory, HoursPeriod, SalaryPeriod
from services.temporal import cap_errors

logger = get_logger(__name__)

STAGE = "changes"

ChangeKey = Tuple[str, str, str, date]


@dataclass(frozen=True)
class DetectedChange:
    employee_id: str
    change_type: str
    field_name: str
    effective_date: date
    old_value: Any
    new_value: Any
    change_amount: Optional[float]
    change_percent: Optional[float]
    confidence_score: float
    business_impact: str
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def key(self) -> ChangeKey:
        return (self.employee_id, self.change_type, self.field_name, self.effective_date)


@dataclass
class ChangeDetectionResult:
    total_employees: int = 0
    total_changes: int = 0
    salary_changes: int = 0
    hours_changes: int = 0
    contract_changes: int = 0
    skipped_existing: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def count(self, change_type: str) -> None:
        self.total_changes += 1
        if change_type == CHANGE_SALARY:
            self.salary_changes += 1
        elif change_type == CHANGE_HOURS:
            self.hours_changes += 1
        elif change_type == CHANGE_CONTRACT:
            self.contract_changes += 1

    def as_dict(self, error_limit: int) -> Dict[str, Any]:
        return {
            "total_employees": self.total_employees,
            "total_changes": self.total_changes,
            "salary_changes": self.salary_changes,
            "hours_changes": self.hours_changes,
            "contract_changes": self.contract_changes,
            "skipped_existing": self.skipped_existing,
            "errors": cap_errors(self.errors, error_limit),
            "error_count": len(self.errors),
        }


def percent_change(old: float, new: float) -> float:
    if old == 0:
        return 0.0
    return (new - old) / old * 100


def change_confidence(change_type: str, change_percent: Optional[float]) -> float:
    confidence = 1.0
    if change_percent is not None:
        magnitude = abs(change_percent)
        if magnitude > 50:
            confidence -= 0.3
        if change_type == CHANGE_SALARY and magnitude <= 10:
            confidence += 0.1
    return max(0.0, min(1.0, confidence))


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_salary_changes(employee_id: str, periods: Sequence[SalaryPeriod]) -> List[DetectedChange]:
    """One record per adjacent pair, zero-amount pairs included."""
    changes: List[DetectedChange] = []
    for previous, current in zip(periods, periods[1:]):
        old_wage = previous.month_wage or previous.hour_wage or 0.0
        new_wage = current.month_wage or current.hour_wage or 0.0
        amount = new_wage - old_wage
        percent = percent_change(old_wage, new_wage)
        changes.append(
            DetectedChange(
                employee_id=employee_id,
                change_type=CHANGE_SALARY,
                field_name="month_wage" if current.month_wage else "hour_wage",
                effective_date=current.start_date,
                old_value=old_wage,
                new_value=new_wage,
                change_amount=amount,
                change_percent=percent,
                confidence_score=change_confidence(CHANGE_SALARY, percent),
                business_impact="salary_increase" if amount > 0 else "salary_decrease",
                metadata={
                    "old_hourly": previous.hour_wage,
                    "new_hourly": current.hour_wage,
                    "old_monthly": previous.month_wage,
                    "new_monthly": current.month_wage,
                    "old_yearly": previous.yearly_wage,
                    "new_yearly": current.yearly_wage,
                    "period_start": _iso(current.start_date),
                    "period_end": _iso(current.end_date),
                    "previous_period": dict(previous.raw),
                    "current_period": dict(current.raw),
                },
            )
        )
    return changes


def parse_hours_changes(employee_id: str, periods: Sequence[HoursPeriod]) -> List[DetectedChange]:
    changes: List[DetectedChange] = []
    for previous, current in zip(periods, periods[1:]):
        old_hours = previous.hours_per_week or 0.0
        new_hours = current.hours_per_week or 0.0
        amount = new_hours - old_hours
        percent = percent_change(old_hours, new_hours)
        changes.append(
            DetectedChange(
                employee_id=employee_id,
                change_type=CHANGE_HOURS,
                field_name="hours_per_week",
                effective_date=current.start_date,
                old_value=old_hours,
                new_value=new_hours,
                change_amount=amount,
                change_percent=percent,
                confidence_score=change_confidence(CHANGE_HOURS, percent),
                business_impact="hours_increase" if amount > 0 else "hours_decrease",
                metadata={
                    "old_hours": previous.hours_per_week,
                    "new_hours": current.hours_per_week,
                    "old_days": previous.days_per_week,
                    "new_days": current.days_per_week,
                    "old_type": previous.employee_type,
                    "new_type": current.employee_type,
                    "period_start": _iso(current.start_date),
                    "period_end": _iso(current.end_date),
                    "previous_period": dict(previous.raw),
                    "current_period": dict(current.raw),
                },
            )
        )
    return changes


def parse_contract_changes(employee_id: str, periods: Sequence[ContractPeriod]) -> List[DetectedChange]:
    """Only pairs whose duration label differs produce a record."""
    changes: List[DetectedChange] = []
    for previous, current in zip(periods, periods[1:]):
        old_type = previous.contract_duration or "unknown"
        new_type = current.contract_duration or "unknown"
        if old_type == new_type:
            continue
        changes.append(
            DetectedChange(
                employee_id=employee_id,
                change_type=CHANGE_CONTRACT,
                field_name="contract_duration",
                effective_date=current.start_date,
                old_value=old_type,
                new_value=new_type,
                change_amount=None,
                change_percent=None,
                confidence_score=1.0,
                business_impact="permanent_contract" if new_type == "permanent" else "contract_renewal",
                metadata={
                    "old_contract_type": old_type,
                    "new_contract_type": new_type,
                    "old_start": _iso(previous.start_date),
                    "new_start": _iso(current.start_date),
                    "old_end": _iso(previous.end_date),
                    "new_end": _iso(current.end_date),
                    "is_signed": current.is_signed,
                    "sign_date": _iso(current.sign_date),
                    "previous_period": dict(previous.raw),
                    "current_period": dict(current.raw),
                },
            )
        )
    return changes


def detect_for_history(employee_id: str, history: EmploymentHistory) -> List[DetectedChange]:
    return (
        parse_salary_changes(employee_id, history.salary)
        + parse_hours_changes(employee_id, history.hours)
        + parse_contract_changes(employee_id, history.contracts)
    )


def _change_exists(db: Session, change: DetectedChange) -> bool:
    stmt = select(ChangeRecord.id).where(
        ChangeRecord.employee_id == change.employee_id,
        ChangeRecord.change_type == change.change_type,
        ChangeRecord.field_name == change.field_name,
        ChangeRecord.effective_date == change.effective_date,
    )
    return db.execute(stmt.limit(1)).first() is not None


def detect_changes(
    db: Session,
    *,
    employee_ids: Optional[Sequence[str]] = None,
) -> ChangeDetectionResult:
    """Scan latest ``/employments`` snapshots and persist new transitions.

    Transitions already recorded for the same (employee, type, field, date)
    are left untouched, so repeated runs over unchanged data add nothing.
    """
    started = time.perf_counter()
    snapshots = snapshot_store.list_latest(db, ENDPOINT_EMPLOYMENTS, employee_ids)
    result = ChangeDetectionResult(total_employees=len(snapshots))
    logger.info("Detecting changes across %d employment snapshots.", len(snapshots))

    for snapshot in snapshots:
        employee_id = snapshot.employee_id
        seen: Set[ChangeKey] = set()
        inserted: List[str] = []
        try:
            history = EmploymentHistory.from_payload(snapshot.api_response)
            for change in detect_for_history(employee_id, history):
                if change.key in seen or _change_exists(db, change):
                    result.skipped_existing += 1
                    continue
                seen.add(change.key)
                db.add(
                    ChangeRecord(
                        employee_id=employee_id,
                        change_type=change.change_type,
                        field_name=change.field_name,
                        effective_date=change.effective_date,
                        old_value=change.old_value,
                        new_value=change.new_value,
                        change_amount=change.change_amount,
                        change_percent=change.change_percent,
                        confidence_score=change.confidence_score,
                        business_impact=change.business_impact,
                        raw_data_id=snapshot.id,
                        metadata_json=change.metadata,
                    )
                )
                inserted.append(change.change_type)
            db.commit()
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.warning("Change detection failed for %s: %s", employee_id, exc)
            sync_metrics.record_error(STAGE, exc)
            result.errors.append({"employee_id": employee_id, "error": str(exc)})
            continue
        for change_type in inserted:
            result.count(change_type)

    sync_metrics.observe_latency(STAGE, time.perf_counter() - started)
    sync_metrics.record_result(STAGE, "success" if not result.errors else "partial_success")
    logger.info(
        "Change detection done: %d new (salary=%d hours=%d contract=%d), %d already recorded, %d errors.",
        result.total_changes,
        result.salary_changes,
        result.hours_changes,
        result.contract_changes,
        result.skipped_existing,
        len(result.errors),
    )
    return result


__all__ = [
    "ChangeDetectionResult",
    "DetectedChange",
    "change_confidence",
    "detect_changes",
    "detect_for_history",
    "parse_contract_changes",
    "parse_hours_changes",
    "parse_salary_changes",
    "percent_change",
]
