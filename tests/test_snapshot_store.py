from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from models.raw_snapshot import ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS, RawSnapshot
from services import snapshot_store
from services.temporal import as_utc

T0 = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)


def _rows(db, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE):
    stmt = (
        select(RawSnapshot)
        .where(RawSnapshot.employee_id == employee_id, RawSnapshot.endpoint == endpoint)
        .order_by(RawSnapshot.collected_at)
    )
    return list(db.execute(stmt).scalars())


def test_unchanged_payload_only_touches_verification(db_session):
    first = snapshot_store.record_snapshot(
        db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={"id": "e1", "name": "A"}, now=T0
    )
    later = T0 + timedelta(hours=6)
    second = snapshot_store.record_snapshot(
        db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={"name": "A", "id": "e1"}, now=later
    )

    assert first.status == snapshot_store.OUTCOME_NEW
    assert second.status == snapshot_store.OUTCOME_UNCHANGED
    assert second.snapshot_id == first.snapshot_id
    rows = _rows(db_session)
    assert len(rows) == 1
    assert as_utc(rows[0].last_verified_at) == later
    assert as_utc(rows[0].collected_at) == T0


def test_changed_payload_supersedes_previous_version(db_session):
    snapshot_store.record_snapshot(db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={"v": 1}, now=T0)
    later = T0 + timedelta(days=1)
    outcome = snapshot_store.record_snapshot(
        db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={"v": 2}, now=later
    )

    assert outcome.status == snapshot_store.OUTCOME_NEW
    old, new = _rows(db_session)
    assert old.is_latest is False
    assert as_utc(old.effective_to) == later
    assert new.is_latest is True
    assert new.effective_to is None
    assert new.api_response == {"v": 2}
    assert [row.is_latest for row in _rows(db_session)].count(True) == 1


def test_effective_from_uses_payload_start_date(db_session):
    snapshot_store.record_snapshot(
        db_session,
        employee_id="e1",
        endpoint=ENDPOINT_EMPLOYMENTS,
        payload={"start_date": "2022-03-01", "salary": []},
        now=T0,
    )
    row = snapshot_store.get_latest(db_session, "e1", ENDPOINT_EMPLOYMENTS)
    assert as_utc(row.effective_from) == datetime(2022, 3, 1, tzinfo=timezone.utc)


def test_endpoints_are_versioned_independently(db_session):
    snapshot_store.record_snapshot(db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={"v": 1}, now=T0)
    snapshot_store.record_snapshot(db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYMENTS, payload={"v": 1}, now=T0)

    assert snapshot_store.get_latest(db_session, "e1", ENDPOINT_EMPLOYEE) is not None
    assert snapshot_store.get_latest(db_session, "e1", ENDPOINT_EMPLOYMENTS) is not None
    assert len(snapshot_store.list_latest(db_session, ENDPOINT_EMPLOYEE)) == 1


def test_partial_placeholder_never_replaces_a_trusted_row(db_session):
    snapshot_store.record_snapshot(db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={"v": 1}, now=T0)

    skipped = snapshot_store.record_partial(
        db_session,
        employee_id="e1",
        endpoint=ENDPOINT_EMPLOYEE,
        error_message="GET /employees/e1 returned HTTP 503",
        issues=["HTTP 503"],
        http_status=503,
    )
    stored = snapshot_store.record_partial(
        db_session,
        employee_id="e2",
        endpoint=ENDPOINT_EMPLOYEE,
        error_message="timeout",
        issues=["timeout"],
        http_status=None,
    )

    assert skipped.status == snapshot_store.OUTCOME_SKIPPED
    assert stored.status == snapshot_store.OUTCOME_PARTIAL
    placeholder = snapshot_store.get_latest(db_session, "e2", ENDPOINT_EMPLOYEE)
    assert placeholder.is_partial is True
    assert placeholder.confidence_score == 0.5
    assert placeholder.api_response == {}
    assert placeholder.collection_issues == ["timeout"]


def test_healthy_fetch_supersedes_partial_placeholder(db_session):
    snapshot_store.record_partial(
        db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, error_message="timeout", issues=[], http_status=None
    )
    outcome = snapshot_store.record_snapshot(
        db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={}, now=T0 + timedelta(minutes=5)
    )

    assert outcome.status == snapshot_store.OUTCOME_NEW
    latest = snapshot_store.get_latest(db_session, "e1", ENDPOINT_EMPLOYEE)
    assert latest.is_partial is False
    assert len(_rows(db_session)) == 2


def test_successor_window_starts_where_the_predecessor_ends(db_session):
    payload = {"id": "e1", "last_name": "Jansen", "start_date": "2023-01-01"}
    snapshot_store.record_snapshot(db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload=payload, now=T0)
    later = T0 + timedelta(days=30)
    snapshot_store.record_snapshot(
        db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={**payload, "last_name": "de Vries"}, now=later
    )

    old, new = _rows(db_session)
    assert as_utc(old.effective_from) == datetime(2023, 1, 1, tzinfo=timezone.utc)
    assert as_utc(old.effective_to) == later
    assert as_utc(new.effective_from) == as_utc(old.effective_to)
    assert new.effective_to is None
