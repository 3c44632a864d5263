from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from database import get_db
from models.raw_snapshot import ENDPOINT_EMPLOYEE
from services import hybrid_sync, snapshot_store
from web.deps import get_employes_client, get_sync_settings
from web.main import app


@pytest.fixture()
def dispatched(monkeypatch) -> List[str]:
    calls: List[str] = []
    monkeypatch.setattr(hybrid_sync, "celery_dispatcher", lambda: calls.append("employes.process_queue"))
    return calls


@pytest.fixture()
def api_client(db_session: Session, settings, employes_client) -> Iterator[TestClient]:
    def override_get_db():
        yield db_session

    def override_client():
        yield employes_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_settings] = lambda: settings
    app.dependency_overrides[get_employes_client] = override_client
    client = TestClient(app)
    try:
        yield client
    finally:
        client.close()
        app.dependency_overrides.clear()


def _seed(fake_api):
    fake_api.add_employee(
        "e1",
        start_date="2023-01-01",
        employments=[{"id": "emp-1", "salary": [{"start_date": "2023-01-01", "month_wage": 2800}]}],
    )
    fake_api.add_employee("e2", start_date="2023-05-01")


def test_sync_interactive(api_client: TestClient, fake_api) -> None:
    _seed(fake_api)

    response = api_client.post("/api/v1/employes/sync", json={"source": "dashboard", "mode": "interactive"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["hybrid_processing"] == {"immediate": 2, "queued": 0, "mode": "interactive"}
    assert body["result"]["employees_processed"] == 2
    assert body["result"]["history_processed"] == 1
    assert body["result"]["timeline"]["events_created"] == 3


def test_sync_background_queues(api_client: TestClient, fake_api, dispatched) -> None:
    _seed(fake_api)

    response = api_client.post("/api/v1/employes/sync", json={"source": "cron", "mode": "background"})

    assert response.status_code == 200
    assert response.json()["hybrid_processing"] == {"immediate": 0, "queued": 2, "mode": "background"}


def test_sync_rejects_unknown_mode(api_client: TestClient) -> None:
    response = api_client.post("/api/v1/employes/sync", json={"mode": "later"})
    assert response.status_code == 422


def test_sync_reports_run_failure(api_client: TestClient, fake_api) -> None:
    fake_api.always_fail["/employees"] = 403

    response = api_client.post("/api/v1/employes/sync", json={})

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["errorDetails"]["name"] == "TerminalIngestError"


def test_retry_endpoint(api_client: TestClient, db_session: Session, fake_api) -> None:
    fake_api.add_employee("e1")
    snapshot_store.record_partial(
        db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, error_message="timeout", issues=[], http_status=None
    )

    response = api_client.post("/api/v1/employes/retry", json={"limit": 5})

    assert response.status_code == 200
    result = response.json()["result"]
    assert result["successful_retries"] == 1
    assert result["details"][0]["employee_id"] == "e1"


def test_changes_endpoint(api_client: TestClient, db_session: Session) -> None:
    snapshot_store.record_snapshot(
        db_session,
        employee_id="e1",
        endpoint="/employments",
        payload={"salary": [{"start_date": "2023-01-01", "month_wage": 1}, {"start_date": "2024-01-01", "month_wage": 2}]},
    )

    scoped_without_ids = api_client.post("/api/v1/employes/changes", json={"mode": "scoped"})
    response = api_client.post("/api/v1/employes/changes", json={"mode": "scoped", "employeeIds": ["e1"]})

    assert scoped_without_ids.status_code == 400
    assert response.status_code == 200
    body = response.json()
    assert body["result"]["salary_changes"] == 1
    assert body["duration_ms"] >= 0


def test_timeline_requires_employee_ids(api_client: TestClient) -> None:
    response = api_client.post("/api/v1/employes/timeline", json={"employee_ids": []})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No employee IDs provided"}


def test_timeline_endpoint(api_client: TestClient, db_session: Session) -> None:
    snapshot_store.record_snapshot(
        db_session, employee_id="e1", endpoint=ENDPOINT_EMPLOYEE, payload={"id": "e1", "start_date": "2023-01-01"}
    )

    response = api_client.post("/api/v1/employes/timeline", json={"employee_ids": ["e1", "ghost"], "source": "test"})

    assert response.status_code == 200
    result = response.json()["result"]
    assert result["events_created"] == 1
    assert result["errors"] == ["No data found for employee ghost"]


def test_missing_configuration_fails_the_run(db_session: Session, monkeypatch) -> None:
    monkeypatch.delenv("EMPLOYES_API_KEY", raising=False)
    monkeypatch.delenv("EMPLOYES_COMPANY_ID", raising=False)
    get_sync_settings.cache_clear()

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as client:
            response = client.post("/api/v1/employes/retry", json={})
    finally:
        app.dependency_overrides.clear()
        get_sync_settings.cache_clear()

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "EMPLOYES_API_KEY" in body["error"]


def test_healthz_and_metrics() -> None:
    with TestClient(app) as client:
        health = client.get("/healthz")
        metrics = client.get("/metrics")

    assert health.status_code == 200
    assert health.json()["database"]["ok"] is True
    assert metrics.status_code == 200
    assert "employes_sync" in metrics.text


def test_ops_endpoints_require_token(api_client: TestClient, monkeypatch) -> None:
    monkeypatch.setenv("OPS_ACCESS_TOKEN", "ops-secret")

    denied = api_client.get("/api/v1/ops/sync/backlog")
    backlog = api_client.get("/api/v1/ops/sync/backlog", headers={"X-Ops-Token": "ops-secret"})

    assert denied.status_code == 401
    assert backlog.status_code == 200
    assert backlog.json() == {"partial_snapshots": 0, "pending_jobs": False}
