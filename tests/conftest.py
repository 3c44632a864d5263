import math
import os
from typing import Any, Dict, Generator, List, Optional

import pytest

os.environ.setdefault("DATABASE_ALLOW_NON_POSTGRES", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])

import httpx  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import models  # noqa: E402,F401
from core.settings import SyncSettings  # noqa: E402
from database import Base  # noqa: E402
from ingest.employes_client import EmployesClient  # noqa: E402

COMPANY_ID = "company-1"


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    # A fresh in-memory database per test; services commit and roll back freely.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Generator[Session, None, None]:
    factory = sessionmaker(bind=engine, autoflush=False)
    session = factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings() -> SyncSettings:
    return SyncSettings(
        api_key="test-key",
        company_id=COMPANY_ID,
        api_base_url="https://api.test/v4",
        page_size=2,
        fetch_attempts=3,
        backoff_initial_seconds=1.0,
    )


class FakeEmployesApi:
    """In-memory stand-in for the Employes REST API, served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.employees: Dict[str, Dict[str, Any]] = {}
        self.employments: Dict[str, Any] = {}
        # path -> status codes returned (in order) before the real answer; 0 means a network error
        self.failures: Dict[str, List[int]] = {}
        # path -> status code returned on every call
        self.always_fail: Dict[str, int] = {}
        self.calls: List[str] = []

    def add_employee(self, employee_id: str, employments: Any = None, **fields: Any) -> None:
        record = {"id": employee_id, "first_name": "Test", "last_name": employee_id, "status": "active"}
        record.update(fields)
        self.employees[employee_id] = record
        if employments is not None:
            self.employments[employee_id] = employments

    def _failure(self, path: str, request: httpx.Request) -> Optional[httpx.Response]:
        status = self.always_fail.get(path)
        if status is None and self.failures.get(path):
            status = self.failures[path].pop(0)
        if status is None:
            return None
        if status == 0:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status, json={"error": f"HTTP {status}"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.split(f"/{COMPANY_ID}", 1)[1]
        self.calls.append(path)
        failure = self._failure(path, request)
        if failure is not None:
            return failure

        if path == "/employees":
            page = int(request.url.params.get("page", "1"))
            per_page = int(request.url.params.get("per_page", "100"))
            ids = sorted(self.employees)
            pages = max(1, math.ceil(len(ids) / per_page))
            chunk = ids[(page - 1) * per_page : page * per_page]
            return httpx.Response(
                200,
                json={"data": [{"id": employee_id} for employee_id in chunk], "pages": pages, "page": page},
            )

        parts = path.strip("/").split("/")
        employee_id = parts[1]
        if employee_id not in self.employees:
            return httpx.Response(404, json={"error": "not found"})
        if len(parts) == 2:
            return httpx.Response(200, json=self.employees[employee_id])
        if parts[2] == "employments":
            return httpx.Response(200, json={"data": self.employments.get(employee_id, [])})
        return httpx.Response(404, json={"error": "unknown path"})


@pytest.fixture()
def fake_api() -> FakeEmployesApi:
    return FakeEmployesApi()


@pytest.fixture()
def sleeps() -> List[float]:
    return []


@pytest.fixture()
def employes_client(settings: SyncSettings, fake_api: FakeEmployesApi, sleeps: List[float]):
    client = EmployesClient(settings, transport=httpx.MockTransport(fake_api), sleep=sleeps.append)
    try:
        yield client
    finally:
        client.close()


def _employment_payload(
    *,
    salary: Optional[List[Dict[str, Any]]] = None,
    hours: Optional[List[Dict[str, Any]]] = None,
    contracts: Optional[List[Dict[str, Any]]] = None,
    employment_id: str = "emp-1",
    start_date: str = "2023-01-01",
) -> Dict[str, Any]:
    return {
        "id": employment_id,
        "start_date": start_date,
        "salary": salary or [],
        "hours": hours or [],
        "contracts": contracts or [],
    }


@pytest.fixture()
def employment_payload():
    return _employment_payload
