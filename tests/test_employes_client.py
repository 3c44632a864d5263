import httpx
import pytest

from ingest.employes_client import EmployesClient
from models.raw_snapshot import ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS
from services.ingest_errors import FatalIngestError, TerminalIngestError, TransientIngestError


def test_list_employees_follows_pagination(employes_client, fake_api):
    for employee_id in ("e1", "e2", "e3", "e4", "e5"):
        fake_api.add_employee(employee_id)

    employees = employes_client.list_employees()

    assert [item["id"] for item in employees] == ["e1", "e2", "e3", "e4", "e5"]
    assert fake_api.calls.count("/employees") == 3


def test_request_carries_bearer_token(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"id": "e1"})

    with EmployesClient(settings, transport=httpx.MockTransport(handler)) as client:
        client.fetch_employee("e1")

    assert seen["auth"] == "Bearer test-key"


def test_status_codes_are_classified(employes_client, fake_api):
    fake_api.add_employee("e1")
    with pytest.raises(TerminalIngestError) as not_found:
        employes_client.fetch_employee("missing")
    assert not_found.value.status_code == 404

    fake_api.always_fail["/employees/e1"] = 503
    with pytest.raises(TransientIngestError) as unavailable:
        employes_client.fetch_employee("e1")
    assert unavailable.value.status_code == 503


def test_invalid_json_is_fatal(settings):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with EmployesClient(settings, transport=transport) as client:
        with pytest.raises(FatalIngestError):
            client.fetch_employee("e1")


def test_employments_list_is_merged_or_unwrapped(employes_client, fake_api):
    fake_api.add_employee("single", employments=[{"id": "emp-a", "salary": []}])
    fake_api.add_employee(
        "multi",
        employments=[
            {"id": "emp-a", "salary": [{"start_date": "2021-01-01", "month_wage": 1}]},
            {"id": "emp-b", "salary": [{"start_date": "2022-01-01", "month_wage": 2}]},
        ],
    )
    fake_api.add_employee("none")

    assert employes_client.fetch_employments("single") == {"id": "emp-a", "salary": []}
    merged = employes_client.fetch_employments("multi")
    assert len(merged["salary"]) == 2
    assert len(merged["employments"]) == 2
    assert employes_client.fetch_employments("none") is None


def test_fetch_with_retry_stops_on_terminal_status(employes_client, fake_api, sleeps):
    outcome = employes_client.fetch_with_retry("ghost", ENDPOINT_EMPLOYEE)

    assert outcome.success is False
    assert outcome.terminal is True
    assert outcome.http_status == 404
    assert outcome.attempts == 1
    assert sleeps == []
    assert fake_api.calls == ["/employees/ghost"]


def test_fetch_with_retry_backs_off_exponentially(employes_client, fake_api, sleeps):
    fake_api.add_employee("e1")
    fake_api.always_fail["/employees/e1"] = 500

    outcome = employes_client.fetch_with_retry("e1", ENDPOINT_EMPLOYEE)

    assert outcome.success is False
    assert outcome.terminal is False
    assert outcome.attempts == 3
    assert outcome.http_status == 500
    assert sleeps == [1.0, 2.0]
    assert len(outcome.issues) == 3


def test_fetch_with_retry_recovers_after_transient_failure(employes_client, fake_api, sleeps):
    fake_api.add_employee("e1", employments=[{"id": "emp-1", "salary": []}])
    fake_api.failures["/employees/e1/employments"] = [0]

    outcome = employes_client.fetch_with_retry("e1", ENDPOINT_EMPLOYMENTS)

    assert outcome.success is True
    assert outcome.http_status == 200
    assert outcome.data == {"id": "emp-1", "salary": []}
    assert outcome.attempts == 2
    assert sleeps == [1.0]
    assert outcome.issues[-1] == "Succeeded on retry 1"
