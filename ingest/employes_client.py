"""Client for the Employes.nl payroll API."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from core.settings import SyncSettings
from models.raw_snapshot import ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS
from services.employment_periods import merge_employments
from services.ingest_errors import (
    FatalIngestError,
    TerminalIngestError,
    TransientIngestError,
    classify_status,
)

logger = logging.getLogger(__name__)


@dataclass
class FetchOutcome:
    """Result of a fetch with internal retries; never raises for upstream failures."""

    success: bool
    data: Any = None
    issues: List[str] = field(default_factory=list)
    http_status: Optional[int] = None
    response_time_ms: int = 0
    attempts: int = 0
    terminal: bool = False


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


class EmployesClient:
    """Thin wrapper around the Employes REST endpoints used by the sync pipeline."""

    def __init__(
        self,
        settings: SyncSettings,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._sleep = sleep
        self._http: Optional[httpx.Client] = None

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(
                base_url=self.settings.company_base_url,
                headers={
                    "Authorization": f"Bearer {self.settings.api_key}",
                    "Accept": "application/json",
                },
                timeout=self.settings.request_timeout,
                transport=self._transport,
            )
        return self._http

    def close(self) -> None:
        if self._http is not None:
            self._http.close()
            self._http = None

    def __enter__(self) -> "EmployesClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self.http.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise TransientIngestError(f"Timeout calling {path}: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientIngestError(f"Network error calling {path}: {exc}") from exc

        status = response.status_code
        if status >= 400:
            message = f"GET {path} returned HTTP {status}"
            if classify_status(status) == "terminal":
                raise TerminalIngestError(message, status_code=status)
            raise TransientIngestError(message, status_code=status)

        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            preview = response.text[:160]
            logger.error("Invalid JSON from %s (body preview=%s)", path, preview)
            raise FatalIngestError(f"{path} responded with invalid JSON.") from exc

    def list_employees(self, *, max_pages: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return every employee, following pagination until exhausted."""
        employees: List[Dict[str, Any]] = []
        page = 1
        total_pages = 1
        while page <= total_pages:
            body = self._get_json("/employees", params={"page": page, "per_page": self.settings.page_size})
            items = _unwrap(body) or []
            if not isinstance(items, list):
                raise FatalIngestError("/employees did not return a list.")
            employees.extend(item for item in items if isinstance(item, dict) and item.get("id"))
            if page == 1 and isinstance(body, dict):
                try:
                    total_pages = max(1, int(body.get("pages") or 1))
                except (TypeError, ValueError):
                    total_pages = 1
            logger.info("Fetched %d employees from page %d/%d.", len(items), page, total_pages)
            if not items:
                break
            if max_pages is not None and page >= max_pages:
                break
            page += 1
        return employees

    def fetch_employee(self, employee_id: str) -> Dict[str, Any]:
        data = _unwrap(self._get_json(f"/employees/{employee_id}"))
        if not isinstance(data, dict):
            raise FatalIngestError(f"/employees/{employee_id} did not return an object.")
        return data

    def fetch_employments(self, employee_id: str) -> Optional[Dict[str, Any]]:
        """Return one employment document; several employments are merged, none yields ``None``."""
        data = _unwrap(self._get_json(f"/employees/{employee_id}/employments"))
        if isinstance(data, dict):
            return data or None
        if not isinstance(data, list):
            raise FatalIngestError(f"/employees/{employee_id}/employments returned an unexpected shape.")
        items = [item for item in data if isinstance(item, dict)]
        if not items:
            return None
        if len(items) == 1:
            return items[0]
        return merge_employments(items)

    def fetch_endpoint(self, employee_id: str, endpoint: str) -> Optional[Dict[str, Any]]:
        if endpoint == ENDPOINT_EMPLOYEE:
            return self.fetch_employee(employee_id)
        if endpoint == ENDPOINT_EMPLOYMENTS:
            return self.fetch_employments(employee_id)
        raise ValueError(f"Unknown endpoint {endpoint!r}")

    def fetch_with_retry(
        self,
        employee_id: str,
        endpoint: str,
        *,
        attempts: Optional[int] = None,
        initial_delay: Optional[float] = None,
    ) -> FetchOutcome:
        """Fetch with exponential backoff; 404/403 end the loop immediately."""
        max_attempts = attempts or self.settings.fetch_attempts
        delay = self.settings.backoff_initial_seconds if initial_delay is None else initial_delay
        outcome = FetchOutcome(success=False)
        started = time.perf_counter()

        for attempt in range(max_attempts):
            outcome.attempts = attempt + 1
            try:
                outcome.data = self.fetch_endpoint(employee_id, endpoint)
            except TerminalIngestError as exc:
                outcome.http_status = exc.status_code
                outcome.terminal = True
                outcome.issues.append(f"Terminal response ({exc.status_code}): {exc}")
                break
            except (TransientIngestError, FatalIngestError) as exc:
                outcome.http_status = getattr(exc, "status_code", None) or outcome.http_status
                outcome.issues.append(f"Attempt {attempt + 1} failed: {exc}")
                if attempt < max_attempts - 1:
                    wait = delay * (2 ** attempt)
                    logger.info("Retrying %s %s in %.2fs.", employee_id, endpoint, wait)
                    self._sleep(wait)
                continue
            outcome.success = True
            outcome.http_status = 200
            if attempt > 0:
                outcome.issues.append(f"Succeeded on retry {attempt}")
            break

        outcome.response_time_ms = int((time.perf_counter() - started) * 1000)
        return outcome


__all__ = ["EmployesClient", "FetchOutcome"]
