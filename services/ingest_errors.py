"""Common exception types for the Employes sync pipeline."""

from __future__ import annotations

from typing import Optional

TERMINAL_STATUS_CODES = frozenset({403, 404})


class TransientIngestError(RuntimeError):
    """Raised when a fetch failed for a recoverable reason (timeout, 5xx, rate limit)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TerminalIngestError(RuntimeError):
    """Raised when upstream answered 404/403; retrying will not help."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class FatalIngestError(RuntimeError):
    """Raised when a response cannot be used at all (e.g. malformed body)."""


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing; aborts the whole run."""


def classify_status(status_code: int) -> str:
    """Return ``"terminal"`` for 404/403 and ``"transient"`` for everything else."""
    return "terminal" if status_code in TERMINAL_STATUS_CODES else "transient"


__all__ = [
    "ConfigurationError",
    "FatalIngestError",
    "TERMINAL_STATUS_CODES",
    "TerminalIngestError",
    "TransientIngestError",
    "classify_status",
]
