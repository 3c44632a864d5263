"""Runtime configuration for the Employes sync pipeline."""

from __future__ import annotations

from dataclasses import dataclass

from core.env import env_float, env_int, env_str
from services.ingest_errors import ConfigurationError

DEFAULT_API_BASE = "https://connect.employes.nl/v4"


@dataclass(frozen=True)
class SyncSettings:
    """Explicit configuration handed to every pipeline component."""

    api_key: str
    company_id: str
    api_base_url: str = DEFAULT_API_BASE
    page_size: int = 100
    request_timeout: float = 15.0
    fetch_attempts: int = 3
    backoff_initial_seconds: float = 1.0
    retry_cooldown_seconds: int = 3600
    max_retry_count: int = 3
    retry_batch_limit: int = 10
    error_list_limit: int = 10
    interactive_priority: int = 10
    background_priority: int = 3
    queue_max_attempts: int = 3
    queue_stale_after_seconds: int = 900

    @property
    def company_base_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/{self.company_id}"


def load_settings() -> SyncSettings:
    """Build settings from the environment, failing fast on missing secrets."""
    api_key = env_str("EMPLOYES_API_KEY")
    company_id = env_str("EMPLOYES_COMPANY_ID")
    missing = [name for name, value in (("EMPLOYES_API_KEY", api_key), ("EMPLOYES_COMPANY_ID", company_id)) if not value]
    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}.")

    return SyncSettings(
        api_key=api_key,  # type: ignore[arg-type]
        company_id=company_id,  # type: ignore[arg-type]
        api_base_url=env_str("EMPLOYES_API_BASE", DEFAULT_API_BASE) or DEFAULT_API_BASE,
        page_size=env_int("EMPLOYES_PAGE_SIZE", 100, minimum=1),
        request_timeout=env_float("EMPLOYES_REQUEST_TIMEOUT", 15.0, minimum=1.0),
        fetch_attempts=env_int("EMPLOYES_FETCH_ATTEMPTS", 3, minimum=1),
        backoff_initial_seconds=env_float("EMPLOYES_BACKOFF_SECONDS", 1.0, minimum=0.0),
        retry_cooldown_seconds=env_int("EMPLOYES_RETRY_COOLDOWN_SECONDS", 3600, minimum=0),
        max_retry_count=env_int("EMPLOYES_MAX_RETRY_COUNT", 3, minimum=1),
        retry_batch_limit=env_int("EMPLOYES_RETRY_BATCH_LIMIT", 10, minimum=1),
        error_list_limit=env_int("EMPLOYES_ERROR_LIST_LIMIT", 10, minimum=1),
        interactive_priority=env_int("EMPLOYES_INTERACTIVE_PRIORITY", 10),
        background_priority=env_int("EMPLOYES_BACKGROUND_PRIORITY", 3),
        queue_max_attempts=env_int("EMPLOYES_QUEUE_MAX_ATTEMPTS", 3, minimum=1),
        queue_stale_after_seconds=env_int("EMPLOYES_QUEUE_STALE_AFTER_SECONDS", 900, minimum=60),
    )


__all__ = ["DEFAULT_API_BASE", "SyncSettings", "load_settings"]
