"""Shared FastAPI dependencies for the sync endpoints."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterator

from fastapi import Depends

from core.settings import SyncSettings, load_settings
from ingest.employes_client import EmployesClient


@lru_cache(maxsize=1)
def get_sync_settings() -> SyncSettings:
    """Settings are read once; a missing credential raises ``ConfigurationError``."""
    return load_settings()


def get_employes_client(settings: SyncSettings = Depends(get_sync_settings)) -> Iterator[EmployesClient]:
    client = EmployesClient(settings)
    try:
        yield client
    finally:
        client.close()
