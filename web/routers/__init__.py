"""Routers mounted under ``/api/v1``."""

from . import employes_sync, health, ops

__all__ = ["employes_sync", "health", "ops"]
