"""
Health check endpoints.

Reports liveness plus the state of the job cache backend.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from inline_sync.config import Settings
from inline_sync.dependencies import get_coordinator, get_settings
from inline_sync.services.sync import BatchCoordinator

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(
    settings: Settings = Depends(get_settings),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """
    Health check.

    Returns:
        Health status including cache connectivity and registered job count.
    """
    cache_ok = coordinator.cache.ping()

    return {
        "status": "healthy" if cache_ok else "degraded",
        "cache_backend": settings.cache_backend,
        "cache_connected": cache_ok,
        "jobs": len(coordinator.registry),
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
