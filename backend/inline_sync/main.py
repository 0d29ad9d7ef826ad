import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inline_sync.config import Settings
from inline_sync.core.logging_config import setup_logging
from inline_sync.exception_handlers import app_exception_handler, unhandled_exception_handler
from inline_sync.exceptions import AppException
from inline_sync.services.sync import (
    BatchCoordinator,
    JobCache,
    JobRegistry,
    create_job_cache,
    load_jobs,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[JobRegistry] = None,
    job_cache: Optional[JobCache] = None,
) -> FastAPI:
    """
    Build the API application.

    Tests pass their own registry (and optionally cache) so every app is
    isolated; production builds everything from the environment.
    """
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level, settings.log_dir)

    if registry is None:
        registry = JobRegistry(default_capability=settings.default_capability)
        if settings.jobs_loader:
            load_jobs(registry, settings.jobs_loader)

    if settings.auth_mode == "header":
        logger.warning("Header auth mode enabled: caller identity is not verified")

    coordinator = BatchCoordinator(
        registry=registry,
        cache=job_cache if job_cache is not None else create_job_cache(settings),
        chunk_size=settings.chunk_size,
        ttl=settings.cache_ttl,
    )

    app = FastAPI(
        title="Inline Sync API",
        description="Two-phase batch sync endpoints with client-driven progress",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.coordinator = coordinator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Import and register routers
    from inline_sync.api.routers import health, sync
    app.include_router(sync.router, prefix="/api")
    app.include_router(health.router)
    app.include_router(health.router, prefix="/api")

    logger.info(f"Inline sync API ready with {len(registry)} job(s)")
    return app
