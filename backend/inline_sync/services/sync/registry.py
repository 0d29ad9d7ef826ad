"""
Registry of sync job definitions.

One registry object is created per app (or per test) and injected where
needed; there is no module-level instance.
"""

import importlib
import logging
import re
from typing import Optional

from .types import Caller, SyncJob

logger = logging.getLogger(__name__)

_INVALID_ID_CHARS = re.compile(r"[^a-z0-9_\-]")


def sanitize_job_id(job_id: str) -> str:
    """Lower-case the id and strip everything but a-z, 0-9, '_' and '-'."""
    return _INVALID_ID_CHARS.sub("", (job_id or "").lower())


class JobRegistry:
    """
    Central store for registered sync jobs, keyed by id.

    Usage:
        registry = JobRegistry()
        registry.register(
            "stripe_prices",
            retrieve=fetch_prices,
            process=import_price,
            title="Stripe Prices",
        )
    """

    def __init__(self, default_capability: str = "manage_sync"):
        self.default_capability = default_capability
        self._jobs: dict[str, SyncJob] = {}

    def register(self, job_id: str, **config) -> SyncJob:
        """
        Register a sync job.

        Keyword arguments are SyncJob fields (retrieve, process, name,
        title, button_label, capability).

        Raises:
            ValueError: empty id after sanitizing, or id already registered
        """
        clean_id = sanitize_job_id(job_id)
        if not clean_id:
            raise ValueError(f"Invalid sync job id: {job_id!r}")
        if clean_id in self._jobs:
            raise ValueError(f"Sync job '{clean_id}' is already registered")

        job = SyncJob(id=clean_id, **config)
        self._jobs[clean_id] = job
        logger.info(f"Registered sync job '{clean_id}'", extra={"job_id": clean_id})
        return job

    def get(self, job_id: str) -> Optional[SyncJob]:
        return self._jobs.get(sanitize_job_id(job_id))

    def has(self, job_id: str) -> bool:
        return sanitize_job_id(job_id) in self._jobs

    def all(self) -> dict[str, SyncJob]:
        return dict(self._jobs)

    def unregister(self, job_id: str) -> bool:
        """Remove a job. Returns False if it was not registered."""
        return self._jobs.pop(sanitize_job_id(job_id), None) is not None

    def for_caller(self, caller: Caller) -> list[SyncJob]:
        """Jobs the caller is allowed to run, in registration order."""
        return [
            job for job in self._jobs.values()
            if job.permits(caller, self.default_capability)
        ]

    def __len__(self) -> int:
        return len(self._jobs)


def load_jobs(registry: JobRegistry, loader: str) -> None:
    """
    Populate a registry from a "package.module:function" reference.

    The function is called with the registry and registers its jobs.
    """
    module_name, _, func_name = loader.partition(":")
    if not module_name or not func_name:
        raise ValueError(f"Jobs loader must look like 'module:function', got {loader!r}")

    module = importlib.import_module(module_name)
    register_jobs = getattr(module, func_name)
    register_jobs(registry)
    logger.info(f"Loaded {len(registry)} sync job(s) from {loader}")
