"""
Batch sync service module.

Server side of the two-phase sync protocol:
- JobRegistry: registered sync job definitions
- JobCache: per-(job, caller) cached page with TTL (in-memory or Redis)
- BatchCoordinator: fetch and process handlers
- resolve_item_name: display-name fallback for items
"""

from .cache import InMemoryJobCache, JobCache, RedisJobCache, create_job_cache
from .coordinator import BatchCoordinator
from .names import resolve_item_name
from .registry import JobRegistry, load_jobs, sanitize_job_id
from .types import (
    Caller,
    ChunkResult,
    FetchPage,
    FetchResult,
    ItemError,
    ItemResult,
    OutcomeKind,
    SyncJob,
)

__all__ = [
    "BatchCoordinator",
    "Caller",
    "ChunkResult",
    "FetchPage",
    "FetchResult",
    "InMemoryJobCache",
    "ItemError",
    "ItemResult",
    "JobCache",
    "JobRegistry",
    "OutcomeKind",
    "RedisJobCache",
    "SyncJob",
    "create_job_cache",
    "load_jobs",
    "resolve_item_name",
    "sanitize_job_id",
]
