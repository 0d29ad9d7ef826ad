"""
Short-lived job cache for in-flight sync pages.

Each entry holds one fetched page (items + resolved names) and the offset of
the next unprocessed item, keyed by (job_id, caller_id) so two callers
running the same job never see each other's batch. Entries expire `ttl`
seconds after the last write, which bounds memory when a client abandons
a run mid-page.

Two backends:
- InMemoryJobCache: single-process deployments and tests
- RedisJobCache: shared across workers (items must be JSON-serializable)
"""

import json
import logging
import threading
import time
from typing import Callable, Optional, Protocol, runtime_checkable

import redis

from inline_sync.config import Settings
from .types import CachedBatch, CachedItem

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600

# Minimum gap between full sweeps of lapsed in-memory entries
SWEEP_INTERVAL_SECONDS = 60


@runtime_checkable
class JobCache(Protocol):
    """Storage contract the coordinator relies on."""

    def put(
        self,
        job_id: str,
        caller_id: str,
        items: list[CachedItem],
        offset: int,
        ttl: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        """Store or overwrite the entry and reset its expiry."""
        ...

    def get(self, job_id: str, caller_id: str) -> Optional[CachedBatch]:
        """Return the live entry, or None if absent or expired."""
        ...

    def delete(self, job_id: str, caller_id: str) -> None:
        """Drop the entry. No error if absent."""
        ...

    def ping(self) -> bool:
        """Whether the backing store is reachable."""
        ...


class InMemoryJobCache:
    """
    Process-local cache with lazy expiry.

    Reads drop the entry they touch once it lapses; writes also sweep every
    lapsed entry, at most once per `sweep_interval` seconds. `clock` is
    injectable so tests can move time forward.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ):
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._entries: dict[tuple[str, str], tuple[float, CachedBatch]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + sweep_interval

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self._sweep_interval
        return len(expired)

    def put(self, job_id, caller_id, items, offset, ttl=DEFAULT_TTL_SECONDS):
        now = self._clock()
        expires_at = now + ttl
        with self._lock:
            # Abandoned runs are never read again, so writes sweep them out
            if now >= self._next_sweep:
                self._sweep_locked(now)
            self._entries[(job_id, caller_id)] = (
                expires_at,
                CachedBatch(items=list(items), offset=offset),
            )

    def get(self, job_id, caller_id):
        key = (job_id, caller_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, batch = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            # Copy so callers can't move the stored offset without a put()
            return CachedBatch(items=batch.items, offset=batch.offset)

    def delete(self, job_id, caller_id):
        with self._lock:
            self._entries.pop((job_id, caller_id), None)

    def purge_expired(self) -> int:
        """Drop every lapsed entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            removed = self._sweep_locked(now)
        if removed:
            logger.debug(f"Purged {removed} expired cached batch(es)")
        return removed

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._entries)


class RedisJobCache:
    """
    Redis-backed cache shared by every worker.

    Entries are JSON documents stored with SETEX, so Redis handles expiry.
    """

    KEY_PREFIX = "inline_sync:batch"

    def __init__(self, client: redis.Redis):
        self.redis = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisJobCache":
        return cls(redis.from_url(redis_url, decode_responses=True))

    def _key(self, job_id: str, caller_id: str) -> str:
        return f"{self.KEY_PREFIX}:{job_id}:{caller_id}"

    def put(self, job_id, caller_id, items, offset, ttl=DEFAULT_TTL_SECONDS):
        payload = json.dumps({
            "offset": offset,
            "items": [{"raw": item.raw, "name": item.name} for item in items],
        })
        self.redis.setex(self._key(job_id, caller_id), ttl, payload)

    def get(self, job_id, caller_id):
        cached = self.redis.get(self._key(job_id, caller_id))
        if not cached:
            return None

        data = json.loads(cached)
        return CachedBatch(
            items=[CachedItem(raw=entry["raw"], name=entry["name"]) for entry in data["items"]],
            offset=data["offset"],
        )

    def delete(self, job_id, caller_id):
        self.redis.delete(self._key(job_id, caller_id))

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False


def create_job_cache(settings: Settings) -> JobCache:
    """Build the cache backend named in settings."""
    if settings.cache_backend == "redis":
        logger.info("Using Redis job cache")
        return RedisJobCache.from_url(settings.redis_url)
    logger.info("Using in-memory job cache")
    return InMemoryJobCache()
