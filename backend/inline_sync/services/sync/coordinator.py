"""
Batch coordinator: server side of the two-phase sync protocol.

fetch:   call the job's retrieval function once, tag items with display
         names, cache the page for this caller at offset 0.
process: take the next chunk from the cached page, run the job's process
         function on each item, advance the offset (or evict the entry
         when the page is finished), and report per-item outcomes.

Splitting the two lets a client show progress every few items even when
the external source returns a whole page at once.
"""

import logging
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from inline_sync.exceptions import (
    MalformedResultError,
    MissingProcessingError,
    MissingRetrievalError,
    NoCachedBatchError,
    PermissionDeniedError,
    RetrievalFailedError,
    UnknownJobError,
)
from .cache import DEFAULT_TTL_SECONDS, JobCache
from .names import resolve_item_name
from .registry import JobRegistry
from .types import (
    OUTCOME_TAGS,
    CachedItem,
    Caller,
    ChunkResult,
    FetchPage,
    FetchResult,
    ItemError,
    ItemResult,
    OutcomeKind,
    SyncJob,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 5
GENERIC_ITEM_FAILURE = "Item processing failed"


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class BatchCoordinator:
    """
    Implements the fetch and process handlers for every registered job.

    Calls for the same (job, caller) are serialized inside this process so
    overlapping requests can't process one chunk twice. Nothing stops a
    second client from re-fetching and resetting the page.
    """

    def __init__(
        self,
        registry: JobRegistry,
        cache: JobCache,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        ttl: int = DEFAULT_TTL_SECONDS,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.registry = registry
        self.cache = cache
        self.chunk_size = chunk_size
        self.ttl = ttl
        self._key_locks: dict[tuple[str, str], _KeyLock] = {}
        self._locks_guard = threading.Lock()

    # =========================================================================
    # Access
    # =========================================================================

    def authorize(self, job_id: str, caller: Caller) -> None:
        """
        Check the caller may run the job.

        Unknown jobs are checked against the default capability, so a
        permission failure never reveals whether a job exists.
        """
        job = self.registry.get(job_id)
        if job is not None:
            allowed = job.permits(caller, self.registry.default_capability)
        else:
            allowed = caller.can(self.registry.default_capability)

        if not allowed:
            logger.warning(
                "Permission denied",
                extra={"job_id": job_id, "caller_id": caller.id},
            )
            raise PermissionDeniedError()

    def _resolve(self, job_id: str) -> SyncJob:
        job = self.registry.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        return job

    @contextmanager
    def _lock_for(self, job_id: str, caller_id: str) -> Iterator[None]:
        """
        Hold the (job, caller) lock for the duration of the block.

        Locks exist only while some call holds or waits on them, so the
        table stays as small as the number of in-flight calls.
        """
        key = (job_id, caller_id)
        with self._locks_guard:
            key_lock = self._key_locks.get(key)
            if key_lock is None:
                key_lock = self._key_locks[key] = _KeyLock()
            key_lock.users += 1
        try:
            with key_lock.lock:
                yield
        finally:
            with self._locks_guard:
                key_lock.users -= 1
                if key_lock.users == 0:
                    del self._key_locks[key]

    # =========================================================================
    # Phase 1: Fetch
    # =========================================================================

    def fetch(self, job_id: str, caller_id: str, cursor: str = "") -> FetchResult:
        """
        Fetch one page from the job's source and cache it for this caller.

        Raises:
            UnknownJobError, MissingRetrievalError, RetrievalFailedError,
            MalformedResultError
        """
        job = self._resolve(job_id)
        if job.retrieve is None:
            raise MissingRetrievalError(job.id)

        log_extra = {"job_id": job.id, "caller_id": caller_id}

        with self._lock_for(job.id, caller_id):
            try:
                raw_result = job.retrieve(cursor)
            except Exception as e:
                logger.warning(
                    f"Retrieval failed: {e}",
                    extra={**log_extra, "error": type(e).__name__},
                )
                raise RetrievalFailedError(_error_message(e)) from e

            page = self._normalize_page(raw_result)

            try:
                tagged = [
                    CachedItem(raw=item, name=resolve_item_name(item, job.name))
                    for item in page.items
                ]
            except Exception as e:
                logger.warning(
                    f"Name extraction failed: {e}",
                    extra={**log_extra, "error": type(e).__name__},
                )
                raise RetrievalFailedError(f"Name extraction failed: {_error_message(e)}") from e

            self.cache.put(job.id, caller_id, tagged, offset=0, ttl=self.ttl)

        logger.info(
            f"Fetched {len(tagged)} items (has_more={page.has_more})",
            extra=log_extra,
        )
        return FetchResult(
            fetched=len(tagged),
            has_more=page.has_more,
            cursor=page.cursor,
            total=page.total,
        )

    @staticmethod
    def _normalize_page(result: Any) -> FetchPage:
        """Accept a FetchPage or a mapping with at least an "items" list."""
        if isinstance(result, FetchPage):
            items, has_more, cursor, total = result.items, result.has_more, result.cursor, result.total
        elif isinstance(result, Mapping):
            if "items" not in result:
                raise MalformedResultError("missing 'items'")
            items = result["items"]
            has_more = result.get("has_more", False)
            cursor = result.get("cursor", "")
            total = result.get("total")
        else:
            raise MalformedResultError(f"unexpected {type(result).__name__}")

        if not isinstance(items, (list, tuple)):
            raise MalformedResultError("'items' must be a list")

        if total is not None:
            try:
                total = int(total)
            except (TypeError, ValueError):
                raise MalformedResultError(f"'total' must be an integer, got {total!r}")

        return FetchPage(
            items=list(items),
            has_more=bool(has_more),
            cursor="" if cursor is None else str(cursor),
            total=total,
        )

    # =========================================================================
    # Phase 2: Process
    # =========================================================================

    def process(self, job_id: str, caller_id: str) -> ChunkResult:
        """
        Process the next chunk of this caller's cached page.

        Raises:
            UnknownJobError, MissingProcessingError, NoCachedBatchError
        """
        job = self._resolve(job_id)
        if job.process is None:
            raise MissingProcessingError(job.id)

        log_extra = {"job_id": job.id, "caller_id": caller_id}

        with self._lock_for(job.id, caller_id):
            batch = self.cache.get(job.id, caller_id)
            if batch is None or not batch.items:
                raise NoCachedBatchError()

            offset = batch.offset
            chunk = batch.items[offset:offset + self.chunk_size]
            result = ChunkResult()

            if not chunk:
                self.cache.delete(job.id, caller_id)
                result.page_done = True
                return result

            for item in chunk:
                outcome = self._process_one(job, item)
                if outcome.status == OutcomeKind.FAILED:
                    logger.warning(
                        f"Item '{outcome.name}' failed: {outcome.error}",
                        extra={**log_extra, "error": outcome.error},
                    )
                result.record(outcome)

            new_offset = offset + self.chunk_size
            remaining = max(0, len(batch.items) - new_offset)

            if remaining > 0:
                self.cache.put(job.id, caller_id, batch.items, offset=new_offset, ttl=self.ttl)
            else:
                self.cache.delete(job.id, caller_id)

        result.page_done = remaining == 0
        result.remaining = remaining
        logger.debug(
            f"Processed {result.processed} items, {remaining} remaining in page",
            extra=log_extra,
        )
        return result

    @staticmethod
    def _process_one(job: SyncJob, item: CachedItem) -> ItemResult:
        """Run the process function on one item and classify what it returned."""
        try:
            returned = job.process(item.raw)
        except Exception as e:
            return ItemResult(name=item.name, status=OutcomeKind.FAILED, error=_error_message(e))

        if isinstance(returned, ItemError):
            return ItemResult(
                name=item.name,
                status=OutcomeKind.FAILED,
                error=returned.message or GENERIC_ITEM_FAILURE,
            )
        if isinstance(returned, BaseException):
            return ItemResult(name=item.name, status=OutcomeKind.FAILED, error=_error_message(returned))

        if isinstance(returned, str):
            tag = returned.value if isinstance(returned, OutcomeKind) else returned
            if tag in OUTCOME_TAGS:
                return ItemResult(name=item.name, status=OutcomeKind(tag))
            if tag == OutcomeKind.FAILED.value:
                return ItemResult(name=item.name, status=OutcomeKind.FAILED, error=GENERIC_ITEM_FAILURE)

        # Any other value counts as a successful create
        return ItemResult(name=item.name, status=OutcomeKind.CREATED)
