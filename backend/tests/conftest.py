"""Shared fixtures: an isolated registry, cache and app per test."""

import os

# Keep tests independent of any local .env before importing inline_sync modules
os.environ.setdefault("INLINE_SYNC_AUTH_MODE", "header")
os.environ.setdefault("INLINE_SYNC_CACHE_BACKEND", "memory")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from inline_sync.config import Settings  # noqa: E402
from inline_sync.main import create_app  # noqa: E402
from inline_sync.services.sync import (  # noqa: E402
    BatchCoordinator,
    Caller,
    FetchPage,
    InMemoryJobCache,
    JobRegistry,
)

CAPABILITY = "manage_sync"


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_items(count: int, prefix: str = "Item") -> list[dict]:
    return [{"id": i, "name": f"{prefix} {i}"} for i in range(1, count + 1)]


def paged_source(pages: list[list], total: int | None = None):
    """
    Retrieval function serving `pages` in order.

    Cursors are "page-1", "page-2", ...; received cursors are recorded on
    the function as `.cursors`.
    """
    def retrieve(cursor: str) -> FetchPage:
        retrieve.cursors.append(cursor)
        index = int(cursor.split("-")[1]) if cursor else 0
        has_more = index + 1 < len(pages)
        return FetchPage(
            items=pages[index],
            has_more=has_more,
            cursor=f"page-{index + 1}" if has_more else "",
            total=total,
        )

    retrieve.cursors = []
    return retrieve


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return InMemoryJobCache(clock=clock)


@pytest.fixture
def registry():
    return JobRegistry(default_capability=CAPABILITY)


@pytest.fixture
def coordinator(registry, cache):
    return BatchCoordinator(registry=registry, cache=cache, chunk_size=5, ttl=600)


@pytest.fixture
def caller():
    return Caller(id="user-1", capabilities=frozenset({CAPABILITY}))


@pytest.fixture
def settings():
    return Settings(auth_mode="header", cache_backend="memory", log_dir=None)


@pytest.fixture
def app(settings, registry, cache):
    return create_app(settings=settings, registry=registry, job_cache=cache)


@pytest.fixture
async def async_client(app):
    headers = {"X-Caller-Id": "user-1", "X-Caller-Capabilities": CAPABILITY}
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=headers,
    ) as client:
        yield client


@pytest.fixture(name="make_items")
def make_items_fixture():
    return make_items


@pytest.fixture(name="paged_source")
def paged_source_fixture():
    return paged_source
