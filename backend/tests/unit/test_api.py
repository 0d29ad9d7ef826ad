"""Tests for the sync HTTP API."""

import logging
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from inline_sync.client import DriverState, HttpSyncTransport, SyncDriver
from inline_sync.config import Settings
from inline_sync.main import create_app
from inline_sync.services.sync import InMemoryJobCache, ItemError


def _created(item):
    return "created"


async def test_fetch_then_process_until_page_done(async_client, registry, make_items):
    registry.register("prices", retrieve=lambda cursor: {"items": make_items(7)}, process=_created)

    response = await async_client.post("/api/sync/fetch", json={"job_id": "prices"})

    assert response.status_code == 200
    assert response.json() == {"fetched": 7, "has_more": False, "cursor": "", "total": None}

    first = (await async_client.post("/api/sync/process", json={"job_id": "prices"})).json()
    second = (await async_client.post("/api/sync/process", json={"job_id": "prices"})).json()

    assert (first["processed"], first["page_done"], first["remaining"]) == (5, False, 2)
    assert (second["processed"], second["page_done"], second["remaining"]) == (2, True, 0)
    assert first["items"][0] == {"name": "Item 1", "status": "created"}


async def test_process_reports_item_errors(async_client, registry, make_items):
    registry.register(
        "prices",
        retrieve=lambda cursor: {"items": make_items(2)},
        process=lambda item: ItemError("archived") if item["id"] == 1 else "skipped",
    )
    await async_client.post("/api/sync/fetch", json={"job_id": "prices"})

    body = (await async_client.post("/api/sync/process", json={"job_id": "prices"})).json()

    assert body["failed"] == 1
    assert body["skipped"] == 1
    assert body["items"] == [
        {"name": "Item 1", "status": "failed", "error": "archived"},
        {"name": "Item 2", "status": "skipped"},
    ]


async def test_fetch_passes_cursor(async_client, registry, make_items, paged_source):
    retrieve = paged_source([make_items(1), make_items(1)], total=2)
    registry.register("prices", retrieve=retrieve, process=_created)

    first = (await async_client.post("/api/sync/fetch", json={"job_id": "prices"})).json()
    await async_client.post("/api/sync/fetch", json={"job_id": "prices", "cursor": first["cursor"]})

    assert first["cursor"] == "page-1"
    assert first["total"] == 2
    assert retrieve.cursors == ["", "page-1"]


async def test_unknown_job(async_client):
    response = await async_client.post("/api/sync/fetch", json={"job_id": "nope"})

    assert response.status_code == 400
    assert response.json() == {"detail": "Sync job 'nope' not found", "error_code": "UNKNOWN_JOB"}


async def test_process_without_fetch(async_client, registry):
    registry.register("prices", retrieve=lambda cursor: {"items": []}, process=_created)

    response = await async_client.post("/api/sync/process", json={"job_id": "prices"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "NO_CACHED_BATCH"
    assert response.json()["detail"] == "No cached batch. Fetch items first."


async def test_retrieval_failure_message_passes_through(async_client, registry):
    def retrieve(cursor):
        raise ConnectionError("HubSpot returned 503")

    registry.register("contacts", retrieve=retrieve, process=_created)

    response = await async_client.post("/api/sync/fetch", json={"job_id": "contacts"})

    assert response.status_code == 500
    assert response.json() == {"detail": "HubSpot returned 503", "error_code": "RETRIEVAL_FAILED"}


@pytest.mark.parametrize(
    "config, path, error_code",
    [
        ({"retrieve": lambda cursor: "oops", "process": _created}, "fetch", "MALFORMED_RESULT"),
        ({"process": _created}, "fetch", "MISSING_RETRIEVAL"),
        ({"retrieve": lambda cursor: {"items": []}}, "process", "MISSING_PROCESSING"),
    ],
)
async def test_misconfigured_jobs(async_client, registry, config, path, error_code):
    registry.register("broken", **config)

    response = await async_client.post(f"/api/sync/{path}", json={"job_id": "broken"})

    assert response.status_code == 500
    assert response.json()["error_code"] == error_code


async def test_missing_caller_is_401(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/sync/fetch", json={"job_id": "prices"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "NOT_AUTHENTICATED"


async def test_forbidden_before_any_job_logic(app, registry):
    retrieve = MagicMock(return_value={"items": []})
    registry.register("prices", retrieve=retrieve, process=_created)
    headers = {"X-Caller-Id": "user-2", "X-Caller-Capabilities": "read"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers) as client:
        known = await client.post("/api/sync/fetch", json={"job_id": "prices"})
        unknown = await client.post("/api/sync/fetch", json={"job_id": "does_not_exist"})

    assert known.status_code == 403
    assert unknown.status_code == 403
    assert known.json() == unknown.json()
    retrieve.assert_not_called()


async def test_empty_job_id_is_rejected(async_client):
    response = await async_client.post("/api/sync/fetch", json={"job_id": ""})

    assert response.status_code == 422


async def test_list_jobs_for_caller(async_client, registry):
    registry.register("prices", retrieve=_created, process=_created, title="Stripe prices", button_label="Sync prices")
    registry.register("payroll", retrieve=_created, process=_created, capability="manage_payroll")

    response = await async_client.get("/api/sync/jobs")

    assert response.status_code == 200
    assert response.json() == [{"id": "prices", "title": "Stripe prices", "button_label": "Sync prices"}]


@pytest.mark.parametrize("path", ["/health", "/api/health"])
async def test_health(async_client, registry, path):
    registry.register("prices", retrieve=_created, process=_created)

    body = (await async_client.get(path)).json()

    assert body["status"] == "healthy"
    assert body["cache_backend"] == "memory"
    assert body["cache_connected"] is True
    assert body["jobs"] == 1


async def test_health_degraded_when_cache_down(settings, registry):
    broken_cache = MagicMock()
    broken_cache.ping.return_value = False
    app = create_app(settings=settings, registry=registry, job_cache=broken_cache)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        body = (await client.get("/health")).json()

    assert body["status"] == "degraded"
    assert body["cache_connected"] is False


async def test_unexpected_error_is_generic_500(settings, registry):
    broken_cache = MagicMock()
    broken_cache.get.side_effect = RuntimeError("connection reset")
    registry.register("prices", retrieve=_created, process=_created)
    app = create_app(settings=settings, registry=registry, job_cache=broken_cache)
    headers = {"X-Caller-Id": "user-1", "X-Caller-Capabilities": "manage_sync"}

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as client:
        response = await client.post("/api/sync/process", json={"job_id": "prices"})

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error", "error_code": "INTERNAL_ERROR"}


async def test_driver_over_http(async_client, registry, make_items):
    registry.register("prices", retrieve=lambda cursor: {"items": make_items(11)}, process=_created)
    driver = SyncDriver(HttpSyncTransport(async_client))

    assert await driver.load_jobs() == ["prices"]
    run = await driver.start("prices")

    assert run.state == DriverState.COMPLETE
    assert run.totals.created == 11
    assert run.summary == "11 items synced - 11 created."


async def test_driver_over_http_shows_server_message(async_client, registry):
    def retrieve(cursor):
        raise RuntimeError("Rate limited by Stripe")

    registry.register("prices", retrieve=retrieve, process=_created)
    driver = SyncDriver(HttpSyncTransport(async_client), jobs=["prices"])

    run = await driver.start("prices")

    assert run.state == DriverState.ERROR
    assert run.message == "Rate limited by Stripe"


def _handler_records(caplog):
    return [r for r in caplog.records if r.name == "inline_sync.exception_handlers"]


async def test_error_log_carries_caller_in_header_mode(async_client, caplog):
    with caplog.at_level(logging.WARNING, logger="inline_sync.exception_handlers"):
        await async_client.post("/api/sync/fetch", json={"job_id": "nope"})

    (record,) = _handler_records(caplog)
    assert record.caller_id == "user-1"
    assert record.error == "UNKNOWN_JOB"


async def test_error_log_ignores_unverified_caller_header(registry, caplog):
    settings = Settings(
        auth_mode="supabase",
        supabase_url="https://project.supabase.co",
        supabase_anon_key="anon-key",
        log_dir=None,
    )
    app = create_app(settings=settings, registry=registry, job_cache=InMemoryJobCache())
    headers = {"X-Caller-Id": "someone-else"}

    with caplog.at_level(logging.WARNING, logger="inline_sync.exception_handlers"):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers) as client:
            response = await client.post("/api/sync/fetch", json={"job_id": "prices"})

    assert response.status_code == 401
    (record,) = _handler_records(caplog)
    assert getattr(record, "caller_id", "") == ""
