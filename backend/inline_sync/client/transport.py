"""
Transports the sync driver uses to reach the fetch/process handlers.

- HttpSyncTransport: talks to the API over HTTP with httpx
- LocalSyncTransport: calls a BatchCoordinator in-process (same
  authorization as the HTTP routes), for scripts and tests
"""

import asyncio
import logging
from typing import Any, Optional, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from inline_sync.exceptions import AppException
from inline_sync.schemas.sync import (
    FetchResponse,
    ProcessResponse,
    SyncJobResponse,
    to_fetch_response,
    to_process_response,
)
from inline_sync.services.sync import BatchCoordinator, Caller

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """
    A fetch/process call did not produce a usable response.

    `message` is the server's own message when it sent one, else None.
    """

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message or f"Transport error (status {status_code})")


@runtime_checkable
class SyncTransport(Protocol):
    """What the driver needs from the server side."""

    async def list_jobs(self) -> list[SyncJobResponse]:
        ...

    async def fetch(self, job_id: str, cursor: str = "") -> FetchResponse:
        ...

    async def process(self, job_id: str) -> ProcessResponse:
        ...


def _error_message(response: httpx.Response) -> Optional[str]:
    """Pull the server's message out of an error response, if it has one."""
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    message = payload.get("detail") or payload.get("message")
    return message if isinstance(message, str) else None


class HttpSyncTransport:
    """
    HTTP transport over an httpx.AsyncClient.

    The client carries base URL and auth (cookies or headers); this class
    only knows the route layout.

    Usage:
        async with httpx.AsyncClient(base_url="https://admin.example.com",
                                     headers={"Authorization": f"Bearer {token}"}) as client:
            driver = SyncDriver(HttpSyncTransport(client))
    """

    def __init__(self, client: httpx.AsyncClient, base_path: str = "/api/sync"):
        self.client = client
        self.base_path = base_path.rstrip("/")

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = f"{self.base_path}/{path}"
        try:
            response = await self.client.request(method, url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Sync request to {url} failed: {e}")
            raise TransportError(None) from e

        if response.is_error:
            raise TransportError(_error_message(response), response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(None, response.status_code) from e

    async def list_jobs(self) -> list[SyncJobResponse]:
        data = await self._request("GET", "jobs")
        try:
            return [SyncJobResponse.model_validate(job) for job in data]
        except (TypeError, ValidationError) as e:
            raise TransportError(None) from e

    async def fetch(self, job_id: str, cursor: str = "") -> FetchResponse:
        data = await self._request("POST", "fetch", {"job_id": job_id, "cursor": cursor})
        try:
            return FetchResponse.model_validate(data)
        except ValidationError as e:
            raise TransportError(None) from e

    async def process(self, job_id: str) -> ProcessResponse:
        data = await self._request("POST", "process", {"job_id": job_id})
        try:
            return ProcessResponse.model_validate(data)
        except ValidationError as e:
            raise TransportError(None) from e


class LocalSyncTransport:
    """
    In-process transport.

    Runs coordinator calls in a worker thread so slow job callables don't
    block the event loop. Application errors keep their message; anything
    else (a cache backend going away, say) becomes a message-less
    TransportError, matching the generic 500 of the HTTP layer.
    """

    def __init__(self, coordinator: BatchCoordinator, caller: Caller):
        self.coordinator = coordinator
        self.caller = caller

    async def list_jobs(self) -> list[SyncJobResponse]:
        return [
            SyncJobResponse(id=job.id, title=job.title, button_label=job.button_label)
            for job in self.coordinator.registry.for_caller(self.caller)
        ]

    async def fetch(self, job_id: str, cursor: str = "") -> FetchResponse:
        try:
            self.coordinator.authorize(job_id, self.caller)
            result = await asyncio.to_thread(self.coordinator.fetch, job_id, self.caller.id, cursor)
        except AppException as e:
            raise TransportError(e.message, e.status_code) from e
        except Exception as e:
            logger.exception(f"Sync fetch failed: {e}", extra={"job_id": job_id, "error": type(e).__name__})
            raise TransportError(None, 500) from e
        return to_fetch_response(result)

    async def process(self, job_id: str) -> ProcessResponse:
        try:
            self.coordinator.authorize(job_id, self.caller)
            result = await asyncio.to_thread(self.coordinator.process, job_id, self.caller.id)
        except AppException as e:
            raise TransportError(e.message, e.status_code) from e
        except Exception as e:
            logger.exception(f"Sync process failed: {e}", extra={"job_id": job_id, "error": type(e).__name__})
            raise TransportError(None, 500) from e
        return to_process_response(result)
