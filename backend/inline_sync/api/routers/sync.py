"""
Batch sync API endpoints.

Two-phase protocol driven by the client:
- POST /sync/fetch   -> pull one page from the job's source and cache it
- POST /sync/process -> process the next chunk of the cached page
- GET  /sync/jobs    -> jobs the current caller may run

Every call is authorized against the job's capability before any job
logic runs. The handlers are plain functions: FastAPI runs them in its
threadpool, since job callables are synchronous.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from inline_sync.dependencies import get_coordinator, get_registry, verify_auth
from inline_sync.schemas.sync import (
    FetchRequest,
    FetchResponse,
    ProcessRequest,
    ProcessResponse,
    SyncJobResponse,
    to_fetch_response,
    to_process_response,
)
from inline_sync.services.sync import BatchCoordinator, Caller, JobRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/jobs", response_model=List[SyncJobResponse])
def list_jobs(
    caller: Caller = Depends(verify_auth),
    registry: JobRegistry = Depends(get_registry),
):
    """List the sync jobs the current caller is allowed to run."""
    return [
        SyncJobResponse(id=job.id, title=job.title, button_label=job.button_label)
        for job in registry.for_caller(caller)
    ]


@router.post("/fetch", response_model=FetchResponse)
def fetch_page(
    request: FetchRequest,
    caller: Caller = Depends(verify_auth),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """
    Fetch one page of items from the job's source.

    The page is cached for this caller; follow up with /sync/process
    until page_done is true.
    """
    coordinator.authorize(request.job_id, caller)
    return to_fetch_response(coordinator.fetch(request.job_id, caller.id, request.cursor))


@router.post(
    "/process",
    response_model=ProcessResponse,
    response_model_exclude_none=True,
)
def process_chunk(
    request: ProcessRequest,
    caller: Caller = Depends(verify_auth),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """
    Process the next chunk of the caller's cached page.

    Returns per-item outcomes, page_done and the number of items left
    in the page. Fails with NO_CACHED_BATCH if nothing was fetched.
    """
    coordinator.authorize(request.job_id, caller)
    return to_process_response(coordinator.process(request.job_id, caller.id))
