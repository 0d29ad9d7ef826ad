"""
Pydantic schemas for the sync API.
"""

from typing import TYPE_CHECKING, Literal, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from inline_sync.services.sync.types import ChunkResult, FetchResult


class FetchRequest(BaseModel):
    """Request model for the fetch phase."""
    job_id: str = Field(..., min_length=1)
    cursor: str = ""


class FetchResponse(BaseModel):
    """Response model for the fetch phase."""
    fetched: int
    has_more: bool
    cursor: str
    total: Optional[int] = None


class ProcessRequest(BaseModel):
    """Request model for the process phase."""
    job_id: str = Field(..., min_length=1)


class ItemResultResponse(BaseModel):
    """Outcome of one processed item."""
    name: str
    status: Literal["created", "updated", "skipped", "failed"]
    error: Optional[str] = None


class ProcessResponse(BaseModel):
    """Response model for the process phase."""
    processed: int
    created: int
    updated: int
    skipped: int
    failed: int
    items: list[ItemResultResponse] = []
    page_done: bool
    remaining: int


class SyncJobResponse(BaseModel):
    """A job the caller may run, as the client sees it."""
    id: str
    title: str
    button_label: str


def to_fetch_response(result: "FetchResult") -> FetchResponse:
    return FetchResponse(
        fetched=result.fetched,
        has_more=result.has_more,
        cursor=result.cursor,
        total=result.total,
    )


def to_process_response(result: "ChunkResult") -> ProcessResponse:
    return ProcessResponse(
        processed=result.processed,
        created=result.created,
        updated=result.updated,
        skipped=result.skipped,
        failed=result.failed,
        items=[
            ItemResultResponse(name=item.name, status=item.status.value, error=item.error)
            for item in result.items
        ],
        page_done=result.page_done,
        remaining=result.remaining,
    )
