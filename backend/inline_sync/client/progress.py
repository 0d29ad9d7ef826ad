"""
Progress model for client-driven syncs.

Holds the driver states, the running totals accumulated across every
fetch/process cycle of one run, and the reporter protocol that decouples
the driver from whatever displays progress.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from inline_sync.schemas.sync import ProcessResponse


class DriverState(str, Enum):
    """Sync driver states."""
    IDLE = "idle"
    FETCHING = "fetching"
    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


TERMINAL_STATES = frozenset({DriverState.COMPLETE, DriverState.CANCELLED, DriverState.ERROR})

# Failure messages shown in the completion summary
SUMMARY_ERROR_LIMIT = 3


@dataclass
class RunningTotals:
    """
    Accumulator across all cycles of one run.

    `total` is the source's own count when it reports one; otherwise
    `fetched_estimate` sums the items seen so far, so the percentage is
    relative to what has been discovered and can shrink when later pages
    arrive.
    """
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    processed: int = 0
    total: Optional[int] = None
    fetched_estimate: int = 0
    errors: list[str] = field(default_factory=list)

    def merge(self, chunk: ProcessResponse) -> None:
        self.created += chunk.created
        self.updated += chunk.updated
        self.skipped += chunk.skipped
        self.failed += chunk.failed
        self.processed += chunk.processed

        for item in chunk.items:
            if item.status == "failed" and item.error:
                self.errors.append(f"{item.name}: {item.error}")

    @property
    def display_total(self) -> Optional[int]:
        return self.total or self.fetched_estimate or None


@dataclass
class Progress:
    """A progress snapshot for display."""
    processed: int
    total: Optional[int]
    percent: Optional[int]
    current: str = ""

    @property
    def label(self) -> str:
        if self.total:
            return f"{self.processed} of {self.total}"
        return f"{self.processed} items"


def compute_progress(totals: RunningTotals, current: str = "") -> Progress:
    """
    Percentage of processed items against the best known total.

    Rounds half up and caps at 100. No total at all gives percent=None
    (count-only display).
    """
    total = totals.display_total
    percent = None
    if total:
        percent = min(100, math.floor(totals.processed / total * 100 + 0.5))
    return Progress(processed=totals.processed, total=total, percent=percent, current=current)


def format_summary(totals: RunningTotals) -> str:
    """
    Completion summary, e.g.

        12 items synced - 7 created, 3 updated, 1 skipped. 1 failed. Widget: timeout
    """
    synced = totals.created + totals.updated + totals.skipped + totals.failed
    parts = []
    if totals.created > 0:
        parts.append(f"{totals.created} created")
    if totals.updated > 0:
        parts.append(f"{totals.updated} updated")
    if totals.skipped > 0:
        parts.append(f"{totals.skipped} skipped")

    summary = f"{synced} items synced"
    if parts:
        summary += " - " + ", ".join(parts)
    summary += "."

    if totals.failed > 0:
        summary += f" {totals.failed} failed."
        shown = totals.errors[:SUMMARY_ERROR_LIMIT]
        if shown:
            summary += " " + "; ".join(shown)
            if len(totals.errors) > SUMMARY_ERROR_LIMIT:
                summary += "..."

    return summary


@runtime_checkable
class SyncReporter(Protocol):
    """
    Protocol for reporting sync progress.

    Implementations can target different surfaces:
    - asyncio.Queue (SSE / WebSocket bridges)
    - Logging only
    """

    async def report_state(self, job_id: str, state: DriverState) -> None:
        """Report a state transition."""
        ...

    async def report_progress(self, job_id: str, progress: Progress, totals: RunningTotals) -> None:
        """Report progress after a processed chunk."""
        ...

    async def report_done(self, job_id: str, totals: RunningTotals) -> None:
        """Report completion with final totals."""
        ...

    async def report_cancelled(self, job_id: str, totals: RunningTotals) -> None:
        """Report a cancelled run."""
        ...

    async def report_error(self, job_id: str, message: str) -> None:
        """Report a fatal error."""
        ...
