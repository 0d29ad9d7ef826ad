"""
Sync reporter implementations.

QueueSyncReporter bridges the driver with a streaming response (SSE or
WebSocket); LoggingSyncReporter just writes to the log.
"""

import asyncio
import logging
from dataclasses import asdict

from .progress import DriverState, Progress, RunningTotals, format_summary

logger = logging.getLogger(__name__)


class QueueSyncReporter:
    """
    Reporter that pushes events to an asyncio.Queue.

    Usage:
        queue = asyncio.Queue()
        driver = SyncDriver(transport, reporters=[QueueSyncReporter(queue)])

        # In an SSE generator:
        while True:
            item = await queue.get()
            if item is None:
                break
            yield f"event: {item['event']}\\ndata: {json.dumps(item['data'])}\\n\\n"
    """

    def __init__(self, queue: asyncio.Queue):
        self.queue = queue

    async def report_state(self, job_id: str, state: DriverState) -> None:
        await self.queue.put({
            "event": "state",
            "data": {"job_id": job_id, "state": state.value},
        })

    async def report_progress(self, job_id: str, progress: Progress, totals: RunningTotals) -> None:
        await self.queue.put({
            "event": "progress",
            "data": {
                "job_id": job_id,
                "processed": progress.processed,
                "total": progress.total,
                "percent": progress.percent,
                "label": progress.label,
                "current": progress.current,
            },
        })

    async def report_done(self, job_id: str, totals: RunningTotals) -> None:
        await self.queue.put({
            "event": "complete",
            "data": {"job_id": job_id, "summary": format_summary(totals), **asdict(totals)},
        })

    async def report_cancelled(self, job_id: str, totals: RunningTotals) -> None:
        await self.queue.put({
            "event": "cancelled",
            "data": {"job_id": job_id, **asdict(totals)},
        })

    async def report_error(self, job_id: str, message: str) -> None:
        await self.queue.put({
            "event": "error",
            "data": {"job_id": job_id, "message": message},
        })

    async def signal_end(self) -> None:
        """Signal end of stream."""
        await self.queue.put(None)


class LoggingSyncReporter:
    """Reporter that only logs."""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    async def report_state(self, job_id: str, state: DriverState) -> None:
        self.log.debug(f"Sync state: {state.value}", extra={"job_id": job_id})

    async def report_progress(self, job_id: str, progress: Progress, totals: RunningTotals) -> None:
        pct = f" ({progress.percent}%)" if progress.percent is not None else ""
        self.log.info(f"Sync progress: {progress.label}{pct}", extra={"job_id": job_id})

    async def report_done(self, job_id: str, totals: RunningTotals) -> None:
        self.log.info(f"Sync complete: {format_summary(totals)}", extra={"job_id": job_id})

    async def report_cancelled(self, job_id: str, totals: RunningTotals) -> None:
        self.log.info(
            f"Sync cancelled after {totals.processed} items",
            extra={"job_id": job_id},
        )

    async def report_error(self, job_id: str, message: str) -> None:
        self.log.error(f"Sync failed: {message}", extra={"job_id": job_id, "error": message})
