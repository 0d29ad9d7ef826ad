"""
Client-side sync driver.

Drives one job through the two-phase protocol:

    IDLE -> FETCHING -> PROCESSING -> (PROCESSING | FETCHING | COMPLETE | CANCELLED | ERROR)

FETCHING pulls a page into the server-side cache; PROCESSING repeats
until the page is done, then either fetches the next page (has_more) or
completes. Cancellation is cooperative: the flag is checked before each
call and again when a call returns, so an in-flight chunk always finishes
on the server but its result is discarded.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from .progress import (
    DriverState,
    RunningTotals,
    SyncReporter,
    compute_progress,
    format_summary,
)
from .transport import SyncTransport, TransportError

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Sync failed. Please try again."


class SyncDriverError(Exception):
    """A run could not be started."""


class UnknownSyncJobError(SyncDriverError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Unknown sync: {job_id}")


class SyncAlreadyRunningError(SyncDriverError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Sync already running: {job_id}")


@dataclass
class SyncRun:
    """Outcome of one invocation."""
    job_id: str
    state: DriverState
    totals: RunningTotals = field(default_factory=RunningTotals)
    message: Optional[str] = None

    @property
    def summary(self) -> str:
        if self.state == DriverState.COMPLETE:
            return format_summary(self.totals)
        if self.state == DriverState.CANCELLED:
            return "Sync cancelled."
        return self.message or ""


class SyncDriver:
    """
    Runs sync jobs against a transport and reports progress.

    Usage:
        driver = SyncDriver(HttpSyncTransport(client), reporters=[LoggingSyncReporter()])
        await driver.load_jobs()
        run = await driver.start("stripe_prices")
        print(run.summary)

    One driver instance tracks one caller; a job can only run once at a
    time per driver.
    """

    def __init__(
        self,
        transport: SyncTransport,
        reporters: Sequence[SyncReporter] = (),
        jobs: Optional[Iterable[str]] = None,
    ):
        self.transport = transport
        self.reporters = list(reporters)
        self._known_jobs: set[str] = set(jobs or ())
        self._cancelled: dict[str, bool] = {}
        self._running: set[str] = set()
        self._states: dict[str, DriverState] = {}

    # =========================================================================
    # Public API
    # =========================================================================

    async def load_jobs(self) -> list[str]:
        """Learn which jobs the caller may run from the server."""
        jobs = await self.transport.list_jobs()
        self._known_jobs.update(job.id for job in jobs)
        return [job.id for job in jobs]

    def state(self, job_id: str) -> DriverState:
        return self._states.get(job_id, DriverState.IDLE)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._running

    def cancel(self, job_id: str) -> None:
        """Request cancellation; takes effect at the next step boundary."""
        self._cancelled[job_id] = True

    async def start(self, job_id: str) -> SyncRun:
        """
        Run a job to completion, cancellation or error.

        Raises:
            UnknownSyncJobError: job not known to this driver
            SyncAlreadyRunningError: job is mid-run on this driver
        """
        if job_id not in self._known_jobs:
            logger.error(f"Unknown sync: {job_id}")
            raise UnknownSyncJobError(job_id)
        if job_id in self._running:
            raise SyncAlreadyRunningError(job_id)

        self._running.add(job_id)
        self._cancelled[job_id] = False
        try:
            return await self._run(job_id)
        finally:
            self._running.discard(job_id)

    # =========================================================================
    # State machine
    # =========================================================================

    async def _run(self, job_id: str) -> SyncRun:
        run = SyncRun(job_id=job_id, state=DriverState.FETCHING)
        totals = run.totals
        cursor = ""
        has_more = False
        next_cursor = ""
        state = DriverState.FETCHING

        while True:
            if self._cancelled.get(job_id):
                return await self._finish_cancelled(run)

            await self._set_state(job_id, state)

            if state == DriverState.FETCHING:
                try:
                    page = await self.transport.fetch(job_id, cursor)
                except TransportError as e:
                    return await self._finish_error(run, e)

                if self._cancelled.get(job_id):
                    return await self._finish_cancelled(run)

                if page.total:
                    totals.total = page.total

                if page.fetched == 0:
                    return await self._finish_complete(run)

                if not totals.total:
                    totals.fetched_estimate += page.fetched

                has_more = page.has_more
                next_cursor = page.cursor
                state = DriverState.PROCESSING
                continue

            # PROCESSING
            try:
                chunk = await self.transport.process(job_id)
            except TransportError as e:
                return await self._finish_error(run, e)

            if self._cancelled.get(job_id):
                return await self._finish_cancelled(run)

            totals.merge(chunk)
            current = chunk.items[-1].name if chunk.items else ""
            progress = compute_progress(totals, current)
            for reporter in self.reporters:
                await reporter.report_progress(job_id, progress, totals)

            if not chunk.page_done:
                continue
            if has_more:
                cursor = next_cursor
                state = DriverState.FETCHING
                continue
            return await self._finish_complete(run)

    async def _set_state(self, job_id: str, state: DriverState) -> None:
        if self._states.get(job_id) == state:
            return
        self._states[job_id] = state
        for reporter in self.reporters:
            await reporter.report_state(job_id, state)

    async def _finish_complete(self, run: SyncRun) -> SyncRun:
        run.state = DriverState.COMPLETE
        await self._set_state(run.job_id, run.state)
        logger.info(f"Sync complete: {format_summary(run.totals)}", extra={"job_id": run.job_id})
        for reporter in self.reporters:
            await reporter.report_done(run.job_id, run.totals)
        return run

    async def _finish_cancelled(self, run: SyncRun) -> SyncRun:
        run.state = DriverState.CANCELLED
        await self._set_state(run.job_id, run.state)
        logger.info("Sync cancelled", extra={"job_id": run.job_id})
        for reporter in self.reporters:
            await reporter.report_cancelled(run.job_id, run.totals)
        return run

    async def _finish_error(self, run: SyncRun, error: TransportError) -> SyncRun:
        run.state = DriverState.ERROR
        run.message = error.message or GENERIC_FAILURE_MESSAGE
        await self._set_state(run.job_id, run.state)
        logger.warning(
            f"Sync failed: {run.message}",
            extra={"job_id": run.job_id, "error": run.message},
        )
        for reporter in self.reporters:
            await reporter.report_error(run.job_id, run.message)
        return run
