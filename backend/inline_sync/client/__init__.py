"""
Client side of the batch sync protocol.

- SyncDriver: state machine looping fetch -> process until done
- SyncTransport: HTTP (httpx) or in-process access to the handlers
- SyncReporter: progress/event surface (queue or logging)
"""

from .driver import (
    SyncAlreadyRunningError,
    SyncDriver,
    SyncDriverError,
    SyncRun,
    UnknownSyncJobError,
)
from .progress import (
    DriverState,
    Progress,
    RunningTotals,
    SyncReporter,
    compute_progress,
    format_summary,
)
from .reporters import LoggingSyncReporter, QueueSyncReporter
from .transport import HttpSyncTransport, LocalSyncTransport, SyncTransport, TransportError

__all__ = [
    "DriverState",
    "HttpSyncTransport",
    "LocalSyncTransport",
    "LoggingSyncReporter",
    "Progress",
    "QueueSyncReporter",
    "RunningTotals",
    "SyncAlreadyRunningError",
    "SyncDriver",
    "SyncDriverError",
    "SyncReporter",
    "SyncRun",
    "SyncTransport",
    "TransportError",
    "UnknownSyncJobError",
    "compute_progress",
    "format_summary",
]
