"""
Core types of the batch sync protocol.

A SyncJob bundles two caller-supplied callables:

    retrieve(cursor) -> FetchPage | {"items": [...], "has_more": bool, "cursor": str, "total": int | None}
    process(item)    -> OutcomeKind | "created" | "updated" | "skipped" | ItemError | anything else

Anything `process` returns that is not an error value or one of the outcome
tags counts as "created".
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union


class OutcomeKind(str, Enum):
    """Per-item processing outcomes."""
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


# Tags a process function may return to pick its outcome explicitly
OUTCOME_TAGS = frozenset({"created", "updated", "skipped"})


class ItemError:
    """
    Explicit error value returned by a process function.

    Returning one is equivalent to raising: the item is recorded as failed
    with this message and the batch continues.
    """

    __slots__ = ("message",)

    def __init__(self, message: str):
        self.message = message

    def __repr__(self) -> str:
        return f"ItemError({self.message!r})"


@dataclass
class FetchPage:
    """One page returned by a retrieval function."""
    items: list
    has_more: bool = False
    cursor: str = ""
    total: Optional[int] = None


@dataclass
class Caller:
    """Identity of whoever drives a sync, used for cache keying and permissions."""
    id: str
    capabilities: frozenset = frozenset()

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


Retrieve = Callable[[str], Union[FetchPage, dict]]
ProcessOne = Callable[[Any], Any]
NameExtractor = Callable[[Any], Any]
CapabilityCheck = Union[str, Callable[[Caller], bool]]


@dataclass(frozen=True)
class SyncJob:
    """
    A registered, reusable sync definition.

    `capability` is either a capability name the caller must hold or a
    predicate over the caller. None means the registry's default capability.
    """
    id: str
    retrieve: Optional[Retrieve] = None
    process: Optional[ProcessOne] = None
    name: Optional[NameExtractor] = None
    title: str = ""
    button_label: str = "Sync"
    capability: Optional[CapabilityCheck] = None

    def permits(self, caller: Caller, default_capability: str) -> bool:
        check = self.capability if self.capability is not None else default_capability
        if callable(check):
            return bool(check(caller))
        return caller.can(check)


@dataclass
class CachedItem:
    """A raw item paired with its resolved display name."""
    raw: Any
    name: str


@dataclass
class CachedBatch:
    """Server-side state for one in-flight page of one job for one caller."""
    items: list[CachedItem]
    offset: int = 0

    @property
    def remaining(self) -> int:
        return max(0, len(self.items) - self.offset)


@dataclass
class FetchResult:
    """Result of the fetch phase."""
    fetched: int
    has_more: bool
    cursor: str
    total: Optional[int] = None


@dataclass
class ItemResult:
    """Outcome of processing one item."""
    name: str
    status: OutcomeKind
    error: Optional[str] = None


@dataclass
class ChunkResult:
    """Result of one process call."""
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    items: list[ItemResult] = field(default_factory=list)
    page_done: bool = False
    remaining: int = 0

    def record(self, result: ItemResult) -> None:
        self.processed += 1
        if result.status == OutcomeKind.CREATED:
            self.created += 1
        elif result.status == OutcomeKind.UPDATED:
            self.updated += 1
        elif result.status == OutcomeKind.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
        self.items.append(result)
