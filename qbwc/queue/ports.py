"""
Work Queue Port Interfaces

Abstract base class defining the sync-queue contract the QBWC dispatcher
consumes. The queue is shared, externally owned state: the dispatcher only
peeks, marks an item processing, and later marks it completed or failed.

These ports follow the hexagonal architecture pattern:
- Dispatch code depends only on these interfaces
- Adapters (in-memory, SQLAlchemy) implement these interfaces
- Queue implementation is injected via dependency inversion

Item lifecycle: pending -> processing -> completed | failed

The dispatcher never locks an item beyond its status field. Reclaiming items
abandoned in "processing" (agent vanished mid-cycle) is the queue's own
job, via reclaim_stale().

Thread-safety: All implementations must be safe for concurrent async usage.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4

DEFAULT_PRIORITY = 10
DEFAULT_MAX_ATTEMPTS = 3


class WorkItemStatus(str, Enum):
    """Status of a sync queue item."""
    PENDING = "pending"        # Waiting to be handed to the agent
    PROCESSING = "processing"  # Handed out, response pending
    COMPLETED = "completed"    # QuickBooks accepted it
    FAILED = "failed"          # QuickBooks or the agent rejected it


@dataclass
class WorkItem:
    """
    A unit of pending synchronization work.

    type/action say what to do in QuickBooks (e.g. time_entry/add);
    reference_type/reference_id point at the record that supplies the data
    (e.g. qbPendingTimeExport/<export id>).
    """
    type: str
    action: str
    reference_id: str
    reference_type: str
    id: str = field(default_factory=lambda: uuid4().hex)
    status: WorkItemStatus = WorkItemStatus.PENDING
    priority: int = DEFAULT_PRIORITY  # Lower number = handed out first
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    response_payload: str | None = None
    error_message: str | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_attempt_at: datetime | None = None
    completed_at: datetime | None = None

    def can_retry(self) -> bool:
        """Check if the item has attempts left."""
        return self.attempts < self.max_attempts


class WorkQueue(ABC):
    """
    Abstract interface for the sync queue.

    Implementations must be thread-safe for concurrent async usage.
    """

    @abstractmethod
    async def enqueue(
        self,
        type: str,
        action: str,
        reference_id: str,
        reference_type: str,
        priority: int = DEFAULT_PRIORITY,
    ) -> WorkItem:
        """
        Add an item, unless a pending item already references the same record.

        Returns:
            The new item, or the existing pending one
        """
        ...

    @abstractmethod
    async def get(self, item_id: str) -> WorkItem | None:
        """Get an item by ID."""
        ...

    @abstractmethod
    async def peek_next(self, limit: int = 1) -> list[WorkItem]:
        """
        Pending items in hand-out order (priority, then age).

        Does not change any status.
        """
        ...

    @abstractmethod
    async def mark_processing(self, item_id: str) -> WorkItem | None:
        """
        Claim a pending item: move it to processing and count the attempt.

        Returns:
            The claimed item, or None if it is missing or no longer pending
        """
        ...

    @abstractmethod
    async def mark_completed(self, item_id: str, payload: str | None) -> WorkItem | None:
        """Move an item to completed, keeping the response payload."""
        ...

    @abstractmethod
    async def mark_failed(self, item_id: str, message: str | None) -> WorkItem | None:
        """Move an item to failed, keeping the error message."""
        ...

    @abstractmethod
    async def reclaim_stale(self, older_than: datetime) -> int:
        """
        Recover items stuck in processing since before `older_than`.

        Items with attempts left go back to pending; the rest fail.

        Returns:
            Number of items touched
        """
        ...

    @abstractmethod
    async def counts(self) -> dict[str, int]:
        """Item count per status."""
        ...
