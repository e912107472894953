"""
In-Memory Work Queue Implementation

Thread-safe async implementation using asyncio primitives.
Suitable for development, testing, and single-node deployments.

Features:
- Priority ordering (lower number first, FIFO within a priority)
- Pending-reference deduplication on enqueue
- Attempt counting and stale-item reclamation
"""

import asyncio
import logging
from collections import Counter
from dataclasses import replace
from datetime import datetime

from qbwc.queue.ports import (
    DEFAULT_PRIORITY,
    WorkItem,
    WorkItemStatus,
    WorkQueue,
)

logger = logging.getLogger(__name__)


class InMemoryWorkQueue(WorkQueue):
    """
    In-memory sync queue.

    Items are returned as copies so callers cannot mutate queue state
    behind the lock.
    """

    def __init__(self):
        self._items: dict[str, WorkItem] = {}
        self._lock = asyncio.Lock()

    async def enqueue(
        self,
        type: str,
        action: str,
        reference_id: str,
        reference_type: str,
        priority: int = DEFAULT_PRIORITY,
    ) -> WorkItem:
        async with self._lock:
            for item in self._items.values():
                if (
                    item.status == WorkItemStatus.PENDING
                    and item.reference_type == reference_type
                    and item.reference_id == reference_id
                ):
                    return replace(item)

            item = WorkItem(
                type=type,
                action=action,
                reference_id=reference_id,
                reference_type=reference_type,
                priority=priority,
            )
            self._items[item.id] = item
            logger.debug(f"Enqueued {type}/{action} for {reference_type}:{reference_id}")
            return replace(item)

    async def get(self, item_id: str) -> WorkItem | None:
        async with self._lock:
            item = self._items.get(item_id)
            return replace(item) if item else None

    async def peek_next(self, limit: int = 1) -> list[WorkItem]:
        async with self._lock:
            pending = [
                item for item in self._items.values()
                if item.status == WorkItemStatus.PENDING
            ]
            pending.sort(key=lambda item: (item.priority, item.created_at))
            return [replace(item) for item in pending[:limit]]

    async def mark_processing(self, item_id: str) -> WorkItem | None:
        async with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status != WorkItemStatus.PENDING:
                return None
            item.status = WorkItemStatus.PROCESSING
            item.attempts += 1
            item.last_attempt_at = datetime.utcnow()
            return replace(item)

    async def mark_completed(self, item_id: str, payload: str | None) -> WorkItem | None:
        async with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return None
            now = datetime.utcnow()
            item.status = WorkItemStatus.COMPLETED
            item.response_payload = payload
            item.last_attempt_at = now
            item.completed_at = now
            return replace(item)

    async def mark_failed(self, item_id: str, message: str | None) -> WorkItem | None:
        async with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return None
            item.status = WorkItemStatus.FAILED
            item.error_message = message
            item.last_attempt_at = datetime.utcnow()
            return replace(item)

    async def reclaim_stale(self, older_than: datetime) -> int:
        async with self._lock:
            count = 0
            for item in self._items.values():
                if item.status != WorkItemStatus.PROCESSING:
                    continue
                if item.last_attempt_at and item.last_attempt_at >= older_than:
                    continue
                if item.can_retry():
                    item.status = WorkItemStatus.PENDING
                else:
                    item.status = WorkItemStatus.FAILED
                    item.error_message = "Abandoned in processing; attempts exhausted"
                count += 1
            if count:
                logger.info(f"Reclaimed {count} stale work item(s)")
            return count

    async def counts(self) -> dict[str, int]:
        async with self._lock:
            tally = Counter(item.status.value for item in self._items.values())
            return {status.value: tally.get(status.value, 0) for status in WorkItemStatus}
