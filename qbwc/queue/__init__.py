"""
Sync Queue Module

The queue of pending QuickBooks work the dispatcher draws from.

Components:
- WorkQueue: Abstract interface for queue implementations
- WorkItem: One unit of pending synchronization work
- InMemoryWorkQueue: Development/testing implementation

The SQL-backed queue (SqlAlchemyWorkQueue) lives with the other SQLAlchemy
adapters in qbwc.storage.sqlalchemy.
"""

from qbwc.queue.ports import (
    DEFAULT_PRIORITY,
    DEFAULT_MAX_ATTEMPTS,
    WorkItem,
    WorkItemStatus,
    WorkQueue,
)
from qbwc.queue.memory import InMemoryWorkQueue

__all__ = [
    "DEFAULT_PRIORITY",
    "DEFAULT_MAX_ATTEMPTS",
    "WorkItem",
    "WorkItemStatus",
    "WorkQueue",
    "InMemoryWorkQueue",
]
