"""
Storage Port Interfaces

Abstract base classes defining the storage contracts for the QBWC sync
service. All persistence APIs are async. No sync DB calls allowed.

These ports follow the hexagonal architecture pattern:
- Protocol/dispatch code depends only on these interfaces
- Adapters (in-memory, SQLAlchemy, Redis) implement these interfaces
- Storage is injected via dependency inversion

Thread-safety: All implementations must be safe for concurrent async usage.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from qbwc.session.session import Session
from qbwc.storage.errors import StorageError, NotFoundError, ConflictError  # noqa: F401

if TYPE_CHECKING:
    from qbwc.qbxml.exports import TimeExportRepository
    from qbwc.queue.ports import WorkQueue


# =============================================================================
# Session Store
# =============================================================================

class SessionStore(ABC):
    """
    Storage interface for Web Connector sessions, keyed by ticket.

    Writes are compare-and-swap on Session.version so several server
    instances can share one store without corrupting each other's updates.
    """

    @abstractmethod
    async def create(self, session: Session) -> Session:
        """
        Store a new session (put-if-absent).

        Raises:
            ConflictError: If the ticket is already in use
        """
        ...

    @abstractmethod
    async def get(self, ticket: str) -> Session | None:
        """Get a session without touching it."""
        ...

    @abstractmethod
    async def touch(self, ticket: str, now: datetime) -> Session | None:
        """
        Atomically check expiry and record activity.

        If the session has expired as of `now` it is deleted and None is
        returned. Otherwise last_activity_at is set to `now` and the
        refreshed session is returned.
        """
        ...

    @abstractmethod
    async def update(self, session: Session, expected_version: int) -> Session:
        """
        Replace a session if its stored version still matches.

        The stored copy gets version expected_version + 1.

        Raises:
            NotFoundError: If the session no longer exists
            ConflictError: If another writer updated it first
        """
        ...

    @abstractmethod
    async def delete(self, ticket: str) -> bool:
        """
        Remove a session.

        Returns:
            True if a session was removed
        """
        ...

    @abstractmethod
    async def expire_idle(
        self,
        now: datetime,
        exclude: Iterable[str] = (),
    ) -> list[str]:
        """
        Remove sessions whose TTL has run out.

        Args:
            now: Reference time
            exclude: Tickets currently held by a handler (never evicted)

        Returns:
            Tickets that were removed
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of live sessions."""
        ...


# =============================================================================
# Connection Store
# =============================================================================

class ConnectionStatus(str, Enum):
    """Operator-visible connection state."""
    PENDING = "pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass
class ConnectionRecord:
    """
    The active QuickBooks connection configuration.

    Owned by the settings screen; the sync core only reads it and patches
    the status/version/error fields.
    """
    company_name: str
    wc_username: str
    wc_password: str = field(repr=False)
    is_active: bool = True
    sync_time_entries: bool = True
    sync_pay_stubs: bool = False
    sync_employees: bool = False
    auto_sync_enabled: bool = False
    sync_interval_minutes: int = 60
    connection_status: str = ConnectionStatus.PENDING.value
    qb_version: str | None = None
    company_id: str | None = None
    last_connected_at: datetime | None = None
    last_sync_at: datetime | None = None
    last_error: str | None = None
    last_error_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


class ConnectionStore(ABC):
    """Storage interface for the connection configuration."""

    @abstractmethod
    async def get(self) -> ConnectionRecord | None:
        """
        Get the active connection.

        Returns:
            The active record, or None if no connection is configured
        """
        ...

    @abstractmethod
    async def save(self, record: ConnectionRecord) -> ConnectionRecord:
        """Create or replace the active connection."""
        ...

    @abstractmethod
    async def update_status(
        self,
        status: str,
        detail: str | None = None,
        version: str | None = None,
    ) -> ConnectionRecord | None:
        """
        Patch the status fields of the active connection.

        - connection_status is always set
        - last_connected_at is stamped when status is "connected"
        - last_error / last_error_at are set from detail when given
        - qb_version is replaced only when version is given

        Returns:
            Updated record, or None if no connection is configured
        """
        ...


def apply_status(
    record: ConnectionRecord,
    status: str,
    detail: str | None,
    version: str | None,
    now: datetime,
) -> ConnectionRecord:
    """Shared status-patch rules for every ConnectionStore adapter."""
    record.connection_status = status
    if status == ConnectionStatus.CONNECTED.value:
        record.last_connected_at = now
    if status == ConnectionStatus.DISCONNECTED.value:
        record.last_sync_at = now
    if detail:
        record.last_error = detail
        record.last_error_at = now
    if version:
        record.qb_version = version
    record.updated_at = now
    return record


# =============================================================================
# Sync Log Store
# =============================================================================

@dataclass
class SyncLogEntry:
    """
    One operator-visible sync log line.

    operation: connect, sync, sync_employees, error, disconnect
    direction: import, export
    status: completed, failed
    """
    session_id: str
    operation: str
    direction: str
    status: str
    message: str | None = None
    error_details: str | None = None
    record_type: str | None = None
    record_id: str | None = None
    record_count: int | None = None
    duration_ms: float | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)


class SyncLogStore(ABC):
    """
    Storage interface for the sync log.

    Append-only store for operator visibility.
    """

    @abstractmethod
    async def append(self, entry: SyncLogEntry) -> None:
        """Append an entry."""
        ...

    @abstractmethod
    async def recent(
        self,
        limit: int = 50,
        session_id: str | None = None,
    ) -> list[SyncLogEntry]:
        """
        Most recent entries, newest first.

        Args:
            limit: Max entries
            session_id: Optional filter by session ticket
        """
        ...


# =============================================================================
# Storage Bundle
# =============================================================================

@dataclass
class StorageBundle:
    """
    Container for all storage adapters.

    Injected into the dispatcher via dependency inversion.
    """
    sessions: SessionStore
    connections: ConnectionStore
    sync_log: SyncLogStore
    work: "WorkQueue"
    exports: "TimeExportRepository"

    async def close(self) -> None:
        """
        Close all storage connections.

        Called during shutdown.
        """
        # Implementations should override to close DB connections, etc.
        pass

