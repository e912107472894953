"""
In-Memory Storage Adapters

Thread-safe implementations for development and testing.
Uses asyncio locks for concurrent async safety.

These adapters store everything in memory and are lost on restart.
Use for:
- Local development
- Unit/integration testing
- Single-node deployments without persistence requirements
"""

import asyncio
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Iterable

from qbwc.session.session import Session
from qbwc.storage.ports import (
    SessionStore,
    ConnectionStore,
    ConnectionRecord,
    SyncLogStore,
    SyncLogEntry,
    ConflictError,
    NotFoundError,
    apply_status,
)


class InMemorySessionStore(SessionStore):
    """
    In-memory session storage.

    Uses dict with asyncio.Lock for thread-safety. Sessions are copied on
    the way in and out so only update() can change stored state.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def create(self, session: Session) -> Session:
        async with self._lock:
            if session.ticket in self._sessions:
                raise ConflictError(f"Ticket {session.ticket} already in use")
            self._sessions[session.ticket] = session.model_copy(deep=True)
            return session.model_copy(deep=True)

    async def get(self, ticket: str) -> Session | None:
        async with self._lock:
            session = self._sessions.get(ticket)
            return session.model_copy(deep=True) if session else None

    async def touch(self, ticket: str, now: datetime) -> Session | None:
        async with self._lock:
            session = self._sessions.get(ticket)
            if session is None:
                return None
            if session.is_expired(now):
                del self._sessions[ticket]
                return None
            session.last_activity_at = now
            return session.model_copy(deep=True)

    async def update(self, session: Session, expected_version: int) -> Session:
        async with self._lock:
            current = self._sessions.get(session.ticket)
            if current is None:
                raise NotFoundError(f"Session {session.ticket} not found")
            if current.version != expected_version:
                raise ConflictError(
                    f"Session {session.ticket} is at version {current.version}, "
                    f"expected {expected_version}"
                )
            stored = session.model_copy(deep=True, update={"version": expected_version + 1})
            self._sessions[session.ticket] = stored
            return stored.model_copy(deep=True)

    async def delete(self, ticket: str) -> bool:
        async with self._lock:
            return self._sessions.pop(ticket, None) is not None

    async def expire_idle(
        self,
        now: datetime,
        exclude: Iterable[str] = (),
    ) -> list[str]:
        held = set(exclude)
        async with self._lock:
            expired = [
                ticket for ticket, session in self._sessions.items()
                if ticket not in held and session.is_expired(now)
            ]
            for ticket in expired:
                del self._sessions[ticket]
            return expired

    async def count(self) -> int:
        async with self._lock:
            return len(self._sessions)


class InMemoryConnectionStore(ConnectionStore):
    """In-memory connection configuration (a single active record)."""

    def __init__(self, record: ConnectionRecord | None = None):
        self._record = record
        self._lock = asyncio.Lock()

    async def get(self) -> ConnectionRecord | None:
        async with self._lock:
            if self._record is None or not self._record.is_active:
                return None
            return replace(self._record)

    async def save(self, record: ConnectionRecord) -> ConnectionRecord:
        async with self._lock:
            record.updated_at = datetime.utcnow()
            self._record = replace(record)
            return replace(record)

    async def update_status(
        self,
        status: str,
        detail: str | None = None,
        version: str | None = None,
    ) -> ConnectionRecord | None:
        async with self._lock:
            if self._record is None or not self._record.is_active:
                return None
            apply_status(self._record, status, detail, version, datetime.utcnow())
            return replace(self._record)


class InMemorySyncLogStore(SyncLogStore):
    """
    In-memory sync log.

    Append-only with configurable max size (oldest dropped first).
    """

    def __init__(self, max_entries: int = 10000):
        self._entries: deque[SyncLogEntry] = deque(maxlen=max_entries)
        self._lock = asyncio.Lock()

    async def append(self, entry: SyncLogEntry) -> None:
        async with self._lock:
            self._entries.append(entry)

    async def recent(
        self,
        limit: int = 50,
        session_id: str | None = None,
    ) -> list[SyncLogEntry]:
        async with self._lock:
            results = []
            for entry in reversed(self._entries):
                if session_id and entry.session_id != session_id:
                    continue
                results.append(entry)
                if len(results) >= limit:
                    break
            return results
