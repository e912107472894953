"""
Session Registry

Owns Web Connector sessions on top of a SessionStore: creation on
authenticate, per-ticket serialization of handler calls, write-back of
mutations, and TTL eviction.

Every handler that needs a session goes through hold(ticket), which:
1. serializes calls for the same ticket (one asyncio.Lock per ticket)
2. touches the session in the store (expired -> deleted -> None)
3. yields the session to the handler
4. writes it back with compare-and-swap if the handler changed it

Tickets currently held are excluded from the background sweep, so a
session can never be evicted out from under a running handler.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from qbwc.session.session import Session
from qbwc.storage.errors import ConflictError, NotFoundError

if TYPE_CHECKING:
    from qbwc.storage import SessionStore

logger = logging.getLogger(__name__)

# Fresh tickets are UUID4; a collision means something is badly wrong
_CREATE_ATTEMPTS = 3


class SessionRegistry:
    """
    Concurrency-safe session state keyed by ticket.

    Thread-safe for async operations using asyncio locks.
    """

    def __init__(
        self,
        store: "SessionStore",
        session_ttl_seconds: int = 1800,
        cleanup_interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize the session registry.

        Args:
            store: Session storage adapter
            session_ttl_seconds: Idle time after which a session is evicted
            cleanup_interval_seconds: How often to sweep for expired sessions
            clock: Source of "now" (naive UTC)
        """
        self._store = store
        self._ttl = session_ttl_seconds
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock

        # ticket -> lock, and ticket -> number of holders/waiters
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

        # Tickets removed by a handler while held (skip write-back)
        self._removed: set[str] = set()

        # Background cleanup task
        self._cleanup_task: asyncio.Task | None = None

    @property
    def session_ttl_seconds(self) -> int:
        return self._ttl

    # === Lifecycle ===

    async def start(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Session registry cleanup task started")

    async def stop(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Session registry cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        """Periodically evict idle sessions."""
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                await self.expire_idle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in session cleanup loop: {e}")

    async def expire_idle(self) -> list[str]:
        """Evict expired sessions that no handler is holding."""
        expired = await self._store.expire_idle(
            self._clock(),
            exclude=set(self._holders),
        )
        for ticket in expired:
            logger.info(f"Session {ticket} expired after {self._ttl}s idle")
        return expired

    # === Operations ===

    async def create(self, username: str) -> Session:
        """
        Create a session for a freshly authenticated user.

        Returns:
            The stored session (new ticket, idle)
        """
        for _ in range(_CREATE_ATTEMPTS):
            now = self._clock()
            session = Session(
                username=username,
                created_at=now,
                last_activity_at=now,
                ttl_seconds=self._ttl,
            )
            try:
                created = await self._store.create(session)
            except ConflictError:
                logger.warning(f"Ticket collision for {session.ticket}, regenerating")
                continue

            logger.info(f"Session {created.ticket} created for {username}")
            return created

        raise ConflictError(f"Could not allocate a unique ticket after {_CREATE_ATTEMPTS} attempts")

    @asynccontextmanager
    async def hold(self, ticket: str | None) -> AsyncIterator[Session | None]:
        """
        Serialize access to one session for the duration of a handler.

        Yields None for a missing, unknown or expired ticket. Changes the
        handler makes to the yielded session are persisted on exit, also
        when the handler raises.
        """
        if not ticket:
            yield None
            return

        lock = self._locks.setdefault(ticket, asyncio.Lock())
        self._holders[ticket] = self._holders.get(ticket, 0) + 1
        try:
            async with lock:
                session = await self._store.touch(ticket, self._clock())
                if session is None:
                    yield None
                    return

                baseline = session.model_copy(deep=True)
                try:
                    yield session
                finally:
                    if ticket in self._removed:
                        self._removed.discard(ticket)
                    elif session != baseline:
                        await self._persist(session, baseline.version)
        finally:
            self._holders[ticket] -= 1
            if not self._holders[ticket]:
                del self._holders[ticket]
                self._locks.pop(ticket, None)

    async def _persist(self, session: Session, expected_version: int) -> None:
        try:
            stored = await self._store.update(session, expected_version)
        except NotFoundError:
            logger.warning(f"Session {session.ticket} vanished before its update was stored")
            return
        session.version = stored.version

    async def remove(self, ticket: str) -> bool:
        """
        Delete a session.

        Safe to call from inside hold() for the same ticket.
        """
        removed = await self._store.delete(ticket)
        if ticket in self._holders:
            self._removed.add(ticket)
        if removed:
            logger.info(f"Session {ticket} removed")
        return removed

    async def get(self, ticket: str) -> Session | None:
        """Read a session without touching it."""
        return await self._store.get(ticket)

    async def count(self) -> int:
        return await self._store.count()

    def is_held(self, ticket: str) -> bool:
        return ticket in self._holders
