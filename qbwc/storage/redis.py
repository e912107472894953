"""
Redis Storage Adapters

Redis-based implementation of SessionStore.
Ideal for:
- Several server instances behind one load balancer sharing tickets
- Native key expiry doing most of the idle-session eviction

Uses redis.asyncio for async operations.

Note: the connection configuration, sync log and sync queue stay in SQL
storage; only session state benefits from Redis expiry.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from redis.asyncio import Redis
from redis.exceptions import WatchError

from qbwc.session.session import Session
from qbwc.storage.ports import (
    SessionStore,
    NotFoundError,
    ConflictError,
)

logger = logging.getLogger(__name__)

# Optimistic touch() retries before giving up to a concurrent writer
_TOUCH_RETRIES = 5


class RedisSessionStore(SessionStore):
    """
    Redis-based session store with TTL support.

    Key patterns:
    - session:{ticket} -> JSON-encoded Session, EX = ttl_seconds
    - sessions -> SET of live tickets (for count and the eviction sweep)

    Every write re-arms the key TTL, so an idle session simply disappears.
    touch() and update() run under WATCH/MULTI; a concurrent write aborts
    the transaction with WatchError.
    """

    def __init__(
        self,
        redis: Redis,
        key_prefix: str = "qbwc",
    ) -> None:
        """
        Initialize Redis session store.

        Args:
            redis: Redis async client (decode_responses=True)
            key_prefix: Prefix for all keys
        """
        self._redis = redis
        self._prefix = key_prefix

    def _session_key(self, ticket: str) -> str:
        return f"{self._prefix}:session:{ticket}"

    def _index_key(self) -> str:
        return f"{self._prefix}:sessions"

    async def create(self, session: Session) -> Session:
        created = await self._redis.set(
            self._session_key(session.ticket),
            session.model_dump_json(),
            ex=session.ttl_seconds,
            nx=True,
        )
        if not created:
            raise ConflictError(f"Ticket {session.ticket} already in use")

        await self._redis.sadd(self._index_key(), session.ticket)
        return session.model_copy(deep=True)

    async def get(self, ticket: str) -> Session | None:
        data = await self._redis.get(self._session_key(ticket))
        if data is None:
            return None
        return Session.model_validate_json(data)

    async def touch(self, ticket: str, now: datetime) -> Session | None:
        key = self._session_key(ticket)
        for _ in range(_TOUCH_RETRIES):
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    await pipe.watch(key)
                    data = await pipe.get(key)
                    if data is None:
                        await pipe.unwatch()
                        await self._redis.srem(self._index_key(), ticket)
                        return None

                    session = Session.model_validate_json(data)
                    pipe.multi()
                    if session.is_expired(now):
                        pipe.delete(key)
                        pipe.srem(self._index_key(), ticket)
                        await pipe.execute()
                        return None

                    session.last_activity_at = now
                    pipe.set(key, session.model_dump_json(), ex=session.ttl_seconds)
                    await pipe.execute()
                    return session
            except WatchError:
                logger.debug(f"Concurrent write on session {ticket} during touch, retrying")

        raise ConflictError(f"Session {ticket} kept changing during touch")

    async def update(self, session: Session, expected_version: int) -> Session:
        key = self._session_key(session.ticket)
        stored = session.model_copy(deep=True, update={"version": expected_version + 1})
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                data = await pipe.get(key)
                if data is None:
                    raise NotFoundError(f"Session {session.ticket} not found")

                current = Session.model_validate_json(data)
                if current.version != expected_version:
                    raise ConflictError(
                        f"Session {session.ticket} is at version {current.version}, "
                        f"expected {expected_version}"
                    )

                pipe.multi()
                pipe.set(key, stored.model_dump_json(), ex=stored.ttl_seconds)
                await pipe.execute()
        except WatchError as e:
            raise ConflictError(f"Session {session.ticket} changed during update") from e

        return stored

    async def delete(self, ticket: str) -> bool:
        removed = await self._redis.delete(self._session_key(ticket))
        await self._redis.srem(self._index_key(), ticket)
        return bool(removed)

    async def expire_idle(
        self,
        now: datetime,
        exclude: Iterable[str] = (),
    ) -> list[str]:
        """
        Prune the ticket index.

        Redis has already dropped most idle keys; this removes their index
        entries and deletes any session whose own clock says it is expired.
        """
        held = set(exclude)
        expired = []
        for ticket in await self._redis.smembers(self._index_key()):
            if ticket in held:
                continue
            session = await self.get(ticket)
            if session is None or session.is_expired(now):
                await self.delete(ticket)
                expired.append(ticket)
        return expired

    async def count(self) -> int:
        return await self._redis.scard(self._index_key())
