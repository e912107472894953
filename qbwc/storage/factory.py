"""
Storage Factory

Environment-based configuration and factory for storage adapters.
Returns a StorageBundle with appropriate implementations based on settings.

Supported backends:
- memory: In-memory storage (development/testing)
- sqlite: SQLite with aiosqlite (single-node production)
- postgresql: PostgreSQL with asyncpg (distributed production)
- mysql: MySQL with aiomysql (distributed production)
- redis: Redis for SessionStore (optional overlay)

Usage:
    # From environment
    bundle = await create_storage_from_env()

    # From settings
    settings = StorageSettings(database_url="postgresql+asyncpg://...")
    bundle = await create_storage(settings)

    # Use in the dispatcher
    registry = SessionRegistry(store=bundle.sessions)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)

from qbwc.qbxml.exports import InMemoryTimeExportRepository, TimeExportRepository
from qbwc.queue.memory import InMemoryWorkQueue
from qbwc.queue.ports import WorkQueue
from qbwc.storage.ports import (
    StorageBundle,
    SessionStore,
    ConnectionStore,
    SyncLogStore,
)
from qbwc.storage.memory import (
    InMemorySessionStore,
    InMemoryConnectionStore,
    InMemorySyncLogStore,
)
from qbwc.storage.sqlalchemy import (
    SqlAlchemySessionStore,
    SqlAlchemyConnectionStore,
    SqlAlchemySyncLogStore,
    SqlAlchemyWorkQueue,
    SqlAlchemyTimeExportRepository,
)
from qbwc.storage.models import Base

logger = logging.getLogger(__name__)


class StorageBackend(str, Enum):
    """Supported storage backends."""
    MEMORY = "memory"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


@dataclass
class StorageSettings:
    """
    Configuration for storage layer.

    Attributes:
        backend: Storage backend type
        database_url: SQLAlchemy async connection URL (for SQL backends)
        redis_url: Redis connection URL (optional, for shared sessions)
        pool_size: Connection pool size for SQL
        pool_max_overflow: Max overflow for connection pool
        echo_sql: Whether to log SQL queries
        create_tables: Whether to auto-create tables on startup
        key_prefix: Prefix for Redis keys
    """
    backend: StorageBackend = StorageBackend.MEMORY
    database_url: str | None = None
    redis_url: str | None = None
    pool_size: int = 5
    pool_max_overflow: int = 10
    echo_sql: bool = False
    create_tables: bool = True
    key_prefix: str = "qbwc"


@dataclass
class StorageBundleImpl(StorageBundle):
    """
    StorageBundle implementation with cleanup support.
    """
    sessions: SessionStore
    connections: ConnectionStore
    sync_log: SyncLogStore
    work: WorkQueue
    exports: TimeExportRepository
    backend: StorageBackend = StorageBackend.MEMORY
    _engine: AsyncEngine | None = field(default=None, repr=False)
    _redis: Any = field(default=None, repr=False)  # redis.asyncio.Redis

    async def close(self) -> None:
        """Close all storage connections."""
        if self._engine:
            await self._engine.dispose()
        if self._redis:
            await self._redis.aclose()


def _parse_database_url(url: str) -> StorageBackend:
    """Determine backend from database URL."""
    if url.startswith("sqlite"):
        return StorageBackend.SQLITE
    elif url.startswith("postgresql") or url.startswith("postgres"):
        return StorageBackend.POSTGRESQL
    elif url.startswith("mysql"):
        return StorageBackend.MYSQL
    else:
        raise ValueError(f"Unsupported database URL scheme: {url}")


def _async_url(backend: StorageBackend, url: str) -> str:
    """Ensure the async driver is in the URL."""
    if backend == StorageBackend.SQLITE:
        if "+aiosqlite" not in url:
            url = url.replace("sqlite://", "sqlite+aiosqlite://")
    elif backend == StorageBackend.POSTGRESQL:
        if "+asyncpg" not in url:
            url = url.replace("postgresql://", "postgresql+asyncpg://")
            url = url.replace("postgres://", "postgresql+asyncpg://")
    elif backend == StorageBackend.MYSQL:
        if "+aiomysql" not in url:
            url = url.replace("mysql://", "mysql+aiomysql://")
    return url


def settings_from_env() -> StorageSettings:
    """
    Create StorageSettings from environment variables.

    Environment variables:
        QBWC_STORAGE_BACKEND: "memory", "sqlite", "postgresql", "mysql"
        QBWC_DATABASE_URL: SQLAlchemy async connection URL
        QBWC_REDIS_URL: Redis connection URL (optional)
        QBWC_POOL_SIZE: Connection pool size
        QBWC_POOL_MAX_OVERFLOW: Connection pool overflow
        QBWC_ECHO_SQL: "true" to log SQL
        QBWC_CREATE_TABLES: "false" to disable table creation
        QBWC_KEY_PREFIX: Redis key prefix
    """
    database_url = os.getenv("QBWC_DATABASE_URL")
    backend_str = os.getenv("QBWC_STORAGE_BACKEND", "memory")

    # Auto-detect backend from URL if provided
    if database_url and backend_str == "memory":
        backend = _parse_database_url(database_url)
    else:
        backend = StorageBackend(backend_str)

    return StorageSettings(
        backend=backend,
        database_url=database_url,
        redis_url=os.getenv("QBWC_REDIS_URL"),
        pool_size=int(os.getenv("QBWC_POOL_SIZE", "5")),
        pool_max_overflow=int(os.getenv("QBWC_POOL_MAX_OVERFLOW", "10")),
        echo_sql=os.getenv("QBWC_ECHO_SQL", "").lower() == "true",
        create_tables=os.getenv("QBWC_CREATE_TABLES", "true").lower() != "false",
        key_prefix=os.getenv("QBWC_KEY_PREFIX", "qbwc"),
    )


async def create_storage(settings: StorageSettings) -> StorageBundleImpl:
    """
    Create storage bundle from settings.

    Args:
        settings: Storage configuration

    Returns:
        Configured StorageBundle

    Raises:
        ValueError: If settings are invalid
    """
    engine: AsyncEngine | None = None
    redis_client: Redis | None = None

    # Create SQL engine if needed
    if settings.backend != StorageBackend.MEMORY:
        if not settings.database_url:
            raise ValueError(
                f"database_url required for backend {settings.backend}"
            )

        url = _async_url(settings.backend, settings.database_url)
        engine_kwargs: dict[str, Any] = {"echo": settings.echo_sql}
        # SQLite picks its own pool; the sizing knobs only apply to servers
        if settings.backend != StorageBackend.SQLITE:
            engine_kwargs["pool_size"] = settings.pool_size
            engine_kwargs["max_overflow"] = settings.pool_max_overflow
        engine = create_async_engine(url, **engine_kwargs)

        # Create tables if requested
        if settings.create_tables:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    # Create stores based on backend
    if settings.backend == StorageBackend.MEMORY:
        sessions: SessionStore = InMemorySessionStore()
        connections: ConnectionStore = InMemoryConnectionStore()
        sync_log: SyncLogStore = InMemorySyncLogStore()
        work: WorkQueue = InMemoryWorkQueue()
        exports: TimeExportRepository = InMemoryTimeExportRepository()
    else:
        # SQL backend
        assert engine is not None
        session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        sessions = SqlAlchemySessionStore(session_factory)
        connections = SqlAlchemyConnectionStore(session_factory)
        sync_log = SqlAlchemySyncLogStore(session_factory)
        work = SqlAlchemyWorkQueue(session_factory)
        exports = SqlAlchemyTimeExportRepository(session_factory)

    # Overlay Redis for sessions if configured
    if settings.redis_url:
        from qbwc.storage.redis import RedisSessionStore

        redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        sessions = RedisSessionStore(
            redis=redis_client,
            key_prefix=settings.key_prefix,
        )

    logger.info(
        f"Storage ready: backend={settings.backend.value}, "
        f"redis_sessions={bool(redis_client)}"
    )

    return StorageBundleImpl(
        sessions=sessions,
        connections=connections,
        sync_log=sync_log,
        work=work,
        exports=exports,
        backend=settings.backend,
        _engine=engine,
        _redis=redis_client,
    )


async def create_storage_from_env() -> StorageBundleImpl:
    """
    Create storage bundle from environment variables.

    Convenience function that combines settings_from_env() and create_storage().
    """
    settings = settings_from_env()
    return await create_storage(settings)


# Convenience for quick setup
async def create_memory_storage() -> StorageBundleImpl:
    """Create in-memory storage bundle (for testing)."""
    return await create_storage(StorageSettings(backend=StorageBackend.MEMORY))


async def create_sqlite_storage(
    path: str = ":memory:",
    create_tables: bool = True,
) -> StorageBundleImpl:
    """Create SQLite storage bundle."""
    url = f"sqlite+aiosqlite:///{path}"
    return await create_storage(StorageSettings(
        backend=StorageBackend.SQLITE,
        database_url=url,
        create_tables=create_tables,
    ))
