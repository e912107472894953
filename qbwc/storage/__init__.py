# Storage Layer
# Pluggable persistence for the QBWC sync service
#
# This module provides:
# - Port interfaces (ABCs) defining storage contracts
# - In-memory implementations for development/testing
# - SQLAlchemy implementations for production persistence
# - A Redis session store for multi-instance deployments
# - Factory for configuration-based adapter selection

from .ports import (
    SessionStore,
    ConnectionStore,
    ConnectionRecord,
    ConnectionStatus,
    SyncLogStore,
    SyncLogEntry,
    StorageBundle,
    StorageError,
    NotFoundError,
    ConflictError,
)
from .factory import (
    StorageSettings,
    StorageBackend,
    create_storage,
    create_storage_from_env,
    create_memory_storage,
    create_sqlite_storage,
    settings_from_env,
)

__all__ = [
    # Ports
    "SessionStore",
    "ConnectionStore",
    "ConnectionRecord",
    "ConnectionStatus",
    "SyncLogStore",
    "SyncLogEntry",
    "StorageBundle",
    "StorageError",
    "NotFoundError",
    "ConflictError",
    # Factory
    "StorageSettings",
    "StorageBackend",
    "create_storage",
    "create_storage_from_env",
    "create_memory_storage",
    "create_sqlite_storage",
    "settings_from_env",
]
