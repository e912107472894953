"""Storage exceptions shared by every adapter."""


class StorageError(Exception):
    """Base exception for storage errors."""
    pass


class NotFoundError(StorageError):
    """Record not found."""
    pass


class ConflictError(StorageError):
    """Conflict during write (e.g., duplicate key or stale version)."""
    pass
