# Session Registry
# Web Connector sessions, per-ticket serialization and TTL eviction

from qbwc.session.session import (
    Session,
    SessionState,
    DispatchedWork,
    WorkKind,
    new_ticket,
)
from qbwc.session.manager import SessionRegistry

__all__ = [
    "Session",
    "SessionState",
    "DispatchedWork",
    "WorkKind",
    "new_ticket",
    "SessionRegistry",
]
