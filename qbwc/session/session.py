"""
Session Model

Represents one Web Connector sync session, from authenticate to
closeConnection.

Session Lifecycle:
1. IDLE - Authenticated, no outstanding work; new work may be dispatched
2. AWAITING_RESPONSE - One unit of work handed out, result pending
3. (removed) - closeConnection or TTL eviction; no stored object remains

"Unauthenticated" and "terminated" are not stored states: they are simply
"no entry for this ticket".
"""

from datetime import datetime, timedelta
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    """Derived session states."""
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


class WorkKind(str, Enum):
    """Tag for the outstanding unit of work."""
    DIRECTORY_QUERY = "directory_query"  # One-shot employee directory pull
    QUEUE_ITEM = "queue_item"            # Item drawn from the sync queue


class DispatchedWork(BaseModel):
    """
    The single outstanding unit of work for a session.

    For QUEUE_ITEM, item_id references the WorkQueue item; item_type and
    reference_type are kept so the response can be interpreted without
    another queue lookup.
    """
    kind: WorkKind
    item_id: str | None = None
    item_type: str | None = None
    reference_id: str | None = None
    reference_type: str | None = None
    dispatched_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def directory_query(cls) -> "DispatchedWork":
        return cls(kind=WorkKind.DIRECTORY_QUERY)

    @classmethod
    def queue_item(
        cls,
        item_id: str,
        item_type: str | None = None,
        reference_id: str | None = None,
        reference_type: str | None = None,
    ) -> "DispatchedWork":
        return cls(
            kind=WorkKind.QUEUE_ITEM,
            item_id=item_id,
            item_type=item_type,
            reference_id=reference_id,
            reference_type=reference_type,
        )

    @property
    def label(self) -> str:
        """Short description for logs."""
        if self.kind == WorkKind.QUEUE_ITEM:
            return f"queue item {self.item_id} ({self.item_type})"
        return "directory query"


def new_ticket() -> str:
    """Opaque session ticket."""
    return str(uuid4())


class Session(BaseModel):
    """
    A Web Connector session.

    Created by a successful authenticate; mutated only by the dispatcher
    while it holds the session's lock.
    """

    # === Identity ===
    ticket: str = Field(
        default_factory=new_ticket,
        description="Opaque session identifier presented on every call"
    )
    username: str = Field(
        ...,
        description="Authenticated Web Connector user"
    )

    # === Company file ===
    company_file: str | None = Field(
        default=None,
        description="Company file path reported by the agent (set once)"
    )

    # === Work ===
    request_count: int = Field(
        default=0,
        ge=0,
        description="Units of real work dispatched in this session"
    )
    dispatched: DispatchedWork | None = Field(
        default=None,
        description="Outstanding unit of work, if any"
    )

    # === Lifecycle ===
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the session was authenticated"
    )
    last_activity_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Last call seen for this ticket"
    )
    ttl_seconds: int = Field(
        default=1800,
        ge=1,
        description="Idle time after which the session is evicted"
    )

    # === Concurrency ===
    version: int = Field(
        default=0,
        description="Bumped on every stored update (compare-and-swap token)"
    )

    @property
    def state(self) -> SessionState:
        if self.dispatched is None:
            return SessionState.IDLE
        return SessionState.AWAITING_RESPONSE

    @property
    def expires_at(self) -> datetime:
        return self.last_activity_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.utcnow()) > self.expires_at

    def record_company_file(self, company_file: str | None) -> bool:
        """
        Store the company file on first sight.

        Returns:
            True if this call recorded it, False if absent or already known
        """
        if self.company_file or not company_file:
            return False
        self.company_file = company_file
        return True

    def dispatch(self, work: DispatchedWork) -> None:
        """Hand out a unit of work. Only valid from IDLE."""
        if self.dispatched is not None:
            raise ValueError(
                f"Session {self.ticket} already awaiting {self.dispatched.label}"
            )
        self.dispatched = work
        self.request_count += 1

    def complete(self) -> DispatchedWork | None:
        """Clear the outstanding work and return it."""
        work = self.dispatched
        self.dispatched = None
        return work
