"""
Sync Log Entries

Constructors for the operator-visible sync log lines the dispatcher writes.
One helper per event, so the wording stays consistent across call sites.
"""

from qbwc.protocol.interpreter import Outcome
from qbwc.storage.ports import SyncLogEntry

COMPLETED = "completed"
FAILED = "failed"
IMPORT = "import"
EXPORT = "export"


# =============================================================================
# Helper functions to create sync log entries
# =============================================================================

def log_connect(ticket: str, username: str) -> SyncLogEntry:
    """Create entry for a successful authenticate."""
    return SyncLogEntry(
        session_id=ticket,
        operation="connect",
        direction=IMPORT,
        status=COMPLETED,
        message=f"Authenticated user: {username}",
    )


def log_sync(
    ticket: str,
    outcome: Outcome,
    record_type: str | None = None,
    record_id: str | None = None,
    status_message: str | None = None,
) -> SyncLogEntry:
    """
    Create entry for one receiveResponseXML round trip.

    Failures carry the agent's payload as error detail, prefixed with the
    qbXML statusMessage when QuickBooks supplied one.
    """
    error_details = None
    if not outcome.success:
        parts = [p for p in (status_message, outcome.detail) if p]
        error_details = "\n".join(parts) or None
    return SyncLogEntry(
        session_id=ticket,
        operation="sync",
        direction=IMPORT,
        status=COMPLETED if outcome.success else FAILED,
        message=outcome.message or "Response received",
        error_details=error_details,
        record_type=record_type,
        record_id=record_id,
    )


def log_directory_import(ticket: str, count: int) -> SyncLogEntry:
    """Create entry for a parsed employee directory."""
    return SyncLogEntry(
        session_id=ticket,
        operation="sync_employees",
        direction=IMPORT,
        status=COMPLETED,
        message=f"Received {count} employees from QuickBooks",
        record_type="employee",
        record_count=count,
    )


def log_connection_error(ticket: str, hresult: str, message: str) -> SyncLogEntry:
    """Create entry for an agent-reported connection error."""
    return SyncLogEntry(
        session_id=ticket,
        operation="error",
        direction=IMPORT,
        status=FAILED,
        error_details=f"{hresult}: {message}",
    )


def log_disconnect(ticket: str, request_count: int) -> SyncLogEntry:
    """Create entry for closeConnection."""
    return SyncLogEntry(
        session_id=ticket,
        operation="disconnect",
        direction=EXPORT,
        status=COMPLETED,
        message=f"Session closed after {request_count} requests",
    )
