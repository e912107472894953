"""
Dispatch Errors

Handlers raise these instead of returning sentinel strings. The dispatcher
maps each ErrorKind to the sentinel the calling method must reply with, so
that mapping lives in exactly one place.

EnvelopeError (raised by the decoder) is the only failure that reaches the
transport; everything here ends as an HTTP 200 protocol reply.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories the dispatcher knows how to answer."""
    AUTHENTICATION_FAILURE = "authentication_failure"
    UNKNOWN_SESSION = "unknown_session"
    PROTOCOL_VIOLATION = "protocol_violation"
    UPSTREAM_COLLABORATOR = "upstream_collaborator"
    MALFORMED_REQUEST = "malformed_request"


class QbwcError(Exception):
    """Base for typed protocol errors."""
    kind: ErrorKind = ErrorKind.UPSTREAM_COLLABORATOR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class AuthenticationFailure(QbwcError):
    """Credentials rejected, or no active connection configured."""
    kind = ErrorKind.AUTHENTICATION_FAILURE


class UnknownSession(QbwcError):
    """Ticket missing, never issued, closed or evicted."""
    kind = ErrorKind.UNKNOWN_SESSION

    def __init__(self, ticket: str | None):
        super().__init__(f"Unknown session ticket: {ticket!r}")
        self.ticket = ticket


class ProtocolViolation(QbwcError):
    """A call arrived that the session's state does not allow."""
    kind = ErrorKind.PROTOCOL_VIOLATION


class UpstreamCollaboratorError(QbwcError):
    """A collaborator (store, queue, builder) failed while handling a call."""
    kind = ErrorKind.UPSTREAM_COLLABORATOR


class MalformedRequest(QbwcError):
    """A request that cannot be acted on even with defaulted fields."""
    kind = ErrorKind.MALFORMED_REQUEST
