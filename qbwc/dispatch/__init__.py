# Dispatch
# The QBWC state machine, its error taxonomy and credential check

from qbwc.dispatch.errors import (
    ErrorKind,
    QbwcError,
    AuthenticationFailure,
    UnknownSession,
    ProtocolViolation,
    UpstreamCollaboratorError,
    MalformedRequest,
)
from qbwc.dispatch.credentials import CredentialValidator, ConnectionCredentialValidator
from qbwc.dispatch.dispatcher import (
    DEFAULT_SERVER_VERSION,
    DEFAULT_MIN_CLIENT_VERSION,
    MethodRoute,
    ProtocolDispatcher,
    parse_client_version,
)

__all__ = [
    "ErrorKind",
    "QbwcError",
    "AuthenticationFailure",
    "UnknownSession",
    "ProtocolViolation",
    "UpstreamCollaboratorError",
    "MalformedRequest",
    "CredentialValidator",
    "ConnectionCredentialValidator",
    "DEFAULT_SERVER_VERSION",
    "DEFAULT_MIN_CLIENT_VERSION",
    "MethodRoute",
    "ProtocolDispatcher",
    "parse_client_version",
]
