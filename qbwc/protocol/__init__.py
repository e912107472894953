# QBWC Protocol
# SOAP envelope decoding, reply encoding and qbXML response interpretation

from qbwc.protocol.envelope import (
    MethodName,
    InboundCall,
    EnvelopeError,
    QbwcRequest,
    ServerVersionRequest,
    ClientVersionRequest,
    AuthenticateRequest,
    SendRequestXmlRequest,
    ReceiveResponseXmlRequest,
    ConnectionErrorRequest,
    GetLastErrorRequest,
    CloseConnectionRequest,
    REQUEST_MODELS,
    decode_envelope,
)
from qbwc.protocol.replies import Reply, encode_reply, encode_scalar, encode_pair
from qbwc.protocol.interpreter import (
    Outcome,
    DirectoryEntry,
    StatusInfo,
    classify,
    is_success,
    extract_reference,
    parse_directory,
    response_status,
)

__all__ = [
    "MethodName",
    "InboundCall",
    "EnvelopeError",
    "QbwcRequest",
    "ServerVersionRequest",
    "ClientVersionRequest",
    "AuthenticateRequest",
    "SendRequestXmlRequest",
    "ReceiveResponseXmlRequest",
    "ConnectionErrorRequest",
    "GetLastErrorRequest",
    "CloseConnectionRequest",
    "REQUEST_MODELS",
    "decode_envelope",
    "Reply",
    "encode_reply",
    "encode_scalar",
    "encode_pair",
    "Outcome",
    "DirectoryEntry",
    "StatusInfo",
    "classify",
    "is_success",
    "extract_reference",
    "parse_directory",
    "response_status",
]
