"""
QBWC SOAP Envelope Model

Every call from the QuickBooks Web Connector arrives as a SOAP 1.1 envelope
whose body holds exactly one method element in the Intuit namespace:

    <soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
      <soap:Body>
        <sendRequestXML xmlns="http://developer.intuit.com/">
          <ticket>...</ticket>
          ...
        </sendRequestXML>
      </soap:Body>
    </soap:Envelope>

This module turns that envelope into:
- the method name (MethodName, or the raw string for unknown methods)
- a typed, method-specific request model

Missing fields decode to None. Converting them to the protocol's empty-string
defaults happens at the edges (the dispatcher and the reply encoder), never
while decoding. Only an envelope that cannot be parsed at all raises.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

INTUIT_NAMESPACE = "http://developer.intuit.com/"
SOAP_NAMESPACE = "http://schemas.xmlsoap.org/soap/envelope/"


class MethodName(str, Enum):
    """
    The fixed QBWC method set.

    A session flows:
    1. serverVersion / clientVersion -> handshake, no session
    2. authenticate -> issues a ticket
    3. sendRequestXML / receiveResponseXML -> one work item per round trip
    4. connectionError / getLastError -> agent-side failure reporting
    5. closeConnection -> ends the session
    """
    SERVER_VERSION = "serverVersion"
    CLIENT_VERSION = "clientVersion"
    AUTHENTICATE = "authenticate"
    SEND_REQUEST_XML = "sendRequestXML"
    RECEIVE_RESPONSE_XML = "receiveResponseXML"
    CONNECTION_ERROR = "connectionError"
    GET_LAST_ERROR = "getLastError"
    CLOSE_CONNECTION = "closeConnection"


# === Sentinels ===
# Literal replies the agent interprets as instructions.

NOT_VALID_USER = "nvu"
NO_WORK = ""
ABORT = "-1"
MORE_WORK = "1"
ALL_DONE = "0"
DONE = "done"
CLOSED = "OK"
CLIENT_VERSION_ERROR_PREFIX = "E:"


class EnvelopeError(Exception):
    """The inbound body is not a usable SOAP envelope."""
    pass


# === Typed requests ===

class QbwcRequest(BaseModel):
    """Base for method-specific requests. Field aliases are the wire names."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class ServerVersionRequest(QbwcRequest):
    pass


class ClientVersionRequest(QbwcRequest):
    version: str | None = Field(default=None, alias="strVersion")


class AuthenticateRequest(QbwcRequest):
    username: str | None = Field(default=None, alias="strUserName")
    password: str | None = Field(default=None, alias="strPassword", repr=False)


class SendRequestXmlRequest(QbwcRequest):
    ticket: str | None = None
    hcp_response: str | None = Field(default=None, alias="strHCPResponse", repr=False)
    company_file_name: str | None = Field(default=None, alias="strCompanyFileName")
    country: str | None = Field(default=None, alias="qbXMLCountry")
    major_version: str | None = Field(default=None, alias="qbXMLMajorVers")
    minor_version: str | None = Field(default=None, alias="qbXMLMinorVers")


class ReceiveResponseXmlRequest(QbwcRequest):
    ticket: str | None = None
    response: str | None = Field(default=None, repr=False)
    hresult: str | None = None
    message: str | None = None


class ConnectionErrorRequest(QbwcRequest):
    ticket: str | None = None
    hresult: str | None = None
    message: str | None = None


class GetLastErrorRequest(QbwcRequest):
    ticket: str | None = None


class CloseConnectionRequest(QbwcRequest):
    ticket: str | None = None


REQUEST_MODELS: dict[MethodName, type[QbwcRequest]] = {
    MethodName.SERVER_VERSION: ServerVersionRequest,
    MethodName.CLIENT_VERSION: ClientVersionRequest,
    MethodName.AUTHENTICATE: AuthenticateRequest,
    MethodName.SEND_REQUEST_XML: SendRequestXmlRequest,
    MethodName.RECEIVE_RESPONSE_XML: ReceiveResponseXmlRequest,
    MethodName.CONNECTION_ERROR: ConnectionErrorRequest,
    MethodName.GET_LAST_ERROR: GetLastErrorRequest,
    MethodName.CLOSE_CONNECTION: CloseConnectionRequest,
}


@dataclass
class InboundCall:
    """
    A decoded SOAP call.

    Attributes:
        method: The method element's local name, as sent
        fields: Child element local name -> text (None for empty elements)
    """
    method: str
    fields: dict[str, str | None] = field(default_factory=dict)

    @property
    def known_method(self) -> MethodName | None:
        try:
            return MethodName(self.method)
        except ValueError:
            return None


def _local_name(tag: str) -> str:
    """Strip the '{namespace}' prefix ElementTree puts on qualified tags."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def decode_envelope(body: bytes | str) -> InboundCall:
    """
    Parse a SOAP envelope into the method name and its raw fields.

    Args:
        body: Raw HTTP request body

    Returns:
        The decoded call

    Raises:
        EnvelopeError: If the body is not well-formed XML or carries no method
    """
    if not body or not body.strip():
        raise EnvelopeError("Empty request body")

    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise EnvelopeError(f"Malformed SOAP envelope: {e}") from e

    if _local_name(root.tag) != "Envelope":
        raise EnvelopeError(f"Unexpected root element: {_local_name(root.tag)}")

    soap_body = None
    for child in root:
        if _local_name(child.tag) == "Body":
            soap_body = child
            break
    if soap_body is None:
        raise EnvelopeError("SOAP envelope has no Body")

    method_element = next(iter(soap_body), None)
    if method_element is None:
        raise EnvelopeError("SOAP Body carries no method element")

    fields: dict[str, str | None] = {}
    for child in method_element:
        name = _local_name(child.tag)
        # First occurrence wins; the agent never repeats a field
        if name not in fields:
            fields[name] = child.text

    return InboundCall(method=_local_name(method_element.tag), fields=fields)
