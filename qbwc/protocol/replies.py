"""
QBWC SOAP Reply Encoder

Wraps a handler result in the envelope the Web Connector expects:

    <soap:Envelope ...>
      <soap:Body>
        <{method}Response xmlns="http://developer.intuit.com/">
          <{method}Result>...</{method}Result>
        </{method}Response>
      </soap:Body>
    </soap:Envelope>

Two result shapes exist:
- scalar: a single string rendered as the Result element's text
- pair: authenticate's [ticket, restriction], rendered as two <string>
  children of the Result element

The envelope text is fixed; the agent is strict about it.
"""

from collections.abc import Sequence
from xml.sax.saxutils import escape

from qbwc.protocol.envelope import INTUIT_NAMESPACE, SOAP_NAMESPACE

Reply = str | list[str]

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}

_ENVELOPE_OPEN = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    f'<soap:Envelope xmlns:soap="{SOAP_NAMESPACE}" '
    'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
    'xmlns:xsd="http://www.w3.org/2001/XMLSchema">\n'
    "  <soap:Body>\n"
)
_ENVELOPE_CLOSE = (
    "  </soap:Body>\n"
    "</soap:Envelope>"
)


def escape_xml(value: str | None) -> str:
    """Escape &, <, >, " and ' for element text."""
    if not value:
        return ""
    return escape(value, _XML_ENTITIES)


def result_element(method: str) -> str:
    """Name of the Result element for a method."""
    return f"{method}Result"


def _wrap(method: str, result_body: str) -> str:
    element = result_element(method)
    return (
        f"{_ENVELOPE_OPEN}"
        f'    <{method}Response xmlns="{INTUIT_NAMESPACE}">\n'
        f"      <{element}>{result_body}</{element}>\n"
        f"    </{method}Response>\n"
        f"{_ENVELOPE_CLOSE}"
    )


def encode_scalar(method: str, result: str | None) -> str:
    """Encode a single-string result."""
    return _wrap(method, escape_xml(result))


def encode_pair(method: str, result: Sequence[str | None]) -> str:
    """
    Encode an array-of-string result (authenticate).

    Each item becomes a <string> element, in order.
    """
    items = "".join(f"<string>{escape_xml(item)}</string>" for item in result)
    return _wrap(method, items)


def encode_reply(method: str, result: Reply | None) -> str:
    """
    Encode whichever shape the result has.

    Args:
        method: Method name as received (unknown methods are echoed back)
        result: String or list of strings

    Returns:
        Complete SOAP response document
    """
    if isinstance(result, (list, tuple)):
        return encode_pair(method, result)
    return encode_scalar(method, result)
