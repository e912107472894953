"""
Response Interpreter

Reads what the Web Connector reports back from QuickBooks.

Three questions are answered here:
- Did the request succeed? (hresult classification)
- Did QuickBooks create something we need to remember? (secondary
  identifiers such as a TimeTracking TxnID, matched per work-item type)
- What came back from a directory pull? (EmployeeRet ListID/Name pairs)

Extraction is best-effort. A payload that does not parse, or does not carry
the expected element, yields None or an empty list and never raises.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SUCCESS_HRESULTS = frozenset({"", "0"})


@dataclass(frozen=True)
class Outcome:
    """Classified result of one receiveResponseXML call."""
    success: bool
    hresult: str
    message: str
    detail: str | None = None  # Diagnostic payload, failures only


@dataclass(frozen=True)
class StatusInfo:
    """Status attributes carried on a qbXML *Rs element."""
    request: str
    code: str
    severity: str
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity.lower() == "error"


@dataclass(frozen=True)
class DirectoryEntry:
    """One employee/contact returned by a directory query."""
    list_id: str
    name: str


@dataclass(frozen=True)
class ReferenceMatcher:
    """
    Where a type-specific secondary identifier lives in a response.

    Attributes:
        container: Ret element holding the identifier (e.g. TimeTrackingRet)
        element: Identifier element inside the container (e.g. TxnID)
    """
    container: str
    element: str


# Work-item type -> identifier location
REFERENCE_MATCHERS: dict[str, ReferenceMatcher] = {
    "time_entry": ReferenceMatcher(container="TimeTrackingRet", element="TxnID"),
    "employee": ReferenceMatcher(container="EmployeeRet", element="ListID"),
}


def is_success(hresult: str | None) -> bool:
    """Empty or "0" means success; anything else is an agent-side failure."""
    return (hresult or "").strip() in SUCCESS_HRESULTS


def classify(
    response: str | None,
    hresult: str | None,
    message: str | None,
) -> Outcome:
    """
    Classify an agent-reported result.

    Args:
        response: qbXML response payload
        hresult: Agent result code
        message: Agent message

    Returns:
        Outcome, with the payload kept as detail on failure
    """
    success = is_success(hresult)
    return Outcome(
        success=success,
        hresult=hresult or "",
        message=message or "",
        detail=None if success else (response or None),
    )


def _parse(payload: str | None) -> ET.Element | None:
    if not payload or not payload.strip():
        return None
    try:
        return ET.fromstring(payload.strip())
    except ET.ParseError as e:
        logger.debug(f"Response payload is not well-formed qbXML: {e}")
        return None


def _local_name(tag: str) -> str:
    return tag.split("}", 1)[1] if tag.startswith("{") else tag


def _iter_named(root: ET.Element, name: str):
    for element in root.iter():
        if _local_name(element.tag) == name:
            yield element


def _child_text(element: ET.Element, name: str) -> str | None:
    for child in element:
        if _local_name(child.tag) == name and child.text:
            return child.text.strip()
    return None


def response_status(payload: str | None) -> StatusInfo | None:
    """
    First *Rs status block in a qbXML response, if any.

    QuickBooks reports per-request errors here even when the agent's
    hresult is "0", so callers surface it as diagnostic detail.
    """
    root = _parse(payload)
    if root is None:
        return None
    for element in root.iter():
        name = _local_name(element.tag)
        if name.endswith("Rs") and "statusCode" in element.attrib:
            return StatusInfo(
                request=name,
                code=element.attrib.get("statusCode", ""),
                severity=element.attrib.get("statusSeverity", ""),
                message=element.attrib.get("statusMessage", ""),
            )
    return None


def extract_reference(item_type: str | None, payload: str | None) -> str | None:
    """
    Pull the secondary identifier for a work-item type out of a response.

    Args:
        item_type: Work item type (e.g. "time_entry")
        payload: qbXML response

    Returns:
        The identifier, or None if the type has no matcher or nothing matched
    """
    matcher = REFERENCE_MATCHERS.get(item_type or "")
    if matcher is None:
        return None
    root = _parse(payload)
    if root is None:
        return None
    for container in _iter_named(root, matcher.container):
        value = _child_text(container, matcher.element)
        if value:
            return value
    return None


def parse_directory(payload: str | None) -> list[DirectoryEntry]:
    """
    Collect (ListID, Name) pairs from EmployeeRet elements.

    Entries missing either field are skipped.
    """
    root = _parse(payload)
    if root is None:
        return []
    entries = []
    for ret in _iter_named(root, "EmployeeRet"):
        list_id = _child_text(ret, "ListID")
        name = _child_text(ret, "Name")
        if list_id and name:
            entries.append(DirectoryEntry(list_id=list_id, name=name))
    return entries
