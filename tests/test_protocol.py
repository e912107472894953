import xml.etree.ElementTree as ET

import pytest

from qbwc.protocol import (
    AuthenticateRequest,
    EnvelopeError,
    MethodName,
    ReceiveResponseXmlRequest,
    SendRequestXmlRequest,
    classify,
    REQUEST_MODELS,
    decode_envelope,
    encode_reply,
    extract_reference,
    parse_directory,
    response_status,
)

INTUIT = "{http://developer.intuit.com/}"


def _typed(call):
    return REQUEST_MODELS[call.known_method].model_validate(call.fields)


def _result(document: str, method: str) -> ET.Element:
    root = ET.fromstring(document.encode("utf-8"))
    return next(root.iter(f"{INTUIT}{method}Result"))


# =============================================================================
# Envelope decoding
# =============================================================================

def test_decode_authenticate(envelope):
    call = decode_envelope(envelope("authenticate", strUserName="svc", strPassword="p@ss"))
    assert call.method == "authenticate"
    assert call.known_method == MethodName.AUTHENTICATE

    request = _typed(call)
    assert isinstance(request, AuthenticateRequest)
    assert request.username == "svc"
    assert request.password == "p@ss"


def test_decode_send_request_fields(envelope):
    call = decode_envelope(envelope(
        "sendRequestXML",
        ticket="t-1",
        strHCPResponse="<QBXML/>".replace("<", "&lt;").replace(">", "&gt;"),
        strCompanyFileName="C:\\Company.qbw",
        qbXMLCountry="US",
        qbXMLMajorVers="13",
        qbXMLMinorVers="0",
    ))
    request = _typed(call)
    assert isinstance(request, SendRequestXmlRequest)
    assert request.ticket == "t-1"
    assert request.hcp_response == "<QBXML/>"
    assert request.company_file_name == "C:\\Company.qbw"
    assert request.major_version == "13"


def test_decode_prefixed_method_element():
    body = (
        '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/" '
        'xmlns:ns1="http://developer.intuit.com/">'
        "<SOAP-ENV:Body><ns1:closeConnection><ns1:ticket>t-9</ns1:ticket></ns1:closeConnection>"
        "</SOAP-ENV:Body></SOAP-ENV:Envelope>"
    )
    call = decode_envelope(body)
    assert call.known_method == MethodName.CLOSE_CONNECTION
    assert call.fields == {"ticket": "t-9"}


def test_missing_fields_decode_to_none(envelope):
    request = _typed(decode_envelope(envelope("receiveResponseXML", ticket="t-1", hresult=None)))
    assert isinstance(request, ReceiveResponseXmlRequest)
    assert request.ticket == "t-1"
    assert request.hresult is None
    assert request.response is None
    assert request.message is None


def test_unknown_method_decodes_without_request(envelope):
    call = decode_envelope(envelope("interactiveDone", ticket="t-1"))
    assert call.method == "interactiveDone"
    assert call.known_method is None
    assert call.known_method not in REQUEST_MODELS


@pytest.mark.parametrize("body", [
    b"",
    b"   ",
    b"<not-xml",
    b"<Envelope/>",
    b'<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body/></soap:Envelope>',
    b"<root><Body><serverVersion/></Body></root>",
])
def test_undecodable_envelopes_raise(body):
    with pytest.raises(EnvelopeError):
        decode_envelope(body)


# =============================================================================
# Reply encoding
# =============================================================================

def test_scalar_reply_shape():
    document = encode_reply("serverVersion", "QBWC Sync Server v1.0")
    root = ET.fromstring(document.encode("utf-8"))

    assert root.tag == "{http://schemas.xmlsoap.org/soap/envelope/}Envelope"
    response = next(root.iter(f"{INTUIT}serverVersionResponse"))
    assert response is not None
    assert _result(document, "serverVersion").text == "QBWC Sync Server v1.0"


def test_pair_reply_renders_string_children():
    document = encode_reply("authenticate", ["abc-123", ""])
    strings = _result(document, "authenticate").findall(f"{INTUIT}string")
    assert [s.text or "" for s in strings] == ["abc-123", ""]


def test_reply_escapes_payload():
    payload = '<?xml version="1.0"?><QBXML a="1">&</QBXML>'
    document = encode_reply("sendRequestXML", payload)
    assert "&lt;QBXML a=&quot;1&quot;&gt;&amp;&lt;/QBXML&gt;" in document
    assert _result(document, "sendRequestXML").text == payload


def test_none_reply_is_empty_result():
    document = encode_reply("getLastError", None)
    assert "<getLastErrorResult></getLastErrorResult>" in document


# =============================================================================
# Response interpretation
# =============================================================================

TIME_TRACKING_RS = """<?xml version="1.0" ?>
<QBXML>
  <QBXMLMsgsRs>
    <TimeTrackingAddRs requestID="1" statusCode="0" statusSeverity="Info" statusMessage="Status OK">
      <TimeTrackingRet>
        <TxnID>1A2B-1700000000</TxnID>
        <TxnDate>2024-03-09</TxnDate>
      </TimeTrackingRet>
    </TimeTrackingAddRs>
  </QBXMLMsgsRs>
</QBXML>"""

EMPLOYEE_RS = """<?xml version="1.0" ?>
<QBXML>
  <QBXMLMsgsRs>
    <EmployeeQueryRs statusCode="0" statusSeverity="Info" statusMessage="Status OK">
      <EmployeeRet><ListID>80000001-1</ListID><Name>Dana Smith</Name></EmployeeRet>
      <EmployeeRet><ListID>80000002-1</ListID><Name>Lee Park</Name></EmployeeRet>
      <EmployeeRet><ListID>80000003-1</ListID></EmployeeRet>
    </EmployeeQueryRs>
  </QBXMLMsgsRs>
</QBXML>"""


@pytest.mark.parametrize("hresult", [None, "", "0", " 0 "])
def test_empty_or_zero_hresult_is_success(hresult):
    outcome = classify("<QBXML/>", hresult, None)
    assert outcome.success
    assert outcome.detail is None


def test_failure_keeps_payload_as_detail():
    outcome = classify("<QBXML>partial</QBXML>", "0x80040400", "QuickBooks found an error")
    assert not outcome.success
    assert outcome.hresult == "0x80040400"
    assert outcome.message == "QuickBooks found an error"
    assert outcome.detail == "<QBXML>partial</QBXML>"


def test_extract_txn_id_for_time_entry():
    assert extract_reference("time_entry", TIME_TRACKING_RS) == "1A2B-1700000000"


def test_extract_reference_without_matcher_or_match():
    assert extract_reference("paycheck", TIME_TRACKING_RS) is None
    assert extract_reference("time_entry", EMPLOYEE_RS) is None
    assert extract_reference("time_entry", "not xml at all") is None
    assert extract_reference(None, TIME_TRACKING_RS) is None


def test_parse_directory_skips_incomplete_entries():
    entries = parse_directory(EMPLOYEE_RS)
    assert [(e.list_id, e.name) for e in entries] == [
        ("80000001-1", "Dana Smith"),
        ("80000002-1", "Lee Park"),
    ]
    assert parse_directory("") == []
    assert parse_directory("<broken") == []


def test_response_status_reports_errors():
    payload = (
        '<QBXML><QBXMLMsgsRs><TimeTrackingAddRs statusCode="3120" statusSeverity="Error" '
        'statusMessage="Object not found"/></QBXMLMsgsRs></QBXML>'
    )
    status = response_status(payload)
    assert status.request == "TimeTrackingAddRs"
    assert status.code == "3120"
    assert status.is_error

    ok = response_status(TIME_TRACKING_RS)
    assert ok.code == "0"
    assert not ok.is_error
    assert response_status(None) is None


def test_every_method_has_request_model():
    assert set(REQUEST_MODELS) == set(MethodName)
