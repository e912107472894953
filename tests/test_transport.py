import xml.etree.ElementTree as ET

import pytest
from fastapi.testclient import TestClient

from qbwc.config import ServiceSettings
from qbwc.storage import StorageSettings
from qbwc.transport import create_app

INTUIT = "{http://developer.intuit.com/}"


def _settings(**kwargs) -> ServiceSettings:
    values = {
        "public_url": "https://sync.example.com",
        "app_name": "Acme Time",
        "bootstrap_username": "svc",
        "bootstrap_password": "p@ss",
        "cleanup_interval_seconds": 3600,
    }
    values.update(kwargs)
    return ServiceSettings(**values)


@pytest.fixture
def client():
    app = create_app(_settings(), StorageSettings())
    with TestClient(app) as test_client:
        yield test_client


def _result(response, method: str):
    root = ET.fromstring(response.content)
    result = next(root.iter(f"{INTUIT}{method}Result"))
    strings = result.findall(f"{INTUIT}string")
    if strings:
        return [s.text or "" for s in strings]
    return result.text or ""


def test_server_version_over_http(client, envelope):
    response = client.post("/qbwc", content=envelope("serverVersion"), headers={"Content-Type": "text/xml"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/xml")
    assert _result(response, "serverVersion") == "QBWC Sync Server v1.0"


def test_session_over_http(client, envelope):
    response = client.post("/qbwc", content=envelope("authenticate", strUserName="svc", strPassword="p@ss"))
    ticket, status = _result(response, "authenticate")
    assert ticket and status == ""

    response = client.post("/qbwc", content=envelope("sendRequestXML", ticket=ticket))
    assert _result(response, "sendRequestXML") == ""

    response = client.post("/qbwc", content=envelope("closeConnection", ticket=ticket))
    assert _result(response, "closeConnection") == "OK"


def test_rejected_credentials_are_http_200(client, envelope):
    response = client.post("/qbwc", content=envelope("authenticate", strUserName="svc", strPassword="nope"))

    assert response.status_code == 200
    assert _result(response, "authenticate") == ["", "nvu"]


def test_malformed_envelope_is_bad_request(client):
    response = client.post("/qbwc", content=b"<soap:Envelope")
    assert response.status_code == 400


def test_info_page(client):
    response = client.get("/qbwc")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "https://sync.example.com/qbwc" in response.text


def test_qwc_download(client):
    response = client.get("/qbwc/qwc")

    assert response.status_code == 200
    assert 'filename="Acme_Time.qwc"' in response.headers["content-disposition"]
    root = ET.fromstring(response.content)
    assert root.findtext("AppURL") == "https://sync.example.com/qbwc"
    assert root.findtext("UserName") == "svc"
    assert root.findtext("Scheduler/RunEveryNMinutes") == "60"


def test_qwc_download_without_connection():
    app = create_app(_settings(bootstrap_username=None, bootstrap_password=None), StorageSettings())
    with TestClient(app) as test_client:
        assert test_client.get("/qbwc/qwc").status_code == 404


def test_health(client, envelope):
    client.post("/qbwc", content=envelope("authenticate", strUserName="svc", strPassword="p@ss"))

    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["sessions"] == 1
    assert body["storage"] == "memory"
    assert body["queue"]["pending"] == 0


def test_custom_endpoint_path(envelope):
    app = create_app(_settings(endpoint_path="/soap/qbwc"), StorageSettings())
    with TestClient(app) as test_client:
        response = test_client.post("/soap/qbwc", content=envelope("getLastError", ticket="t"))
        assert response.status_code == 200
        assert _result(response, "getLastError") == ""
        assert test_client.post("/qbwc", content=envelope("getLastError")).status_code == 404
