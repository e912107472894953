from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from qbwc.dispatch import ConnectionCredentialValidator, ProtocolDispatcher
from qbwc.qbxml import (
    EmployeeMapping,
    QbxmlDirectoryQueryBuilder,
    QbxmlPayloadBuilder,
    TimeExport,
    TimeExportRecorder,
    TimeExportStatus,
)
from qbwc.session import SessionRegistry
from qbwc.storage import ConnectionRecord, create_memory_storage


class FakeClock:
    """Settable naive-UTC clock."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 3, 4, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def soap_envelope(method: str, **fields: str | None) -> str:
    """Build a Web Connector style request envelope."""
    children = "".join(
        f"<{name}/>" if value is None else f"<{name}>{value}</{name}>"
        for name, value in fields.items()
    )
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/" '
        'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        'xmlns:xsd="http://www.w3.org/2001/XMLSchema">'
        "<soap:Body>"
        f'<{method} xmlns="http://developer.intuit.com/">{children}</{method}>'
        "</soap:Body>"
        "</soap:Envelope>"
    )


@pytest.fixture
def envelope():
    return soap_envelope


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def storage():
    bundle = await create_memory_storage()
    await bundle.connections.save(ConnectionRecord(
        company_name="Acme Staffing",
        wc_username="svc",
        wc_password="p@ss",
    ))
    yield bundle
    await bundle.close()


@pytest_asyncio.fixture
async def registry(storage, clock):
    return SessionRegistry(store=storage.sessions, session_ttl_seconds=1800, clock=clock)


@pytest_asyncio.fixture
async def dispatcher(storage, registry):
    return ProtocolDispatcher(
        registry=registry,
        credentials=ConnectionCredentialValidator(storage.connections),
        connections=storage.connections,
        work=storage.work,
        sync_log=storage.sync_log,
        payloads=QbxmlPayloadBuilder(storage.exports, app_name="Acme Time"),
        directory=QbxmlDirectoryQueryBuilder(),
        recorder=TimeExportRecorder(storage.exports),
    )


@pytest_asyncio.fixture
async def time_export(storage) -> TimeExport:
    """An approved export for a mapped employee."""
    await storage.exports.add_mapping(EmployeeMapping(
        personnel_id="person-1",
        qb_list_id="80000001-1234567890",
        qb_name="Dana Smith",
    ))
    return await storage.exports.add_export(TimeExport(
        personnel_id="person-1",
        week_start_date="2024-03-03",
        week_end_date="2024-03-09",
        total_hours=38.5,
        regular_hours=38.5,
        status=TimeExportStatus.APPROVED,
    ))
