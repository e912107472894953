import xml.etree.ElementTree as ET

import pytest

from qbwc.qbxml import (
    EmployeeMapping,
    InMemoryTimeExportRepository,
    QbxmlDirectoryQueryBuilder,
    QbxmlPayloadBuilder,
    TimeExport,
    TimeExportRecorder,
    TimeExportStatus,
    format_duration,
    qwc_file,
)


def _qbxml_root(document: str) -> ET.Element:
    # Drop the <?qbxml?> processing instruction line
    body = "\n".join(line for line in document.splitlines() if not line.startswith("<?"))
    return ET.fromstring(body)


@pytest.fixture
def exports() -> InMemoryTimeExportRepository:
    return InMemoryTimeExportRepository()


@pytest.mark.parametrize("hours,expected", [
    (40, "PT40H0M"),
    (38.5, "PT38H30M"),
    (7.25, "PT7H15M"),
    (0, "PT0H0M"),
    (9.999, "PT10H0M"),
])
def test_format_duration(hours, expected):
    assert format_duration(hours) == expected


@pytest.mark.asyncio
async def test_directory_query_requests_active_employees():
    document = await QbxmlDirectoryQueryBuilder().generate()
    assert '<?qbxml version="13.0"?>' in document

    root = _qbxml_root(document)
    query = root.find("QBXMLMsgsRq/EmployeeQueryRq")
    assert query.findtext("ActiveStatus") == "ActiveOnly"


@pytest.mark.asyncio
async def test_time_entry_payload(exports):
    await exports.add_mapping(EmployeeMapping("person-1", "80000001-1", "Dana Smith"))
    export = await exports.add_export(TimeExport(
        personnel_id="person-1",
        week_start_date="2024-03-03",
        week_end_date="2024-03-09",
        total_hours=38.5,
    ))

    builder = QbxmlPayloadBuilder(exports, app_name="Acme & Co")
    document = await builder.generate("time_entry", export.id, "qbPendingTimeExport")

    add = _qbxml_root(document).find("QBXMLMsgsRq/TimeTrackingAddRq/TimeTrackingAdd")
    assert add.findtext("TxnDate") == "2024-03-09"
    assert add.findtext("EntityRef/ListID") == "80000001-1"
    assert add.findtext("Duration") == "PT38H30M"
    assert add.findtext("Notes") == "Week of 2024-03-03 - Synced from Acme & Co"


@pytest.mark.asyncio
async def test_time_entry_without_mapping_builds_nothing(exports):
    export = await exports.add_export(TimeExport("person-9", "2024-03-03", "2024-03-09", 40))
    builder = QbxmlPayloadBuilder(exports)

    assert await builder.generate("time_entry", export.id, "qbPendingTimeExport") is None
    assert await builder.generate("time_entry", "missing", "qbPendingTimeExport") is None


@pytest.mark.asyncio
async def test_inactive_mapping_builds_nothing(exports):
    await exports.add_mapping(EmployeeMapping("person-1", "80000001-1", "Dana Smith", is_active=False))
    export = await exports.add_export(TimeExport("person-1", "2024-03-03", "2024-03-09", 40))

    assert await QbxmlPayloadBuilder(exports).generate("time_entry", export.id, "qbPendingTimeExport") is None


@pytest.mark.asyncio
async def test_paycheck_query_payload(exports):
    builder = QbxmlPayloadBuilder(exports)

    document = await builder.generate("paycheck", "2024-03-01:2024-03-15", "payPeriod")
    query = _qbxml_root(document).find("QBXMLMsgsRq/PaycheckQueryRq")
    assert query.findtext("TxnDateRangeFilter/FromTxnDate") == "2024-03-01"
    assert query.findtext("TxnDateRangeFilter/ToTxnDate") == "2024-03-15"

    assert await builder.generate("paycheck", "2024-03-01", "payPeriod") is None


@pytest.mark.asyncio
async def test_unrouted_type_builds_nothing(exports):
    builder = QbxmlPayloadBuilder(exports)
    assert await builder.generate("invoice", "inv-1", "invoice") is None

    async def invoice(reference_id: str) -> str:
        return f"<QBXML>{reference_id}</QBXML>"

    builder.register("invoice", "invoice", invoice)
    assert await builder.generate("invoice", "inv-1", "invoice") == "<QBXML>inv-1</QBXML>"


@pytest.mark.asyncio
async def test_recorder_marks_export_exported(exports):
    export = await exports.add_export(TimeExport("person-1", "2024-03-03", "2024-03-09", 40))
    recorder = TimeExportRecorder(exports)

    assert await recorder.record("time_entry", "qbPendingTimeExport", export.id, "TXN-1")

    stored = await exports.get_export(export.id)
    assert stored.status == TimeExportStatus.EXPORTED
    assert stored.qb_txn_id == "TXN-1"
    assert stored.exported_at is not None


@pytest.mark.asyncio
async def test_recorder_ignores_other_references(exports):
    recorder = TimeExportRecorder(exports)
    assert not await recorder.record("paycheck", "payPeriod", "2024-03-01:2024-03-15", "TXN-1")
    assert not await recorder.record("time_entry", "qbPendingTimeExport", "missing", "TXN-1")


def test_qwc_file():
    document = qwc_file(
        app_name="Acme Time",
        app_url="https://sync.example.com/qbwc",
        username="svc",
        run_every_minutes=30,
        owner_id="{OWNER}",
        file_id="{FILE}",
    )
    root = ET.fromstring(document)

    assert root.tag == "QBWCXML"
    assert root.findtext("AppURL") == "https://sync.example.com/qbwc"
    assert root.findtext("AppSupport") == "https://sync.example.com/qbwc"
    assert root.findtext("UserName") == "svc"
    assert root.findtext("OwnerID") == "{OWNER}"
    assert root.findtext("Scheduler/RunEveryNMinutes") == "30"


def test_qwc_file_generates_braced_guids():
    root = ET.fromstring(qwc_file("Acme", "https://x/qbwc", "svc", 60))
    owner = root.findtext("OwnerID")
    assert owner.startswith("{") and owner.endswith("}")
    assert owner != root.findtext("FileID")
