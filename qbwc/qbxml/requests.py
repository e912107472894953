"""
qbXML Request Rendering

Outbound request documents handed to the Web Connector, plus the .qwc
descriptor an operator loads into the Web Connector to register this
service.

All requests target qbXML 13.0.
"""

from uuid import uuid4

from qbwc.protocol.replies import escape_xml
from qbwc.qbxml.exports import TimeExport

QBXML_VERSION = "13.0"


def _document(on_error: str, body: str) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<?qbxml version="{QBXML_VERSION}"?>\n'
        "<QBXML>\n"
        f'  <QBXMLMsgsRq onError="{on_error}">\n'
        f"{body}"
        "  </QBXMLMsgsRq>\n"
        "</QBXML>"
    )


def format_duration(hours: float) -> str:
    """Hours as an xs:duration, e.g. 38.5 -> PT38H30M."""
    whole = int(hours)
    minutes = round((hours - whole) * 60)
    if minutes == 60:
        whole, minutes = whole + 1, 0
    return f"PT{whole}H{minutes}M"


def employee_query_request() -> str:
    """Directory pull of all active employees."""
    return _document(
        "continueOnError",
        "    <EmployeeQueryRq>\n"
        "      <ActiveStatus>ActiveOnly</ActiveStatus>\n"
        "    </EmployeeQueryRq>\n",
    )


def time_tracking_add_request(
    export: TimeExport,
    list_id: str,
    app_name: str = "QBWC Sync",
) -> str:
    """
    TimeTrackingAdd for one employee-week.

    The transaction is dated at the end of the week.
    """
    notes = f"Week of {export.week_start_date} - Synced from {app_name}"
    return _document(
        "stopOnError",
        "    <TimeTrackingAddRq>\n"
        "      <TimeTrackingAdd>\n"
        f"        <TxnDate>{escape_xml(export.week_end_date)}</TxnDate>\n"
        "        <EntityRef>\n"
        f"          <ListID>{escape_xml(list_id)}</ListID>\n"
        "        </EntityRef>\n"
        f"        <Duration>{format_duration(export.total_hours)}</Duration>\n"
        f"        <Notes>{escape_xml(notes)}</Notes>\n"
        "      </TimeTrackingAdd>\n"
        "    </TimeTrackingAddRq>\n",
    )


def paycheck_query_request(from_date: str, to_date: str) -> str:
    """Paychecks in a date range, with line items."""
    return _document(
        "continueOnError",
        "    <PaycheckQueryRq>\n"
        "      <TxnDateRangeFilter>\n"
        f"        <FromTxnDate>{escape_xml(from_date)}</FromTxnDate>\n"
        f"        <ToTxnDate>{escape_xml(to_date)}</ToTxnDate>\n"
        "      </TxnDateRangeFilter>\n"
        "      <IncludeLineItems>true</IncludeLineItems>\n"
        "    </PaycheckQueryRq>\n",
    )


def _braced_guid() -> str:
    return "{" + str(uuid4()).upper() + "}"


def qwc_file(
    app_name: str,
    app_url: str,
    username: str,
    run_every_minutes: int,
    description: str = "QuickBooks Time & Payroll Sync",
    support_url: str | None = None,
    owner_id: str | None = None,
    file_id: str | None = None,
) -> str:
    """
    Render the .qwc descriptor for the Web Connector.

    Args:
        app_name: Name shown in the Web Connector
        app_url: Full URL of the SOAP endpoint
        username: Web Connector user name (the password is entered in the agent)
        run_every_minutes: Scheduler interval
        description: AppDescription text
        support_url: AppSupport URL (defaults to app_url)
        owner_id: Braced GUID; generated when omitted
        file_id: Braced GUID; generated when omitted
    """
    return (
        '<?xml version="1.0"?>\n'
        "<QBWCXML>\n"
        f"  <AppName>{escape_xml(app_name)}</AppName>\n"
        "  <AppID></AppID>\n"
        f"  <AppURL>{escape_xml(app_url)}</AppURL>\n"
        f"  <AppDescription>{escape_xml(description)}</AppDescription>\n"
        f"  <AppSupport>{escape_xml(support_url or app_url)}</AppSupport>\n"
        f"  <UserName>{escape_xml(username)}</UserName>\n"
        f"  <OwnerID>{owner_id or _braced_guid()}</OwnerID>\n"
        f"  <FileID>{file_id or _braced_guid()}</FileID>\n"
        "  <QBType>QBFS</QBType>\n"
        "  <Scheduler>\n"
        f"    <RunEveryNMinutes>{int(run_every_minutes)}</RunEveryNMinutes>\n"
        "  </Scheduler>\n"
        "  <IsReadOnly>false</IsReadOnly>\n"
        "</QBWCXML>"
    )
