# qbXML
# Outbound request generation and the records it reads from

from qbwc.qbxml.exports import (
    TIME_EXPORT_REFERENCE,
    TimeExport,
    TimeExportStatus,
    EmployeeMapping,
    TimeExportRepository,
    InMemoryTimeExportRepository,
)
from qbwc.qbxml.requests import (
    employee_query_request,
    time_tracking_add_request,
    paycheck_query_request,
    format_duration,
    qwc_file,
)
from qbwc.qbxml.builders import (
    PAY_PERIOD_REFERENCE,
    PayloadBuilder,
    DirectoryQueryBuilder,
    TransactionRecorder,
    QbxmlPayloadBuilder,
    QbxmlDirectoryQueryBuilder,
    TimeExportRecorder,
)

__all__ = [
    "TIME_EXPORT_REFERENCE",
    "TimeExport",
    "TimeExportStatus",
    "EmployeeMapping",
    "TimeExportRepository",
    "InMemoryTimeExportRepository",
    "employee_query_request",
    "time_tracking_add_request",
    "paycheck_query_request",
    "format_duration",
    "qwc_file",
    "PAY_PERIOD_REFERENCE",
    "PayloadBuilder",
    "DirectoryQueryBuilder",
    "TransactionRecorder",
    "QbxmlPayloadBuilder",
    "QbxmlDirectoryQueryBuilder",
    "TimeExportRecorder",
]
