"""
Time Export Records

A time export is one employee's approved weekly hours waiting to be pushed to
QuickBooks as a TimeTracking transaction. The sync queue references exports
by ID (reference_type "qbPendingTimeExport").

Computing the hours is upstream business logic; the sync core only reads an
export to build its request and, once QuickBooks accepts it, records the
returned TxnID.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from uuid import uuid4

TIME_EXPORT_REFERENCE = "qbPendingTimeExport"


class TimeExportStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    EXPORTED = "exported"


@dataclass
class TimeExport:
    """One employee-week of hours."""
    personnel_id: str
    week_start_date: str  # YYYY-MM-DD (Sunday)
    week_end_date: str    # YYYY-MM-DD (Saturday)
    total_hours: float
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    status: TimeExportStatus = TimeExportStatus.PENDING
    id: str = field(default_factory=lambda: uuid4().hex)
    qb_txn_id: str | None = None
    exported_at: datetime | None = None
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class EmployeeMapping:
    """Links a personnel record to a QuickBooks employee ListID."""
    personnel_id: str
    qb_list_id: str
    qb_name: str
    is_active: bool = True


class TimeExportRepository(ABC):
    """Storage interface for time exports and employee mappings."""

    @abstractmethod
    async def get_export(self, export_id: str) -> TimeExport | None:
        ...

    @abstractmethod
    async def get_mapping(self, personnel_id: str) -> EmployeeMapping | None:
        ...

    @abstractmethod
    async def mark_exported(self, export_id: str, txn_id: str) -> TimeExport | None:
        """Record the QuickBooks TxnID and move the export to exported."""
        ...


class InMemoryTimeExportRepository(TimeExportRepository):
    """In-memory exports and mappings, for development and tests."""

    def __init__(self):
        self._exports: dict[str, TimeExport] = {}
        self._mappings: dict[str, EmployeeMapping] = {}
        self._lock = asyncio.Lock()

    async def add_export(self, export: TimeExport) -> TimeExport:
        async with self._lock:
            self._exports[export.id] = export
            return replace(export)

    async def add_mapping(self, mapping: EmployeeMapping) -> EmployeeMapping:
        async with self._lock:
            self._mappings[mapping.personnel_id] = mapping
            return replace(mapping)

    async def get_export(self, export_id: str) -> TimeExport | None:
        async with self._lock:
            export = self._exports.get(export_id)
            return replace(export) if export else None

    async def get_mapping(self, personnel_id: str) -> EmployeeMapping | None:
        async with self._lock:
            mapping = self._mappings.get(personnel_id)
            if mapping is None or not mapping.is_active:
                return None
            return replace(mapping)

    async def mark_exported(self, export_id: str, txn_id: str) -> TimeExport | None:
        async with self._lock:
            export = self._exports.get(export_id)
            if export is None:
                return None
            now = datetime.utcnow()
            export.status = TimeExportStatus.EXPORTED
            export.qb_txn_id = txn_id
            export.exported_at = now
            export.updated_at = now
            return replace(export)
