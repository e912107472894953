"""
Payload Builders

Collaborators the dispatcher calls to turn work into qbXML, and to record
what QuickBooks hands back:

- PayloadBuilder: per-work-type outbound request for a queue item
- DirectoryQueryBuilder: the one-shot employee directory pull
- TransactionRecorder: stores a secondary identifier (e.g. a TxnID) against
  the record a queue item referenced

The qbXML implementations route on (item type, reference type). A generator
that cannot build a request (missing export, unmapped employee) returns None
and the dispatcher fails the item.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from qbwc.qbxml.exports import TIME_EXPORT_REFERENCE, TimeExportRepository
from qbwc.qbxml.requests import (
    employee_query_request,
    paycheck_query_request,
    time_tracking_add_request,
)

logger = logging.getLogger(__name__)

PAY_PERIOD_REFERENCE = "payPeriod"

PayloadGenerator = Callable[[str], Awaitable[str | None]]


class PayloadBuilder(ABC):
    """Builds the outbound request for a queue item."""

    @abstractmethod
    async def generate(
        self,
        item_type: str,
        reference_id: str,
        reference_type: str | None = None,
    ) -> str | None:
        """
        Args:
            item_type: Work item type (e.g. "time_entry")
            reference_id: ID of the record supplying the data
            reference_type: Kind of record (e.g. "qbPendingTimeExport")

        Returns:
            qbXML request, or None if nothing usable can be built
        """
        ...


class DirectoryQueryBuilder(ABC):
    """Builds the one-shot directory pull."""

    @abstractmethod
    async def generate(self) -> str:
        ...


class TransactionRecorder(ABC):
    """Stores a QuickBooks-issued identifier for a completed item."""

    @abstractmethod
    async def record(
        self,
        item_type: str | None,
        reference_type: str | None,
        reference_id: str | None,
        txn_id: str,
    ) -> bool:
        """
        Returns:
            True if the identifier was stored somewhere
        """
        ...


class QbxmlDirectoryQueryBuilder(DirectoryQueryBuilder):
    async def generate(self) -> str:
        return employee_query_request()


class QbxmlPayloadBuilder(PayloadBuilder):
    """
    Routes (item type, reference type) to a generator.

    Built-in routes:
    - time_entry / qbPendingTimeExport -> TimeTrackingAdd
    - paycheck / payPeriod -> PaycheckQuery; reference_id is "FROM:TO"
    """

    def __init__(self, exports: TimeExportRepository, app_name: str = "QBWC Sync"):
        self._exports = exports
        self._app_name = app_name
        self._generators: dict[tuple[str, str], PayloadGenerator] = {
            ("time_entry", TIME_EXPORT_REFERENCE): self._time_entry,
            ("paycheck", PAY_PERIOD_REFERENCE): self._paycheck_query,
        }

    def register(
        self,
        item_type: str,
        reference_type: str,
        generator: PayloadGenerator,
    ) -> None:
        """Add or replace a route."""
        self._generators[(item_type, reference_type)] = generator

    async def generate(
        self,
        item_type: str,
        reference_id: str,
        reference_type: str | None = None,
    ) -> str | None:
        generator = self._generators.get((item_type, reference_type or ""))
        if generator is None:
            logger.warning(
                f"No payload generator for {item_type}/{reference_type}"
            )
            return None
        return await generator(reference_id)

    async def _time_entry(self, export_id: str) -> str | None:
        export = await self._exports.get_export(export_id)
        if export is None:
            logger.warning(f"Time export {export_id} not found")
            return None

        mapping = await self._exports.get_mapping(export.personnel_id)
        if mapping is None:
            logger.warning(
                f"Personnel {export.personnel_id} has no QuickBooks employee mapping"
            )
            return None

        return time_tracking_add_request(export, mapping.qb_list_id, self._app_name)

    async def _paycheck_query(self, period: str) -> str | None:
        from_date, sep, to_date = period.partition(":")
        if not sep or not from_date or not to_date:
            logger.warning(f"Malformed pay period reference: {period!r}")
            return None
        return paycheck_query_request(from_date, to_date)


class TimeExportRecorder(TransactionRecorder):
    """Marks a time export exported with the TxnID QuickBooks assigned."""

    def __init__(self, exports: TimeExportRepository):
        self._exports = exports

    async def record(
        self,
        item_type: str | None,
        reference_type: str | None,
        reference_id: str | None,
        txn_id: str,
    ) -> bool:
        if reference_type != TIME_EXPORT_REFERENCE or not reference_id:
            return False
        export = await self._exports.mark_exported(reference_id, txn_id)
        if export is None:
            logger.warning(f"Time export {reference_id} vanished before TxnID {txn_id} was recorded")
            return False
        logger.info(f"Time export {reference_id} exported as TxnID {txn_id}")
        return True
