"""
SQLAlchemy Storage Adapters

Async SQLAlchemy 2.0 implementations for production persistence.
Uses async engine and session for all operations.

Compatible with:
- SQLite (aiosqlite)
- PostgreSQL (asyncpg)
- MySQL (aiomysql)

All operations are async. No sync DB calls.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
)

from qbwc.queue.ports import (
    DEFAULT_PRIORITY,
    WorkItem,
    WorkItemStatus,
    WorkQueue,
)
from qbwc.qbxml.exports import (
    EmployeeMapping,
    TimeExport,
    TimeExportRepository,
    TimeExportStatus,
)
from qbwc.session.session import DispatchedWork, Session
from qbwc.storage.ports import (
    SessionStore,
    ConnectionStore,
    ConnectionRecord,
    SyncLogStore,
    SyncLogEntry,
    NotFoundError,
    ConflictError,
    apply_status,
)
from qbwc.storage.models import (
    SessionModel,
    ConnectionModel,
    SyncLogModel,
    WorkItemModel,
    TimeExportModel,
    EmployeeMappingModel,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Converters
# =============================================================================

def session_model_to_record(model: SessionModel) -> Session:
    """Convert SQLAlchemy model to port record."""
    return Session(
        ticket=model.ticket,
        username=model.username,
        company_file=model.company_file,
        request_count=model.request_count,
        dispatched=(
            DispatchedWork.model_validate(model.dispatched)
            if model.dispatched else None
        ),
        created_at=model.created_at,
        last_activity_at=model.last_activity_at,
        ttl_seconds=model.ttl_seconds,
        version=model.version,
    )


def _session_columns(record: Session) -> dict:
    """Column values for a session, minus the key and version."""
    return {
        "username": record.username,
        "company_file": record.company_file,
        "request_count": record.request_count,
        "dispatched": (
            record.dispatched.model_dump(mode="json")
            if record.dispatched else None
        ),
        "created_at": record.created_at,
        "last_activity_at": record.last_activity_at,
        "ttl_seconds": record.ttl_seconds,
        "expires_at": record.expires_at,
    }


_CONNECTION_FIELDS = (
    "company_name",
    "wc_username",
    "wc_password",
    "is_active",
    "sync_time_entries",
    "sync_pay_stubs",
    "sync_employees",
    "auto_sync_enabled",
    "sync_interval_minutes",
    "connection_status",
    "qb_version",
    "company_id",
    "last_connected_at",
    "last_sync_at",
    "last_error",
    "last_error_at",
    "created_at",
    "updated_at",
)


def connection_model_to_record(model: ConnectionModel) -> ConnectionRecord:
    """Convert SQLAlchemy model to port record."""
    return ConnectionRecord(**{name: getattr(model, name) for name in _CONNECTION_FIELDS})


def _copy_connection(record: ConnectionRecord, model: ConnectionModel) -> None:
    for name in _CONNECTION_FIELDS:
        setattr(model, name, getattr(record, name))


def sync_log_model_to_record(model: SyncLogModel) -> SyncLogEntry:
    """Convert SQLAlchemy model to port record."""
    return SyncLogEntry(
        session_id=model.session_id,
        operation=model.operation,
        direction=model.direction,
        status=model.status,
        message=model.message,
        error_details=model.error_details,
        record_type=model.record_type,
        record_id=model.record_id,
        record_count=model.record_count,
        duration_ms=model.duration_ms,
        created_at=model.created_at,
    )


def time_export_model_to_record(model: TimeExportModel) -> TimeExport:
    """Convert SQLAlchemy model to port record."""
    return TimeExport(
        id=model.id,
        personnel_id=model.personnel_id,
        week_start_date=model.week_start_date,
        week_end_date=model.week_end_date,
        total_hours=model.total_hours,
        regular_hours=model.regular_hours,
        overtime_hours=model.overtime_hours,
        status=TimeExportStatus(model.status),
        qb_txn_id=model.qb_txn_id,
        exported_at=model.exported_at,
        updated_at=model.updated_at,
    )


def work_item_model_to_record(model: WorkItemModel) -> WorkItem:
    """Convert SQLAlchemy model to port record."""
    return WorkItem(
        id=model.id,
        type=model.type,
        action=model.action,
        reference_id=model.reference_id,
        reference_type=model.reference_type,
        status=WorkItemStatus(model.status),
        priority=model.priority,
        attempts=model.attempts,
        max_attempts=model.max_attempts,
        response_payload=model.response_payload,
        error_message=model.error_message,
        created_at=model.created_at,
        last_attempt_at=model.last_attempt_at,
        completed_at=model.completed_at,
    )


# =============================================================================
# SQLAlchemy Session Store
# =============================================================================

class SqlAlchemySessionStore(SessionStore):
    """
    SQLAlchemy implementation of session storage.

    update() is a conditional UPDATE on (ticket, version); a zero row count
    is resolved into NotFoundError or ConflictError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, record: Session) -> Session:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    existing = await session.get(SessionModel, record.ticket)
                    if existing:
                        raise ConflictError(f"Ticket {record.ticket} already in use")
                    session.add(SessionModel(
                        ticket=record.ticket,
                        version=record.version,
                        **_session_columns(record),
                    ))
        except IntegrityError as e:
            raise ConflictError(f"Ticket {record.ticket} already in use") from e
        return record.model_copy(deep=True)

    async def get(self, ticket: str) -> Session | None:
        async with self._session_factory() as session:
            model = await session.get(SessionModel, ticket)
            if model is None:
                return None
            return session_model_to_record(model)

    async def touch(self, ticket: str, now: datetime) -> Session | None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(SessionModel, ticket)
                if model is None:
                    return None
                if now > model.expires_at:
                    await session.delete(model)
                    return None

                model.last_activity_at = now
                model.expires_at = now + timedelta(seconds=model.ttl_seconds)
                return session_model_to_record(model)

    async def update(self, record: Session, expected_version: int) -> Session:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(SessionModel)
                    .where(
                        SessionModel.ticket == record.ticket,
                        SessionModel.version == expected_version,
                    )
                    .values(version=expected_version + 1, **_session_columns(record))
                )
                if not result.rowcount:
                    current = await session.get(SessionModel, record.ticket)
                    if current is None:
                        raise NotFoundError(f"Session {record.ticket} not found")
                    raise ConflictError(
                        f"Session {record.ticket} is at version {current.version}, "
                        f"expected {expected_version}"
                    )

        return record.model_copy(deep=True, update={"version": expected_version + 1})

    async def delete(self, ticket: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(SessionModel).where(SessionModel.ticket == ticket)
                )
                return bool(result.rowcount)

    async def expire_idle(
        self,
        now: datetime,
        exclude: Iterable[str] = (),
    ) -> list[str]:
        held = list(exclude)
        async with self._session_factory() as session:
            async with session.begin():
                query = select(SessionModel.ticket).where(SessionModel.expires_at < now)
                if held:
                    query = query.where(SessionModel.ticket.notin_(held))

                result = await session.execute(query)
                expired = list(result.scalars().all())
                if expired:
                    await session.execute(
                        delete(SessionModel).where(SessionModel.ticket.in_(expired))
                    )
                return expired

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(SessionModel))
            return result.scalar_one()


# =============================================================================
# SQLAlchemy Connection Store
# =============================================================================

class SqlAlchemyConnectionStore(ConnectionStore):
    """
    SQLAlchemy implementation of the connection configuration.

    The most recently updated active row is the active connection.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    async def _active(session: AsyncSession) -> ConnectionModel | None:
        result = await session.execute(
            select(ConnectionModel)
            .where(ConnectionModel.is_active.is_(True))
            .order_by(ConnectionModel.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get(self) -> ConnectionRecord | None:
        async with self._session_factory() as session:
            model = await self._active(session)
            if model is None:
                return None
            return connection_model_to_record(model)

    async def save(self, record: ConnectionRecord) -> ConnectionRecord:
        record.updated_at = datetime.utcnow()
        async with self._session_factory() as session:
            async with session.begin():
                model = await self._active(session)
                if model is None:
                    model = ConnectionModel()
                    session.add(model)
                _copy_connection(record, model)
        return record

    async def update_status(
        self,
        status: str,
        detail: str | None = None,
        version: str | None = None,
    ) -> ConnectionRecord | None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await self._active(session)
                if model is None:
                    return None

                record = connection_model_to_record(model)
                apply_status(record, status, detail, version, datetime.utcnow())
                _copy_connection(record, model)
                return record


# =============================================================================
# SQLAlchemy Sync Log Store
# =============================================================================

class SqlAlchemySyncLogStore(SyncLogStore):
    """
    SQLAlchemy implementation of the sync log.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, entry: SyncLogEntry) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(SyncLogModel(
                    session_id=entry.session_id,
                    operation=entry.operation,
                    direction=entry.direction,
                    status=entry.status,
                    message=entry.message,
                    error_details=entry.error_details,
                    record_type=entry.record_type,
                    record_id=entry.record_id,
                    record_count=entry.record_count,
                    duration_ms=entry.duration_ms,
                    created_at=entry.created_at,
                ))

    async def recent(
        self,
        limit: int = 50,
        session_id: str | None = None,
    ) -> list[SyncLogEntry]:
        async with self._session_factory() as session:
            query = select(SyncLogModel)
            if session_id:
                query = query.where(SyncLogModel.session_id == session_id)
            query = query.order_by(SyncLogModel.created_at.desc()).limit(limit)

            result = await session.execute(query)
            return [sync_log_model_to_record(m) for m in result.scalars().all()]


# =============================================================================
# SQLAlchemy Work Queue
# =============================================================================

class SqlAlchemyWorkQueue(WorkQueue):
    """
    SQLAlchemy implementation of the sync queue.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def enqueue(
        self,
        type: str,
        action: str,
        reference_id: str,
        reference_type: str,
        priority: int = DEFAULT_PRIORITY,
    ) -> WorkItem:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(WorkItemModel).where(
                        WorkItemModel.status == WorkItemStatus.PENDING.value,
                        WorkItemModel.reference_type == reference_type,
                        WorkItemModel.reference_id == reference_id,
                    ).limit(1)
                )
                existing = result.scalar_one_or_none()
                if existing:
                    return work_item_model_to_record(existing)

                item = WorkItem(
                    type=type,
                    action=action,
                    reference_id=reference_id,
                    reference_type=reference_type,
                    priority=priority,
                )
                session.add(WorkItemModel(
                    id=item.id,
                    type=item.type,
                    action=item.action,
                    reference_id=item.reference_id,
                    reference_type=item.reference_type,
                    status=item.status.value,
                    priority=item.priority,
                    attempts=item.attempts,
                    max_attempts=item.max_attempts,
                    created_at=item.created_at,
                ))

        logger.debug(f"Enqueued {type}/{action} for {reference_type}:{reference_id}")
        return item

    async def get(self, item_id: str) -> WorkItem | None:
        async with self._session_factory() as session:
            model = await session.get(WorkItemModel, item_id)
            if model is None:
                return None
            return work_item_model_to_record(model)

    async def peek_next(self, limit: int = 1) -> list[WorkItem]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkItemModel)
                .where(WorkItemModel.status == WorkItemStatus.PENDING.value)
                .order_by(WorkItemModel.priority, WorkItemModel.created_at)
                .limit(limit)
            )
            return [work_item_model_to_record(m) for m in result.scalars().all()]

    async def mark_processing(self, item_id: str) -> WorkItem | None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(WorkItemModel)
                    .where(
                        WorkItemModel.id == item_id,
                        WorkItemModel.status == WorkItemStatus.PENDING.value,
                    )
                    .values(
                        status=WorkItemStatus.PROCESSING.value,
                        attempts=WorkItemModel.attempts + 1,
                        last_attempt_at=datetime.utcnow(),
                    )
                )
                if not result.rowcount:
                    return None

                model = await session.get(WorkItemModel, item_id)
                return work_item_model_to_record(model)

    async def mark_completed(self, item_id: str, payload: str | None) -> WorkItem | None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(WorkItemModel, item_id)
                if model is None:
                    return None

                now = datetime.utcnow()
                model.status = WorkItemStatus.COMPLETED.value
                model.response_payload = payload
                model.last_attempt_at = now
                model.completed_at = now
                return work_item_model_to_record(model)

    async def mark_failed(self, item_id: str, message: str | None) -> WorkItem | None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(WorkItemModel, item_id)
                if model is None:
                    return None

                model.status = WorkItemStatus.FAILED.value
                model.error_message = message
                model.last_attempt_at = datetime.utcnow()
                return work_item_model_to_record(model)

    async def reclaim_stale(self, older_than: datetime) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(WorkItemModel).where(
                        WorkItemModel.status == WorkItemStatus.PROCESSING.value,
                        WorkItemModel.last_attempt_at < older_than,
                    )
                )
                stale = result.scalars().all()
                for model in stale:
                    if model.attempts < model.max_attempts:
                        model.status = WorkItemStatus.PENDING.value
                    else:
                        model.status = WorkItemStatus.FAILED.value
                        model.error_message = "Abandoned in processing; attempts exhausted"

        if stale:
            logger.info(f"Reclaimed {len(stale)} stale work item(s)")
        return len(stale)

    async def counts(self) -> dict[str, int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkItemModel.status, func.count())
                .group_by(WorkItemModel.status)
            )
            tally = {status: count for status, count in result.all()}
            return {status.value: tally.get(status.value, 0) for status in WorkItemStatus}


# =============================================================================
# SQLAlchemy Time Export Repository
# =============================================================================

class SqlAlchemyTimeExportRepository(TimeExportRepository):
    """
    SQLAlchemy implementation of time exports and employee mappings.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_export(self, export_id: str) -> TimeExport | None:
        async with self._session_factory() as session:
            model = await session.get(TimeExportModel, export_id)
            if model is None:
                return None
            return time_export_model_to_record(model)

    async def get_mapping(self, personnel_id: str) -> EmployeeMapping | None:
        async with self._session_factory() as session:
            model = await session.get(EmployeeMappingModel, personnel_id)
            if model is None or not model.is_active:
                return None
            return EmployeeMapping(
                personnel_id=model.personnel_id,
                qb_list_id=model.qb_list_id,
                qb_name=model.qb_name,
                is_active=model.is_active,
            )

    async def mark_exported(self, export_id: str, txn_id: str) -> TimeExport | None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(TimeExportModel, export_id)
                if model is None:
                    return None

                now = datetime.utcnow()
                model.status = TimeExportStatus.EXPORTED.value
                model.qb_txn_id = txn_id
                model.exported_at = now
                model.updated_at = now
                return time_export_model_to_record(model)
