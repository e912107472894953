"""
SQLAlchemy Models for QBWC Storage

Async-compatible SQLAlchemy 2.0 ORM models for:
- Sessions (Web Connector tickets)
- Connection configuration
- Sync log
- Sync queue
- Time exports and employee mappings

Designed to work with:
- SQLite (via aiosqlite)
- PostgreSQL (via asyncpg)
- MySQL (via aiomysql)

JSON column handling:
- PostgreSQL: Native JSONB
- SQLite/MySQL: TEXT with JSON serialization
"""

import json
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    String,
    Text,
    Float,
    Boolean,
    DateTime,
    Integer,
    Index,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator


# =============================================================================
# Custom Types
# =============================================================================

class JSONType(TypeDecorator):
    """
    Platform-agnostic JSON column.

    Uses JSONB on PostgreSQL, TEXT+JSON on SQLite/MySQL.
    """
    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value  # JSONB handles dict directly
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value  # JSONB returns dict directly
        if isinstance(value, str):
            return json.loads(value)
        return value


def _new_id() -> str:
    return uuid4().hex


# =============================================================================
# Base
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Session Model
# =============================================================================

class SessionModel(Base):
    """
    Web Connector session.

    expires_at is denormalized from last_activity_at + ttl_seconds so the
    eviction sweep is a single indexed range query.
    """
    __tablename__ = "qbwc_sessions"

    ticket: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    company_file: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Serialized DispatchedWork, or NULL when idle
    dispatched: Mapped[dict | None] = mapped_column(JSONType(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    ttl_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=1800)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# =============================================================================
# Connection Model
# =============================================================================

class ConnectionModel(Base):
    """QuickBooks connection configuration. At most one row is active."""
    __tablename__ = "qb_connection"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    wc_username: Mapped[str] = mapped_column(String(255), nullable=False)
    wc_password: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    # Sync switches
    sync_time_entries: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sync_pay_stubs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_employees: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_sync_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_interval_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)

    # Status
    connection_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    qb_version: Mapped[str | None] = mapped_column(String(32), nullable=True)
    company_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_connected_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# =============================================================================
# Sync Log Model
# =============================================================================

class SyncLogModel(Base):
    """Operator-visible sync log. Append-only."""
    __tablename__ = "qb_sync_log"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(32), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    record_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    record_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    record_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_sync_log_created_at", "created_at"),
    )


# =============================================================================
# Sync Queue Model
# =============================================================================

class WorkItemModel(Base):
    """Sync queue item."""
    __tablename__ = "qb_sync_queue"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reference_type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    response_payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_sync_queue_status_priority", "status", "priority", "created_at"),
        Index("ix_sync_queue_reference", "reference_type", "reference_id"),
    )


# =============================================================================
# Time Export Models
# =============================================================================

class TimeExportModel(Base):
    """Approved weekly hours awaiting export."""
    __tablename__ = "qb_pending_time_export"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    personnel_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    week_start_date: Mapped[str] = mapped_column(String(10), nullable=False)
    week_end_date: Mapped[str] = mapped_column(String(10), nullable=False)
    total_hours: Mapped[float] = mapped_column(Float, nullable=False)
    regular_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    overtime_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    qb_txn_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    exported_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class EmployeeMappingModel(Base):
    """Personnel record -> QuickBooks employee ListID."""
    __tablename__ = "qb_employee_mapping"

    personnel_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    qb_list_id: Mapped[str] = mapped_column(String(64), nullable=False)
    qb_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
