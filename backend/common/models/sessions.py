"""
Session model for machine working intervals reported by devices.

A DeviceSession is an immutable fact: one interval during which a device was
running. Rows are appended by the ingestion service and never updated or
deleted afterwards.

Models:
    DeviceSession: One stored machine working session.
"""

from __future__ import annotations

from datetime import datetime
import uuid

from sqlalchemy import (
    TIMESTAMP,
    BigInteger,
    CheckConstraint,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from common.database import Base, utcnow


class DeviceSession(Base):
    """
    Model representing one machine working session.

    Attributes:
        id (str): Surrogate identifier (UUID). Primary key.
        tenant_id (str): Tenant owning the device at ingestion time.
        factory_id (str): Factory the device belonged to at ingestion time.
            Copied from the device registry, never supplied by the caller.
        device_id (str): Business identifier of the device (e.g. "DEV-1"),
            not the registry's surrogate id.
        start_time (datetime): Session start instant (UTC).
        stop_time (datetime): Session stop instant (UTC). Always after start_time.
        duration_ms (int): ``stop_time - start_time`` in milliseconds, computed
            by the server.
        ingested_at (datetime): Instant the row was persisted.

    Table:
        device_sessions

    Constraints:
        - ``(device_id, start_time, stop_time)`` is unique system-wide. This is
          the idempotency key used by ingestion.
        - ``start_time < stop_time``.

    Note:
        Range scans for analytics and exports use the
        ``(tenant_id, device_id, start_time)`` index.
    """

    __tablename__ = "device_sessions"
    __table_args__ = (
        UniqueConstraint(
            "device_id", "start_time", "stop_time", name="uq_device_sessions_idempotency"
        ),
        CheckConstraint("start_time < stop_time", name="ck_device_sessions_interval"),
        Index("ix_device_sessions_tenant_device_start", "tenant_id", "device_id", "start_time"),
        Index("ix_device_sessions_tenant_factory_start", "tenant_id", "factory_id", "start_time"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    factory_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_id: Mapped[str] = mapped_column(String(100), nullable=False)
    start_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    stop_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    duration_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
