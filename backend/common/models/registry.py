"""
Device and factory registry tables.

These tables are owned by the registry (device/factory CRUD lives outside this
service). The session service only reads them, to bind an ingested session to
its tenant and factory and to denormalise names into summaries and exports.

Models:
    Factory: A production site within a tenant.
    Device: A machine reporting sessions, identified by a business id.
"""

from __future__ import annotations

from datetime import datetime
import uuid

from sqlalchemy import TIMESTAMP, Boolean, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from common.database import Base, utcnow


class Factory(Base):
    """
    Model representing a factory.

    Attributes:
        id (str): Factory identifier (UUID). Primary key.
        tenant_id (str): Owning tenant.
        name (str): Display name.
        created_at (datetime): Creation instant.

    Table:
        factories
    """

    __tablename__ = "factories"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )


class Device(Base):
    """
    Model representing a registered device.

    Attributes:
        id (str): Internal device identifier (UUID). Primary key.
        tenant_id (str): Owning tenant.
        device_id (str): Business identifier sent by the device. Unique per tenant.
        name (str): Display name.
        factory_id (str): Factory the device is installed in.
        is_active (bool): Inactive devices are rejected at ingestion.
        created_at (datetime): Creation instant.

    Table:
        devices
    """

    __tablename__ = "devices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "device_id", name="uq_devices_tenant_device"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    factory_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("factories.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
