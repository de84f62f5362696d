"""
Device/factory registry lookups.

The registry (device and factory CRUD) is owned elsewhere; this module only
reads it. ``DeviceRegistry`` is the interface the services depend on, and
``SqlDeviceRegistry`` is the default implementation over the ``devices`` and
``factories`` tables.
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger
from pydantic import BaseModel
from sqlalchemy import select

from common.database import get_async_db_session
from common.models import Device, Factory
from services.session_service.database.base import RepositoryBase


class DeviceInfo(BaseModel):
    """Registry view of a device."""

    internal_id: str
    device_id: str
    name: str
    factory_id: str
    is_active: bool


class DeviceRegistry(Protocol):
    async def resolve_device(self, tenant_id: str, business_id: str) -> DeviceInfo | None: ...

    async def get_factory_name(self, factory_id: str) -> str | None: ...


class SqlDeviceRegistry(RepositoryBase):
    """Device registry backed by the ``devices`` and ``factories`` tables."""

    async def resolve_device(self, tenant_id: str, business_id: str) -> DeviceInfo | None:
        """
        Look up a device by business id within a tenant.

        Inactive devices are returned too; callers decide whether activity matters.
        """
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(
                select(Device).where(
                    Device.tenant_id == tenant_id,
                    Device.device_id == business_id,
                )
            )
            device = result.scalar_one_or_none()

        if device is None:
            logger.debug(f"Device {business_id} not registered for tenant {tenant_id}")
            return None

        return DeviceInfo(
            internal_id=str(device.id),
            device_id=device.device_id,
            name=device.name,
            factory_id=str(device.factory_id),
            is_active=device.is_active,
        )

    async def get_factory_name(self, factory_id: str) -> str | None:
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(
                select(Factory.name).where(Factory.id == factory_id)
            )
            return result.scalar_one_or_none()
