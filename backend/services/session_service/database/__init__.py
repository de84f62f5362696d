"""
Database layer for the session service.

Repositories wrap SQLAlchemy async sessions obtained through
``common.database.get_async_db_session``. Each repository accepts an optional
``async_sessionmaker`` so tests can bind it to a temporary database; by default
the engine configured through DATABASE_URL / POSTGRES_* is used.

Components:
    - SessionRepository: Append-only session store, range scans and aggregates
    - ExportRepository: Export job rows and their conditional state transitions
    - SqlDeviceRegistry: Read-only device/factory lookups
"""

from .device_registry import DeviceInfo, DeviceRegistry, SqlDeviceRegistry
from .export_repository import ExportRepository
from .session_repository import SessionAggregate, SessionRepository

__all__ = [
    "DeviceInfo",
    "DeviceRegistry",
    "ExportRepository",
    "SessionAggregate",
    "SessionRepository",
    "SqlDeviceRegistry",
]
