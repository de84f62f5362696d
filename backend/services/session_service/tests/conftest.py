"""
Pytest configuration and fixtures for session service tests.

Repository and service tests run against a throwaway SQLite database
(aiosqlite) created per test, seeded with one factory and a few devices.
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Set test environment variables before importing modules
os.environ.setdefault("ENVIRONMENT", "DEV")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_DATABASE", "sessions_test")

from common.audit import AuditRecorder  # noqa: E402
from common.config.settings import SessionServiceSettings  # noqa: E402
from common.database import dispose_engines, get_async_db_session, get_async_session_maker, init_database  # noqa: E402
from common.models import Device, Factory  # noqa: E402
from services.session_service.database import (  # noqa: E402
    ExportRepository,
    SessionRepository,
    SqlDeviceRegistry,
)
from services.session_service.services.analytics_service import AnalyticsService  # noqa: E402
from services.session_service.services.export_service import ExportService  # noqa: E402
from services.session_service.services.ingestion_service import IngestionService  # noqa: E402

TENANT_ID = "123e4567-e89b-12d3-a456-426614174000"
OTHER_TENANT_ID = "223e4567-e89b-12d3-a456-426614174000"
USER_ID = "user-1"
OTHER_USER_ID = "user-2"
FACTORY_ID = "9b2f6c1e-4d0a-4c55-9a57-3f3b1f0c2a11"
DEVICE_ID = "DEV-1"
INACTIVE_DEVICE_ID = "DEV-OFF"
OTHER_TENANT_DEVICE_ID = "DEV-9"


class FrozenClock:
    """Settable clock for expiry tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path) -> SessionServiceSettings:
    """Settings with a small record limit and a per-test export directory."""
    return SessionServiceSettings(
        CANONICAL_TIMEZONE="UTC",
        DURATION_TOLERANCE_MS=1000,
        EXPORT_MAX_RECORDS=5,
        EXPORT_TTL_SECONDS=3600,
        EXPORT_BATCH_SIZE=2,
        EXPORT_DIR=str(tmp_path / "exports"),
    )


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """Session maker bound to a fresh SQLite database with the full schema."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}"
    await init_database(url)
    maker = get_async_session_maker(url)

    async with get_async_db_session(maker) as session:
        session.add(Factory(id=FACTORY_ID, tenant_id=TENANT_ID, name="Plant A"))
        session.add(Factory(id="0c7e1f5a-8e44-4d6b-9c1e-77a0b6a4e0f2", tenant_id=OTHER_TENANT_ID, name="Plant Z"))
        await session.flush()
        session.add_all(
            [
                Device(tenant_id=TENANT_ID, device_id=DEVICE_ID, name="Press 1", factory_id=FACTORY_ID),
                Device(
                    tenant_id=TENANT_ID,
                    device_id=INACTIVE_DEVICE_ID,
                    name="Retired Lathe",
                    factory_id=FACTORY_ID,
                    is_active=False,
                ),
                Device(
                    tenant_id=OTHER_TENANT_ID,
                    device_id=OTHER_TENANT_DEVICE_ID,
                    name="Mill 9",
                    factory_id="0c7e1f5a-8e44-4d6b-9c1e-77a0b6a4e0f2",
                ),
            ]
        )

    yield maker
    await dispose_engines()


@pytest.fixture
def session_repository(session_maker) -> SessionRepository:
    return SessionRepository(session_maker=session_maker)


@pytest.fixture
def export_repository(session_maker) -> ExportRepository:
    return ExportRepository(session_maker=session_maker)


@pytest.fixture
def device_registry(session_maker) -> SqlDeviceRegistry:
    return SqlDeviceRegistry(session_maker=session_maker)


@pytest.fixture
def audit_sink() -> AsyncMock:
    """Audit sink whose ``record`` calls can be asserted."""
    return AsyncMock()


@pytest.fixture
def audit(audit_sink) -> AuditRecorder:
    return AuditRecorder(sink=audit_sink)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(utc(2024, 2, 1, 12, 0, 0))


@pytest.fixture
def ingestion_service(session_repository, device_registry, audit, settings) -> IngestionService:
    return IngestionService(
        repository=session_repository,
        registry=device_registry,
        audit=audit,
        settings=settings,
    )


@pytest.fixture
def analytics_service(session_repository, device_registry, settings) -> AnalyticsService:
    return AnalyticsService(
        repository=session_repository,
        registry=device_registry,
        settings=settings,
    )


@pytest.fixture
def export_service(
    export_repository, session_repository, device_registry, audit, settings, clock
) -> ExportService:
    return ExportService(
        repository=export_repository,
        sessions=session_repository,
        registry=device_registry,
        audit=audit,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def add_session(session_repository):
    """Insert a session for DEV-1 directly, bypassing ingestion."""

    async def _add(start: datetime, duration_ms: int, device_id: str = DEVICE_ID):
        return await session_repository.insert_session(
            tenant_id=TENANT_ID,
            factory_id=FACTORY_ID,
            device_id=device_id,
            start_time=start,
            stop_time=start + timedelta(milliseconds=duration_ms),
            duration_ms=duration_ms,
        )

    return _add
