"""
Session Repository Implementation for the Session Service

This module provides the database access layer for machine working sessions
using SQLAlchemy's async API. Sessions are append-only: the repository can
insert a session and read sessions back, but never updates or deletes one.

Key Features:
    - Insert-then-catch idempotency: a duplicate (device_id, start_time,
      stop_time) triple surfaces as UniqueConstraintViolation, decided
      atomically by the database's unique constraint
    - Range scans over the (tenant_id, device_id, start_time) index
    - Streaming projections for bucket folding and export generation, so
      callers never hold the full result set in memory
    - SQL aggregates (count/sum/min/max) for summaries and period metrics

Range Semantics:
    All range filters apply to ``start_time`` and are inclusive on both ends.

Example:
    ```python
    repo = SessionRepository()

    session = await repo.insert_session(
        tenant_id="tenant-1",
        factory_id="factory-uuid",
        device_id="DEV-1",
        start_time=start,
        stop_time=stop,
        duration_ms=5400000,
    )

    async for start_time, duration_ms in repo.stream_start_durations(
        "tenant-1", "DEV-1", date_from, date_to
    ):
        ...
    ```

See Also:
    - common.models.DeviceSession: ORM model and constraints
    - common.database.get_async_db_session: Session management
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel
from sqlalchemy import Row, Select, func, select
from sqlalchemy.exc import IntegrityError

from common.database import ensure_aware_utc, get_async_db_session, utcnow
from common.exceptions import UniqueConstraintViolation
from common.models import DeviceSession
from services.session_service.database.base import RepositoryBase

DEFAULT_STREAM_BATCH_SIZE = 1000

EXPORT_COLUMNS = (
    DeviceSession.device_id,
    DeviceSession.start_time,
    DeviceSession.stop_time,
    DeviceSession.duration_ms,
    DeviceSession.ingested_at,
)


class SessionAggregate(BaseModel):
    """Count/sum/min/max of session durations over a range."""

    session_count: int = 0
    total_duration_ms: int = 0
    min_session_duration_ms: int = 0
    max_session_duration_ms: int = 0


def _range_filter(
    stmt: Select[Any],
    tenant_id: str,
    device_id: str,
    date_from: datetime | None,
    date_to: datetime | None,
) -> Select[Any]:
    stmt = stmt.where(
        DeviceSession.tenant_id == tenant_id,
        DeviceSession.device_id == device_id,
    )
    if date_from is not None:
        stmt = stmt.where(DeviceSession.start_time >= ensure_aware_utc(date_from))
    if date_to is not None:
        stmt = stmt.where(DeviceSession.start_time <= ensure_aware_utc(date_to))
    return stmt


def _normalize(session: DeviceSession) -> DeviceSession:
    """Re-attach UTC to instants read back from drivers that drop the offset."""
    session.start_time = ensure_aware_utc(session.start_time)
    session.stop_time = ensure_aware_utc(session.stop_time)
    session.ingested_at = ensure_aware_utc(session.ingested_at)
    return session


class SessionRepository(RepositoryBase):
    """
    Repository for the append-only session store.

    Thread Safety:
        Instances are designed to be shared across async requests. Each method
        opens its own database session.
    """

    async def insert_session(
        self,
        tenant_id: str,
        factory_id: str,
        device_id: str,
        start_time: datetime,
        stop_time: datetime,
        duration_ms: int,
    ) -> DeviceSession:
        """
        Persist a new session.

        Raises:
            UniqueConstraintViolation: A session with the same
                (device_id, start_time, stop_time) already exists.
        """
        row = DeviceSession(
            tenant_id=tenant_id,
            factory_id=factory_id,
            device_id=device_id,
            start_time=ensure_aware_utc(start_time),
            stop_time=ensure_aware_utc(stop_time),
            duration_ms=duration_ms,
            ingested_at=utcnow(),
        )

        # A duplicate is an expected outcome, so the conflict is handled here
        # instead of being logged as a session error by get_async_db_session.
        async with self.session_maker() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.debug(
                    f"Idempotency key hit for device {device_id} "
                    f"[{start_time.isoformat()} - {stop_time.isoformat()}]"
                )
                msg = "Session already exists"
                raise UniqueConstraintViolation(msg) from e

        return _normalize(row)

    async def get_by_idempotency_key(
        self, device_id: str, start_time: datetime, stop_time: datetime
    ) -> DeviceSession | None:
        """Fetch the session stored under a (device_id, start_time, stop_time) triple."""
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(
                select(DeviceSession).where(
                    DeviceSession.device_id == device_id,
                    DeviceSession.start_time == ensure_aware_utc(start_time),
                    DeviceSession.stop_time == ensure_aware_utc(stop_time),
                )
            )
            row = result.scalar_one_or_none()
        return _normalize(row) if row is not None else None

    async def list_sessions(
        self,
        tenant_id: str,
        device_id: str,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        offset: int = 0,
        limit: int = 100,
    ) -> list[DeviceSession]:
        """Return one page of sessions, newest start_time first."""
        stmt = _range_filter(select(DeviceSession), tenant_id, device_id, date_from, date_to)
        stmt = (
            stmt.order_by(DeviceSession.start_time.desc(), DeviceSession.id)
            .offset(offset)
            .limit(limit)
        )
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(stmt)
            rows = list(result.scalars().all())
        return [_normalize(row) for row in rows]

    async def count_sessions(
        self,
        tenant_id: str,
        device_id: str,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> int:
        stmt = _range_filter(
            select(func.count(DeviceSession.id)), tenant_id, device_id, date_from, date_to
        )
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(stmt)
            return int(result.scalar_one() or 0)

    async def aggregate(
        self,
        tenant_id: str,
        device_id: str,
        date_from: datetime,
        date_to: datetime,
    ) -> SessionAggregate:
        """Compute count/sum/min/max of durations for sessions starting in range."""
        stmt = _range_filter(
            select(
                func.count(DeviceSession.id),
                func.sum(DeviceSession.duration_ms),
                func.min(DeviceSession.duration_ms),
                func.max(DeviceSession.duration_ms),
            ),
            tenant_id,
            device_id,
            date_from,
            date_to,
        )
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(stmt)
            count, total, minimum, maximum = result.one()

        if not count:
            return SessionAggregate()

        # SUM over BIGINT comes back as Decimal on PostgreSQL
        return SessionAggregate(
            session_count=int(count),
            total_duration_ms=int(total or 0),
            min_session_duration_ms=int(minimum or 0),
            max_session_duration_ms=int(maximum or 0),
        )

    async def stream_start_durations(
        self,
        tenant_id: str,
        device_id: str,
        date_from: datetime,
        date_to: datetime,
        batch_size: int = DEFAULT_STREAM_BATCH_SIZE,
    ) -> AsyncIterator[tuple[datetime, int]]:
        """
        Stream ``(start_time, duration_ms)`` pairs ordered by start_time ascending.

        Rows are fetched ``batch_size`` at a time through a server-side cursor.
        """
        stmt = _range_filter(
            select(DeviceSession.start_time, DeviceSession.duration_ms),
            tenant_id,
            device_id,
            date_from,
            date_to,
        ).order_by(DeviceSession.start_time.asc())

        async with get_async_db_session(self.session_maker) as session:
            result = await session.stream(stmt.execution_options(yield_per=batch_size))
            async for start_time, duration_ms in result:
                yield ensure_aware_utc(start_time), int(duration_ms)

    async def stream_session_batches(
        self,
        tenant_id: str,
        device_id: str,
        date_from: datetime,
        date_to: datetime,
        batch_size: int = DEFAULT_STREAM_BATCH_SIZE,
    ) -> AsyncIterator[list[Row[Any]]]:
        """
        Stream the exported session columns in batches of at most
        ``batch_size``, ordered by start_time ascending.

        Rows are plain column tuples (``device_id``, ``start_time``,
        ``stop_time``, ``duration_ms``, ``ingested_at``) with attribute
        access, so no ORM instances are loaded into the identity map while
        the server-side cursor is still open.
        """
        stmt = _range_filter(
            select(*EXPORT_COLUMNS), tenant_id, device_id, date_from, date_to
        ).order_by(DeviceSession.start_time.asc(), DeviceSession.id)

        async with get_async_db_session(self.session_maker) as session:
            result = await session.stream(stmt.execution_options(yield_per=batch_size))
            async for partition in result.partitions(batch_size):
                yield list(partition)
