"""
Session Ingestion Service - Idempotent intake of machine working sessions.

This module implements the business logic behind ``POST /device/session``.
Devices report a session once it has ended; flaky connectivity means the same
session can arrive many times. Every submission of the same
(device_id, start_time, stop_time) triple must produce exactly one stored row,
and every retry must look like success to the device.

Ingestion Pipeline:
1. **Validation**: ISO-8601 parsing, ``start_time < stop_time``
2. **Duration Authority**: duration recomputed from the timestamps; the value
   claimed by the device only feeds a logged consistency check
3. **Device Binding**: device resolved in the tenant's registry; inactive or
   unknown devices are rejected; the factory comes from the registry
4. **Idempotent Insert**: insert first, let the unique constraint decide, and
   turn a conflict into the duplicate result (never check-then-insert)
5. **Audit**: one best-effort event per newly stored session

Supplemented read operations list and count a device's stored sessions.
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger
from pydantic import BaseModel

from common.audit import AuditRecorder
from common.config import get_settings
from common.config.settings import SessionServiceSettings
from common.exceptions import (
    NotFoundError,
    ServiceError,
    UniqueConstraintViolation,
    ValidationError,
)
from common.models import DeviceSession
from services.session_service.database.device_registry import DeviceRegistry, SqlDeviceRegistry
from services.session_service.database.session_repository import SessionRepository
from services.session_service.utils import duration_ms_between, isoformat_utc, parse_timestamp

MESSAGE_INGESTED = "Session ingested successfully"
MESSAGE_DUPLICATE = "Session already exists (idempotent)"


class IngestionResult(BaseModel):
    session_id: str
    is_duplicate: bool
    computed_duration_ms: int

    @property
    def message(self) -> str:
        return MESSAGE_DUPLICATE if self.is_duplicate else MESSAGE_INGESTED


class IngestionService:
    """
    Service for idempotent session ingestion and session reads.

    Attributes:
        repository: Session store.
        registry: Device/factory registry collaborator.
        audit: Best-effort audit dispatcher.
        settings: Session service settings (duration tolerance).
    """

    def __init__(
        self,
        repository: SessionRepository | None = None,
        registry: DeviceRegistry | None = None,
        audit: AuditRecorder | None = None,
        settings: SessionServiceSettings | None = None,
    ) -> None:
        self.repository = repository or SessionRepository()
        self.registry = registry or SqlDeviceRegistry()
        self.audit = audit or AuditRecorder()
        self.settings = settings or get_settings("session-service")

    async def ingest(
        self,
        tenant_id: str,
        device_id: str,
        start_time: str | datetime,
        stop_time: str | datetime,
        claimed_duration_ms: float,
    ) -> IngestionResult:
        """
        Ingest one session.

        Returns:
            IngestionResult: ``is_duplicate`` is False for a newly stored session
                and True when the triple was already stored; both are successes.

        Raises:
            ValidationError: A timestamp is not ISO-8601, or start_time >= stop_time.
            NotFoundError: The device is unknown to the tenant or inactive.
        """
        try:
            start = parse_timestamp(start_time)
            stop = parse_timestamp(stop_time)
        except (TypeError, ValueError) as e:
            msg = "Invalid timestamp format. Use ISO-8601."
            raise ValidationError(msg) from e

        if start >= stop:
            msg = "start_time must be before stop_time"
            raise ValidationError(msg)

        computed_duration_ms = duration_ms_between(start, stop)
        if abs(claimed_duration_ms - computed_duration_ms) > self.settings.DURATION_TOLERANCE_MS:
            logger.warning(
                f"Duration mismatch for device {device_id}: "
                f"client={claimed_duration_ms}ms, server={computed_duration_ms}ms"
            )

        device = await self.registry.resolve_device(tenant_id, device_id)
        if device is None or not device.is_active:
            msg = f"Device {device_id} not found or inactive"
            raise NotFoundError(msg)

        try:
            session = await self.repository.insert_session(
                tenant_id=tenant_id,
                factory_id=device.factory_id,
                device_id=device_id,
                start_time=start,
                stop_time=stop,
                duration_ms=computed_duration_ms,
            )
        except UniqueConstraintViolation:
            return await self._resolve_duplicate(device_id, start, stop)

        logger.info(
            f"Ingested session {session.id} for device {device_id} "
            f"({computed_duration_ms}ms) tenant {tenant_id}"
        )
        self.audit.record_nowait(
            tenant_id=tenant_id,
            actor_id=device.internal_id,
            actor_type="device",
            action="session.ingest",
            resource_type="device_session",
            resource_id=str(session.id),
            details={
                "device_id": device_id,
                "start_time": isoformat_utc(start),
                "stop_time": isoformat_utc(stop),
                "duration_ms": computed_duration_ms,
            },
        )
        return IngestionResult(
            session_id=str(session.id),
            is_duplicate=False,
            computed_duration_ms=computed_duration_ms,
        )

    async def _resolve_duplicate(
        self, device_id: str, start: datetime, stop: datetime
    ) -> IngestionResult:
        existing = await self.repository.get_by_idempotency_key(device_id, start, stop)
        if existing is None:
            # Sessions are never deleted, so a conflict without a row is a store fault
            logger.error(
                f"Unique conflict for device {device_id} but no stored session "
                f"[{isoformat_utc(start)} - {isoformat_utc(stop)}]"
            )
            msg = "Session conflict could not be resolved"
            raise ServiceError(msg)

        logger.info(f"Duplicate session {existing.id} for device {device_id} (idempotent)")
        return IngestionResult(
            session_id=str(existing.id),
            is_duplicate=True,
            computed_duration_ms=existing.duration_ms,
        )

    async def list_device_sessions(
        self,
        tenant_id: str,
        device_id: str,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[DeviceSession], int]:
        """Return one page of the device's sessions (newest first) and the total count."""
        offset = (page - 1) * limit
        sessions = await self.repository.list_sessions(
            tenant_id, device_id, date_from, date_to, offset=offset, limit=limit
        )
        total = await self.repository.count_sessions(tenant_id, device_id, date_from, date_to)
        return sessions, total

    async def count_device_sessions(
        self,
        tenant_id: str,
        device_id: str,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> int:
        return await self.repository.count_sessions(tenant_id, device_id, date_from, date_to)
