"""
Export Job Service - Asynchronous session extracts in CSV, XLSX and JSON.

This module implements the export pipeline: a request creates a ``pending``
job and returns immediately; generation runs afterwards as a background task
that owns all of its error handling and reports only through the job row.

Job Lifecycle:
1. **Admission**: the device must exist for the tenant and the number of
   matching sessions must not exceed EXPORT_MAX_RECORDS
2. **Creation**: job row inserted as ``pending``; the processing task is
   scheduled on FastAPI BackgroundTasks, after the 202 response
3. **Processing**: ``pending -> processing``; sessions streamed from a cursor
   in EXPORT_BATCH_SIZE batches, each batch written by the format writer in
   a worker thread
4. **Completion**: ``processing -> completed`` with record_count, file_size,
   file_path, completed_at and ``expires_at = completed_at + EXPORT_TTL_SECONDS``;
   one best-effort audit event
5. **Failure**: ``processing -> failed`` with error_message and completed_at;
   the partially written file is removed
6. **Expiry**: downloads stop once ``expires_at`` passes; the periodic purge
   deletes expired artifacts and rows

A process crash between dispatch and completion leaves the job in
``processing``; there is no automatic retry.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
import uuid

from fastapi import BackgroundTasks
from loguru import logger

from common.audit import AuditRecorder
from common.config import get_settings
from common.config.settings import SessionServiceSettings
from common.database import ensure_aware_utc
from common.exceptions import GenerationFailure, LimitExceededError, NotFoundError, ValidationError
from common.models import TERMINAL_STATUSES, ExportFormat, ExportJob, ExportStatus
from services.session_service.database.device_registry import DeviceRegistry, SqlDeviceRegistry
from services.session_service.database.export_repository import ExportRepository
from services.session_service.database.session_repository import SessionRepository
from services.session_service.services.export_writers import (
    ExportWriter,
    build_export_row,
    create_writer,
)
from services.session_service.utils import parse_timestamp_param, run_sync_in_executor

DOWNLOAD_URL_TEMPLATE = "/api/v1/exports/{export_id}/download"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (TypeError, ValueError):
        return False
    return True


class ExportService:
    """
    Service orchestrating export jobs.

    Attributes:
        repository: Export job store.
        sessions: Session store, read through a streaming cursor.
        registry: Device/factory registry.
        audit: Best-effort audit dispatcher.
        settings: Session service settings (limits, TTL, directory, batch size).
        clock: Returns the current aware UTC instant; injectable for expiry tests.
        _executor: Thread pool running the synchronous file writers.
    """

    def __init__(
        self,
        repository: ExportRepository | None = None,
        sessions: SessionRepository | None = None,
        registry: DeviceRegistry | None = None,
        audit: AuditRecorder | None = None,
        settings: SessionServiceSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository or ExportRepository()
        self.sessions = sessions or SessionRepository()
        self.registry = registry or SqlDeviceRegistry()
        self.audit = audit or AuditRecorder()
        self.settings = settings or get_settings("session-service")
        self.clock = clock
        self.export_dir = Path(self.settings.EXPORT_DIR)
        # Thread pool for blocking file I/O
        self._executor = ThreadPoolExecutor(
            max_workers=2,
            thread_name_prefix="export-writer",
        )

    def __del__(self):
        """Cleanup thread pool on destruction."""
        if hasattr(self, "_executor"):
            self._executor.shutdown(wait=False)

    # ======================================
    # JOB CREATION
    # ======================================

    async def create_export_job(
        self,
        tenant_id: str,
        user_id: str,
        device_id: str,
        export_format: ExportFormat | str,
        date_from: str | datetime,
        date_to: str | datetime,
        background_tasks: BackgroundTasks,
    ) -> ExportJob:
        """
        Admit and persist an export job, scheduling its generation.

        Returns immediately with the ``pending`` job; generation runs once the
        background tasks execute.

        Raises:
            ValidationError: A date is not ISO-8601 or date_from > date_to.
            NotFoundError: The device is not registered for the tenant.
            LimitExceededError: More sessions match than EXPORT_MAX_RECORDS.
        """
        export_format = ExportFormat(export_format)
        range_from = self._parse_bound(date_from, "date_from")
        range_to = self._parse_bound(date_to, "date_to")
        if range_from > range_to:
            msg = "date_from must not be after date_to"
            raise ValidationError(msg)

        device = await self.registry.resolve_device(tenant_id, device_id)
        if device is None:
            msg = "Device not found"
            raise NotFoundError(msg)

        record_count = await self.sessions.count_sessions(tenant_id, device_id, range_from, range_to)
        if record_count > self.settings.EXPORT_MAX_RECORDS:
            msg = f"Export exceeds maximum record limit of {self.settings.EXPORT_MAX_RECORDS}"
            raise LimitExceededError(msg)

        job = await self.repository.create_job(
            tenant_id=tenant_id,
            user_id=user_id,
            device_id=device_id,
            export_format=export_format.value,
            date_from=range_from,
            date_to=range_to,
        )

        background_tasks.add_task(self.process_export_job, job.id)
        logger.info(
            f"Queued export job {job.id} for device {device_id} "
            f"({record_count} sessions, {export_format.value})"
        )
        return job

    @staticmethod
    def _parse_bound(value: str | datetime, name: str) -> datetime:
        if isinstance(value, datetime):
            return ensure_aware_utc(value)  # type: ignore[return-value]
        parsed = parse_timestamp_param(value, name)
        if parsed is None:
            msg = f"{name} is required"
            raise ValidationError(msg)
        return parsed

    # ======================================
    # BACKGROUND PROCESSING
    # ======================================

    async def process_export_job(self, job_id: str) -> None:
        """
        Generate the artifact for a pending job.

        Never raises: generation outcomes are recorded on the job row, and a
        failure to reach the job store is logged.
        """
        try:
            await self._process(job_id)
        except Exception as e:
            logger.exception(f"Export job {job_id} could not be processed: {e}")

    async def _process(self, job_id: str) -> None:
        job = await self.repository.get_job(job_id)
        if job is None:
            logger.error(f"Export job {job_id} disappeared before processing")
            return
        if ExportStatus(job.status) in TERMINAL_STATUSES:
            logger.info(f"Export job {job_id} is already {job.status}; skipping")
            return

        if not await self.repository.transition(job_id, ExportStatus.PENDING, ExportStatus.PROCESSING):
            return

        file_path = self.export_dir / f"export_{job.device_id}_{uuid.uuid4()}.{job.format}"
        try:
            record_count = await self._generate(job, file_path)
            file_size = file_path.stat().st_size
        except Exception as e:
            await self._fail(job, file_path, e)
            return

        completed_at = self.clock()
        moved = await self.repository.transition(
            job_id,
            ExportStatus.PROCESSING,
            ExportStatus.COMPLETED,
            file_path=str(file_path),
            file_size=file_size,
            record_count=record_count,
            completed_at=completed_at,
            expires_at=completed_at + timedelta(seconds=self.settings.EXPORT_TTL_SECONDS),
        )
        if not moved:
            self._remove_file(file_path)
            return

        logger.info(
            f"Export job {job_id} completed: {record_count} records, {file_size} bytes -> {file_path}"
        )
        self.audit.record_nowait(
            tenant_id=job.tenant_id,
            actor_id=job.user_id,
            actor_type="user",
            action="export.complete",
            resource_type="export_job",
            resource_id=job_id,
            details={
                "device_id": job.device_id,
                "format": job.format,
                "record_count": record_count,
            },
        )

    async def _generate(self, job: ExportJob, file_path: Path) -> int:
        """Stream the job's sessions into ``file_path``. Returns the row count."""
        device = await self.registry.resolve_device(job.tenant_id, job.device_id)
        device_name = device.name if device else ""
        factory_name = ""
        if device is not None:
            factory_name = await self.registry.get_factory_name(device.factory_id) or ""

        self.export_dir.mkdir(parents=True, exist_ok=True)
        writer = create_writer(job.format, file_path)

        try:
            await run_sync_in_executor(self._executor, writer.open)
            async for batch in self.sessions.stream_session_batches(
                job.tenant_id,
                job.device_id,
                job.date_from,
                job.date_to,
                batch_size=self.settings.EXPORT_BATCH_SIZE,
            ):
                rows = [build_export_row(session, device_name, factory_name) for session in batch]
                await run_sync_in_executor(self._executor, writer.write_rows, rows)
            await run_sync_in_executor(self._executor, writer.close)
        except Exception as e:
            self._abort_writer(writer)
            msg = f"{type(e).__name__}: {e}"
            raise GenerationFailure(msg) from e

        return writer.rows_written

    def _abort_writer(self, writer: ExportWriter) -> None:
        try:
            writer.abort()
        except Exception as e:
            logger.warning(f"Could not release export writer for {writer.path}: {e}")

    async def _fail(self, job: ExportJob, file_path: Path, error: Exception) -> None:
        message = error.message if isinstance(error, GenerationFailure) else str(error)
        logger.error(f"Export job {job.id} failed: {message}")
        self._remove_file(file_path)
        await self.repository.transition(
            job.id,
            ExportStatus.PROCESSING,
            ExportStatus.FAILED,
            error_message=message or type(error).__name__,
            completed_at=self.clock(),
        )

    @staticmethod
    def _remove_file(file_path: Path | str) -> None:
        try:
            Path(file_path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove export file {file_path}: {e}")

    # ======================================
    # STATUS, DOWNLOAD AND LISTING
    # ======================================

    async def get_export_job(self, tenant_id: str, user_id: str, job_id: str) -> ExportJob:
        """
        Raises:
            NotFoundError: No such job for this (tenant, user).
        """
        job = await self.repository.get_user_job(tenant_id, user_id, job_id) if _is_uuid(job_id) else None
        if job is None:
            msg = "Export job not found"
            raise NotFoundError(msg)
        return job

    @staticmethod
    def download_url(job: ExportJob) -> str | None:
        if job.status != ExportStatus.COMPLETED.value:
            return None
        return DOWNLOAD_URL_TEMPLATE.format(export_id=job.id)

    async def get_download_path(self, tenant_id: str, user_id: str, job_id: str) -> Path:
        """
        Return the artifact path of a completed, unexpired job whose file exists.

        Raises:
            NotFoundError: In every other case, including a ``completed`` job
                whose artifact has expired.
        """
        job = await self.repository.get_user_job(tenant_id, user_id, job_id) if _is_uuid(job_id) else None
        not_found = NotFoundError("Export file not found or expired")

        if job is None or job.status != ExportStatus.COMPLETED.value or not job.file_path:
            raise not_found
        if job.expires_at is None or self.clock() >= job.expires_at:
            raise not_found
        path = Path(job.file_path)
        if not path.is_file():
            raise not_found
        return path

    async def list_export_jobs(
        self, tenant_id: str, user_id: str, page: int = 1, limit: int = 20
    ) -> tuple[list[ExportJob], int]:
        return await self.repository.list_user_jobs(
            tenant_id, user_id, offset=(page - 1) * limit, limit=limit
        )

    # ======================================
    # EXPIRY
    # ======================================

    async def purge_expired_exports(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Delete artifacts and rows of jobs whose ``expires_at`` has passed.

        Returns:
            dict: ``{"jobs_deleted": int, "files_deleted": int}``
        """
        now = now or self.clock()
        expired = await self.repository.list_expired(now)
        if not expired:
            return {"jobs_deleted": 0, "files_deleted": 0}

        files_deleted = 0
        for job in expired:
            if job.file_path and Path(job.file_path).exists():
                self._remove_file(job.file_path)
                files_deleted += 1

        jobs_deleted = await self.repository.delete_jobs([job.id for job in expired])
        logger.info(f"Purged {jobs_deleted} expired export jobs ({files_deleted} files)")
        return {"jobs_deleted": jobs_deleted, "files_deleted": files_deleted}
