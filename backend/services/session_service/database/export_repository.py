"""
Export Job Repository Implementation for the Session Service

This module provides the database access layer for export jobs. Beyond plain
creation and lookup, it owns the job state machine at the storage level: every
status change is a conditional ``UPDATE ... WHERE status = <expected>``, so two
writers can never both move a job, and a job never revisits an earlier state.

Operations:
    - Job creation (always ``pending``)
    - Lookup scoped to the owning (tenant, user) pair
    - Paginated listing, newest first
    - Conditional status transitions with completion/failure fields
    - Expired job discovery and deletion for the TTL sweep

See Also:
    - common.models.job_status: Allowed transitions
    - services.session_service.services.export_service: Business logic
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select, update

from common.database import ensure_aware_utc, get_async_db_session
from common.exceptions import InvalidStateTransition
from common.models import ExportJob, ExportStatus, can_transition
from services.session_service.database.base import RepositoryBase

_DATETIME_FIELDS = ("date_from", "date_to", "created_at", "completed_at", "expires_at")


def _normalize(job: ExportJob) -> ExportJob:
    for field in _DATETIME_FIELDS:
        setattr(job, field, ensure_aware_utc(getattr(job, field)))
    return job


class ExportRepository(RepositoryBase):
    """Repository for export job rows."""

    async def create_job(
        self,
        tenant_id: str,
        user_id: str,
        device_id: str,
        export_format: str,
        date_from: datetime,
        date_to: datetime,
    ) -> ExportJob:
        """Insert a new job in ``pending`` state and return it."""
        job = ExportJob(
            tenant_id=tenant_id,
            user_id=user_id,
            device_id=device_id,
            format=export_format,
            date_from=ensure_aware_utc(date_from),
            date_to=ensure_aware_utc(date_to),
            status=ExportStatus.PENDING.value,
        )
        async with get_async_db_session(self.session_maker) as session:
            session.add(job)
            await session.flush()
        logger.info(f"Created export job {job.id} ({export_format}) for device {device_id}")
        return _normalize(job)

    async def get_job(self, job_id: str) -> ExportJob | None:
        """Fetch a job by id without ownership scoping (background task use)."""
        async with get_async_db_session(self.session_maker) as session:
            job = await session.get(ExportJob, job_id)
        return _normalize(job) if job is not None else None

    async def get_user_job(self, tenant_id: str, user_id: str, job_id: str) -> ExportJob | None:
        """Fetch a job visible to the (tenant, user) pair."""
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(
                select(ExportJob).where(
                    ExportJob.id == job_id,
                    ExportJob.tenant_id == tenant_id,
                    ExportJob.user_id == user_id,
                )
            )
            job = result.scalar_one_or_none()
        return _normalize(job) if job is not None else None

    async def list_user_jobs(
        self, tenant_id: str, user_id: str, offset: int = 0, limit: int = 20
    ) -> tuple[list[ExportJob], int]:
        """Return one page of the user's jobs (newest first) and the total count."""
        scope = (ExportJob.tenant_id == tenant_id, ExportJob.user_id == user_id)
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(
                select(ExportJob)
                .where(*scope)
                .order_by(ExportJob.created_at.desc(), ExportJob.id)
                .offset(offset)
                .limit(limit)
            )
            jobs = list(result.scalars().all())
            total = (
                await session.execute(select(func.count(ExportJob.id)).where(*scope))
            ).scalar_one()
        return [_normalize(job) for job in jobs], int(total or 0)

    async def transition(
        self,
        job_id: str,
        expected: ExportStatus,
        target: ExportStatus,
        **fields: Any,
    ) -> bool:
        """
        Move a job from ``expected`` to ``target`` and set ``fields`` atomically.

        Returns:
            bool: True if the job was in ``expected`` state and has been moved,
                False if it was not (another writer moved it, or it does not exist).

        Raises:
            InvalidStateTransition: ``expected -> target`` is not an allowed transition.
        """
        if not can_transition(expected, target):
            msg = f"Export job cannot move from {expected.value} to {target.value}"
            raise InvalidStateTransition(msg)

        values = {
            key: ensure_aware_utc(value) if isinstance(value, datetime) else value
            for key, value in fields.items()
        }
        values["status"] = target.value

        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(
                update(ExportJob)
                .where(ExportJob.id == job_id, ExportJob.status == expected.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            moved = result.rowcount == 1

        if moved:
            logger.info(f"Export job {job_id}: {expected.value} -> {target.value}")
        else:
            logger.warning(
                f"Export job {job_id} was not in {expected.value} state; "
                f"transition to {target.value} skipped"
            )
        return moved

    async def list_expired(self, now: datetime) -> list[ExportJob]:
        """Return jobs whose ``expires_at`` is at or before ``now``."""
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(
                select(ExportJob).where(
                    ExportJob.expires_at.is_not(None),
                    ExportJob.expires_at <= ensure_aware_utc(now),
                )
            )
            jobs = list(result.scalars().all())
        return [_normalize(job) for job in jobs]

    async def delete_jobs(self, job_ids: list[str]) -> int:
        if not job_ids:
            return 0
        async with get_async_db_session(self.session_maker) as session:
            result = await session.execute(
                delete(ExportJob)
                .where(ExportJob.id.in_(job_ids))
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0)
