"""
Export job model for asynchronous session extracts.

Models:
    ExportJob: Tracks one user's request to materialise a device's sessions
        into a downloadable CSV, XLSX or JSON file.
"""

from __future__ import annotations

from datetime import datetime
import uuid

from sqlalchemy import TIMESTAMP, BigInteger, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from common.database import Base, utcnow
from common.models.job_status import ExportStatus


class ExportJob(Base):
    """
    Model representing an export job and its generated artifact.

    The row is the only durable coordination state between the request that
    created the job and the background task that produces the file. Only the
    background task moves ``status`` forward (see ``common.models.job_status``).

    Attributes:
        id (str): Job identifier (UUID). Primary key.
        tenant_id (str): Tenant the job belongs to.
        user_id (str): Requesting user. Jobs are only visible to this
            (tenant, user) pair.
        device_id (str): Business identifier of the exported device.
        format (str): "csv", "xlsx" or "json".
        date_from (datetime): Inclusive start of the exported range (UTC).
        date_to (datetime): Inclusive end of the exported range (UTC).
        status (str): "pending", "processing", "completed" or "failed".
        record_count (int | None): Number of exported sessions. Set on completion.
        file_size (int | None): Artifact size in bytes. Set on completion.
        file_path (str | None): Artifact location. Set on completion.
        error_message (str | None): Cause of failure. Set on failure.
        created_at (datetime): Creation instant.
        completed_at (datetime | None): Instant the job reached a terminal state.
        expires_at (datetime | None): Instant after which the artifact is treated
            as absent. ``completed_at + EXPORT_TTL_SECONDS``.

    Table:
        export_jobs
    """

    __tablename__ = "export_jobs"
    __table_args__ = (
        Index("ix_export_jobs_tenant_user_created", "tenant_id", "user_id", "created_at"),
        Index("ix_export_jobs_tenant_status", "tenant_id", "status"),
        Index("ix_export_jobs_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_id: Mapped[str] = mapped_column(String(100), nullable=False)
    format: Mapped[str] = mapped_column(String(10), nullable=False)
    date_from: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    date_to: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ExportStatus.PENDING.value
    )
    record_count: Mapped[int | None] = mapped_column(Integer)
    file_size: Mapped[int | None] = mapped_column(BigInteger)
    file_path: Mapped[str | None] = mapped_column(String(500))
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
    expires_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
