"""
Export Job API Models.

Request and response schemas for creating export jobs, polling their status,
and listing a user's jobs.
"""

from pydantic import BaseModel, Field

from common.models import ExportFormat
from services.session_service.api.v1.models.sessions import Pagination, UtcDatetime


class CreateExportRequest(BaseModel):
    """
    Request model for creating an export job.

    Attributes:
        format: "csv", "xlsx" or "json".
        date_from: ISO-8601 inclusive range start (matched against start_time).
        date_to: ISO-8601 inclusive range end.
    """

    format: ExportFormat
    date_from: str = Field(min_length=1)
    date_to: str = Field(min_length=1)


class CreateExportResponse(BaseModel):
    export_id: str
    status: str
    message: str = "Export job created. Check status for download link."


class ExportJobResponse(BaseModel):
    """Status view of an export job. ``download_url`` is set only once completed."""

    export_id: str
    device_id: str
    format: str
    status: str
    record_count: int | None = None
    file_size: int | None = None
    created_at: UtcDatetime
    completed_at: UtcDatetime | None = None
    expires_at: UtcDatetime | None = None
    error_message: str | None = None
    download_url: str | None = None


class ExportJobSummary(BaseModel):
    export_id: str
    device_id: str
    format: str
    status: str
    record_count: int | None = None
    created_at: UtcDatetime
    completed_at: UtcDatetime | None = None


class ExportJobListResponse(BaseModel):
    exports: list[ExportJobSummary]
    pagination: Pagination
