"""
Session Ingestion API Models.

This module defines the Pydantic models for session ingestion and session
listing. Timestamps are accepted as raw strings and parsed by the ingestion
service, which owns the ISO-8601 validation and its error message.
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer

from services.session_service.utils import isoformat_utc

UtcDatetime = Annotated[datetime, PlainSerializer(isoformat_utc, return_type=str, when_used="json")]


class SessionIngestRequest(BaseModel):
    """
    Payload sent by a device when a working session ends.

    Attributes:
        device_id: Business identifier of the device (e.g. "DEV-1").
        start_time: ISO-8601 start instant.
        stop_time: ISO-8601 stop instant.
        duration: Duration in milliseconds as measured by the device. Only used
            for a consistency check; the stored duration is computed server-side.
    """

    device_id: str = Field(min_length=1, max_length=100)
    start_time: str = Field(min_length=1)
    stop_time: str = Field(min_length=1)
    duration: float = Field(gt=0)


class SessionIngestResponse(BaseModel):
    """Outcome of an ingestion, identical in shape for new and duplicate sessions."""

    session_id: str
    is_duplicate: bool
    computed_duration_ms: int
    message: str


class DeviceSessionResponse(BaseModel):
    """A stored session as returned by the listing endpoint."""

    session_id: str
    device_id: str
    factory_id: str
    start_time: UtcDatetime
    stop_time: UtcDatetime
    duration_ms: int
    ingested_at: UtcDatetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class DeviceSessionListResponse(BaseModel):
    sessions: list[DeviceSessionResponse]
    pagination: Pagination
