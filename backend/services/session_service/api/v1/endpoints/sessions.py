"""
Session Ingestion API Endpoints

This module exposes the device-facing ingestion endpoint and the dashboard's
session listing.

Endpoints:
    - POST /device/session: Idempotent ingestion; 200 for new and duplicate
      sessions, 400 for invalid input, 404 for unknown or inactive devices
    - GET /devices/{device_id}/sessions: Paginated sessions, newest first

Example:
    ```python
    POST /api/v1/device/session
    Headers:
        X-Tenant-Id: tenant-123
    Body:
        {
            "device_id": "DEV-1",
            "start_time": "2024-01-01T08:00:00Z",
            "stop_time": "2024-01-01T09:30:00Z",
            "duration": 5400000
        }
    ```
"""

from math import ceil

from fastapi import APIRouter, Depends, HTTPException, Query

from common.config import get_settings
from common.exceptions import ServiceError, handle_database_error
from services.session_service.api.dependencies import (
    AuthenticatedPrincipal,
    get_ingestion_service,
    get_principal,
    get_tenant_id,
)
from services.session_service.api.v1.models import (
    DeviceSessionListResponse,
    DeviceSessionResponse,
    Pagination,
    SessionIngestRequest,
    SessionIngestResponse,
)
from services.session_service.services.ingestion_service import IngestionService
from services.session_service.utils import parse_timestamp_param

router = APIRouter()

# Get settings for pagination constants
_settings = get_settings("session-service")


@router.post("/device/session", response_model=SessionIngestResponse)
async def ingest_session(
    payload: SessionIngestRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: IngestionService = Depends(get_ingestion_service),
) -> SessionIngestResponse:
    """
    Ingest one machine working session.

    Re-submitting an already stored (device_id, start_time, stop_time) triple
    returns the stored session with ``is_duplicate = true``.
    """
    try:
        result = await service.ingest(
            tenant_id=tenant_id,
            device_id=payload.device_id,
            start_time=payload.start_time,
            stop_time=payload.stop_time,
            claimed_duration_ms=payload.duration,
        )
        return SessionIngestResponse(
            session_id=result.session_id,
            is_duplicate=result.is_duplicate,
            computed_duration_ms=result.computed_duration_ms,
            message=result.message,
        )

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = "ingesting session"
        raise handle_database_error(msg, e)


@router.get("/devices/{device_id}/sessions", response_model=DeviceSessionListResponse)
async def list_device_sessions(
    device_id: str,
    date_from: str | None = Query(default=None, description="ISO-8601 lower bound on start_time"),
    date_to: str | None = Query(default=None, description="ISO-8601 upper bound on start_time"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=_settings.DEFAULT_PAGE_SIZE, ge=1, le=_settings.MAX_PAGE_SIZE),
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: IngestionService = Depends(get_ingestion_service),
) -> DeviceSessionListResponse:
    """
    List a device's sessions, newest first.
    """
    try:
        sessions, total = await service.list_device_sessions(
            principal.tenant_id,
            device_id,
            parse_timestamp_param(date_from, "date_from"),
            parse_timestamp_param(date_to, "date_to"),
            page=page,
            limit=limit,
        )
        return DeviceSessionListResponse(
            sessions=[
                DeviceSessionResponse(
                    session_id=str(session.id),
                    device_id=session.device_id,
                    factory_id=session.factory_id,
                    start_time=session.start_time,
                    stop_time=session.stop_time,
                    duration_ms=session.duration_ms,
                    ingested_at=session.ingested_at,
                )
                for session in sessions
            ],
            pagination=Pagination(
                page=page, limit=limit, total=total, total_pages=ceil(total / limit)
            ),
        )

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = "listing device sessions"
        raise handle_database_error(msg, e)
