"""
Session Export API Endpoints

Endpoints:
    - POST /devices/{device_id}/sessions/export: Create a job (202), generation
      runs after the response
    - GET /exports: The caller's jobs, newest first
    - GET /exports/{export_id}: Status of one job; ``download_url`` once completed
    - GET /exports/{export_id}/download: The artifact, until ``expires_at``

Jobs are visible only to the (tenant, user) that created them; anything else
is reported as 404.
"""

from math import ceil

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from common.config import get_settings
from common.exceptions import ServiceError, handle_database_error
from services.session_service.api.dependencies import (
    AuthenticatedPrincipal,
    get_export_service,
    get_principal,
)
from services.session_service.api.v1.models import (
    CreateExportRequest,
    CreateExportResponse,
    ExportJobListResponse,
    ExportJobResponse,
    ExportJobSummary,
    Pagination,
)
from services.session_service.services.export_service import ExportService
from services.session_service.services.export_writers import content_type_for

router = APIRouter()

_settings = get_settings("session-service")


@router.post(
    "/devices/{device_id}/sessions/export",
    response_model=CreateExportResponse,
    status_code=202,
)
async def create_export(
    device_id: str,
    payload: CreateExportRequest,
    background_tasks: BackgroundTasks,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: ExportService = Depends(get_export_service),
) -> CreateExportResponse:
    """
    Create an export job for a device's sessions.

    Returns 400 when the range holds more than EXPORT_MAX_RECORDS sessions
    and 404 when the device is not registered.
    """
    try:
        job = await service.create_export_job(
            tenant_id=principal.tenant_id,
            user_id=principal.user_id,
            device_id=device_id,
            export_format=payload.format,
            date_from=payload.date_from,
            date_to=payload.date_to,
            background_tasks=background_tasks,
        )
        return CreateExportResponse(export_id=str(job.id), status=job.status)

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = "creating export job"
        raise handle_database_error(msg, e)


@router.get("/exports", response_model=ExportJobListResponse)
async def list_exports(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=_settings.DEFAULT_PAGE_SIZE, ge=1, le=_settings.MAX_PAGE_SIZE),
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: ExportService = Depends(get_export_service),
) -> ExportJobListResponse:
    try:
        jobs, total = await service.list_export_jobs(
            principal.tenant_id, principal.user_id, page=page, limit=limit
        )
        return ExportJobListResponse(
            exports=[
                ExportJobSummary(
                    export_id=str(job.id),
                    device_id=job.device_id,
                    format=job.format,
                    status=job.status,
                    record_count=job.record_count,
                    created_at=job.created_at,
                    completed_at=job.completed_at,
                )
                for job in jobs
            ],
            pagination=Pagination(
                page=page, limit=limit, total=total, total_pages=ceil(total / limit)
            ),
        )

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = "listing export jobs"
        raise handle_database_error(msg, e)


@router.get("/exports/{export_id}", response_model=ExportJobResponse)
async def get_export_status(
    export_id: str,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: ExportService = Depends(get_export_service),
) -> ExportJobResponse:
    """Current state of an export job."""
    try:
        job = await service.get_export_job(principal.tenant_id, principal.user_id, export_id)
        return ExportJobResponse(
            export_id=str(job.id),
            device_id=job.device_id,
            format=job.format,
            status=job.status,
            record_count=job.record_count,
            file_size=job.file_size,
            created_at=job.created_at,
            completed_at=job.completed_at,
            expires_at=job.expires_at,
            error_message=job.error_message,
            download_url=service.download_url(job),
        )

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = "fetching export job"
        raise handle_database_error(msg, e)


@router.get("/exports/{export_id}/download")
async def download_export(
    export_id: str,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: ExportService = Depends(get_export_service),
) -> FileResponse:
    """Stream the generated file with its format's content type."""
    try:
        path = await service.get_download_path(principal.tenant_id, principal.user_id, export_id)
        return FileResponse(path, media_type=content_type_for(path), filename=path.name)

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = "downloading export"
        raise handle_database_error(msg, e)
