"""
Shared API Dependencies for the Session Service

This module provides reusable FastAPI dependencies used across the session
service endpoints: the authenticated principal and cached service instances.

Dependencies:
    - get_principal: (tenant, user, role) from gateway headers
    - get_tenant_id: Tenant from the X-Tenant-Id header only (device ingestion)
    - get_ingestion_service / get_analytics_service / get_export_service:
      process-wide service instances sharing one audit recorder

Services are cached with ``lru_cache`` so every request reuses the same
repositories and thread pools. Tests replace them through
``app.dependency_overrides``.

Example:
    ```python
    from fastapi import Depends
    from services.session_service.api.dependencies import get_principal, get_export_service

    @router.get("/exports")
    async def list_exports(
        principal: AuthenticatedPrincipal = Depends(get_principal),
        service: ExportService = Depends(get_export_service),
    ):
        ...
    ```
"""

from functools import lru_cache

from fastapi import Header, HTTPException
from loguru import logger

from common.audit import AuditRecorder
from common.security import AuthenticatedPrincipal, get_current_principal
from services.session_service.services.analytics_service import AnalyticsService
from services.session_service.services.export_service import ExportService
from services.session_service.services.ingestion_service import IngestionService

get_principal = get_current_principal

__all__ = [
    "AuthenticatedPrincipal",
    "get_analytics_service",
    "get_audit_recorder",
    "get_export_service",
    "get_ingestion_service",
    "get_principal",
    "get_tenant_id",
]


def get_tenant_id(
    tenant_id_header: str | None = Header(default=None, alias="X-Tenant-Id"),
) -> str:
    """
    Extract and validate the tenant ID from the X-Tenant-Id HTTP header.

    Device ingestion only needs the tenant: devices are not users, so
    X-User-Id is not required there.

    Raises:
        HTTPException: 400 Bad Request if header is missing or empty
    """
    if tenant_id_header is None:
        logger.warning("Missing X-Tenant-Id header")
        raise HTTPException(status_code=400, detail="X-Tenant-Id header is required")

    tenant_id_value = tenant_id_header.strip()
    if not tenant_id_value:
        logger.warning("Empty X-Tenant-Id header")
        raise HTTPException(status_code=400, detail="X-Tenant-Id header cannot be empty")

    return tenant_id_value


@lru_cache
def get_audit_recorder() -> AuditRecorder:
    return AuditRecorder()


@lru_cache
def get_ingestion_service() -> IngestionService:
    return IngestionService(audit=get_audit_recorder())


@lru_cache
def get_analytics_service() -> AnalyticsService:
    return AnalyticsService()


@lru_cache
def get_export_service() -> ExportService:
    """
    Get cached export service instance.

    Returns:
        ExportService: Shared instance whose thread pool lives for the process.
    """
    return ExportService(audit=get_audit_recorder())
