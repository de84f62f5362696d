"""
Session Service - FastAPI Application Entry Point

This module is the entry point of the Session Service, the microservice that
records machine working sessions reported by factory devices and serves the
dashboards built on them.

The service provides RESTful APIs for:
    - Idempotent session ingestion from devices
    - Daily, weekly, monthly, summary and current-period duration analytics
    - Asynchronous CSV / XLSX / JSON session exports with expiring downloads

Architecture:
    Every request is tenant-scoped through the X-Tenant-Id header set by the
    gateway; dashboard endpoints additionally require X-User-Id. Export files
    are generated by background tasks in this process and purged by a periodic
    sweep once they expire.

Lifecycle:
    On startup the schema is created if missing, the export directory is
    ensured and the expiry monitor starts. On shutdown the monitor stops,
    pending audit events are flushed and database engines are disposed.

Example:
    To run the service locally:
        ```bash
        uv run uvicorn services.session_service:app --port 8002 --reload
        ```

Attributes:
    app (FastAPI): The FastAPI application instance configured with:
        - Service name: "session-service"
        - API router: Includes all v1 endpoints
        - Lifespan: schema bootstrap and export expiry monitor
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from common.config import get_settings
from common.database import dispose_engines, init_database
from common.fastapi import create_fastapi_app
from common.job_monitor import JobMonitor
from services.session_service.api.dependencies import get_audit_recorder, get_export_service
from services.session_service.api.v1.api import api_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings("session-service")

    await init_database()
    Path(settings.EXPORT_DIR).mkdir(parents=True, exist_ok=True)

    monitor = JobMonitor(
        name="export-expiry",
        sweep=get_export_service().purge_expired_exports,
        interval_seconds=settings.EXPORT_CLEANUP_INTERVAL_SECONDS,
    )
    await monitor.start()
    logger.info(f"Session service ready (exports in {settings.EXPORT_DIR})")

    try:
        yield
    finally:
        await monitor.stop()
        await get_audit_recorder().drain()
        await dispose_engines()


app = create_fastapi_app(
    service_name="session-service",
    description="Machine session ingestion, duration analytics and exports",
    api_router=api_router,
    lifespan=lifespan,
)
