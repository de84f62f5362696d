"""
FastAPI application factory shared by the backend services.

``create_fastapi_app`` wires the pieces every service needs so that service
``main`` modules only supply their router and lifespan.

Wiring:
    - loguru sinks for the service (``common.logging``)
    - CORS: explicit CORS_ORIGINS in PROD, localhost dashboard origins otherwise
    - ``X-Process-Time`` header plus one access log line per request
    - ``/`` and ``/health`` service endpoints
    - the service router mounted under API_V1_STR

Error Contract:
    - ServiceError subclasses: their status code with ``{"error": message}``
    - HTTPException (header guards, unknown routes): its status code with
      ``{"error": detail}``
    - Request validation failures: 400 with ``{"error": ..., "details": [...]}``
    - Anything else: 500 with a generic message, logged with traceback

Usage:
    ```python
    from common.fastapi import create_fastapi_app
    from services.session_service.api.v1.api import api_router

    app = create_fastapi_app(
        service_name="session-service",
        description="Machine session ingestion, duration analytics and exports",
        api_router=api_router,
        lifespan=lifespan,
    )
    ```
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
import time
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.config import BaseServiceSettings, get_settings
from common.exceptions import HTTP_400_BAD_REQUEST, HTTP_500_INTERNAL_SERVER_ERROR, ServiceError
from common.logging import setup_logging

DEV_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]
GENERIC_ERROR_MESSAGE = "An error occurred while processing your request. Please try again later."


def create_fastapi_app(
    service_name: str,
    description: str,
    api_router: APIRouter | None = None,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = None,
) -> FastAPI:
    """
    Build a configured FastAPI application for a backend service.

    Args:
        service_name: Name of the service (e.g., "session-service"). Selects the
            settings class and names the log files.
        description: Human-readable description shown in the OpenAPI docs.
        api_router: Optional router mounted under ``settings.API_V1_STR``.
        lifespan: Optional async context manager factory run around the
            application's lifetime (startup before ``yield``, shutdown after).

    Returns:
        FastAPI: The application, ready to be served by uvicorn.
    """
    setup_logging(service_name)
    settings = get_settings(service_name)

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        description=description,
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    _configure_cors(app, settings)
    _add_request_timing(app)
    _add_service_routes(app, settings)
    _register_error_handlers(app)

    if api_router:
        app.include_router(api_router, prefix=settings.API_V1_STR)

    return app


def _configure_cors(app: FastAPI, settings: BaseServiceSettings) -> None:
    if settings.ENVIRONMENT == "PROD":
        origins = settings.CORS_ORIGINS
    else:
        origins = settings.CORS_ORIGINS or DEV_CORS_ORIGINS

    # allow_credentials=True is incompatible with allow_origins=["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _add_request_timing(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_process_time_header(
        request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        started = time.time()
        response = await call_next(request)
        elapsed = time.time() - started
        response.headers["X-Process-Time"] = str(elapsed)
        logger.info(f"{request.method} {request.url.path} - {response.status_code} - {elapsed:.3f}s")
        return response


def _add_service_routes(app: FastAPI, settings: BaseServiceSettings) -> None:
    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "healthy",
            "timestamp": time.time(),
        }

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "message": f"{settings.SERVICE_NAME} is running",
            "docs": "/docs",
            "health": "/health",
        }


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        where = f"{request.method} {request.url.path}"
        if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(f"{type(exc).__name__} in {where}: {exc.message}")
        else:
            logger.info(f"{type(exc).__name__} in {where}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        logger.info(f"HTTP {exc.status_code} for {request.method} {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info(f"Invalid request to {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(
            f"Unhandled exception in {request.method} {request.url.path}: {exc}"
        )
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": GENERIC_ERROR_MESSAGE},
        )
