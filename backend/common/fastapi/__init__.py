"""
Common FastAPI utilities and middleware.

This module provides shared FastAPI functionality used across the backend services,
including the application factory, middleware, and error handlers.

Main Components:
    - app_factory: FastAPI application factory with standard configuration

Usage:
    ```python
    from common.fastapi import create_fastapi_app
    from fastapi import APIRouter

    api_router = APIRouter()

    app = create_fastapi_app(
        service_name="session-service",
        description="Machine session ingestion, analytics and exports",
        api_router=api_router
    )
    ```
"""
from .app_factory import create_fastapi_app

__all__ = ["create_fastapi_app"]
