"""
Session Service Package

This package provides the Session Service application: idempotent ingestion
of machine working sessions, duration analytics and asynchronous exports.

Package Structure:
    - main.py: FastAPI application entry point
    - api/: API endpoint definitions, request/response models and dependencies
    - database/: Repositories over the session, export job and device tables
    - services/: Ingestion, analytics and export business logic

Usage:
    ```python
    from services.session_service import app

    # uvicorn services.session_service:app --port 8002
    ```
"""

from services.session_service.main import app

__all__ = ["app"]
