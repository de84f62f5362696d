"""
Common utilities and shared code for the machine session backend services.

This package provides shared functionality used by the backend services:

Modules:
    - audit: Best-effort audit event recording (sink interface + recorder)
    - config: Centralized configuration management with environment-based settings
    - database: Async database session management and connection pooling
    - exceptions: Domain error taxonomy and standardized API error responses
    - fastapi: FastAPI application factory with common middleware and error handlers
    - job_monitor: Periodic background housekeeping task
    - logging: Centralized logging configuration using loguru
    - models: Shared SQLAlchemy ORM models (sessions, export jobs, registry)
    - security: Authenticated principal extraction from gateway headers

Usage:
    Import specific modules as needed:

    ```python
    from common.config import get_settings
    from common.database import get_async_db_session
    from common.logging import setup_logging
    from common.exceptions import NotFoundError
    ```

Version:
    Current version: 0.1.0
"""

__version__ = "0.1.0"
