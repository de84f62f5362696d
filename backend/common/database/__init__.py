"""
Common database utilities and session management.

This module provides the database abstraction layer for the backend services,
including connection pooling, async session management, schema creation and
the UTC helpers used whenever instants are written or read.

Main Components:
    - Base: SQLAlchemy declarative base class for all ORM models
    - session: Database connection and session management

Usage:
    ```python
    from common.database import get_async_db_session

    async with get_async_db_session() as session:
        result = await session.execute(select(ExportJob))
    ```
"""

from .base import Base, ensure_aware_utc, utcnow
from .session import (
    create_sqlalchemy_url,
    dispose_engines,
    get_async_db_session,
    get_async_engine,
    get_async_session_maker,
    init_database,
)

__all__ = [
    # Base
    "Base",
    "create_sqlalchemy_url",
    "dispose_engines",
    "ensure_aware_utc",
    # Context managers (recommended)
    "get_async_db_session",
    # Core engine functions
    "get_async_engine",
    # Session makers
    "get_async_session_maker",
    # Schema
    "init_database",
    "utcnow",
]
