"""
Common database session management with async support and connection pooling.

This module provides database connection and session management for asynchronous
operations. It includes connection pooling, engine caching, schema creation and
context managers for automatic session cleanup.

Key Features:
    - Connection pooling with configurable pool sizes
    - Pre-ping enabled for connection validation
    - Engine caching keyed by database URL to avoid duplicate pools
    - Context managers for automatic commit/rollback/close
    - Works with any SQLAlchemy async URL (PostgreSQL via asyncpg in
      deployment, SQLite via aiosqlite in tests)

Usage:
    ```python
    from common.database import get_async_db_session

    async with get_async_db_session() as session:
        result = await session.execute(select(DeviceSession))
        sessions = result.scalars().all()
    ```
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import os

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from common.config import get_settings

from .base import Base

load_dotenv()

# Global engine cache to avoid creating multiple engines
_async_engines: dict[str, AsyncEngine] = {}
_session_makers: dict[str, async_sessionmaker[AsyncSession]] = {}


def create_sqlalchemy_url(database_url: str | None = None) -> URL:
    """
    Create the SQLAlchemy database URL.

    Resolution order:
        1. The explicit ``database_url`` argument
        2. The DATABASE_URL setting
        3. A PostgreSQL URL assembled from POSTGRES_* environment variables

    Args:
        database_url: Optional full SQLAlchemy URL string.

    Returns:
        SQLAlchemy URL object. The assembled PostgreSQL URL uses the
        ``postgresql+asyncpg`` driver.

    Environment Variables:
        - POSTGRES_USER: Database username
        - POSTGRES_PASSWORD: Database password
        - POSTGRES_HOST: Database hostname or IP address
        - POSTGRES_PORT: Database port (default: 5432)
        - POSTGRES_DATABASE: Database name (default: machine_sessions)
    """
    url = database_url or get_settings("session-service").DATABASE_URL
    if url:
        return make_url(url)

    return URL.create(
        drivername="postgresql+asyncpg",
        username=os.getenv("POSTGRES_USER"),
        password=os.getenv("POSTGRES_PASSWORD"),
        host=os.getenv("POSTGRES_HOST", "localhost"),
        port=int(os.getenv("POSTGRES_PORT", 5432)),
        database=os.getenv("POSTGRES_DATABASE", "machine_sessions"),
    )


def get_async_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Get cached async database engine with connection pooling.

    Args:
        database_url: Optional explicit database URL; see create_sqlalchemy_url.

    Returns:
        SQLAlchemy AsyncEngine instance, shared by all callers using the same URL.

    Note:
        SQLite engines use NullPool so each checkout opens a fresh connection
        bound to the running event loop.
    """
    url = create_sqlalchemy_url(database_url)
    cache_key = url.render_as_string(hide_password=False)

    if cache_key in _async_engines:
        return _async_engines[cache_key]

    echo = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    if url.get_backend_name() == "sqlite":
        async_engine = create_async_engine(url, poolclass=NullPool, echo=echo)
        logger.info(f"Created async SQLite engine for {url.database}")
    else:
        settings = get_settings("session-service")
        pool_size = settings.DATABASE_POOL_SIZE
        max_overflow = settings.DATABASE_MAX_OVERFLOW
        pool_timeout = int(os.getenv("DATABASE_POOL_TIMEOUT", 30))
        pool_recycle = int(os.getenv("DATABASE_POOL_RECYCLE", 3600))  # 1 hour

        async_engine = create_async_engine(
            url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=echo,
            connect_args={
                "server_settings": {
                    "application_name": settings.SERVICE_NAME,
                    "jit": "off",
                },
            },
        )
        logger.info(
            f"Created async database engine for {url.database} with pool_size={pool_size}, max_overflow={max_overflow}"
        )

    # Cache the async engine
    _async_engines[cache_key] = async_engine
    return async_engine


def get_async_session_maker(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Get cached session maker for async operations."""
    engine = get_async_engine(database_url)
    cache_key = engine.url.render_as_string(hide_password=False)
    if cache_key not in _session_makers:
        _session_makers[cache_key] = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,  # Keep objects usable after commit
        )
    return _session_makers[cache_key]


@asynccontextmanager
async def get_async_db_session(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Async context manager for database sessions with automatic cleanup.

    Args:
        session_maker: Optional session maker. Defaults to the one bound to the
            configured database URL.

    Yields:
        SQLAlchemy AsyncSession object ready for async database operations.

    Example:
        ```python
        async with get_async_db_session() as session:
            session.add(job)
            # Session automatically commits on successful exit
        ```

    Note:
        - Sessions automatically commit on successful exit
        - Sessions automatically rollback on exceptions
        - Sessions are automatically closed when exiting the context
    """
    maker = session_maker or get_async_session_maker()
    session = maker()
    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Async database session error: {e}")
        raise
    finally:
        await session.close()


async def init_database(database_url: str | None = None) -> None:
    """
    Create every table and index registered on ``Base.metadata``.

    Idempotent: existing tables are left untouched.
    """
    # Register all models on the metadata before create_all
    import common.models  # noqa: F401

    engine = get_async_engine(database_url)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.info(f"Database schema ready on {engine.url.database}")


async def dispose_engines() -> None:
    """Dispose every cached engine and forget the cached session makers."""
    for engine in list(_async_engines.values()):
        await engine.dispose()
    _async_engines.clear()
    _session_makers.clear()
