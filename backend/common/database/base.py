"""
Base declarative class for all ORM models.

This module provides the base SQLAlchemy declarative class that all ORM models
should inherit from, along with the UTC helpers every model and repository uses
when writing or reading instants.

Features:
    - Automatic table name generation from class name
    - Timezone-aware UTC timestamps on write, UTC normalisation on read

Usage:
    ```python
    from common.database import Base
    from sqlalchemy.orm import Mapped, mapped_column
    from sqlalchemy import String

    class Factory(Base):
        __tablename__ = "factories"
        id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ```

Note:
    - Table names default to the lowercase class name; models override it
      with an explicit ``__tablename__`` where a plural name reads better
    - Instants are always stored in UTC
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase, declared_attr


def utcnow() -> datetime:
    """Return the current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: datetime | None) -> datetime | None:
    """
    Normalise a datetime to timezone-aware UTC.

    Naive values are interpreted as UTC. This covers drivers (SQLite) that
    drop the offset on round-trip as well as naive timestamps sent by devices.
    """
    if dt is None:
        return dt
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Base declarative class for all SQLAlchemy ORM models.

    Table Naming:
        Table names are generated from the class name by converting it to
        lowercase unless the model declares ``__tablename__`` itself. For example:
        - Factory -> "factory"
        - ExportJob -> "exportjob"

    Note:
        This uses SQLAlchemy 2.0 declarative style with Mapped type hints.
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore[override]
        """Generate table name from class name."""
        return cls.__name__.lower()
