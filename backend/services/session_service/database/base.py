"""
Shared helpers for the session service repositories.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.database import get_async_session_maker


class RepositoryBase:
    """
    Common constructor for repositories.

    Attributes:
        session_maker: Session factory used by every query. Resolved lazily so
            creating a repository never opens an engine.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_maker = session_maker

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            self._session_maker = get_async_session_maker()
        return self._session_maker
