"""Async SQLAlchemy engine and session management.

The engine is owned by a ``Database`` handle built once at process start
(see ``studyhub.main.lifespan``) and stored on ``app.state``. Nothing here
is a module-level singleton; request handlers reach the handle through
the ``get_session`` dependency.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from studyhub.db import models as _models  # noqa: F401  (registers tables)
from studyhub.db.base import Base


class Database:
    """Engine plus session factory for one database URL."""

    def __init__(self, url: str, echo: bool = False) -> None:
        kwargs: dict[str, object] = {"echo": echo, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            kwargs.update(pool_size=20, max_overflow=10)
        if url.startswith("postgresql+asyncpg"):
            kwargs["connect_args"] = {"statement_cache_size": 0}
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **kwargs)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create any missing tables from the ORM metadata."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Dispose of the database engine."""
        await self.engine.dispose()


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    database: Database | None = getattr(request.app.state, "db", None)
    if database is None:
        msg = "Database not initialized on app.state."
        raise RuntimeError(msg)
    async with database.session_factory() as session:
        yield session
