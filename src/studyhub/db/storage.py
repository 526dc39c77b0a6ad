"""Dialect helpers for the atomic primitives the services rely on.

Insert-if-absent is ``INSERT ... ON CONFLICT DO NOTHING``; both PostgreSQL
and SQLite expose it through their dialect-specific ``insert`` construct.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

STORAGE_UNAVAILABLE = "Storage unavailable"

T = TypeVar("T")


def insert_for(db: AsyncSession, table: Any) -> Any:  # noqa: ANN401
    """Return an ``insert`` construct supporting ``on_conflict_do_nothing``."""
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


def is_unavailable(exc: BaseException) -> bool:
    """True when a driver error means the database could not be reached."""
    if isinstance(exc, OSError):
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


@asynccontextmanager
async def translate_storage_errors() -> AsyncIterator[None]:
    """Re-raise connection-level driver failures as ``StorageUnavailableError``.

    The driver message stays in the log; callers only see a fixed message.
    """
    try:
        yield
    except (DBAPIError, OSError) as exc:
        if not is_unavailable(exc):
            raise
        logger.warning("Database unreachable: %s", exc)
        raise StorageUnavailableError(STORAGE_UNAVAILABLE) from exc


async def run_in_transaction(db: AsyncSession, work: Callable[[], Awaitable[T]]) -> T:
    """Run ``work`` and commit, or roll back everything it did on any error."""
    try:
        async with translate_storage_errors():
            result = await work()
            await db.commit()
    except Exception:
        await db.rollback()
        raise
    return result
