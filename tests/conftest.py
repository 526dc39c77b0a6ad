"""Shared test fixtures.

Integration tests run against a throwaway SQLite file per test; the
services only rely on INSERT .. ON CONFLICT and UPDATE .. RETURNING,
which SQLite supports as well as PostgreSQL.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.config import get_settings
from studyhub.database import Database
from studyhub.gamification.seed import seed_badges
from studyhub.main import create_app
from studyhub.redis_client import get_notification_sink

from helpers import RecordingSink


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'studyhub.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service calls and assertions."""
    async with database.session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_session(db_session: AsyncSession) -> AsyncSession:
    """Session on a database with the badge catalogue seeded."""
    await seed_badges(db_session)
    return db_session


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture
async def app(database: Database, sink: RecordingSink) -> FastAPI:
    application = create_app(get_settings())
    application.state.db = database
    application.state.redis = None
    application.dependency_overrides[get_notification_sink] = lambda: sink

    async with database.session_factory() as session:
        await seed_badges(session)
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app without running its lifespan."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
