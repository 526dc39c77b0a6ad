"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from studyhub.config import Settings, get_settings
from studyhub.database import Database
from studyhub.gamification.router import router as gamification_router
from studyhub.gamification.seed import seed_badges
from studyhub.health.router import router as health_router
from studyhub.middleware import setup_middleware
from studyhub.redis_client import close_redis, create_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings: Settings = app.state.settings
    db = Database(settings.database_url, echo=settings.database_echo)
    app.state.db = db
    app.state.redis = create_redis(settings.redis_url) if settings.redis_url else None

    await db.create_all()
    if settings.seed_badges_on_startup:
        async with db.session_factory() as session:
            await seed_badges(session)

    yield

    await close_redis(app.state.redis)
    await db.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="StudyHub Gamification API",
        description="XP, levels, streaks, badges and daily quests for the StudyHub learning platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)

    return app


app = create_app()
