"""Redis connection pool, owned by the application lifespan."""

from __future__ import annotations

import redis.asyncio as redis
from fastapi import Request

from studyhub.gamification.notification_service import NotificationSink, RedisNotificationSink


def create_redis(url: str) -> redis.Redis:
    """Create the Redis connection pool."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis(client: redis.Redis | None) -> None:
    """Close the Redis connection pool."""
    if client is not None:
        await client.aclose()


def get_redis(request: Request) -> redis.Redis | None:
    """Get the Redis client from app state (FastAPI dependency)."""
    return getattr(request.app.state, "redis", None)


def get_notification_sink(request: Request) -> NotificationSink | None:
    """Notification sink backed by Redis pub/sub, or None when Redis is not configured."""
    client = get_redis(request)
    if client is None:
        return None
    return RedisNotificationSink(client)
