"""Notification outbox: queue inside the state transaction, deliver afterwards.

Rows are written with insert-if-absent on ``(user_id, dedup_key)`` so a
badge or bonus can only ever be queued once. ``dispatch_pending`` pushes
undelivered rows to a sink and marks them delivered; a failed publish is
left in place for the next dispatch.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.db.models import Notification, UserBadge
from studyhub.db.storage import insert_for
from studyhub.errors import NotFoundError

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def publish(self, notification: Notification) -> None: ...


class RedisNotificationSink:
    """Publish each notification as JSON on the ``pubsub:<subtype>`` channel.

    The message carries id, user_id, type, subtype, title, description and
    payload; subscribers dedupe on ``id``.
    """

    def __init__(self, redis: Any) -> None:  # noqa: ANN401
        self.redis = redis

    async def publish(self, notification: Notification) -> None:
        await self.redis.publish(
            f"pubsub:{notification.subtype}",
            json.dumps({
                "id": notification.id,
                "user_id": notification.user_id,
                "type": notification.type,
                "subtype": notification.subtype,
                "title": notification.title,
                "description": notification.description,
                "payload": notification.payload or {},
            }),
        )


async def queue_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    subtype: str,
    title: str,
    description: str,
    payload: dict[str, Any],
    dedup_key: str,
) -> bool:
    """Queue a notification. Returns False when the dedup key was already used."""
    result = await db.execute(
        insert_for(db, Notification)
        .values(
            user_id=user_id,
            type=type_,
            subtype=subtype,
            title=title,
            description=description,
            payload=payload,
            dedup_key=dedup_key,
        )
        .on_conflict_do_nothing(index_elements=["user_id", "dedup_key"])
        .returning(Notification.id)
    )
    return result.scalar_one_or_none() is not None


async def dispatch_pending(
    db: AsyncSession,
    sink: NotificationSink | None,
    user_id: str | None = None,
    limit: int = 100,
) -> int:
    """Deliver undelivered notifications. Returns the number delivered.

    Must run after the transaction that queued the rows has committed.
    Delivery is at-least-once: a crash between publish and commit
    republishes, and consumers dedupe on ``(user_id, dedup_key)``.
    """
    if sink is None:
        return 0

    query = (
        select(Notification)
        .where(Notification.delivered.is_(False))
        .order_by(Notification.id.asc())
        .limit(limit)
    )
    if user_id is not None:
        query = query.where(Notification.user_id == user_id)
    pending = list((await db.execute(query)).scalars().all())

    delivered = 0
    for notification in pending:
        try:
            await sink.publish(notification)
        except Exception:
            logger.warning(
                "Failed to publish notification %s (%s)",
                notification.id, notification.subtype, exc_info=True,
            )
            continue

        await confirm_delivery(db, notification)
        delivered += 1

    await db.commit()
    return delivered


async def confirm_delivery(db: AsyncSession, notification: Notification) -> None:
    """Mark a notification delivered; badge notifications also flip ``notified``."""
    now = datetime.now(timezone.utc)
    await db.execute(
        update(Notification)
        .where(Notification.id == notification.id, Notification.delivered.is_(False))
        .values(delivered=True, delivered_at=now)
    )

    if notification.subtype == "badge_earned":
        badge_id = (notification.payload or {}).get("badge_id")
        if badge_id is not None:
            await db.execute(
                update(UserBadge)
                .where(
                    UserBadge.user_id == notification.user_id,
                    UserBadge.badge_id == badge_id,
                    UserBadge.notified.is_(False),
                )
                .values(notified=True)
            )


async def list_notifications(
    db: AsyncSession,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
) -> tuple[list[Notification], int]:
    """Newest notifications for a user, plus the unread count."""
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.id.desc()).limit(limit))

    unread = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return list(result.scalars().all()), unread.scalar_one()


async def mark_read(db: AsyncSession, user_id: str, notification_id: int) -> None:
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(read=True)
        .returning(Notification.id)
    )
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Notification not found")
    await db.commit()

