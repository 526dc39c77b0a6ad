"""XP grant service with idempotency and level-up detection."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.db.models import UserStats, XPLedger
from studyhub.db.storage import insert_for
from studyhub.errors import ValidationError
from studyhub.gamification.level_thresholds import compute_level
from studyhub.gamification.notification_service import queue_notification

logger = logging.getLogger(__name__)

XP_REWARDS: dict[str, int] = {
    "complete_quiz": 50,
    "perfect_score": 100,
    "daily_streak": 25,
    "finish_course": 200,
    "watch_video": 10,
    "read_lesson": 15,
    "complete_quest": 30,
    "earn_badge": 75,
}

STREAK_MULTIPLIER_DAYS = 7


def calculate_xp_reward(action: str, streak: int = 0, difficulty: str | None = None) -> int:
    """XP for a reward action, with the 7-day streak and hard-content multipliers."""
    if action not in XP_REWARDS:
        raise ValidationError(f"Unknown XP action: {action}")

    amount: float = XP_REWARDS[action]
    if streak >= STREAK_MULTIPLIER_DAYS:
        amount *= 1.5
    if difficulty == "hard":
        amount *= 1.25
    return math.floor(amount)


async def get_or_create_stats(db: AsyncSession, user_id: str) -> UserStats:
    """Get or create the denormalized stats row for a user.

    Creation is insert-if-absent so two first activities cannot race each
    other into a duplicate-key failure.
    """
    await db.execute(
        insert_for(db, UserStats)
        .values(user_id=user_id)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    result = await db.execute(
        select(UserStats)
        .where(UserStats.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def get_stats(db: AsyncSession, user_id: str) -> UserStats | None:
    result = await db.execute(
        select(UserStats)
        .where(UserStats.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def grant_xp(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source: str,
    source_id: str,
    description: str,
    idempotency_key: str,
) -> int | None:
    """Grant XP to a user. Returns the new XP total, or None if duplicate.

    1. Insert into xp_ledger (insert-if-absent on idempotency_key)
    2. Atomically increment user_stats.current_xp
    3. Raise current_level if the new total crossed a threshold
    4. If level changed, queue a level_up notification
    """
    if amount < 0:
        raise ValidationError("XP amount must be non-negative")

    inserted = await db.execute(
        insert_for(db, XPLedger)
        .values(
            user_id=user_id,
            amount=amount,
            source=source,
            source_id=source_id,
            description=description,
            idempotency_key=idempotency_key,
        )
        .on_conflict_do_nothing(index_elements=["idempotency_key"])
        .returning(XPLedger.id)
    )
    if inserted.scalar_one_or_none() is None:
        return None

    await get_or_create_stats(db, user_id)
    now = datetime.now(timezone.utc)

    result = await db.execute(
        update(UserStats)
        .where(UserStats.user_id == user_id)
        .values(current_xp=UserStats.current_xp + amount, updated_at=now)
        .returning(UserStats.current_xp)
    )
    new_total = result.scalar_one()

    level_info = compute_level(new_total)
    raised = await db.execute(
        update(UserStats)
        .where(
            UserStats.user_id == user_id,
            UserStats.current_level < level_info["level"],
        )
        .values(current_level=level_info["level"], level_title=level_info["title"])
        .returning(UserStats.current_level)
    )
    if raised.scalar_one_or_none() is not None:
        await _emit_level_up(db, user_id, level_info["level"], level_info["title"])

    return new_total


async def _emit_level_up(db: AsyncSession, user_id: str, new_level: int, title: str) -> None:
    logger.info("User %s reached level %d", user_id, new_level)
    await queue_notification(
        db,
        user_id=user_id,
        type_="gamification",
        subtype="level_up",
        title="Level Up!",
        description=f"Level {new_level} \u2014 {title}",
        payload={"new_level": new_level, "title": title},
        dedup_key=f"level:{new_level}",
    )


async def get_xp_history(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[XPLedger], int]:
    """Paginated XP ledger, newest first, plus the total entry count."""
    total_result = await db.execute(
        select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
