"""Badge engine: requirement evaluation, progress and the one-way earned flip."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.db.models import BadgeDefinition, DailyQuest, DailyQuestBatch, UserBadge, UserStats
from studyhub.db.storage import insert_for
from studyhub.errors import NotFoundError
from studyhub.gamification.notification_service import queue_notification
from studyhub.gamification.xp_service import get_or_create_stats, grant_xp

logger = logging.getLogger(__name__)

# Earning a badge grants XP, which can satisfy total_xp / level_reached
# badges in turn. Re-evaluate a bounded number of times.
MAX_EVALUATION_PASSES = 3

PROGRESS_CAP = 99

RARITIES = ("common", "rare", "epic", "legendary")

STAT_REQUIREMENTS: dict[str, Callable[[UserStats], int]] = {
    "quizzes_completed": lambda s: s.total_quizzes,
    "streak_days": lambda s: max(s.current_streak, s.longest_streak),
    "perfect_scores": lambda s: s.perfect_scores,
    "high_score_count": lambda s: s.high_scores,
    "courses_completed": lambda s: s.completed_courses,
    "study_minutes": lambda s: s.total_study_minutes,
    "total_xp": lambda s: s.current_xp,
    "level_reached": lambda s: s.current_level,
    "early_morning_lessons": lambda s: s.early_sessions,
    "late_night_lessons": lambda s: s.late_sessions,
}

REQUIREMENT_TYPES = (*STAT_REQUIREMENTS, "daily_quests_completed", "manual")


def badge_progress(value: int, requirement: int) -> int:
    """Percent towards a requirement, held at 99 until the badge actually fires."""
    if requirement <= 0:
        return PROGRESS_CAP
    return min(PROGRESS_CAP, value * 100 // requirement)


async def get_badge_by_slug(db: AsyncSession, slug: str) -> BadgeDefinition | None:
    result = await db.execute(
        select(BadgeDefinition).where(BadgeDefinition.slug == slug)
    )
    return result.scalar_one_or_none()


async def list_badge_definitions(db: AsyncSession) -> list[BadgeDefinition]:
    result = await db.execute(
        select(BadgeDefinition)
        .where(BadgeDefinition.is_active.is_(True))
        .order_by(BadgeDefinition.sort_order, BadgeDefinition.id)
    )
    return list(result.scalars().all())


async def count_completed_quests(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(DailyQuest)
        .join(DailyQuestBatch, DailyQuest.batch_id == DailyQuestBatch.id)
        .where(DailyQuestBatch.user_id == user_id, DailyQuest.completed.is_(True))
    )
    return result.scalar_one()


async def _ensure_user_badges(
    db: AsyncSession, user_id: str, definitions: list[BadgeDefinition],
) -> dict[int, UserBadge]:
    """Create missing (user, badge) rows and return them keyed by badge id."""
    for badge in definitions:
        await db.execute(
            insert_for(db, UserBadge)
            .values(user_id=user_id, badge_id=badge.id)
            .on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
        )
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return {ub.badge_id: ub for ub in result.unique().scalars().all()}


async def _flip_earned(db: AsyncSession, user_id: str, badge: BadgeDefinition) -> bool:
    """Guarded false -> true transition. True only for the caller that flipped it."""
    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(UserBadge)
        .where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge.id,
            UserBadge.earned.is_(False),
        )
        .values(earned=True, earned_at=now, progress=100)
        .returning(UserBadge.id)
    )
    if result.scalar_one_or_none() is None:
        return False

    await grant_xp(
        db,
        user_id,
        badge.xp_reward,
        source="badge",
        source_id=badge.slug,
        description=f'Earned badge: "{badge.name}"',
        idempotency_key=f"badge:{badge.slug}:{user_id}",
    )
    await db.execute(
        update(UserStats)
        .where(UserStats.user_id == user_id)
        .values(badges_earned=UserStats.badges_earned + 1, updated_at=now)
    )
    await _emit_badge_earned(db, user_id, badge)
    logger.info("User %s earned badge %s", user_id, badge.slug)
    return True


async def _raise_progress(db: AsyncSession, user_id: str, badge_id: int, progress: int) -> None:
    await db.execute(
        update(UserBadge)
        .where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
            UserBadge.earned.is_(False),
            UserBadge.progress < progress,
        )
        .values(progress=progress)
    )


async def evaluate_badges(db: AsyncSession, user_id: str) -> list[BadgeDefinition]:
    """Evaluate every active, unearned badge for a user.

    Returns the definitions newly earned by this call. A badge earned by an
    earlier call (or a concurrent one) never appears here again.
    """
    definitions = [
        b for b in await list_badge_definitions(db)
        if b.requirement_type != "manual"
    ]
    if not definitions:
        return []

    await get_or_create_stats(db, user_id)
    newly_earned: list[BadgeDefinition] = []

    for _ in range(MAX_EVALUATION_PASSES):
        stats = await get_or_create_stats(db, user_id)
        user_badges = await _ensure_user_badges(db, user_id, definitions)
        quests_completed: int | None = None
        earned_this_pass = 0

        for badge in definitions:
            user_badge = user_badges.get(badge.id)
            if user_badge is not None and user_badge.earned:
                continue

            if badge.requirement_type == "daily_quests_completed":
                if quests_completed is None:
                    quests_completed = await count_completed_quests(db, user_id)
                value = quests_completed
            elif badge.requirement_type in STAT_REQUIREMENTS:
                value = STAT_REQUIREMENTS[badge.requirement_type](stats)
            else:
                logger.warning("Unknown requirement type %s on badge %s", badge.requirement_type, badge.slug)
                continue

            if value >= badge.requirement_value:
                if await _flip_earned(db, user_id, badge):
                    newly_earned.append(badge)
                    earned_this_pass += 1
            else:
                await _raise_progress(db, user_id, badge.id, badge_progress(value, badge.requirement_value))

        if earned_this_pass == 0:
            break

    return newly_earned


async def unlock_badge(db: AsyncSession, user_id: str, slug: str) -> bool:
    """Award a badge directly (manual badges, admin grants).

    Returns False when the user already had it.
    """
    badge = await get_badge_by_slug(db, slug)
    if badge is None or not badge.is_active:
        raise NotFoundError(f"Badge not found: {slug}")

    await get_or_create_stats(db, user_id)
    await _ensure_user_badges(db, user_id, [badge])
    return await _flip_earned(db, user_id, badge)


async def _emit_badge_earned(db: AsyncSession, user_id: str, badge: BadgeDefinition) -> None:
    await queue_notification(
        db,
        user_id=user_id,
        type_="gamification",
        subtype="badge_earned",
        title=f'Badge Earned: "{badge.name}"',
        description=f"+{badge.xp_reward} XP: {badge.description}",
        payload={
            "badge_id": badge.id,
            "badge_slug": badge.slug,
            "badge_name": badge.name,
            "rarity": badge.rarity,
            "xp_reward": badge.xp_reward,
        },
        dedup_key=f"badge:{badge.slug}",
    )


async def get_user_badges(db: AsyncSession, user_id: str) -> dict[int, UserBadge]:
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return {ub.badge_id: ub for ub in result.unique().scalars().all()}


async def get_badge_collection(db: AsyncSession, user_id: str) -> dict:
    """Every active badge with the user's state, plus totals and rarity counts."""
    definitions = await list_badge_definitions(db)
    user_badges = await get_user_badges(db, user_id)

    badges = []
    by_rarity = {r: {"total": 0, "earned": 0} for r in RARITIES}
    earned_count = 0

    for badge in definitions:
        user_badge = user_badges.get(badge.id)
        earned = bool(user_badge and user_badge.earned)
        bucket = by_rarity.setdefault(badge.rarity, {"total": 0, "earned": 0})
        bucket["total"] += 1
        if earned:
            bucket["earned"] += 1
            earned_count += 1

        badges.append({
            "badge": badge,
            "earned": earned,
            "earned_at": user_badge.earned_at if user_badge else None,
            "progress": user_badge.progress if user_badge else 0,
            "notified": user_badge.notified if user_badge else False,
        })

    total = len(definitions)
    return {
        "badges": badges,
        "total": total,
        "earned": earned_count,
        "completion_rate": round(earned_count / total * 100, 1) if total else 0.0,
        "by_rarity": by_rarity,
    }
