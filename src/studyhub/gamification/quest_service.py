"""Daily quests: one batch per (user, day), capped progress, one-time bonus."""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.config import get_settings
from studyhub.db.models import DailyQuest, DailyQuestBatch
from studyhub.db.storage import insert_for
from studyhub.errors import ConcurrencyConflictError
from studyhub.gamification.activities import Activity
from studyhub.gamification.notification_service import queue_notification
from studyhub.gamification.seed import QUEST_TEMPLATES
from studyhub.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)

MIN_QUESTS = 1


@dataclass
class QuestProgressResult:
    batch: DailyQuestBatch
    completed_quest_ids: list[str] = field(default_factory=list)
    xp_awarded: int = 0
    bonus_awarded: bool = False


def quest_increments(activity: Activity | None, streak_touched: bool = False) -> dict[str, int]:
    """Progress an activity contributes per quest type."""
    increments: dict[str, int] = {}
    if activity is not None:
        if activity.activity_type == "quiz":
            increments["quiz"] = 1
        elif activity.activity_type == "video":
            increments["video"] = 1
        elif activity.activity_type == "course":
            increments["course"] = 1
        if activity.minutes > 0:
            increments["study_time"] = activity.minutes
    if streak_touched:
        increments["streak"] = 1
    return increments


def pick_templates(count: int, rng: random.Random | None = None) -> list[dict]:
    count = max(MIN_QUESTS, min(count, len(QUEST_TEMPLATES)))
    return (rng or random).sample(QUEST_TEMPLATES, count)


async def get_daily_quests(db: AsyncSession, user_id: str, today: date) -> DailyQuestBatch | None:
    result = await db.execute(
        select(DailyQuestBatch)
        .where(DailyQuestBatch.user_id == user_id, DailyQuestBatch.quest_date == today)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_daily_quests(
    db: AsyncSession,
    user_id: str,
    today: date,
    rng: random.Random | None = None,
) -> DailyQuestBatch:
    """Return the day's batch, creating it on first request.

    The batch row is inserted with insert-if-absent on (user_id, quest_date).
    Only the caller whose insert returned a row adds quests to it; a caller
    that lost the race reads back the winner's batch.
    """
    existing = await get_daily_quests(db, user_id, today)
    if existing is not None:
        return existing

    templates = pick_templates(get_settings().daily_quest_count, rng)
    result = await db.execute(
        insert_for(db, DailyQuestBatch)
        .values(user_id=user_id, quest_date=today, quest_count=len(templates))
        .on_conflict_do_nothing(index_elements=["user_id", "quest_date"])
        .returning(DailyQuestBatch.id)
    )
    batch_id = result.scalar_one_or_none()

    if batch_id is not None:
        for position, template in enumerate(templates):
            db.add(DailyQuest(
                id=str(uuid.uuid4()),
                batch_id=batch_id,
                position=position,
                template_slug=template["slug"],
                type=template["type"],
                title=template["title"],
                description=template["description"],
                total=template["total"],
                xp_reward=template["xp_reward"],
            ))
        await db.flush()
        logger.debug("Generated %d daily quests for %s on %s", len(templates), user_id, today)
    else:
        logger.debug("Daily quest batch for %s on %s already created", user_id, today)

    batch = await get_daily_quests(db, user_id, today)
    if batch is None:
        raise ConcurrencyConflictError(f"Daily quest batch for {user_id} on {today} vanished")
    return batch


async def update_quest_progress(
    db: AsyncSession,
    user_id: str,
    today: date,
    activity: Activity | None,
    streak_touched: bool = False,
) -> QuestProgressResult:
    """Advance the day's quests for an activity.

    Each matching quest is bumped with ``progress = min(progress + n, total)``
    in one statement restricted to rows not yet completed, so a quest can be
    completed (and rewarded) only once. The batch bonus is granted only by
    the caller whose guarded ``bonus_awarded`` flip matched a row.
    """
    batch = await get_or_create_daily_quests(db, user_id, today)
    outcome = QuestProgressResult(batch=batch)

    increments = quest_increments(activity, streak_touched)
    for quest_type, amount in increments.items():
        if amount <= 0:
            continue
        reaches_total = DailyQuest.progress + amount >= DailyQuest.total
        result = await db.execute(
            update(DailyQuest)
            .where(
                DailyQuest.batch_id == batch.id,
                DailyQuest.type == quest_type,
                DailyQuest.completed.is_(False),
            )
            .values(
                progress=case((reaches_total, DailyQuest.total), else_=DailyQuest.progress + amount),
                completed=case((reaches_total, True), else_=False),
            )
            .returning(DailyQuest.id, DailyQuest.completed, DailyQuest.xp_reward, DailyQuest.title)
            .execution_options(synchronize_session=False)
        )
        for quest_id, completed, xp_reward, title in result.all():
            if not completed:
                continue
            outcome.completed_quest_ids.append(quest_id)
            granted = await grant_xp(
                db,
                user_id,
                xp_reward,
                source="quest",
                source_id=quest_id,
                description=f"Quest completed: {title}",
                idempotency_key=f"quest:{quest_id}",
            )
            if granted is not None:
                outcome.xp_awarded += xp_reward

    if outcome.completed_quest_ids:
        completed_count = (
            select(func.count())
            .select_from(DailyQuest)
            .where(DailyQuest.batch_id == batch.id, DailyQuest.completed.is_(True))
            .scalar_subquery()
        )
        await db.execute(
            update(DailyQuestBatch)
            .where(DailyQuestBatch.id == batch.id)
            .values(completed_count=completed_count)
            .execution_options(synchronize_session=False)
        )

    outcome.bonus_awarded = await _award_bonus(db, user_id, batch.id, today)
    if outcome.bonus_awarded:
        outcome.xp_awarded += get_settings().quest_bonus_xp

    refreshed = await get_daily_quests(db, user_id, today)
    if refreshed is not None:
        outcome.batch = refreshed
    return outcome


async def _award_bonus(db: AsyncSession, user_id: str, batch_id: int, today: date) -> bool:
    """Flip bonus_awarded once every quest is done, then grant the bonus."""
    result = await db.execute(
        update(DailyQuestBatch)
        .where(
            and_(
                DailyQuestBatch.id == batch_id,
                DailyQuestBatch.bonus_awarded.is_(False),
                DailyQuestBatch.completed_count >= DailyQuestBatch.quest_count,
            )
        )
        .values(bonus_awarded=True)
        .returning(DailyQuestBatch.id)
    )
    if result.scalar_one_or_none() is None:
        return False

    bonus = get_settings().quest_bonus_xp
    await grant_xp(
        db,
        user_id,
        bonus,
        source="quest_bonus",
        source_id=today.isoformat(),
        description="All daily quests completed",
        idempotency_key=f"quest_bonus:{user_id}:{today.isoformat()}",
    )
    await queue_notification(
        db,
        user_id=user_id,
        type_="gamification",
        subtype="quest_bonus",
        title="Daily Quests Complete!",
        description=f"+{bonus} XP bonus for finishing every quest today",
        payload={"quest_date": today.isoformat(), "xp_reward": bonus},
        dedup_key=f"quest_bonus:{today.isoformat()}",
    )
    logger.info("Daily quest bonus awarded to %s for %s", user_id, today)
    return True
