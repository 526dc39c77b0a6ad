"""Stats tracker: append the activity log and bump counters in one UPDATE."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.db.models import StudyActivity, UserStats
from studyhub.errors import ValidationError
from studyhub.gamification.activities import Activity
from studyhub.gamification.xp_service import calculate_xp_reward, get_or_create_stats, grant_xp

logger = logging.getLogger(__name__)

HIGH_SCORE_THRESHOLD = 90
EARLY_HOUR_END = 8
LATE_HOUR_START = 22


@dataclass
class RecordedActivity:
    activity_id: int
    xp_awarded: int
    stats: UserStats


def counter_increments(activity: Activity, occurred_at: datetime) -> dict[str, int]:
    """Counter deltas an activity contributes to ``user_stats``."""
    increments = {"total_study_minutes": activity.minutes}

    if activity.activity_type == "quiz":
        increments["total_quizzes"] = 1
        if activity.score == 100:
            increments["perfect_scores"] = 1
        if activity.score is not None and activity.score >= HIGH_SCORE_THRESHOLD:
            increments["high_scores"] = 1
    elif activity.activity_type == "course":
        increments["completed_courses"] = 1
    elif activity.activity_type == "video":
        increments["videos_watched"] = 1
    elif activity.activity_type == "lesson":
        increments["lessons_read"] = 1

    if activity.activity_type in ("lesson", "video", "quiz"):
        if occurred_at.hour < EARLY_HOUR_END:
            increments["early_sessions"] = 1
        elif occurred_at.hour >= LATE_HOUR_START:
            increments["late_sessions"] = 1

    return increments


async def record_activity(
    db: AsyncSession,
    user_id: str,
    activity: Activity,
    today: date | None = None,
    streak: int = 0,
) -> RecordedActivity:
    """Append a StudyActivity row and apply its counters and XP.

    Counters are applied as ``col = col + n`` in a single statement so
    concurrent activities for the same user never lose an update.
    """
    if activity.minutes < 0:
        raise ValidationError("minutes must be non-negative")

    occurred_at = activity.occurred_at or datetime.now(timezone.utc)
    activity_date = today or occurred_at.date()

    row = StudyActivity(
        user_id=user_id,
        activity_date=activity_date,
        occurred_at=occurred_at,
        activity_type=activity.activity_type,
        minutes=activity.minutes,
        score=activity.score,
        activity_metadata={k: v for k, v in activity.extra_fields().items() if v is not None},
        **activity.refs(),
    )
    db.add(row)
    await db.flush()

    await get_or_create_stats(db, user_id)
    increments = counter_increments(activity, occurred_at)
    await db.execute(
        update(UserStats)
        .where(UserStats.user_id == user_id)
        .values(
            updated_at=datetime.now(timezone.utc),
            **{col: getattr(UserStats, col) + n for col, n in increments.items()},
        )
    )

    xp_awarded = 0
    for action in activity.xp_actions():
        amount = calculate_xp_reward(action, streak=streak, difficulty=activity.difficulty)
        granted = await grant_xp(
            db,
            user_id,
            amount,
            source=activity.activity_type,
            source_id=str(row.id),
            description=action.replace("_", " ").capitalize(),
            idempotency_key=f"activity:{row.id}:{action}",
        )
        if granted is not None:
            xp_awarded += amount

    stats = await get_or_create_stats(db, user_id)
    logger.debug("Recorded %s for %s (+%d XP)", activity.activity_type, user_id, xp_awarded)
    return RecordedActivity(activity_id=row.id, xp_awarded=xp_awarded, stats=stats)

