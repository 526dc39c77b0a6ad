"""Daily study streaks: compare-and-set on last_study_date."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.config import get_settings
from studyhub.db.models import UserStats
from studyhub.errors import ConcurrencyConflictError
from studyhub.gamification.notification_service import queue_notification
from studyhub.gamification.xp_service import calculate_xp_reward, get_or_create_stats, grant_xp

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 3


@dataclass
class StreakUpdate:
    current_streak: int
    longest_streak: int
    last_study_date: date | None
    changed: bool = False
    extended: bool = False
    xp_awarded: int = 0
    milestone: int | None = None


def next_streak(current: int, last_study_date: date | None, today: date) -> int | None:
    """New streak value for a touch on ``today``, or None when nothing changes.

    - same day (or a ``today`` in the past): None
    - exactly one day after: current + 1
    - first activity or a gap of 2+ days: 1
    """
    if last_study_date is None:
        return 1
    if today <= last_study_date:
        return None
    if today - last_study_date == timedelta(days=1):
        return current + 1
    return 1


async def touch_streak(db: AsyncSession, user_id: str, today: date) -> StreakUpdate:
    """Evaluate the streak once per (user, day).

    The write is conditional on the ``last_study_date`` and
    ``current_streak`` that were read, so a concurrent touch for the same
    day makes this UPDATE match zero rows. The re-read then sees ``today``
    and returns as a no-op.
    """
    for _ in range(MAX_CAS_ATTEMPTS):
        stats = await get_or_create_stats(db, user_id)
        previous_date = stats.last_study_date
        previous_streak = stats.current_streak

        new_streak = next_streak(previous_streak, previous_date, today)
        if new_streak is None:
            return StreakUpdate(
                current_streak=stats.current_streak,
                longest_streak=stats.longest_streak,
                last_study_date=stats.last_study_date,
            )

        new_longest = max(stats.longest_streak, new_streak)
        date_guard = (
            UserStats.last_study_date.is_(None)
            if previous_date is None
            else UserStats.last_study_date == previous_date
        )
        result = await db.execute(
            update(UserStats)
            .where(
                UserStats.user_id == user_id,
                date_guard,
                UserStats.current_streak == previous_streak,
            )
            .values(
                current_streak=new_streak,
                longest_streak=new_longest,
                last_study_date=today,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(UserStats.user_id)
        )
        if result.scalar_one_or_none() is not None:
            break
        logger.debug("Streak CAS lost for %s on %s, re-reading", user_id, today)
    else:
        raise ConcurrencyConflictError(f"Streak update for {user_id} kept conflicting")

    update_info = StreakUpdate(
        current_streak=new_streak,
        longest_streak=new_longest,
        last_study_date=today,
        changed=True,
        extended=new_streak > 1,
    )

    if update_info.extended:
        amount = calculate_xp_reward("daily_streak", streak=new_streak)
        granted = await grant_xp(
            db, user_id, amount, "streak",
            today.isoformat(),
            f"Study streak day {new_streak}",
            f"streak:{user_id}:{today.isoformat()}",
        )
        if granted is not None:
            update_info.xp_awarded = amount

    interval = get_settings().streak_milestone_interval
    if interval > 0 and new_streak % interval == 0:
        update_info.milestone = new_streak
        await _emit_streak_milestone(db, user_id, new_streak, today)

    return update_info


async def _emit_streak_milestone(db: AsyncSession, user_id: str, streak_days: int, today: date) -> None:
    """Queue a milestone celebration (every 7 days by default)."""
    await queue_notification(
        db,
        user_id=user_id,
        type_="gamification",
        subtype="streak_milestone",
        title=f"{streak_days}-Day Streak!",
        description=f"You've studied {streak_days} days in a row. Keep it going!",
        payload={"streak_days": streak_days},
        dedup_key=f"streak_milestone:{streak_days}:{today.isoformat()}",
    )


def is_active_today(stats: UserStats, today: date) -> bool:
    return stats.last_study_date == today


def effective_streak(stats: UserStats, today: date) -> int:
    """Streak as the user sees it: a streak not touched today or yesterday has lapsed."""
    if stats.last_study_date is None:
        return 0
    if today - stats.last_study_date > timedelta(days=1):
        return 0
    return stats.current_streak
