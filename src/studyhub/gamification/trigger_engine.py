"""Activity trigger engine: one inbound event, one transaction."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.db.models import BadgeDefinition, UserStats
from studyhub.db.storage import run_in_transaction
from studyhub.gamification.activities import Activity
from studyhub.gamification.badge_service import evaluate_badges, unlock_badge
from studyhub.gamification.quest_service import QuestProgressResult, update_quest_progress
from studyhub.gamification.stats_service import record_activity
from studyhub.gamification.streak_service import StreakUpdate, touch_streak
from studyhub.gamification.xp_service import get_or_create_stats

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ActivityOutcome:
    activity_id: int
    xp_awarded: int
    stats: UserStats
    streak: StreakUpdate
    quests: QuestProgressResult
    new_badges: list[BadgeDefinition] = field(default_factory=list)


@dataclass
class StreakOutcome:
    streak: StreakUpdate
    quests: QuestProgressResult | None
    new_badges: list[BadgeDefinition] = field(default_factory=list)


class TriggerEngine:
    """Runs events through stats, streak, quests and badges.

    Every public method is one transaction: it commits when the whole
    transition succeeded and rolls back otherwise, so callers never see
    a partial update.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _atomically(self, work: Callable[[], Awaitable[T]]) -> T:
        return await run_in_transaction(self.db, work)

    async def process(self, user_id: str, activity: Activity, today: date) -> ActivityOutcome:
        """Record an activity and apply everything it triggers."""
        outcome = await self._atomically(lambda: self._process(user_id, activity, today))
        logger.info(
            "Processed %s for %s: +%d XP, %d badge(s)",
            activity.activity_type, user_id, outcome.xp_awarded, len(outcome.new_badges),
        )
        return outcome

    async def _process(self, user_id: str, activity: Activity, today: date) -> ActivityOutcome:
        start_xp = (await get_or_create_stats(self.db, user_id)).current_xp

        # Streak first so activity XP sees today's multiplier.
        streak = await touch_streak(self.db, user_id, today)
        recorded = await record_activity(
            self.db, user_id, activity, today=today, streak=streak.current_streak,
        )
        quests = await update_quest_progress(
            self.db, user_id, today, activity, streak_touched=streak.changed,
        )
        new_badges = await evaluate_badges(self.db, user_id)

        stats = await get_or_create_stats(self.db, user_id)
        return ActivityOutcome(
            activity_id=recorded.activity_id,
            xp_awarded=stats.current_xp - start_xp,
            stats=stats,
            streak=streak,
            quests=quests,
            new_badges=new_badges,
        )

    async def touch(self, user_id: str, today: date) -> StreakOutcome:
        """Touch the streak without recording an activity."""

        async def work() -> StreakOutcome:
            streak = await touch_streak(self.db, user_id, today)
            if not streak.changed:
                return StreakOutcome(streak=streak, quests=None)
            quests = await update_quest_progress(self.db, user_id, today, None, streak_touched=True)
            new_badges = await evaluate_badges(self.db, user_id)
            return StreakOutcome(streak=streak, quests=quests, new_badges=new_badges)

        return await self._atomically(work)

    async def advance_quests(self, user_id: str, activity: Activity, today: date) -> QuestProgressResult:
        """Apply an activity to today's quests only."""
        return await self._atomically(
            lambda: update_quest_progress(self.db, user_id, today, activity)
        )

    async def evaluate(self, user_id: str) -> list[BadgeDefinition]:
        """Badge evaluation on its own, e.g. after a definition was added."""
        return await self._atomically(lambda: evaluate_badges(self.db, user_id))

    async def unlock(self, user_id: str, slug: str) -> bool:
        return await self._atomically(lambda: unlock_badge(self.db, user_id, slug))
