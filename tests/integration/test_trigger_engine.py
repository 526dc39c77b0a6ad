"""Integration tests for the activity trigger engine."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from studyhub.db.models import StudyActivity, UserBadge, XPLedger
from studyhub.errors import StorageUnavailableError
from studyhub.gamification import trigger_engine
from studyhub.gamification.activities import QuizActivity, StudySessionActivity
from studyhub.gamification.trigger_engine import TriggerEngine
from studyhub.gamification.xp_service import get_stats

from helpers import USER_ID

TODAY = date(2026, 3, 10)


async def count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class TestProcess:
    @pytest.mark.asyncio
    async def test_first_perfect_quiz(self, seeded_session):
        outcome = await TriggerEngine(seeded_session).process(USER_ID, QuizActivity(minutes=10, score=100), TODAY)

        assert outcome.stats.total_quizzes == 1
        assert outcome.streak.current_streak == 1
        assert outcome.streak.changed
        assert {"first_steps", "perfect_score"} <= {b.slug for b in outcome.new_badges}
        assert outcome.xp_awarded == outcome.stats.current_xp
        assert outcome.quests.batch.quest_date == TODAY
        assert outcome.activity_id > 0

    @pytest.mark.asyncio
    async def test_second_activity_same_day(self, seeded_session):
        engine = TriggerEngine(seeded_session)
        await engine.process(USER_ID, QuizActivity(score=100), TODAY)
        second = await engine.process(USER_ID, QuizActivity(score=100), TODAY)

        assert not second.streak.changed
        assert second.streak.current_streak == 1
        assert "first_steps" not in {b.slug for b in second.new_badges}
        assert second.stats.total_quizzes == 2
        assert await count(seeded_session, StudyActivity) == 2

    @pytest.mark.asyncio
    async def test_consecutive_days_build_streak(self, seeded_session):
        engine = TriggerEngine(seeded_session)
        for offset in range(3):
            outcome = await engine.process(USER_ID, StudySessionActivity(minutes=20), TODAY + timedelta(days=offset))

        assert outcome.streak.current_streak == 3
        stats = await get_stats(seeded_session, USER_ID)
        assert stats.longest_streak == 3
        assert stats.total_study_minutes == 60

    @pytest.mark.asyncio
    async def test_failure_rolls_back_everything(self, seeded_session, monkeypatch):
        async def broken(db, user_id):
            raise RuntimeError("badge evaluation exploded")

        monkeypatch.setattr(trigger_engine, "evaluate_badges", broken)

        with pytest.raises(RuntimeError):
            await TriggerEngine(seeded_session).process(USER_ID, QuizActivity(score=100), TODAY)

        assert await count(seeded_session, StudyActivity) == 0
        assert await count(seeded_session, XPLedger) == 0
        assert await get_stats(seeded_session, USER_ID) is None

    @pytest.mark.asyncio
    async def test_storage_failure_is_retryable_error(self, seeded_session, monkeypatch):
        async def unreachable(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, ConnectionRefusedError("db down"))

        monkeypatch.setattr(trigger_engine, "record_activity", unreachable)

        with pytest.raises(StorageUnavailableError):
            await TriggerEngine(seeded_session).process(USER_ID, QuizActivity(score=70), TODAY)


class TestTouch:
    @pytest.mark.asyncio
    async def test_touch_twice_same_day(self, seeded_session):
        engine = TriggerEngine(seeded_session)
        first = await engine.touch(USER_ID, TODAY)
        second = await engine.touch(USER_ID, TODAY)

        assert first.streak.changed
        assert first.quests is not None
        assert not second.streak.changed
        assert second.quests is None


class TestEvaluateAndUnlock:
    @pytest.mark.asyncio
    async def test_evaluate_commits(self, seeded_session):
        engine = TriggerEngine(seeded_session)
        await engine.process(USER_ID, QuizActivity(score=40), TODAY)

        assert await engine.evaluate(USER_ID) == []

    @pytest.mark.asyncio
    async def test_unlock(self, seeded_session):
        engine = TriggerEngine(seeded_session)
        assert await engine.unlock(USER_ID, "founding_member") is True
        assert await engine.unlock(USER_ID, "founding_member") is False

        earned = await seeded_session.execute(
            select(func.count()).select_from(UserBadge).where(UserBadge.earned.is_(True))
        )
        assert earned.scalar_one() == 1
