"""Integration tests for the badge engine."""

from __future__ import annotations

import pytest
from sqlalchemy import select, update

from studyhub.db.models import BadgeDefinition, Notification, UserBadge, UserStats, XPLedger
from studyhub.errors import NotFoundError
from studyhub.gamification.badge_service import (
    evaluate_badges,
    get_badge_collection,
    unlock_badge,
)
from studyhub.gamification.xp_service import get_or_create_stats, get_stats

from helpers import USER_ID


async def set_stats(db, **values) -> None:
    await get_or_create_stats(db, USER_ID)
    await db.execute(update(UserStats).where(UserStats.user_id == USER_ID).values(**values))
    await db.commit()


async def user_badge(db, slug: str) -> UserBadge:
    result = await db.execute(
        select(UserBadge)
        .join(BadgeDefinition, UserBadge.badge_id == BadgeDefinition.id)
        .where(UserBadge.user_id == USER_ID, BadgeDefinition.slug == slug)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one()


class TestEvaluateBadges:
    @pytest.mark.asyncio
    async def test_new_user_earns_nothing(self, seeded_session):
        earned = await evaluate_badges(seeded_session, USER_ID)
        assert earned == []

    @pytest.mark.asyncio
    async def test_progress_at_49_of_50_quizzes(self, seeded_session):
        await set_stats(seeded_session, total_quizzes=49)

        earned = await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        veteran = await user_badge(seeded_session, "quiz_veteran")
        assert veteran.progress == 98
        assert not veteran.earned
        assert "quiz_veteran" not in {b.slug for b in earned}
        # The lower quiz badges fire on the way
        assert {"first_steps", "scholar"} <= {b.slug for b in earned}

    @pytest.mark.asyncio
    async def test_fiftieth_quiz_earns_exactly_once(self, seeded_session):
        await set_stats(seeded_session, total_quizzes=49)
        await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        await set_stats(seeded_session, total_quizzes=50)
        first = await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()
        veteran = await user_badge(seeded_session, "quiz_veteran")
        earned_at = veteran.earned_at

        second = await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        assert [b.slug for b in first] == ["quiz_veteran"]
        assert second == []
        veteran = await user_badge(seeded_session, "quiz_veteran")
        assert veteran.earned
        assert veteran.progress == 100
        assert veteran.earned_at == earned_at

    @pytest.mark.asyncio
    async def test_earning_grants_xp_and_counts(self, seeded_session):
        await set_stats(seeded_session, total_quizzes=1)

        earned = await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        assert [b.slug for b in earned] == ["first_steps"]
        stats = await get_stats(seeded_session, USER_ID)
        assert stats.badges_earned == 1
        assert stats.current_xp == 50
        keys = (await seeded_session.execute(select(XPLedger.idempotency_key))).scalars().all()
        assert keys == [f"badge:first_steps:{USER_ID}"]

    @pytest.mark.asyncio
    async def test_badge_notification_queued_once(self, seeded_session):
        await set_stats(seeded_session, perfect_scores=1)
        await evaluate_badges(seeded_session, USER_ID)
        await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        rows = (await seeded_session.execute(
            select(Notification).where(Notification.subtype == "badge_earned")
        )).scalars().all()
        assert [r.payload["badge_slug"] for r in rows] == ["perfect_score"]
        assert rows[0].delivered is False

    @pytest.mark.asyncio
    async def test_progress_never_lowered(self, seeded_session):
        await set_stats(seeded_session, total_study_minutes=300)
        await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        # A smaller value (e.g. a corrected counter) must not pull progress back
        await set_stats(seeded_session, total_study_minutes=60)
        await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        marathon = await user_badge(seeded_session, "marathon")
        assert marathon.progress == 50

    @pytest.mark.asyncio
    async def test_badge_xp_can_unlock_level_badge(self, seeded_session):
        # 3800 XP is level 9; the 50 XP from first_steps crosses into level 10
        await set_stats(seeded_session, current_xp=3800, current_level=9, total_quizzes=1)

        earned = await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        slugs = [b.slug for b in earned]
        assert "first_steps" in slugs
        assert "rising_star" in slugs

    @pytest.mark.asyncio
    async def test_manual_badges_never_auto_fire(self, seeded_session):
        await set_stats(seeded_session, total_quizzes=500, current_streak=40, longest_streak=40)
        earned = await evaluate_badges(seeded_session, USER_ID)
        assert "founding_member" not in {b.slug for b in earned}


class TestUnlockBadge:
    @pytest.mark.asyncio
    async def test_unlock_manual_badge(self, seeded_session):
        assert await unlock_badge(seeded_session, USER_ID, "founding_member") is True
        assert await unlock_badge(seeded_session, USER_ID, "founding_member") is False
        await seeded_session.commit()

        badge = await user_badge(seeded_session, "founding_member")
        assert badge.earned
        assert badge.earned_at is not None

    @pytest.mark.asyncio
    async def test_unknown_slug(self, seeded_session):
        with pytest.raises(NotFoundError):
            await unlock_badge(seeded_session, USER_ID, "does_not_exist")


class TestBadgeCollection:
    @pytest.mark.asyncio
    async def test_collection_totals(self, seeded_session):
        await set_stats(seeded_session, total_quizzes=10)
        await evaluate_badges(seeded_session, USER_ID)
        await seeded_session.commit()

        collection = await get_badge_collection(seeded_session, USER_ID)
        total = len(collection["badges"])
        assert collection["total"] == total
        assert collection["earned"] == 2  # first_steps, scholar
        assert collection["completion_rate"] == round(2 / total * 100, 1)
        assert sum(r["total"] for r in collection["by_rarity"].values()) == total
        assert collection["by_rarity"]["rare"]["earned"] == 1
