"""Integration tests for the XP leaderboard."""

from __future__ import annotations

import pytest

from studyhub.db.models import UserStats
from studyhub.gamification.leaderboard_service import get_leaderboard, get_user_rank

from helpers import USER_ID


async def add_users(db, rows: list[tuple[str, int, int]]) -> None:
    """Insert stats rows as (user_id, xp, level)."""
    for user_id, xp, level in rows:
        db.add(UserStats(user_id=user_id, current_xp=xp, current_level=level))
    await db.commit()


async def add_ladder(db, size: int) -> None:
    """``size`` users where user-NNN has rank NNN."""
    await add_users(db, [(f"user-{rank:03d}", (size - rank + 1) * 10, 1) for rank in range(1, size + 1)])


class TestGetLeaderboard:
    @pytest.mark.asyncio
    async def test_orders_by_xp(self, db_session):
        await add_users(db_session, [("ana", 300, 3), ("ben", 900, 5), ("cai", 600, 4)])

        board = await get_leaderboard(db_session)

        assert [e["user_id"] for e in board["entries"]] == ["ben", "cai", "ana"]
        assert [e["rank"] for e in board["entries"]] == [1, 2, 3]
        assert [e["tier"] for e in board["entries"]] == ["platinum", "gold", "gold"]
        assert board["total"] == 3
        assert board["has_more"] is False

    @pytest.mark.asyncio
    async def test_ties_broken_by_level_then_user_id(self, db_session):
        await add_users(db_session, [
            ("zoe", 500, 4),
            ("amy", 500, 4),
            ("max", 500, 5),
            ("kim", 700, 4),
        ])

        board = await get_leaderboard(db_session)

        assert [e["user_id"] for e in board["entries"]] == ["kim", "max", "amy", "zoe"]

    @pytest.mark.asyncio
    async def test_tier_boundaries_across_pages(self, db_session):
        await add_ladder(db_session, 60)

        board = await get_leaderboard(db_session, limit=60)
        tiers = {e["rank"]: e["tier"] for e in board["entries"]}

        assert tiers[1] == "platinum"
        assert tiers[10] == "gold"
        assert tiers[11] == "silver"
        assert tiers[50] == "silver"
        assert tiers[51] == "bronze"
        assert board["tier_counts"] == {"platinum": 1, "gold": 9, "silver": 40, "bronze": 10}

    @pytest.mark.asyncio
    async def test_pagination(self, db_session):
        await add_ladder(db_session, 12)

        board = await get_leaderboard(db_session, limit=5, offset=10)

        assert [e["rank"] for e in board["entries"]] == [11, 12]
        assert board["entries"][0]["user_id"] == "user-011"
        assert board["has_more"] is False

    @pytest.mark.asyncio
    async def test_current_user_flagged(self, db_session):
        await add_users(db_session, [(USER_ID, 10, 1), ("other", 20, 1)])

        board = await get_leaderboard(db_session, current_user_id=USER_ID)

        assert [e["is_current_user"] for e in board["entries"]] == [False, True]


class TestGetUserRank:
    @pytest.mark.asyncio
    async def test_rank_with_neighbours(self, db_session):
        await add_ladder(db_session, 20)

        rank = await get_user_rank(db_session, "user-012")

        assert rank["rank"] == 12
        assert rank["tier"] == "silver"
        assert rank["total"] == 20
        assert rank["percentile"] == 40
        assert [e["rank"] for e in rank["surrounding"]] == [10, 11, 12, 13, 14]
        assert [e["is_current_user"] for e in rank["surrounding"]] == [False, False, True, False, False]

    @pytest.mark.asyncio
    async def test_xp_to_next_tier(self, db_session):
        await add_ladder(db_session, 20)

        # user-012 has 90 XP, user-010 (last gold) has 110.
        rank = await get_user_rank(db_session, "user-012")
        assert rank["xp_to_next_tier"] == 21

    @pytest.mark.asyncio
    async def test_platinum_has_no_next_tier(self, db_session):
        await add_ladder(db_session, 5)

        rank = await get_user_rank(db_session, "user-001")

        assert rank["tier"] == "platinum"
        assert rank["xp_to_next_tier"] is None
        assert [e["rank"] for e in rank["surrounding"]] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_tied_user_ranked_by_user_id(self, db_session):
        await add_users(db_session, [("amy", 500, 4), ("zoe", 500, 4)])

        assert (await get_user_rank(db_session, "amy"))["rank"] == 1
        assert (await get_user_rank(db_session, "zoe"))["rank"] == 2

    @pytest.mark.asyncio
    async def test_newcomer_ranked_last(self, db_session):
        await add_users(db_session, [("ana", 50, 1), ("ben", 20, 1)])

        rank = await get_user_rank(db_session, USER_ID)
        await db_session.commit()

        assert rank["rank"] == 3
        assert rank["xp"] == 0
        assert rank["total"] == 3
        assert rank["tier"] == "gold"
        assert rank["xp_to_next_tier"] == 51
