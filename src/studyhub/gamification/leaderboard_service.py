"""XP leaderboard: global ranking, rank tiers and a user's neighbourhood.

Rankings are read straight from ``user_stats``. Order is XP descending,
then level descending, then user id, so users with equal XP always come
back in the same order and every rank is distinct.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.db.models import UserStats
from studyhub.errors import ValidationError
from studyhub.gamification.xp_service import get_or_create_stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tier:
    name: str
    min_rank: int
    max_rank: int | None


TIERS: tuple[Tier, ...] = (
    Tier("platinum", 1, 1),
    Tier("gold", 2, 10),
    Tier("silver", 11, 50),
    Tier("bronze", 51, None),
)

RANK_ORDER = (
    UserStats.current_xp.desc(),
    UserStats.current_level.desc(),
    UserStats.user_id.asc(),
)

DEFAULT_NEIGHBOURS = 2


def tier_for_rank(rank: int) -> Tier:
    if rank < 1:
        raise ValidationError(f"Rank must be positive, got {rank}")
    for tier in TIERS:
        if tier.max_rank is None or rank <= tier.max_rank:
            return tier
    return TIERS[-1]


def tier_distribution(total: int) -> dict[str, int]:
    """How many of ``total`` ranked users fall in each tier."""
    counts = {}
    for tier in TIERS:
        upper = total if tier.max_rank is None else min(total, tier.max_rank)
        counts[tier.name] = max(0, upper - tier.min_rank + 1)
    return counts


def percentile_rank(rank: int, total: int) -> int:
    """Share of ranked users strictly behind ``rank``, rounded half up."""
    if total <= 0 or rank < 1:
        return 0
    return math.floor((total - rank) * 100 / total + 0.5)


def _entry(rank: int, stats: UserStats, current_user_id: str | None = None) -> dict:
    return {
        "rank": rank,
        "user_id": stats.user_id,
        "xp": stats.current_xp,
        "level": stats.current_level,
        "level_title": stats.level_title,
        "tier": tier_for_rank(rank).name,
        "is_current_user": stats.user_id == current_user_id,
    }


async def count_ranked_users(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(UserStats))
    return result.scalar_one()


async def _ranked_slice(db: AsyncSession, offset: int, limit: int) -> list[UserStats]:
    result = await db.execute(
        select(UserStats).order_by(*RANK_ORDER).offset(offset).limit(limit)
    )
    return list(result.scalars().all())


async def rank_of(db: AsyncSession, stats: UserStats) -> int:
    """1-based position of ``stats`` under ``RANK_ORDER``."""
    ahead = or_(
        UserStats.current_xp > stats.current_xp,
        and_(
            UserStats.current_xp == stats.current_xp,
            UserStats.current_level > stats.current_level,
        ),
        and_(
            UserStats.current_xp == stats.current_xp,
            UserStats.current_level == stats.current_level,
            UserStats.user_id < stats.user_id,
        ),
    )
    result = await db.execute(select(func.count()).select_from(UserStats).where(ahead))
    return result.scalar_one() + 1


async def get_leaderboard(
    db: AsyncSession,
    limit: int = 100,
    offset: int = 0,
    current_user_id: str | None = None,
) -> dict:
    """One page of the global XP ranking plus the tier distribution."""
    total = await count_ranked_users(db)
    rows = await _ranked_slice(db, offset, limit)
    return {
        "entries": [_entry(offset + i + 1, s, current_user_id) for i, s in enumerate(rows)],
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + limit < total,
        "tier_counts": tier_distribution(total),
    }


async def get_user_rank(
    db: AsyncSession,
    user_id: str,
    neighbours: int = DEFAULT_NEIGHBOURS,
) -> dict:
    """A user's rank, tier, percentile and the users directly around them.

    Users with no stats row yet are ranked with zero XP.
    """
    stats = await get_or_create_stats(db, user_id)
    rank = await rank_of(db, stats)
    total = await count_ranked_users(db)
    tier = tier_for_rank(rank)

    start = max(0, rank - 1 - neighbours)
    rows = await _ranked_slice(db, start, rank - start + neighbours)
    surrounding = [_entry(start + i + 1, s, user_id) for i, s in enumerate(rows)]

    xp_to_next_tier: int | None = None
    if tier.min_rank > 1:
        boundary = await _ranked_slice(db, tier.min_rank - 2, 1)
        if boundary:
            xp_to_next_tier = max(0, boundary[0].current_xp - stats.current_xp + 1)

    return {
        "user_id": user_id,
        "rank": rank,
        "total": total,
        "xp": stats.current_xp,
        "tier": tier.name,
        "percentile": percentile_rank(rank, total),
        "xp_to_next_tier": xp_to_next_tier,
        "surrounding": surrounding,
    }
