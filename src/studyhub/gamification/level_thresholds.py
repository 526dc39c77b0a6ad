"""Level curve and computation.

XP required to reach a level grows exponentially: ``100 * 1.5 ** (level - 1)``.
These values MUST match the web client's level bar.
"""

from __future__ import annotations

import math

MAX_LISTED_LEVEL = 50

LEVEL_TIERS: list[tuple[int, str]] = [
    (50, "Grandmaster"),
    (40, "Master"),
    (30, "Expert"),
    (20, "Advanced"),
    (10, "Intermediate"),
    (1, "Beginner"),
]


def xp_for_level(level: int) -> int:
    """XP threshold attached to ``level``."""
    if level <= 0:
        return 0
    return math.floor(100 * 1.5 ** (level - 1))


def level_from_xp(total_xp: int) -> int:
    """Level for a total XP amount. Never decreases as XP grows."""
    level = 1
    while total_xp >= xp_for_level(level + 1):
        level += 1
    return level


def level_title(level: int) -> str:
    for threshold, title in LEVEL_TIERS:
        if level >= threshold:
            return title
    return LEVEL_TIERS[-1][1]


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP.

    Must match the client's getLevelInfo() exactly.
    """
    level = level_from_xp(total_xp)
    floor_xp = xp_for_level(level) if level > 1 else 0
    next_xp = xp_for_level(level + 1)

    xp_into_level = total_xp - floor_xp
    xp_for_next = next_xp - floor_xp

    return {
        "level": level,
        "title": level_title(level),
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_next,
        "xp_to_next": xp_for_next - xp_into_level,
        "next_level": level + 1,
        "next_title": level_title(level + 1),
        "progress_percent": round(xp_into_level / xp_for_next * 100, 2),
    }


def level_table(max_level: int = MAX_LISTED_LEVEL) -> list[dict]:
    """Rows for the public levels endpoint."""
    return [
        {"level": lvl, "title": level_title(lvl), "xp_required": xp_for_level(lvl) if lvl > 1 else 0}
        for lvl in range(1, max_level + 1)
    ]
