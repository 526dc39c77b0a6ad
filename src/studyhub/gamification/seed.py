"""Badge master list and daily quest templates.

Badges are seeded into ``badge_definitions`` on startup (idempotent).
Quest templates stay in code: a day's batch copies the template fields,
so editing a template never rewrites quests already handed out.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.db.models import BadgeDefinition
from studyhub.db.storage import insert_for

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Learning
    {
        "slug": "first_steps",
        "name": "First Steps",
        "description": "Complete your first quiz",
        "icon": "\U0001f3af",
        "category": "learning",
        "rarity": "common",
        "xp_reward": 50,
        "requirement_type": "quizzes_completed",
        "requirement_value": 1,
        "sort_order": 1,
    },
    {
        "slug": "scholar",
        "name": "Scholar",
        "description": "Complete 10 quizzes",
        "icon": "\U0001f4da",
        "category": "learning",
        "rarity": "rare",
        "xp_reward": 100,
        "requirement_type": "quizzes_completed",
        "requirement_value": 10,
        "sort_order": 2,
    },
    {
        "slug": "quiz_veteran",
        "name": "Quiz Veteran",
        "description": "Complete 50 quizzes",
        "icon": "\U0001f393",
        "category": "learning",
        "rarity": "epic",
        "xp_reward": 250,
        "requirement_type": "quizzes_completed",
        "requirement_value": 50,
        "sort_order": 3,
    },
    {
        "slug": "course_finisher",
        "name": "Course Finisher",
        "description": "Complete your first course",
        "icon": "\U0001f3c1",
        "category": "learning",
        "rarity": "rare",
        "xp_reward": 150,
        "requirement_type": "courses_completed",
        "requirement_value": 1,
        "sort_order": 4,
    },
    {
        "slug": "marathon",
        "name": "Marathon",
        "description": "Study for a total of 10 hours",
        "icon": "⏱",
        "category": "learning",
        "rarity": "rare",
        "xp_reward": 150,
        "requirement_type": "study_minutes",
        "requirement_value": 600,
        "sort_order": 5,
    },
    # Mastery
    {
        "slug": "perfect_score",
        "name": "Perfect Score",
        "description": "Get 100% on any quiz",
        "icon": "\U0001f4af",
        "category": "mastery",
        "rarity": "epic",
        "xp_reward": 200,
        "requirement_type": "perfect_scores",
        "requirement_value": 1,
        "sort_order": 6,
    },
    {
        "slug": "quiz_master",
        "name": "Quiz Master",
        "description": "Score more than 90% in 5 quizzes",
        "icon": "\U0001f9e0",
        "category": "mastery",
        "rarity": "epic",
        "xp_reward": 300,
        "requirement_type": "high_score_count",
        "requirement_value": 5,
        "sort_order": 7,
    },
    {
        "slug": "rising_star",
        "name": "Rising Star",
        "description": "Reach level 10",
        "icon": "⭐",
        "category": "mastery",
        "rarity": "rare",
        "xp_reward": 100,
        "requirement_type": "level_reached",
        "requirement_value": 10,
        "sort_order": 8,
    },
    # Consistency
    {
        "slug": "week_warrior",
        "name": "Week Warrior",
        "description": "Maintain a 7-day study streak",
        "icon": "\U0001f525",
        "category": "consistency",
        "rarity": "rare",
        "xp_reward": 150,
        "requirement_type": "streak_days",
        "requirement_value": 7,
        "sort_order": 9,
    },
    {
        "slug": "dedicated_learner",
        "name": "Dedicated Learner",
        "description": "Study for 30 consecutive days",
        "icon": "\U0001f4c5",
        "category": "consistency",
        "rarity": "legendary",
        "xp_reward": 1000,
        "requirement_type": "streak_days",
        "requirement_value": 30,
        "sort_order": 10,
    },
    {
        "slug": "early_bird",
        "name": "Early Bird",
        "description": "Complete a lesson before 8 AM",
        "icon": "\U0001f305",
        "category": "consistency",
        "rarity": "common",
        "xp_reward": 50,
        "requirement_type": "early_morning_lessons",
        "requirement_value": 1,
        "sort_order": 11,
    },
    {
        "slug": "night_owl",
        "name": "Night Owl",
        "description": "Complete a lesson after 10 PM",
        "icon": "\U0001f989",
        "category": "consistency",
        "rarity": "common",
        "xp_reward": 50,
        "requirement_type": "late_night_lessons",
        "requirement_value": 1,
        "sort_order": 12,
    },
    {
        "slug": "quest_hunter",
        "name": "Quest Hunter",
        "description": "Complete 25 daily quests",
        "icon": "\U0001f5fa",
        "category": "consistency",
        "rarity": "epic",
        "xp_reward": 250,
        "requirement_type": "daily_quests_completed",
        "requirement_value": 25,
        "sort_order": 13,
    },
    # Special
    {
        "slug": "founding_member",
        "name": "Founding Member",
        "description": "Joined during the platform launch",
        "icon": "\U0001f3c6",
        "category": "special",
        "rarity": "legendary",
        "xp_reward": 500,
        "requirement_type": "manual",
        "requirement_value": 1,
        "sort_order": 14,
    },
]

QUEST_TYPES = ("quiz", "study_time", "video", "course", "streak")

QUEST_TEMPLATES: list[dict] = [
    {
        "slug": "daily_quiz",
        "type": "quiz",
        "title": "Quiz Master",
        "description": "Complete 2 quizzes today",
        "total": 2,
        "xp_reward": 50,
    },
    {
        "slug": "daily_study_15",
        "type": "study_time",
        "title": "Quick Study",
        "description": "Study for 15 minutes",
        "total": 15,
        "xp_reward": 30,
    },
    {
        "slug": "daily_video",
        "type": "video",
        "title": "Watch & Learn",
        "description": "Watch 3 lesson videos",
        "total": 3,
        "xp_reward": 40,
    },
    {
        "slug": "daily_course",
        "type": "course",
        "title": "Finish Line",
        "description": "Complete a course",
        "total": 1,
        "xp_reward": 100,
    },
    {
        "slug": "daily_streak_keep",
        "type": "streak",
        "title": "Streak Keeper",
        "description": "Extend your streak today",
        "total": 1,
        "xp_reward": 60,
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Insert badge definitions that do not exist yet. Returns rows inserted."""
    existing = await db.execute(select(BadgeDefinition.slug))
    known = set(existing.scalars().all())

    inserted = 0
    for badge_data in BADGE_SEED_DATA:
        if badge_data["slug"] in known:
            continue
        await db.execute(
            insert_for(db, BadgeDefinition)
            .values(**badge_data, is_active=True)
            .on_conflict_do_nothing(index_elements=["slug"])
        )
        inserted += 1

    await db.commit()
    if inserted:
        logger.info("Seeded %d badge definitions", inserted)
    return inserted
