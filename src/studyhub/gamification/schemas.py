"""Pydantic response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict


# --- Badge ---


class BadgeDefinitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slug: str
    name: str
    description: str
    icon: str | None = None
    category: str
    rarity: str
    xp_reward: int
    requirement_type: str
    requirement_value: int


class AllBadgesResponse(BaseModel):
    badges: list[BadgeDefinitionResponse]


class UserBadgeResponse(BaseModel):
    badge: BadgeDefinitionResponse
    earned: bool
    earned_at: datetime | None = None
    progress: int = 0
    notified: bool = False


class RarityCount(BaseModel):
    total: int
    earned: int


class UserBadgesResponse(BaseModel):
    badges: list[UserBadgeResponse]
    total: int
    earned: int
    completion_rate: float
    by_rarity: dict[str, RarityCount]


class BadgeEvaluationResponse(BaseModel):
    newly_earned: list[BadgeDefinitionResponse]


class BadgeUnlockResponse(BaseModel):
    slug: str
    newly_earned: bool


# --- XP & levels ---


class XPResponse(BaseModel):
    total_xp: int
    level: int
    level_title: str
    xp_into_level: int
    xp_for_level: int
    xp_to_next: int
    next_level: int
    next_title: str
    progress_percent: float


class XPHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


class LevelEntry(BaseModel):
    level: int
    title: str
    xp_required: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


# --- Stats & streak ---


class StatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    current_xp: int
    current_level: int
    level_title: str
    current_streak: int
    longest_streak: int
    last_study_date: date | None = None
    total_study_minutes: int
    total_quizzes: int
    perfect_scores: int
    high_scores: int
    completed_courses: int
    videos_watched: int
    lessons_read: int
    badges_earned: int


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_study_date: date | None = None
    is_active_today: bool
    effective_streak: int


class StreakTouchResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_study_date: date | None = None
    changed: bool
    extended: bool
    xp_awarded: int
    milestone: int | None = None


# --- Quests ---


class QuestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    title: str
    description: str
    progress: int
    total: int
    xp_reward: int
    completed: bool


class DailyQuestsResponse(BaseModel):
    quest_date: date
    quests: list[QuestResponse]
    completed_count: int
    quest_count: int
    bonus_awarded: bool


class QuestProgressResponse(BaseModel):
    daily: DailyQuestsResponse
    completed_quest_ids: list[str]
    xp_awarded: int
    bonus_awarded: bool


# --- Activities ---


class ActivityResponse(BaseModel):
    activity_id: int
    xp_awarded: int
    stats: StatsResponse
    streak: StreakTouchResponse
    quests: QuestProgressResponse
    new_badges: list[BadgeDefinitionResponse]


# --- Notifications ---


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    subtype: str
    title: str
    description: str | None = None
    payload: dict = {}
    read: bool
    delivered: bool
    created_at: datetime | None = None


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int


# --- Leaderboard ---


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    xp: int
    level: int
    level_title: str
    tier: str
    is_current_user: bool = False


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntryResponse]
    total: int
    limit: int
    offset: int
    has_more: bool
    tier_counts: dict[str, int]


class UserRankResponse(BaseModel):
    user_id: str
    rank: int
    total: int
    xp: int
    tier: str
    percentile: int
    xp_to_next_tier: int | None = None
    surrounding: list[LeaderboardEntryResponse]
