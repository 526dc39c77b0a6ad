"""Gamification API endpoints."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyhub.auth.dependencies import get_current_user_id
from studyhub.config import get_settings
from studyhub.database import get_session
from studyhub.db.models import BadgeDefinition, DailyQuestBatch, UserStats
from studyhub.db.storage import run_in_transaction
from studyhub.errors import ValidationError
from studyhub.gamification.activities import parse_activity
from studyhub.gamification.badge_service import (
    get_badge_by_slug,
    get_badge_collection,
    list_badge_definitions,
)
from studyhub.gamification.leaderboard_service import get_leaderboard, get_user_rank
from studyhub.gamification.level_thresholds import compute_level, level_table
from studyhub.gamification.notification_service import (
    NotificationSink,
    dispatch_pending,
    list_notifications,
    mark_read,
)
from studyhub.gamification.quest_service import QuestProgressResult, get_or_create_daily_quests
from studyhub.gamification.schemas import (
    ActivityResponse,
    AllBadgesResponse,
    AllLevelsResponse,
    BadgeDefinitionResponse,
    BadgeEvaluationResponse,
    BadgeUnlockResponse,
    DailyQuestsResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    LevelEntry,
    NotificationListResponse,
    NotificationResponse,
    QuestProgressResponse,
    QuestResponse,
    RarityCount,
    StatsResponse,
    StreakResponse,
    StreakTouchResponse,
    UserBadgeResponse,
    UserBadgesResponse,
    UserRankResponse,
    XPHistoryEntry,
    XPHistoryResponse,
    XPResponse,
)
from studyhub.gamification.streak_service import StreakUpdate, effective_streak, is_active_today
from studyhub.gamification.trigger_engine import TriggerEngine
from studyhub.gamification.xp_service import get_or_create_stats, get_xp_history
from studyhub.redis_client import get_notification_sink

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


def _today() -> date:
    return datetime.now(timezone.utc).date()


async def _dispatch(db: AsyncSession, sink: NotificationSink | None, user_id: str) -> None:
    """Deliver what the committed transaction queued."""
    delivered = await dispatch_pending(
        db, sink, user_id=user_id, limit=get_settings().notification_dispatch_limit,
    )
    if delivered:
        logger.debug("Delivered %d notification(s) to %s", delivered, user_id)


def _xp_response(total_xp: int) -> XPResponse:
    level_info = compute_level(total_xp)
    return XPResponse(
        total_xp=total_xp,
        level=level_info["level"],
        level_title=level_info["title"],
        xp_into_level=level_info["xp_into_level"],
        xp_for_level=level_info["xp_for_level"],
        xp_to_next=level_info["xp_to_next"],
        next_level=level_info["next_level"],
        next_title=level_info["next_title"],
        progress_percent=level_info["progress_percent"],
    )


def _streak_touch_response(update: StreakUpdate) -> StreakTouchResponse:
    return StreakTouchResponse(
        current_streak=update.current_streak,
        longest_streak=update.longest_streak,
        last_study_date=update.last_study_date,
        changed=update.changed,
        extended=update.extended,
        xp_awarded=update.xp_awarded,
        milestone=update.milestone,
    )


def _daily_response(batch: DailyQuestBatch) -> DailyQuestsResponse:
    return DailyQuestsResponse(
        quest_date=batch.quest_date,
        quests=[QuestResponse.model_validate(q) for q in batch.quests],
        completed_count=batch.completed_count,
        quest_count=batch.quest_count,
        bonus_awarded=batch.bonus_awarded,
    )


def _quest_progress_response(result: QuestProgressResult) -> QuestProgressResponse:
    return QuestProgressResponse(
        daily=_daily_response(result.batch),
        completed_quest_ids=result.completed_quest_ids,
        xp_awarded=result.xp_awarded,
        bonus_awarded=result.bonus_awarded,
    )


def _badges(badges: list[BadgeDefinition]) -> list[BadgeDefinitionResponse]:
    return [BadgeDefinitionResponse.model_validate(b) for b in badges]


# ── Public endpoints ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(db: AsyncSession = Depends(get_session)):
    """All active badge definitions."""
    return AllBadgesResponse(badges=_badges(await list_badge_definitions(db)))


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """XP required for each level."""
    return AllLevelsResponse(levels=[LevelEntry(**row) for row in level_table()])


# ── Activities ──


@router.post("/users/me/activities", response_model=ActivityResponse, status_code=201)
async def post_activity(
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    sink: NotificationSink | None = Depends(get_notification_sink),
):
    """Record a study activity and apply streak, quest and badge effects."""
    activity = parse_activity(payload)
    outcome = await TriggerEngine(db).process(user_id, activity, _today())
    await _dispatch(db, sink, user_id)

    return ActivityResponse(
        activity_id=outcome.activity_id,
        xp_awarded=outcome.xp_awarded,
        stats=StatsResponse.model_validate(outcome.stats),
        streak=_streak_touch_response(outcome.streak),
        quests=_quest_progress_response(outcome.quests),
        new_badges=_badges(outcome.new_badges),
    )


# ── Stats, XP, streak ──


@router.get("/users/me/stats", response_model=StatsResponse)
async def get_my_stats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    stats = await run_in_transaction(db, lambda: get_or_create_stats(db, user_id))
    return StatsResponse.model_validate(stats)


@router.get("/users/me/xp", response_model=XPResponse)
async def get_my_xp(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Current XP and level progress."""
    stats = await run_in_transaction(db, lambda: get_or_create_stats(db, user_id))
    return _xp_response(stats.current_xp)


@router.get("/users/me/xp/history", response_model=XPHistoryResponse)
async def get_my_xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """XP ledger, newest first (paginated)."""
    entries, total = await get_xp_history(db, user_id, page, per_page)
    return XPHistoryResponse(
        entries=[XPHistoryEntry.model_validate(e) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/users/me/streak", response_model=StreakResponse)
async def get_my_streak(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    stats: UserStats = await run_in_transaction(db, lambda: get_or_create_stats(db, user_id))
    today = _today()
    return StreakResponse(
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        last_study_date=stats.last_study_date,
        is_active_today=is_active_today(stats, today),
        effective_streak=effective_streak(stats, today),
    )


@router.post("/users/me/streak/touch", response_model=StreakTouchResponse)
async def touch_my_streak(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    sink: NotificationSink | None = Depends(get_notification_sink),
):
    """Count today towards the streak. Repeat calls on the same day are no-ops."""
    outcome = await TriggerEngine(db).touch(user_id, _today())
    await _dispatch(db, sink, user_id)
    return _streak_touch_response(outcome.streak)


# ── Badges ──


@router.get("/users/me/badges", response_model=UserBadgesResponse)
async def get_my_badges(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Badge collection with progress, totals and rarity breakdown."""
    collection = await get_badge_collection(db, user_id)
    return UserBadgesResponse(
        badges=[
            UserBadgeResponse(
                badge=BadgeDefinitionResponse.model_validate(item["badge"]),
                earned=item["earned"],
                earned_at=item["earned_at"],
                progress=item["progress"],
                notified=item["notified"],
            )
            for item in collection["badges"]
        ],
        total=collection["total"],
        earned=collection["earned"],
        completion_rate=collection["completion_rate"],
        by_rarity={k: RarityCount(**v) for k, v in collection["by_rarity"].items()},
    )


@router.post("/users/me/badges/evaluate", response_model=BadgeEvaluationResponse)
async def evaluate_my_badges(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    sink: NotificationSink | None = Depends(get_notification_sink),
):
    """Re-check every badge; returns only the ones earned by this call."""
    awarded = await TriggerEngine(db).evaluate(user_id)
    await _dispatch(db, sink, user_id)
    return BadgeEvaluationResponse(newly_earned=_badges(awarded))


@router.post("/users/me/badges/{slug}/unlock", response_model=BadgeUnlockResponse)
async def unlock_my_badge(
    slug: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    sink: NotificationSink | None = Depends(get_notification_sink),
):
    """Claim a manually awarded badge."""
    badge = await get_badge_by_slug(db, slug)
    if badge is not None and badge.requirement_type != "manual":
        raise ValidationError(f"Badge {slug} is earned automatically")

    newly_earned = await TriggerEngine(db).unlock(user_id, slug)
    await _dispatch(db, sink, user_id)
    return BadgeUnlockResponse(slug=slug, newly_earned=newly_earned)


# ── Daily quests ──


@router.get("/users/me/quests/daily", response_model=DailyQuestsResponse)
async def get_my_daily_quests(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Today's quests, generated on first request of the day."""
    today = _today()
    batch = await run_in_transaction(db, lambda: get_or_create_daily_quests(db, user_id, today))
    return _daily_response(batch)


@router.post("/users/me/quests/daily/progress", response_model=QuestProgressResponse)
async def post_quest_progress(
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    sink: NotificationSink | None = Depends(get_notification_sink),
):
    """Apply an activity to today's quests without recording it."""
    activity = parse_activity(payload)
    result = await TriggerEngine(db).advance_quests(user_id, activity, _today())
    await _dispatch(db, sink, user_id)
    return _quest_progress_response(result)


# ── Notifications ──


@router.get("/users/me/notifications", response_model=NotificationListResponse)
async def get_my_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    rows, unread = await list_notifications(db, user_id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in rows],
        unread_count=unread,
    )


@router.post("/users/me/notifications/{notification_id}/read", status_code=204)
async def read_notification(
    notification_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Mark a notification as read."""
    await mark_read(db, user_id, notification_id)


# ── Leaderboard ──


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_xp_leaderboard(
    limit: int = Query(100, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Global XP ranking with tiers."""
    board = await get_leaderboard(db, limit=limit, offset=offset, current_user_id=user_id)
    return LeaderboardResponse(
        entries=[LeaderboardEntryResponse(**e) for e in board["entries"]],
        total=board["total"],
        limit=board["limit"],
        offset=board["offset"],
        has_more=board["has_more"],
        tier_counts=board["tier_counts"],
    )


@router.get("/users/me/rank", response_model=UserRankResponse)
async def get_my_rank(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Own rank, tier and the users directly above and below."""
    rank = await run_in_transaction(db, lambda: get_user_rank(db, user_id))
    return UserRankResponse(
        user_id=rank["user_id"],
        rank=rank["rank"],
        total=rank["total"],
        xp=rank["xp"],
        tier=rank["tier"],
        percentile=rank["percentile"],
        xp_to_next_tier=rank["xp_to_next_tier"],
        surrounding=[LeaderboardEntryResponse(**e) for e in rank["surrounding"]],
    )
