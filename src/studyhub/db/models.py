"""ORM models for the gamification core.

User ids are opaque strings issued by the external identity provider, so
no table here references a users table. Uniqueness constraints carry the
idempotence keys the services rely on: ``xp_ledger.idempotency_key``,
``user_badges(user_id, badge_id)``, ``daily_quest_batches(user_id,
quest_date)`` and ``notifications(user_id, dedup_key)``.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.db.base import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Stats & XP
# ---------------------------------------------------------------------------


class UserStats(Base):
    """Denormalized gamification summary: single row per user, O(1) reads."""

    __tablename__ = "user_stats"
    __table_args__ = (
        Index("idx_user_stats_ranking", "current_xp", "current_level"),
    )

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    current_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    level_title: Mapped[str] = mapped_column(String(64), nullable=False, default="Beginner", server_default="Beginner")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_study_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_study_minutes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    total_quizzes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    perfect_scores: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    high_scores: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    completed_courses: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    videos_watched: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lessons_read: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    early_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    late_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    badges_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class XPLedger(Base):
    """Immutable XP transaction log with idempotency key."""

    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


class StudyActivity(Base):
    """Append-only activity log. Rows are never updated."""

    __tablename__ = "study_activities"
    __table_args__ = (
        Index("idx_study_activities_user_date", "user_id", "activity_date"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    subject_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    course_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    lesson_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    activity_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class BadgeDefinition(Base):
    """Badge master list: seeded on startup, read-only at runtime."""

    __tablename__ = "badge_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    requirement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    requirement_value: Mapped[int] = mapped_column(Integer, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class UserBadge(Base):
    """Per-user badge state: UNIQUE(user_id, badge_id), earned flips once."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="user_badges_user_id_badge_id_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    badge_id: Mapped[int] = mapped_column(Integer, ForeignKey("badge_definitions.id"), nullable=False)
    earned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    earned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    badge: Mapped[BadgeDefinition] = relationship("BadgeDefinition", lazy="joined")


# ---------------------------------------------------------------------------
# Daily quests
# ---------------------------------------------------------------------------


class DailyQuestBatch(Base):
    """One batch of quests per (user, day)."""

    __tablename__ = "daily_quest_batches"
    __table_args__ = (
        UniqueConstraint("user_id", "quest_date", name="daily_quest_batches_user_id_quest_date_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    quest_date: Mapped[date] = mapped_column(Date, nullable=False)
    quest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    bonus_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    quests: Mapped[list[DailyQuest]] = relationship(
        "DailyQuest",
        order_by="DailyQuest.position",
        lazy="selectin",
    )


class DailyQuest(Base):
    """A single quest inside a day's batch. Only progress/completed mutate."""

    __tablename__ = "daily_quests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    batch_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"),
        ForeignKey("daily_quest_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    template_slug: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(String(256), nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


# ---------------------------------------------------------------------------
# Notifications (outbox)
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted user notifications, written in the same transaction as the event."""

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("user_id", "dedup_key", name="notifications_user_id_dedup_key_key"),
        Index("idx_notifications_undelivered", "delivered", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    subtype: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    dedup_key: Mapped[str] = mapped_column(String(256), nullable=False)
    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
