"""Gamification models for XP, levels, streaks, Sparks and achievements."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clevercourse.models.base import Base

if TYPE_CHECKING:
    from clevercourse.models.user import User


class XpReason(str, Enum):
    """Why a ledger entry was written."""
    # Content completion events, accepted from clients
    ARTICLE_COMPLETE = "article-complete"
    FLASHCARD_REVIEWED = "flashcard-reviewed"
    MINDMAP_REVIEWED = "mindmap-reviewed"
    MCQ_CORRECT = "mcq-correct"
    TF_CORRECT = "tf-correct"
    FILL_CORRECT = "fill-correct"
    SECTION_COMPLETE = "section-complete"
    COURSE_COMPLETE = "course-complete"
    PERFECT_QUIZ = "perfect-quiz"
    DAILY_LOGIN = "daily-login"

    # Written by the engine itself
    ACHIEVEMENT_UNLOCKED = "achievement-unlocked"
    LEVEL_UP = "level-up"
    STREAK_MILESTONE = "streak-milestone"
    FREEZE_PURCHASE = "freeze-purchase"


class AchievementRarity(str, Enum):
    """Achievement rarity levels."""
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class AchievementCategory(str, Enum):
    """Achievement categories."""
    LEARNING = "learning"
    STREAK = "streak"
    MASTERY = "mastery"
    SPECIAL = "special"


class AchievementDefinition(Base):
    """Static achievement definitions - seeded once, shared by all users."""

    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)  # e.g., "articles_3"
    name: Mapped[str] = mapped_column(String(255))  # e.g., "Bookworm III"
    description: Mapped[str] = mapped_column(Text)  # e.g., "Complete 25 article pages"
    icon_name: Mapped[str] = mapped_column(String(50))  # Lucide icon name, e.g. "Flame"
    # Use String to avoid PostgreSQL enum mapping issues - values validated at app layer
    category: Mapped[str] = mapped_column(String(50))
    rarity: Mapped[str] = mapped_column(String(50))
    xp_reward: Mapped[int] = mapped_column(Integer, default=0)
    sparks_reward: Mapped[int] = mapped_column(Integer, default=0)
    # Unlock condition: stats[metric_type] >= threshold
    metric_type: Mapped[str] = mapped_column(String(100))
    threshold: Mapped[float] = mapped_column(Float)
    tier: Mapped[int] = mapped_column(Integer, default=1)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)

    # Optional: parent achievement for tiered progressions
    parent_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    user_achievements: Mapped[list["UserAchievement"]] = relationship(
        "UserAchievement",
        back_populates="achievement",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_achievement_category", "category"),
        Index("ix_achievement_metric", "metric_type"),
    )


class UserGamification(Base):
    """Per-user counters. Mutated only through LedgerRepository."""

    __tablename__ = "user_gamification"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        index=True,
    )

    # XP & leveling
    xp_total: Mapped[int] = mapped_column(Integer, default=0)
    current_level: Mapped[int] = mapped_column(Integer, default=1)  # cached levelForXp(xp_total)

    # Currency
    sparks: Mapped[int] = mapped_column(Integer, default=0)

    # Streaks
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    freezes_available: Mapped[int] = mapped_column(Integer, default=1)  # one free freeze
    freezes_used_total: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    user: Mapped["User"] = relationship("User", back_populates="gamification")

    __table_args__ = (
        CheckConstraint("sparks >= 0", name="ck_user_gamification_sparks_non_negative"),
    )


class XPTransaction(Base):
    """Append-only ledger of everything that changed a user's XP or Sparks."""

    __tablename__ = "xp_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )

    amount: Mapped[int] = mapped_column(Integer, default=0)  # Base XP
    bonus_amount: Mapped[int] = mapped_column(Integer, default=0)  # Variable reward roll
    sparks_amount: Mapped[int] = mapped_column(Integer, default=0)  # Negative for purchases

    reason: Mapped[str] = mapped_column(String(50))
    content_id: Mapped[str] = mapped_column(String(100))
    course_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )

    __table_args__ = (
        Index("ix_xp_transaction_unique", "user_id", "content_id", "reason", unique=True),
        Index("ix_xp_transaction_course", "user_id", "course_id"),
    )

    @property
    def total_xp(self) -> int:
        return self.amount + self.bonus_amount


class UserAchievement(Base):
    """Junction table tracking which achievements a user has earned."""

    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    achievement_id: Mapped[str] = mapped_column(
        ForeignKey("achievements.id", ondelete="CASCADE"),
        index=True,
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    is_seen: Mapped[bool] = mapped_column(Boolean, default=False)  # Has the toast been shown?

    achievement: Mapped["AchievementDefinition"] = relationship(
        "AchievementDefinition",
        back_populates="user_achievements",
    )

    __table_args__ = (
        Index("ix_user_achievement_unique", "user_id", "achievement_id", unique=True),
    )


class CompletedContent(Base):
    """Marks a content item as done for a user; drives progress displays."""

    __tablename__ = "completed_content"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    content_id: Mapped[str] = mapped_column(String(100))
    content_type: Mapped[str] = mapped_column(String(50))  # the XpReason that completed it
    course_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_completed_content_unique", "user_id", "content_id", unique=True),
        Index("ix_completed_content_course", "user_id", "course_id"),
    )
