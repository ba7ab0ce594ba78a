"""Result types returned by the gamification engine."""

from dataclasses import dataclass, field
from datetime import date

from clevercourse.models.gamification import XPTransaction


@dataclass
class TransactionRecord:
    """Outcome of LedgerRepository.record_transaction."""

    created: bool
    transaction: XPTransaction | None


@dataclass
class SpendResult:
    success: bool
    new_balance: int


@dataclass
class StreakResult:
    current_streak: int
    used_freeze: bool
    streak_reset: bool
    unchanged: bool
    freezes_available: int


@dataclass
class GamificationStats:
    """Read-only snapshot for display."""

    xp_total: int = 0
    current_level: int = 1
    xp_for_current_level: int = 0
    xp_for_next_level: int = 0
    xp_progress: int = 0
    sparks: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    freezes_available: int = 0
    freezes_used_total: int = 0
    last_activity_date: date | None = None


@dataclass
class UnlockedAchievement:
    id: str
    name: str
    description: str
    icon_name: str
    category: str
    rarity: str
    xp_reward: int
    sparks_reward: int


@dataclass
class AwardXpResult:
    """Everything that changed because of one completion event."""

    success: bool = True
    duplicate: bool = False
    xp_awarded: int = 0
    bonus_xp: int = 0
    sparks_awarded: int = 0
    new_total: int = 0
    previous_level: int = 1
    new_level: int = 1
    leveled_up: bool = False
    xp_for_current_level: int = 0
    xp_for_next_level: int = 0
    current_streak: int = 0
    used_freeze: bool = False
    unlocked_achievements: list[UnlockedAchievement] = field(default_factory=list)
    error: str | None = None
    retryable: bool = False


@dataclass
class PurchaseFreezeResult:
    success: bool
    new_freeze_count: int
    new_sparks_balance: int
    error: str | None = None
    retryable: bool = False


@dataclass
class CourseProgressStats:
    course_id: str
    total_xp_earned: int = 0
    articles_completed: int = 0
    flashcards_completed: int = 0
    mindmaps_completed: int = 0
    mcq_completed: int = 0
    true_false_completed: int = 0
    fill_up_completed: int = 0
    total_quiz_correct: int = 0
    completed_content_ids: list[str] = field(default_factory=list)


@dataclass
class ResetProgressResult:
    success: bool
    items_reset: int = 0
    xp_total: int = 0
    sparks: int = 0
    error: str | None = None
    retryable: bool = False
