"""Reward policy - how much XP and how many Sparks each action is worth."""

import random
from dataclasses import dataclass

from clevercourse.models.gamification import XpReason
from clevercourse.services.errors import InvalidRewardReasonError


# =============================================================================
# CONSTANTS
# =============================================================================

# Base XP per reason. Quizzes > mind maps > flashcards, reflecting effort.
XP_REWARDS = {
    XpReason.ARTICLE_COMPLETE: 15,
    XpReason.FLASHCARD_REVIEWED: 5,
    XpReason.MINDMAP_REVIEWED: 10,
    XpReason.MCQ_CORRECT: 20,
    XpReason.TF_CORRECT: 20,
    XpReason.FILL_CORRECT: 20,
    XpReason.SECTION_COMPLETE: 100,
    XpReason.COURSE_COMPLETE: 500,
    XpReason.PERFECT_QUIZ: 75,
    XpReason.DAILY_LOGIN: 10,
}

SPARKS_REWARDS = {
    XpReason.MCQ_CORRECT: 1,
    XpReason.TF_CORRECT: 1,
    XpReason.FILL_CORRECT: 1,
    XpReason.SECTION_COMPLETE: 5,
    XpReason.COURSE_COMPLETE: 25,
    XpReason.PERFECT_QUIZ: 10,
}

# Reasons that mark a piece of course content as completed
CONTENT_REASONS = frozenset({
    XpReason.ARTICLE_COMPLETE,
    XpReason.FLASHCARD_REVIEWED,
    XpReason.MINDMAP_REVIEWED,
    XpReason.MCQ_CORRECT,
    XpReason.TF_CORRECT,
    XpReason.FILL_CORRECT,
    XpReason.SECTION_COMPLETE,
    XpReason.COURSE_COMPLETE,
    XpReason.PERFECT_QUIZ,
})

QUIZ_REASONS = frozenset({
    XpReason.MCQ_CORRECT,
    XpReason.TF_CORRECT,
    XpReason.FILL_CORRECT,
})

# Variable reward schedule
BONUS_CHANCE = 0.15
BONUS_MULTIPLIER_MIN = 1.2
BONUS_MULTIPLIER_MAX = 2.0

# Sparks economy
SPARKS_PER_LEVEL = 10
STREAK_MILESTONE_SPARKS = {7: 20, 30: 100}
FREEZE_COST = 50
MAX_FREEZES = 5
STARTING_FREEZES = 1


@dataclass(frozen=True)
class Reward:
    """Fixed reward for a reason, before any bonus roll."""

    base_amount: int
    sparks_amount: int


def parse_reason(reason: str | XpReason) -> XpReason:
    """Validate a client-supplied reason. Internal reasons are rejected."""
    try:
        parsed = XpReason(reason)
    except ValueError:
        raise InvalidRewardReasonError(f"Unknown reason: {reason!r}") from None
    if parsed not in XP_REWARDS:
        raise InvalidRewardReasonError(f"Reason {parsed.value!r} cannot be awarded directly")
    return parsed


def compute_reward(reason: XpReason) -> Reward:
    """Look up the fixed XP and Sparks for a reason."""
    if reason not in XP_REWARDS:
        raise InvalidRewardReasonError(f"No reward defined for {reason!r}")
    return Reward(
        base_amount=XP_REWARDS[reason],
        sparks_amount=SPARKS_REWARDS.get(reason, 0),
    )


class BonusRoller:
    """Rolls the variable XP bonus.

    The random source is injectable so tests can seed or stub it; every
    call draws fresh numbers.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        chance: float = BONUS_CHANCE,
        multiplier_min: float = BONUS_MULTIPLIER_MIN,
        multiplier_max: float = BONUS_MULTIPLIER_MAX,
    ):
        self.rng = rng or random.Random()
        self.chance = chance
        self.multiplier_min = multiplier_min
        self.multiplier_max = multiplier_max

    def roll(self, base_amount: int) -> int:
        """Return the bonus XP for one event (0 most of the time)."""
        if base_amount <= 0 or self.rng.random() >= self.chance:
            return 0
        multiplier = self.rng.uniform(self.multiplier_min, self.multiplier_max)
        return round(base_amount * multiplier)


def roll_bonus(base_amount: int, rng: random.Random | None = None) -> int:
    """Convenience wrapper around BonusRoller with default odds."""
    return BonusRoller(rng).roll(base_amount)


def streak_milestone_sparks(streak: int) -> int:
    """Sparks paid when a streak reaches exactly a milestone length."""
    return STREAK_MILESTONE_SPARKS.get(streak, 0)
