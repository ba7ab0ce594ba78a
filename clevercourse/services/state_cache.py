"""Client-side view of a user's gamification state.

The cache is fed only from server responses (``GamificationStats``,
``AwardXpResult``, ``PurchaseFreezeResult``) and queues the UI moments each
award produces: XP pop-ups, the level-up celebration, achievement toasts and
the "a freeze saved your streak" notice. Create one per signed-in user and
pass it to whatever renders those moments; there is no module-level instance.
"""

from collections import deque
from dataclasses import dataclass, replace

from clevercourse.services.leveling import xp_progress
from clevercourse.services.results import (
    AwardXpResult,
    GamificationStats,
    PurchaseFreezeResult,
    UnlockedAchievement,
)


@dataclass(frozen=True)
class XpGain:
    amount: int
    bonus: int

    @property
    def total(self) -> int:
        return self.amount + self.bonus


class GamificationStateCache:
    def __init__(self, stats: GamificationStats | None = None):
        self.stats = stats or GamificationStats()
        self.pending_level_up: int | None = None
        self.freeze_used_notice = False
        self._xp_gains: deque[XpGain] = deque()
        self._achievements: deque[UnlockedAchievement] = deque()

    def apply_stats(self, stats: GamificationStats) -> None:
        """Replace the snapshot with a fresh one from the server."""
        self.stats = stats

    def apply_award(self, result: AwardXpResult) -> bool:
        """Fold an award into the cache. Returns False when nothing changed."""
        if not result.success or result.duplicate:
            return False

        freezes = self.stats.freezes_available
        if result.used_freeze:
            freezes = max(0, freezes - 1)
            self.freeze_used_notice = True

        self.stats = replace(
            self.stats,
            xp_total=result.new_total,
            current_level=result.new_level,
            xp_for_current_level=result.xp_for_current_level,
            xp_for_next_level=result.xp_for_next_level,
            xp_progress=xp_progress(result.new_total),
            sparks=self.stats.sparks + result.sparks_awarded,
            current_streak=result.current_streak,
            longest_streak=max(self.stats.longest_streak, result.current_streak),
            freezes_available=freezes,
            freezes_used_total=self.stats.freezes_used_total + (1 if result.used_freeze else 0),
        )

        self._xp_gains.append(XpGain(result.xp_awarded, result.bonus_xp))
        if result.leveled_up:
            self.pending_level_up = result.new_level
        self._achievements.extend(result.unlocked_achievements)
        return True

    def apply_freeze_purchase(self, result: PurchaseFreezeResult) -> None:
        if result.success:
            self.stats = replace(
                self.stats,
                freezes_available=result.new_freeze_count,
                sparks=result.new_sparks_balance,
            )

    # Queues drained by the UI

    def next_xp_gain(self) -> XpGain | None:
        return self._xp_gains.popleft() if self._xp_gains else None

    def next_achievement(self) -> UnlockedAchievement | None:
        return self._achievements.popleft() if self._achievements else None

    @property
    def pending_achievements(self) -> int:
        return len(self._achievements)

    def dismiss_level_up(self) -> int | None:
        level, self.pending_level_up = self.pending_level_up, None
        return level

    def dismiss_freeze_notice(self) -> None:
        self.freeze_used_notice = False
