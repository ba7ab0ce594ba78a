"""Gamification service - the single entry point for XP, Sparks, streaks and achievements.

Each public write method is one unit of work: it either commits everything
the event caused or rolls back and returns a failure result that is safe to
retry. Domain and storage errors never escape as exceptions.
"""

import logging
from datetime import date
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clevercourse.core.config import settings
from clevercourse.models.gamification import XpReason
from clevercourse.services.achievements import AchievementService
from clevercourse.services.errors import GamificationError, InvalidRewardReasonError
from clevercourse.services.ledger import LedgerRepository
from clevercourse.services.leveling import level_for_xp, xp_for_level, xp_for_next_level
from clevercourse.services.results import (
    AwardXpResult,
    CourseProgressStats,
    GamificationStats,
    PurchaseFreezeResult,
    ResetProgressResult,
)
from clevercourse.services.rewards import (
    SPARKS_PER_LEVEL,
    BonusRoller,
    compute_reward,
    parse_reason,
    streak_milestone_sparks,
)
from clevercourse.services.streaks import today_in

logger = logging.getLogger(__name__)

STORAGE_FAILURE = "storage_failure"


def _default_today() -> date:
    return today_in(settings.streak_timezone)


class GamificationService:
    """Service for awarding and reading a user's gamification state."""

    def __init__(
        self,
        db: AsyncSession,
        bonus_roller: BonusRoller | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.db = db
        self.ledger = LedgerRepository(db)
        self.achievements = AchievementService(db)
        self.bonus_roller = bonus_roller or BonusRoller()
        self.today = today or _default_today

    # =========================================================================
    # AWARDING
    # =========================================================================

    async def award_xp(
        self,
        user_id: int,
        content_id: str,
        reason: str | XpReason,
        course_id: str | None = None,
    ) -> AwardXpResult:
        """
        Award XP for a completion event.

        Duplicate events (same user, content and reason) return a zero-effect
        result with ``duplicate=True``.
        """
        try:
            parsed = parse_reason(reason)
        except InvalidRewardReasonError as e:
            logger.warning(f"Rejected award for user {user_id}: {e}")
            return AwardXpResult(success=False, error=e.code)

        try:
            result = await self._award(user_id, content_id, parsed, course_id)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to award {parsed.value} XP to user {user_id} for {content_id}")
            return AwardXpResult(success=False, error=STORAGE_FAILURE, retryable=True)

        if result.duplicate:
            logger.debug(f"Duplicate {parsed.value} event for user {user_id} on {content_id}")
        else:
            logger.info(
                f"Awarded {result.xp_awarded}+{result.bonus_xp} XP to user {user_id} "
                f"for {parsed.value} (level {result.previous_level} -> {result.new_level})"
            )
        return result

    async def _award(
        self,
        user_id: int,
        content_id: str,
        reason: XpReason,
        course_id: str | None,
    ) -> AwardXpResult:
        await self.ledger.get_or_create(user_id)

        reward = compute_reward(reason)
        bonus = self.bonus_roller.roll(reward.base_amount)

        record = await self.ledger.record_transaction(
            user_id,
            content_id,
            reason,
            amount=reward.base_amount,
            bonus_amount=bonus,
            sparks_amount=reward.sparks_amount,
            course_id=course_id,
        )
        if not record.created:
            return await self._zero_effect_result(user_id)

        gained = reward.base_amount + bonus
        new_total = await self.ledger.add_xp(user_id, gained)
        previous_level = level_for_xp(new_total - gained)
        sparks_awarded = reward.sparks_amount
        if reward.sparks_amount:
            await self.ledger.add_sparks(user_id, reward.sparks_amount)

        event_level = level_for_xp(new_total)
        sparks_awarded += await self._reward_level_ups(user_id, previous_level, event_level, course_id)

        activity_date = self.today()
        streak = await self.ledger.update_streak(user_id, activity_date)
        if not streak.unchanged:
            sparks_awarded += await self._reward_streak_milestone(
                user_id, streak.current_streak, activity_date
            )

        # Single evaluation pass; achievement rewards never re-trigger evaluation
        metrics = await self.ledger.get_metrics(user_id)
        unlocked = await self.achievements.evaluate_achievements(user_id, metrics)
        for achievement in unlocked:
            granted = await self.ledger.record_transaction(
                user_id,
                achievement.id,
                XpReason.ACHIEVEMENT_UNLOCKED,
                amount=achievement.xp_reward,
                sparks_amount=achievement.sparks_reward,
                course_id=course_id,
                description=f"Achievement unlocked: {achievement.name}",
            )
            if not granted.created:
                continue
            if achievement.xp_reward:
                new_total = await self.ledger.add_xp(user_id, achievement.xp_reward)
            if achievement.sparks_reward:
                await self.ledger.add_sparks(user_id, achievement.sparks_reward)
                sparks_awarded += achievement.sparks_reward

        new_level = level_for_xp(new_total)
        sparks_awarded += await self._reward_level_ups(user_id, event_level, new_level, course_id)

        return AwardXpResult(
            success=True,
            xp_awarded=reward.base_amount,
            bonus_xp=bonus,
            sparks_awarded=sparks_awarded,
            new_total=new_total,
            previous_level=previous_level,
            new_level=new_level,
            leveled_up=new_level > previous_level,
            xp_for_current_level=xp_for_level(new_level),
            xp_for_next_level=xp_for_next_level(new_level),
            current_streak=streak.current_streak,
            used_freeze=streak.used_freeze,
            unlocked_achievements=unlocked,
        )

    async def _zero_effect_result(self, user_id: int) -> AwardXpResult:
        stats = await self.ledger.get_stats(user_id)
        return AwardXpResult(
            success=True,
            duplicate=True,
            new_total=stats.xp_total,
            previous_level=stats.current_level,
            new_level=stats.current_level,
            xp_for_current_level=stats.xp_for_current_level,
            xp_for_next_level=stats.xp_for_next_level,
            current_streak=stats.current_streak,
        )

    async def _reward_level_ups(
        self,
        user_id: int,
        from_level: int,
        to_level: int,
        course_id: str | None,
    ) -> int:
        """Pay SPARKS_PER_LEVEL for every level reached for the first time.

        The reward row carries the triggering event's course so a course
        reset takes it back.
        """
        paid = 0
        for level in range(from_level + 1, to_level + 1):
            record = await self.ledger.record_transaction(
                user_id,
                f"level-{level}",
                XpReason.LEVEL_UP,
                sparks_amount=SPARKS_PER_LEVEL,
                course_id=course_id,
                description=f"Reached level {level}",
            )
            if record.created:
                await self.ledger.add_sparks(user_id, SPARKS_PER_LEVEL)
                paid += SPARKS_PER_LEVEL
        return paid

    async def _reward_streak_milestone(self, user_id: int, streak: int, activity_date: date) -> int:
        sparks = streak_milestone_sparks(streak)
        if not sparks:
            return 0
        record = await self.ledger.record_transaction(
            user_id,
            f"streak-{streak}-{activity_date.isoformat()}",
            XpReason.STREAK_MILESTONE,
            sparks_amount=sparks,
            description=f"{streak}-day streak",
        )
        if not record.created:
            return 0
        await self.ledger.add_sparks(user_id, sparks)
        return sparks

    # =========================================================================
    # SPARKS & FREEZES
    # =========================================================================

    async def purchase_streak_freeze(self, user_id: int) -> PurchaseFreezeResult:
        """Spend FREEZE_COST Sparks on one streak freeze."""
        try:
            record = await self.ledger.purchase_freeze(user_id)
            await self.db.commit()
        except GamificationError as e:
            await self.db.rollback()
            stats = await self.ledger.get_stats(user_id)
            return PurchaseFreezeResult(
                success=False,
                new_freeze_count=stats.freezes_available,
                new_sparks_balance=stats.sparks,
                error=e.code,
            )
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to purchase streak freeze for user {user_id}")
            return PurchaseFreezeResult(
                success=False,
                new_freeze_count=0,
                new_sparks_balance=0,
                error=STORAGE_FAILURE,
                retryable=True,
            )

        logger.info(f"User {user_id} bought a streak freeze ({record.freezes_available} held)")
        return PurchaseFreezeResult(
            success=True,
            new_freeze_count=record.freezes_available,
            new_sparks_balance=record.sparks,
        )

    # =========================================================================
    # READS
    # =========================================================================

    async def get_gamification_stats(self, user_id: int) -> GamificationStats:
        return await self.ledger.get_stats(user_id)

    async def get_xp_history(self, user_id: int, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent ledger entries, newest first."""
        transactions = await self.ledger.recent_transactions(user_id, limit=limit)
        return [
            {
                "id": t.id,
                "amount": t.amount,
                "bonus_amount": t.bonus_amount,
                "total_xp": t.total_xp,
                "sparks_amount": t.sparks_amount,
                "reason": t.reason,
                "content_id": t.content_id,
                "course_id": t.course_id,
                "description": t.description,
                "created_at": t.created_at,
            }
            for t in transactions
        ]

    async def get_achievements(self, user_id: int, category: str | None = None) -> list[dict[str, Any]]:
        metrics = await self.ledger.get_metrics(user_id)
        return await self.achievements.get_achievements(user_id, metrics, category=category)

    async def get_unseen_achievements(self, user_id: int) -> list[dict[str, Any]]:
        return await self.achievements.get_unseen_achievements(user_id)

    async def mark_achievements_seen(self, user_id: int, achievement_ids: list[str] | None = None) -> int:
        count = await self.achievements.mark_achievements_seen(user_id, achievement_ids)
        await self.db.commit()
        return count

    # =========================================================================
    # COURSES
    # =========================================================================

    async def get_course_progress_stats(self, course_id: str, user_id: int) -> CourseProgressStats:
        return await self.ledger.get_course_progress(user_id, course_id)

    async def is_content_completed(
        self,
        user_id: int,
        content_id: str,
        content_type: XpReason | None = None,
    ) -> bool:
        return await self.ledger.is_content_completed(user_id, content_id, content_type)

    async def get_completed_content_ids(
        self,
        course_id: str,
        user_id: int,
        content_type: XpReason | None = None,
    ) -> list[str]:
        return await self.ledger.completed_content_ids(user_id, course_id, content_type)

    async def reset_course_progress(self, course_id: str, user_id: int) -> ResetProgressResult:
        """Remove a course's ledger entries and markers and recompute totals.

        ``items_reset`` is the number of completed items cleared.
        """
        try:
            items_reset, xp_total, sparks = await self.ledger.reset_course(user_id, course_id)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to reset course {course_id} for user {user_id}")
            return ResetProgressResult(success=False, error=STORAGE_FAILURE, retryable=True)

        return ResetProgressResult(
            success=True,
            items_reset=items_reset,
            xp_total=xp_total,
            sparks=sparks,
        )
