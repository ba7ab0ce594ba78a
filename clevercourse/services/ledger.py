"""Storage primitives for the gamification ledger and per-user counters.

Every mutation here is safe under concurrent requests for the same user:
counters move with in-database increments, streak and reset logic lock the
user's row, and the ledger's unique (user_id, content_id, reason) index is
the single source of truth for "already awarded".

Nothing in this module commits. Callers own the unit of work.
"""

import logging
import uuid
from datetime import date

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clevercourse.models.gamification import (
    CompletedContent,
    UserAchievement,
    UserGamification,
    XpReason,
    XPTransaction,
)
from clevercourse.services.errors import InsufficientSparksError, MaxFreezesReachedError
from clevercourse.services.leveling import level_for_xp, xp_for_level, xp_for_next_level, xp_progress
from clevercourse.services.results import (
    CourseProgressStats,
    GamificationStats,
    SpendResult,
    StreakResult,
    TransactionRecord,
)
from clevercourse.services.rewards import (
    CONTENT_REASONS,
    FREEZE_COST,
    MAX_FREEZES,
    QUIZ_REASONS,
    STARTING_FREEZES,
)
from clevercourse.services.streaks import advance_streak

logger = logging.getLogger(__name__)


# Ledger-derived metrics used by achievement conditions
METRIC_REASONS = {
    "articles_completed": (XpReason.ARTICLE_COMPLETE,),
    "flashcards_reviewed": (XpReason.FLASHCARD_REVIEWED,),
    "mindmaps_reviewed": (XpReason.MINDMAP_REVIEWED,),
    "quizzes_correct": tuple(QUIZ_REASONS),
    "sections_completed": (XpReason.SECTION_COMPLETE,),
    "courses_completed": (XpReason.COURSE_COMPLETE,),
    "perfect_quizzes": (XpReason.PERFECT_QUIZ,),
    "daily_logins": (XpReason.DAILY_LOGIN,),
}

_NO_SYNC = {"synchronize_session": False}


class LedgerRepository:
    """Reads and writes one user's gamification state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # USER RECORD
    # =========================================================================

    async def get_record(self, user_id: int, for_update: bool = False) -> UserGamification | None:
        """Load the counters row, always refreshing from the database."""
        query = (
            select(UserGamification)
            .where(UserGamification.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: int) -> UserGamification:
        """Return the user's counters row, creating a zeroed one if missing.

        Two first requests may race to create the row; the loser's insert
        hits the unique user_id index and it re-reads the winner's row.
        """
        record = await self.get_record(user_id)
        if record:
            return record

        try:
            async with self.db.begin_nested():
                record = UserGamification(
                    user_id=user_id,
                    xp_total=0,
                    current_level=1,
                    sparks=0,
                    current_streak=0,
                    longest_streak=0,
                    freezes_available=STARTING_FREEZES,
                    freezes_used_total=0,
                )
                self.db.add(record)
        except IntegrityError:
            logger.debug(f"Gamification record for user {user_id} created concurrently")
            record = await self.get_record(user_id)
        return record

    # =========================================================================
    # LEDGER
    # =========================================================================

    async def record_transaction(
        self,
        user_id: int,
        content_id: str,
        reason: XpReason,
        amount: int = 0,
        bonus_amount: int = 0,
        sparks_amount: int = 0,
        course_id: str | None = None,
        description: str | None = None,
    ) -> TransactionRecord:
        """Insert a ledger row unless (user_id, content_id, reason) exists.

        The ledger row and, for content reasons, the completed-content marker
        are written in one savepoint. A duplicate leaves nothing behind and
        returns ``created=False`` with the existing row.
        """
        transaction = XPTransaction(
            user_id=user_id,
            amount=amount,
            bonus_amount=bonus_amount,
            sparks_amount=sparks_amount,
            reason=reason.value,
            content_id=content_id,
            course_id=course_id,
            description=description,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(transaction)
                await self.db.flush()
                if reason in CONTENT_REASONS:
                    await self._mark_completed(user_id, content_id, reason, course_id)
        except IntegrityError:
            existing = await self.db.execute(
                select(XPTransaction).where(
                    XPTransaction.user_id == user_id,
                    XPTransaction.content_id == content_id,
                    XPTransaction.reason == reason.value,
                )
            )
            return TransactionRecord(created=False, transaction=existing.scalar_one_or_none())

        return TransactionRecord(created=True, transaction=transaction)

    async def _mark_completed(
        self,
        user_id: int,
        content_id: str,
        reason: XpReason,
        course_id: str | None,
    ) -> None:
        # The same item can be completed under several reasons; first one wins
        try:
            async with self.db.begin_nested():
                self.db.add(
                    CompletedContent(
                        user_id=user_id,
                        content_id=content_id,
                        content_type=reason.value,
                        course_id=course_id,
                    )
                )
        except IntegrityError:
            pass

    async def recent_transactions(self, user_id: int, limit: int = 20) -> list[XPTransaction]:
        result = await self.db.execute(
            select(XPTransaction)
            .where(XPTransaction.user_id == user_id)
            .order_by(XPTransaction.created_at.desc(), XPTransaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # =========================================================================
    # COUNTERS
    # =========================================================================

    async def add_xp(self, user_id: int, amount: int) -> int:
        """Atomically add XP and refresh the cached level. Returns the new total."""
        await self.db.execute(
            update(UserGamification)
            .where(UserGamification.user_id == user_id)
            .values(xp_total=UserGamification.xp_total + amount)
            .execution_options(**_NO_SYNC)
        )
        new_total = await self.db.scalar(
            select(UserGamification.xp_total).where(UserGamification.user_id == user_id)
        )
        await self.db.execute(
            update(UserGamification)
            .where(UserGamification.user_id == user_id)
            .values(current_level=level_for_xp(new_total))
            .execution_options(**_NO_SYNC)
        )
        return new_total

    async def add_sparks(self, user_id: int, amount: int) -> int:
        """Atomically add Sparks. Returns the new balance."""
        await self.db.execute(
            update(UserGamification)
            .where(UserGamification.user_id == user_id)
            .values(sparks=UserGamification.sparks + amount)
            .execution_options(**_NO_SYNC)
        )
        return await self.db.scalar(
            select(UserGamification.sparks).where(UserGamification.user_id == user_id)
        )

    async def spend_sparks(self, user_id: int, amount: int) -> SpendResult:
        """Deduct Sparks only if the balance covers it, in a single statement."""
        result = await self.db.execute(
            update(UserGamification)
            .where(
                UserGamification.user_id == user_id,
                UserGamification.sparks >= amount,
            )
            .values(sparks=UserGamification.sparks - amount)
            .execution_options(**_NO_SYNC)
        )
        balance = await self.db.scalar(
            select(UserGamification.sparks).where(UserGamification.user_id == user_id)
        )
        return SpendResult(success=result.rowcount == 1, new_balance=balance or 0)

    # =========================================================================
    # STREAKS & FREEZES
    # =========================================================================

    async def update_streak(self, user_id: int, activity_date: date) -> StreakResult:
        """Register activity on ``activity_date`` under a row lock."""
        await self.get_or_create(user_id)
        record = await self.get_record(user_id, for_update=True)

        outcome = advance_streak(
            record.last_activity_date,
            record.current_streak,
            record.freezes_available,
            activity_date,
        )
        if not outcome.unchanged:
            record.current_streak = outcome.current_streak
            record.last_activity_date = outcome.last_activity_date
            record.freezes_available = outcome.freezes_available
            record.longest_streak = max(record.longest_streak, outcome.current_streak)
            if outcome.used_freeze:
                record.freezes_used_total += 1
                logger.info(f"User {user_id} streak saved by a freeze at {outcome.current_streak} days")
            await self.db.flush()

        return StreakResult(
            current_streak=outcome.current_streak,
            used_freeze=outcome.used_freeze,
            streak_reset=outcome.streak_reset,
            unchanged=outcome.unchanged,
            freezes_available=outcome.freezes_available,
        )

    async def purchase_freeze(
        self,
        user_id: int,
        cost: int = FREEZE_COST,
        max_freezes: int = MAX_FREEZES,
    ) -> UserGamification:
        """Trade Sparks for one streak freeze.

        The Sparks deduction and the freeze increment happen in one guarded
        UPDATE, so either both apply or neither does.

        Raises:
            MaxFreezesReachedError: already holding ``max_freezes``.
            InsufficientSparksError: balance below ``cost``.
        """
        await self.get_or_create(user_id)
        result = await self.db.execute(
            update(UserGamification)
            .where(
                UserGamification.user_id == user_id,
                UserGamification.sparks >= cost,
                UserGamification.freezes_available < max_freezes,
            )
            .values(
                sparks=UserGamification.sparks - cost,
                freezes_available=UserGamification.freezes_available + 1,
            )
            .execution_options(**_NO_SYNC)
        )
        record = await self.get_record(user_id)

        if result.rowcount != 1:
            if record.freezes_available >= max_freezes:
                raise MaxFreezesReachedError(max_freezes)
            raise InsufficientSparksError(record.sparks, cost)

        await self.record_transaction(
            user_id,
            content_id=f"freeze-{uuid.uuid4().hex}",
            reason=XpReason.FREEZE_PURCHASE,
            sparks_amount=-cost,
            description="Streak freeze purchase",
        )
        return record

    # =========================================================================
    # READS
    # =========================================================================

    async def get_stats(self, user_id: int) -> GamificationStats:
        """Display snapshot. Users with no record get zeroed defaults."""
        record = await self.get_record(user_id)
        if not record:
            return GamificationStats(
                xp_for_next_level=xp_for_next_level(1),
                freezes_available=STARTING_FREEZES,
            )

        level = level_for_xp(record.xp_total)
        return GamificationStats(
            xp_total=record.xp_total,
            current_level=level,
            xp_for_current_level=xp_for_level(level),
            xp_for_next_level=xp_for_next_level(level),
            xp_progress=xp_progress(record.xp_total),
            sparks=record.sparks,
            current_streak=record.current_streak,
            longest_streak=record.longest_streak,
            freezes_available=record.freezes_available,
            freezes_used_total=record.freezes_used_total,
            last_activity_date=record.last_activity_date,
        )

    async def get_metrics(self, user_id: int) -> dict[str, float]:
        """Flat metric snapshot that achievement thresholds compare against."""
        result = await self.db.execute(
            select(XPTransaction.reason, func.count(XPTransaction.id))
            .where(XPTransaction.user_id == user_id)
            .group_by(XPTransaction.reason)
        )
        counts = {reason: count for reason, count in result.all()}

        metrics: dict[str, float] = {
            name: sum(counts.get(reason.value, 0) for reason in reasons)
            for name, reasons in METRIC_REASONS.items()
        }

        sparks_earned = await self.db.scalar(
            select(func.coalesce(func.sum(XPTransaction.sparks_amount), 0)).where(
                XPTransaction.user_id == user_id,
                XPTransaction.sparks_amount > 0,
            )
        )
        achievements_unlocked = await self.db.scalar(
            select(func.count(UserAchievement.id)).where(UserAchievement.user_id == user_id)
        )

        record = await self.get_record(user_id)
        xp_total = record.xp_total if record else 0
        metrics.update(
            {
                "xp_total": xp_total,
                "level": level_for_xp(xp_total),
                "sparks_earned": sparks_earned or 0,
                "current_streak": record.current_streak if record else 0,
                "longest_streak": record.longest_streak if record else 0,
                "freezes_used_total": record.freezes_used_total if record else 0,
                "achievements_unlocked": achievements_unlocked or 0,
            }
        )
        return metrics

    # =========================================================================
    # COURSES
    # =========================================================================

    async def get_course_progress(self, user_id: int, course_id: str) -> CourseProgressStats:
        result = await self.db.execute(
            select(
                XPTransaction.reason,
                func.count(XPTransaction.id),
                func.coalesce(func.sum(XPTransaction.amount + XPTransaction.bonus_amount), 0),
            )
            .where(
                XPTransaction.user_id == user_id,
                XPTransaction.course_id == course_id,
            )
            .group_by(XPTransaction.reason)
        )
        counts: dict[str, int] = {}
        total_xp = 0
        for reason, count, xp in result.all():
            counts[reason] = count
            total_xp += xp

        content_ids = await self.db.execute(
            select(CompletedContent.content_id)
            .where(
                CompletedContent.user_id == user_id,
                CompletedContent.course_id == course_id,
            )
            .order_by(CompletedContent.completed_at, CompletedContent.id)
        )

        return CourseProgressStats(
            course_id=course_id,
            total_xp_earned=total_xp,
            articles_completed=counts.get(XpReason.ARTICLE_COMPLETE.value, 0),
            flashcards_completed=counts.get(XpReason.FLASHCARD_REVIEWED.value, 0),
            mindmaps_completed=counts.get(XpReason.MINDMAP_REVIEWED.value, 0),
            mcq_completed=counts.get(XpReason.MCQ_CORRECT.value, 0),
            true_false_completed=counts.get(XpReason.TF_CORRECT.value, 0),
            fill_up_completed=counts.get(XpReason.FILL_CORRECT.value, 0),
            total_quiz_correct=sum(counts.get(reason.value, 0) for reason in QUIZ_REASONS),
            completed_content_ids=list(content_ids.scalars().all()),
        )

    async def is_content_completed(
        self,
        user_id: int,
        content_id: str,
        content_type: XpReason | None = None,
    ) -> bool:
        """Whether a completion marker exists, optionally of one content type."""
        query = select(CompletedContent.id).where(
            CompletedContent.user_id == user_id,
            CompletedContent.content_id == content_id,
        )
        if content_type is not None:
            query = query.where(CompletedContent.content_type == content_type.value)
        return await self.db.scalar(query.limit(1)) is not None

    async def completed_content_ids(
        self,
        user_id: int,
        course_id: str,
        content_type: XpReason | None = None,
    ) -> list[str]:
        """Content ids completed in a course, oldest first."""
        query = select(CompletedContent.content_id).where(
            CompletedContent.user_id == user_id,
            CompletedContent.course_id == course_id,
        )
        if content_type is not None:
            query = query.where(CompletedContent.content_type == content_type.value)
        result = await self.db.execute(
            query.order_by(CompletedContent.completed_at, CompletedContent.id)
        )
        return list(result.scalars().all())

    async def reset_course(self, user_id: int, course_id: str) -> tuple[int, int, int]:
        """Drop a course's ledger rows and markers, then recompute totals.

        Rewards triggered by the course's events (achievement unlocks and
        level-ups) carry its course_id and go with it. Achievements unlocked
        that way are re-locked so they can be earned again. Totals are
        re-derived from the remaining ledger so XP and Sparks stay equal to
        what the surviving rows justify. Streaks are left alone.

        Returns:
            (completion markers removed, new xp_total, new sparks balance)
        """
        await self.get_or_create(user_id)
        await self.get_record(user_id, for_update=True)

        unlocked_here = select(XPTransaction.content_id).where(
            XPTransaction.user_id == user_id,
            XPTransaction.course_id == course_id,
            XPTransaction.reason == XpReason.ACHIEVEMENT_UNLOCKED.value,
        )
        relocked = await self.db.execute(
            delete(UserAchievement)
            .where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id.in_(unlocked_here),
            )
            .execution_options(**_NO_SYNC)
        )
        entries = await self.db.execute(
            delete(XPTransaction)
            .where(
                XPTransaction.user_id == user_id,
                XPTransaction.course_id == course_id,
            )
            .execution_options(**_NO_SYNC)
        )
        removed = await self.db.execute(
            delete(CompletedContent)
            .where(
                CompletedContent.user_id == user_id,
                CompletedContent.course_id == course_id,
            )
            .execution_options(**_NO_SYNC)
        )

        totals = await self.db.execute(
            select(
                func.coalesce(func.sum(XPTransaction.amount + XPTransaction.bonus_amount), 0),
                func.coalesce(func.sum(XPTransaction.sparks_amount), 0),
            ).where(XPTransaction.user_id == user_id)
        )
        xp_total, sparks_sum = totals.one()
        sparks = max(0, sparks_sum)

        await self.db.execute(
            update(UserGamification)
            .where(UserGamification.user_id == user_id)
            .values(
                xp_total=xp_total,
                current_level=level_for_xp(xp_total),
                sparks=sparks,
            )
            .execution_options(**_NO_SYNC)
        )
        logger.info(
            f"Reset course {course_id} for user {user_id}: "
            f"{removed.rowcount} items, {entries.rowcount} entries and "
            f"{relocked.rowcount} achievements removed, xp_total={xp_total}, sparks={sparks}"
        )
        return removed.rowcount, xp_total, sparks
