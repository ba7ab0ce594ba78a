"""Tests for LedgerRepository against a real SQLite database."""
from datetime import date

import pytest
from sqlalchemy import func, select

from clevercourse.models.gamification import (
    CompletedContent,
    UserAchievement,
    UserGamification,
    XpReason,
    XPTransaction,
)
from clevercourse.services.errors import InsufficientSparksError, MaxFreezesReachedError
from clevercourse.services.ledger import LedgerRepository


async def count(db, model, **filters):
    query = select(func.count()).select_from(model)
    for key, value in filters.items():
        query = query.where(getattr(model, key) == value)
    return await db.scalar(query)


# =============================================================================
# USER RECORD
# =============================================================================

class TestGetOrCreate:

    async def test_creates_zeroed_record(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        record = await repo.get_or_create(user_id)

        assert record.xp_total == 0
        assert record.current_level == 1
        assert record.sparks == 0
        assert record.current_streak == 0
        assert record.freezes_available == 1
        assert record.last_activity_date is None

    async def test_returns_existing_record(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        first = await repo.get_or_create(user_id)
        second = await repo.get_or_create(user_id)
        assert first.id == second.id
        assert await count(db_session, UserGamification, user_id=user_id) == 1


# =============================================================================
# LEDGER
# =============================================================================

class TestRecordTransaction:

    async def test_first_insert_is_created(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        result = await repo.record_transaction(
            user_id, "article-1", XpReason.ARTICLE_COMPLETE, amount=15, course_id="course-a"
        )

        assert result.created
        assert result.transaction.amount == 15
        assert result.transaction.course_id == "course-a"
        assert await count(db_session, CompletedContent, user_id=user_id, content_id="article-1") == 1

    async def test_duplicate_is_a_no_op(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.record_transaction(user_id, "article-1", XpReason.ARTICLE_COMPLETE, amount=15)
        again = await repo.record_transaction(user_id, "article-1", XpReason.ARTICLE_COMPLETE, amount=99)

        assert not again.created
        assert again.transaction.amount == 15
        assert await count(db_session, XPTransaction, user_id=user_id) == 1
        assert await count(db_session, CompletedContent, user_id=user_id) == 1

    async def test_duplicate_across_sessions(self, session_factory, user_id):
        async with session_factory() as first:
            await LedgerRepository(first).record_transaction(user_id, "q-1", XpReason.MCQ_CORRECT, amount=20)
            await first.commit()

        async with session_factory() as second:
            result = await LedgerRepository(second).record_transaction(
                user_id, "q-1", XpReason.MCQ_CORRECT, amount=20
            )
            assert not result.created

    async def test_same_content_different_reason(self, db_session, user_id):
        """Both ledger rows are kept; the content is marked complete once."""
        repo = LedgerRepository(db_session)
        await repo.record_transaction(user_id, "card-7", XpReason.FLASHCARD_REVIEWED, amount=5)
        other = await repo.record_transaction(user_id, "card-7", XpReason.MINDMAP_REVIEWED, amount=10)

        assert other.created
        assert await count(db_session, XPTransaction, user_id=user_id) == 2
        marker = await db_session.scalar(select(CompletedContent).where(CompletedContent.user_id == user_id))
        assert marker.content_type == XpReason.FLASHCARD_REVIEWED.value

    async def test_engine_reasons_do_not_mark_content(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.record_transaction(user_id, "level-2", XpReason.LEVEL_UP, sparks_amount=10)
        assert await count(db_session, CompletedContent, user_id=user_id) == 0

    async def test_recent_transactions_newest_first(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        for i in range(3):
            await repo.record_transaction(user_id, f"a-{i}", XpReason.ARTICLE_COMPLETE, amount=15)

        recent = await repo.recent_transactions(user_id, limit=2)
        assert [t.content_id for t in recent] == ["a-2", "a-1"]


# =============================================================================
# COUNTERS
# =============================================================================

class TestCounters:

    async def test_add_xp_updates_total_and_level(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.get_or_create(user_id)

        assert await repo.add_xp(user_id, 60) == 60
        assert await repo.add_xp(user_id, 90) == 150

        record = await repo.get_record(user_id)
        assert record.xp_total == 150
        assert record.current_level == 2

    async def test_add_sparks(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.get_or_create(user_id)
        assert await repo.add_sparks(user_id, 5) == 5
        assert await repo.add_sparks(user_id, 20) == 25

    async def test_spend_more_than_balance_fails_without_mutation(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.get_or_create(user_id)
        await repo.add_sparks(user_id, 10)

        result = await repo.spend_sparks(user_id, 11)
        assert not result.success
        assert result.new_balance == 10

    async def test_spend_exact_balance(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.get_or_create(user_id)
        await repo.add_sparks(user_id, 10)

        result = await repo.spend_sparks(user_id, 10)
        assert result.success
        assert result.new_balance == 0


# =============================================================================
# STREAKS & FREEZES
# =============================================================================

class TestUpdateStreak:

    async def test_consecutive_days(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.update_streak(user_id, date(2026, 3, 1))
        result = await repo.update_streak(user_id, date(2026, 3, 2))

        assert result.current_streak == 2
        record = await repo.get_record(user_id)
        assert record.longest_streak == 2
        assert record.last_activity_date == date(2026, 3, 2)

    async def test_freeze_is_consumed_and_counted(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.update_streak(user_id, date(2026, 3, 1))
        result = await repo.update_streak(user_id, date(2026, 3, 3))

        assert result.used_freeze
        assert result.current_streak == 2
        record = await repo.get_record(user_id)
        assert record.freezes_available == 0
        assert record.freezes_used_total == 1

    async def test_reset_keeps_longest_streak(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        for d in (1, 2, 3):
            await repo.update_streak(user_id, date(2026, 3, d))
        result = await repo.update_streak(user_id, date(2026, 3, 10))

        assert result.streak_reset
        record = await repo.get_record(user_id)
        assert record.current_streak == 1
        assert record.longest_streak == 3


class TestPurchaseFreeze:

    async def test_exact_cost_succeeds(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.get_or_create(user_id)
        await repo.add_sparks(user_id, 50)

        record = await repo.purchase_freeze(user_id)

        assert record.sparks == 0
        assert record.freezes_available == 2
        spend = await db_session.scalar(
            select(XPTransaction).where(XPTransaction.reason == XpReason.FREEZE_PURCHASE.value)
        )
        assert spend.sparks_amount == -50

    async def test_one_spark_short_changes_nothing(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.get_or_create(user_id)
        await repo.add_sparks(user_id, 49)

        with pytest.raises(InsufficientSparksError) as exc_info:
            await repo.purchase_freeze(user_id)

        assert exc_info.value.balance == 49
        record = await repo.get_record(user_id)
        assert record.sparks == 49
        assert record.freezes_available == 1
        assert await count(db_session, XPTransaction, user_id=user_id) == 0

    async def test_max_freezes(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        record = await repo.get_or_create(user_id)
        record.freezes_available = 5
        await db_session.flush()
        await repo.add_sparks(user_id, 500)

        with pytest.raises(MaxFreezesReachedError):
            await repo.purchase_freeze(user_id)

        record = await repo.get_record(user_id)
        assert record.sparks == 500


# =============================================================================
# READS
# =============================================================================

class TestReads:

    async def test_stats_for_unknown_user_are_zeroed(self, db_session):
        stats = await LedgerRepository(db_session).get_stats(424242)
        assert stats.xp_total == 0
        assert stats.current_level == 1
        assert stats.xp_for_next_level == 100
        assert stats.freezes_available == 1

    async def test_stats_read_does_not_create_record(self, db_session, user_id):
        await LedgerRepository(db_session).get_stats(user_id)
        assert await count(db_session, UserGamification, user_id=user_id) == 0

    async def test_stats_progress(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.get_or_create(user_id)
        await repo.add_xp(user_id, 191)

        stats = await repo.get_stats(user_id)
        assert stats.current_level == 2
        assert stats.xp_for_current_level == 100
        assert stats.xp_for_next_level == 282
        assert stats.xp_progress == 50

    async def test_metrics(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await repo.get_or_create(user_id)
        await repo.record_transaction(user_id, "a-1", XpReason.ARTICLE_COMPLETE, amount=15)
        await repo.record_transaction(user_id, "a-2", XpReason.ARTICLE_COMPLETE, amount=15)
        await repo.record_transaction(user_id, "q-1", XpReason.MCQ_CORRECT, amount=20, sparks_amount=1)
        await repo.record_transaction(user_id, "q-2", XpReason.TF_CORRECT, amount=20, sparks_amount=1)
        await repo.record_transaction(user_id, "freeze-x", XpReason.FREEZE_PURCHASE, sparks_amount=-50)
        await repo.add_xp(user_id, 70)

        metrics = await repo.get_metrics(user_id)
        assert metrics["articles_completed"] == 2
        assert metrics["quizzes_correct"] == 2
        assert metrics["flashcards_reviewed"] == 0
        assert metrics["xp_total"] == 70
        assert metrics["sparks_earned"] == 2


# =============================================================================
# COURSES
# =============================================================================

class TestCourses:

    async def _seed(self, repo, user_id):
        await repo.get_or_create(user_id)
        for i in range(3):
            await repo.record_transaction(
                user_id, f"a-{i}", XpReason.ARTICLE_COMPLETE, amount=15, course_id="course-a"
            )
        await repo.record_transaction(
            user_id, "q-1", XpReason.MCQ_CORRECT, amount=20, sparks_amount=1, course_id="course-a"
        )
        await repo.record_transaction(
            user_id, "card-1", XpReason.FLASHCARD_REVIEWED, amount=5, course_id="course-b"
        )
        await repo.add_xp(user_id, 70)
        await repo.add_sparks(user_id, 1)

    async def test_course_progress(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await self._seed(repo, user_id)

        progress = await repo.get_course_progress(user_id, "course-a")
        assert progress.articles_completed == 3
        assert progress.mcq_completed == 1
        assert progress.total_quiz_correct == 1
        assert progress.flashcards_completed == 0
        assert progress.total_xp_earned == 65
        assert sorted(progress.completed_content_ids) == ["a-0", "a-1", "a-2", "q-1"]

    async def test_reset_recomputes_from_remaining_ledger(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await self._seed(repo, user_id)

        removed, xp_total, sparks = await repo.reset_course(user_id, "course-a")

        assert removed == 4
        assert xp_total == 5
        assert sparks == 0
        record = await repo.get_record(user_id)
        assert record.xp_total == 5
        assert record.current_level == 1
        assert await count(db_session, CompletedContent, user_id=user_id, course_id="course-a") == 0
        assert await count(db_session, XPTransaction, user_id=user_id, course_id="course-b") == 1

    async def test_reset_counts_completed_items_not_ledger_rows(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await self._seed(repo, user_id)
        await repo.record_transaction(
            user_id, "level-2", XpReason.LEVEL_UP, sparks_amount=10, course_id="course-a"
        )

        removed, _, _ = await repo.reset_course(user_id, "course-a")

        assert removed == 4
        assert await count(db_session, XPTransaction, user_id=user_id, course_id="course-a") == 0

    async def test_reset_relocks_achievements_earned_in_the_course(self, db_session, user_id, add_achievement):
        await add_achievement("a_one", "articles_completed", 1)
        await add_achievement("card_one", "flashcards_reviewed", 1)
        repo = LedgerRepository(db_session)
        await self._seed(repo, user_id)
        for achievement_id, course_id in (("a_one", "course-a"), ("card_one", "course-b")):
            db_session.add(UserAchievement(user_id=user_id, achievement_id=achievement_id))
            await repo.record_transaction(
                user_id, achievement_id, XpReason.ACHIEVEMENT_UNLOCKED, amount=10, course_id=course_id
            )
        await db_session.flush()

        await repo.reset_course(user_id, "course-a")

        remaining = await db_session.scalars(
            select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        )
        assert list(remaining) == ["card_one"]

    async def test_completion_queries(self, db_session, user_id):
        repo = LedgerRepository(db_session)
        await self._seed(repo, user_id)

        assert await repo.is_content_completed(user_id, "q-1")
        assert await repo.is_content_completed(user_id, "q-1", XpReason.MCQ_CORRECT)
        assert not await repo.is_content_completed(user_id, "q-1", XpReason.TF_CORRECT)
        assert not await repo.is_content_completed(user_id, "missing")

        assert await repo.completed_content_ids(user_id, "course-a") == ["a-0", "a-1", "a-2", "q-1"]
        assert await repo.completed_content_ids(user_id, "course-a", XpReason.MCQ_CORRECT) == ["q-1"]
        assert await repo.completed_content_ids(user_id, "course-b", XpReason.ARTICLE_COMPLETE) == []
