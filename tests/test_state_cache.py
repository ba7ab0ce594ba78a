"""Tests for the client-side gamification state cache."""
from clevercourse.services.results import (
    AwardXpResult,
    GamificationStats,
    PurchaseFreezeResult,
    UnlockedAchievement,
)
from clevercourse.services.state_cache import GamificationStateCache, XpGain


def award(**overrides):
    values = {
        "success": True,
        "xp_awarded": 15,
        "bonus_xp": 0,
        "sparks_awarded": 0,
        "new_total": 15,
        "previous_level": 1,
        "new_level": 1,
        "xp_for_current_level": 0,
        "xp_for_next_level": 100,
        "current_streak": 1,
    }
    values.update(overrides)
    return AwardXpResult(**values)


def achievement(achievement_id="learn_articles_1"):
    return UnlockedAchievement(
        id=achievement_id,
        name="Bookworm I",
        description="Read 1 article pages",
        icon_name="BookOpen",
        category="learning",
        rarity="common",
        xp_reward=25,
        sparks_reward=5,
    )


class TestApplyAward:

    def test_updates_snapshot_and_queues_gain(self):
        cache = GamificationStateCache()

        assert cache.apply_award(award(xp_awarded=15, bonus_xp=9, new_total=24))

        assert cache.stats.xp_total == 24
        assert cache.stats.xp_progress == 24
        assert cache.stats.current_streak == 1
        gain = cache.next_xp_gain()
        assert gain == XpGain(amount=15, bonus=9)
        assert gain.total == 24
        assert cache.next_xp_gain() is None

    def test_duplicate_changes_nothing(self):
        cache = GamificationStateCache(GamificationStats(xp_total=40, sparks=3))

        assert not cache.apply_award(award(duplicate=True, new_total=40, xp_awarded=0))
        assert not cache.apply_award(AwardXpResult(success=False, error="storage_failure", retryable=True))

        assert cache.stats.xp_total == 40
        assert cache.stats.sparks == 3
        assert cache.next_xp_gain() is None

    def test_level_up_is_pending_until_dismissed(self):
        cache = GamificationStateCache()
        cache.apply_award(award(new_total=105, previous_level=1, new_level=2, leveled_up=True,
                                xp_for_current_level=100, xp_for_next_level=282, sparks_awarded=10))

        assert cache.pending_level_up == 2
        assert cache.stats.sparks == 10
        assert cache.dismiss_level_up() == 2
        assert cache.pending_level_up is None

    def test_freeze_use_sets_notice(self):
        cache = GamificationStateCache(GamificationStats(freezes_available=2, longest_streak=4))
        cache.apply_award(award(current_streak=5, used_freeze=True))

        assert cache.freeze_used_notice
        assert cache.stats.freezes_available == 1
        assert cache.stats.freezes_used_total == 1
        assert cache.stats.longest_streak == 5

        cache.dismiss_freeze_notice()
        assert not cache.freeze_used_notice

    def test_achievements_queue_in_order(self):
        cache = GamificationStateCache()
        cache.apply_award(award(unlocked_achievements=[achievement("a"), achievement("b")]))

        assert cache.pending_achievements == 2
        assert cache.next_achievement().id == "a"
        assert cache.next_achievement().id == "b"
        assert cache.next_achievement() is None


class TestOtherUpdates:

    def test_freeze_purchase(self):
        cache = GamificationStateCache(GamificationStats(sparks=60, freezes_available=1))
        cache.apply_freeze_purchase(PurchaseFreezeResult(success=True, new_freeze_count=2, new_sparks_balance=10))

        assert cache.stats.sparks == 10
        assert cache.stats.freezes_available == 2

    def test_rejected_purchase_is_ignored(self):
        cache = GamificationStateCache(GamificationStats(sparks=49, freezes_available=1))
        cache.apply_freeze_purchase(
            PurchaseFreezeResult(success=False, new_freeze_count=1, new_sparks_balance=49,
                                 error="insufficient_sparks")
        )
        assert cache.stats.sparks == 49

    def test_apply_stats_replaces_snapshot(self):
        cache = GamificationStateCache()
        cache.apply_stats(GamificationStats(xp_total=300, current_level=3))
        assert cache.stats.current_level == 3
