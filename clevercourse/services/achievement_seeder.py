"""Achievement seeder - generates the default achievement catalog."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clevercourse.models.gamification import (
    AchievementCategory,
    AchievementDefinition,
    AchievementRarity,
)

logger = logging.getLogger(__name__)


def roman_numeral(num: int) -> str:
    """Convert integer to Roman numeral."""
    val = [1000, 900, 500, 400, 100, 90, 50, 40, 10, 9, 5, 4, 1]
    syms = ["M", "CM", "D", "CD", "C", "XC", "L", "XL", "X", "IX", "V", "IV", "I"]
    roman_num = ""
    for i, v in enumerate(val):
        while num >= v:
            roman_num += syms[i]
            num -= v
    return roman_num


def get_rarity(tier: int, max_tier: int) -> AchievementRarity:
    """Determine rarity based on tier position."""
    pct = tier / max_tier
    if pct <= 0.25:
        return AchievementRarity.COMMON
    elif pct <= 0.50:
        return AchievementRarity.RARE
    elif pct <= 0.75:
        return AchievementRarity.EPIC
    return AchievementRarity.LEGENDARY


RARITY_MULTIPLIER = {
    AchievementRarity.COMMON: 1,
    AchievementRarity.RARE: 2,
    AchievementRarity.EPIC: 4,
    AchievementRarity.LEGENDARY: 8,
}


def calculate_rewards(category: AchievementCategory, tier: int, rarity: AchievementRarity) -> tuple[int, int]:
    """XP and Sparks paid out when an achievement unlocks."""
    base_xp = {
        AchievementCategory.LEARNING: 25,
        AchievementCategory.STREAK: 30,
        AchievementCategory.MASTERY: 40,
        AchievementCategory.SPECIAL: 50,
    }[category]
    mult = RARITY_MULTIPLIER[rarity]
    xp = round(base_xp * (1 + (tier - 1) * 0.5) * mult / 5) * 5
    sparks = 5 * mult
    return max(5, xp), sparks


def generate_tiered_achievements(
    id_prefix: str,
    name_template: str,
    description_template: str,
    category: AchievementCategory,
    metric_type: str,
    thresholds: list[float],
    icon_name: str,
    is_hidden: bool = False,
) -> list[dict[str, Any]]:
    """Generate a tiered achievement line."""
    achievements = []
    max_tier = len(thresholds)

    for i, threshold in enumerate(thresholds, 1):
        rarity = get_rarity(i, max_tier)
        xp, sparks = calculate_rewards(category, i, rarity)

        achievements.append({
            "id": f"{id_prefix}_{i}",
            "name": name_template.format(tier=roman_numeral(i)),
            "description": description_template.format(value=int(threshold)),
            "icon_name": icon_name,
            "category": category,
            "rarity": rarity,
            "xp_reward": xp,
            "sparks_reward": sparks,
            "tier": i,
            "threshold": threshold,
            "metric_type": metric_type,
            "is_hidden": is_hidden,
            "parent_id": f"{id_prefix}_{i-1}" if i > 1 else None,
        })

    return achievements


def generate_all_achievements() -> list[dict[str, Any]]:
    """Generate the full default catalog."""
    achievements = []

    # =============================================================================
    # LEARNING
    # =============================================================================

    achievements.extend(generate_tiered_achievements(
        id_prefix="learn_articles",
        name_template="Bookworm {tier}",
        description_template="Read {value} article pages",
        category=AchievementCategory.LEARNING,
        metric_type="articles_completed",
        thresholds=[1, 10, 50, 200],
        icon_name="BookOpen",
    ))

    achievements.extend(generate_tiered_achievements(
        id_prefix="learn_flashcards",
        name_template="Card Shark {tier}",
        description_template="Review {value} flashcards",
        category=AchievementCategory.LEARNING,
        metric_type="flashcards_reviewed",
        thresholds=[10, 50, 250, 1000],
        icon_name="Layers",
    ))

    achievements.extend(generate_tiered_achievements(
        id_prefix="learn_mindmaps",
        name_template="Cartographer {tier}",
        description_template="Explore {value} mind maps",
        category=AchievementCategory.LEARNING,
        metric_type="mindmaps_reviewed",
        thresholds=[1, 10, 50],
        icon_name="Network",
    ))

    achievements.extend(generate_tiered_achievements(
        id_prefix="learn_sections",
        name_template="Section Finisher {tier}",
        description_template="Complete {value} course sections",
        category=AchievementCategory.LEARNING,
        metric_type="sections_completed",
        thresholds=[1, 5, 25, 100],
        icon_name="CheckCircle",
    ))

    achievements.extend(generate_tiered_achievements(
        id_prefix="learn_courses",
        name_template="Graduate {tier}",
        description_template="Complete {value} courses",
        category=AchievementCategory.LEARNING,
        metric_type="courses_completed",
        thresholds=[1, 3, 10],
        icon_name="GraduationCap",
    ))

    # =============================================================================
    # STREAK
    # =============================================================================

    achievements.extend(generate_tiered_achievements(
        id_prefix="streak_days",
        name_template="On Fire {tier}",
        description_template="Keep a {value}-day learning streak",
        category=AchievementCategory.STREAK,
        metric_type="current_streak",
        thresholds=[3, 7, 14, 30, 100],
        icon_name="Flame",
    ))

    achievements.extend(generate_tiered_achievements(
        id_prefix="streak_freezes",
        name_template="Ice Saver {tier}",
        description_template="Let a streak freeze save your streak {value} times",
        category=AchievementCategory.STREAK,
        metric_type="freezes_used_total",
        thresholds=[1, 5],
        icon_name="Snowflake",
    ))

    # =============================================================================
    # MASTERY
    # =============================================================================

    achievements.extend(generate_tiered_achievements(
        id_prefix="mastery_quiz",
        name_template="Quiz Whiz {tier}",
        description_template="Answer {value} quiz questions correctly",
        category=AchievementCategory.MASTERY,
        metric_type="quizzes_correct",
        thresholds=[10, 50, 250, 1000],
        icon_name="Brain",
    ))

    achievements.extend(generate_tiered_achievements(
        id_prefix="mastery_perfect",
        name_template="Perfectionist {tier}",
        description_template="Score 100% on {value} quizzes",
        category=AchievementCategory.MASTERY,
        metric_type="perfect_quizzes",
        thresholds=[1, 5, 25],
        icon_name="Target",
    ))

    achievements.extend(generate_tiered_achievements(
        id_prefix="mastery_level",
        name_template="Rising Star {tier}",
        description_template="Reach level {value}",
        category=AchievementCategory.MASTERY,
        metric_type="level",
        thresholds=[5, 10, 25, 50],
        icon_name="Star",
    ))

    achievements.extend(generate_tiered_achievements(
        id_prefix="mastery_xp",
        name_template="XP Collector {tier}",
        description_template="Earn {value} XP in total",
        category=AchievementCategory.MASTERY,
        metric_type="xp_total",
        thresholds=[1000, 5000, 25000, 100000],
        icon_name="Zap",
    ))

    # =============================================================================
    # SPECIAL
    # =============================================================================

    achievements.append({
        "id": "special_first_steps",
        "name": "First Steps",
        "description": "Complete your very first piece of content",
        "icon_name": "Footprints",
        "category": AchievementCategory.SPECIAL,
        "rarity": AchievementRarity.COMMON,
        "xp_reward": 10,
        "sparks_reward": 5,
        "tier": 1,
        "threshold": 1,
        "metric_type": "xp_total",
        "is_hidden": False,
        "parent_id": None,
    })

    achievements.append({
        "id": "special_sparks_hoard",
        "name": "Spark Collector",
        "description": "Earn 500 Sparks over your learning journey",
        "icon_name": "Sparkles",
        "category": AchievementCategory.SPECIAL,
        "rarity": AchievementRarity.EPIC,
        "xp_reward": 200,
        "sparks_reward": 0,
        "tier": 1,
        "threshold": 500,
        "metric_type": "sparks_earned",
        "is_hidden": True,
        "parent_id": None,
    })

    achievements.append({
        "id": "special_year_streak",
        "name": "Unstoppable",
        "description": "Keep a learning streak alive for a whole year",
        "icon_name": "Crown",
        "category": AchievementCategory.SPECIAL,
        "rarity": AchievementRarity.LEGENDARY,
        "xp_reward": 5000,
        "sparks_reward": 250,
        "tier": 1,
        "threshold": 365,
        "metric_type": "longest_streak",
        "is_hidden": True,
        "parent_id": None,
    })

    return achievements


def get_achievement_count() -> int:
    """Return the total number of achievements generated."""
    return len(generate_all_achievements())


async def seed_achievements(db: AsyncSession, force: bool = False) -> dict[str, int]:
    """Insert catalog entries that are not in the database yet.

    Existing definitions are skipped unless ``force`` is set, in which case
    they are overwritten with the generated values. Commits on success.
    """
    result = await db.execute(select(AchievementDefinition))
    existing = {a.id: a for a in result.scalars().all()}

    seeded = 0
    skipped = 0
    for data in generate_all_achievements():
        values = {
            **data,
            "category": data["category"].value,
            "rarity": data["rarity"].value,
        }
        current = existing.get(data["id"])
        if current is None:
            db.add(AchievementDefinition(**values))
            seeded += 1
        elif force:
            for key, value in values.items():
                setattr(current, key, value)
            seeded += 1
        else:
            skipped += 1

    await db.commit()
    logger.info(f"Seeded {seeded} achievements, skipped {skipped} existing")
    return {"seeded": seeded, "skipped": skipped}
