"""Achievement evaluation and per-user achievement listings."""

import logging
from typing import Any

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clevercourse.models.gamification import AchievementDefinition, UserAchievement
from clevercourse.services.results import UnlockedAchievement

logger = logging.getLogger(__name__)

HIDDEN_NAME = "???"
HIDDEN_DESCRIPTION = "Keep learning to reveal this achievement."
HIDDEN_ICON = "Lock"


def _unlocked(definition: AchievementDefinition) -> UnlockedAchievement:
    return UnlockedAchievement(
        id=definition.id,
        name=definition.name,
        description=definition.description,
        icon_name=definition.icon_name,
        category=definition.category,
        rarity=definition.rarity,
        xp_reward=definition.xp_reward,
        sparks_reward=definition.sparks_reward,
    )


def achievement_progress(current_value: float, threshold: float) -> int:
    """Integer percentage toward a threshold, clamped to 0-100."""
    if threshold <= 0:
        return 100
    return max(0, min(100, int(current_value / threshold * 100)))


class AchievementService:
    """Decides which achievements a user has earned and lists them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _unlocked_ids(self, user_id: int) -> dict[str, UserAchievement]:
        result = await self.db.execute(
            select(UserAchievement).where(UserAchievement.user_id == user_id)
        )
        return {ua.achievement_id: ua for ua in result.scalars().all()}

    async def evaluate_achievements(
        self,
        user_id: int,
        metrics: dict[str, float],
    ) -> list[UnlockedAchievement]:
        """
        Unlock every achievement whose condition ``metrics`` now satisfies.

        Returns only the achievements unlocked by this call. An unlock that
        loses a race with a concurrent request is skipped, so a user is never
        rewarded twice for the same achievement.
        """
        result = await self.db.execute(
            select(AchievementDefinition).order_by(
                AchievementDefinition.category, AchievementDefinition.tier, AchievementDefinition.id
            )
        )
        definitions = result.scalars().all()
        already_unlocked = await self._unlocked_ids(user_id)

        newly_unlocked = []
        for definition in definitions:
            if definition.id in already_unlocked:
                continue
            if metrics.get(definition.metric_type, 0) < definition.threshold:
                continue

            try:
                async with self.db.begin_nested():
                    self.db.add(
                        UserAchievement(
                            user_id=user_id,
                            achievement_id=definition.id,
                            is_seen=False,
                        )
                    )
            except IntegrityError:
                logger.debug(f"Achievement {definition.id} already unlocked for user {user_id}")
                continue

            logger.info(f"User {user_id} unlocked achievement {definition.id}")
            newly_unlocked.append(_unlocked(definition))

        return newly_unlocked

    async def get_achievements(
        self,
        user_id: int,
        metrics: dict[str, float],
        category: str | None = None,
    ) -> list[dict[str, Any]]:
        """All achievements with the user's progress. Locked hidden ones are masked."""
        query = select(AchievementDefinition)
        if category:
            query = query.where(AchievementDefinition.category == category.lower())
        query = query.order_by(
            AchievementDefinition.category, AchievementDefinition.tier, AchievementDefinition.id
        )
        result = await self.db.execute(query)
        definitions = result.scalars().all()
        user_achievements = await self._unlocked_ids(user_id)

        achievements = []
        for definition in definitions:
            ua = user_achievements.get(definition.id)
            is_unlocked = ua is not None
            current_value = metrics.get(definition.metric_type, 0)
            masked = definition.is_hidden and not is_unlocked

            achievements.append({
                "id": definition.id,
                "name": HIDDEN_NAME if masked else definition.name,
                "description": HIDDEN_DESCRIPTION if masked else definition.description,
                "icon_name": HIDDEN_ICON if masked else definition.icon_name,
                "category": definition.category,
                "rarity": definition.rarity,
                "xp_reward": definition.xp_reward,
                "sparks_reward": definition.sparks_reward,
                "tier": definition.tier,
                "threshold": definition.threshold,
                "is_hidden": definition.is_hidden,
                "is_unlocked": is_unlocked,
                "current_value": current_value,
                "progress": 100 if is_unlocked else achievement_progress(current_value, definition.threshold),
                "unlocked_at": ua.unlocked_at if ua else None,
            })

        return achievements

    async def get_unseen_achievements(self, user_id: int) -> list[dict[str, Any]]:
        """Unlocked achievements whose notification has not been shown yet."""
        result = await self.db.execute(
            select(UserAchievement)
            .options(selectinload(UserAchievement.achievement))
            .where(
                and_(
                    UserAchievement.user_id == user_id,
                    UserAchievement.is_seen == False,  # noqa: E712
                )
            )
            .order_by(UserAchievement.unlocked_at, UserAchievement.id)
        )

        achievements = []
        for ua in result.scalars().all():
            achievements.append({
                "id": ua.achievement.id,
                "name": ua.achievement.name,
                "description": ua.achievement.description,
                "icon_name": ua.achievement.icon_name,
                "category": ua.achievement.category,
                "rarity": ua.achievement.rarity,
                "xp_reward": ua.achievement.xp_reward,
                "sparks_reward": ua.achievement.sparks_reward,
                "unlocked_at": ua.unlocked_at,
            })
        return achievements

    async def mark_achievements_seen(
        self,
        user_id: int,
        achievement_ids: list[str] | None = None,
    ) -> int:
        """Mark achievements as seen. ``None`` marks every unseen one."""
        stmt = update(UserAchievement).where(
            UserAchievement.user_id == user_id,
            UserAchievement.is_seen == False,  # noqa: E712
        )
        if achievement_ids is not None:
            stmt = stmt.where(UserAchievement.achievement_id.in_(achievement_ids))
        result = await self.db.execute(
            stmt.values(is_seen=True).execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return result.rowcount
