from clevercourse.models.base import Base
from clevercourse.models.user import User
from clevercourse.models.gamification import (
    AchievementDefinition,
    CompletedContent,
    UserAchievement,
    UserGamification,
    XPTransaction,
)

__all__ = [
    "Base",
    "User",
    "AchievementDefinition",
    "CompletedContent",
    "UserAchievement",
    "UserGamification",
    "XPTransaction",
]
