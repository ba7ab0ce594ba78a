"""Gamification API endpoints for XP, Sparks, streaks, achievements and course progress."""

import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from clevercourse.api.auth import get_current_user
from clevercourse.api.schemas import ErrorResponse
from clevercourse.core.database import get_db
from clevercourse.models.gamification import AchievementCategory, AchievementRarity, XpReason
from clevercourse.models.user import User
from clevercourse.services.errors import InvalidRewardReasonError
from clevercourse.services.gamification import STORAGE_FAILURE, GamificationService
from clevercourse.services.rewards import CONTENT_REASONS, XP_REWARDS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gamification", tags=["gamification"])


# =============================================================================
# REQUEST / RESPONSE SCHEMAS
# =============================================================================

class AwardXpRequest(BaseModel):
    """A content completion event."""
    content_id: str = Field(min_length=1, max_length=100)
    reason: str = Field(description="e.g. article-complete, mcq-correct")
    course_id: str | None = Field(default=None, max_length=100)


class UnlockedAchievementResponse(BaseModel):
    id: str
    name: str
    description: str
    icon_name: str
    category: str
    rarity: str
    xp_reward: int
    sparks_reward: int


class AwardXpResponse(BaseModel):
    """Everything the client needs to animate one award."""
    success: bool
    duplicate: bool
    xp_awarded: int
    bonus_xp: int
    sparks_awarded: int
    new_total: int
    previous_level: int
    new_level: int
    leveled_up: bool
    xp_for_current_level: int
    xp_for_next_level: int
    current_streak: int
    used_freeze: bool
    unlocked_achievements: list[UnlockedAchievementResponse]


class GamificationStatsResponse(BaseModel):
    xp_total: int
    current_level: int
    xp_for_current_level: int
    xp_for_next_level: int
    xp_progress: int
    sparks: int
    current_streak: int
    longest_streak: int
    freezes_available: int
    freezes_used_total: int
    last_activity_date: date | None


class PurchaseFreezeResponse(BaseModel):
    success: bool
    new_freeze_count: int
    new_sparks_balance: int
    error: str | None = None


class AchievementResponse(BaseModel):
    """Single achievement with user progress."""
    id: str
    name: str
    description: str
    icon_name: str
    category: str
    rarity: str
    xp_reward: int
    sparks_reward: int
    tier: int
    threshold: float
    is_hidden: bool
    is_unlocked: bool
    current_value: float
    progress: int
    unlocked_at: datetime | None


class UnseenAchievementResponse(BaseModel):
    id: str
    name: str
    description: str
    icon_name: str
    category: str
    rarity: str
    xp_reward: int
    sparks_reward: int
    unlocked_at: datetime | None


class MarkSeenRequest(BaseModel):
    """Omit achievement_ids to mark every unseen achievement."""
    achievement_ids: list[str] | None = None


class XPTransactionResponse(BaseModel):
    """XP transaction record."""
    id: int
    amount: int
    bonus_amount: int
    total_xp: int
    sparks_amount: int
    reason: str
    content_id: str
    course_id: str | None
    description: str | None
    created_at: datetime | None


class CourseProgressResponse(BaseModel):
    course_id: str
    total_xp_earned: int
    articles_completed: int
    flashcards_completed: int
    mindmaps_completed: int
    mcq_completed: int
    true_false_completed: int
    fill_up_completed: int
    total_quiz_correct: int
    completed_content_ids: list[str]


class ContentCompletionResponse(BaseModel):
    content_id: str
    completed: bool


class ResetProgressResponse(BaseModel):
    success: bool
    items_reset: int
    xp_total: int
    sparks: int


def _failure(status_code: int, error: str, retryable: bool = False) -> JSONResponse:
    body = ErrorResponse(error=error, retryable=retryable)
    return JSONResponse(status_code=status_code, content=body.model_dump())


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post(
    "/award",
    response_model=AwardXpResponse,
    responses={503: {"model": ErrorResponse}},
)
async def award_xp(
    request: AwardXpRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Award XP for a completed piece of content. Safe to retry."""
    service = GamificationService(db)
    result = await service.award_xp(
        user_id=current_user.id,
        content_id=request.content_id,
        reason=request.reason,
        course_id=request.course_id,
    )

    if result.error == InvalidRewardReasonError.code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid reason. Must be one of: {[r.value for r in XP_REWARDS]}",
        )
    if result.error == STORAGE_FAILURE:
        return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, result.error, retryable=True)

    return asdict(result)


@router.get("/stats", response_model=GamificationStatsResponse)
async def get_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Get the current user's XP, level, Sparks and streak."""
    service = GamificationService(db)
    stats = await service.get_gamification_stats(current_user.id)
    return asdict(stats)


@router.post(
    "/freezes/purchase",
    response_model=PurchaseFreezeResponse,
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def purchase_freeze(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Spend Sparks on a streak freeze."""
    service = GamificationService(db)
    result = await service.purchase_streak_freeze(current_user.id)

    if result.error == STORAGE_FAILURE:
        return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, result.error, retryable=True)
    if not result.success:
        return _failure(status.HTTP_409_CONFLICT, result.error)

    return asdict(result)


@router.get("/achievements", response_model=list[AchievementResponse])
async def get_achievements(
    category: str | None = Query(default=None, description="Filter by category"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """Get all achievements with the user's progress toward each."""
    if category:
        try:
            AchievementCategory(category.lower())
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid category. Must be one of: {[c.value for c in AchievementCategory]}",
            )

    service = GamificationService(db)
    return await service.get_achievements(current_user.id, category=category)


@router.get("/achievements/unseen", response_model=list[UnseenAchievementResponse])
async def get_unseen_achievements(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """Get unlocked achievements that haven't been shown to the user yet."""
    service = GamificationService(db)
    return await service.get_unseen_achievements(current_user.id)


@router.post("/achievements/mark-seen")
async def mark_achievements_seen(
    request: MarkSeenRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Mark achievements as seen (the toast has been shown)."""
    service = GamificationService(db)
    updated = await service.mark_achievements_seen(current_user.id, request.achievement_ids)
    return {"status": "ok", "updated": updated}


@router.get("/transactions", response_model=list[XPTransactionResponse])
async def get_xp_transactions(
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """Get recent XP transactions for the current user."""
    service = GamificationService(db)
    return await service.get_xp_history(current_user.id, limit)


@router.get("/courses/{course_id}/progress", response_model=CourseProgressResponse)
async def get_course_progress(
    course_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Per-course rollup of completed content and XP earned."""
    service = GamificationService(db)
    stats = await service.get_course_progress_stats(course_id, current_user.id)
    return asdict(stats)


def _parse_content_type(content_type: str | None) -> XpReason | None:
    if content_type is None:
        return None
    try:
        parsed = XpReason(content_type)
    except ValueError:
        parsed = None
    if parsed not in CONTENT_REASONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid content_type. Must be one of: {sorted(r.value for r in CONTENT_REASONS)}",
        )
    return parsed


@router.get("/content/{content_id}/completed", response_model=ContentCompletionResponse)
async def is_content_completed(
    content_id: str,
    content_type: str | None = Query(default=None, description="e.g. article-complete"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Whether the user has completed one piece of content."""
    reason = _parse_content_type(content_type)
    service = GamificationService(db)
    completed = await service.is_content_completed(current_user.id, content_id, reason)
    return {"content_id": content_id, "completed": completed}


@router.get("/courses/{course_id}/completed", response_model=list[str])
async def get_completed_content_ids(
    course_id: str,
    content_type: str | None = Query(default=None, description="e.g. flashcard-reviewed"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[str]:
    """Ids of the content completed in a course, for per-item checkmarks."""
    reason = _parse_content_type(content_type)
    service = GamificationService(db)
    return await service.get_completed_content_ids(course_id, current_user.id, reason)


@router.post(
    "/courses/{course_id}/reset",
    response_model=ResetProgressResponse,
    responses={503: {"model": ErrorResponse}},
)
async def reset_course_progress(
    course_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Forget everything earned in one course and recompute totals."""
    service = GamificationService(db)
    result = await service.reset_course_progress(course_id, current_user.id)
    if not result.success:
        return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, result.error, retryable=result.retryable)
    return asdict(result)


@router.get("/catalog/categories")
async def get_categories() -> dict[str, list[str]]:
    """Get available achievement categories, rarities and award reasons."""
    return {
        "categories": [c.value for c in AchievementCategory],
        "rarities": [r.value for r in AchievementRarity],
        "reasons": [r.value for r in XP_REWARDS],
    }
