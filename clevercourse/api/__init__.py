from fastapi import APIRouter

from clevercourse.api.gamification import router as gamification_router
from clevercourse.api.routes import router as routes_router

router = APIRouter()
router.include_router(routes_router)
router.include_router(gamification_router)

__all__ = ["router"]
