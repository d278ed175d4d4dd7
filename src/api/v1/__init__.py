"""
API v1 routes.
"""

from fastapi import APIRouter

from src.api.v1 import burned, leaderboard, lessons, progress, reviews
from src.schemas.common import ErrorResponse

# Error bodies every authenticated engine route can return
ENGINE_ERRORS = {
    401: {"model": ErrorResponse, "description": "Missing or invalid bearer token"},
    402: {"model": ErrorResponse, "description": "Level requires a subscription"},
    403: {"model": ErrorResponse, "description": "Level locked or item burned"},
    404: {"model": ErrorResponse, "description": "Item, record or level not found"},
    409: {"model": ErrorResponse, "description": "Concurrent update, nothing applied"},
}

router = APIRouter(responses=ENGINE_ERRORS)

router.include_router(reviews.router, prefix="/reviews", tags=["Reviews"])
router.include_router(progress.router, prefix="/progress", tags=["Progress"])
router.include_router(burned.router, prefix="/burned", tags=["Burned"])
router.include_router(lessons.router, prefix="/lessons", tags=["Lessons"])
router.include_router(leaderboard.router, prefix="/leaderboard", tags=["Leaderboard"])
