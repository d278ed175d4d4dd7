"""
Weekly XP leaderboard.
"""

from fastapi import APIRouter

from src.api.deps import AppClock, CurrentUser, Ranking
from src.engines.srs.leaderboard import LeaderboardView

router = APIRouter()


@router.get("", response_model=LeaderboardView)
async def get_leaderboard(user: CurrentUser, ranking: Ranking, clock: AppClock):
    """Top ten of the current week, plus the caller's rank and neighbours."""
    return await ranking.get(user.id, clock.now())
