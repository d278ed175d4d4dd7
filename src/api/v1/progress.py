"""
Progress endpoints - learning lesson items, summary, weekly XP, reset.
"""

from fastapi import APIRouter

from src.api.deps import AppCalendar, AppClock, CurrentUser, DbSession, Learning, Summary
from src.engines.srs.lesson_learning import LearnItemInput, LearnResult
from src.engines.srs.progress_summary import ProgressSummary, ResetResult
from src.engines.srs.xp_ledger import WeeklyXPSnapshot, XPLedger
from src.schemas.progress import LearnRequest

router = APIRouter()


@router.get("", response_model=ProgressSummary)
async def get_progress_summary(user: CurrentUser, summary: Summary):
    return await summary.summary(user)


@router.post("/learn", response_model=LearnResult)
async def learn_items(data: LearnRequest, user: CurrentUser, learning: Learning):
    """
    Record items finished in a lesson.

    Items already in progress are skipped; items answered right on the
    first attempt without help start at Guru and earn no XP.
    """
    items = [LearnItemInput(**item.model_dump()) for item in data.items]
    return await learning.learn_items(user, items)


@router.get("/weekly-xp", response_model=WeeklyXPSnapshot)
async def get_weekly_xp(
    user: CurrentUser,
    db: DbSession,
    clock: AppClock,
    calendar: AppCalendar,
):
    """XP earned in the current Monday-to-Sunday week."""
    ledger = XPLedger(db, calendar)
    return await ledger.current_week(user.id, clock.now())


@router.post("/reset", response_model=ResetResult)
async def reset_progress(user: CurrentUser, summary: Summary):
    """Delete all progress and weekly XP of the caller."""
    return await summary.reset(user)
