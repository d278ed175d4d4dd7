"""
Review endpoints - due queue, review sessions, answer checking, submissions.
"""

from typing import Optional

from fastapi import APIRouter, Query

from src.api.deps import CurrentUser, Scheduler
from src.config import get_settings
from src.engines.srs.review_scheduler import (
    AnswerCheck,
    DueReviews,
    ReviewOutcome,
    ReviewSession,
)
from src.schemas.reviews import AnswerCheckRequest, ReviewSubmitRequest

router = APIRouter()


@router.get("", response_model=DueReviews)
async def get_due_reviews(
    user: CurrentUser,
    scheduler: Scheduler,
    limit: Optional[int] = Query(None, ge=1, le=500),
):
    """Items whose next review time has passed, lowest stage first."""
    if limit is None:
        limit = get_settings().due_reviews_default_limit
    return await scheduler.get_due_reviews(user, limit=limit)


@router.get("/session", response_model=ReviewSession)
async def build_review_session(
    user: CurrentUser,
    scheduler: Scheduler,
    size: Optional[int] = Query(None, ge=1, le=100),
):
    """
    Take up to `size` due items and expand them into shuffled
    meaning/reading questions.
    """
    if size is None:
        size = get_settings().review_session_size
    return await scheduler.build_session(user, size=size)


@router.post("/check", response_model=AnswerCheck)
async def check_answer(
    data: AnswerCheckRequest,
    user: CurrentUser,
    scheduler: Scheduler,
):
    """Grade a typed answer; does not change progress."""
    return await scheduler.check_answer(
        user,
        item_id=data.item_id,
        kind=data.kind,
        question_type=data.question_type,
        answer=data.answer,
    )


@router.post("", response_model=ReviewOutcome)
async def submit_review_answer(
    data: ReviewSubmitRequest,
    user: CurrentUser,
    scheduler: Scheduler,
):
    """Apply one answered sub-question to a progress record."""
    return await scheduler.submit_answer(
        user,
        progress_id=data.progress_id,
        kind=data.kind,
        question_type=data.question_type,
        correct=data.correct,
        used_hint=data.used_hint,
    )
