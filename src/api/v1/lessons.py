"""
Lesson endpoints - level list, level content, skipping ahead.
"""

from fastapi import APIRouter, Path

from src.api.deps import Burns, CurrentUser, Gate
from src.engines.srs.burn_controller import SkipResult
from src.engines.srs.lesson_gate import FIRST_LEVEL, LessonDetail
from src.schemas.lessons import LessonListResponse

router = APIRouter()


@router.get("", response_model=LessonListResponse)
async def list_lessons(user: CurrentUser, gate: Gate):
    """All levels with the caller's progress and unlock state."""
    lessons = await gate.list_lessons(user)
    unlocked = [lesson.level for lesson in lessons if lesson.is_unlocked]
    return LessonListResponse(
        lessons=lessons,
        current_level=max(unlocked) if unlocked else FIRST_LEVEL,
    )


@router.get("/{level}", response_model=LessonDetail)
async def get_lesson(user: CurrentUser, gate: Gate, level: int = Path(..., ge=1)):
    return await gate.get_lesson(user, level)


@router.post("/skip-to/{level}", response_model=SkipResult)
async def skip_to_level(user: CurrentUser, burns: Burns, level: int = Path(..., ge=1)):
    """
    Burn every not-yet-started item below `level` so the learner can start
    there. Items already in progress are left as they are.
    """
    return await burns.skip_to_level(user, level)
