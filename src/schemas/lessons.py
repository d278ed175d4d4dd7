"""
Pydantic schemas for the lessons API.
"""

from typing import List

from pydantic import BaseModel

from src.engines.srs.lesson_gate import LessonOverview


class LessonListResponse(BaseModel):
    lessons: List[LessonOverview]
    current_level: int
