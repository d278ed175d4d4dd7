"""
Pydantic schemas for the review API.
"""

import uuid

from pydantic import BaseModel, Field

from src.engines.srs.answer_checker import QuestionType
from src.kernel.models.progress import ItemKind


class AnswerCheckRequest(BaseModel):
    """Typed answer to grade against an item."""

    item_id: uuid.UUID
    kind: ItemKind
    question_type: QuestionType
    answer: str = Field(..., max_length=200)


class ReviewSubmitRequest(BaseModel):
    """Result of one review sub-question, graded by the client."""

    progress_id: uuid.UUID
    kind: ItemKind
    question_type: QuestionType
    correct: bool
    used_hint: bool = False
