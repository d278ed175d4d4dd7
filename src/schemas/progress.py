"""
Pydantic schemas for lesson learning and burn management.
"""

import uuid
from typing import List

from pydantic import BaseModel, Field

from src.kernel.models.progress import ItemKind


class LearnItemRequest(BaseModel):
    """One item finished in a lesson."""

    item_id: uuid.UUID
    kind: ItemKind
    first_attempt_correct_no_help: bool = False
    question_count: int = Field(..., ge=1, le=2)


class LearnRequest(BaseModel):
    items: List[LearnItemRequest] = Field(..., min_length=1)


class BurnRequest(BaseModel):
    """Identifies the item to burn or unburn."""

    item_id: uuid.UUID
    kind: ItemKind
