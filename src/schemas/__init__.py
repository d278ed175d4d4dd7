"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.common import ErrorResponse, HealthResponse
from src.schemas.lessons import LessonListResponse
from src.schemas.progress import BurnRequest, LearnItemRequest, LearnRequest
from src.schemas.reviews import AnswerCheckRequest, ReviewSubmitRequest

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "LessonListResponse",
    "BurnRequest",
    "LearnItemRequest",
    "LearnRequest",
    "AnswerCheckRequest",
    "ReviewSubmitRequest",
]
