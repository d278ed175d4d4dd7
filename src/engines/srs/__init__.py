"""
SRS Engine - spaced-repetition progress for characters and words.

Stages:
- 0: Locked (no record)
- 1-4: Apprentice (4h, 8h, 1d, 2d)
- 5-6: Guru (7d, 14d)
- 7: Master (30d)
- 8: Enlightened (120d)
- 9: Burned (no more reviews)

XP:
- Lesson item learned: 10 per sub-question (0 when known already)
- Correct review without hint: 10
- First genuine burn: +50
- Everything doubled on Sunday (Central European time)
"""

from src.engines.srs.access import (
    AccessPolicy,
    BetaAccessPolicy,
    TieredAccessPolicy,
    build_access_policy,
)
from src.engines.srs.answer_checker import QuestionType, check_answer
from src.engines.srs.burn_controller import BurnController
from src.engines.srs.clock import BonusCalendar, Clock, FixedClock, SystemClock
from src.engines.srs.errors import (
    ConcurrentUpdateError,
    ForbiddenError,
    LevelLockedError,
    NotFoundError,
    SRSError,
    SRSValidationError,
    SubscriptionRequiredError,
)
from src.engines.srs.leaderboard import Leaderboard
from src.engines.srs.lesson_gate import LessonGate
from src.engines.srs.lesson_learning import LearnItemInput, LessonLearning
from src.engines.srs.progress_store import ProgressStore
from src.engines.srs.progress_summary import ProgressSummaryService
from src.engines.srs.review_scheduler import ReviewScheduler
from src.engines.srs.xp_ledger import XPLedger

__all__ = [
    "AccessPolicy",
    "BetaAccessPolicy",
    "TieredAccessPolicy",
    "build_access_policy",
    "QuestionType",
    "check_answer",
    "BurnController",
    "BonusCalendar",
    "Clock",
    "FixedClock",
    "SystemClock",
    "ConcurrentUpdateError",
    "ForbiddenError",
    "LevelLockedError",
    "NotFoundError",
    "SRSError",
    "SRSValidationError",
    "SubscriptionRequiredError",
    "Leaderboard",
    "LessonGate",
    "LearnItemInput",
    "LessonLearning",
    "ProgressStore",
    "ProgressSummaryService",
    "ReviewScheduler",
    "XPLedger",
]
