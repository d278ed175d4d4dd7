"""
FastAPI dependencies for authentication, database sessions and the SRS
engine services.

The clock, random source and access policy are dependencies of their own
so tests can override them with app.dependency_overrides.
"""

import random
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.database import async_session_maker
from src.engines.srs.access import AccessPolicy, build_access_policy
from src.engines.srs.burn_controller import BurnController
from src.engines.srs.clock import BonusCalendar, Clock, SystemClock
from src.engines.srs.leaderboard import Leaderboard
from src.engines.srs.lesson_gate import LessonGate
from src.engines.srs.lesson_learning import LessonLearning
from src.engines.srs.progress_summary import ProgressSummaryService
from src.engines.srs.review_scheduler import ReviewScheduler
from src.kernel.identity.identity_service import IdentityService
from src.kernel.models.user import User
from src.logging_config import user_id_var


# Security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncSession:
    """Dependency that yields a session; commits on success, rolls back on any error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> User:
    """Get current authenticated user or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity_service = IdentityService(db)
    user = await identity_service.resolve_token(credentials.credentials)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    user_id_var.set(str(user.id))
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


# Engine collaborators

_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock


@lru_cache
def get_bonus_calendar() -> BonusCalendar:
    return BonusCalendar(get_settings().bonus_timezone)


def get_access_policy() -> AccessPolicy:
    return build_access_policy(get_settings())


def get_rng() -> random.Random:
    return random.Random()


AppClock = Annotated[Clock, Depends(get_clock)]
AppCalendar = Annotated[BonusCalendar, Depends(get_bonus_calendar)]
AppAccessPolicy = Annotated[AccessPolicy, Depends(get_access_policy)]
AppRandom = Annotated[random.Random, Depends(get_rng)]


# Engine services, one per request

def get_review_scheduler(
    db: DbSession,
    clock: AppClock,
    calendar: AppCalendar,
    policy: AppAccessPolicy,
    rng: AppRandom,
) -> ReviewScheduler:
    return ReviewScheduler(db, clock, calendar, policy, rng)


def get_lesson_learning(
    db: DbSession,
    clock: AppClock,
    calendar: AppCalendar,
    policy: AppAccessPolicy,
) -> LessonLearning:
    return LessonLearning(db, clock, calendar, policy)


def get_burn_controller(db: DbSession, clock: AppClock, policy: AppAccessPolicy) -> BurnController:
    return BurnController(db, clock, policy)


def get_lesson_gate(db: DbSession, policy: AppAccessPolicy) -> LessonGate:
    return LessonGate(db, policy)


def get_leaderboard(db: DbSession, calendar: AppCalendar) -> Leaderboard:
    return Leaderboard(db, calendar)


def get_progress_summary(
    db: DbSession,
    clock: AppClock,
    calendar: AppCalendar,
    policy: AppAccessPolicy,
) -> ProgressSummaryService:
    return ProgressSummaryService(db, clock, calendar, policy)


Scheduler = Annotated[ReviewScheduler, Depends(get_review_scheduler)]
Learning = Annotated[LessonLearning, Depends(get_lesson_learning)]
Burns = Annotated[BurnController, Depends(get_burn_controller)]
Gate = Annotated[LessonGate, Depends(get_lesson_gate)]
Ranking = Annotated[Leaderboard, Depends(get_leaderboard)]
Summary = Annotated[ProgressSummaryService, Depends(get_progress_summary)]
