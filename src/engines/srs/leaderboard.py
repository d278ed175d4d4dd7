"""
Leaderboard - read-only ranking over the current week's XP ledger.

Ties in XP are broken by the week row's created_at (whoever scored first
this week ranks higher), then by user id, so the order is stable across
queries.
"""

import uuid
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.engines.srs.clock import BonusCalendar
from src.kernel.models.progress import WeeklyXP
from src.kernel.models.user import User

TOP_SIZE = 10
CONTEXT_RADIUS = 2


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: uuid.UUID
    display_name: str
    xp: int
    is_current_user: bool = False


class LeaderboardView(BaseModel):
    """Top list, the caller's own entry and a window around it."""

    top: List[LeaderboardEntry]
    current_user: Optional[LeaderboardEntry] = None
    context_window: List[LeaderboardEntry] = []
    total_active_users: int
    week_start: date
    week_end: date


def rank_entries(
    standings: Sequence[Tuple[uuid.UUID, str, int]],
    current_user_id: uuid.UUID,
    week_start: date,
    week_end: date,
) -> LeaderboardView:
    """
    Build the view from standings already sorted best-first.

    Entries with no XP are dropped. The context window is only filled when
    the caller ranks outside the top list, and then holds up to two entries
    either side of the caller, the caller included.
    """
    entries = [
        LeaderboardEntry(
            rank=position,
            user_id=user_id,
            display_name=name,
            xp=xp,
            is_current_user=user_id == current_user_id,
        )
        for position, (user_id, name, xp) in enumerate(
            ((u, n, x) for u, n, x in standings if x > 0), start=1
        )
    ]

    top = entries[:TOP_SIZE]
    current = next((e for e in entries if e.is_current_user), None)

    context: List[LeaderboardEntry] = []
    if current is not None and current.rank > len(top):
        start = max(0, current.rank - 1 - CONTEXT_RADIUS)
        end = min(len(entries), current.rank + CONTEXT_RADIUS)
        context = entries[start:end]

    return LeaderboardView(
        top=top,
        current_user=current,
        context_window=context,
        total_active_users=len(entries),
        week_start=week_start,
        week_end=week_end,
    )


class Leaderboard:
    """Ranks the current week's ledger rows."""

    def __init__(self, session: AsyncSession, calendar: BonusCalendar):
        self.session = session
        self.calendar = calendar

    async def standings(self, week_start: date) -> List[Tuple[uuid.UUID, str, int]]:
        result = await self.session.execute(
            select(WeeklyXP, User)
            .join(User, User.id == WeeklyXP.user_id)
            .where(WeeklyXP.week_start == week_start, WeeklyXP.xp > 0)
            .order_by(WeeklyXP.xp.desc(), WeeklyXP.created_at.asc(), WeeklyXP.user_id.asc())
        )
        return [(row.user_id, user.display_name, row.xp) for row, user in result.all()]

    async def get(self, user_id: uuid.UUID, now: datetime) -> LeaderboardView:
        week_start, week_end = self.calendar.week_bounds(now)
        standings = await self.standings(week_start)
        return rank_entries(standings, user_id, week_start, week_end)
