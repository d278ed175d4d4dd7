"""
XP Ledger - weekly experience per user.

A credit is one INSERT ... ON CONFLICT (user_id, week_start) DO UPDATE SET
xp = xp + excluded.xp, so week-row creation and increment are a single
atomic statement. The day-of-week multiplier is applied once to the whole
amount of an operation.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import dialect_insert
from src.engines.srs.clock import BonusCalendar
from src.engines.srs.errors import SRSValidationError
from src.kernel.events.event_store import EventStore
from src.kernel.models.base import generate_uuid
from src.kernel.models.event_log import EventType
from src.kernel.models.progress import WeeklyXP
from src.logging_config import get_logger

logger = get_logger(__name__)

# Base amounts, before the day-of-week multiplier
XP_PER_QUESTION = 10
XP_CORRECT_REVIEW = 10
XP_MASTERY_BONUS = 50


class WeeklyXPSnapshot(BaseModel):
    """A user's XP for the current week."""

    user_id: uuid.UUID
    week_start: date
    week_end: date
    xp: int
    multiplier: int


class XPLedger:
    """Credits and reads the weekly XP ledger."""

    def __init__(
        self,
        session: AsyncSession,
        calendar: BonusCalendar,
        event_store: Optional[EventStore] = None,
    ):
        self.session = session
        self.calendar = calendar
        self.event_store = event_store or EventStore(session)

    async def credit(
        self,
        user_id: uuid.UUID,
        base_amount: int,
        now: datetime,
        reason: str,
    ) -> int:
        """
        Add `base_amount` x today's multiplier to the user's current week.

        Returns the amount actually credited. Zero writes nothing.
        """
        if base_amount < 0:
            raise SRSValidationError("XP credits cannot be negative")
        if base_amount == 0:
            return 0

        multiplier = self.calendar.multiplier(now)
        amount = base_amount * multiplier
        week_start, week_end = self.calendar.week_bounds(now)

        table = WeeklyXP.__table__
        insert_stmt = dialect_insert(self.session, table).values(
            id=generate_uuid(),
            user_id=user_id,
            week_start=week_start,
            week_end=week_end,
            xp=amount,
            created_at=now,
        )
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=["user_id", "week_start"],
            set_={"xp": table.c.xp + insert_stmt.excluded.xp},
        ).returning(table.c.id, table.c.xp)
        row = (await self.session.execute(stmt)).one()

        await self.event_store.log(
            event_type=EventType.XP_CREDITED,
            entity_type="weekly_xp",
            entity_id=row.id,
            user_id=user_id,
            payload={
                "reason": reason,
                "base_amount": base_amount,
                "multiplier": multiplier,
                "amount": amount,
                "week_start": week_start,
                "week_total": row.xp,
            },
        )
        logger.info(
            "XP credited",
            extra={
                "reason": reason,
                "amount": amount,
                "multiplier": multiplier,
                "week_start": week_start.isoformat(),
            },
        )
        return amount

    async def current_week(self, user_id: uuid.UUID, now: datetime) -> WeeklyXPSnapshot:
        week_start, week_end = self.calendar.week_bounds(now)
        result = await self.session.execute(
            select(WeeklyXP.xp).where(
                WeeklyXP.user_id == user_id,
                WeeklyXP.week_start == week_start,
            )
        )
        xp = result.scalar_one_or_none() or 0
        return WeeklyXPSnapshot(
            user_id=user_id,
            week_start=week_start,
            week_end=week_end,
            xp=xp,
            multiplier=self.calendar.multiplier(now),
        )

    async def delete_for_user(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(WeeklyXP).where(WeeklyXP.user_id == user_id)
        )
        return result.rowcount or 0
