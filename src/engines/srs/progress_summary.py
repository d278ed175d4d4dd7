"""
Progress summary and account-level reset.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.engines.srs import stage_policy
from src.engines.srs.access import AccessPolicy
from src.engines.srs.clock import BonusCalendar, Clock, ensure_utc
from src.engines.srs.progress_store import ProgressStore
from src.engines.srs.xp_ledger import WeeklyXPSnapshot, XPLedger
from src.kernel.events.event_store import EventStore
from src.kernel.models.content import Character, Lesson, Word
from src.kernel.models.event_log import EventType
from src.kernel.models.progress import ItemKind, ItemProgress
from src.kernel.models.user import User
from src.logging_config import get_logger

logger = get_logger(__name__)


class StageCount(BaseModel):
    stage: int
    name: str
    tier: stage_policy.StageTier
    characters: int
    words: int


class ProgressSummary(BaseModel):
    """Dashboard numbers for one learner."""

    total_characters: int
    total_words: int
    total_lessons: int
    characters_learned: int
    words_learned: int
    characters_burned: int
    words_burned: int
    character_pending: int
    word_pending: int
    stages: List[StageCount]
    accuracy: int
    next_review_at: Optional[datetime] = None
    next_review_in: str
    weekly_xp: WeeklyXPSnapshot


class ResetResult(BaseModel):
    progress_deleted: int
    weekly_xp_deleted: int


class ProgressSummaryService:
    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        calendar: BonusCalendar,
        access_policy: AccessPolicy,
    ):
        self.session = session
        self.clock = clock
        self.access_policy = access_policy
        self.store = ProgressStore(session)
        self.event_store = EventStore(session)
        self.ledger = XPLedger(session, calendar, self.event_store)

    async def _scalar(self, query) -> int:
        return (await self.session.execute(query)).scalar_one() or 0

    async def summary(self, user: User) -> ProgressSummary:
        now = self.clock.now()

        by_stage: Dict[str, Dict[int, int]] = {
            ItemKind.CHARACTER.value: {},
            ItemKind.WORD.value: {},
        }
        result = await self.session.execute(
            select(ItemProgress.item_kind, ItemProgress.stage, func.count(ItemProgress.id))
            .where(ItemProgress.user_id == user.id)
            .group_by(ItemProgress.item_kind, ItemProgress.stage)
        )
        for kind, stage, total in result.all():
            by_stage[kind][stage] = total
        characters = by_stage[ItemKind.CHARACTER.value]
        words = by_stage[ItemKind.WORD.value]

        levels = await self.store.accessible_levels(user, self.access_policy)
        pending = await self.store.count_due(user.id, now, levels)

        totals = (
            await self.session.execute(
                select(
                    func.coalesce(func.sum(ItemProgress.meaning_correct), 0),
                    func.coalesce(func.sum(ItemProgress.reading_correct), 0),
                    func.coalesce(func.sum(ItemProgress.meaning_incorrect), 0),
                    func.coalesce(func.sum(ItemProgress.reading_incorrect), 0),
                ).where(ItemProgress.user_id == user.id)
            )
        ).one()
        correct = totals[0] + totals[1]
        incorrect = totals[2] + totals[3]
        accuracy = round(correct / (correct + incorrect) * 100) if correct + incorrect else 0

        upcoming = await self.session.execute(
            select(func.min(ItemProgress.next_review_at)).where(
                ItemProgress.user_id == user.id,
                ItemProgress.stage >= stage_policy.FIRST_STAGE,
                ItemProgress.stage < stage_policy.BURNED_STAGE,
                ItemProgress.next_review_at > now,
            )
        )

        next_review = ensure_utc(upcoming.scalar_one_or_none())

        def learned(counts: Dict[int, int]) -> int:
            return sum(total for stage, total in counts.items() if stage >= stage_policy.FIRST_STAGE)

        return ProgressSummary(
            total_characters=await self._scalar(select(func.count(Character.id))),
            total_words=await self._scalar(select(func.count(Word.id))),
            total_lessons=await self._scalar(select(func.count(Lesson.id))),
            characters_learned=learned(characters),
            words_learned=learned(words),
            characters_burned=characters.get(stage_policy.BURNED_STAGE, 0),
            words_burned=words.get(stage_policy.BURNED_STAGE, 0),
            character_pending=pending.get(ItemKind.CHARACTER.value, 0),
            word_pending=pending.get(ItemKind.WORD.value, 0),
            stages=[
                StageCount(
                    stage=stage,
                    name=name,
                    tier=stage_policy.stage_tier(stage),
                    characters=characters.get(stage, 0),
                    words=words.get(stage, 0),
                )
                for stage, name in stage_policy.STAGE_NAMES.items()
            ],
            accuracy=accuracy,
            next_review_at=next_review,
            next_review_in=stage_policy.format_time_until_review(next_review, now),
            weekly_xp=await self.ledger.current_week(user.id, now),
        )

    async def reset(self, user: User) -> ResetResult:
        """Delete every progress record and weekly XP row of the user."""
        progress_deleted = await self.store.delete_for_user(user.id)
        xp_deleted = await self.ledger.delete_for_user(user.id)

        await self.event_store.log(
            event_type=EventType.PROGRESS_RESET,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={"progress_deleted": progress_deleted, "weekly_xp_deleted": xp_deleted},
        )
        logger.info(
            "Progress reset",
            extra={"progress_deleted": progress_deleted, "weekly_xp_deleted": xp_deleted},
        )
        return ResetResult(progress_deleted=progress_deleted, weekly_xp_deleted=xp_deleted)
