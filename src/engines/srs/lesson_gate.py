"""
Lesson Gate - level unlocking and lesson overviews.

Level 1 is always unlocked. Any other level is unlocked once the previous
level has at least one item and every one of its items has a progress
record. Nothing is cached: every call reads the current progress.
"""

import uuid
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.engines.srs import stage_policy
from src.engines.srs.access import AccessPolicy, jlpt_label
from src.engines.srs.errors import LevelLockedError, NotFoundError
from src.engines.srs.progress_store import (
    ItemDetails,
    ProgressSnapshot,
    ProgressStore,
    join_content,
    to_snapshot,
)
from src.kernel.models.content import Character, Lesson, Word
from src.kernel.models.progress import ItemKind, ItemProgress
from src.kernel.models.user import User

FIRST_LEVEL = 1


class LevelCounts(BaseModel):
    character_count: int = 0
    word_count: int = 0
    characters_started: int = 0
    words_started: int = 0

    @property
    def total_items(self) -> int:
        return self.character_count + self.word_count

    @property
    def started_items(self) -> int:
        return self.characters_started + self.words_started

    @property
    def is_complete(self) -> bool:
        return self.total_items > 0 and self.started_items >= self.total_items


class LessonOverview(BaseModel):
    """One row of the lesson list."""

    id: uuid.UUID
    level: int
    title: str
    description: Optional[str] = None
    jlpt_level: str
    character_count: int
    word_count: int
    characters_started: int
    words_started: int
    progress_percent: int
    is_unlocked: bool
    is_complete: bool
    is_accessible: bool


class LessonItem(BaseModel):
    """An item of a lesson with the caller's progress on it, if any."""

    item: ItemDetails
    progress: Optional[ProgressSnapshot] = None


class LessonDetail(BaseModel):
    id: uuid.UUID
    level: int
    title: str
    description: Optional[str] = None
    jlpt_level: str
    characters: List[LessonItem]
    words: List[LessonItem]


class LessonGate:
    """Unlock decisions plus the lesson list and lesson detail views."""

    def __init__(self, session: AsyncSession, access_policy: AccessPolicy):
        self.session = session
        self.access_policy = access_policy
        self.store = ProgressStore(session)

    async def level_counts(
        self,
        user_id: uuid.UUID,
        levels: Optional[Sequence[int]] = None,
    ) -> Dict[int, LevelCounts]:
        """Item totals and started counts per level (all levels when None)."""
        character_totals = select(Lesson.level, func.count(Character.id)).join(
            Character, Character.lesson_id == Lesson.id
        )
        word_totals = select(Lesson.level, func.count(Word.id)).join(
            Word, Word.lesson_id == Lesson.id
        )
        started = join_content(
            select(Lesson.level, ItemProgress.item_kind, func.count(ItemProgress.id))
        ).where(
            ItemProgress.user_id == user_id,
            ItemProgress.stage >= stage_policy.FIRST_STAGE,
        )
        if levels is not None:
            character_totals = character_totals.where(Lesson.level.in_(levels))
            word_totals = word_totals.where(Lesson.level.in_(levels))
            started = started.where(Lesson.level.in_(levels))

        counts: Dict[int, LevelCounts] = {}
        for level, total in await self._rows(character_totals.group_by(Lesson.level)):
            counts.setdefault(level, LevelCounts()).character_count = total
        for level, total in await self._rows(word_totals.group_by(Lesson.level)):
            counts.setdefault(level, LevelCounts()).word_count = total
        for level, kind, total in await self._rows(
            started.group_by(Lesson.level, ItemProgress.item_kind)
        ):
            entry = counts.setdefault(level, LevelCounts())
            if kind == ItemKind.CHARACTER.value:
                entry.characters_started = total
            else:
                entry.words_started = total
        return counts

    async def _rows(self, query) -> List[Tuple]:
        result = await self.session.execute(query)
        return [tuple(row) for row in result.all()]

    async def is_unlocked(self, user_id: uuid.UUID, level: int) -> bool:
        if level <= FIRST_LEVEL:
            return level == FIRST_LEVEL
        counts = await self.level_counts(user_id, [level - 1])
        previous = counts.get(level - 1)
        return previous is not None and previous.is_complete

    async def require_unlocked(self, user: User, level: int) -> None:
        """Raise unless `level` is both unlocked and allowed by the access policy."""
        if not await self.is_unlocked(user.id, level):
            raise LevelLockedError(level)
        self.access_policy.require(user, level)

    async def get_lesson_row(self, level: int) -> Lesson:
        result = await self.session.execute(select(Lesson).where(Lesson.level == level))
        lesson = result.scalar_one_or_none()
        if lesson is None:
            raise NotFoundError(f"Level {level} not found")
        return lesson

    async def list_lessons(self, user: User) -> List[LessonOverview]:
        result = await self.session.execute(select(Lesson).order_by(Lesson.level))
        lessons = list(result.scalars().all())
        counts = await self.level_counts(user.id)

        overviews: List[LessonOverview] = []
        for lesson in lessons:
            entry = counts.get(lesson.level, LevelCounts())
            if lesson.level == FIRST_LEVEL:
                unlocked = True
            else:
                previous = counts.get(lesson.level - 1)
                unlocked = previous is not None and previous.is_complete
            progress = (
                round(entry.started_items / entry.total_items * 100)
                if entry.total_items
                else 0
            )
            overviews.append(
                LessonOverview(
                    id=lesson.id,
                    level=lesson.level,
                    title=lesson.title,
                    description=lesson.description,
                    jlpt_level=jlpt_label(lesson.level),
                    character_count=entry.character_count,
                    word_count=entry.word_count,
                    characters_started=entry.characters_started,
                    words_started=entry.words_started,
                    progress_percent=progress,
                    is_unlocked=unlocked,
                    is_complete=entry.is_complete,
                    is_accessible=self.access_policy.can_access(user, lesson.level),
                )
            )
        return overviews

    async def get_lesson(self, user: User, level: int) -> LessonDetail:
        """Lesson content with the caller's progress; the level must be open."""
        lesson = await self.get_lesson_row(level)
        await self.require_unlocked(user, level)

        items = await self.store.items_in_levels([level])
        existing = {
            (record.item_id, ItemKind(record.item_kind)): record
            for record, _item in await self.store.list_for_user(user.id, level=level)
        }

        def with_progress(item: ItemDetails) -> LessonItem:
            record = existing.get(item.key)
            return LessonItem(item=item, progress=to_snapshot(record) if record else None)

        return LessonDetail(
            id=lesson.id,
            level=lesson.level,
            title=lesson.title,
            description=lesson.description,
            jlpt_level=jlpt_label(lesson.level),
            characters=[with_progress(i) for i in items if i.kind == ItemKind.CHARACTER],
            words=[with_progress(i) for i in items if i.kind == ItemKind.WORD],
        )
