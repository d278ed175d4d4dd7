"""
Progress Store - persisted per-(user, item) SRS records.

Creation goes through INSERT ... ON CONFLICT on the (user_id, item_id,
item_kind) unique key, so two requests racing to create the same record
cannot both succeed. Updates to an existing record are version-checked by
the ORM; a lost race surfaces as ConcurrentUpdateError.
"""

import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, computed_field
from sqlalchemy import Select, and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.database import dialect_insert
from src.engines.srs import stage_policy
from src.engines.srs.access import AccessPolicy
from src.engines.srs.answer_checker import contains_kanji
from src.engines.srs.clock import ensure_utc
from src.engines.srs.errors import ConcurrentUpdateError, NotFoundError, SRSValidationError
from src.kernel.models.base import generate_uuid
from src.kernel.models.content import Character, Lesson, Word
from src.kernel.models.progress import ItemKind, ItemProgress
from src.kernel.models.user import User
from src.logging_config import get_logger

logger = get_logger(__name__)

ItemKey = Tuple[uuid.UUID, ItemKind]


class ItemDetails(BaseModel):
    """Content of one learnable item plus the level it belongs to."""

    item_id: uuid.UUID
    kind: ItemKind
    lesson_id: uuid.UUID
    level: int
    text: str
    primary_meaning: str
    meanings: List[str]
    readings: List[str]
    kun_readings: List[str] = []
    on_readings: List[str] = []
    part_of_speech: Optional[str] = None

    @property
    def key(self) -> ItemKey:
        return (self.item_id, self.kind)

    @computed_field
    @property
    def is_kana_only(self) -> bool:
        """Words written without any kanji only get a meaning question."""
        return self.kind == ItemKind.WORD and not contains_kanji(self.text)

    @computed_field
    @property
    def question_count(self) -> int:
        return 1 if self.is_kana_only else 2


class ProgressSnapshot(BaseModel):
    """Detached, timezone-normalized view of an ItemProgress row."""

    id: uuid.UUID
    user_id: uuid.UUID
    item_id: uuid.UUID
    kind: ItemKind
    stage: int
    stage_name: str
    meaning_correct: int
    meaning_incorrect: int
    reading_correct: int
    reading_incorrect: int
    unlocked_at: datetime
    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    burned_at: Optional[datetime] = None

    @property
    def burned(self) -> bool:
        return self.stage == stage_policy.BURNED_STAGE


def to_snapshot(record: ItemProgress) -> ProgressSnapshot:
    return ProgressSnapshot(
        id=record.id,
        user_id=record.user_id,
        item_id=record.item_id,
        kind=ItemKind(record.item_kind),
        stage=record.stage,
        stage_name=stage_policy.stage_name(record.stage),
        meaning_correct=record.meaning_correct,
        meaning_incorrect=record.meaning_incorrect,
        reading_correct=record.reading_correct,
        reading_incorrect=record.reading_incorrect,
        unlocked_at=ensure_utc(record.unlocked_at),
        last_reviewed_at=ensure_utc(record.last_reviewed_at),
        next_review_at=ensure_utc(record.next_review_at),
        burned_at=ensure_utc(record.burned_at),
    )


def character_details(character: Character, level: int) -> ItemDetails:
    return ItemDetails(
        item_id=character.id,
        kind=ItemKind.CHARACTER,
        lesson_id=character.lesson_id,
        level=level,
        text=character.character,
        primary_meaning=character.primary_meaning,
        meanings=list(character.meanings or []),
        readings=character.readings,
        kun_readings=list(character.kun_readings or []),
        on_readings=list(character.on_readings or []),
    )


def word_details(word: Word, level: int) -> ItemDetails:
    return ItemDetails(
        item_id=word.id,
        kind=ItemKind.WORD,
        lesson_id=word.lesson_id,
        level=level,
        text=word.word,
        primary_meaning=word.primary_meaning,
        meanings=list(word.meanings or []),
        readings=word.readings,
        part_of_speech=word.part_of_speech,
    )


def join_content(query: Select) -> Select:
    """Join ItemProgress rows in `query` to their character or word and lesson."""
    return (
        query
        .select_from(ItemProgress)
        .outerjoin(
            Character,
            and_(
                ItemProgress.item_kind == ItemKind.CHARACTER.value,
                Character.id == ItemProgress.item_id,
            ),
        )
        .outerjoin(
            Word,
            and_(
                ItemProgress.item_kind == ItemKind.WORD.value,
                Word.id == ItemProgress.item_id,
            ),
        )
        .join(Lesson, Lesson.id == func.coalesce(Character.lesson_id, Word.lesson_id))
    )


def progress_with_content() -> Select:
    """
    ItemProgress joined to its character or word and the owning lesson.

    Rows are (ItemProgress, Character | None, Word | None, level).
    """
    return join_content(select(ItemProgress, Character, Word, Lesson.level))


def due_filter(
    query: Select,
    user_id: uuid.UUID,
    now: datetime,
    levels: Optional[List[int]] = None,
) -> Select:
    """Learned, unburned records of `user_id` due at `now`, optionally limited to `levels`."""
    query = query.where(
        ItemProgress.user_id == user_id,
        ItemProgress.stage >= stage_policy.FIRST_STAGE,
        ItemProgress.stage < stage_policy.BURNED_STAGE,
        ItemProgress.next_review_at <= now,
    )
    if levels is not None:
        query = query.where(Lesson.level.in_(levels))
    return query


def row_details(character: Optional[Character], word: Optional[Word], level: int) -> ItemDetails:
    if character is not None:
        return character_details(character, level)
    return word_details(word, level)


class ProgressStore:
    """Reads and writes ItemProgress rows for the engine services."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Content lookups

    async def get_item(self, item_id: uuid.UUID, kind: ItemKind) -> Optional[ItemDetails]:
        items = await self.get_items([(item_id, kind)])
        return items.get((item_id, kind))

    async def require_item(self, item_id: uuid.UUID, kind: ItemKind) -> ItemDetails:
        item = await self.get_item(item_id, kind)
        if item is None:
            raise NotFoundError(f"{kind.value.capitalize()} {item_id} not found")
        return item

    async def get_items(self, keys: Iterable[ItemKey]) -> Dict[ItemKey, ItemDetails]:
        """Resolve many (item_id, kind) pairs with two queries."""
        keys = list(keys)
        character_ids = [item_id for item_id, kind in keys if kind == ItemKind.CHARACTER]
        word_ids = [item_id for item_id, kind in keys if kind == ItemKind.WORD]
        found: Dict[ItemKey, ItemDetails] = {}

        if character_ids:
            result = await self.session.execute(
                select(Character, Lesson.level)
                .join(Lesson, Lesson.id == Character.lesson_id)
                .where(Character.id.in_(character_ids))
            )
            for character, level in result.all():
                details = character_details(character, level)
                found[details.key] = details

        if word_ids:
            result = await self.session.execute(
                select(Word, Lesson.level)
                .join(Lesson, Lesson.id == Word.lesson_id)
                .where(Word.id.in_(word_ids))
            )
            for word, level in result.all():
                details = word_details(word, level)
                found[details.key] = details

        return found

    async def items_in_levels(self, levels: Sequence[int]) -> List[ItemDetails]:
        """Every character and word in the given levels, in lesson order."""
        if not levels:
            return []
        characters = await self.session.execute(
            select(Character, Lesson.level)
            .join(Lesson, Lesson.id == Character.lesson_id)
            .where(Lesson.level.in_(levels))
            .order_by(Lesson.level, Character.sort_order)
        )
        words = await self.session.execute(
            select(Word, Lesson.level)
            .join(Lesson, Lesson.id == Word.lesson_id)
            .where(Lesson.level.in_(levels))
            .order_by(Lesson.level, Word.sort_order)
        )
        items = [character_details(c, level) for c, level in characters.all()]
        items.extend(word_details(w, level) for w, level in words.all())
        items.sort(key=lambda item: item.level)
        return items

    async def accessible_levels(self, user: User, policy: AccessPolicy) -> Optional[List[int]]:
        """Levels the policy allows, or None when nothing is filtered out."""
        result = await self.session.execute(select(Lesson.level).order_by(Lesson.level))
        levels = list(result.scalars().all())
        allowed = policy.accessible_levels(user, levels)
        return None if len(allowed) == len(levels) else allowed

    # Progress records

    async def get(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        kind: ItemKind,
        for_update: bool = False,
    ) -> Optional[ItemProgress]:
        query = select(ItemProgress).where(
            ItemProgress.user_id == user_id,
            ItemProgress.item_id == item_id,
            ItemProgress.item_kind == kind.value,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def get_owned(
        self,
        user_id: uuid.UUID,
        progress_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[ItemProgress]:
        """A record by id, or None when it is missing or owned by someone else."""
        query = select(ItemProgress).where(
            ItemProgress.id == progress_id,
            ItemProgress.user_id == user_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def existing_keys(self, user_id: uuid.UUID, keys: Iterable[ItemKey]) -> set:
        """Which of the given items already have a record for this user."""
        keys = list(keys)
        if not keys:
            return set()
        item_ids = {item_id for item_id, _ in keys}
        result = await self.session.execute(
            select(ItemProgress.item_id, ItemProgress.item_kind).where(
                ItemProgress.user_id == user_id,
                ItemProgress.item_id.in_(item_ids),
            )
        )
        present = {(item_id, ItemKind(kind)) for item_id, kind in result.all()}
        return present.intersection(keys)

    async def create_if_absent(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        kind: ItemKind,
        *,
        stage: int,
        now: datetime,
        meaning_correct: int = 0,
        reading_correct: int = 0,
    ) -> Tuple[ItemProgress, bool]:
        """
        Create a record at `stage` unless one already exists.

        Returns the record and whether this call created it. An existing
        record is returned untouched.
        """
        if stage < stage_policy.FIRST_STAGE:
            raise SRSValidationError("Stage-0 progress is never stored")
        table = ItemProgress.__table__
        burned = stage == stage_policy.BURNED_STAGE
        stmt = (
            dialect_insert(self.session, table)
            .values(
                id=generate_uuid(),
                user_id=user_id,
                item_id=item_id,
                item_kind=kind.value,
                stage=stage,
                meaning_correct=meaning_correct,
                meaning_incorrect=0,
                reading_correct=reading_correct,
                reading_incorrect=0,
                unlocked_at=now,
                next_review_at=stage_policy.next_review_at(stage, now),
                burned_at=now if burned else None,
                mastery_bonus_awarded=False,
                version=1,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "item_id", "item_kind"])
            .returning(table.c.id)
        )
        created_id = (await self.session.execute(stmt)).scalar_one_or_none()
        record = await self.get(user_id, item_id, kind)
        if record is None:
            raise ConcurrentUpdateError("Progress record vanished during creation")
        return record, created_id is not None

    async def force_burn(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        kind: ItemKind,
        now: datetime,
    ) -> ItemProgress:
        """
        Upsert a record straight to stage 9.

        An already-burned record keeps its original burned_at.
        """
        table = ItemProgress.__table__
        insert_stmt = dialect_insert(self.session, table).values(
            id=generate_uuid(),
            user_id=user_id,
            item_id=item_id,
            item_kind=kind.value,
            stage=stage_policy.BURNED_STAGE,
            meaning_correct=0,
            meaning_incorrect=0,
            reading_correct=0,
            reading_incorrect=0,
            unlocked_at=now,
            next_review_at=None,
            burned_at=now,
            mastery_bonus_awarded=False,
            version=1,
            created_at=now,
            updated_at=now,
        )
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=["user_id", "item_id", "item_kind"],
            set_={
                "stage": stage_policy.BURNED_STAGE,
                "next_review_at": None,
                "burned_at": func.coalesce(table.c.burned_at, insert_stmt.excluded.burned_at),
                "version": table.c.version + 1,
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)
        record = await self.get(user_id, item_id, kind)
        if record is None:
            raise ConcurrentUpdateError("Progress record vanished during burn")
        return record

    async def save(self, record: ItemProgress) -> None:
        """Flush pending changes to `record` under the version check."""
        # A failed flush leaves the session unusable, including attribute loads
        progress_id = str(record.id)
        try:
            await self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "Optimistic lock conflict on progress record",
                extra={"progress_id": progress_id},
            )
            raise ConcurrentUpdateError(
                "Progress record was modified concurrently; nothing was applied",
                {"progress_id": progress_id},
            ) from exc

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        burned_only: bool = False,
        level: Optional[int] = None,
    ) -> List[Tuple[ItemProgress, ItemDetails]]:
        query = progress_with_content().where(ItemProgress.user_id == user_id)
        if level is not None:
            query = query.where(Lesson.level == level)
        if burned_only:
            query = query.where(ItemProgress.stage == stage_policy.BURNED_STAGE).order_by(
                ItemProgress.burned_at.desc(), ItemProgress.id
            )
        else:
            query = query.order_by(Lesson.level, ItemProgress.stage)
        result = await self.session.execute(query)
        return [
            (record, row_details(character, word, level))
            for record, character, word, level in result.all()
        ]

    async def count_due(
        self,
        user_id: uuid.UUID,
        now: datetime,
        levels: Optional[List[int]] = None,
    ) -> Dict[str, int]:
        """Due record counts keyed by item kind value."""
        query = due_filter(
            join_content(select(ItemProgress.item_kind, func.count(ItemProgress.id))),
            user_id,
            now,
            levels,
        ).group_by(ItemProgress.item_kind)
        result = await self.session.execute(query)
        return {kind: total for kind, total in result.all()}

    async def delete_for_user(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(ItemProgress).where(ItemProgress.user_id == user_id)
        )
        return result.rowcount or 0
