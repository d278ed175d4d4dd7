"""
Burn Controller - manual burn, unburn and level skipping.

A manual burn forces stage 9 without paying XP; burning twice changes
nothing. Unburn is the only way off stage 9 and always lands on stage 1
with the stage-1 interval. Skipping to a level burns every not-yet-started
item in the levels below it.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.engines.srs import stage_policy
from src.engines.srs.access import AccessPolicy
from src.engines.srs.clock import Clock, ensure_utc
from src.engines.srs.errors import NotFoundError
from src.engines.srs.lesson_gate import FIRST_LEVEL, LessonGate
from src.engines.srs.progress_store import ItemDetails, ProgressSnapshot, ProgressStore, to_snapshot
from src.kernel.events.event_store import EventStore
from src.kernel.models.event_log import EventType
from src.kernel.models.progress import ItemKind
from src.kernel.models.user import User
from src.logging_config import get_logger

logger = get_logger(__name__)


class BurnResult(BaseModel):
    progress: ProgressSnapshot
    created: bool = False
    changed: bool = True


class BurnedItem(BaseModel):
    progress_id: uuid.UUID
    item: ItemDetails
    burned_at: datetime
    unlocked_at: datetime
    meaning_correct: int
    meaning_incorrect: int
    reading_correct: int
    reading_incorrect: int


class BurnedItems(BaseModel):
    items: List[BurnedItem]
    total: int
    character_count: int
    word_count: int


class SkipResult(BaseModel):
    target_level: int
    levels_skipped: List[int]
    characters_burned: int
    words_burned: int
    already_started: int


class BurnController:
    """Force items into or out of the burned stage."""

    def __init__(self, session: AsyncSession, clock: Clock, access_policy: AccessPolicy):
        self.session = session
        self.clock = clock
        self.access_policy = access_policy
        self.store = ProgressStore(session)
        self.gate = LessonGate(session, access_policy)
        self.event_store = EventStore(session)

    async def burn(self, user: User, item_id: uuid.UUID, kind: ItemKind) -> BurnResult:
        """Force stage 9, creating the record if needed. Never pays XP."""
        item = await self.store.require_item(item_id, kind)
        self.access_policy.require(user, item.level)

        before = await self.store.get(user.id, item_id, kind, for_update=True)
        previous_stage: Optional[int] = before.stage if before is not None else None
        if previous_stage == stage_policy.BURNED_STAGE:
            return BurnResult(progress=to_snapshot(before), created=False, changed=False)

        now = self.clock.now()
        record = await self.store.force_burn(user.id, item_id, kind, now)

        await self.event_store.log(
            event_type=EventType.ITEM_BURNED,
            entity_type="item_progress",
            entity_id=record.id,
            user_id=user.id,
            payload={
                "item_id": item_id,
                "kind": kind.value,
                "from_stage": previous_stage or stage_policy.LOCKED_STAGE,
                "manual": True,
            },
        )
        logger.info(
            "Item burned",
            extra={"progress_id": str(record.id), "from_stage": previous_stage},
        )
        return BurnResult(progress=to_snapshot(record), created=before is None, changed=True)

    async def unburn(self, user: User, item_id: uuid.UUID, kind: ItemKind) -> ProgressSnapshot:
        """Reset an existing record to stage 1, due again in 4 hours."""
        record = await self.store.get(user.id, item_id, kind, for_update=True)
        if record is None:
            raise NotFoundError(f"No progress for {kind.value} {item_id}")

        now = self.clock.now()
        previous_stage = record.stage
        record.stage = stage_policy.FIRST_STAGE
        record.burned_at = None
        record.next_review_at = stage_policy.next_review_at(stage_policy.FIRST_STAGE, now)
        await self.store.save(record)

        await self.event_store.log(
            event_type=EventType.ITEM_UNBURNED,
            entity_type="item_progress",
            entity_id=record.id,
            user_id=user.id,
            payload={"item_id": item_id, "kind": kind.value, "from_stage": previous_stage},
        )
        logger.info(
            "Item unburned",
            extra={"progress_id": str(record.id), "from_stage": previous_stage},
        )
        return to_snapshot(record)

    async def list_burned(self, user: User) -> BurnedItems:
        """Burned records with their content, most recently burned first."""
        rows = await self.store.list_for_user(user.id, burned_only=True)
        items = [
            BurnedItem(
                progress_id=record.id,
                item=details,
                burned_at=ensure_utc(record.burned_at),
                unlocked_at=ensure_utc(record.unlocked_at),
                meaning_correct=record.meaning_correct,
                meaning_incorrect=record.meaning_incorrect,
                reading_correct=record.reading_correct,
                reading_incorrect=record.reading_incorrect,
            )
            for record, details in rows
        ]
        characters = sum(1 for i in items if i.item.kind == ItemKind.CHARACTER)
        return BurnedItems(
            items=items,
            total=len(items),
            character_count=characters,
            word_count=len(items) - characters,
        )

    async def skip_to_level(self, user: User, target_level: int) -> SkipResult:
        """
        Placement shortcut: burn every unstarted item below `target_level`.

        Items that already have a record keep it. No XP is paid.
        """
        await self.gate.get_lesson_row(target_level)
        self.access_policy.require(user, target_level)

        levels = list(range(FIRST_LEVEL, target_level))
        items = await self.store.items_in_levels(levels)
        started = await self.store.existing_keys(user.id, [item.key for item in items])

        now = self.clock.now()
        characters_burned = 0
        words_burned = 0
        for item in items:
            if item.key in started:
                continue
            _, created = await self.store.create_if_absent(
                user.id,
                item.item_id,
                item.kind,
                stage=stage_policy.BURNED_STAGE,
                now=now,
            )
            if not created:
                continue
            if item.kind == ItemKind.CHARACTER:
                characters_burned += 1
            else:
                words_burned += 1

        await self.event_store.log(
            event_type=EventType.LESSONS_SKIPPED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={
                "target_level": target_level,
                "characters_burned": characters_burned,
                "words_burned": words_burned,
            },
        )
        logger.info(
            "Skipped to level",
            extra={
                "target_level": target_level,
                "characters_burned": characters_burned,
                "words_burned": words_burned,
            },
        )
        return SkipResult(
            target_level=target_level,
            levels_skipped=levels,
            characters_burned=characters_burned,
            words_burned=words_burned,
            already_started=len(started),
        )
