"""
Lesson learning - first engagement with new items.

Items answered correctly on the first try with no hint or reveal on every
sub-question start at guru (stage 5) and earn nothing; everything else
starts at stage 1 and earns 10 XP per sub-question. Items that already have
a record are left alone and reported as skipped.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.engines.srs import stage_policy
from src.engines.srs.access import AccessPolicy
from src.engines.srs.clock import BonusCalendar, Clock, ensure_utc
from src.engines.srs.errors import NotFoundError, SRSValidationError
from src.engines.srs.lesson_gate import LessonGate
from src.engines.srs.progress_store import ProgressStore
from src.engines.srs.xp_ledger import XP_PER_QUESTION, XPLedger
from src.kernel.events.event_store import EventStore
from src.kernel.models.event_log import EventType
from src.kernel.models.progress import ItemKind
from src.kernel.models.user import User
from src.logging_config import get_logger

logger = get_logger(__name__)


class LearnItemInput(BaseModel):
    item_id: uuid.UUID
    kind: ItemKind
    first_attempt_correct_no_help: bool = False
    question_count: int


class LearnedItem(BaseModel):
    progress_id: uuid.UUID
    item_id: uuid.UUID
    kind: ItemKind
    created: bool
    known_already: bool
    stage: int
    stage_name: str
    next_review_at: Optional[datetime] = None


class LearnResult(BaseModel):
    created: int
    known_already: int
    skipped: int
    xp_awarded: int
    items: List[LearnedItem]


class LessonLearning:
    """Creates progress records for items finished in a lesson."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        calendar: BonusCalendar,
        access_policy: AccessPolicy,
    ):
        self.session = session
        self.clock = clock
        self.store = ProgressStore(session)
        self.gate = LessonGate(session, access_policy)
        self.event_store = EventStore(session)
        self.ledger = XPLedger(session, calendar, self.event_store)

    async def learn_items(self, user: User, items: List[LearnItemInput]) -> LearnResult:
        """
        Record a finished lesson batch.

        Every level touched must be unlocked and accessible, judged on the
        state before this call. Nothing is written if any check fails.
        """
        if not items:
            raise SRSValidationError("At least one item is required")
        keys = [(entry.item_id, entry.kind) for entry in items]
        if len(set(keys)) != len(keys):
            raise SRSValidationError("Each item may appear only once per request")

        details = await self.store.get_items(keys)
        missing = [key for key in keys if key not in details]
        if missing:
            item_id, kind = missing[0]
            raise NotFoundError(
                f"{kind.value.capitalize()} {item_id} not found",
                {"missing": [str(i) for i, _ in missing]},
            )

        for entry in items:
            expected = details[(entry.item_id, entry.kind)].question_count
            if entry.question_count != expected:
                raise SRSValidationError(
                    f"Item {entry.item_id} has {expected} question(s), got {entry.question_count}",
                    {"item_id": str(entry.item_id), "question_count": expected},
                )

        for level in sorted({d.level for d in details.values()}):
            await self.gate.require_unlocked(user, level)

        now = self.clock.now()
        learned: List[LearnedItem] = []
        base_xp = 0
        for entry in items:
            known = entry.first_attempt_correct_no_help
            stage = stage_policy.GURU_STAGE if known else stage_policy.FIRST_STAGE
            record, created = await self.store.create_if_absent(
                user.id,
                entry.item_id,
                entry.kind,
                stage=stage,
                now=now,
                meaning_correct=1 if known else 0,
                reading_correct=1 if known and entry.question_count == 2 else 0,
            )
            if created and not known:
                base_xp += XP_PER_QUESTION * entry.question_count
            learned.append(
                LearnedItem(
                    progress_id=record.id,
                    item_id=entry.item_id,
                    kind=entry.kind,
                    created=created,
                    known_already=created and known,
                    stage=record.stage,
                    stage_name=stage_policy.stage_name(record.stage),
                    next_review_at=ensure_utc(record.next_review_at),
                )
            )

        xp_awarded = await self.ledger.credit(user.id, base_xp, now, reason="lesson")

        created_count = sum(1 for item in learned if item.created)
        known_count = sum(1 for item in learned if item.known_already)
        skipped_count = len(learned) - created_count

        if created_count:
            await self.event_store.log(
                event_type=EventType.LESSON_ITEMS_LEARNED,
                entity_type="user",
                entity_id=user.id,
                user_id=user.id,
                payload={
                    "created": created_count,
                    "known_already": known_count,
                    "skipped": skipped_count,
                    "xp_awarded": xp_awarded,
                    "items": [
                        {"item_id": item.item_id, "kind": item.kind.value, "stage": item.stage}
                        for item in learned
                        if item.created
                    ],
                },
            )
        logger.info(
            "Lesson items learned",
            extra={
                "created": created_count,
                "known_already": known_count,
                "skipped": skipped_count,
                "xp_awarded": xp_awarded,
            },
        )

        return LearnResult(
            created=created_count,
            known_already=known_count,
            skipped=skipped_count,
            xp_awarded=xp_awarded,
            items=learned,
        )
