"""
Review Scheduler - due-item selection, question expansion and answer
application.

Due items are picked most fragile first (lowest stage, then oldest due
time). Each item expands into a meaning question plus, unless it is a
kana-only word, a reading question; the session is then shuffled as a
whole. Applying an answer moves the stage on raw correctness, while XP is
only paid for correct answers given without a hint.
"""

import random
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.engines.srs import stage_policy
from src.engines.srs.access import AccessPolicy
from src.engines.srs.answer_checker import QuestionType, check_answer
from src.engines.srs.clock import BonusCalendar, Clock, ensure_utc
from src.engines.srs.errors import ForbiddenError, NotFoundError, SRSValidationError
from src.engines.srs.progress_store import (
    ProgressStore,
    due_filter,
    progress_with_content,
    row_details,
)
from src.engines.srs.xp_ledger import XP_CORRECT_REVIEW, XP_MASTERY_BONUS, XPLedger
from src.kernel.events.event_store import EventStore
from src.kernel.models.event_log import EventType
from src.kernel.models.progress import ItemKind, ItemProgress
from src.kernel.models.user import User
from src.logging_config import get_logger

logger = get_logger(__name__)


class DueReview(BaseModel):
    """A due record together with the content needed to quiz it."""

    progress_id: uuid.UUID
    item_id: uuid.UUID
    kind: ItemKind
    level: int
    text: str
    primary_meaning: str
    meanings: List[str]
    readings: List[str]
    kun_readings: List[str] = []
    on_readings: List[str] = []
    is_kana_only: bool
    stage: int
    stage_name: str
    next_review_at: datetime


class DueReviews(BaseModel):
    items: List[DueReview]
    total_pending: int
    character_pending: int
    word_pending: int


class ReviewQuestion(BaseModel):
    progress_id: uuid.UUID
    item_id: uuid.UUID
    kind: ItemKind
    question_type: QuestionType
    text: str
    stage: int
    stage_name: str


class ReviewSession(BaseModel):
    questions: List[ReviewQuestion]
    item_count: int
    total_pending: int


class AnswerCheck(BaseModel):
    correct: bool
    question_type: QuestionType
    accepted_answers: List[str]


class ReviewOutcome(BaseModel):
    progress_id: uuid.UUID
    previous_stage: int
    new_stage: int
    stage_name: str
    burned: bool
    xp_awarded: int
    next_review_at: Optional[datetime] = None


def expand_questions(items: Sequence[DueReview], rng: random.Random) -> List[ReviewQuestion]:
    """
    Turn due items into a shuffled question list.

    Kana-only words yield a single meaning question. Every other item yields
    meaning and reading in a coin-flip order, after which the whole list is
    shuffled so the two halves of an item need not be adjacent.
    """
    questions: List[ReviewQuestion] = []
    for item in items:
        if item.is_kana_only:
            order = [QuestionType.MEANING]
        elif rng.random() < 0.5:
            order = [QuestionType.MEANING, QuestionType.READING]
        else:
            order = [QuestionType.READING, QuestionType.MEANING]
        for question_type in order:
            questions.append(
                ReviewQuestion(
                    progress_id=item.progress_id,
                    item_id=item.item_id,
                    kind=item.kind,
                    question_type=question_type,
                    text=item.text,
                    stage=item.stage,
                    stage_name=item.stage_name,
                )
            )
    rng.shuffle(questions)
    return questions


class ReviewScheduler:
    """Due reviews, review sessions and review answers for one request."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        calendar: BonusCalendar,
        access_policy: AccessPolicy,
        rng: Optional[random.Random] = None,
    ):
        self.session = session
        self.clock = clock
        self.access_policy = access_policy
        self.rng = rng or random.Random()
        self.store = ProgressStore(session)
        self.event_store = EventStore(session)
        self.ledger = XPLedger(session, calendar, self.event_store)

    async def get_due_reviews(self, user: User, limit: int = 100) -> DueReviews:
        if limit < 1:
            raise SRSValidationError("limit must be at least 1")
        now = self.clock.now()
        levels = await self.store.accessible_levels(user, self.access_policy)

        query = (
            due_filter(progress_with_content(), user.id, now, levels)
            .order_by(
                ItemProgress.stage.asc(),
                ItemProgress.next_review_at.asc(),
                ItemProgress.id.asc(),
            )
            .limit(limit)
        )
        result = await self.session.execute(query)
        items = []
        for record, character, word, level in result.all():
            details = row_details(character, word, level)
            items.append(
                DueReview(
                    progress_id=record.id,
                    item_id=record.item_id,
                    kind=details.kind,
                    level=level,
                    text=details.text,
                    primary_meaning=details.primary_meaning,
                    meanings=details.meanings,
                    readings=details.readings,
                    kun_readings=details.kun_readings,
                    on_readings=details.on_readings,
                    is_kana_only=details.is_kana_only,
                    stage=record.stage,
                    stage_name=stage_policy.stage_name(record.stage),
                    next_review_at=ensure_utc(record.next_review_at),
                )
            )

        pending = await self.store.count_due(user.id, now, levels)
        character_pending = pending.get(ItemKind.CHARACTER.value, 0)
        word_pending = pending.get(ItemKind.WORD.value, 0)

        return DueReviews(
            items=items,
            total_pending=character_pending + word_pending,
            character_pending=character_pending,
            word_pending=word_pending,
        )

    async def build_session(self, user: User, size: int = 20) -> ReviewSession:
        """Quiz the `size` highest-priority due items in shuffled order."""
        if size < 1:
            raise SRSValidationError("size must be at least 1")
        due = await self.get_due_reviews(user, limit=size)
        return ReviewSession(
            questions=expand_questions(due.items, self.rng),
            item_count=len(due.items),
            total_pending=due.total_pending,
        )

    async def check_answer(
        self,
        user: User,
        item_id: uuid.UUID,
        kind: ItemKind,
        question_type: QuestionType,
        answer: str,
    ) -> AnswerCheck:
        """Grade an answer without changing any state."""
        item = await self.store.require_item(item_id, kind)
        self.access_policy.require(user, item.level)
        if question_type == QuestionType.READING and item.is_kana_only:
            raise SRSValidationError("Kana-only words have no reading question")
        accepted = item.meanings if question_type == QuestionType.MEANING else item.readings
        return AnswerCheck(
            correct=check_answer(question_type, answer, item.meanings, item.readings),
            question_type=question_type,
            accepted_answers=list(accepted),
        )

    async def submit_answer(
        self,
        user: User,
        progress_id: uuid.UUID,
        kind: ItemKind,
        question_type: QuestionType,
        correct: bool,
        used_hint: bool = False,
    ) -> ReviewOutcome:
        """
        Apply one graded sub-question to a record.

        Raises:
            NotFoundError: record missing, owned by another user, or of another kind
            SubscriptionRequiredError: the item's level is not accessible
            ForbiddenError: the record is burned
            ConcurrentUpdateError: another request changed the record first
        """
        record = await self.store.get_owned(user.id, progress_id, for_update=True)
        if record is None or record.item_kind != kind.value:
            raise NotFoundError(f"Progress record {progress_id} not found")

        item = await self.store.require_item(record.item_id, kind)
        self.access_policy.require(user, item.level)
        if record.stage == stage_policy.BURNED_STAGE:
            raise ForbiddenError("Burned items are not reviewed; unburn the item first")
        if question_type == QuestionType.READING and item.is_kana_only:
            raise SRSValidationError("Kana-only words have no reading question")

        now = self.clock.now()
        previous_stage = record.stage
        new_stage = stage_policy.next_stage(previous_stage, correct)

        if question_type == QuestionType.MEANING:
            if correct:
                record.meaning_correct += 1
            else:
                record.meaning_incorrect += 1
        else:
            if correct:
                record.reading_correct += 1
            else:
                record.reading_incorrect += 1

        record.stage = new_stage
        record.last_reviewed_at = now
        record.next_review_at = stage_policy.next_review_at(new_stage, now)
        record.burned_at = now if new_stage == stage_policy.BURNED_STAGE else None

        effective_correct = correct and not used_hint
        base_xp = XP_CORRECT_REVIEW if effective_correct else 0
        mastery_bonus = (
            effective_correct
            and new_stage == stage_policy.BURNED_STAGE
            and not record.mastery_bonus_awarded
        )
        if mastery_bonus:
            base_xp += XP_MASTERY_BONUS
            record.mastery_bonus_awarded = True

        await self.store.save(record)
        xp_awarded = await self.ledger.credit(user.id, base_xp, now, reason="review")

        await self.event_store.log(
            event_type=EventType.REVIEW_APPLIED,
            entity_type="item_progress",
            entity_id=record.id,
            user_id=user.id,
            payload={
                "item_id": record.item_id,
                "kind": kind.value,
                "question_type": question_type.value,
                "correct": correct,
                "used_hint": used_hint,
                "from_stage": previous_stage,
                "to_stage": new_stage,
                "xp_awarded": xp_awarded,
                "mastery_bonus": mastery_bonus,
            },
        )
        logger.info(
            "Review applied",
            extra={
                "progress_id": str(record.id),
                "from_stage": previous_stage,
                "to_stage": new_stage,
                "xp_awarded": xp_awarded,
            },
        )

        return ReviewOutcome(
            progress_id=record.id,
            previous_stage=previous_stage,
            new_stage=new_stage,
            stage_name=stage_policy.stage_name(new_stage),
            burned=new_stage == stage_policy.BURNED_STAGE,
            xp_awarded=xp_awarded,
            next_review_at=ensure_utc(record.next_review_at),
        )
