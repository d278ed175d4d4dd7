"""
Integration tests for the SRS engine against SQLite: learning, reviews,
XP, burning, level gating, skipping ahead and reset.
"""

import random
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.engines.srs.access import TieredAccessPolicy
from src.engines.srs.answer_checker import QuestionType
from src.engines.srs.burn_controller import BurnController
from src.engines.srs.clock import ensure_utc
from src.engines.srs.errors import (
    ConcurrentUpdateError,
    ForbiddenError,
    LevelLockedError,
    NotFoundError,
    SRSValidationError,
    SubscriptionRequiredError,
)
from src.engines.srs.leaderboard import Leaderboard
from src.engines.srs.lesson_gate import LessonGate
from src.engines.srs.lesson_learning import LearnItemInput, LessonLearning
from src.engines.srs.progress_summary import ProgressSummaryService
from src.engines.srs.review_scheduler import ReviewScheduler
from src.engines.srs.stage_policy import StageTier
from src.engines.srs.xp_ledger import XPLedger
from src.kernel.events.event_store import EventStore
from src.kernel.models.event_log import EventType
from src.kernel.models.progress import ItemKind, ItemProgress

WEDNESDAY = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)
SUNDAY = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)


class Engine:
    """All engine services sharing one session, clock and policy."""

    def __init__(self, session, clock, calendar, policy):
        self.session = session
        self.clock = clock
        self.learning = LessonLearning(session, clock, calendar, policy)
        self.scheduler = ReviewScheduler(session, clock, calendar, policy, random.Random(3))
        self.burns = BurnController(session, clock, policy)
        self.gate = LessonGate(session, policy)
        self.summary = ProgressSummaryService(session, clock, calendar, policy)
        self.leaderboard = Leaderboard(session, calendar)
        self.ledger = XPLedger(session, calendar)

    async def weekly_xp(self, user) -> int:
        return (await self.ledger.current_week(user.id, self.clock.now())).xp


def learn(item, kind=None, known=False, question_count=2) -> LearnItemInput:
    if kind is None:
        kind = ItemKind.WORD if hasattr(item, "word") else ItemKind.CHARACTER
    return LearnItemInput(
        item_id=item.id,
        kind=kind,
        first_attempt_correct_no_help=known,
        question_count=question_count,
    )


def level_one(curriculum):
    return [learn(curriculum["一"]), learn(curriculum["二"]), learn(curriculum["一つ"])]


@pytest_asyncio.fixture
async def engine(db_session, clock, calendar, beta_policy):
    return Engine(db_session, clock, calendar, beta_policy)


class TestLessonLearning:
    """Creating progress records from finished lessons."""

    @pytest.mark.asyncio
    async def test_learn_level_one(self, engine, learner, curriculum):
        """New items start at stage 1, due in four hours, 10 XP per question."""
        result = await engine.learning.learn_items(learner, level_one(curriculum))

        assert result.created == 3
        assert result.skipped == 0
        assert result.xp_awarded == 60
        for item in result.items:
            assert item.stage == 1
            assert item.next_review_at == WEDNESDAY + timedelta(hours=4)
        assert await engine.weekly_xp(learner) == 60

    @pytest.mark.asyncio
    async def test_known_item_starts_at_guru_without_xp(self, engine, learner, curriculum):
        result = await engine.learning.learn_items(
            learner, [learn(curriculum["一"], known=True)]
        )

        item = result.items[0]
        assert item.known_already is True
        assert item.stage == 5
        assert item.next_review_at == WEDNESDAY + timedelta(days=7)
        assert result.xp_awarded == 0
        assert await engine.weekly_xp(learner) == 0

        record = await engine.scheduler.store.get(learner.id, curriculum["一"].id, ItemKind.CHARACTER)
        assert record.meaning_correct == 1
        assert record.reading_correct == 1

    @pytest.mark.asyncio
    async def test_known_then_wrong_reading_drops_two_stages(self, engine, learner, curriculum):
        result = await engine.learning.learn_items(
            learner, [learn(curriculum["一"], known=True)]
        )
        outcome = await engine.scheduler.submit_answer(
            learner,
            result.items[0].progress_id,
            ItemKind.CHARACTER,
            QuestionType.READING,
            correct=False,
        )

        assert outcome.previous_stage == 5
        assert outcome.new_stage == 3
        assert outcome.next_review_at == WEDNESDAY + timedelta(days=1)
        assert outcome.xp_awarded == 0

    @pytest.mark.asyncio
    async def test_relearning_skips_existing(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, [learn(curriculum["一"])])
        again = await engine.learning.learn_items(learner, [learn(curriculum["一"], known=True)])

        assert again.created == 0
        assert again.skipped == 1
        assert again.xp_awarded == 0
        assert again.items[0].stage == 1
        assert await engine.weekly_xp(learner) == 20

    @pytest.mark.asyncio
    async def test_sunday_doubles_lesson_xp(self, engine, learner, curriculum):
        engine.clock.set(SUNDAY)
        result = await engine.learning.learn_items(learner, [learn(curriculum["一"])])
        assert result.xp_awarded == 40

    @pytest.mark.asyncio
    async def test_question_count_must_match_item(self, engine, learner, curriculum):
        with pytest.raises(SRSValidationError):
            await engine.learning.learn_items(
                learner, [learn(curriculum["一"], question_count=1)]
            )

    @pytest.mark.asyncio
    async def test_duplicate_items_rejected(self, engine, learner, curriculum):
        with pytest.raises(SRSValidationError):
            await engine.learning.learn_items(
                learner, [learn(curriculum["一"]), learn(curriculum["一"])]
            )

    @pytest.mark.asyncio
    async def test_unknown_item(self, engine, learner, curriculum):
        missing = LearnItemInput(item_id=uuid.uuid4(), kind=ItemKind.CHARACTER, question_count=2)
        with pytest.raises(NotFoundError):
            await engine.learning.learn_items(learner, [missing])

    @pytest.mark.asyncio
    async def test_locked_level_writes_nothing(self, engine, learner, curriculum):
        """A batch touching a locked level is rejected as a whole."""
        with pytest.raises(LevelLockedError):
            await engine.learning.learn_items(
                learner, [learn(curriculum["一"]), learn(curriculum["山"])]
            )
        count = await engine.session.scalar(select(func.count(ItemProgress.id)))
        assert count == 0


class TestLevelGate:
    @pytest.mark.asyncio
    async def test_next_level_unlocks_when_all_items_started(self, engine, learner, curriculum):
        assert await engine.gate.is_unlocked(learner.id, 1) is True
        assert await engine.gate.is_unlocked(learner.id, 2) is False

        await engine.learning.learn_items(learner, level_one(curriculum)[:2])
        assert await engine.gate.is_unlocked(learner.id, 2) is False

        await engine.learning.learn_items(learner, level_one(curriculum)[2:])
        assert await engine.gate.is_unlocked(learner.id, 2) is True
        assert await engine.gate.is_unlocked(learner.id, 3) is False

    @pytest.mark.asyncio
    async def test_lesson_list(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, level_one(curriculum))
        lessons = {lesson.level: lesson for lesson in await engine.gate.list_lessons(learner)}

        assert lessons[1].is_complete is True
        assert lessons[1].progress_percent == 100
        assert lessons[2].is_unlocked is True
        assert lessons[2].progress_percent == 0
        assert lessons[3].is_unlocked is False
        assert lessons[1].jlpt_level == "N5"

    @pytest.mark.asyncio
    async def test_lesson_detail_requires_unlock(self, engine, learner, curriculum):
        with pytest.raises(LevelLockedError):
            await engine.gate.get_lesson(learner, 2)

        detail = await engine.gate.get_lesson(learner, 1)
        assert [c.item.text for c in detail.characters] == ["一", "二"]
        assert detail.words[0].progress is None

    @pytest.mark.asyncio
    async def test_missing_level(self, engine, learner, curriculum):
        with pytest.raises(NotFoundError):
            await engine.gate.get_lesson(learner, 99)

    @pytest.mark.asyncio
    async def test_tiered_policy_blocks_paid_level(
        self, db_session, clock, calendar, learner, curriculum
    ):
        engine = Engine(db_session, clock, calendar, TieredAccessPolicy(free_level_max=1))
        await engine.learning.learn_items(learner, level_one(curriculum))

        with pytest.raises(SubscriptionRequiredError):
            await engine.learning.learn_items(learner, [learn(curriculum["山"])])


class TestReviews:
    """Due queue and answer application."""

    @pytest.mark.asyncio
    async def test_nothing_due_before_interval(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, level_one(curriculum))
        due = await engine.scheduler.get_due_reviews(learner)
        assert due.total_pending == 0

        engine.clock.advance(timedelta(hours=4))
        due = await engine.scheduler.get_due_reviews(learner)
        assert due.total_pending == 3
        assert due.character_pending == 2
        assert due.word_pending == 1

    @pytest.mark.asyncio
    async def test_due_ordered_by_stage(self, engine, learner, curriculum):
        await engine.learning.learn_items(
            learner, [learn(curriculum["一"], known=True), learn(curriculum["二"])]
        )
        engine.clock.advance(timedelta(days=8))

        due = await engine.scheduler.get_due_reviews(learner)
        assert [item.stage for item in due.items] == [1, 5]

        limited = await engine.scheduler.get_due_reviews(learner, limit=1)
        assert len(limited.items) == 1
        assert limited.total_pending == 2

    @pytest.mark.asyncio
    async def test_session_expands_questions(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, level_one(curriculum))
        engine.clock.advance(timedelta(hours=5))

        session = await engine.scheduler.build_session(learner, size=2)
        assert session.item_count == 2
        assert len(session.questions) == 4
        assert session.total_pending == 3

    @pytest.mark.asyncio
    async def test_correct_answer_climbs_and_pays(self, engine, learner, curriculum):
        result = await engine.learning.learn_items(learner, [learn(curriculum["一"])])
        engine.clock.advance(timedelta(hours=4))

        outcome = await engine.scheduler.submit_answer(
            learner,
            result.items[0].progress_id,
            ItemKind.CHARACTER,
            QuestionType.MEANING,
            correct=True,
        )

        assert outcome.new_stage == 2
        assert outcome.xp_awarded == 10
        assert outcome.next_review_at == engine.clock.now() + timedelta(hours=8)
        assert await engine.weekly_xp(learner) == 30

        await engine.session.flush()
        history = await EventStore(engine.session).get_entity_history(
            "item_progress", result.items[0].progress_id
        )
        applied = [e for e in history if e.event_type == EventType.REVIEW_APPLIED.value]
        assert len(applied) == 1
        assert applied[0].payload["to_stage"] == 2

    @pytest.mark.asyncio
    async def test_hint_advances_without_xp(self, engine, learner, curriculum):
        result = await engine.learning.learn_items(learner, [learn(curriculum["一"])])

        outcome = await engine.scheduler.submit_answer(
            learner,
            result.items[0].progress_id,
            ItemKind.CHARACTER,
            QuestionType.MEANING,
            correct=True,
            used_hint=True,
        )

        assert outcome.new_stage == 2
        assert outcome.xp_awarded == 0

    @pytest.mark.asyncio
    async def test_burn_by_review_pays_mastery_bonus_once(self, engine, learner, curriculum):
        result = await engine.learning.learn_items(learner, [learn(curriculum["一"], known=True)])
        progress_id = result.items[0].progress_id

        awarded = []
        for _ in range(4):
            outcome = await engine.scheduler.submit_answer(
                learner, progress_id, ItemKind.CHARACTER, QuestionType.MEANING, correct=True
            )
            awarded.append(outcome.xp_awarded)

        assert outcome.new_stage == 9
        assert outcome.burned is True
        assert outcome.next_review_at is None
        assert awarded == [10, 10, 10, 60]

        await engine.burns.unburn(learner, curriculum["一"].id, ItemKind.CHARACTER)
        for _ in range(8):
            outcome = await engine.scheduler.submit_answer(
                learner, progress_id, ItemKind.CHARACTER, QuestionType.MEANING, correct=True
            )
        assert outcome.new_stage == 9
        assert outcome.xp_awarded == 10

    @pytest.mark.asyncio
    async def test_burned_item_cannot_be_reviewed(self, engine, learner, curriculum):
        burn = await engine.burns.burn(learner, curriculum["一"].id, ItemKind.CHARACTER)
        with pytest.raises(ForbiddenError):
            await engine.scheduler.submit_answer(
                learner, burn.progress.id, ItemKind.CHARACTER, QuestionType.MEANING, correct=True
            )

    @pytest.mark.asyncio
    async def test_other_users_record_not_found(self, engine, learner, curriculum, user_factory):
        result = await engine.learning.learn_items(learner, [learn(curriculum["一"])])
        other = await user_factory("other@example.com", username="other")

        with pytest.raises(NotFoundError):
            await engine.scheduler.submit_answer(
                other,
                result.items[0].progress_id,
                ItemKind.CHARACTER,
                QuestionType.MEANING,
                correct=True,
            )

    @pytest.mark.asyncio
    async def test_kind_mismatch_not_found(self, engine, learner, curriculum):
        result = await engine.learning.learn_items(learner, [learn(curriculum["一"])])
        with pytest.raises(NotFoundError):
            await engine.scheduler.submit_answer(
                learner,
                result.items[0].progress_id,
                ItemKind.WORD,
                QuestionType.MEANING,
                correct=True,
            )

    @pytest.mark.asyncio
    async def test_kana_only_word_has_no_reading(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, level_one(curriculum))
        result = await engine.learning.learn_items(
            learner, [learn(curriculum["すし"], question_count=1)]
        )
        assert result.xp_awarded == 10

        with pytest.raises(SRSValidationError):
            await engine.scheduler.submit_answer(
                learner,
                result.items[0].progress_id,
                ItemKind.WORD,
                QuestionType.READING,
                correct=True,
            )

    @pytest.mark.asyncio
    async def test_check_answer_is_read_only(self, engine, learner, curriculum):
        check = await engine.scheduler.check_answer(
            learner, curriculum["山"].id, ItemKind.CHARACTER, QuestionType.READING, "san"
        )
        assert check.correct is True
        assert "サン" in check.accepted_answers
        count = await engine.session.scalar(select(func.count(ItemProgress.id)))
        assert count == 0

    @pytest.mark.asyncio
    async def test_racing_answers_apply_once(
        self, engine, learner, curriculum, db_engine, calendar, beta_policy, monkeypatch
    ):
        """A second request answering the same record mid-flight loses with a conflict."""
        result = await engine.learning.learn_items(learner, [learn(curriculum["一"])])
        progress_id = result.items[0].progress_id
        await engine.session.commit()
        engine.clock.advance(timedelta(hours=4))

        session_maker = async_sessionmaker(
            db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )
        async with session_maker() as other_session:
            other = Engine(other_session, engine.clock, calendar, beta_policy)
            flush_record = engine.scheduler.store.save

            async def save_after_other_request(record):
                await other.scheduler.submit_answer(
                    learner, progress_id, ItemKind.CHARACTER, QuestionType.MEANING, correct=True
                )
                await other_session.commit()
                await flush_record(record)

            monkeypatch.setattr(engine.scheduler.store, "save", save_after_other_request)

            with pytest.raises(ConcurrentUpdateError) as exc_info:
                await engine.scheduler.submit_answer(
                    learner, progress_id, ItemKind.CHARACTER, QuestionType.MEANING, correct=True
                )
            assert exc_info.value.code == "concurrent_update"
            assert exc_info.value.status_code == 409

        await engine.session.rollback()

        record = await engine.scheduler.store.get(learner.id, curriculum["一"].id, ItemKind.CHARACTER)
        assert record.stage == 2
        assert record.meaning_correct == 1
        assert await engine.weekly_xp(learner) == 30

        events = await EventStore(engine.session).get_user_activity(
            learner.id, event_types=[EventType.REVIEW_APPLIED]
        )
        assert len(events) == 1


class TestBurning:
    @pytest.mark.asyncio
    async def test_manual_burn_is_idempotent(self, engine, learner, curriculum):
        first = await engine.burns.burn(learner, curriculum["川"].id, ItemKind.CHARACTER)
        assert first.created is True
        assert first.changed is True
        assert first.progress.stage == 9
        assert first.progress.next_review_at is None

        engine.clock.advance(timedelta(days=1))
        second = await engine.burns.burn(learner, curriculum["川"].id, ItemKind.CHARACTER)
        assert second.changed is False
        assert second.progress.burned_at == first.progress.burned_at
        assert await engine.weekly_xp(learner) == 0

    @pytest.mark.asyncio
    async def test_burn_existing_record(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, [learn(curriculum["一"])])
        result = await engine.burns.burn(learner, curriculum["一"].id, ItemKind.CHARACTER)

        assert result.created is False
        assert result.progress.stage == 9
        assert result.progress.burned_at == WEDNESDAY

    @pytest.mark.asyncio
    async def test_unburn(self, engine, learner, curriculum):
        await engine.burns.burn(learner, curriculum["一"].id, ItemKind.CHARACTER)
        engine.clock.advance(timedelta(hours=1))

        snapshot = await engine.burns.unburn(learner, curriculum["一"].id, ItemKind.CHARACTER)

        assert snapshot.stage == 1
        assert snapshot.burned_at is None
        assert snapshot.next_review_at == engine.clock.now() + timedelta(hours=4)

    @pytest.mark.asyncio
    async def test_unburn_without_record(self, engine, learner, curriculum):
        with pytest.raises(NotFoundError):
            await engine.burns.unburn(learner, curriculum["一"].id, ItemKind.CHARACTER)

    @pytest.mark.asyncio
    async def test_list_burned(self, engine, learner, curriculum):
        await engine.burns.burn(learner, curriculum["一"].id, ItemKind.CHARACTER)
        await engine.burns.burn(learner, curriculum["一つ"].id, ItemKind.WORD)

        burned = await engine.burns.list_burned(learner)
        assert burned.total == 2
        assert burned.character_count == 1
        assert burned.word_count == 1

    @pytest.mark.asyncio
    async def test_skip_to_level(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, [learn(curriculum["一"])])

        result = await engine.burns.skip_to_level(learner, 3)

        assert result.levels_skipped == [1, 2]
        assert result.characters_burned == 2
        assert result.words_burned == 2
        assert result.already_started == 1
        assert await engine.gate.is_unlocked(learner.id, 3) is True

        record = await engine.scheduler.store.get(learner.id, curriculum["一"].id, ItemKind.CHARACTER)
        assert record.stage == 1
        assert await engine.weekly_xp(learner) == 20

    @pytest.mark.asyncio
    async def test_skip_to_missing_level(self, engine, learner, curriculum):
        with pytest.raises(NotFoundError):
            await engine.burns.skip_to_level(learner, 42)


class TestSummaryAndReset:
    @pytest.mark.asyncio
    async def test_summary(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, level_one(curriculum))

        summary = await engine.summary.summary(learner)

        assert summary.total_characters == 4
        assert summary.total_words == 2
        assert summary.total_lessons == 3
        assert summary.characters_learned == 2
        assert summary.words_learned == 1
        assert summary.character_pending == 0
        assert summary.accuracy == 0
        assert ensure_utc(summary.next_review_at) == WEDNESDAY + timedelta(hours=4)
        assert summary.weekly_xp.xp == 60
        stage_one = next(s for s in summary.stages if s.stage == 1)
        assert stage_one.characters == 2
        assert stage_one.words == 1
        assert stage_one.tier == StageTier.APPRENTICE
        assert summary.next_review_in == "4h 0m"

    @pytest.mark.asyncio
    async def test_pending_counts_follow_access_policy(
        self, engine, db_session, clock, calendar, learner, curriculum
    ):
        await engine.learning.learn_items(learner, level_one(curriculum))
        await engine.learning.learn_items(
            learner, [learn(curriculum["山"]), learn(curriculum["すし"])]
        )
        engine.clock.advance(timedelta(hours=4))

        open_summary = await engine.summary.summary(learner)
        assert open_summary.character_pending == 3
        assert open_summary.word_pending == 2

        tiered = Engine(db_session, clock, calendar, TieredAccessPolicy(free_level_max=1))
        summary = await tiered.summary.summary(learner)
        due = await tiered.scheduler.get_due_reviews(learner)

        assert summary.character_pending == due.character_pending == 2
        assert summary.word_pending == due.word_pending == 1
        assert summary.characters_learned == 3

    @pytest.mark.asyncio
    async def test_reset(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, level_one(curriculum))

        result = await engine.summary.reset(learner)

        assert result.progress_deleted == 3
        assert result.weekly_xp_deleted == 1
        assert await engine.weekly_xp(learner) == 0
        assert await engine.gate.is_unlocked(learner.id, 2) is False

        await engine.session.flush()
        events = await EventStore(engine.session).get_user_activity(
            learner.id, event_types=[EventType.PROGRESS_RESET]
        )
        assert len(events) == 1
        assert events[0].payload["progress_deleted"] == 3


class TestLeaderboard:
    @pytest.mark.asyncio
    async def test_weekly_ranking(self, engine, learner, curriculum, user_factory):
        rival = await user_factory("rival@example.com", username="rival")
        await engine.learning.learn_items(learner, level_one(curriculum))
        await engine.learning.learn_items(rival, [learn(curriculum["一"])])

        view = await engine.leaderboard.get(rival.id, engine.clock.now())

        assert [(e.display_name, e.xp) for e in view.top] == [("learner", 60), ("rival", 20)]
        assert view.current_user.rank == 2
        assert view.total_active_users == 2

    @pytest.mark.asyncio
    async def test_equal_xp_ranked_by_first_credit(self, engine, user_factory):
        """On equal XP, whoever opened their week row first ranks higher."""
        amy = await user_factory("amy@example.com", username="amy")
        ben = await user_factory("ben@example.com", username="ben")
        cam = await user_factory("cam@example.com", username="cam")

        await engine.ledger.credit(ben.id, 40, engine.clock.now(), reason="review")
        engine.clock.advance(timedelta(minutes=30))
        await engine.ledger.credit(amy.id, 120, engine.clock.now(), reason="review")
        engine.clock.advance(timedelta(minutes=30))
        await engine.ledger.credit(ben.id, 80, engine.clock.now(), reason="review")
        await engine.ledger.credit(cam.id, 80, engine.clock.now(), reason="review")

        view = await engine.leaderboard.get(cam.id, engine.clock.now())

        assert [(e.display_name, e.xp, e.rank) for e in view.top] == [
            ("ben", 120, 1),
            ("amy", 120, 2),
            ("cam", 80, 3),
        ]
        assert view.current_user.rank == 3
        assert view.total_active_users == 3

    @pytest.mark.asyncio
    async def test_new_week_starts_empty(self, engine, learner, curriculum):
        await engine.learning.learn_items(learner, level_one(curriculum))
        engine.clock.advance(timedelta(days=7))

        view = await engine.leaderboard.get(learner.id, engine.clock.now())
        assert view.top == []
        assert await engine.weekly_xp(learner) == 0
