"""Unit tests for review question expansion."""

import random
import uuid
from datetime import datetime, timezone

from src.engines.srs.answer_checker import QuestionType
from src.engines.srs.review_scheduler import DueReview, expand_questions
from src.kernel.models.progress import ItemKind


def _due(text: str, kind: ItemKind = ItemKind.CHARACTER, kana_only: bool = False) -> DueReview:
    return DueReview(
        progress_id=uuid.uuid4(),
        item_id=uuid.uuid4(),
        kind=kind,
        level=1,
        text=text,
        primary_meaning="x",
        meanings=["x"],
        readings=["x"],
        is_kana_only=kana_only,
        stage=1,
        stage_name="Apprentice 1",
        next_review_at=datetime(2026, 3, 11, tzinfo=timezone.utc),
    )


class TestExpandQuestions:
    def test_two_questions_per_kanji_item(self):
        items = [_due("一"), _due("一つ", ItemKind.WORD)]
        questions = expand_questions(items, random.Random(7))

        assert len(questions) == 4
        for item in items:
            types = {q.question_type for q in questions if q.progress_id == item.progress_id}
            assert types == {QuestionType.MEANING, QuestionType.READING}

    def test_kana_only_word_gets_meaning_only(self):
        item = _due("すし", ItemKind.WORD, kana_only=True)
        questions = expand_questions([item], random.Random(7))

        assert [q.question_type for q in questions] == [QuestionType.MEANING]

    def test_same_seed_same_order(self):
        items = [_due("一"), _due("二"), _due("山")]
        first = expand_questions(items, random.Random(42))
        second = expand_questions(items, random.Random(42))

        assert [(q.progress_id, q.question_type) for q in first] == [
            (q.progress_id, q.question_type) for q in second
        ]

    def test_empty(self):
        assert expand_questions([], random.Random(1)) == []
