"""
Unit tests for exam data model parsing.
"""

import pytest

from src.exam.errors import MalformedPersistedState
from src.exam.models import (
    Answer,
    ExamResult,
    ExamState,
    GradedAnswer,
    Question,
    QuestionType,
    seed_answers,
)


class TestQuestion:
    def test_optional_fields_omitted_from_payload(self):
        question = Question(id=3, text="Explain", type=QuestionType.WRITTEN)

        assert question.to_dict() == {"id": 3, "text": "Explain", "type": "WRITTEN"}

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            Question.from_dict({"id": 1, "text": "q", "type": "ESSAY"})

    def test_string_ids_supported(self):
        question = Question.from_dict({"id": "q-1", "text": "q", "type": "MCQ", "choices": []})

        assert question.id == "q-1"
        assert question.choices == ()
        assert question.is_mcq


class TestExamResult:
    def test_mastery_and_percent(self):
        assert ExamResult(id=1, timestamp="", score=5, total=5).is_mastery
        partial = ExamResult(id=2, timestamp="", score=3, total=5)
        assert not partial.is_mastery
        assert partial.percent == pytest.approx(60.0)

    def test_empty_round_percent(self):
        assert ExamResult(id=1, timestamp="", score=0, total=0).percent == 0.0

    def test_pending_answer_keeps_null(self):
        graded = GradedAnswer(question_id=1, answer="essay", confidence=2)

        assert graded.is_pending
        assert graded.to_dict()["isCorrect"] is None


class TestExamState:
    def test_default_shape(self):
        assert ExamState.default().to_dict() == {
            "questions": [],
            "answers": [],
            "topic": None,
            "round": 1,
            "lastResult": None,
            "usedQuestionIds": [],
        }

    def test_from_dict(self, sample_state_dict):
        state = ExamState.from_dict(sample_state_dict)

        assert state.round == 2
        assert state.questions[0].choices == ("x=1", "x=2")
        assert state.answer_for(2) == Answer(question_id=2)
        assert state.answer_for(99) is None

    @pytest.mark.parametrize("data", [
        None,
        [],
        "text",
        {"round": -1},
        {"answers": [{}]},
        {"questions": [{"id": 1, "text": "q", "type": "WRITTEN"}], "answers": []},
        {"answers": [{"questionId": 1}]},
    ])
    def test_malformed_raises(self, data):
        with pytest.raises(MalformedPersistedState):
            ExamState.from_dict(data)

    def test_seed_answers(self, sample_questions):
        answers = seed_answers(sample_questions)

        assert [a.question_id for a in answers] == [q.id for q in sample_questions]
        assert all(a.answer == "" and a.confidence == 0 for a in answers)
