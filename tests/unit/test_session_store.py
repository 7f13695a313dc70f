"""
Unit tests for session state persistence.
"""

import json

import pytest

from src.exam.models import Answer, ExamState, seed_answers
from src.exam.session_store import (
    ExamSessionStore,
    JsonFileBackend,
    MemoryBackend,
    update_answer,
)


class TestRead:
    def test_missing_record_gives_default(self, store):
        state = store.read()

        assert state == ExamState.default()
        assert state.questions == ()
        assert state.answers == ()
        assert state.topic is None
        assert state.round == 1
        assert state.last_result is None
        assert state.used_question_ids == ()

    def test_reads_persisted_record(self, sample_state_dict):
        store = ExamSessionStore(MemoryBackend({"exam_state": json.dumps(sample_state_dict)}))

        state = store.read()

        assert state.topic == "Algebra"
        assert state.round == 2
        assert state.question_ids == [1, 2]
        assert state.answer_for(1) == Answer(question_id=1, answer="x=2", confidence=4)
        assert state.used_question_ids == (10, 11, 12)

    @pytest.mark.parametrize("raw", [
        "{not json",
        "",
        "[]",
        "42",
        '{"round": "many"}',
        '{"round": 0}',
        '{"questions": [{"id": 1}]}',
        '{"questions": [{"id": 1, "text": "q", "type": "ESSAY"}]}',
        '{"answers": [{"answer": "x"}]}',
        '{"lastResult": {"id": 1}}',
        pytest.param("[" * 200_000 + "]" * 200_000, id="deeply-nested"),
    ])
    def test_corrupt_record_gives_default(self, raw):
        store = ExamSessionStore(MemoryBackend({"exam_state": raw}))

        assert store.read() == ExamState.default()

    @pytest.mark.parametrize("answers", [
        [],
        [{"questionId": 1, "answer": "", "confidence": 0}],
        [{"questionId": 1}, {"questionId": 3}],
        [{"questionId": 1}, {"questionId": 1}],
    ])
    def test_answers_not_matching_questions_gives_default(self, sample_state_dict, answers):
        sample_state_dict["answers"] = answers
        store = ExamSessionStore(MemoryBackend({"exam_state": json.dumps(sample_state_dict)}))

        assert store.read() == ExamState.default()

    def test_record_missing_used_ids_defaults_to_empty(self, sample_state_dict):
        del sample_state_dict["usedQuestionIds"]
        store = ExamSessionStore(MemoryBackend({"exam_state": json.dumps(sample_state_dict)}))

        assert store.read().used_question_ids == ()


class TestWrite:
    def test_merges_key_by_key(self, store, sample_questions):
        store.write(questions=sample_questions, answers=seed_answers(sample_questions))

        store.write(topic="Algebra")
        store.write(round=3)
        state = store.read()

        assert state.topic == "Algebra"
        assert state.round == 3
        assert state.question_ids == [1, 2, 3, 4, 5]
        assert len(state.answers) == 5

    def test_never_deletes_absent_keys(self, store, sample_state_dict, memory_backend):
        memory_backend.set("exam_state", json.dumps(sample_state_dict))

        store.write(round=3)

        stored = json.loads(memory_backend.get("exam_state"))
        assert set(stored) == set(sample_state_dict)
        assert stored["usedQuestionIds"] == [10, 11, 12]
        assert stored["answers"] == sample_state_dict["answers"]
        assert stored["round"] == 3

    def test_present_key_fully_replaces(self, store):
        store.write(used_question_ids=[1, 2, 3])
        store.write(used_question_ids=[9])

        assert store.read().used_question_ids == (9,)

    def test_accepts_dict_partial(self, store):
        store.write({"topic": "Geometry", "round": 2})

        state = store.read()
        assert state.topic == "Geometry"
        assert state.round == 2

    def test_unknown_key_rejected(self, store):
        with pytest.raises(KeyError):
            store.write(score=5)
        assert not store.exists()

    def test_write_over_corrupt_record_starts_from_default(self, memory_backend):
        memory_backend.set("exam_state", "{broken")
        store = ExamSessionStore(memory_backend)

        store.write(topic="Algebra")

        state = store.read()
        assert state.topic == "Algebra"
        assert state.round == 1

    def test_persisted_keys_are_camel_case(self, store, memory_backend):
        store.write(used_question_ids=[1], topic="Algebra")

        stored = json.loads(memory_backend.get("exam_state"))
        assert set(stored) == {"questions", "answers", "topic", "round", "lastResult", "usedQuestionIds"}


class TestClear:
    def test_clear_then_read_gives_default(self, store):
        store.write(topic="Algebra", round=4)

        store.clear()

        assert store.read() == ExamState.default()
        assert not store.exists()

    def test_clear_without_record_is_noop(self, store):
        store.clear()
        assert store.read() == ExamState.default()


class TestJsonFileBackend:
    def test_survives_new_store_instance(self, tmp_path, sample_questions):
        ExamSessionStore(JsonFileBackend(tmp_path)).write(
            questions=sample_questions,
            answers=seed_answers(sample_questions),
            topic="Algebra",
        )

        state = ExamSessionStore(JsonFileBackend(tmp_path)).read()

        assert state.topic == "Algebra"
        assert [q.id for q in state.questions] == [1, 2, 3, 4, 5]
        assert state.questions[0].choices == sample_questions[0].choices

    def test_no_temp_files_left_behind(self, tmp_path):
        store = ExamSessionStore(JsonFileBackend(tmp_path))
        store.write(topic="Algebra")
        store.write(round=2)

        assert [p.name for p in tmp_path.iterdir()] == ["exam_state.json"]

    def test_corrupt_file_gives_default(self, tmp_path):
        (tmp_path / "exam_state.json").write_text("{{{", encoding="utf-8")

        assert ExamSessionStore(JsonFileBackend(tmp_path)).read() == ExamState.default()

    def test_clear_removes_file(self, tmp_path):
        store = ExamSessionStore(JsonFileBackend(tmp_path))
        store.write(topic="Algebra")

        store.clear()

        assert not (tmp_path / "exam_state.json").exists()

    def test_custom_key(self, tmp_path):
        store = ExamSessionStore(JsonFileBackend(tmp_path), key="profile_a")
        store.write(topic="Algebra")

        assert (tmp_path / "profile_a.json").exists()


class TestUpdateAnswer:
    def test_only_matching_entry_changes(self, sample_questions):
        answers = seed_answers(sample_questions)

        updated = update_answer(answers, 1, answer="x=2", confidence=4)

        assert updated[0] == Answer(question_id=1, answer="x=2", confidence=4)
        for before, after in zip(answers[1:], updated[1:]):
            assert after is before

    def test_partial_edit_keeps_other_field(self):
        answers = (Answer(question_id=1, answer="x=2", confidence=1),)

        updated = update_answer(answers, 1, confidence=5)

        assert updated[0] == Answer(question_id=1, answer="x=2", confidence=5)

    @pytest.mark.parametrize("confidence", [-1, 6])
    def test_confidence_out_of_range(self, confidence):
        with pytest.raises(ValueError):
            update_answer((Answer.blank(1),), 1, confidence=confidence)

    def test_unknown_question(self):
        with pytest.raises(KeyError):
            update_answer((Answer.blank(1),), 99, answer="x")
