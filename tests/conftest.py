"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.exam.models import ExamResult, GradedAnswer, Question, QuestionType  # noqa: E402
from src.exam.session_store import ExamSessionStore, MemoryBackend  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


def make_questions(start: int = 1, count: int = 5, topic: str = "Algebra") -> list[Question]:
    """Alternating MCQ / WRITTEN questions with sequential ids."""
    questions = []
    for qid in range(start, start + count):
        if qid % 2:
            questions.append(Question(
                id=qid,
                text=f"Solve equation {qid}",
                type=QuestionType.MCQ,
                topic=topic,
                choices=(f"x={qid}", f"x={qid + 1}", f"x={qid + 2}", f"x={qid + 3}"),
                created_by="CREATOR",
            ))
        else:
            questions.append(Question(
                id=qid,
                text=f"Explain step {qid}",
                type=QuestionType.WRITTEN,
                topic=topic,
            ))
    return questions


def make_result(result_id: int, questions: list[Question], score: int) -> ExamResult:
    """Graded result where the first `score` answers are correct."""
    return ExamResult(
        id=result_id,
        timestamp="2024-05-01T10:00:00Z",
        score=score,
        total=len(questions),
        answers=tuple(
            GradedAnswer(
                question_id=q.id,
                answer="",
                confidence=0,
                is_correct=i < score,
                question_text=q.text,
            )
            for i, q in enumerate(questions)
        ),
        summary="Keep practising linear equations",
        next_steps=("Review substitution",),
    )


@pytest.fixture
def sample_questions():
    """Five Algebra questions in canonical order."""
    return make_questions()


@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def store(memory_backend):
    """Session store over an in-memory backend."""
    return ExamSessionStore(memory_backend)


@pytest.fixture
def sample_state_dict():
    """A persisted mid-round record in wire format."""
    return {
        "questions": [
            {"id": 1, "text": "2x = 4", "type": "MCQ", "topic": "Algebra", "choices": ["x=1", "x=2"]},
            {"id": 2, "text": "Explain factoring", "type": "WRITTEN", "topic": "Algebra"},
        ],
        "answers": [
            {"questionId": 1, "answer": "x=2", "confidence": 4},
            {"questionId": 2, "answer": "", "confidence": 0},
        ],
        "topic": "Algebra",
        "round": 2,
        "lastResult": None,
        "usedQuestionIds": [10, 11, 12],
    }


@pytest.fixture
def question_factory():
    """make_questions(start, count, topic) as a fixture."""
    return make_questions


@pytest.fixture
def result_factory():
    """make_result(result_id, questions, score) as a fixture."""
    return make_result
