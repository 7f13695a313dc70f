"""
Data model for adaptive exam sessions.

Wire and persisted payloads use camelCase keys (questionId, usedQuestionIds,
...); the dataclasses below use snake_case attributes and convert at the
boundary through from_dict / to_dict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .errors import MalformedPersistedState

QuestionId = Union[int, str]

MIN_CONFIDENCE = 0
MAX_CONFIDENCE = 5


class QuestionType(str, Enum):
    """How a question is answered."""

    MCQ = "MCQ"
    WRITTEN = "WRITTEN"


@dataclass(frozen=True)
class Question:
    """A question as served by the selector, in canonical order."""

    id: QuestionId
    text: str
    type: QuestionType
    topic: str | None = None
    choices: tuple[str, ...] | None = None
    created_by: str | None = None  # 'CREATOR' or 'AI'
    is_active: bool | None = None
    is_initial: bool | None = None

    @property
    def is_mcq(self) -> bool:
        return self.type == QuestionType.MCQ

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Question:
        choices = data.get("choices")
        return cls(
            id=data["id"],
            text=data["text"],
            type=QuestionType(data["type"]),
            topic=data.get("topic"),
            choices=tuple(choices) if choices is not None else None,
            created_by=data.get("createdBy"),
            is_active=data.get("isActive"),
            is_initial=data.get("isInitial"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
        }
        if self.topic is not None:
            data["topic"] = self.topic
        if self.choices is not None:
            data["choices"] = list(self.choices)
        if self.created_by is not None:
            data["createdBy"] = self.created_by
        if self.is_active is not None:
            data["isActive"] = self.is_active
        if self.is_initial is not None:
            data["isInitial"] = self.is_initial
        return data


@dataclass(frozen=True)
class Answer:
    """The user's in-progress answer to one question."""

    question_id: QuestionId
    answer: str = ""
    confidence: int = 0

    @classmethod
    def blank(cls, question_id: QuestionId) -> Answer:
        return cls(question_id=question_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Answer:
        return cls(
            question_id=data["questionId"],
            answer=str(data.get("answer", "")),
            confidence=int(data.get("confidence", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionId": self.question_id,
            "answer": self.answer,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class GradedAnswer:
    """An answer after server-side grading. is_correct is None while pending."""

    question_id: QuestionId
    answer: str
    confidence: int
    is_correct: bool | None = None
    feedback: str | None = None
    topic: str | None = None
    question_type: QuestionType | None = None
    question_text: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.is_correct is None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GradedAnswer:
        question_type = data.get("questionType")
        return cls(
            question_id=data["questionId"],
            answer=str(data.get("answer", "")),
            confidence=int(data.get("confidence", 0)),
            is_correct=data.get("isCorrect"),
            feedback=data.get("feedback"),
            topic=data.get("topic"),
            question_type=QuestionType(question_type) if question_type else None,
            question_text=data.get("questionText"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "questionId": self.question_id,
            "answer": self.answer,
            "confidence": self.confidence,
            "isCorrect": self.is_correct,
        }
        if self.feedback is not None:
            data["feedback"] = self.feedback
        if self.topic is not None:
            data["topic"] = self.topic
        if self.question_type is not None:
            data["questionType"] = self.question_type.value
        if self.question_text is not None:
            data["questionText"] = self.question_text
        return data


@dataclass(frozen=True)
class ExamResult:
    """A graded round. Score and total are computed by the server."""

    id: QuestionId
    timestamp: str
    score: int
    total: int
    answers: tuple[GradedAnswer, ...] = ()
    summary: str | None = None
    next_steps: tuple[str, ...] | None = None

    @property
    def is_mastery(self) -> bool:
        """A perfect round ends the adaptive loop for the topic."""
        return self.score == self.total

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 0.0
        return self.score / self.total * 100

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExamResult:
        next_steps = data.get("nextSteps")
        return cls(
            id=data["id"],
            timestamp=data.get("timestamp", ""),
            score=int(data["score"]),
            total=int(data["total"]),
            answers=tuple(GradedAnswer.from_dict(a) for a in data.get("answers", [])),
            summary=data.get("summary"),
            next_steps=tuple(next_steps) if next_steps is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "score": self.score,
            "total": self.total,
            "answers": [a.to_dict() for a in self.answers],
        }
        if self.summary is not None:
            data["summary"] = self.summary
        if self.next_steps is not None:
            data["nextSteps"] = list(self.next_steps)
        return data


@dataclass(frozen=True)
class AdaptiveAnalysis:
    """Selector's reading of the previous round."""

    summary: str = ""
    next_steps: tuple[str, ...] = ()
    weak_topics: tuple[str, ...] = ()
    strong_topics: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdaptiveAnalysis:
        return cls(
            summary=data.get("summary", ""),
            next_steps=tuple(data.get("nextSteps", [])),
            weak_topics=tuple(data.get("weakTopics", [])),
            strong_topics=tuple(data.get("strongTopics", [])),
        )


@dataclass(frozen=True)
class AdaptiveResponse:
    """Next adaptive batch plus the analysis that chose it."""

    questions: tuple[Question, ...]
    analysis: AdaptiveAnalysis

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdaptiveResponse:
        return cls(
            questions=tuple(Question.from_dict(q) for q in data["questions"]),
            analysis=AdaptiveAnalysis.from_dict(data.get("analysis") or {}),
        )


@dataclass(frozen=True)
class ExamInfo:
    """Topics the question bank offers."""

    topics: tuple[str, ...] = ()
    total_questions: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExamInfo:
        return cls(
            topics=tuple(data.get("topics", [])),
            total_questions=int(data.get("totalQuestions", 0)),
        )


@dataclass(frozen=True)
class AIStatus:
    """Whether the server's adaptive selection is AI-backed."""

    ai_enabled: bool = False
    last_adaptive_method: str = "MANUAL"  # 'AI' or 'MANUAL'
    api_key_configured: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AIStatus:
        return cls(
            ai_enabled=bool(data.get("aiEnabled", False)),
            last_adaptive_method=data.get("lastAdaptiveMethod", "MANUAL"),
            api_key_configured=bool(data.get("apiKeyConfigured", False)),
        )


# =============================================================================
# Session record
# =============================================================================

# snake_case attribute -> persisted camelCase key
STATE_KEYS = {
    "questions": "questions",
    "answers": "answers",
    "topic": "topic",
    "round": "round",
    "last_result": "lastResult",
    "used_question_ids": "usedQuestionIds",
}


@dataclass(frozen=True)
class ExamState:
    """
    The persisted session record.

    questions are kept in canonical (server) order; answers carry exactly one
    entry per question id. used_question_ids accumulates every id served in a
    completed round and never shrinks.
    """

    questions: tuple[Question, ...] = ()
    answers: tuple[Answer, ...] = ()
    topic: str | None = None
    round: int = 1
    last_result: ExamResult | None = None
    used_question_ids: tuple[QuestionId, ...] = ()

    @classmethod
    def default(cls) -> ExamState:
        return cls()

    @property
    def question_ids(self) -> list[QuestionId]:
        return [q.id for q in self.questions]

    def answer_for(self, question_id: QuestionId) -> Answer | None:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    @classmethod
    def from_dict(cls, data: Any) -> ExamState:
        """
        Parse a persisted record.

        Raises:
            MalformedPersistedState: if the record does not have the expected shape
        """
        if not isinstance(data, dict):
            raise MalformedPersistedState(f"expected an object, got {type(data).__name__}")
        try:
            last_result = data.get("lastResult")
            round_number = int(data.get("round", 1))
            if round_number < 1:
                raise ValueError(f"round must be >= 1, got {round_number}")
            state = cls(
                questions=tuple(Question.from_dict(q) for q in data.get("questions", [])),
                answers=tuple(Answer.from_dict(a) for a in data.get("answers", [])),
                topic=data.get("topic"),
                round=round_number,
                last_result=ExamResult.from_dict(last_result) if last_result else None,
                used_question_ids=tuple(data.get("usedQuestionIds") or []),
            )
            answer_ids = [a.question_id for a in state.answers]
            if len(answer_ids) != len(state.questions) or set(answer_ids) != set(state.question_ids):
                raise ValueError("answers do not match questions one-to-one")
            return state
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedPersistedState(str(e)) from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "questions": [q.to_dict() for q in self.questions],
            "answers": [a.to_dict() for a in self.answers],
            "topic": self.topic,
            "round": self.round,
            "lastResult": self.last_result.to_dict() if self.last_result else None,
            "usedQuestionIds": list(self.used_question_ids),
        }


def seed_answers(questions: tuple[Question, ...] | list[Question]) -> tuple[Answer, ...]:
    """Blank answer (empty text, confidence 0) for every question."""
    return tuple(Answer.blank(q.id) for q in questions)
