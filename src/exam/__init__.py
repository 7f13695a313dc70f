"""
Adaptive Exam: client-side controller for multi-round adaptive exams.

Components:
- Models: questions, answers, graded results and the session record
- Randomizer: per-round shuffle of questions and MCQ choices
- ExamSessionStore: durable read / merge-write / clear of the session record
- AdaptiveExamController: round state machine (start, submit, continue, finish)
- ExamApiClient: HTTP client for the selector/grader service
"""

from .api_client import ExamApiClient
from .controller import AdaptiveExamController, ExamPhase, merge_used_ids
from .errors import (
    ExamError,
    InvalidTransition,
    MalformedPersistedState,
    MasteryReached,
    MissingPrerequisite,
    TransientCollaboratorError,
    TransitionInProgress,
)
from .models import (
    AdaptiveAnalysis,
    AdaptiveResponse,
    AIStatus,
    Answer,
    ExamInfo,
    ExamResult,
    ExamState,
    GradedAnswer,
    Question,
    QuestionType,
)
from .randomizer import RoundPresentation, randomize_round, shuffle
from .session_store import ExamSessionStore, JsonFileBackend, MemoryBackend, update_answer

__all__ = [
    # Models
    "Question",
    "QuestionType",
    "Answer",
    "GradedAnswer",
    "ExamResult",
    "ExamState",
    "AdaptiveAnalysis",
    "AdaptiveResponse",
    "ExamInfo",
    "AIStatus",
    # Randomization
    "shuffle",
    "randomize_round",
    "RoundPresentation",
    # Persistence
    "ExamSessionStore",
    "JsonFileBackend",
    "MemoryBackend",
    "update_answer",
    # Session control
    "AdaptiveExamController",
    "ExamPhase",
    "merge_used_ids",
    # Service
    "ExamApiClient",
    # Errors
    "ExamError",
    "TransientCollaboratorError",
    "MalformedPersistedState",
    "MissingPrerequisite",
    "InvalidTransition",
    "MasteryReached",
    "TransitionInProgress",
]
