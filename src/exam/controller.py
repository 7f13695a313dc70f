"""
Adaptive Continuation Controller.

Owns the session state machine:

    IDLE --start--> IN_ROUND --submit--> SUBMITTED --continue--> CONTINUING --> IN_ROUND (round + 1)
                                              |
                                              +--finish / home--> FINISHED (record cleared)

Every transition that talks to the exam service writes nothing until the call
has succeeded, so a failed call leaves the persisted record exactly as it was
and the same transition can simply be retried.

The ids of every completed round are folded into used_question_ids before the
selector is asked for the next round. That set only ever grows; it is what
keeps the selector from re-serving questions the user already answered.
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Iterable, Iterator, Protocol

from loguru import logger

from .errors import InvalidTransition, MasteryReached, MissingPrerequisite, TransitionInProgress
from .models import (
    AdaptiveAnalysis,
    AdaptiveResponse,
    Answer,
    ExamResult,
    ExamState,
    Question,
    QuestionId,
    seed_answers,
)
from .randomizer import RoundPresentation
from .session_store import ExamSessionStore, update_answer


class ExamPhase(str, Enum):
    IDLE = "idle"
    IN_ROUND = "in_round"
    SUBMITTED = "submitted"
    CONTINUING = "continuing"
    FINISHED = "finished"


class ExamCollaborator(Protocol):
    """The selector/grader side of the exam service."""

    async def start_exam(self, topic: str | None = None) -> list[Question]: ...

    async def submit_exam(self, answers: Iterable[Answer]) -> ExamResult: ...

    async def fetch_adaptive_exam(
        self,
        result_id: QuestionId | None = None,
        excluded_ids: Iterable[QuestionId] | None = None,
    ) -> AdaptiveResponse: ...


def phase_of(state: ExamState) -> ExamPhase:
    """Phase implied by a persisted record."""
    if state.last_result is not None:
        return ExamPhase.SUBMITTED
    if state.questions:
        return ExamPhase.IN_ROUND
    return ExamPhase.IDLE


def merge_used_ids(
    used: Iterable[QuestionId], served: Iterable[QuestionId]
) -> tuple[QuestionId, ...]:
    """
    Union of previously used ids and the ids just served.

    Keeps the existing order and drops ids already present, so folding the
    same round in twice (a retried continue) does not double count.
    """
    merged = list(dict.fromkeys(used))
    seen = set(merged)
    for question_id in served:
        if question_id not in seen:
            seen.add(question_id)
            merged.append(question_id)
    return tuple(merged)


class AdaptiveExamController:
    """
    Drives one exam session against a store and a collaborator.

    Views bind to exactly one method each; none of them hold transition
    logic. Only one transition may be in flight at a time.
    """

    def __init__(
        self,
        store: ExamSessionStore,
        collaborator: ExamCollaborator,
        presentation: RoundPresentation | None = None,
    ):
        self.store = store
        self.collaborator = collaborator
        self.presentation_cache = presentation or RoundPresentation()
        self.state = store.read()
        self.phase = phase_of(self.state)
        self._busy = False

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def busy(self) -> bool:
        """True while a transition awaits the exam service."""
        return self._busy

    @property
    def can_continue(self) -> bool:
        """Continue is offered only after a graded round that was not perfect."""
        result = self.state.last_result
        return (
            self.phase == ExamPhase.SUBMITTED
            and result is not None
            and not result.is_mastery
            and not self._busy
        )

    @property
    def presentation(self) -> list[Question]:
        """Randomized questions for the current round, shuffled once per round."""
        return self.presentation_cache.for_round(self.state.round, self.state.questions)

    def refresh(self) -> ExamState:
        """Reload the record (another writer may have changed it)."""
        self.state = self.store.read()
        if self.phase not in (ExamPhase.CONTINUING, ExamPhase.FINISHED):
            self.phase = phase_of(self.state)
        return self.state

    def require_round(self) -> ExamState:
        """
        State for the round view.

        Raises:
            MissingPrerequisite: if there are no questions to answer
        """
        state = self.refresh()
        if not state.questions:
            raise MissingPrerequisite("No exam in progress")
        return state

    def require_result(self) -> ExamResult:
        """
        Result for the result view.

        Raises:
            MissingPrerequisite: if no round has been graded
        """
        state = self.refresh()
        if state.last_result is None:
            raise MissingPrerequisite("No graded round to show")
        return state.last_result

    # =========================================================================
    # Transitions
    # =========================================================================

    @contextmanager
    def _transition(self, name: str, *allowed: ExamPhase) -> Iterator[None]:
        if self._busy:
            raise TransitionInProgress(f"Cannot {name}: another transition is in flight")
        if allowed and self.phase not in allowed:
            raise InvalidTransition(f"Cannot {name} while {self.phase.value}")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    async def start(self, topic: str | None = None) -> ExamState:
        """
        Begin a new session with a fresh batch.

        Any previous record is replaced, but only once the batch has arrived.
        """
        with self._transition("start"):
            questions = await self.collaborator.start_exam(topic)

            self.state = self.store.replace_all(
                ExamState(
                    questions=tuple(questions),
                    answers=seed_answers(questions),
                    topic=topic,
                    round=1,
                    last_result=None,
                    used_question_ids=(),
                )
            )
            self.presentation_cache.reset()
            self.phase = ExamPhase.IN_ROUND
            logger.info(f"Started exam: {len(questions)} questions, topic={topic!r}")
            return self.state

    def edit_answer(
        self,
        question_id: QuestionId,
        answer: str | None = None,
        confidence: int | None = None,
    ) -> Answer:
        """
        Record an edit to one answer and persist the answers list.

        Raises:
            InvalidTransition: outside a round
            KeyError: if question_id is not in the current round
            ValueError: if confidence is outside 0..5
        """
        with self._transition("edit an answer", ExamPhase.IN_ROUND):
            current = self.store.read()
            answers = update_answer(current.answers, question_id, answer=answer, confidence=confidence)
            self.state = self.store.write(answers=answers)
            return self.state.answer_for(question_id)

    async def submit(self) -> ExamResult:
        """
        Send the round's answers for grading.

        Raises:
            TransientCollaboratorError: grading failed; still IN_ROUND, retryable
        """
        with self._transition("submit", ExamPhase.IN_ROUND):
            answers = self.store.read().answers
            result = await self.collaborator.submit_exam(answers)

            self.state = self.store.write(last_result=result)
            self.phase = ExamPhase.SUBMITTED
            logger.info(f"Round {self.state.round} submitted: {result.score}/{result.total}")
            return result

    async def continue_round(self) -> AdaptiveAnalysis:
        """
        Fetch the next adaptive round, excluding every id served so far.

        Raises:
            MasteryReached: the last round was perfect
            TransientCollaboratorError: selection failed; still SUBMITTED, retryable
        """
        with self._transition("continue", ExamPhase.SUBMITTED):
            current = self.store.read()
            result = current.last_result
            if result is None:
                raise MissingPrerequisite("No graded round to continue from")
            if result.is_mastery:
                raise MasteryReached(f"Round {current.round} was perfect; nothing left to adapt")

            next_used = merge_used_ids(current.used_question_ids, current.question_ids)

            self.phase = ExamPhase.CONTINUING
            try:
                batch = await self.collaborator.fetch_adaptive_exam(result.id, next_used)
            except BaseException:
                self.phase = ExamPhase.SUBMITTED
                raise

            overlap = set(next_used) & {q.id for q in batch.questions}
            if overlap:
                logger.warning(f"Selector re-served excluded questions: {sorted(map(str, overlap))}")

            self.state = self.store.write(
                questions=batch.questions,
                answers=seed_answers(batch.questions),
                round=current.round + 1,
                last_result=None,
                used_question_ids=next_used,
            )
            self.phase = ExamPhase.IN_ROUND
            logger.info(
                f"Round {self.state.round}: {len(batch.questions)} questions, "
                f"{len(next_used)} excluded"
            )
            return batch.analysis

    def finish(self) -> None:
        """End the session and drop the record."""
        with self._transition("finish"):
            self.store.clear()
            self.state = ExamState.default()
            self.presentation_cache.reset()
            self.phase = ExamPhase.FINISHED
            logger.info("Exam session finished")

    go_home = finish
