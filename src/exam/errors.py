"""
Exception hierarchy for the exam session controller.

None of these are fatal: collaborator failures are retryable, corrupt records
are silently defaulted, and missing prerequisites redirect to the start.
"""

from __future__ import annotations


class ExamError(Exception):
    """Base class for exam session errors."""


class TransientCollaboratorError(ExamError):
    """A selector/grader call failed. Persisted state was left untouched."""

    def __init__(self, operation: str, message: str, status_code: int | None = None):
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"{operation} failed: {message}")


class MalformedPersistedState(ExamError):
    """The stored session record could not be parsed."""


class MissingPrerequisite(ExamError):
    """A view was entered without the state it needs."""


class InvalidTransition(ExamError):
    """A transition was requested from a phase that does not allow it."""


class MasteryReached(InvalidTransition):
    """Continue was requested after a perfect round."""


class TransitionInProgress(ExamError):
    """Another transition is still awaiting its collaborator call."""
