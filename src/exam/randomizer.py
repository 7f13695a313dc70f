"""
Round Randomizer.

Builds the display order for one round: questions are permuted, and the
choices of every MCQ are permuted independently. The permutation is taken
once when the round is entered and reused for every redraw of that round,
so options never move under the user while they are answering.

Only canonical order is persisted. A reload shuffles again.
"""

from __future__ import annotations

import random
from dataclasses import replace
from typing import Protocol, Sequence, TypeVar

from loguru import logger

from .models import Question, QuestionId

T = TypeVar("T")


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int: ...


def shuffle(items: Sequence[T], rng: RandomSource) -> list[T]:
    """
    Fisher-Yates shuffle into a new list.

    Every ordering is equally likely given a uniform rng. The input is not
    modified.
    """
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def randomize_round(questions: Sequence[Question], rng: RandomSource) -> list[Question]:
    """
    Permute question order and each MCQ's choices.

    WRITTEN questions and MCQs without choices pass through unchanged.
    """
    presented = []
    for question in shuffle(questions, rng):
        if question.is_mcq and question.choices:
            question = replace(question, choices=tuple(shuffle(question.choices, rng)))
        presented.append(question)
    return presented


class RoundPresentation:
    """
    Per-round cache of the randomized question list.

    The cache is keyed on the round number and the canonical id list; asking
    for the same round again returns the identical list object.
    """

    def __init__(self, rng: RandomSource | None = None):
        self.rng = rng or random.Random()
        self._key: tuple[int, tuple[QuestionId, ...]] | None = None
        self._questions: list[Question] = []

    def for_round(self, round_number: int, questions: Sequence[Question]) -> list[Question]:
        key = (round_number, tuple(q.id for q in questions))
        if key != self._key:
            self._questions = randomize_round(questions, self.rng)
            self._key = key
            logger.debug(f"Randomized round {round_number} ({len(questions)} questions)")
        return self._questions

    def reset(self) -> None:
        self._key = None
        self._questions = []
