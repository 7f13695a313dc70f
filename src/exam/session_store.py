"""
Session state persistence for exam sessions.

Holds the one in-progress ExamState for a client profile so a session can be
resumed after the CLI exits. Records are JSON blobs behind a small key-value
backend; the default backend keeps one file per key in ~/.exam/state/.

There is no versioning: a record that cannot be parsed is treated as absent.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from .errors import MalformedPersistedState
from .models import STATE_KEYS, Answer, ExamState, QuestionId, MAX_CONFIDENCE, MIN_CONFIDENCE

DEFAULT_STATE_KEY = "exam_state"

# Default state directory
STATE_DIR = Path.home() / ".exam" / "state"


class KeyValueBackend(Protocol):
    """Minimal storage contract the session store needs."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryBackend:
    """In-process backend, mainly for tests."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileBackend:
    """
    Stores each key as {key}.json in a directory.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so readers see either the old or the new record.
    """

    def __init__(self, state_dir: Path | None = None):
        self.state_dir = state_dir or STATE_DIR
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.state_dir / f"{key}.json"

    def get(self, key: str) -> str | None:
        filepath = self._path(key)
        if not filepath.exists():
            return None
        try:
            return filepath.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {filepath}: {e}")
            return None

    def set(self, key: str, value: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.state_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class ExamSessionStore:
    """
    Read-with-default, merge-write and clear over one session record.

    write() merges key by key: every key passed replaces the stored value for
    that key, every other key keeps its stored value.
    """

    def __init__(self, backend: KeyValueBackend | None = None, key: str = DEFAULT_STATE_KEY):
        self.backend = backend if backend is not None else JsonFileBackend()
        self.key = key

    def read(self) -> ExamState:
        """Current record, or the default state if absent or unreadable."""
        raw = self.backend.get(self.key)
        if raw is None:
            return ExamState.default()
        try:
            return _parse(raw)
        except MalformedPersistedState as e:
            logger.debug(f"Discarding unreadable session record '{self.key}': {e}")
            return ExamState.default()

    def write(self, partial: dict[str, Any] | None = None, **fields: Any) -> ExamState:
        """
        Merge fields into the stored record and persist it.

        Accepts snake_case ExamState attribute names either as a dict or as
        keyword arguments. Returns the merged state.

        Raises:
            KeyError: if a field is not an ExamState attribute
        """
        updates = {**(partial or {}), **fields}
        unknown = set(updates) - set(STATE_KEYS)
        if unknown:
            raise KeyError(f"Unknown session fields: {sorted(unknown)}")

        for name in ("questions", "answers", "used_question_ids"):
            if name in updates:
                updates[name] = tuple(updates[name])

        merged = replace(self.read(), **updates)
        self.backend.set(self.key, json.dumps(merged.to_dict(), ensure_ascii=False))
        return merged

    def replace_all(self, state: ExamState) -> ExamState:
        """Persist a complete record, replacing whatever was stored."""
        self.backend.set(self.key, json.dumps(state.to_dict(), ensure_ascii=False))
        return state

    def clear(self) -> None:
        """Remove the record. The next read() returns the default state."""
        self.backend.delete(self.key)

    def exists(self) -> bool:
        return self.backend.get(self.key) is not None


def _parse(raw: str) -> ExamState:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, RecursionError) as e:
        raise MalformedPersistedState(str(e)) from e
    return ExamState.from_dict(data)


def update_answer(
    answers: tuple[Answer, ...] | list[Answer],
    question_id: QuestionId,
    answer: str | None = None,
    confidence: int | None = None,
) -> tuple[Answer, ...]:
    """
    Replace the entry for question_id; every other entry is returned as-is.

    Raises:
        ValueError: if confidence is outside 0..5
        KeyError: if no entry matches question_id
    """
    if confidence is not None and not MIN_CONFIDENCE <= confidence <= MAX_CONFIDENCE:
        raise ValueError(f"Confidence must be {MIN_CONFIDENCE}-{MAX_CONFIDENCE}, got {confidence}")

    updated = []
    found = False
    for entry in answers:
        if entry.question_id == question_id:
            found = True
            changes: dict[str, Any] = {}
            if answer is not None:
                changes["answer"] = answer
            if confidence is not None:
                changes["confidence"] = confidence
            entry = replace(entry, **changes)
        updated.append(entry)

    if not found:
        raise KeyError(f"No answer entry for question {question_id!r}")
    return tuple(updated)
