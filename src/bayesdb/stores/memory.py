"""Dictionary-backed statistics store."""

from __future__ import annotations

import logging
import pickle
import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import StoreIntegrityError
from ..types import ClassAggregate, GlobalCounters, Word
from .base import word_vector

LOGGER = logging.getLogger(__name__)
STATE_VERSION = 1


@dataclass
class _WordRow:
    id: int
    seen: int
    docs_seen: int
    counts: dict[int, int] = field(default_factory=dict)


class MemoryStore:
    """Keeps the four statistics tables in process memory.

    Mirrors the row-level behaviour of the SQL backend, including the
    integrity failures, so the engine behaves identically on top of it.
    With a ``path`` the tables are pickled there on :meth:`flush` and loaded
    back on construction; without one they die with the process.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._lock = threading.Lock()
        self._words: dict[str, _WordRow] = {}
        self._words_by_id: dict[int, _WordRow] = {}
        self._classes: dict[int, ClassAggregate] = {}
        self._counters: GlobalCounters | None = None
        self._next_id = 1
        self._path = Path(path) if path is not None else None
        if self._path is not None:
            self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    def lookup_words(self, tokens: Iterable[str], class_count: int) -> dict[str, Word]:
        with self._lock:
            found: dict[str, Word] = {}
            for token in set(tokens):
                row = self._words.get(token)
                if row is None:
                    continue
                found[token] = Word(
                    seen=row.seen,
                    docs_seen=row.docs_seen,
                    count=word_vector(row.counts, class_count),
                )
            return found

    def upsert_word(self, token: str, seen: int, docs_seen: int, *, is_new: bool) -> int:
        with self._lock:
            if is_new:
                if token in self._words:
                    raise StoreIntegrityError(f"word '{token}' already exists")
                row = _WordRow(id=self._next_id, seen=seen, docs_seen=docs_seen)
                self._next_id += 1
                self._words[token] = row
                self._words_by_id[row.id] = row
                return row.id
            row = self._words.get(token)
            if row is None:
                raise StoreIntegrityError(f"failed to update word '{token}': no such row")
            row.seen = seen
            row.docs_seen = docs_seen
            return row.id

    def upsert_word_class_count(self, word_id: int, class_id: int, count: int) -> None:
        with self._lock:
            row = self._words_by_id.get(word_id)
            if row is None:
                raise StoreIntegrityError(f"failed to store class count: no word with id {word_id}")
            row.counts[class_id] = count

    def increment_docs_seen(self, tokens: Iterable[str]) -> None:
        unique = set(tokens)
        if not unique:
            return
        with self._lock:
            affected = 0
            for token in unique:
                row = self._words.get(token)
                if row is None:
                    continue
                row.docs_seen += 1
                affected += 1
            if affected == 0:
                raise StoreIntegrityError("failed to update docs_seen: no matching words")

    def replace_class_aggregate(self, class_id: int, count: int, probability: float) -> None:
        with self._lock:
            self._classes[class_id] = ClassAggregate(
                class_id=class_id, document_count=count, probability=probability
            )

    def class_aggregates(self) -> list[ClassAggregate]:
        with self._lock:
            return [self._classes[class_id] for class_id in sorted(self._classes)]

    def max_class_id(self) -> int | None:
        with self._lock:
            return max(self._classes, default=None)

    def get_global_counters(self) -> GlobalCounters | None:
        with self._lock:
            return self._counters

    def put_global_counters(self, counters: GlobalCounters) -> None:
        with self._lock:
            self._counters = counters

    def flush(self) -> None:
        """Pickle every table to ``path`` with an atomic replace."""

        if self._path is None:
            return
        with self._lock:
            state = self._state()
        target = self._path
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            with tmp_path.open("wb") as handle:
                pickle.dump(state, handle)
            tmp_path.replace(target)
        finally:
            if tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
        LOGGER.debug("Flushed %s word(s) to %s", len(state["words"]), target)

    def close(self) -> None:
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._words)

    def _state(self) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "words": {
                token: (row.id, row.seen, row.docs_seen, dict(row.counts))
                for token, row in self._words.items()
            },
            "classes": list(self._classes.values()),
            "counters": self._counters,
            "next_id": self._next_id,
        }

    def _load(self) -> None:
        path = self._path
        if path is None or not path.exists():
            return
        try:
            with path.open("rb") as handle:
                state = pickle.load(handle)
            words = {
                token: _WordRow(id=word_id, seen=seen, docs_seen=docs_seen, counts=dict(counts))
                for token, (word_id, seen, docs_seen, counts) in state["words"].items()
            }
            classes = {aggregate.class_id: aggregate for aggregate in state["classes"]}
            counters = state["counters"]
            next_id = int(state["next_id"])
        except (
            OSError,
            EOFError,
            pickle.UnpicklingError,
            AttributeError,
            KeyError,
            TypeError,
            ValueError,
        ):
            LOGGER.warning("Failed to load statistics from %s", path, exc_info=True)
            _quarantine_corrupt_file(path)
            return
        self._words = words
        self._words_by_id = {row.id: row for row in words.values()}
        self._classes = classes
        self._counters = counters
        self._next_id = next_id


def _quarantine_corrupt_file(path: Path) -> None:
    candidate = path.with_name(f"{path.name}.corrupt")
    counter = 1
    while candidate.exists():
        counter += 1
        candidate = path.with_name(f"{path.name}.corrupt{counter}")
    path.replace(candidate)


__all__ = ["MemoryStore"]
