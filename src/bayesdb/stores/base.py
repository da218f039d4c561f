"""Persistence protocol required by the statistics engine."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from ..types import ClassAggregate, GlobalCounters, Word


@runtime_checkable
class StatisticsStore(Protocol):
    """Capabilities a backing store must offer to hold model statistics.

    Every write is synchronous and visible to later reads from the same
    process. There is no transaction spanning several tables, so callers must
    tolerate partially applied updates when a write fails.
    """

    def lookup_words(self, tokens: Iterable[str], class_count: int) -> dict[str, Word]:
        """Return stored words for ``tokens``; unknown tokens are absent."""

    def upsert_word(self, token: str, seen: int, docs_seen: int, *, is_new: bool) -> int:
        """Insert or update a word row and return its identifier."""

    def upsert_word_class_count(self, word_id: int, class_id: int, count: int) -> None:
        """Store the occurrences of a word within a class."""

    def increment_docs_seen(self, tokens: Iterable[str]) -> None:
        """Add one to ``docs_seen`` for each given token."""

    def replace_class_aggregate(self, class_id: int, count: int, probability: float) -> None:
        """Insert or overwrite one class aggregate row."""

    def class_aggregates(self) -> list[ClassAggregate]:
        """Return all stored class aggregates ordered by class id."""

    def max_class_id(self) -> int | None:
        """Return the highest stored class id, or None when nothing is stored."""

    def get_global_counters(self) -> GlobalCounters | None:
        """Return the singleton counters row if present."""

    def put_global_counters(self, counters: GlobalCounters) -> None:
        """Update the singleton counters row in place, creating it when missing."""

    def flush(self) -> None:
        """Make everything written so far durable."""

    def close(self) -> None:
        """Release any resources held by the store."""


def word_vector(counts: dict[int, int], class_count: int) -> tuple[int, ...]:
    """Build a per-class count vector, growing past ``class_count`` if needed."""

    size = max(class_count, max(counts, default=-1) + 1)
    vector = [0] * size
    for class_id, count in counts.items():
        if class_id < 0:
            continue
        vector[class_id] = count
    return tuple(vector)


__all__ = ["StatisticsStore", "word_vector"]
