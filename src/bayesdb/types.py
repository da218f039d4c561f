"""Core immutable data structures used throughout bayesdb."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Word:
    """Aggregate statistics for a single token."""

    seen: int
    docs_seen: int
    count: tuple[int, ...]

    @classmethod
    def empty(cls, class_count: int) -> Word:
        return cls(seen=0, docs_seen=0, count=(0,) * class_count)

    def observe(self, class_id: int, times: int = 1) -> Word:
        """Return a copy with ``times`` extra occurrences inside ``class_id``."""

        count = list(self.count)
        if class_id >= len(count):
            count.extend([0] * (class_id + 1 - len(count)))
        count[class_id] += times
        return Word(seen=self.seen + times, docs_seen=self.docs_seen, count=tuple(count))


@dataclass(frozen=True)
class ClassAggregate:
    """Per-class roll-up persisted by ``save``."""

    class_id: int
    document_count: int
    probability: float


@dataclass(frozen=True)
class GlobalCounters:
    """Process-wide scalars stored as a singleton record."""

    total_documents: int
    dictionary_size: int
    last_training: datetime | None = None


@dataclass(frozen=True)
class Probability:
    """Ranked inference result."""

    class_id: int
    probability: float


@dataclass(frozen=True)
class LabeledDocument:
    """A single item of the training stream.

    ``digest`` identifies spool documents so they can be registered once the
    learner has applied them; it takes no part in equality.
    """

    text: str
    class_id: int
    digest: str | None = field(default=None, compare=False)


__all__ = [
    "ClassAggregate",
    "GlobalCounters",
    "LabeledDocument",
    "Probability",
    "Word",
]
