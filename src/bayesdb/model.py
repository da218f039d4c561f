"""In-memory class-level parameters of the classifier."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import numpy as np

from .types import ClassAggregate, GlobalCounters


class ModelSnapshot:
    """Authoritative copy of class counts, priors and global counters.

    Only the learner mutates a snapshot. Vectors are replaced wholesale rather
    than written in place, so concurrent readers see either the previous or
    the next vector, never a half-written one.
    """

    def __init__(
        self,
        counts: Sequence[int] | np.ndarray,
        priors: Sequence[float] | np.ndarray,
        *,
        document_count: int = 0,
        dictionary_size: int = 0,
        last_training: datetime | None = None,
    ) -> None:
        counts_array = np.asarray(counts, dtype=np.uint64)
        priors_array = np.asarray(priors, dtype=np.float64)
        if counts_array.shape != priors_array.shape or counts_array.ndim != 1:
            raise ValueError("counts and priors must be vectors of the same length")
        self._counts = counts_array
        self._priors = priors_array
        self.document_count = int(document_count)
        self.dictionary_size = int(dictionary_size)
        self.last_training = last_training

    @classmethod
    def uniform(cls, class_count: int) -> ModelSnapshot:
        """Untrained snapshot with equal priors for every class."""

        if class_count < 1:
            raise ValueError("a model needs at least one class")
        return cls(
            np.zeros(class_count, dtype=np.uint64),
            np.full(class_count, 1.0 / class_count, dtype=np.float64),
        )

    @property
    def class_count(self) -> int:
        return int(self._counts.shape[0])

    @property
    def counts(self) -> np.ndarray:
        return self._counts

    @property
    def priors(self) -> np.ndarray:
        return self._priors

    def record_document(self, class_id: int) -> None:
        """Count one more document for ``class_id`` and recompute every prior."""

        counts = self._counts.copy()
        counts[class_id] += 1
        self.document_count += 1
        self._counts = counts
        self._priors = counts.astype(np.float64) / float(self.document_count)

    def add_word(self) -> None:
        self.dictionary_size += 1

    def grow(self, class_count: int) -> None:
        """Extend the snapshot to ``class_count`` classes with zero counts."""

        current = self.class_count
        if class_count <= current:
            return
        counts = np.concatenate([self._counts, np.zeros(class_count - current, dtype=np.uint64)])
        if self.document_count:
            priors = counts.astype(np.float64) / float(self.document_count)
        else:
            priors = np.full(class_count, 1.0 / class_count, dtype=np.float64)
        self._counts = counts
        self._priors = priors

    def replace(
        self,
        counts: Sequence[int] | np.ndarray,
        priors: Sequence[float] | np.ndarray,
        *,
        document_count: int,
        dictionary_size: int,
        last_training: datetime | None,
    ) -> None:
        """Swap in restored state, discarding everything held so far."""

        fresh = ModelSnapshot(
            counts,
            priors,
            document_count=document_count,
            dictionary_size=dictionary_size,
            last_training=last_training,
        )
        self._counts = fresh._counts
        self._priors = fresh._priors
        self.document_count = fresh.document_count
        self.dictionary_size = fresh.dictionary_size
        self.last_training = fresh.last_training

    def aggregates(self) -> list[ClassAggregate]:
        counts = self._counts
        priors = self._priors
        return [
            ClassAggregate(
                class_id=class_id,
                document_count=int(counts[class_id]),
                probability=float(priors[class_id]),
            )
            for class_id in range(counts.shape[0])
        ]

    def counters(self, last_training: datetime | None = None) -> GlobalCounters:
        return GlobalCounters(
            total_documents=self.document_count,
            dictionary_size=self.dictionary_size,
            last_training=last_training or self.last_training,
        )

    def __repr__(self) -> str:
        priors = ", ".join(f"{value:.4f}" for value in self._priors)
        return (
            f"ModelSnapshot(classes={self.class_count}, documents={self.document_count}, "
            f"dictionary={self.dictionary_size}, priors=[{priors}])"
        )


__all__ = ["ModelSnapshot"]
