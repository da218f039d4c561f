"""Bulk save/restore of the class-level snapshot."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import numpy as np

from .model import ModelSnapshot
from .stores.base import StatisticsStore
from .types import GlobalCounters

LOGGER = logging.getLogger(__name__)


class PersistenceController:
    """Mirrors a ``ModelSnapshot`` into the class and counters tables.

    Word-level statistics never live in memory and are therefore not part of
    a save or restore.
    """

    def __init__(self, store: StatisticsStore) -> None:
        self._store = store

    def save(self, snapshot: ModelSnapshot) -> GlobalCounters:
        """Write every class aggregate, then the global counters, and flush."""

        for aggregate in snapshot.aggregates():
            self._store.replace_class_aggregate(
                aggregate.class_id, aggregate.document_count, aggregate.probability
            )
        counters = snapshot.counters(last_training=datetime.now(timezone.utc))
        self._store.put_global_counters(counters)
        self._store.flush()
        snapshot.last_training = counters.last_training
        LOGGER.info(
            "Saved model: %s class(es), %s document(s), dictionary of %s word(s)",
            snapshot.class_count,
            counters.total_documents,
            counters.dictionary_size,
        )
        return counters

    def restore(self, snapshot: ModelSnapshot) -> bool:
        """Replace ``snapshot`` with the stored state.

        Returns False, leaving the snapshot untouched, when nothing was saved.
        """

        max_class_id = self._store.max_class_id()
        if max_class_id is None:
            LOGGER.info("No saved model found; keeping the in-memory state")
            return False

        total = max_class_id + 1
        counts = np.zeros(total, dtype=np.uint64)
        priors = np.zeros(total, dtype=np.float64)
        for aggregate in self._store.class_aggregates():
            counts[aggregate.class_id] = aggregate.document_count
            priors[aggregate.class_id] = aggregate.probability

        counters = self._store.get_global_counters()
        if counters is None:
            counters = GlobalCounters(
                total_documents=snapshot.document_count,
                dictionary_size=snapshot.dictionary_size,
                last_training=snapshot.last_training,
            )
        snapshot.replace(
            counts,
            priors,
            document_count=counters.total_documents,
            dictionary_size=counters.dictionary_size,
            last_training=counters.last_training,
        )
        LOGGER.info("Restored model: %r", snapshot)
        return True


__all__ = ["PersistenceController"]
