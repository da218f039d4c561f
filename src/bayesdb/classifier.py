"""Multinomial naive Bayes over word counts kept in a statistics store."""

from __future__ import annotations

import logging
import math
import threading
from collections import Counter
from collections.abc import Iterable

import numpy as np

from .errors import LabelOutOfRangeError, LearnerBusyError
from .model import ModelSnapshot
from .persistence import PersistenceController
from .stores.base import StatisticsStore
from .text import CharFilter, learnable_tokens, only_words_and_numbers, tokenize
from .types import GlobalCounters, LabeledDocument, Probability, Word

LOGGER = logging.getLogger(__name__)

DEFAULT_LOCK_STRIPES = 64
_RANKED_SENTINEL = -9.999


class NaiveBayesClassifier:
    """Naive Bayes classifier whose word statistics live in a store.

    Class-level parameters (document counts, priors, dictionary size) are held
    in a ``ModelSnapshot``; word records are fetched from the store on every
    call and never cached. Inference may run from any number of threads while
    a single learner applies training documents.
    """

    def __init__(
        self,
        store: StatisticsStore,
        class_count: int | None = None,
        *,
        snapshot: ModelSnapshot | None = None,
        char_filter: CharFilter = only_words_and_numbers,
        lock_stripes: int = DEFAULT_LOCK_STRIPES,
        debug: bool = False,
    ) -> None:
        if snapshot is None:
            if class_count is None:
                raise ValueError("either class_count or snapshot is required")
            snapshot = ModelSnapshot.uniform(class_count)
        self._store = store
        self._snapshot = snapshot
        self._persistence = PersistenceController(store)
        self._char_filter = char_filter
        self._word_locks = tuple(threading.Lock() for _ in range(max(1, lock_stripes)))
        self._learner_lock = threading.Lock()
        self._debug = debug

    @property
    def store(self) -> StatisticsStore:
        return self._store

    @property
    def snapshot(self) -> ModelSnapshot:
        return self._snapshot

    @property
    def class_count(self) -> int:
        return self._snapshot.class_count

    @property
    def document_count(self) -> int:
        return self._snapshot.document_count

    @property
    def dictionary_size(self) -> int:
        return self._snapshot.dictionary_size

    @property
    def priors(self) -> tuple[float, ...]:
        return tuple(float(value) for value in self._snapshot.priors)

    @property
    def char_filter(self) -> CharFilter:
        return self._char_filter

    @char_filter.setter
    def char_filter(self, value: CharFilter) -> None:
        self._char_filter = value

    @property
    def debug(self) -> bool:
        return self._debug

    def set_debug(self, on: bool) -> None:
        """Toggle per-update tracing at DEBUG level."""

        self._debug = bool(on)

    def tokenize(self, text: str) -> list[str]:
        return tokenize(text, self._char_filter)

    def lookup_words(self, tokens: Iterable[str]) -> dict[str, Word]:
        return self._store.lookup_words(tokens, self.class_count)

    # Inference -------------------------------------------------------------

    def predict(self, text: str) -> int:
        """Return the most likely class for ``text``.

        Scores are summed in log space, so long documents do not underflow.
        Ties go to the lowest class id.
        """

        priors = self._snapshot.priors
        dictionary_size = self._snapshot.dictionary_size
        class_count = priors.shape[0]
        tokens = self.tokenize(text)
        words = self._store.lookup_words(tokens, class_count)

        sums = np.zeros(class_count, dtype=np.float64)
        with np.errstate(divide="ignore"):
            for token in tokens:
                word = words.get(token)
                if word is None:
                    continue
                sums += np.log(_smoothed(word, class_count, dictionary_size))
            sums += np.log(priors)
        return int(np.argmax(sums))

    def probability(self, text: str) -> tuple[int, float]:
        """Return the best class and its normalised probability.

        Meant for short documents only: the product of many small ratios
        underflows. When no token of ``text`` is known the result is
        ``(0, nan)``, which callers should read as "no evidence".
        """

        sums = self._linear_scores(text)
        if sums is None:
            return 0, math.nan
        best = int(np.argmax(sums))
        with np.errstate(divide="ignore", invalid="ignore"):
            value = np.float64(sums[best]) / np.float64(sums.sum())
        return best, float(value)

    def top_probabilities(self, text: str, top_n: int) -> list[Probability]:
        """Return up to ``top_n`` classes ranked by probability.

        The normaliser is the sum over all classes, computed once before any
        class is picked. Unknown-only documents produce an empty list.
        """

        if top_n <= 0:
            return []
        sums = self._linear_scores(text)
        if sums is None:
            return []

        denominator = np.float64(sums.sum())
        ranked: list[Probability] = []
        for _ in range(min(top_n, sums.shape[0])):
            candidates = np.flatnonzero(sums >= 0)
            if candidates.size == 0:
                break
            best = int(candidates[np.argmax(sums[candidates])])
            with np.errstate(divide="ignore", invalid="ignore"):
                value = float(np.float64(sums[best]) / denominator)
            if not math.isnan(value):
                ranked.append(Probability(class_id=best, probability=value))
            sums[best] = _RANKED_SENTINEL
        return ranked

    def _linear_scores(self, text: str) -> np.ndarray | None:
        priors = self._snapshot.priors
        dictionary_size = self._snapshot.dictionary_size
        class_count = priors.shape[0]
        tokens = self.tokenize(text)
        words = self._store.lookup_words(tokens, class_count)

        sums = np.ones(class_count, dtype=np.float64)
        matched = False
        for token in tokens:
            word = words.get(token)
            if word is None:
                continue
            sums *= _smoothed(word, class_count, dictionary_size)
            matched = True
        if not matched:
            return None
        return sums * priors

    # Learning --------------------------------------------------------------

    def learn(self, document: LabeledDocument) -> None:
        """Apply one labelled document to the model and the store.

        Raises ``LabelOutOfRangeError`` before touching any state when the
        label is unknown. ``StoreIntegrityError`` from the store propagates
        unchanged; earlier writes of the same document are not undone.
        """

        snapshot = self._snapshot
        class_count = snapshot.class_count
        class_id = document.class_id
        if class_id < 0 or class_id > class_count - 1:
            raise LabelOutOfRangeError(class_id, class_count)

        snapshot.record_document(class_id)

        occurrences = Counter(learnable_tokens(self.tokenize(document.text)))
        if not occurrences:
            return
        stored = self._store.lookup_words(occurrences, class_count)
        for token, times in occurrences.items():
            word = stored.get(token)
            is_new = word is None
            if word is None:
                word = Word.empty(class_count)
                snapshot.add_word()
            self._set_word(token, word.observe(class_id, times), is_new=is_new)

        self._store.increment_docs_seen(occurrences)

    def _set_word(self, token: str, word: Word, *, is_new: bool) -> None:
        with self._word_lock(token):
            word_id = self._store.upsert_word(token, word.seen, word.docs_seen, is_new=is_new)
            for class_id, count in enumerate(word.count):
                self._store.upsert_word_class_count(word_id, class_id, count)
        if self._debug:
            if is_new:
                LOGGER.debug("Trained new word '%s' (id=%s)", token, word_id)
            else:
                LOGGER.debug("Updated word '%s' (id=%s, seen=%s)", token, word_id, word.seen)

    def _word_lock(self, token: str) -> threading.Lock:
        return self._word_locks[hash(token) % len(self._word_locks)]

    def claim_learner(self) -> None:
        """Reserve the classifier for a single learning consumer."""

        if not self._learner_lock.acquire(blocking=False):
            raise LearnerBusyError("a learner is already consuming documents for this model")

    def release_learner(self) -> None:
        if self._learner_lock.locked():
            self._learner_lock.release()

    # Persistence -----------------------------------------------------------

    def save(self) -> GlobalCounters:
        return self._persistence.save(self._snapshot)

    def restore(self) -> bool:
        return self._persistence.restore(self._snapshot)

    def describe(self) -> str:
        """Human-readable model summary used in log output."""

        priors = ", ".join(f"{value:.4f}" for value in self._snapshot.priors)
        return (
            "Model: Multinomial Naive Bayes\n"
            f"\tClasses: {self.class_count}\n"
            f"\tDocuments: {self.document_count}\n"
            f"\tDictionary: {self.dictionary_size}\n"
            f"\tPriors: [{priors}]"
        )


def _smoothed(word: Word, class_count: int, dictionary_size: int) -> np.ndarray:
    counts = np.asarray(word.count[:class_count], dtype=np.float64)
    if counts.shape[0] < class_count:
        counts = np.pad(counts, (0, class_count - counts.shape[0]))
    return (counts + 1.0) / float(word.seen + dictionary_size)


__all__ = ["NaiveBayesClassifier"]
