from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

import pytest

from bayesdb.classifier import NaiveBayesClassifier
from bayesdb.stores import MemoryStore, SQLiteStore, StatisticsStore
from bayesdb.types import LabeledDocument


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[StatisticsStore]:
    """Each test using this fixture runs against both backends."""

    if request.param == "memory":
        backend: StatisticsStore = MemoryStore()
    else:
        backend = SQLiteStore(tmp_path / "stats.sqlite3")
    yield backend
    backend.close()


@pytest.fixture
def classifier(store: StatisticsStore) -> NaiveBayesClassifier:
    return NaiveBayesClassifier(store, 2)


def learn_all(model: NaiveBayesClassifier, documents: Iterable[tuple[str, int]]) -> None:
    for text, class_id in documents:
        model.learn(LabeledDocument(text=text, class_id=class_id))


@pytest.fixture
def fruit_classifier(classifier: NaiveBayesClassifier) -> NaiveBayesClassifier:
    """Two documents: 'apple apple banana' -> 0, 'cherry banana' -> 1."""

    learn_all(classifier, [("apple apple banana", 0), ("cherry banana", 1)])
    return classifier
