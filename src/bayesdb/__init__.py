"""Naive Bayes text classification over a persistent statistics store."""

from importlib import metadata

from .classifier import NaiveBayesClassifier
from .errors import (
    BayesDBError,
    LabelOutOfRangeError,
    LearnerBusyError,
    MissingStreamError,
    StoreIntegrityError,
    StreamClosedError,
)
from .learner import LearnerState, OnlineLearner, online_learn
from .model import ModelSnapshot
from .stores import MemoryStore, SQLiteStore, StatisticsStore, open_store
from .stream import ErrorSink, TrainingStream
from .types import ClassAggregate, GlobalCounters, LabeledDocument, Probability, Word


def _discover_version() -> str:
    """Return the installed package version, falling back to dev marker."""
    try:
        return metadata.version("bayesdb")
    except metadata.PackageNotFoundError:  # pragma: no cover - running from a checkout
        return "0.0.0"


__version__ = _discover_version()

__all__ = [
    "BayesDBError",
    "ClassAggregate",
    "ErrorSink",
    "GlobalCounters",
    "LabelOutOfRangeError",
    "LabeledDocument",
    "LearnerBusyError",
    "LearnerState",
    "MemoryStore",
    "MissingStreamError",
    "ModelSnapshot",
    "NaiveBayesClassifier",
    "OnlineLearner",
    "Probability",
    "SQLiteStore",
    "StatisticsStore",
    "StoreIntegrityError",
    "StreamClosedError",
    "TrainingStream",
    "Word",
    "__version__",
    "online_learn",
    "open_store",
]
