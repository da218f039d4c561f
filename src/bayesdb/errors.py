"""Exception hierarchy shared by the statistics engine."""

from __future__ import annotations


class BayesDBError(Exception):
    """Base class for all bayesdb errors."""


class StoreIntegrityError(BayesDBError):
    """A store write affected zero rows where a row was required.

    The redundant aggregates may now disagree; nothing is rolled back.
    """


class LabelOutOfRangeError(BayesDBError, ValueError):
    """A training document referenced a class the model does not know."""

    def __init__(self, class_id: int, class_count: int) -> None:
        super().__init__(
            f"document class {class_id} is outside the model's classes "
            f"(0..{class_count - 1})"
        )
        self.class_id = class_id
        self.class_count = class_count


class MissingStreamError(BayesDBError):
    """Learning was started without a training stream."""


class StreamClosedError(BayesDBError):
    """A document was pushed onto a stream that has already been closed."""


class LearnerBusyError(BayesDBError, RuntimeError):
    """Another learner is already consuming documents for this classifier."""


__all__ = [
    "BayesDBError",
    "LabelOutOfRangeError",
    "LearnerBusyError",
    "MissingStreamError",
    "StoreIntegrityError",
    "StreamClosedError",
]
