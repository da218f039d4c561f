"""Single-consumer online learning over a training stream."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from collections.abc import Callable
from typing import TYPE_CHECKING

from .errors import (
    LabelOutOfRangeError,
    LearnerBusyError,
    MissingStreamError,
    StoreIntegrityError,
)
from .stream import ErrorSink, TrainingStream
from .types import LabeledDocument

if TYPE_CHECKING:
    from .classifier import NaiveBayesClassifier

LOGGER = logging.getLogger(__name__)


class LearnerState(str, Enum):
    """Lifecycle of a learning run."""

    IDLE = "idle"
    CONSUMING = "consuming"
    UPDATING = "updating"
    DRAINED = "drained"
    FAULTED = "faulted"


class OnlineLearner:
    """Applies documents from a ``TrainingStream`` to a classifier in order.

    Out-of-range labels are reported on the error sink and skipped. A store
    integrity failure ends the run: the learner becomes FAULTED and the error
    is raised from ``run`` (or from ``join`` when started on a thread).
    ``on_learned`` is called with each document after its counts are applied.
    """

    def __init__(
        self,
        classifier: NaiveBayesClassifier,
        stream: TrainingStream | None = None,
        errors: ErrorSink | None = None,
        *,
        on_learned: Callable[[LabeledDocument], None] | None = None,
    ) -> None:
        self._classifier = classifier
        self._on_learned = on_learned
        self._stream = stream
        self._errors = errors if errors is not None else ErrorSink()
        self._state = LearnerState.IDLE
        self._thread: threading.Thread | None = None
        self._failure: BaseException | None = None
        self._documents_seen = 0
        self._documents_learned = 0

    @property
    def state(self) -> LearnerState:
        return self._state

    @property
    def errors(self) -> ErrorSink:
        return self._errors

    @property
    def documents_seen(self) -> int:
        return self._documents_seen

    @property
    def documents_learned(self) -> int:
        return self._documents_learned

    @property
    def failure(self) -> BaseException | None:
        return self._failure

    def run(self) -> None:
        """Consume the stream on the calling thread until it is closed."""

        if self._state is not LearnerState.IDLE:
            raise RuntimeError(f"learner already ran (state={self._state.value})")

        if self._stream is None:
            error = MissingStreamError("attempting to learn without a training stream")
            LOGGER.error("%s", error)
            self._state = LearnerState.FAULTED
            self._errors.report(error)
            self._errors.close()
            return

        try:
            self._classifier.claim_learner()
        except LearnerBusyError as exc:
            LOGGER.error("Cannot start learning: %s", exc)
            self._failure = exc
            self._state = LearnerState.FAULTED
            self._errors.report(exc)
            self._errors.close()
            raise
        try:
            LOGGER.info(
                "Training:\n\tModel: Multinomial Naive Bayes\n\tClasses: %s",
                self._classifier.class_count,
            )
            self._state = LearnerState.CONSUMING
            for document in self._stream:
                self._documents_seen += 1
                self._state = LearnerState.UPDATING
                try:
                    self._classifier.learn(document)
                except LabelOutOfRangeError as exc:
                    LOGGER.error("Skipping training document: %s", exc)
                    self._errors.report(exc)
                else:
                    self._documents_learned += 1
                    if self._on_learned is not None:
                        self._on_learned(document)
                self._state = LearnerState.CONSUMING
        except StoreIntegrityError as exc:
            LOGGER.critical("Store integrity violated while learning; aborting: %s", exc)
            self._failure = exc
            self._state = LearnerState.FAULTED
            self._errors.close()
            raise
        finally:
            self._classifier.release_learner()

        self._state = LearnerState.DRAINED
        LOGGER.info("Training completed.\n%s", self._classifier.describe())
        self._errors.close()

    def start(self) -> threading.Thread:
        """Run the learner on a background thread."""

        if self._thread is not None:
            raise RuntimeError("learner thread already started")
        thread = threading.Thread(target=self._run_in_thread, name="bayesdb-learner", daemon=True)
        self._thread = thread
        thread.start()
        return thread

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the background run; re-raise a fatal failure.

        Returns False if the run is still going after ``timeout``.
        """

        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                return False
        if self._failure is not None:
            raise self._failure
        return True

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_in_thread(self) -> None:
        try:
            self.run()
        except (StoreIntegrityError, LearnerBusyError):
            # Already recorded; join() raises it in the owning thread.
            return
        except Exception as exc:
            LOGGER.exception("Learner thread failed")
            self._failure = exc
            self._state = LearnerState.FAULTED
            self._errors.close()


def online_learn(
    classifier: NaiveBayesClassifier,
    stream: TrainingStream | None,
    errors: ErrorSink | None = None,
) -> ErrorSink:
    """Learn from ``stream`` on the calling thread and return the error sink."""

    learner = OnlineLearner(classifier, stream, errors)
    learner.run()
    return learner.errors


__all__ = ["LearnerState", "OnlineLearner", "online_learn"]
