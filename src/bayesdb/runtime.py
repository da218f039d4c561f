"""Long-running training daemon: spool watcher, learner thread and signals."""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable
from pathlib import Path
from types import FrameType
from typing import Any

from .classifier import NaiveBayesClassifier
from .learner import LearnerState, OnlineLearner
from .stream import TrainingStream
from .trainer import Trainer
from .watcher import SpoolWatcher

SignalHandler = Callable[[int, FrameType | None], Any] | int | signal.Handlers | None

LOGGER = logging.getLogger(__name__)
SIG_USR1 = getattr(signal, "SIGUSR1", None)


class TrainingDaemon:
    """Keeps one learner consuming spool documents until told to stop.

    SIGTERM/SIGINT stop the daemon; SIGUSR1 saves a checkpoint of the
    class-level snapshot. On shutdown the stream is closed, the learner
    drained and the model saved.
    """

    def __init__(
        self,
        classifier: NaiveBayesClassifier,
        *,
        stream: TrainingStream,
        learner: OnlineLearner,
        trainer: Trainer,
        watcher: SpoolWatcher,
        save_on_stop: bool = True,
        poll_interval: float = 0.5,
    ) -> None:
        self._classifier = classifier
        self._stream = stream
        self._learner = learner
        self._trainer = trainer
        self._watcher = watcher
        self._save_on_stop = save_on_stop
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._checkpoint_event = threading.Event()
        self._installed_signals: dict[int, SignalHandler] = {}
        self._queued = 0
        self._watcher.on_document(self._handle_document)

    def run(self, *, initial_training: bool = True) -> None:
        self._install_signal_handlers()
        try:
            self._learner.start()
            if initial_training:
                self._initial_training()
            self._watcher.start()
            self._wait_for_stop()
        finally:
            self._restore_signal_handlers()
            self._shutdown()

    def stop(self) -> None:
        self._stop_event.set()

    def checkpoint_now(self) -> None:
        self._classifier.save()

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "spool_dir": str(self._watcher.spool_dir),
            "watcher_running": self._watcher.is_running,
            "learner_state": self._learner.state.value,
            "queued": self._queued,
            "documents_learned": self._learner.documents_learned,
            "errors": self._learner.errors.reported,
            "document_count": self._classifier.document_count,
            "dictionary_size": self._classifier.dictionary_size,
        }

    def _initial_training(self) -> None:
        results = self._trainer.initial_training(self._watcher.spool_dir)
        queued = sum(1 for result in results if result.status == "queued")
        self._queued += queued
        LOGGER.info(
            "Initial training processed %s spool document(s) (%s queued)", len(results), queued
        )

    def _handle_document(self, path: Path, class_name: str) -> None:
        result = self._trainer.on_document(path, class_name)
        if result.status == "queued":
            self._queued += 1
        LOGGER.debug("Spool document %s -> %s", path, result.status)

    def _wait_for_stop(self) -> None:
        while not self._stop_event.is_set():
            try:
                if self._checkpoint_event.is_set():
                    self._checkpoint_event.clear()
                    self.checkpoint_now()
                if self._learner.state is LearnerState.FAULTED:
                    LOGGER.error("Learner faulted; stopping training daemon.")
                    return
                time.sleep(self._poll_interval)
            except KeyboardInterrupt:
                LOGGER.info("Interrupt received; shutting down training daemon.")
                self._stop_event.set()

    def _shutdown(self) -> None:
        self._watcher.stop()
        self._stream.close()
        # Raises a fatal store failure; the model is not saved in that case.
        self._learner.join()
        for error in self._learner.errors.drain():
            LOGGER.warning("Training error: %s", error)
        if self._save_on_stop:
            self._classifier.save()

    def _install_signal_handlers(self) -> None:
        interested = tuple(
            sig for sig in (signal.SIGTERM, signal.SIGINT, SIG_USR1) if sig is not None
        )
        for sig in interested:
            try:
                previous = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal)
            except ValueError:
                # Not on the main thread.
                continue
            self._installed_signals[sig] = previous

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._installed_signals.items():
            try:
                signal.signal(sig, handler)
            except ValueError:  # pragma: no cover - not on the main thread
                continue
        self._installed_signals.clear()

    def _handle_signal(self, signum: int, _frame: FrameType | None) -> None:
        if signum in (signal.SIGTERM, signal.SIGINT):
            LOGGER.info("Signal %s received; initiating shutdown.", signum)
            self._stop_event.set()
        elif SIG_USR1 is not None and signum == SIG_USR1:
            LOGGER.info("SIGUSR1 received; saving checkpoint.")
            self._checkpoint_event.set()


__all__ = ["TrainingDaemon"]
