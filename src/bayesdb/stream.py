"""Training stream and error channel used by the online learner."""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator

from .errors import StreamClosedError
from .types import LabeledDocument

_END = object()


class TrainingStream:
    """Ordered queue of labelled documents with an explicit end marker.

    Producers call ``put`` and finally ``close``; the single consumer iterates
    until the end marker arrives. A positive ``maxsize`` makes ``put`` block,
    letting producers apply backpressure.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=maxsize)
        self._closed = False
        self._lock = threading.Lock()

    def put(self, text: str, class_id: int) -> None:
        self.put_document(LabeledDocument(text=text, class_id=int(class_id)))

    def put_document(self, document: LabeledDocument) -> None:
        with self._lock:
            if self._closed:
                raise StreamClosedError("cannot add documents to a closed training stream")
        self._queue.put(document)

    def close(self) -> None:
        """Signal that no further documents will arrive."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_END)

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, timeout: float | None = None) -> LabeledDocument | None:
        """Block for the next document; None means the stream has ended."""

        item = self._queue.get(timeout=timeout)
        if item is _END:
            # Leave the marker for any other waiter.
            self._queue.put(_END)
            return None
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[LabeledDocument]:
        while True:
            document = self.get()
            if document is None:
                return
            yield document


class ErrorSink:
    """Channel carrying per-document learning errors to the caller.

    ``close`` may be called repeatedly but emits its end marker exactly once.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue()
        self._closed = threading.Event()
        self._lock = threading.Lock()
        self._reported = 0

    def report(self, error: Exception) -> None:
        with self._lock:
            if self._closed.is_set():
                raise StreamClosedError("cannot report errors on a closed error sink")
            self._reported += 1
        self._queue.put(error)

    def close(self) -> None:
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
        self._queue.put(_END)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def reported(self) -> int:
        return self._reported

    def drain(self) -> list[Exception]:
        """Return every error reported so far without blocking."""

        errors: list[Exception] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return errors
            if item is _END:
                self._queue.put(_END)
                return errors
            errors.append(item)  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[Exception]:
        """Yield errors as they arrive until the sink is closed."""

        while True:
            item = self._queue.get()
            if item is _END:
                self._queue.put(_END)
                return
            yield item  # type: ignore[misc]


__all__ = ["ErrorSink", "TrainingStream"]
