from __future__ import annotations

import threading

import pytest

from bayesdb.errors import StreamClosedError
from bayesdb.stream import ErrorSink, TrainingStream
from bayesdb.types import LabeledDocument


def test_stream_yields_in_order_until_closed() -> None:
    stream = TrainingStream()
    stream.put("first", 0)
    stream.put("second", 1)
    stream.close()

    assert list(stream) == [LabeledDocument("first", 0), LabeledDocument("second", 1)]
    assert list(stream) == []


def test_stream_rejects_documents_after_close() -> None:
    stream = TrainingStream()
    stream.close()
    stream.close()

    assert stream.closed
    with pytest.raises(StreamClosedError):
        stream.put("late", 0)


def test_stream_consumer_blocks_for_producer() -> None:
    stream = TrainingStream(maxsize=1)
    received: list[LabeledDocument] = []
    consumer = threading.Thread(target=lambda: received.extend(stream))
    consumer.start()

    for index in range(5):
        stream.put(f"doc {index}", index % 2)
    stream.close()
    consumer.join(timeout=5)

    assert not consumer.is_alive()
    assert [document.text for document in received] == [f"doc {i}" for i in range(5)]


def test_error_sink_drain_and_close_once() -> None:
    sink = ErrorSink()
    sink.report(ValueError("one"))
    sink.report(ValueError("two"))
    sink.close()
    sink.close()

    assert sink.closed
    assert sink.reported == 2
    assert [str(error) for error in sink] == ["one", "two"]
    assert sink.drain() == []
    with pytest.raises(StreamClosedError):
        sink.report(ValueError("late"))


def test_error_sink_iteration_ends_on_close() -> None:
    sink = ErrorSink()
    collected: list[Exception] = []
    reader = threading.Thread(target=lambda: collected.extend(sink))
    reader.start()

    sink.report(RuntimeError("boom"))
    sink.close()
    reader.join(timeout=5)

    assert not reader.is_alive()
    assert [str(error) for error in collected] == ["boom"]
