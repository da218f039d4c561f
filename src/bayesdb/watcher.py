"""Spool directory watcher feeding new documents to the trainer."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .trainer import class_dir, ensure_spool_structure, is_spool_document

LOGGER = logging.getLogger(__name__)

DocumentCallback = Callable[[Path, str], None]


def class_from_path(path: Path, spool_dir: Path) -> str | None:
    """Return the class directory name for a file directly under it."""

    try:
        relative = path.relative_to(spool_dir)
    except ValueError:
        return None
    if len(relative.parts) != 2:
        return None
    return relative.parts[0]


class SpoolWatcher:
    """Watch ``<spool>/<class>/`` directories for finished training documents.

    Producers should write elsewhere (or under a partial suffix) and rename
    into place; both creations and renames into a class directory are
    reported to the registered callbacks as ``(path, class name)``.
    """

    def __init__(
        self,
        spool_dir: Path,
        classes: Iterable[str],
        *,
        debounce_seconds: float = 0.2,
        observer_factory: Callable[[], BaseObserver] | None = None,
    ) -> None:
        self._spool_dir = spool_dir.expanduser()
        self._classes = tuple(dict.fromkeys(name for name in classes if name))
        self._observer_factory = observer_factory or Observer
        self._observer: BaseObserver | None = None
        self._callbacks: list[DocumentCallback] = []
        self._debouncer = _Debouncer(debounce_seconds)
        self._lock = threading.Lock()

    @property
    def spool_dir(self) -> Path:
        return self._spool_dir

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def on_document(self, callback: DocumentCallback) -> None:
        self._callbacks.append(callback)

    def start(self) -> None:
        with self._lock:
            if self._observer is not None:
                return
            ensure_spool_structure(self._spool_dir, self._classes)
            handler = _SpoolEventHandler(self._spool_dir.resolve(), set(self._classes), self._accept)
            observer = self._observer_factory()
            for name in self._classes:
                observer.schedule(handler, str(class_dir(self._spool_dir, name)), recursive=False)
            observer.start()
            self._observer = observer
        LOGGER.info("Watching spool %s for %s class(es)", self._spool_dir, len(self._classes))

    def stop(self) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        try:
            observer.join(timeout=5)
        except RuntimeError:  # pragma: no cover - watchdog internals
            LOGGER.warning("Failed to join spool observer thread")
        LOGGER.info("Stopped watching spool %s", self._spool_dir)

    def _accept(self, path: Path, class_name: str) -> None:
        if self._debouncer.seen_recently(path):
            LOGGER.debug("Debounced duplicate event for %s", path)
            return
        self._emit(path, class_name)

    def _emit(self, path: Path, class_name: str) -> None:
        for callback in list(self._callbacks):
            try:
                callback(path, class_name)
            except Exception:
                LOGGER.exception("Spool callback failed for %s (class=%s)", path, class_name)


class _Debouncer:
    """Remembers recently reported paths for ``window`` seconds."""

    def __init__(self, window: float) -> None:
        self._window = max(0.0, window)
        self._recent: dict[Path, float] = {}
        self._lock = threading.Lock()

    def seen_recently(self, path: Path) -> bool:
        if self._window <= 0:
            return False
        now = time.monotonic()
        with self._lock:
            last = self._recent.get(path)
            self._recent[path] = now
            horizon = now - max(self._window * 4, 1.0)
            self._recent = {key: ts for key, ts in self._recent.items() if ts >= horizon}
        return last is not None and now - last < self._window


class _SpoolEventHandler(FileSystemEventHandler):
    def __init__(
        self,
        spool_dir: Path,
        classes: set[str],
        accept: DocumentCallback,
    ) -> None:
        super().__init__()
        self._spool_dir = spool_dir
        self._classes = classes
        self._accept = accept

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._dispatch(_event_path(event.src_path))

    def on_moved(self, event: FileSystemMovedEvent) -> None:
        # A rename from a partial name lands here.
        if not event.is_directory:
            self._dispatch(_event_path(event.dest_path))

    def _dispatch(self, path: Path) -> None:
        resolved = path.resolve()
        if not is_spool_document(resolved):
            return
        class_name = class_from_path(resolved, self._spool_dir)
        if class_name in self._classes:
            self._accept(resolved, class_name)


def _event_path(value: str | bytes) -> Path:
    if isinstance(value, bytes):
        return Path(os.fsdecode(value))
    return Path(value)


__all__ = ["SpoolWatcher", "class_from_path"]
