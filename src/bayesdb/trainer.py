"""Feeding labelled documents from files into the training stream."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import ConfigError
from .errors import StreamClosedError
from .registry import TrainedDocumentRegistry, document_digest
from .stream import TrainingStream
from .types import LabeledDocument

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainingResult:
    """Outcome of handing one document to the learner."""

    status: str
    category: str | None
    path: Path | None
    reason: str | None = None
    previous_category: str | None = None


def read_labeled_lines(
    lines: Iterable[str],
    resolve: Callable[[str], int],
) -> Iterator[LabeledDocument]:
    """Parse ``label<TAB>text`` lines; blank and ``#`` lines are ignored.

    ``resolve`` maps a label to a class id and raises ``ConfigError`` for
    unknown names. Lines that cannot be parsed are logged and skipped.
    """

    for lineno, line in enumerate(lines, start=1):
        stripped = line.rstrip("\r\n")
        if not stripped.strip() or stripped.lstrip().startswith("#"):
            continue
        if "\t" not in stripped:
            LOGGER.warning("Line %s has no tab-separated label; skipping", lineno)
            continue
        label, text = stripped.split("\t", 1)
        try:
            class_id = resolve(label.strip())
        except ConfigError as exc:
            LOGGER.warning("Line %s: %s; skipping", lineno, exc)
            continue
        yield LabeledDocument(text=text, class_id=class_id)


# Files still being written by a producer.
PARTIAL_SUFFIXES = frozenset({".tmp", ".part", ".partial", ".swp"})


def is_spool_document(path: Path) -> bool:
    """True for files a producer has finished writing into the spool."""

    name = path.name
    if not name or name.startswith((".", "~")):
        return False
    return path.suffix.lower() not in PARTIAL_SUFFIXES


def class_dir(spool_dir: Path, class_name: str) -> Path:
    return spool_dir / class_name


def ensure_spool_structure(spool_dir: Path, classes: Iterable[str]) -> None:
    for name in classes:
        class_dir(spool_dir, name).mkdir(parents=True, exist_ok=True)


def _read_document(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


class Trainer:
    """Turns spool files into stream items, skipping already trained ones.

    A document is registered only after the learner reports it as learned
    through :meth:`mark_learned`; until then its digest is held as pending so
    a second copy arriving meanwhile is still recognised.
    """

    def __init__(
        self,
        *,
        stream: TrainingStream,
        classes: Sequence[str],
        registry: TrainedDocumentRegistry | None = None,
        reader: Callable[[Path], str] = _read_document,
    ) -> None:
        self._stream = stream
        self._classes = tuple(classes)
        self._lookup = {name.lower(): index for index, name in enumerate(self._classes)}
        self._registry = registry
        self._reader = reader
        self._pending: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def on_document(self, path: Path, class_name: str) -> TrainingResult:
        """Queue the document at ``path`` for training as ``class_name``."""

        path = Path(path)
        class_id = self._lookup.get(class_name.lower())
        if class_id is None:
            LOGGER.debug("Ignoring document for unknown class '%s'", class_name)
            return TrainingResult(
                status="unknown_class",
                category=class_name,
                path=path,
                reason="class_not_configured",
            )
        category = self._classes[class_id]

        try:
            text = self._reader(path)
        except OSError as exc:
            LOGGER.error("Failed to read training document %s: %s", path, exc)
            return TrainingResult(status="read_error", category=category, path=path, reason=str(exc))

        digest = document_digest(text) if self._registry is not None else None
        if digest is not None:
            with self._lock:
                previous = self._pending.get(digest) or self._registry.category(digest)
                if previous is None:
                    self._pending[digest] = category
            if previous == category:
                return TrainingResult(
                    status="skipped_duplicate",
                    category=category,
                    path=path,
                    reason="already_trained",
                    previous_category=previous,
                )
            if previous is not None:
                LOGGER.warning(
                    "%s was already trained as '%s'; not training it again as '%s'",
                    path,
                    previous,
                    category,
                )
                return TrainingResult(
                    status="skipped_relabel",
                    category=category,
                    path=path,
                    reason="trained_as_other_class",
                    previous_category=previous,
                )

        try:
            self._stream.put_document(LabeledDocument(text=text, class_id=class_id, digest=digest))
        except StreamClosedError as exc:
            LOGGER.warning("Training stream closed; dropping %s", path)
            self._forget(digest)
            return TrainingResult(status="stream_closed", category=category, path=path, reason=str(exc))

        return TrainingResult(status="queued", category=category, path=path)

    def mark_learned(self, document: LabeledDocument) -> None:
        """Record a spool document once the learner has applied its counts."""

        if document.digest is None or self._registry is None:
            return
        with self._lock:
            category = self._pending.pop(document.digest, None)
        if category is None:
            category = self._classes[document.class_id]
        self._registry.add(document.digest, category)

    def _forget(self, digest: str | None) -> None:
        if digest is None:
            return
        with self._lock:
            self._pending.pop(digest, None)

    def initial_training(self, spool_dir: Path) -> list[TrainingResult]:
        """Queue every document already present in the spool."""

        results: list[TrainingResult] = []
        for name in self._classes:
            directory = class_dir(spool_dir, name)
            if not directory.is_dir():
                LOGGER.debug("Skipping missing spool directory %s", directory)
                continue
            for candidate in sorted(directory.iterdir()):
                if candidate.is_file() and is_spool_document(candidate):
                    results.append(self.on_document(candidate, name))
        return results


__all__ = [
    "PARTIAL_SUFFIXES",
    "Trainer",
    "TrainingResult",
    "class_dir",
    "ensure_spool_structure",
    "is_spool_document",
    "read_labeled_lines",
]
