"""Registry of documents the learner has already applied."""

from __future__ import annotations

import hashlib
import threading
from pathlib import Path


def document_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class TrainedDocumentRegistry:
    """Append-only file mapping document digests to the class they trained.

    Counts are additive and cannot be withdrawn, so a digest is recorded once
    with its first class and never relabelled. Replaying the same spool after
    a restart therefore trains nothing twice.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._seen = self._load_existing()

    def category(self, digest: str) -> str | None:
        with self._lock:
            return self._seen.get(digest)

    def add(self, digest: str, category: str) -> bool:
        """Record ``digest`` as trained for ``category``.

        Returns False when the digest is already registered, whatever its
        class.
        """

        digest = digest.strip()
        category = category.strip()
        if not digest or not category:
            return False
        with self._lock:
            if digest in self._seen:
                return False
            self._seen[digest] = category
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(f"{digest}\t{category}\n")
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def _load_existing(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        contents: dict[str, str] = {}
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                stripped = line.strip()
                if "\t" not in stripped:
                    continue
                digest, category = stripped.split("\t", 1)
                if digest and category:
                    contents.setdefault(digest, category)
        return contents


__all__ = ["TrainedDocumentRegistry", "document_digest"]
