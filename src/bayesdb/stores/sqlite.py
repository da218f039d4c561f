"""SQLite statistics store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from ..errors import StoreIntegrityError
from ..types import ClassAggregate, GlobalCounters, Word
from .base import word_vector

LOGGER = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

# Well below SQLITE_MAX_VARIABLE_NUMBER on every SQLite build still in use.
MAX_PARAMETERS = 500

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS word (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    word        TEXT NOT NULL UNIQUE,
    seen        INTEGER NOT NULL DEFAULT 0,
    doc_seen    INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS count_by_word (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    wid         INTEGER NOT NULL REFERENCES word(id),
    cid         INTEGER NOT NULL,
    "count"     INTEGER NOT NULL DEFAULT 0,
    UNIQUE (wid, cid)
);

CREATE TABLE IF NOT EXISTS count_by_cate (
    cid         INTEGER PRIMARY KEY,
    "count"     INTEGER NOT NULL DEFAULT 0,
    probability REAL NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS "count" (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    doc_count     INTEGER NOT NULL DEFAULT 0,
    dict_count    INTEGER NOT NULL DEFAULT 0,
    last_training REAL
);
"""


class SQLiteStore:
    """Statistics store backed by a single SQLite database.

    One connection is shared by the learner and any number of inference
    threads; statements are serialised through a lock and run in autocommit
    mode so each write is visible as soon as it returns.
    """

    def __init__(self, path: Path | str = MEMORY_DATABASE) -> None:
        if isinstance(path, Path) or path != MEMORY_DATABASE:
            path = Path(path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
        self._path = path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            if path != MEMORY_DATABASE:
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(SCHEMA_SQL)
        LOGGER.debug("Opened statistics database %s", path)

    @property
    def path(self) -> Path | str:
        return self._path

    def lookup_words(self, tokens: Iterable[str], class_count: int) -> dict[str, Word]:
        unique = sorted(set(tokens))
        if not unique:
            return {}
        rows: list[sqlite3.Row] = []
        with self._lock:
            for chunk in _chunks(unique):
                rows.extend(
                    self._conn.execute(
                        f"SELECT id, word, seen, doc_seen FROM word WHERE word IN ({_marks(chunk)})",
                        chunk,
                    )
                )
            counts: dict[int, dict[int, int]] = {row["id"]: {} for row in rows}
            for chunk in _chunks(list(counts)):
                for entry in self._conn.execute(
                    f'SELECT wid, cid, "count" FROM count_by_word WHERE wid IN ({_marks(chunk)})',
                    chunk,
                ):
                    counts[entry["wid"]][entry["cid"]] = entry["count"]
        return {
            row["word"]: Word(
                seen=row["seen"],
                docs_seen=row["doc_seen"],
                count=word_vector(counts[row["id"]], class_count),
            )
            for row in rows
        }

    def upsert_word(self, token: str, seen: int, docs_seen: int, *, is_new: bool) -> int:
        with self._lock:
            if is_new:
                try:
                    cursor = self._conn.execute(
                        "INSERT INTO word (word, seen, doc_seen) VALUES (?, ?, ?)",
                        (token, seen, docs_seen),
                    )
                except sqlite3.IntegrityError as exc:
                    raise StoreIntegrityError(f"failed to insert word '{token}': {exc}") from exc
                if cursor.rowcount == 0 or not cursor.lastrowid:
                    raise StoreIntegrityError(f"failed to insert word '{token}'")
                return int(cursor.lastrowid)

            cursor = self._conn.execute(
                "UPDATE word SET seen = ?, doc_seen = ? WHERE word = ?",
                (seen, docs_seen, token),
            )
            if cursor.rowcount == 0:
                raise StoreIntegrityError(f"failed to update word '{token}'")
            row = self._conn.execute("SELECT id FROM word WHERE word = ?", (token,)).fetchone()
            return int(row["id"])

    def upsert_word_class_count(self, word_id: int, class_id: int, count: int) -> None:
        with self._lock:
            row = self._conn.execute(
                'SELECT id, "count" FROM count_by_word WHERE wid = ? AND cid = ?',
                (word_id, class_id),
            ).fetchone()
            if row is None:
                try:
                    cursor = self._conn.execute(
                        'INSERT INTO count_by_word (wid, cid, "count") VALUES (?, ?, ?)',
                        (word_id, class_id, count),
                    )
                except sqlite3.IntegrityError as exc:
                    raise StoreIntegrityError(
                        f"failed to insert count_by_word for word {word_id}: {exc}"
                    ) from exc
            elif row["count"] != count:
                cursor = self._conn.execute(
                    'UPDATE count_by_word SET "count" = ? WHERE id = ?',
                    (count, row["id"]),
                )
            else:
                return
            if cursor.rowcount == 0:
                raise StoreIntegrityError(
                    f"failed to store count_by_word (wid={word_id}, cid={class_id})"
                )

    def increment_docs_seen(self, tokens: Iterable[str]) -> None:
        unique = sorted(set(tokens))
        if not unique:
            return
        affected = 0
        with self._lock:
            for chunk in _chunks(unique):
                cursor = self._conn.execute(
                    f"UPDATE word SET doc_seen = doc_seen + 1 WHERE word IN ({_marks(chunk)})",
                    chunk,
                )
                affected += cursor.rowcount
        if affected == 0:
            raise StoreIntegrityError("failed to update doc_seen for the document's words")

    def replace_class_aggregate(self, class_id: int, count: int, probability: float) -> None:
        with self._lock:
            cursor = self._conn.execute(
                'REPLACE INTO count_by_cate (cid, "count", probability) VALUES (?, ?, ?)',
                (class_id, count, probability),
            )
        if cursor.rowcount == 0:
            raise StoreIntegrityError(f"failed to store count_by_cate for class {class_id}")

    def class_aggregates(self) -> list[ClassAggregate]:
        with self._lock:
            rows = self._conn.execute(
                'SELECT cid, "count", probability FROM count_by_cate ORDER BY cid'
            ).fetchall()
        return [
            ClassAggregate(
                class_id=row["cid"],
                document_count=row["count"],
                probability=float(row["probability"]),
            )
            for row in rows
        ]

    def max_class_id(self) -> int | None:
        with self._lock:
            row = self._conn.execute("SELECT MAX(cid) AS max_cid FROM count_by_cate").fetchone()
        if row is None or row["max_cid"] is None:
            return None
        return int(row["max_cid"])

    def get_global_counters(self) -> GlobalCounters | None:
        with self._lock:
            row = self._conn.execute(
                'SELECT doc_count, dict_count, last_training FROM "count" ORDER BY id LIMIT 1'
            ).fetchone()
        if row is None:
            return None
        last_training = row["last_training"]
        return GlobalCounters(
            total_documents=row["doc_count"],
            dictionary_size=row["dict_count"],
            last_training=(
                datetime.fromtimestamp(last_training, tz=timezone.utc)
                if last_training is not None
                else None
            ),
        )

    def put_global_counters(self, counters: GlobalCounters) -> None:
        last_training = counters.last_training.timestamp() if counters.last_training else None
        values = (counters.total_documents, counters.dictionary_size, last_training)
        with self._lock:
            row = self._conn.execute('SELECT id FROM "count" ORDER BY id LIMIT 1').fetchone()
            if row is not None:
                cursor = self._conn.execute(
                    'UPDATE "count" SET doc_count = ?, dict_count = ?, last_training = ? '
                    "WHERE id = ?",
                    (*values, row["id"]),
                )
            else:
                cursor = self._conn.execute(
                    'INSERT INTO "count" (doc_count, dict_count, last_training) VALUES (?, ?, ?)',
                    values,
                )
        if cursor.rowcount == 0:
            raise StoreIntegrityError("failed to store the global counters row")

    def flush(self) -> None:
        # Every statement is committed as it runs.
        return None

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield the underlying connection while holding the store lock."""

        with self._lock:
            yield self._conn


def _chunks(values: Sequence) -> Iterator[list]:
    for start in range(0, len(values), MAX_PARAMETERS):
        yield list(values[start : start + MAX_PARAMETERS])


def _marks(values: Sequence) -> str:
    return ", ".join("?" for _ in values)


__all__ = ["MEMORY_DATABASE", "SQLiteStore"]
