"""Statistics store implementations."""

from __future__ import annotations

from pathlib import Path

from .base import StatisticsStore
from .memory import MemoryStore
from .sqlite import MEMORY_DATABASE, SQLiteStore

MEMORY_BACKEND = "memory"
MEMORY_STATE_NAME = "memory-model.pickle"


def open_store(database: Path | str, state_dir: Path | None = None) -> StatisticsStore:
    """Open the store named by a configured ``database`` value.

    The ``memory`` backend is pickled under ``state_dir`` when one is given.
    """

    if str(database) == MEMORY_BACKEND:
        return MemoryStore(state_dir / MEMORY_STATE_NAME if state_dir is not None else None)
    if str(database) == MEMORY_DATABASE:
        return SQLiteStore(MEMORY_DATABASE)
    return SQLiteStore(Path(database))


__all__ = [
    "MEMORY_BACKEND",
    "MEMORY_STATE_NAME",
    "MemoryStore",
    "SQLiteStore",
    "StatisticsStore",
    "open_store",
]
