"""PID file guarding the single training process per database."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_PID_NAME = "bayesdb-watch.pid"


class PidFileError(RuntimeError):
    """Raised when another training process already owns the PID file."""


@dataclass(frozen=True)
class PidRecord:
    """Contents of a PID file: the daemon's PID and the database it trains."""

    pid: int
    database: str | None = None

    def render(self) -> str:
        if self.database is None:
            return f"{self.pid}\n"
        return f"{self.pid}\n{self.database}\n"


def read_record(path: Path) -> PidRecord | None:
    """Parse ``path``; unreadable or malformed files yield None."""

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return None
    if not lines or not lines[0].strip():
        return None
    try:
        pid = int(lines[0].strip())
    except ValueError:
        return None
    database = lines[1].strip() if len(lines) > 1 and lines[1].strip() else None
    return PidRecord(pid=pid, database=database)


def read_pid(path: Path) -> int | None:
    record = read_record(path)
    return record.pid if record else None


def pid_alive(pid: int) -> bool:
    """Return True if a process with ``pid`` appears to be running."""

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but belongs to another user.
        return True
    return True


def running_pid(path: Path) -> int | None:
    """PID of the live daemon recorded in ``path``; stale files are removed."""

    record = read_record(path)
    if record is None:
        return None
    if pid_alive(record.pid):
        return record.pid
    path.unlink(missing_ok=True)
    return None


@dataclass
class PidFile:
    """Context manager that writes and cleans up a PID file.

    Only one process may train a given database at a time; the PID file is
    how a second ``watch`` or ``train`` notices the first.
    """

    path: Path
    database: str | None = None
    pid: int | None = None

    def __post_init__(self) -> None:
        self.path = self.path.expanduser()

    @classmethod
    def for_root(cls, root_dir: Path, database: Path | str | None = None) -> PidFile:
        return cls(root_dir / DEFAULT_PID_NAME, None if database is None else str(database))

    def __enter__(self) -> PidFile:
        self.create()
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:
        self.remove()

    def create(self, pid: int | None = None) -> int:
        self.ensure_can_start(self.path)
        record = PidRecord(pid=pid or os.getpid(), database=self.database)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(record.render(), encoding="utf-8")
        self.pid = record.pid
        return record.pid

    def remove(self) -> None:
        """Delete the PID file if we own it or its process has gone away."""

        record = read_record(self.path)
        if record is None:
            self.path.unlink(missing_ok=True)
            return
        if record.pid == self.pid or not pid_alive(record.pid):
            self.path.unlink(missing_ok=True)

    @staticmethod
    def ensure_can_start(path: Path) -> None:
        path = path.expanduser()
        record = read_record(path)
        if record is not None and pid_alive(record.pid):
            target = f" on {record.database}" if record.database else ""
            raise PidFileError(f"Training already in progress{target} (PID {record.pid}).")
        path.unlink(missing_ok=True)


__all__ = [
    "DEFAULT_PID_NAME",
    "PidFile",
    "PidFileError",
    "PidRecord",
    "pid_alive",
    "read_pid",
    "read_record",
    "running_pid",
]
