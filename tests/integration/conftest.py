from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any

import pytest


class EventCollector:
    """Thread-safe helper for waiting on asynchronous events."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self._condition = threading.Condition()

    def add(self, event: dict[str, Any]) -> None:
        with self._condition:
            self.events.append(event)
            self._condition.notify_all()

    def wait_for(self, count: int, timeout: float = 30.0) -> bool:
        """Wait until a minimum number of events have been collected."""

        deadline = time.monotonic() + timeout
        with self._condition:
            while len(self.events) < count:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._condition.wait(timeout=remaining)
            return True


SPAM_DOCUMENTS = [
    "cheap pills online pharmacy discount",
    "win money now claim your prize",
    "discount watches cheap replica offer",
    "claim free money offer today",
]

HAM_DOCUMENTS = [
    "meeting notes attached for tomorrow",
    "lunch with the team on friday",
    "project review meeting moved to monday",
    "notes from the friday project review",
]


@pytest.fixture
def corpus() -> dict[str, list[str]]:
    return {"spam": list(SPAM_DOCUMENTS), "ham": list(HAM_DOCUMENTS)}


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Automatically mark tests in this package as integration."""

    package_root = Path(__file__).resolve().parent
    integration_mark = pytest.mark.integration
    for item in items:
        try:
            path = Path(item.fspath).resolve()
        except OSError:
            continue
        if package_root in path.parents:
            item.add_marker(integration_mark)
