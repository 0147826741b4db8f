from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from lifecycle_kernel.observability.adapters.logging import InMemoryLogSink
from lifecycle_kernel.observability.logger import configure_logging, current_level


class CallSequence:
    # Ordered log of lifecycle events used to assert ordering laws.
    def __init__(self) -> None:
        self.entries: list[str] = []
        self._lock = threading.Lock()

    def record(self, entry: str) -> None:
        with self._lock:
            self.entries.append(entry)

    def recorder(self, entry: str) -> Callable[..., None]:
        def record(*args: Any, **kwargs: Any) -> None:
            self.record(entry)

        record.__qualname__ = entry
        return record

    def index(self, entry: str) -> int:
        return self.entries.index(entry)

    def count(self, entry: str) -> int:
        return self.entries.count(entry)


@pytest.fixture
def calls() -> CallSequence:
    return CallSequence()


@pytest.fixture
def log_sink() -> Iterator[InMemoryLogSink]:
    sink = InMemoryLogSink()
    previous_level = current_level()
    previous = configure_logging(sink, "debug")
    yield sink
    configure_logging(previous, previous_level)
