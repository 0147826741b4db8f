from __future__ import annotations

import json
import threading
from collections.abc import Mapping
from pathlib import Path

from lifecycle_kernel.observability.domain.logging import LogMessage


class LogSink:
    # Port for structured kernel log output.
    def emit(self, message: LogMessage) -> None:
        raise NotImplementedError("LogSink.emit must be implemented")

    def close(self) -> None:
        return None


class NullLogSink(LogSink):
    # Discards every message; default when logging is not configured.
    def emit(self, message: LogMessage) -> None:
        _ = message


class StdoutLogSink(LogSink):
    # One JSON object per line on stdout.
    def emit(self, message: LogMessage) -> None:
        print(json.dumps(_log_to_dict(message), separators=(",", ":"), ensure_ascii=False, default=str))


class JsonlLogSink(LogSink):
    # File-backed structured log sink for run diagnostics.
    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._path.open("a", encoding="utf-8")
        # Timeout worker threads may log concurrently with the traversal thread.
        self._lock = threading.Lock()

    def emit(self, message: LogMessage) -> None:
        payload = json.dumps(_log_to_dict(message), separators=(",", ":"), ensure_ascii=False, default=str)
        with self._lock:
            self._file.write(payload + "\n")
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            self._file.close()


class InMemoryLogSink(LogSink):
    # Keeps emitted messages for inspection in tests and embedding hosts.
    def __init__(self) -> None:
        self.messages: list[LogMessage] = []
        self._lock = threading.Lock()

    def emit(self, message: LogMessage) -> None:
        with self._lock:
            self.messages.append(message)

    def find(self, level: str | None = None, contains: str | None = None) -> list[LogMessage]:
        with self._lock:
            snapshot = list(self.messages)
        return [
            item
            for item in snapshot
            if (level is None or item.level == level) and (contains is None or contains in item.message)
        ]


def build_log_sink(settings: Mapping[str, object]) -> LogSink:
    # Sink factory over the `logging` config section (sink: none|stdout|jsonl|memory).
    kind = settings.get("sink", "none")
    if kind == "none":
        return NullLogSink()
    if kind == "stdout":
        return StdoutLogSink()
    if kind == "memory":
        return InMemoryLogSink()
    if kind == "jsonl":
        path = settings.get("path")
        if not isinstance(path, str) or not path:
            raise ValueError("logging.path must be a non-empty string for the jsonl sink")
        return JsonlLogSink(Path(path))
    raise ValueError(f"Unsupported log sink: {kind!r}")


def _log_to_dict(message: LogMessage) -> dict[str, object]:
    return {
        "level": message.level,
        "message": message.message,
        "timestamp": message.timestamp.isoformat().replace("+00:00", "Z"),
        "fields": message.fields,
    }
