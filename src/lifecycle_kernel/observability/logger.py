from __future__ import annotations

import threading
from dataclasses import dataclass, field

from lifecycle_kernel.observability.adapters.logging import LogSink, NullLogSink
from lifecycle_kernel.observability.domain.logging import LOG_LEVELS, LogMessage


@dataclass(slots=True)
class _LoggingState:
    sink: LogSink = field(default_factory=NullLogSink)
    level: str = "info"
    lock: threading.Lock = field(default_factory=threading.Lock)


_STATE = _LoggingState()


class KernelLogger:
    # Named structured logger; sink/level fall back to the process-wide configuration when unset.
    def __init__(self, name: str, sink: LogSink | None = None, level: str | None = None) -> None:
        if level is not None and level not in LOG_LEVELS:
            raise ValueError(f"Unsupported log level: {level!r}")
        self.name = name
        self._sink = sink
        self._level = level

    @property
    def sink(self) -> LogSink:
        return _STATE.sink if self._sink is None else self._sink

    @property
    def level(self) -> str:
        return _STATE.level if self._level is None else self._level

    def is_enabled_for(self, level: str) -> bool:
        return LOG_LEVELS[level] >= LOG_LEVELS[self.level]

    def debug(self, message: str, **fields: object) -> None:
        self._log("debug", message, fields)

    def info(self, message: str, **fields: object) -> None:
        self._log("info", message, fields)

    def warning(self, message: str, **fields: object) -> None:
        self._log("warning", message, fields)

    def error(self, message: str, **fields: object) -> None:
        self._log("error", message, fields)

    def _log(self, level: str, message: str, fields: dict[str, object]) -> None:
        if not self.is_enabled_for(level):
            return
        self.sink.emit(LogMessage(level=level, message=message, fields={"logger": self.name, **fields}))


def configure_logging(sink: LogSink, level: str = "info") -> LogSink:
    # Installs the process sink; returns the previous one so callers can restore/close it.
    if level not in LOG_LEVELS:
        raise ValueError(f"Unsupported log level: {level!r}")
    with _STATE.lock:
        previous = _STATE.sink
        _STATE.sink = sink
        _STATE.level = level
    return previous


def get_logger(name: str) -> KernelLogger:
    return KernelLogger(name)


def current_level() -> str:
    return _STATE.level
