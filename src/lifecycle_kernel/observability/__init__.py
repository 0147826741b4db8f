from __future__ import annotations

from lifecycle_kernel.observability.adapters.logging import (
    InMemoryLogSink,
    JsonlLogSink,
    LogSink,
    NullLogSink,
    StdoutLogSink,
    build_log_sink,
)
from lifecycle_kernel.observability.domain.logging import LogMessage
from lifecycle_kernel.observability.logger import KernelLogger, configure_logging, current_level, get_logger

__all__ = [
    "InMemoryLogSink",
    "JsonlLogSink",
    "KernelLogger",
    "LogMessage",
    "LogSink",
    "NullLogSink",
    "StdoutLogSink",
    "build_log_sink",
    "configure_logging",
    "current_level",
    "get_logger",
]
