from .logging import (
    InMemoryLogSink,
    JsonlLogSink,
    LogSink,
    NullLogSink,
    StdoutLogSink,
    build_log_sink,
)

__all__ = ["InMemoryLogSink", "JsonlLogSink", "LogSink", "NullLogSink", "StdoutLogSink", "build_log_sink"]
