from __future__ import annotations

import json
from pathlib import Path

import pytest

from lifecycle_kernel.observability.adapters.logging import (
    InMemoryLogSink,
    JsonlLogSink,
    NullLogSink,
    StdoutLogSink,
    build_log_sink,
)
from lifecycle_kernel.observability.domain.logging import LogMessage
from lifecycle_kernel.observability.logger import KernelLogger


def test_stdout_sink_writes_one_json_object_per_line(capsys) -> None:
    StdoutLogSink().emit(LogMessage(level="info", message="Node started", fields={"unique_id": "[engine:x]"}))
    payload = json.loads(capsys.readouterr().out.strip())
    assert payload["level"] == "info"
    assert payload["message"] == "Node started"
    assert payload["fields"] == {"unique_id": "[engine:x]"}
    assert payload["timestamp"].endswith("Z")


def test_jsonl_sink_appends_lines(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "kernel.jsonl"
    sink = JsonlLogSink(path)
    sink.emit(LogMessage(level="warning", message="first"))
    sink.emit(LogMessage(level="error", message="second"))
    sink.close()
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["message"] for line in lines] == ["first", "second"]


def test_log_message_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        LogMessage(level="trace", message="nope")


def test_build_log_sink_selects_adapter(tmp_path: Path) -> None:
    assert isinstance(build_log_sink({}), NullLogSink)
    assert isinstance(build_log_sink({"sink": "stdout"}), StdoutLogSink)
    assert isinstance(build_log_sink({"sink": "memory"}), InMemoryLogSink)
    sink = build_log_sink({"sink": "jsonl", "path": str(tmp_path / "out.jsonl")})
    assert isinstance(sink, JsonlLogSink)
    sink.close()
    with pytest.raises(ValueError):
        build_log_sink({"sink": "jsonl"})
    with pytest.raises(ValueError):
        build_log_sink({"sink": "syslog"})


def test_logger_filters_below_level_and_tags_name() -> None:
    sink = InMemoryLogSink()
    logger = KernelLogger("lifecycle_kernel.test", sink=sink, level="warning")
    logger.info("dropped")
    logger.warning("kept", node="x")
    assert [message.message for message in sink.messages] == ["kept"]
    assert sink.messages[0].fields == {"logger": "lifecycle_kernel.test", "node": "x"}


def test_logger_uses_process_configuration(log_sink) -> None:
    KernelLogger("lifecycle_kernel.test").debug("visible at debug")
    assert log_sink.find("debug", "visible at debug")
