from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum

from lifecycle_kernel.kernel.errors import FailureKind, classify_failure


class ExecutionStatus(str, Enum):
    SUCCESSFUL = "successful"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    # Terminal report for one node: first failure is primary, later ones are suppressed.
    status: ExecutionStatus
    failure: BaseException | None = None
    kind: FailureKind | None = None
    suppressed: tuple[BaseException, ...] = ()

    @classmethod
    def successful(cls) -> ExecutionResult:
        return cls(ExecutionStatus.SUCCESSFUL)

    @classmethod
    def failed(cls, failure: BaseException, suppressed: tuple[BaseException, ...] = ()) -> ExecutionResult:
        return cls(ExecutionStatus.FAILED, failure, classify_failure(failure), tuple(suppressed))

    @property
    def is_successful(self) -> bool:
        return self.status is ExecutionStatus.SUCCESSFUL

    @property
    def message(self) -> str | None:
        return None if self.failure is None else str(self.failure)


class ExecutionListener:
    # Outcome port consumed by the reporting layer; default methods ignore events.
    def execution_started(self, unique_id: str, node: object) -> None:
        return None

    def execution_finished(self, unique_id: str, node: object, result: ExecutionResult) -> None:
        return None

    def execution_skipped(self, unique_id: str, node: object, reason: str) -> None:
        return None


@dataclass(frozen=True, slots=True)
class ExecutionEvent:
    kind: str
    unique_id: str
    node: object
    result: ExecutionResult | None = None
    reason: str | None = None


@dataclass(slots=True)
class RecordingExecutionListener(ExecutionListener):
    # Keeps every event in arrival order for tests and embedding hosts.
    events: list[ExecutionEvent] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def execution_started(self, unique_id: str, node: object) -> None:
        self._record(ExecutionEvent("started", unique_id, node))

    def execution_finished(self, unique_id: str, node: object, result: ExecutionResult) -> None:
        self._record(ExecutionEvent("finished", unique_id, node, result=result))

    def execution_skipped(self, unique_id: str, node: object, reason: str) -> None:
        self._record(ExecutionEvent("skipped", unique_id, node, reason=reason))

    def _record(self, event: ExecutionEvent) -> None:
        with self._lock:
            self.events.append(event)

    def started(self) -> list[str]:
        return [event.unique_id for event in self.events if event.kind == "started"]

    def skipped(self) -> list[str]:
        return [event.unique_id for event in self.events if event.kind == "skipped"]

    def results(self) -> dict[str, ExecutionResult]:
        return {
            event.unique_id: event.result
            for event in self.events
            if event.kind == "finished" and event.result is not None
        }

    def result_for(self, suffix: str) -> ExecutionResult:
        # Looks a result up by unique id suffix, e.g. "[test:adds]".
        matches = [result for unique_id, result in self.results().items() if unique_id.endswith(suffix)]
        if len(matches) != 1:
            raise KeyError(f"Expected exactly one finished node ending with {suffix!r}, found {len(matches)}")
        return matches[0]
