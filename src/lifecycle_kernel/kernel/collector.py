from __future__ import annotations

from collections.abc import Callable

from lifecycle_kernel.kernel.errors import FailureKind, classify_failure
from lifecycle_kernel.kernel.listener import ExecutionResult


class ThrowableCollector:
    # Failure sink for one node: first failure becomes primary, later ones are kept as suppressed.
    def __init__(self) -> None:
        self._primary: Exception | None = None
        self._suppressed: list[Exception] = []

    @property
    def primary(self) -> Exception | None:
        return self._primary

    @property
    def suppressed(self) -> tuple[Exception, ...]:
        return tuple(self._suppressed)

    @property
    def is_empty(self) -> bool:
        return self._primary is None

    @property
    def internal_failure(self) -> Exception | None:
        # First failure classified INTERNAL; such failures abort the rest of the run.
        for failure in self.failures():
            if classify_failure(failure) is FailureKind.INTERNAL:
                return failure
        return None

    def failures(self) -> list[Exception]:
        if self._primary is None:
            return []
        return [self._primary, *self._suppressed]

    def execute(self, action: Callable[[], object]) -> bool:
        # BaseExceptions that are not Exceptions (KeyboardInterrupt, SystemExit) propagate.
        try:
            action()
        except Exception as exc:  # noqa: BLE001 - recorded against the node
            self.add(exc)
            return False
        return True

    def add(self, failure: Exception) -> None:
        if self._primary is None:
            self._primary = failure
        elif failure is not self._primary and failure not in self._suppressed:
            self._suppressed.append(failure)

    def to_result(self) -> ExecutionResult:
        if self._primary is None:
            return ExecutionResult.successful()
        return ExecutionResult.failed(self._primary, tuple(self._suppressed))
