from __future__ import annotations

import contextvars
import itertools
import sys
import threading
import traceback
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from lifecycle_kernel.kernel.errors import (
    InvocationTimeoutError,
    KernelError,
    KernelInternalError,
    PreconditionViolationError,
)
from lifecycle_kernel.kernel.invocation import Invocation
from lifecycle_kernel.observability.logger import get_logger
from lifecycle_kernel.timeout.cancellation import CancellationToken, bind_token, current_token
from lifecycle_kernel.timeout.duration import TimeoutDuration
from lifecycle_kernel.timeout.scheduler import TimeoutExecutorResource

if TYPE_CHECKING:
    from lifecycle_kernel.kernel.context import Store

__all__ = [
    "ExecutionTimeoutError",
    "InvocationTimeoutError",
    "SameThreadTimeoutInvocation",
    "SeparateThreadTimeoutInvocation",
    "ThreadMode",
    "TimeoutInvocationFactory",
    "TimeoutInvocationParameters",
]

_logger = get_logger("lifecycle_kernel.timeout.invocation")

_WORKER_COUNTER = itertools.count(1)


class ThreadMode(str, Enum):
    SAME_THREAD = "same_thread"
    SEPARATE_THREAD = "separate_thread"
    # Resolved from configuration; never used as an effective mode.
    INFERRED = "inferred"

    @classmethod
    def parse(cls, value: str | ThreadMode) -> ThreadMode:
        if isinstance(value, ThreadMode):
            return value
        return cls(value.strip().lower())


class ExecutionTimeoutError(KernelError):
    # Cause of a preemptive timeout: names the abandoned worker and carries its stack snapshot.
    def __init__(self, thread_name: str, stack: str) -> None:
        super().__init__(f"Execution timed out in thread {thread_name}")
        self.thread_name = thread_name
        self.stack = stack

    def __str__(self) -> str:
        text = super().__str__()
        return f"{text}\n{self.stack}" if self.stack else text


@dataclass(frozen=True, slots=True)
class TimeoutInvocationParameters:
    invocation: Invocation
    timeout: TimeoutDuration
    description_supplier: Callable[[], str]
    executor: TimeoutExecutorResource | None = None

    def __post_init__(self) -> None:
        if self.invocation is None:
            raise PreconditionViolationError("invocation must not be None")
        if self.timeout is None:
            raise PreconditionViolationError("timeout duration must not be None")
        if self.description_supplier is None:
            raise PreconditionViolationError("description supplier must not be None")

    def describe(self) -> str:
        return f"{self.description_supplier()} timed out after {self.timeout}"


class SameThreadTimeoutInvocation(Invocation):
    # Cooperative: runs on the caller thread and cancels a call-local token at the deadline.
    def __init__(self, parameters: TimeoutInvocationParameters) -> None:
        if parameters.executor is None:
            raise PreconditionViolationError("executor resource must not be None for same-thread timeouts")
        self._parameters = parameters

    def proceed(self) -> Any:
        parameters = self._parameters
        executor = parameters.executor
        if executor is None:
            raise KernelInternalError("same-thread timeout invocation lost its executor resource")
        token = CancellationToken(parent=current_token())
        scheduled = executor.scheduler.schedule(
            parameters.timeout.to_seconds(),
            lambda: token.cancel(parameters.describe()),
        )
        failure: Exception | None = None
        result: Any = None
        try:
            with bind_token(token):
                result = parameters.invocation.proceed()
        except Exception as exc:  # noqa: BLE001 - re-raised below unless the deadline fired first
            failure = exc
        finally:
            fired = not scheduled.cancel()
        if fired:
            error = InvocationTimeoutError(
                parameters.describe(),
                duration=parameters.timeout,
                description=parameters.description_supplier(),
            )
            if failure is not None:
                error.suppressed.append(failure)
                error.__context__ = failure
            raise error
        if failure is not None:
            raise failure
        return result


class _WorkerOutcome:
    # Written once by the worker thread before `done` is set.
    __slots__ = ("done", "value", "failure")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: Any = None
        self.failure: BaseException | None = None


class SeparateThreadTimeoutInvocation(Invocation):
    # Preemptive: runs on a daemon worker; the caller is released at the deadline.
    def __init__(self, parameters: TimeoutInvocationParameters) -> None:
        self._parameters = parameters

    def proceed(self) -> Any:
        parameters = self._parameters
        token = CancellationToken(parent=current_token())
        outcome = _WorkerOutcome()

        def run() -> None:
            try:
                with bind_token(token):
                    outcome.value = parameters.invocation.proceed()
            except BaseException as exc:  # noqa: BLE001 - handed to the caller unchanged
                outcome.failure = exc
            finally:
                outcome.done.set()

        name = f"lifecycle-kernel-timeout-thread-{next(_WORKER_COUNTER)}"
        context = contextvars.copy_context()
        worker = threading.Thread(target=context.run, args=(run,), name=name, daemon=True)
        worker.start()
        if outcome.done.wait(parameters.timeout.to_seconds()):
            if outcome.failure is not None:
                raise outcome.failure
            return outcome.value

        token.cancel(parameters.describe())
        cause = ExecutionTimeoutError(name, _stack_snapshot(worker))
        _logger.warning(
            "Abandoned timed out invocation worker",
            thread=name,
            description=parameters.description_supplier(),
            timeout=str(parameters.timeout),
        )
        raise InvocationTimeoutError(
            parameters.describe(),
            duration=parameters.timeout,
            description=parameters.description_supplier(),
        ) from cause


class TimeoutInvocationFactory:
    # Picks the timeout variant; same-thread invocations share the scheduler kept in the given store.
    def __init__(self, store: Store | None = None) -> None:
        self._store = store

    def create(self, thread_mode: ThreadMode, parameters: TimeoutInvocationParameters) -> Invocation:
        if thread_mode is None:
            raise PreconditionViolationError("thread mode must not be None")
        if parameters is None:
            raise PreconditionViolationError("timeout invocation parameters must not be None")
        if ThreadMode.parse(thread_mode) is ThreadMode.SEPARATE_THREAD:
            return SeparateThreadTimeoutInvocation(parameters)
        if parameters.executor is None:
            if self._store is None:
                raise PreconditionViolationError("same-thread timeouts require an executor resource or a store")
            executor = self._store.get_or_compute_if_absent(TimeoutExecutorResource)
            parameters = TimeoutInvocationParameters(
                parameters.invocation,
                parameters.timeout,
                parameters.description_supplier,
                executor,
            )
        return SameThreadTimeoutInvocation(parameters)


def _stack_snapshot(thread: threading.Thread) -> str:
    frame = sys._current_frames().get(thread.ident) if thread.ident is not None else None
    if frame is None:
        return ""
    return "".join(traceback.format_stack(frame))
