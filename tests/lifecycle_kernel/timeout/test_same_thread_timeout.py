from __future__ import annotations

import threading
import time

import pytest

from lifecycle_kernel.kernel.errors import InvocationTimeoutError, KernelInternalError, PreconditionViolationError
from lifecycle_kernel.kernel.invocation import CallableInvocation
from lifecycle_kernel.timeout import cancellation
from lifecycle_kernel.timeout.cancellation import CancellationToken, InvocationCancelledError, bind_token
from lifecycle_kernel.timeout.duration import TimeoutDuration, TimeUnit
from lifecycle_kernel.timeout.invocation import (
    SameThreadTimeoutInvocation,
    ThreadMode,
    TimeoutInvocationFactory,
    TimeoutInvocationParameters,
)
from lifecycle_kernel.timeout.scheduler import TimeoutExecutorResource


@pytest.fixture
def executor():
    resource = TimeoutExecutorResource()
    yield resource
    resource.close()


def _parameters(call, executor, millis: int = 10) -> TimeoutInvocationParameters:
    return TimeoutInvocationParameters(
        CallableInvocation(call),
        TimeoutDuration(millis, TimeUnit.MILLISECONDS),
        lambda: "slow()",
        executor,
    )


def test_result_is_returned_when_call_finishes_in_time(executor) -> None:
    invocation = SameThreadTimeoutInvocation(_parameters(lambda: "done", executor, millis=500))
    assert invocation.proceed() == "done"


def test_overrun_raises_timeout_with_description(executor) -> None:
    # Cooperative sleep wakes up at the deadline instead of running to completion.
    started = time.monotonic()
    invocation = SameThreadTimeoutInvocation(_parameters(lambda: cancellation.sleep(5), executor))
    with pytest.raises(InvocationTimeoutError) as excinfo:
        invocation.proceed()
    assert time.monotonic() - started < 2
    assert str(excinfo.value) == "slow() timed out after 10 milliseconds"
    assert excinfo.value.duration == TimeoutDuration(10, TimeUnit.MILLISECONDS)
    assert excinfo.value.description == "slow()"
    assert isinstance(excinfo.value.suppressed[0], InvocationCancelledError)


def test_non_cooperative_overrun_still_reports_timeout(executor) -> None:
    invocation = SameThreadTimeoutInvocation(_parameters(lambda: time.sleep(0.1), executor))
    with pytest.raises(InvocationTimeoutError) as excinfo:
        invocation.proceed()
    assert excinfo.value.suppressed == []


def test_failure_after_deadline_is_attached_as_suppressed(executor) -> None:
    def late_failure() -> None:
        time.sleep(0.1)
        raise ValueError("late")

    invocation = SameThreadTimeoutInvocation(_parameters(late_failure, executor))
    with pytest.raises(InvocationTimeoutError) as excinfo:
        invocation.proceed()
    assert isinstance(excinfo.value.suppressed[0], ValueError)
    assert excinfo.value.__context__ is excinfo.value.suppressed[0]


def test_failure_before_deadline_propagates_unchanged(executor) -> None:
    def fail() -> None:
        raise KeyError("early")

    invocation = SameThreadTimeoutInvocation(_parameters(fail, executor, millis=500))
    with pytest.raises(KeyError):
        invocation.proceed()


def test_token_state_is_restored_after_timeout(executor) -> None:
    # The caller's token is untouched; a later call does not see a stale cancellation.
    outer = CancellationToken()
    with bind_token(outer):
        with pytest.raises(InvocationTimeoutError):
            SameThreadTimeoutInvocation(_parameters(lambda: cancellation.sleep(5), executor)).proceed()
        assert cancellation.current_token() is outer
        assert not cancellation.is_cancelled()
    assert cancellation.current_token() is None
    assert SameThreadTimeoutInvocation(_parameters(lambda: "again", executor, millis=500)).proceed() == "again"


def test_cancelling_the_caller_cancels_the_invocation(executor) -> None:
    outer = CancellationToken()
    seen: list[bool] = []

    def observe() -> None:
        outer.cancel("caller gave up")
        seen.append(cancellation.is_cancelled())

    with bind_token(outer):
        SameThreadTimeoutInvocation(_parameters(observe, executor, millis=500)).proceed()
    assert seen == [True]


def test_runs_on_the_calling_thread(executor) -> None:
    threads: list[int] = []
    SameThreadTimeoutInvocation(
        _parameters(lambda: threads.append(threading.get_ident()), executor, millis=500)
    ).proceed()
    assert threads == [threading.get_ident()]


def test_parameters_reject_missing_values(executor) -> None:
    with pytest.raises(PreconditionViolationError):
        TimeoutInvocationParameters(None, TimeoutDuration(1, TimeUnit.SECONDS), lambda: "x")  # type: ignore[arg-type]
    with pytest.raises(PreconditionViolationError):
        TimeoutInvocationParameters(CallableInvocation(lambda: None), None, lambda: "x")  # type: ignore[arg-type]
    with pytest.raises(PreconditionViolationError):
        SameThreadTimeoutInvocation(
            TimeoutInvocationParameters(CallableInvocation(lambda: None), TimeoutDuration(1, TimeUnit.SECONDS), lambda: "x")
        )


def test_factory_requires_store_or_executor_for_same_thread() -> None:
    parameters = TimeoutInvocationParameters(
        CallableInvocation(lambda: None), TimeoutDuration(1, TimeUnit.SECONDS), lambda: "x"
    )
    with pytest.raises(PreconditionViolationError):
        TimeoutInvocationFactory().create(ThreadMode.SAME_THREAD, parameters)
    with pytest.raises(PreconditionViolationError):
        TimeoutInvocationFactory().create(None, parameters)  # type: ignore[arg-type]


def test_lost_executor_is_reported_as_internal_error(executor) -> None:
    # The constructor guarantees an executor; losing it afterwards is a kernel bug, not a test failure.
    invocation = SameThreadTimeoutInvocation(_parameters(lambda: "done", executor))
    invocation._parameters = _parameters(lambda: "done", None)
    with pytest.raises(KernelInternalError):
        invocation.proceed()
