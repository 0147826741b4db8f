from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from lifecycle_kernel.kernel.errors import InterceptorChainError

if TYPE_CHECKING:
    from lifecycle_kernel.kernel.context import ExtensionContext


class Invocation:
    # Single wrapped call (test body, lifecycle method); proceed() runs it once and returns its result.
    def proceed(self) -> Any:
        raise NotImplementedError("Invocation.proceed must be implemented")


class CallableInvocation(Invocation):
    def __init__(self, call: Callable[[], Any]) -> None:
        self._call = call

    def proceed(self) -> Any:
        return self._call()


@dataclass(frozen=True, slots=True)
class InvocationContext:
    # What an interceptor is wrapping: the callable, its target instance and resolved arguments.
    description: str
    executable: Callable[..., Any]
    target: object | None = None
    arguments: Mapping[str, object] = field(default_factory=dict)
    # Timeout declared directly on the wrapped lifecycle method, if any.
    timeout: object | None = None


class _ValidatingInvocation(Invocation):
    # Enforces exactly one proceed() per interceptor.
    def __init__(self, delegate: Invocation, interceptor: object) -> None:
        self._delegate = delegate
        self._interceptor = interceptor
        self._calls = 0

    def proceed(self) -> Any:
        self._calls += 1
        if self._calls > 1:
            raise InterceptorChainError(
                f"Invocation interceptor [{_qualified(self._interceptor)}] called proceed() more than once"
            )
        return self._delegate.proceed()

    def verify(self) -> None:
        if self._calls == 0:
            raise InterceptorChainError(
                f"Invocation interceptor [{_qualified(self._interceptor)}] did not call proceed()"
            )


InterceptorCall = Callable[[Any, Invocation, InvocationContext, "ExtensionContext"], Any]


class _InterceptedInvocation(Invocation):
    def __init__(
        self,
        delegate: Invocation,
        interceptor: object,
        call: InterceptorCall,
        invocation_context: InvocationContext,
        extension_context: ExtensionContext,
    ) -> None:
        self._delegate = delegate
        self._interceptor = interceptor
        self._call = call
        self._invocation_context = invocation_context
        self._extension_context = extension_context

    def proceed(self) -> Any:
        validating = _ValidatingInvocation(self._delegate, self._interceptor)
        result = self._call(self._interceptor, validating, self._invocation_context, self._extension_context)
        validating.verify()
        return result


def invoke_with_interceptors(
    invocation: Invocation,
    interceptors: Sequence[object],
    call: InterceptorCall,
    invocation_context: InvocationContext,
    extension_context: ExtensionContext,
) -> Any:
    # Interceptors are ordered outer to inner; the outermost one runs first.
    chained = invocation
    for interceptor in reversed(interceptors):
        chained = _InterceptedInvocation(chained, interceptor, call, invocation_context, extension_context)
    return chained.proceed()


def _qualified(value: object) -> str:
    cls = type(value)
    return f"{cls.__module__}.{cls.__qualname__}"
