from __future__ import annotations

from enum import Enum


class KernelError(Exception):
    # Base error for every failure synthesized by the lifecycle kernel itself.
    pass


class ConfigurationError(KernelError, ValueError):
    # Detected before lifecycle work begins; fatal to the node it belongs to.
    pass


class PreconditionViolationError(ConfigurationError):
    # Required argument missing or invalid at an API boundary.
    pass


class DurationParseError(ConfigurationError):
    # Malformed duration text (leading zero, bad number, unknown unit, zero amount).
    pass


class ExtensionConfigurationError(ConfigurationError):
    # Conflicting or unsupported extension registration (e.g. two instance factories).
    pass


class ParameterResolutionError(ConfigurationError):
    # No resolver, or more than one resolver, claims a declared test parameter.
    pass


class TestInstantiationError(KernelError):
    # Instance factory failed or returned something that is not an instance of the test class.
    __test__ = False


class KernelInternalError(KernelError):
    # Programming errors inside the kernel contract; never downgraded to a soft failure.
    pass


class ContextClosedError(KernelInternalError):
    # ExtensionContext used after its node finished.
    pass


class StoreClosedError(KernelInternalError):
    # Store node used after it was closed.
    pass


class InterceptorChainError(KernelInternalError):
    # An invocation interceptor skipped proceed() or called it more than once.
    pass


class StoreTypeError(KernelError, TypeError):
    # Stored value does not match the required type requested by the caller.
    pass


class InvocationTimeoutError(KernelError, TimeoutError):
    # Invocation overran its deadline; carries the configured duration and description.
    def __init__(self, message: str, *, duration: object = None, description: str | None = None) -> None:
        super().__init__(message)
        self.duration = duration
        self.description = description
        self.suppressed: list[BaseException] = []


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"
    CALLBACK = "callback"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


def classify_failure(exc: BaseException) -> FailureKind:
    # Classification order matters: internal errors outrank everything else.
    if isinstance(exc, KernelInternalError):
        return FailureKind.INTERNAL
    if isinstance(exc, InvocationTimeoutError):
        return FailureKind.TIMEOUT
    if isinstance(exc, ConfigurationError):
        return FailureKind.CONFIGURATION
    return FailureKind.CALLBACK
