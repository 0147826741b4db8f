from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from lifecycle_kernel.kernel.context import ExtensionContext
from lifecycle_kernel.kernel.errors import ExtensionConfigurationError
from lifecycle_kernel.kernel.extensions import InvocationInterceptor
from lifecycle_kernel.kernel.invocation import Invocation, InvocationContext
from lifecycle_kernel.kernel.tree import TimeoutSpec
from lifecycle_kernel.store.namespace import Namespace
from lifecycle_kernel.timeout.configuration import TimeoutConfiguration
from lifecycle_kernel.timeout.duration import TimeoutDuration, TimeoutDurationParser
from lifecycle_kernel.timeout.invocation import ThreadMode, TimeoutInvocationFactory, TimeoutInvocationParameters

NAMESPACE = Namespace.create("lifecycle_kernel.timeout")
TESTABLE_METHOD_TIMEOUT_KEY = "testable_method_timeout_from_annotation"
GLOBAL_TIMEOUT_CONFIG_KEY = "global_timeout_config"

ENABLED_MODE_VALUE = "enabled"
DISABLED_MODE_VALUE = "disabled"
DISABLED_ON_DEBUG_MODE_VALUE = "disabled_on_debug"

_parser = TimeoutDurationParser()


@dataclass(frozen=True, slots=True)
class ResolvedTimeout:
    duration: TimeoutDuration
    thread_mode: ThreadMode | None = None


def resolve_timeout_spec(spec: TimeoutSpec | None) -> ResolvedTimeout | None:
    # Duration text is parsed here so malformed values fail the declaring node.
    if spec is None:
        return None
    duration = spec.duration
    if not isinstance(duration, TimeoutDuration):
        duration = _parser.parse(str(duration))
    try:
        thread_mode = None if spec.thread_mode is None else ThreadMode.parse(spec.thread_mode)
    except ValueError as exc:
        raise ExtensionConfigurationError(f"Unsupported timeout thread mode: {spec.thread_mode}") from exc
    if thread_mode is ThreadMode.INFERRED:
        thread_mode = None
    return ResolvedTimeout(duration, thread_mode)


def declare_node_timeout(context: ExtensionContext, node: object) -> None:
    # Runs while the node is prepared, before any instance work; nested nodes inherit the stored value.
    resolved = resolve_timeout_spec(getattr(node, "timeout", None))
    if resolved is not None:
        context.get_store(NAMESPACE).put(TESTABLE_METHOD_TIMEOUT_KEY, resolved)


class TimeoutExtension(InvocationInterceptor):
    # Default engine-level extension enforcing declared and configured timeouts.
    def intercept_before_all_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return self._intercept_lifecycle_method(
            invocation, invocation_context, context, TimeoutConfiguration.default_before_all_method_timeout
        )

    def intercept_before_each_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return self._intercept_lifecycle_method(
            invocation, invocation_context, context, TimeoutConfiguration.default_before_each_method_timeout
        )

    def intercept_test_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        declared = context.get_store(NAMESPACE).get(TESTABLE_METHOD_TIMEOUT_KEY, ResolvedTimeout)
        return self._intercept(
            invocation, invocation_context, context, declared, TimeoutConfiguration.default_test_method_timeout
        )

    def intercept_after_each_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return self._intercept_lifecycle_method(
            invocation, invocation_context, context, TimeoutConfiguration.default_after_each_method_timeout
        )

    def intercept_after_all_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return self._intercept_lifecycle_method(
            invocation, invocation_context, context, TimeoutConfiguration.default_after_all_method_timeout
        )

    def _intercept_lifecycle_method(
        self,
        invocation: Invocation,
        invocation_context: InvocationContext,
        context: ExtensionContext,
        default_provider: Callable[[TimeoutConfiguration], TimeoutDuration | None],
    ) -> Any:
        spec = invocation_context.timeout
        declared = resolve_timeout_spec(spec if isinstance(spec, TimeoutSpec) else None)
        return self._intercept(invocation, invocation_context, context, declared, default_provider)

    def _intercept(
        self,
        invocation: Invocation,
        invocation_context: InvocationContext,
        context: ExtensionContext,
        declared: ResolvedTimeout | None,
        default_provider: Callable[[TimeoutConfiguration], TimeoutDuration | None],
    ) -> Any:
        configuration = _global_timeout_configuration(context)
        duration = declared.duration if declared is not None else default_provider(configuration)
        if duration is None or _is_timeout_disabled(configuration.mode):
            return invocation.proceed()
        thread_mode = declared.thread_mode if declared is not None else None
        if thread_mode is None:
            thread_mode = configuration.default_thread_mode() or ThreadMode.SAME_THREAD
        parameters = TimeoutInvocationParameters(
            invocation,
            duration,
            lambda: invocation_context.description,
        )
        factory = TimeoutInvocationFactory(context.get_root().get_store(NAMESPACE))
        return factory.create(thread_mode, parameters).proceed()


def _global_timeout_configuration(context: ExtensionContext) -> TimeoutConfiguration:
    root = context.get_root()
    settings = root.get_configuration().execution.timeout
    return root.get_store(NAMESPACE).get_or_compute_if_absent(
        GLOBAL_TIMEOUT_CONFIG_KEY,
        lambda _: TimeoutConfiguration(settings),
        TimeoutConfiguration,
    )


def _is_timeout_disabled(mode: str) -> bool:
    if mode == ENABLED_MODE_VALUE:
        return False
    if mode == DISABLED_MODE_VALUE:
        return True
    if mode == DISABLED_ON_DEBUG_MODE_VALUE:
        return sys.gettrace() is not None
    raise ExtensionConfigurationError(f"Unsupported timeout mode: {mode}")
