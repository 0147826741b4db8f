from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "CancellationToken",
    "DeadlineScheduler",
    "ExecutionTimeoutError",
    "InvocationCancelledError",
    "InvocationTimeoutError",
    "SameThreadTimeoutInvocation",
    "SeparateThreadTimeoutInvocation",
    "ThreadMode",
    "TimeUnit",
    "TimeoutConfiguration",
    "TimeoutDuration",
    "TimeoutDurationParser",
    "TimeoutExecutorResource",
    "TimeoutExtension",
    "TimeoutInvocationFactory",
    "TimeoutInvocationParameters",
    "parse_duration",
]

_EXPORTS = {
    "lifecycle_kernel.timeout.duration": {"TimeUnit", "TimeoutDuration", "TimeoutDurationParser", "parse_duration"},
    "lifecycle_kernel.timeout.cancellation": {"CancellationToken", "InvocationCancelledError"},
    "lifecycle_kernel.timeout.scheduler": {"DeadlineScheduler", "TimeoutExecutorResource"},
    "lifecycle_kernel.timeout.invocation": {
        "ExecutionTimeoutError",
        "InvocationTimeoutError",
        "SameThreadTimeoutInvocation",
        "SeparateThreadTimeoutInvocation",
        "ThreadMode",
        "TimeoutInvocationFactory",
        "TimeoutInvocationParameters",
    },
    "lifecycle_kernel.timeout.configuration": {"TimeoutConfiguration"},
    "lifecycle_kernel.timeout.extension": {"TimeoutExtension"},
}


def __getattr__(name: str) -> Any:
    # Lazy exports keep kernel <-> timeout imports acyclic.
    for module_name, names in _EXPORTS.items():
        if name in names:
            return getattr(import_module(module_name), name)
    raise AttributeError(name)
