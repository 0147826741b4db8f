from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "ExecutionListener",
    "ExecutionResult",
    "ExecutionStatus",
    "ExtensionContext",
    "ExtensionRegistry",
    "LifecycleOrchestrator",
    "RecordingExecutionListener",
    "Store",
    "TestInstances",
    "ThrowableCollector",
]

_EXPORTS = {
    "lifecycle_kernel.kernel.collector": {"ThrowableCollector"},
    "lifecycle_kernel.kernel.context": {"ExtensionContext", "Store", "TestInstances"},
    "lifecycle_kernel.kernel.extensions": {"ExtensionRegistry"},
    "lifecycle_kernel.kernel.listener": {
        "ExecutionListener",
        "ExecutionResult",
        "ExecutionStatus",
        "RecordingExecutionListener",
    },
    "lifecycle_kernel.kernel.orchestrator": {"LifecycleOrchestrator"},
}


def __getattr__(name: str) -> Any:
    # Lazy exports avoid import cycles between kernel, store, config and timeout modules.
    for module_name, names in _EXPORTS.items():
        if name in names:
            return getattr(import_module(module_name), name)
    raise AttributeError(name)
