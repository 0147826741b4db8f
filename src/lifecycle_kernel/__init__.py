from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "ContainerNode",
    "EngineNode",
    "InstanceLifecycle",
    "KernelConfig",
    "LifecycleMethod",
    "LifecycleOrchestrator",
    "Namespace",
    "TestCaseNode",
    "TimeoutSpec",
    "run_engine",
]

_EXPORTS = {
    "lifecycle_kernel.kernel.tree": {
        "ContainerNode",
        "EngineNode",
        "InstanceLifecycle",
        "LifecycleMethod",
        "TestCaseNode",
        "TimeoutSpec",
    },
    "lifecycle_kernel.kernel.orchestrator": {"LifecycleOrchestrator"},
    "lifecycle_kernel.config.models": {"KernelConfig"},
    "lifecycle_kernel.store.namespace": {"Namespace"},
    "lifecycle_kernel.app.runtime": {"run_engine"},
}


def __getattr__(name: str) -> Any:
    # Lazy exports keep `import lifecycle_kernel` cheap and free of import cycles.
    for module_name, names in _EXPORTS.items():
        if name in names:
            return getattr(import_module(module_name), name)
    raise AttributeError(name)
