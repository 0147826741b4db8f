from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

# Node descriptors handed to the orchestrator by the discovery/registration layer.
# Extensions and lifecycle methods arrive already flattened, ordered outer to inner.


class InstanceLifecycle(str, Enum):
    PER_TEST = "per_test"
    PER_CONTAINER = "per_container"


@dataclass(frozen=True, slots=True)
class TimeoutSpec:
    # Declared timeout for a node or lifecycle method; duration text is parsed when the node is prepared.
    duration: object
    thread_mode: str | None = None


@dataclass(frozen=True, slots=True)
class LifecycleMethod:
    # Lifecycle callable called with the instance of its container when one exists.
    call: Callable[..., Any]
    timeout: TimeoutSpec | None = None
    name: str | None = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return getattr(self.call, "__qualname__", repr(self.call))


def as_lifecycle_method(value: LifecycleMethod | Callable[..., Any]) -> LifecycleMethod:
    if isinstance(value, LifecycleMethod):
        return value
    if not callable(value):
        raise TypeError(f"Lifecycle method must be callable: {value!r}")
    return LifecycleMethod(call=value)


@dataclass(frozen=True, slots=True)
class TestCaseNode:
    __test__ = False

    name: str
    body: Callable[..., Any]
    parameters: tuple[str, ...] = ()
    extensions: tuple[object, ...] = ()
    timeout: TimeoutSpec | None = None
    order: int | None = None
    display_name: str | None = None
    tags: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("TestCaseNode.name must be non-empty")
        if not callable(self.body):
            raise TypeError("TestCaseNode.body must be callable")
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "extensions", tuple(self.extensions))
        object.__setattr__(self, "tags", frozenset(self.tags))

    @property
    def label(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True, slots=True)
class ContainerNode:
    name: str
    test_class: type | None = None
    lifecycle: InstanceLifecycle | None = None
    children: tuple[ContainerNode | TestCaseNode, ...] = ()
    extensions: tuple[object, ...] = ()
    before_all_methods: tuple[LifecycleMethod, ...] = ()
    before_each_methods: tuple[LifecycleMethod, ...] = ()
    after_each_methods: tuple[LifecycleMethod, ...] = ()
    after_all_methods: tuple[LifecycleMethod, ...] = ()
    method_orderer: object | None = None
    class_orderer: object | None = None
    timeout: TimeoutSpec | None = None
    order: int | None = None
    display_name: str | None = None
    tags: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ContainerNode.name must be non-empty")
        if self.test_class is not None and not isinstance(self.test_class, type):
            raise TypeError("ContainerNode.test_class must be a class")
        for child in self.children:
            if not isinstance(child, (ContainerNode, TestCaseNode)):
                raise TypeError(f"Unsupported child node: {child!r}")
        if self.lifecycle is not None:
            object.__setattr__(self, "lifecycle", InstanceLifecycle(self.lifecycle))
        object.__setattr__(self, "children", tuple(self.children))
        object.__setattr__(self, "extensions", tuple(self.extensions))
        for name in ("before_all_methods", "before_each_methods", "after_each_methods", "after_all_methods"):
            methods = tuple(as_lifecycle_method(method) for method in getattr(self, name))
            object.__setattr__(self, name, methods)
        object.__setattr__(self, "tags", frozenset(self.tags))

    @property
    def label(self) -> str:
        return self.display_name or self.name

    @property
    def qualified_name(self) -> str:
        if self.test_class is None:
            return self.name
        return f"{self.test_class.__module__}.{self.test_class.__qualname__}"

    @property
    def tests(self) -> tuple[TestCaseNode, ...]:
        return tuple(child for child in self.children if isinstance(child, TestCaseNode))

    @property
    def containers(self) -> tuple[ContainerNode, ...]:
        return tuple(child for child in self.children if isinstance(child, ContainerNode))


@dataclass(frozen=True, slots=True)
class EngineNode:
    # Root of one traversal; engine-level extensions apply to every node.
    children: tuple[ContainerNode, ...] = ()
    extensions: tuple[object, ...] = ()
    name: str = "lifecycle-kernel"
    class_orderer: object | None = None
    display_name: str | None = None
    tags: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        for child in self.children:
            if not isinstance(child, ContainerNode):
                raise TypeError(f"Engine children must be ContainerNode instances: {child!r}")
        object.__setattr__(self, "children", tuple(self.children))
        object.__setattr__(self, "extensions", tuple(self.extensions))

    @property
    def label(self) -> str:
        return self.display_name or self.name


Node = Union[EngineNode, ContainerNode, TestCaseNode]
