from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from lifecycle_kernel.kernel.errors import ContextClosedError, PreconditionViolationError
from lifecycle_kernel.kernel.tree import InstanceLifecycle
from lifecycle_kernel.store.hierarchical_store import NamespacedHierarchicalStore
from lifecycle_kernel.store.namespace import Namespace

if TYPE_CHECKING:
    from lifecycle_kernel.config.models import KernelConfig
    from lifecycle_kernel.kernel.collector import ThrowableCollector

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class TestInstances:
    # Instance chain for one scope, outermost enclosing instance first.
    __test__ = False

    instances: tuple[object, ...]

    def __post_init__(self) -> None:
        if not self.instances:
            raise ValueError("TestInstances requires at least one instance")

    @property
    def innermost(self) -> object:
        return self.instances[-1]

    @property
    def enclosing(self) -> tuple[object, ...]:
        return self.instances[:-1]

    def find(self, required_type: type[T]) -> T | None:
        for instance in reversed(self.instances):
            if type(instance) is required_type:
                return instance
        for instance in reversed(self.instances):
            if isinstance(instance, required_type):
                return instance
        return None

    def extend(self, instance: object) -> TestInstances:
        return TestInstances((*self.instances, instance))


class Store:
    # Namespace-bound view over one context's store node; reads see ancestors, writes stay local.
    def __init__(self, context: ExtensionContext, namespace: Namespace) -> None:
        if namespace is None:
            raise PreconditionViolationError("namespace must not be None")
        self._context = context
        self._namespace = namespace

    @property
    def namespace(self) -> Namespace:
        return self._namespace

    def get(self, key: Hashable, required_type: type[T] | None = None) -> Any:
        return self._node().get(self._namespace, key, required_type)

    def put(self, key: Hashable, value: object) -> Any:
        return self._node().put(self._namespace, key, value)

    def remove(self, key: Hashable, required_type: type[T] | None = None) -> Any:
        return self._node().remove(self._namespace, key, required_type)

    def get_or_compute_if_absent(
        self,
        key: Hashable,
        default_creator: Callable[[Any], object] | None = None,
        required_type: type[T] | None = None,
    ) -> Any:
        # Passing only a class keys the entry by that class and default-constructs it.
        if default_creator is None:
            if not isinstance(key, type):
                raise PreconditionViolationError("default_creator is required unless the key is a class")
            cls = key
            return self._node().get_or_compute_if_absent(self._namespace, cls, lambda _: cls(), cls)
        return self._node().get_or_compute_if_absent(self._namespace, key, default_creator, required_type)

    def _node(self) -> NamespacedHierarchicalStore:
        self._context._ensure_open()
        return self._context._store_node


class ExtensionContext:
    # One context per executed node; wraps that node's store and mirrors the test tree.
    def __init__(
        self,
        *,
        parent: ExtensionContext | None,
        node: object,
        store: NamespacedHierarchicalStore,
        unique_id: str,
        configuration: KernelConfig,
        lifecycle: InstanceLifecycle | None = None,
        element: object = None,
        collector: ThrowableCollector | None = None,
    ) -> None:
        self._parent = parent
        self._node_descriptor = node
        self._store_node = store
        self._unique_id = unique_id
        self._configuration = configuration
        self._lifecycle = lifecycle
        self._element = element
        self._collector = collector
        self._display_name = str(getattr(node, "label", unique_id))
        self._tags = frozenset(getattr(node, "tags", frozenset()))
        self._instances: TestInstances | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def get_parent(self) -> ExtensionContext | None:
        self._ensure_open()
        return self._parent

    def get_root(self) -> ExtensionContext:
        self._ensure_open()
        context = self
        while context._parent is not None:
            context = context._parent
        return context

    def get_store(self, namespace: Namespace = Namespace.GLOBAL) -> Store:
        self._ensure_open()
        return Store(self, namespace)

    def get_node(self) -> object:
        self._ensure_open()
        return self._node_descriptor

    def get_element(self) -> object:
        self._ensure_open()
        return self._element

    def get_display_name(self) -> str:
        self._ensure_open()
        return self._display_name

    def get_tags(self) -> frozenset[str]:
        self._ensure_open()
        return self._tags

    def get_unique_id(self) -> str:
        self._ensure_open()
        return self._unique_id

    def get_configuration(self) -> KernelConfig:
        self._ensure_open()
        return self._configuration

    def get_test_instance_lifecycle(self) -> InstanceLifecycle | None:
        self._ensure_open()
        return self._lifecycle

    def get_test_instances(self) -> TestInstances | None:
        self._ensure_open()
        return self._instances

    def get_test_instance(self) -> object | None:
        instances = self.get_test_instances()
        return None if instances is None else instances.innermost

    def get_required_test_instance(self) -> object:
        instance = self.get_test_instance()
        if instance is None:
            raise PreconditionViolationError(f"Illegal state: test instance not present for {self._unique_id}")
        return instance

    def get_execution_exception(self) -> Exception | None:
        # Current primary failure of the node; None while everything succeeded.
        self._ensure_open()
        return None if self._collector is None else self._collector.primary

    def create_child(
        self,
        *,
        node: object,
        unique_id: str,
        lifecycle: InstanceLifecycle | None = None,
        element: object = None,
        collector: ThrowableCollector | None = None,
    ) -> ExtensionContext:
        # Child context backed by a new store node chained to this one.
        self._ensure_open()
        return ExtensionContext(
            parent=self,
            node=node,
            store=self._store_node.new_child(),
            unique_id=unique_id,
            configuration=self._configuration,
            lifecycle=lifecycle,
            element=element,
            collector=collector,
        )

    def set_test_instances(self, instances: TestInstances | None) -> None:
        self._ensure_open()
        self._instances = instances

    def close(self) -> None:
        # Marks the context invalid first; store close failures still propagate to the caller.
        if self._closed:
            return
        self._closed = True
        self._store_node.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ContextClosedError(f"Extension context for {self._unique_id} has already been closed")

    def __repr__(self) -> str:
        return f"ExtensionContext({self._unique_id!r})"
