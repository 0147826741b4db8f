from __future__ import annotations

import itertools
import threading
from collections.abc import Callable, Hashable
from typing import Any, TypeVar

from lifecycle_kernel.kernel.errors import StoreClosedError, StoreTypeError
from lifecycle_kernel.store.namespace import Namespace

T = TypeVar("T")

CloseAction = Callable[[Namespace, Hashable, object], None]


class CloseableResource:
    # Values implementing this capability are closed when their owning store node closes.
    def close(self) -> None:
        raise NotImplementedError("CloseableResource.close must be implemented")


def close_closeable_resources(namespace: Namespace, key: Hashable, value: object) -> None:
    # Default close action wired by the kernel for every extension store.
    _ = namespace, key
    if isinstance(value, CloseableResource):
        value.close()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


_NO_VALUE = object()


class _MemoizingSupplier:
    # Evaluates the delegate at most once; concurrent callers block on the entry lock only.
    __slots__ = ("_delegate", "_lock", "_value")

    def __init__(self, delegate: Callable[[], object]) -> None:
        self._delegate = delegate
        self._lock = threading.Lock()
        self._value: object = _NO_VALUE

    def get(self) -> object:
        if self._value is _NO_VALUE:
            with self._lock:
                if self._value is _NO_VALUE:
                    try:
                        self._value = self._delegate()
                    except Exception as exc:  # noqa: BLE001 - memoized and re-raised for every caller
                        self._value = _Failure(exc)
        if isinstance(self._value, _Failure):
            raise self._value.error
        return self._value

    def failed(self) -> bool:
        return isinstance(self._value, _Failure)


class _StoredValue:
    __slots__ = ("order", "supplier", "_plain")

    def __init__(self, order: int, supplier: _MemoizingSupplier | None, value: object = None) -> None:
        self.order = order
        self.supplier = supplier
        self._plain = value

    def evaluate(self) -> object:
        if self.supplier is None:
            return self._plain
        return self.supplier.get()

    def evaluate_for_close(self) -> tuple[bool, object]:
        # Failed or never-evaluated computations are not handed to the close action.
        if self.supplier is None:
            return True, self._plain
        if self.supplier.failed():
            return False, None
        try:
            return True, self.supplier.get()
        except Exception:  # noqa: BLE001 - failure already memoized for regular callers
            return False, None


class NamespacedHierarchicalStore:
    # Hierarchical namespaced key/value node: reads fall back to the parent chain, writes stay local.
    def __init__(
        self,
        parent: NamespacedHierarchicalStore | None = None,
        close_action: CloseAction | None = None,
    ) -> None:
        self._parent = parent
        self._close_action = close_action
        self._values: dict[tuple[Namespace, Hashable], _StoredValue] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def parent(self) -> NamespacedHierarchicalStore | None:
        return self._parent

    @property
    def closed(self) -> bool:
        return self._closed

    def new_child(self) -> NamespacedHierarchicalStore:
        self._ensure_open()
        return NamespacedHierarchicalStore(self, self._close_action)

    def get(self, namespace: Namespace, key: Hashable, required_type: type[T] | None = None) -> Any:
        stored = self._lookup(_composite_key(namespace, key))
        value = None if stored is None else stored.evaluate()
        return _cast(key, value, required_type)

    def put(self, namespace: Namespace, key: Hashable, value: object) -> Any:
        # Replaced values are not passed to the close action.
        composite = _composite_key(namespace, key)
        with self._lock:
            self._ensure_open()
            previous = self._values.get(composite)
            self._values[composite] = _StoredValue(next(self._sequence), None, value)
        return None if previous is None else previous.evaluate()

    def remove(self, namespace: Namespace, key: Hashable, required_type: type[T] | None = None) -> Any:
        composite = _composite_key(namespace, key)
        with self._lock:
            self._ensure_open()
            previous = self._values.pop(composite, None)
        value = None if previous is None else previous.evaluate()
        return _cast(key, value, required_type)

    def get_or_compute_if_absent(
        self,
        namespace: Namespace,
        key: Hashable,
        default_creator: Callable[[Any], object],
        required_type: type[T] | None = None,
    ) -> Any:
        if default_creator is None:
            raise ValueError("default_creator must not be None")
        composite = _composite_key(namespace, key)
        stored = self._lookup(composite)
        if stored is None:
            with self._lock:
                self._ensure_open()
                stored = self._values.get(composite)
                if stored is None:
                    stored = _StoredValue(
                        next(self._sequence),
                        _MemoizingSupplier(lambda: default_creator(key)),
                    )
                    self._values[composite] = stored
        return _cast(key, stored.evaluate(), required_type)

    def close(self) -> None:
        # Close action runs over successfully stored values in reverse insertion order.
        # Closing never touches the parent or any child node.
        with self._lock:
            if self._closed:
                return
            self._closed = True
            entries = sorted(self._values.items(), key=lambda item: item[1].order, reverse=True)
        if self._close_action is None:
            return
        failures: list[Exception] = []
        for (namespace, key), stored in entries:
            ok, value = stored.evaluate_for_close()
            if not ok:
                continue
            try:
                self._close_action(namespace, key, value)
            except Exception as exc:  # noqa: BLE001 - every close failure is collected
                failures.append(exc)
        if failures:
            primary = failures[0]
            suppressed = getattr(primary, "suppressed", None)
            if isinstance(suppressed, list):
                suppressed.extend(failures[1:])
            else:
                setattr(primary, "suppressed", list(failures[1:]))
            raise primary

    def _lookup(self, composite: tuple[Namespace, Hashable]) -> _StoredValue | None:
        self._ensure_open()
        node: NamespacedHierarchicalStore | None = self
        while node is not None:
            stored = node._values.get(composite)
            if stored is not None:
                return stored
            node = node._parent
        return None

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("Store has already been closed")


def _composite_key(namespace: Namespace, key: Hashable) -> tuple[Namespace, Hashable]:
    if namespace is None:
        raise ValueError("namespace must not be None")
    if key is None:
        raise ValueError("key must not be None")
    return namespace, key


def _cast(key: Hashable, value: object, required_type: type[T] | None) -> Any:
    if required_type is None or value is None:
        return value
    if isinstance(value, required_type):
        return value
    raise StoreTypeError(
        f"Object stored under key [{key!r}] is not of required type [{required_type.__qualname__}]"
    )
