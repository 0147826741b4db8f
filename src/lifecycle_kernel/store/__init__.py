from __future__ import annotations

from lifecycle_kernel.store.hierarchical_store import (
    CloseableResource,
    NamespacedHierarchicalStore,
    close_closeable_resources,
)
from lifecycle_kernel.store.namespace import Namespace

__all__ = [
    "CloseableResource",
    "Namespace",
    "NamespacedHierarchicalStore",
    "close_closeable_resources",
]
