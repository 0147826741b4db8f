from __future__ import annotations

from lifecycle_kernel.ordering.descriptor import DEFAULT_ORDER, OrderingDescriptor
from lifecycle_kernel.ordering.orderers import (
    DEFAULT_SEED,
    ClassName,
    DisplayName,
    MethodName,
    OrderAnnotation,
    Orderer,
    Random,
    apply_orderer,
    parse_seed,
    resolve_orderer,
)

__all__ = [
    "DEFAULT_ORDER",
    "DEFAULT_SEED",
    "ClassName",
    "DisplayName",
    "MethodName",
    "OrderAnnotation",
    "Orderer",
    "OrderingDescriptor",
    "Random",
    "apply_orderer",
    "parse_seed",
    "resolve_orderer",
]
