from __future__ import annotations

import random
import threading
import time
from collections.abc import Sequence
from importlib import import_module

from lifecycle_kernel.kernel.errors import ExtensionConfigurationError
from lifecycle_kernel.observability.logger import KernelLogger, get_logger
from lifecycle_kernel.ordering.descriptor import DEFAULT_ORDER, OrderingDescriptor

_logger = get_logger("lifecycle_kernel.ordering")

RANDOM_SEED_KEY = "execution.order.random_seed"

# Process-wide fallback seed, derived from the clock once per process.
DEFAULT_SEED = time.time_ns()
_default_seed_logged = threading.Event()


class Orderer:
    # Reorders one group of direct siblings; must return exactly the descriptors it was given.
    def order(self, descriptors: Sequence[OrderingDescriptor]) -> list[OrderingDescriptor]:
        raise NotImplementedError("Orderer.order must be implemented")


class MethodName(Orderer):
    def order(self, descriptors: Sequence[OrderingDescriptor]) -> list[OrderingDescriptor]:
        return sorted(descriptors, key=lambda item: (item.name, item.parameter_signature))


class ClassName(Orderer):
    def order(self, descriptors: Sequence[OrderingDescriptor]) -> list[OrderingDescriptor]:
        return sorted(descriptors, key=lambda item: item.name)


class DisplayName(Orderer):
    def order(self, descriptors: Sequence[OrderingDescriptor]) -> list[OrderingDescriptor]:
        return sorted(descriptors, key=lambda item: item.display_name)


class OrderAnnotation(Orderer):
    # Ascending declared order; sorted() is stable so ties keep discovery order.
    def order(self, descriptors: Sequence[OrderingDescriptor]) -> list[OrderingDescriptor]:
        return sorted(descriptors, key=lambda item: DEFAULT_ORDER if item.order is None else item.order)


class Random(Orderer):
    # A fresh generator per call: equal seeds give equal orders across orderer instances.
    def __init__(self, seed: int | None = None) -> None:
        self._seed = seed

    @property
    def seed(self) -> int:
        if self._seed is not None:
            return self._seed
        if not _default_seed_logged.is_set():
            _default_seed_logged.set()
            _logger.info(f"Random orderer default seed: {DEFAULT_SEED}", seed=DEFAULT_SEED)
        return DEFAULT_SEED

    def order(self, descriptors: Sequence[OrderingDescriptor]) -> list[OrderingDescriptor]:
        shuffled = list(descriptors)
        random.Random(self.seed).shuffle(shuffled)
        return shuffled


def parse_seed(value: str | int | None, logger: KernelLogger | None = None) -> int | None:
    # Unparsable seeds log a warning and fall back to the default seed.
    log = logger or _logger
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        seed = int(str(value).strip())
    except ValueError:
        log.warning(
            f"Failed to convert configuration parameter [{RANDOM_SEED_KEY}] with value [{value}] to an integer. "
            f"Using default seed [{DEFAULT_SEED}] as fallback."
        )
        return None
    log.info(f"Using custom seed for configuration parameter [{RANDOM_SEED_KEY}] with value [{value}].")
    return seed


_BUILTIN: dict[str, type[Orderer]] = {
    "method_name": MethodName,
    "class_name": ClassName,
    "display_name": DisplayName,
    "order_annotation": OrderAnnotation,
    "random": Random,
}


def resolve_orderer(identifier: object, random_seed: int | None = None) -> Orderer | None:
    # Accepts an Orderer instance, an Orderer subclass, a built-in id or "package.module:ClassName".
    if identifier is None:
        return None
    if isinstance(identifier, Orderer):
        return identifier
    if isinstance(identifier, type) and issubclass(identifier, Orderer):
        return _instantiate(identifier, random_seed)
    if not isinstance(identifier, str) or not identifier.strip():
        raise ExtensionConfigurationError(f"Unsupported orderer: {identifier!r}")
    text = identifier.strip()
    builtin = _BUILTIN.get(text)
    if builtin is not None:
        return _instantiate(builtin, random_seed)
    module_name, sep, class_name = text.partition(":")
    if not sep or not module_name or not class_name:
        raise ExtensionConfigurationError(f"Unknown orderer id: {text!r}")
    try:
        target = getattr(import_module(module_name), class_name)
    except (ImportError, AttributeError) as exc:
        raise ExtensionConfigurationError(f"Cannot load orderer {text!r}") from exc
    if not isinstance(target, type) or not issubclass(target, Orderer):
        raise ExtensionConfigurationError(f"Orderer {text!r} must subclass Orderer")
    return _instantiate(target, random_seed)


def _instantiate(cls: type[Orderer], random_seed: int | None) -> Orderer:
    if issubclass(cls, Random):
        return cls(random_seed)
    return cls()


def apply_orderer(
    orderer: Orderer | None,
    nodes: Sequence[object],
    logger: KernelLogger | None = None,
) -> list[object]:
    # Foreign descriptors are dropped and missing ones appended in discovery order, with a warning.
    if orderer is None or len(nodes) < 2:
        return list(nodes)
    log = logger or _logger
    descriptors = [OrderingDescriptor.of(node) for node in nodes]  # type: ignore[arg-type]
    ordered = orderer.order(list(descriptors))
    known = {id(descriptor) for descriptor in descriptors}
    seen: set[int] = set()
    result: list[object] = []
    violated = False
    for descriptor in ordered:
        key = id(descriptor)
        if key not in known or key in seen:
            violated = True
            continue
        seen.add(key)
        result.append(descriptor.node)
    for descriptor in descriptors:
        if id(descriptor) not in seen:
            violated = True
            result.append(descriptor.node)
    if violated:
        log.warning(
            f"Orderer [{type(orderer).__qualname__}] added or removed descriptors; "
            "unknown ones were ignored and missing ones appended in discovery order."
        )
    return result
