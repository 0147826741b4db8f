from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


class _Unique:
    # Identity-only namespace part; equal only to itself.
    __slots__ = ("label",)

    def __init__(self, label: str) -> None:
        self.label = label

    def __repr__(self) -> str:
        return f"<unique {self.label}@{id(self):x}>"


@dataclass(frozen=True, slots=True)
class Namespace:
    # Isolation key for store entries; equality is structural over the parts tuple.
    parts: tuple[object, ...]

    GLOBAL: ClassVar[Namespace]

    def __post_init__(self) -> None:
        if not self.parts:
            raise ValueError("Namespace requires at least one part")
        if any(part is None for part in self.parts):
            raise ValueError("Namespace parts must not be None")

    @classmethod
    def create(cls, *parts: object) -> Namespace:
        # Value-equal namespaces: two calls with equal parts share entries.
        return cls(tuple(parts))

    @classmethod
    def unique(cls, label: str = "namespace") -> Namespace:
        # Identity-only namespace: never equal to any other namespace.
        return cls((_Unique(label),))

    def append(self, *parts: object) -> Namespace:
        return Namespace(self.parts + tuple(parts))


Namespace.GLOBAL = Namespace.create("lifecycle_kernel.global")
