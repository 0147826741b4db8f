from __future__ import annotations

from dataclasses import dataclass

from lifecycle_kernel.kernel.tree import ContainerNode, TestCaseNode

# Declared order applied to nodes that carry none (half of the 32-bit maximum).
DEFAULT_ORDER = 1073741823


@dataclass(frozen=True, slots=True)
class OrderingDescriptor:
    # Snapshot of one sibling taken just before ordering; discarded afterwards.
    node: object
    name: str
    display_name: str
    order: int | None = None
    parameter_signature: str = ""

    @classmethod
    def of(cls, node: ContainerNode | TestCaseNode) -> OrderingDescriptor:
        if isinstance(node, ContainerNode):
            return cls(node=node, name=node.qualified_name, display_name=node.label, order=node.order)
        if isinstance(node, TestCaseNode):
            return cls(
                node=node,
                name=node.name,
                display_name=node.label,
                order=node.order,
                parameter_signature=", ".join(node.parameters),
            )
        raise TypeError(f"Unsupported node for ordering: {node!r}")
