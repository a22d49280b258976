"""
Comfy Workflow Meta - Workflow Graph Model
===========================================

In-memory form of a sanitized workflow.

A raw input value is decided exactly once, at sanitization time, into one of
two port value variants:

- LiteralValue: any widget value (number, string, bool, list, ...)
- ConnectionRef: a reference to another node's output, by id and index

Every later stage dispatches on the variant type instead of re-testing the
raw shape. All types here are frozen; a WorkflowGraph is never mutated after
the sanitizer builds it.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

__all__ = [
    "LiteralValue",
    "ConnectionRef",
    "PortValue",
    "Node",
    "WorkflowGraph",
    "is_valid_output_index",
]


@dataclass(frozen=True)
class LiteralValue:
    """A widget value stored directly on an input port."""

    value: Any


@dataclass(frozen=True)
class ConnectionRef:
    """
    A link from an input port to output `output_index` of node `source_id`.

    `output_index` is kept exactly as it appeared in the input; the validator
    reports anything that is not a non-negative integer.
    """

    source_id: str
    output_index: Any


PortValue = Union[LiteralValue, ConnectionRef]


def is_valid_output_index(index: Any) -> bool:
    """True for non-negative integers (bool is not an index)."""
    return isinstance(index, int) and not isinstance(index, bool) and index >= 0


@dataclass(frozen=True)
class Node:
    """
    One workflow node.

    `had_inputs` is False when the raw entry carried no usable `inputs`
    mapping and the sanitizer substituted an empty one.
    """

    class_type: str
    inputs: Mapping[str, PortValue] = field(default_factory=lambda: MappingProxyType({}))
    title: str | None = None
    position: Any = None
    size: Any = None
    color: str | None = None
    had_inputs: bool = True

    def connections(self) -> Iterator[tuple[str, ConnectionRef]]:
        """Yield (input_name, ref) for every connected input."""
        for name, value in self.inputs.items():
            if isinstance(value, ConnectionRef):
                yield name, value

    def literal(self, name: str) -> Any:
        """Literal value of an input, or None when absent or connected."""
        value = self.inputs.get(name)
        if isinstance(value, LiteralValue):
            return value.value
        return None


class WorkflowGraph(Mapping):
    """
    Read-only mapping of node id -> Node.

    Node ids are unique by construction. Iteration follows insertion order;
    nothing downstream may depend on that order for anything but tie-breaks.
    """

    __slots__ = ("_nodes",)

    def __init__(self, nodes: Mapping[str, Node] | None = None):
        self._nodes = MappingProxyType(dict(nodes or {}))

    def __getitem__(self, node_id: str) -> Node:
        return self._nodes[node_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"WorkflowGraph({len(self._nodes)} nodes)"

    def node_types(self) -> frozenset[str]:
        """Distinct class types present in the graph."""
        return frozenset(node.class_type for node in self._nodes.values())

    def nodes_of_type(self, *class_types: str) -> list[tuple[str, Node]]:
        """(id, node) pairs whose class type is one of `class_types`, in graph order."""
        wanted = set(class_types)
        return [(nid, node) for nid, node in self._nodes.items() if node.class_type in wanted]

    def connection_refs(self) -> Iterator[tuple[str, str, ConnectionRef]]:
        """Yield (node_id, input_name, ref) for every connection in the graph."""
        for node_id, node in self._nodes.items():
            for input_name, ref in node.connections():
                yield node_id, input_name, ref
