"""
Comfy Workflow Meta - Connection Resolver
==========================================

Resolves every ConnectionRef in a WorkflowGraph to its source node and output
descriptor, and builds the canonical RelationshipEdge set.

This is the single place that knows what feeds what. Validation, extraction,
feature detection and complexity estimation all ask a ResolvedGraph instead
of walking raw inputs themselves.

Usage:
    resolved = ConnectionResolver().resolve(graph)
    resolved.is_connected("3", "positive")     # True
    resolved.source_of("3", "positive")         # "6"
    resolved.execution_order()                  # {"4": 0, "6": 1, ...}
"""

import heapq
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from .graph import ConnectionRef, WorkflowGraph
from .models import RelationshipEdge
from .registry import DEFAULT_REGISTRY, NodeTypeRegistry

__all__ = [
    "ResolvedLink",
    "DanglingRef",
    "ResolvedGraph",
    "ConnectionResolver",
    "resolve_connections",
    "node_sort_key",
]


@dataclass(frozen=True)
class ResolvedLink:
    """An edge plus the raw output index it was resolved from."""

    edge: RelationshipEdge
    output_index: Any


@dataclass(frozen=True)
class DanglingRef:
    """A connection whose source node is not in the graph."""

    node_id: str
    input_name: str
    ref: ConnectionRef


def node_sort_key(node_id: str) -> tuple:
    """ASCII-numeric ids in numeric order, then everything else lexically."""
    if node_id.isascii() and node_id.isdigit():
        return (0, int(node_id), node_id)
    return (1, 0, node_id)


class ResolvedGraph:
    """
    A WorkflowGraph together with its resolved connections.

    Built by ConnectionResolver; read-only afterwards.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        registry: NodeTypeRegistry,
        links: list[ResolvedLink],
        dangling: list[DanglingRef],
    ):
        self.graph = graph
        self.registry = registry
        self.links: tuple[ResolvedLink, ...] = tuple(links)
        self.dangling: tuple[DanglingRef, ...] = tuple(dangling)

        self._incoming: dict[tuple[str, str], ResolvedLink] = {}
        self._outgoing: dict[str, list[ResolvedLink]] = {}
        for link in self.links:
            self._incoming[(link.edge.to_node, link.edge.to_input_name)] = link
            self._outgoing.setdefault(link.edge.from_node, []).append(link)

        self._order: dict[str, int] | None = None

    @property
    def edges(self) -> tuple[RelationshipEdge, ...]:
        return tuple(link.edge for link in self.links)

    @property
    def connection_count(self) -> int:
        """Every ConnectionRef in the graph, resolved or dangling."""
        return len(self.links) + len(self.dangling)

    def is_connected(self, node_id: str, input_name: str) -> bool:
        """True when the input is wired to an existing node."""
        return (node_id, input_name) in self._incoming

    def source_of(self, node_id: str, input_name: str) -> str | None:
        link = self._incoming.get((node_id, input_name))
        return link.edge.from_node if link else None

    def incoming(self, node_id: str, input_name: str) -> ResolvedLink | None:
        return self._incoming.get((node_id, input_name))

    def links_from(self, node_id: str, output_index: Any = None) -> list[ResolvedLink]:
        """Links leaving `node_id`, optionally only those of one output slot."""
        links = self._outgoing.get(node_id, [])
        if output_index is None:
            return list(links)
        return [
            link
            for link in links
            if link.output_index == output_index and type(link.output_index) is type(output_index)
        ]

    def consumers(self, node_id: str) -> Iterator[tuple[str, str]]:
        """Yield (to_node, to_input) for everything `node_id` feeds."""
        for link in self._outgoing.get(node_id, []):
            yield link.edge.to_node, link.edge.to_input_name

    # =========================================================================
    # EXECUTION ORDER
    # =========================================================================

    def execution_order(self) -> dict[str, int]:
        """
        Topological position of every node that can run.

        Kahn's algorithm with ties broken by node_sort_key, so the result does
        not depend on the graph's iteration order. Nodes on a cycle, and nodes
        downstream of one, are absent from the result.
        """
        if self._order is not None:
            return self._order

        predecessors: dict[str, set[str]] = {node_id: set() for node_id in self.graph}
        successors: dict[str, set[str]] = {node_id: set() for node_id in self.graph}
        for link in self.links:
            predecessors[link.edge.to_node].add(link.edge.from_node)
            successors[link.edge.from_node].add(link.edge.to_node)

        in_degree = {node_id: len(preds) for node_id, preds in predecessors.items()}
        ready = [(node_sort_key(n), n) for n, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        order: dict[str, int] = {}
        while ready:
            _, node_id = heapq.heappop(ready)
            order[node_id] = len(order)
            for successor in successors[node_id]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    heapq.heappush(ready, (node_sort_key(successor), successor))

        self._order = order
        return order

    @property
    def has_cycle(self) -> bool:
        return len(self.execution_order()) < len(self.graph)

    def unordered_nodes(self) -> list[str]:
        """Nodes with no execution position (on or after a cycle)."""
        order = self.execution_order()
        return sorted((n for n in self.graph if n not in order), key=node_sort_key)


class ConnectionResolver:
    """
    Resolves ConnectionRefs against a node type registry.

    Resolution never raises: a source of unregistered type, or an output
    index the schema does not have, resolves to an "unknown" output.
    """

    def __init__(self, registry: NodeTypeRegistry | None = None):
        self.registry = registry or DEFAULT_REGISTRY

    def resolve(self, graph: WorkflowGraph) -> ResolvedGraph:
        links: list[ResolvedLink] = []
        dangling: list[DanglingRef] = []

        for node_id, input_name, ref in graph.connection_refs():
            source = graph.get(ref.source_id)
            if source is None:
                dangling.append(DanglingRef(node_id, input_name, ref))
                continue

            descriptor = self.registry.output_descriptor(source.class_type, ref.output_index)
            edge = RelationshipEdge(
                from_node=ref.source_id,
                from_output_name=descriptor.name,
                from_output_type=descriptor.type,
                to_node=node_id,
                to_input_name=input_name,
                required=self.registry.is_required_input(graph[node_id].class_type, input_name),
            )
            links.append(ResolvedLink(edge=edge, output_index=ref.output_index))

        return ResolvedGraph(graph, self.registry, links, dangling)


def resolve_connections(
    graph: WorkflowGraph, registry: NodeTypeRegistry | None = None
) -> ResolvedGraph:
    """Convenience wrapper for ConnectionResolver(registry).resolve(graph)."""
    return ConnectionResolver(registry).resolve(graph)
