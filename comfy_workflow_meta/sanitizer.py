"""
Comfy Workflow Meta - Graph Sanitizer
======================================

Turns an untrusted JSON-shaped value into a WorkflowGraph.

Accepted shapes:
- API format: {node_id: {"class_type": ..., "inputs": {...}, "_meta": {...}}}
- UI export wrapper: {"nodes": {node_id: {...}}, "links": [...]}

Entries that are not objects, or that carry no usable class_type, are
dropped and reported as warnings. A missing or malformed `inputs` field is
replaced with an empty mapping and the node is flagged so the validator can
still report it. Nothing past this module sees the raw input.
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .config import get_settings
from .graph import ConnectionRef, LiteralValue, Node, PortValue, WorkflowGraph
from .logging_config import get_logger

logger = get_logger(__name__)

__all__ = [
    "DroppedEntry",
    "SanitizeResult",
    "sanitize_workflow",
    "unwrap_workflow",
    "to_port_value",
    "REASON_NOT_OBJECT",
    "REASON_MISSING_CLASS_TYPE",
]

REASON_NOT_OBJECT = "not an object"
REASON_MISSING_CLASS_TYPE = "missing class_type"


@dataclass(frozen=True)
class DroppedEntry:
    """A raw entry the sanitizer refused to turn into a node."""

    node_id: str
    reason: str


@dataclass(frozen=True)
class SanitizeResult:
    """
    Sanitized graph plus what was removed or repaired on the way.

    Attributes:
        graph: The well-formed graph
        dropped: Entries that were removed, in input order
        warnings: Human-readable sanitization notes
        is_mapping: False when the input was not a JSON object at all
    """

    graph: WorkflowGraph
    dropped: tuple[DroppedEntry, ...] = ()
    warnings: tuple[str, ...] = ()
    is_mapping: bool = True

    @property
    def raw_count(self) -> int:
        """Number of entries in the raw input, kept or not."""
        return len(self.graph) + len(self.dropped)


def unwrap_workflow(raw: Mapping) -> Mapping:
    """Return the node mapping of a UI export wrapper, or `raw` itself."""
    nodes = raw.get("nodes")
    if isinstance(nodes, Mapping) and "class_type" not in nodes:
        return nodes
    return raw


def to_port_value(raw_value: Any) -> PortValue:
    """
    Decide once whether a raw input value is a connection or a literal.

    Any two-element list is a connection `[source_id, output_index]`; the
    index is kept as given so the validator can judge it.
    """
    if isinstance(raw_value, (list, tuple)) and len(raw_value) == 2:
        return ConnectionRef(source_id=str(raw_value[0]), output_index=copy.deepcopy(raw_value[1]))
    return LiteralValue(copy.deepcopy(raw_value))


def _meta_field(meta: Any, key: str) -> Any:
    if isinstance(meta, Mapping):
        return meta.get(key)
    return None


def _build_node(entry: Mapping) -> Node:
    raw_inputs = entry.get("inputs")
    had_inputs = isinstance(raw_inputs, Mapping)
    inputs: dict[str, PortValue] = {}
    if had_inputs:
        for name, value in raw_inputs.items():
            inputs[str(name)] = to_port_value(value)

    meta = entry.get("_meta")
    title = _meta_field(meta, "title")
    color = _meta_field(meta, "color")

    return Node(
        class_type=entry["class_type"],
        inputs=MappingProxyType(inputs),
        title=title if isinstance(title, str) else None,
        position=copy.deepcopy(_meta_field(meta, "position")),
        size=copy.deepcopy(_meta_field(meta, "size")),
        color=color if isinstance(color, str) else None,
        had_inputs=had_inputs,
    )


def _warn(warnings: list[str], message: str, **extra):
    warnings.append(message)
    if get_settings().analysis.log_sanitizer_warnings:
        logger.warning(message, extra=extra)


def sanitize_workflow(raw: Any) -> SanitizeResult:
    """
    Build a WorkflowGraph from an arbitrary JSON-shaped value.

    Never raises for malformed content.

    Args:
        raw: Parsed workflow JSON (API format or UI export wrapper)

    Returns:
        SanitizeResult with the graph and a record of dropped entries
    """
    if not isinstance(raw, Mapping):
        warnings: list[str] = []
        _warn(warnings, "Workflow is not a JSON object", raw_type=type(raw).__name__)
        return SanitizeResult(graph=WorkflowGraph(), warnings=tuple(warnings), is_mapping=False)

    nodes: dict[str, Node] = {}
    dropped: list[DroppedEntry] = []
    warnings = []

    for raw_id, entry in unwrap_workflow(raw).items():
        node_id = str(raw_id)

        if not isinstance(entry, Mapping):
            dropped.append(DroppedEntry(node_id, REASON_NOT_OBJECT))
            _warn(warnings, f"Skipping invalid node {node_id}", node_id=node_id)
            continue

        class_type = entry.get("class_type")
        if not isinstance(class_type, str) or not class_type:
            dropped.append(DroppedEntry(node_id, REASON_MISSING_CLASS_TYPE))
            _warn(warnings, f"Skipping node {node_id} without class_type", node_id=node_id)
            continue

        node = _build_node(entry)
        if not node.had_inputs:
            _warn(
                warnings,
                f"Node {node_id} has no inputs object, using an empty one",
                node_id=node_id,
            )
        nodes[node_id] = node

    if dropped:
        logger.info(
            f"Cleaned workflow: {len(nodes) + len(dropped)} -> {len(nodes)} nodes",
            extra={"dropped": len(dropped)},
        )

    return SanitizeResult(
        graph=WorkflowGraph(nodes),
        dropped=tuple(dropped),
        warnings=tuple(warnings),
    )
