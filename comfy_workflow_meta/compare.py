"""
Comfy Workflow Meta - Snapshot Comparison
==========================================

Flattens two snapshots to dotted paths ("models.loras[0].name") and reports
every path as added, removed, modified or equal, grouped by top-level
category. The per-parse fields `timestamp` and `workflow.id` are ignored.

Usage:
    diff = compare_snapshots(before, after)
    changed = [entry for entry in diff if entry.status != ComparisonStatus.EQUAL]
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from .models import MetadataSnapshot

__all__ = [
    "ComparisonStatus",
    "ComparisonEntry",
    "compare_snapshots",
    "flatten_paths",
    "summarize_comparison",
    "IGNORED_PATHS",
]

IGNORED_PATHS = frozenset({"timestamp", "workflow.id"})

_CATEGORIES = ("generation", "models", "workflow", "performance", "nodes")

_MISSING = object()


class ComparisonStatus(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    EQUAL = "equal"


class ComparisonEntry(BaseModel):
    """One compared path."""

    model_config = ConfigDict(frozen=True)

    path: str
    category: str
    status: ComparisonStatus
    left: Any = None
    right: Any = None


def flatten_paths(value: Any, prefix: str = "") -> dict[str, Any]:
    """
    Map every leaf of a JSON-like value to its dotted path.

    Empty containers are leaves themselves so that "no LoRAs" still compares.
    """
    paths: dict[str, Any] = {}
    if isinstance(value, Mapping) and value:
        for key, item in value.items():
            paths.update(flatten_paths(item, f"{prefix}.{key}" if prefix else str(key)))
    elif isinstance(value, (list, tuple)) and value:
        for index, item in enumerate(value):
            paths.update(flatten_paths(item, f"{prefix}[{index}]"))
    elif prefix:
        paths[prefix] = value
    return paths


def _category(path: str) -> str:
    head = path.split(".", 1)[0].split("[", 1)[0].lower()
    return head if head in _CATEGORIES else "other"


def _as_dict(snapshot: MetadataSnapshot | Mapping | None) -> Mapping:
    if snapshot is None:
        return {}
    if isinstance(snapshot, MetadataSnapshot):
        return snapshot.to_dict()
    return snapshot


def compare_snapshots(
    left: MetadataSnapshot | Mapping | None,
    right: MetadataSnapshot | Mapping | None,
) -> list[ComparisonEntry]:
    """
    Compare two snapshots (models or their to_dict() form).

    Returns:
        Entries sorted by category, then path
    """
    left_paths = flatten_paths(_as_dict(left))
    right_paths = flatten_paths(_as_dict(right))

    entries = []
    for path in left_paths.keys() | right_paths.keys():
        if path in IGNORED_PATHS:
            continue
        left_value = left_paths.get(path, _MISSING)
        right_value = right_paths.get(path, _MISSING)

        if left_value is _MISSING:
            status = ComparisonStatus.ADDED
        elif right_value is _MISSING:
            status = ComparisonStatus.REMOVED
        elif left_value != right_value or type(left_value) is not type(right_value):
            status = ComparisonStatus.MODIFIED
        else:
            status = ComparisonStatus.EQUAL

        entries.append(
            ComparisonEntry(
                path=path,
                category=_category(path),
                status=status,
                left=None if left_value is _MISSING else left_value,
                right=None if right_value is _MISSING else right_value,
            )
        )

    entries.sort(key=lambda entry: (entry.category, entry.path))
    return entries


def summarize_comparison(entries: list[ComparisonEntry]) -> dict[str, int]:
    """Counts per status plus the total."""
    summary = {status.value: 0 for status in ComparisonStatus}
    for entry in entries:
        summary[entry.status.value] += 1
    summary["total"] = len(entries)
    return summary
