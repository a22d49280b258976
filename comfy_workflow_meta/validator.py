"""
Comfy Workflow Meta - Structural Validator
===========================================

Checks a workflow for structural and schema conformance, connection
integrity and plausible parameter values.

Every check runs to completion and issues are collected; nothing here raises
for malformed content. Errors decide `is_valid`, warnings never do.

Checks:
- Structure: non-empty object, numeric node ids, acyclic connections
- Node: class_type and inputs present
- Schema: required inputs of registered node types
- Values: sampler steps/cfg/seed, latent dimensions, batch size, checkpoint extension
- Connections: source node exists, output index is a non-negative integer
- Completeness: model loader, text encoder, sampler and decoder present

Usage:
    from comfy_workflow_meta.validator import validate_workflow

    result = validate_workflow(workflow)
    if not result.is_valid:
        for issue in result.errors:
            print(issue.node_id, issue.message)
"""

import json
from numbers import Real
from typing import Any

from .graph import Node, WorkflowGraph, is_valid_output_index
from .logging_config import get_logger
from .models import IssueKind, Severity, ValidationIssue, ValidationResult
from .registry import (
    DECODER_TYPES,
    DEFAULT_REGISTRY,
    MODEL_LOADER_TYPES,
    SAMPLER_TYPES,
    TEXT_ENCODER_TYPES,
    NodeTypeRegistry,
)
from .resolver import ConnectionResolver, ResolvedGraph
from .sanitizer import REASON_MISSING_CLASS_TYPE, SanitizeResult, sanitize_workflow

logger = get_logger(__name__)

__all__ = [
    "StructuralValidator",
    "validate_workflow",
    "validate_workflow_json",
    "syntax_error_result",
    # Value ranges
    "STEPS_RANGE",
    "CFG_RANGE",
    "DIMENSION_RANGE",
    "BATCH_SIZE_RANGE",
    "CHECKPOINT_EXTENSIONS",
]

STEPS_RANGE = (1, 1000)
CFG_RANGE = (1, 30)
DIMENSION_RANGE = (64, 4096)
BATCH_SIZE_RANGE = (1, 10)
CHECKPOINT_EXTENSIONS = (".safetensors", ".ckpt")

# (node families, warning) for the completeness notices
_COMPLETENESS = (
    (MODEL_LOADER_TYPES, "Workflow should include a model loader (CheckpointLoaderSimple)"),
    (TEXT_ENCODER_TYPES, "Workflow should include text encoding (CLIPTextEncode)"),
    (SAMPLER_TYPES, "Workflow should include a sampler (KSampler)"),
    (DECODER_TYPES, "Workflow should include VAE decoding (VAEDecode)"),
)


def _number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def syntax_error_result(detail: str) -> ValidationResult:
    """The single-error result returned for unparseable workflow text."""
    return ValidationResult(
        is_valid=False,
        errors=(
            ValidationIssue(
                kind=IssueKind.SYNTAX,
                severity=Severity.ERROR,
                message=f"JSON syntax error: {detail}",
            ),
        ),
    )


class _IssueCollector:
    """Accumulates issues for one validation run."""

    def __init__(self):
        self.errors: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []

    def error(self, kind: IssueKind, message: str, node_id: str | None = None):
        self.errors.append(ValidationIssue(kind=kind, severity=Severity.ERROR, message=message, node_id=node_id))

    def warning(self, kind: IssueKind, message: str, node_id: str | None = None):
        self.warnings.append(
            ValidationIssue(kind=kind, severity=Severity.WARNING, message=message, node_id=node_id)
        )


class StructuralValidator:
    """
    Validates sanitized workflows against a node type registry.

    Stateless between calls; one instance can validate any number of graphs.
    """

    def __init__(self, registry: NodeTypeRegistry | None = None):
        self.registry = registry or DEFAULT_REGISTRY
        self._resolver = ConnectionResolver(self.registry)

    def validate(
        self,
        workflow: SanitizeResult | WorkflowGraph,
        resolved: ResolvedGraph | None = None,
    ) -> ValidationResult:
        """
        Validate a sanitized workflow.

        Args:
            workflow: A SanitizeResult (preferred, so dropped entries are
                reported) or a bare WorkflowGraph
            resolved: Pre-computed connections for the same graph

        Returns:
            ValidationResult with every issue found
        """
        if isinstance(workflow, WorkflowGraph):
            workflow = SanitizeResult(graph=workflow)
        graph = workflow.graph
        issues = _IssueCollector()

        if not workflow.is_mapping:
            issues.error(IssueKind.STRUCTURE, "Workflow must be a JSON object")
            return self._result(issues, 0, graph)

        if workflow.raw_count == 0:
            issues.error(IssueKind.STRUCTURE, "Workflow cannot be empty")
            return self._result(issues, 0, graph)

        for node_id in list(graph) + [entry.node_id for entry in workflow.dropped]:
            if not (node_id.isascii() and node_id.isdigit()):
                issues.warning(IssueKind.STRUCTURE, f'Node ID "{node_id}" should be numeric', node_id)

        for entry in workflow.dropped:
            if entry.reason == REASON_MISSING_CLASS_TYPE:
                issues.error(IssueKind.NODE, 'Node missing required "class_type" property', entry.node_id)
            else:
                issues.error(IssueKind.NODE, "Node must be an object", entry.node_id)

        for node_id, node in graph.items():
            self._validate_node(node_id, node, issues)

        self._validate_connections(graph, issues)

        resolved = resolved or self._resolver.resolve(graph)
        if resolved.has_cycle:
            issues.error(IssueKind.STRUCTURE, "Workflow contains a cycle (not a valid DAG)")

        node_types = graph.node_types()
        for family, message in _COMPLETENESS:
            if node_types.isdisjoint(family):
                issues.warning(IssueKind.STRUCTURE, message)

        return self._result(issues, workflow.raw_count, graph)

    def _result(self, issues: _IssueCollector, node_count: int, graph: WorkflowGraph) -> ValidationResult:
        result = ValidationResult(
            is_valid=not issues.errors,
            errors=tuple(issues.errors),
            warnings=tuple(issues.warnings),
            node_count=node_count,
            node_types=tuple(sorted(graph.node_types())),
        )
        logger.debug(
            "Validated workflow",
            extra={
                "node_count": node_count,
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
            },
        )
        return result

    # =========================================================================
    # NODE CHECKS
    # =========================================================================

    def _validate_node(self, node_id: str, node: Node, issues: _IssueCollector):
        if not node.had_inputs:
            issues.error(IssueKind.NODE, 'Node missing required "inputs" property', node_id)
            return

        schema = self.registry.get(node.class_type)
        if schema is None:
            issues.warning(IssueKind.SCHEMA, f"Unknown node type: {node.class_type}", node_id)
        else:
            for required in sorted(schema.required_inputs):
                if required not in node.inputs:
                    issues.error(
                        IssueKind.SCHEMA,
                        f'Node "{node.class_type}" missing required input: {required}',
                        node_id,
                    )

        if node.class_type in SAMPLER_TYPES:
            self._validate_sampler(node_id, node, issues)
        elif node.class_type == "EmptyLatentImage":
            self._validate_latent_image(node_id, node, issues)
        elif node.class_type in MODEL_LOADER_TYPES:
            self._validate_checkpoint_loader(node_id, node, issues)

    def _validate_sampler(self, node_id: str, node: Node, issues: _IssueCollector):
        steps = node.literal("steps")
        if _number(steps) and not STEPS_RANGE[0] <= steps <= STEPS_RANGE[1]:
            issues.warning(IssueKind.SCHEMA, f"{node.class_type} steps should be between 1-1000", node_id)

        cfg = node.literal("cfg")
        if _number(cfg) and not CFG_RANGE[0] <= cfg <= CFG_RANGE[1]:
            issues.warning(IssueKind.SCHEMA, f"{node.class_type} CFG should be between 1-30", node_id)

        for seed_input in ("seed", "noise_seed"):
            seed = node.literal(seed_input)
            if _number(seed) and seed < 0:
                issues.warning(IssueKind.SCHEMA, f"{node.class_type} seed should be non-negative", node_id)

    def _validate_latent_image(self, node_id: str, node: Node, issues: _IssueCollector):
        width = node.literal("width")
        height = node.literal("height")
        if _number(width) and _number(height):
            if width % 8 != 0 or height % 8 != 0:
                issues.warning(IssueKind.SCHEMA, "Image dimensions should be multiples of 8", node_id)
            if width < DIMENSION_RANGE[0] or height < DIMENSION_RANGE[0]:
                issues.warning(IssueKind.SCHEMA, "Image dimensions should be at least 64x64", node_id)
            if width > DIMENSION_RANGE[1] or height > DIMENSION_RANGE[1]:
                issues.warning(IssueKind.SCHEMA, "Large image dimensions may cause memory issues", node_id)

        batch_size = node.literal("batch_size")
        if _number(batch_size) and not BATCH_SIZE_RANGE[0] <= batch_size <= BATCH_SIZE_RANGE[1]:
            issues.warning(IssueKind.SCHEMA, "Batch size should be between 1-10", node_id)

    def _validate_checkpoint_loader(self, node_id: str, node: Node, issues: _IssueCollector):
        ckpt_name = node.literal("ckpt_name")
        if isinstance(ckpt_name, str) and not ckpt_name.endswith(CHECKPOINT_EXTENSIONS):
            issues.warning(IssueKind.SCHEMA, "Checkpoint should be .safetensors or .ckpt file", node_id)

    # =========================================================================
    # CONNECTION CHECKS
    # =========================================================================

    def _validate_connections(self, graph: WorkflowGraph, issues: _IssueCollector):
        for node_id, input_name, ref in graph.connection_refs():
            if ref.source_id not in graph:
                issues.error(
                    IssueKind.CONNECTION,
                    f"Node {node_id} references non-existent node {ref.source_id}",
                    node_id,
                )
            if not is_valid_output_index(ref.output_index):
                issues.error(
                    IssueKind.CONNECTION,
                    f"Invalid output index {ref.output_index} in node {node_id}",
                    node_id,
                )
                continue

            source = graph.get(ref.source_id)
            schema = self.registry.get(source.class_type) if source else None
            if schema is not None and ref.output_index >= len(schema.outputs):
                issues.warning(
                    IssueKind.CONNECTION,
                    f"Node {node_id} input '{input_name}' references output {ref.output_index} "
                    f"of {source.class_type}, which has {len(schema.outputs)} outputs",
                    node_id,
                )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def validate_workflow(raw: Any, registry: NodeTypeRegistry | None = None) -> ValidationResult:
    """Sanitize and validate a parsed workflow in one call."""
    return StructuralValidator(registry).validate(sanitize_workflow(raw))


def validate_workflow_json(text: str | bytes, registry: NodeTypeRegistry | None = None) -> ValidationResult:
    """
    Validate workflow JSON text.

    Unparseable text yields a single syntax error and no graph is built.
    """
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        return syntax_error_result(str(e))
    return validate_workflow(raw, registry)
