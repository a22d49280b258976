"""
Comfy Workflow Meta - Metadata Assembler
=========================================

The public entry point. Runs the pipeline in a fixed order and returns one
frozen MetadataSnapshot:

    sanitize -> resolve -> validate -> extract -> detect features -> estimate

Content problems never raise here: an invalid workflow still produces a
snapshot with degraded fields and its issues under `validation`. Only
unparseable text (WorkflowSyntaxError) and a failed post-condition
(SnapshotAssemblyError) raise.

Usage:
    from comfy_workflow_meta import MetadataAssembler

    assembler = MetadataAssembler()
    snapshot = assembler.parse(workflow_dict)
    snapshot = assembler.parse_json(path.read_text())
    result = assembler.try_parse_json(text)     # Result, never raises for bad JSON
"""

import hashlib
import json
import time
from typing import Any

from .complexity import ComplexityEstimate, ComplexityEstimator, estimate_vram
from .config import AnalysisConfig, get_settings
from .exceptions import Result, SnapshotAssemblyError, WorkflowSyntaxError
from .extractor import ParameterExtractor
from .features import FeatureDetector, feature_tags
from .graph import ConnectionRef, LiteralValue, WorkflowGraph
from .logging_config import LogContext, get_logger, log_timing, traced_operation
from .models import (
    MetadataSnapshot,
    NodeDetail,
    NodeInputDetail,
    NodeOutputDetail,
    PerformanceInfo,
    WorkflowInfo,
)
from .registry import DEFAULT_REGISTRY, NodeTypeRegistry
from .resolver import ConnectionResolver, ResolvedGraph
from .sanitizer import SanitizeResult, sanitize_workflow
from .validator import StructuralValidator

logger = get_logger(__name__)

__all__ = [
    "MetadataAssembler",
    "parse_workflow_metadata",
    "workflow_fingerprint",
]


def _canonical(graph: WorkflowGraph) -> dict[str, Any]:
    canonical: dict[str, Any] = {}
    for node_id, node in graph.items():
        inputs: dict[str, Any] = {}
        for name, port in node.inputs.items():
            if isinstance(port, ConnectionRef):
                inputs[name] = [port.source_id, port.output_index]
            elif isinstance(port, LiteralValue):
                inputs[name] = port.value
        canonical[node_id] = {"class_type": node.class_type, "inputs": inputs}
    return canonical


def workflow_fingerprint(graph: WorkflowGraph) -> str:
    """sha256 of the sanitized graph in canonical JSON form."""
    payload = json.dumps(_canonical(graph), sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class MetadataAssembler:
    """
    Builds MetadataSnapshots.

    Holds no per-parse state, so one assembler can be shared across threads.

    Args:
        registry: Node type registry (defaults to the built-in table)
        config: Heuristic constants (defaults to settings.analysis)
    """

    REQUIRED_FIELDS = ("version", "timestamp")

    def __init__(
        self,
        registry: NodeTypeRegistry | None = None,
        config: AnalysisConfig | None = None,
    ):
        self.registry = registry or DEFAULT_REGISTRY
        self.config = config or get_settings().analysis
        self.resolver = ConnectionResolver(self.registry)
        self.validator = StructuralValidator(self.registry)
        self.features = FeatureDetector()
        self.estimator = ComplexityEstimator(self.config)

    def parse_json(self, text: str | bytes) -> MetadataSnapshot:
        """
        Parse workflow JSON text into a snapshot.

        Raises:
            WorkflowSyntaxError: If the text is not valid JSON
        """
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise WorkflowSyntaxError(
                f"Workflow is not valid JSON: {e.msg}", line=e.lineno, column=e.colno, cause=e
            )
        except (UnicodeDecodeError, TypeError) as e:
            raise WorkflowSyntaxError(f"Workflow is not valid JSON: {e}", cause=e)
        return self.parse(raw)

    def try_parse_json(self, text: str | bytes) -> Result:
        """
        parse_json, with package errors returned in a Result instead of raised.

        Usage:
            result = assembler.try_parse_json(text)
            snapshot = result.value_or(None)
        """
        return Result.from_exception(self.parse_json, text)

    def parse(self, raw: Any) -> MetadataSnapshot:
        """
        Build a snapshot from a parsed workflow (API format or UI export wrapper).

        Raises:
            SnapshotAssemblyError: If the assembled snapshot lacks version or timestamp
        """
        timestamp = int(time.time() * 1000)
        sanitized = sanitize_workflow(raw)
        graph = sanitized.graph
        workflow_id = f"workflow_{timestamp}_{workflow_fingerprint(graph)[:8]}"

        with LogContext(workflow_id), traced_operation(
            "parse_workflow", {"workflow.id": workflow_id, "workflow.nodes": len(graph)}
        ), log_timing(logger, "parse_workflow", node_count=len(graph)):
            snapshot = self._assemble(workflow_id, timestamp, sanitized)
            self._check_postconditions(snapshot)
            return snapshot

    def _assemble(
        self, workflow_id: str, timestamp: int, sanitized: SanitizeResult
    ) -> MetadataSnapshot:
        graph = sanitized.graph
        resolved = self.resolver.resolve(graph)
        validation = self.validator.validate(sanitized, resolved)

        extractor = ParameterExtractor(resolved)
        models = extractor.extract_models()
        generation = extractor.extract_generation()
        features = self.features.detect(graph)
        estimate = self.estimator.estimate(resolved)

        architecture = models.checkpoint.architecture
        workflow = WorkflowInfo(
            id=workflow_id,
            name=self._workflow_name(graph),
            tags=tuple(feature_tags(features)),
            architecture=architecture,
            complexity=estimate.complexity,
            node_count=estimate.node_count,
            connection_count=estimate.connection_count,
            custom_node_count=estimate.custom_node_count,
            estimated_vram=estimate_vram(architecture, features, estimate.node_count),
            estimated_execution_time=estimate.execution_time,
            features=features,
        )
        performance = PerformanceInfo(
            total_nodes=estimate.node_count,
            estimated_time=estimate.execution_time,
            bottlenecks=estimate.bottlenecks,
        )

        return MetadataSnapshot(
            version=self.config.snapshot_version,
            timestamp=timestamp,
            workflow=workflow,
            generation=generation,
            models=models,
            performance=performance,
            nodes=tuple(self._node_details(resolved, estimate)),
            relationships=resolved.edges,
            validation=validation,
        )

    @staticmethod
    def _workflow_name(graph: WorkflowGraph) -> str | None:
        for node in graph.values():
            return node.title
        return None

    def _node_details(self, resolved: ResolvedGraph, estimate: ComplexityEstimate) -> list[NodeDetail]:
        order = resolved.execution_order()
        details = []

        for node_id, node in resolved.graph.items():
            schema = self.registry.get(node.class_type)

            inputs = []
            for name, port in node.inputs.items():
                link = resolved.incoming(node_id, name)
                inputs.append(
                    NodeInputDetail(
                        name=name,
                        type=schema.input_types.get(name, "unknown") if schema else "unknown",
                        value=port.value if isinstance(port, LiteralValue) else None,
                        is_connected=link is not None,
                        connected_from=link.edge.from_node if link else None,
                        connected_output=link.output_index if link else None,
                        default_value=schema.defaults.get(name) if schema else None,
                    )
                )

            outputs = []
            for index, descriptor in enumerate(schema.outputs if schema else ()):
                targets = dict.fromkeys(link.edge.to_node for link in resolved.links_from(node_id, index))
                outputs.append(
                    NodeOutputDetail(name=descriptor.name, type=descriptor.type, connected_to=tuple(targets))
                )

            details.append(
                NodeDetail(
                    id=node_id,
                    type=node.class_type,
                    title=node.title,
                    category=self.registry.category(node.class_type),
                    is_custom=self.registry.is_custom(node.class_type),
                    inputs=tuple(inputs),
                    outputs=tuple(outputs),
                    position=node.position,
                    size=node.size,
                    color=node.color,
                    execution_order=order.get(node_id),
                    estimated_time=estimate.node_times[node_id],
                    memory_usage=estimate.node_memory[node_id],
                )
            )

        return details

    def _check_postconditions(self, snapshot: MetadataSnapshot):
        missing = [name for name in self.REQUIRED_FIELDS if not getattr(snapshot, name, None)]
        if missing:
            logger.critical("Snapshot failed post-condition check", extra={"missing_fields": missing})
            raise SnapshotAssemblyError(missing)


def parse_workflow_metadata(raw: Any, registry: NodeTypeRegistry | None = None) -> MetadataSnapshot:
    """Convenience wrapper for MetadataAssembler(registry).parse(raw)."""
    return MetadataAssembler(registry).parse(raw)
