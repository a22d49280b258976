"""
Comfy Workflow Meta - Complexity Estimation
============================================

Scores workflow complexity and estimates execution time, per-node memory,
bottlenecks and VRAM.

These are coarse linear heuristics. The contract is determinism (the same
graph always gives the same estimate), not physical accuracy. Constants come
from AnalysisConfig and can be overridden through the environment.

    score = nodes + 2 * custom_nodes + 0.5 * connections
    > 100 Expert, > 50 Complex, > 20 Moderate, else Simple

    execution_time = 30 + 2 * nodes                   (seconds)
    sampler time   = steps * 0.5, any other node 5s   (bottleneck above 15s)
"""

from dataclasses import dataclass, field

from .config import AnalysisConfig, get_settings
from .extractor import numeric_value
from .graph import Node
from .models import Architecture, Bottleneck, Complexity, WorkflowFeatures
from .registry import SAMPLER_TYPES
from .resolver import ResolvedGraph

__all__ = [
    "ComplexityEstimate",
    "ComplexityEstimator",
    "classify_score",
    "estimate_vram",
    "NODE_MEMORY_MB",
    "BOTTLENECK_REASON",
]

BOTTLENECK_REASON = "High step count or complex processing"

NODE_MEMORY_MB: dict[str, int] = {
    "CheckpointLoaderSimple": 2000,
    "CheckpointLoader": 2000,
    "KSampler": 1500,
    "KSamplerAdvanced": 1500,
    "ControlNetApply": 800,
    "ControlNetApplyAdvanced": 800,
}
DEFAULT_NODE_MEMORY_MB = 100

_VRAM_BASE_GB = {
    Architecture.SD15: 4,
    Architecture.SDXL: 6,
    Architecture.SD3: 8,
    Architecture.FLUX: 12,
    Architecture.UNKNOWN: 4,
}


def classify_score(score: float) -> Complexity:
    if score > 100:
        return Complexity.EXPERT
    if score > 50:
        return Complexity.COMPLEX
    if score > 20:
        return Complexity.MODERATE
    return Complexity.SIMPLE


def estimate_vram(architecture: Architecture, features: WorkflowFeatures, node_count: int) -> str:
    """VRAM estimate such as "~6GB" from the architecture plus add-ons."""
    vram = _VRAM_BASE_GB.get(architecture, 4)
    if features.has_controlnet:
        vram += 2
    if features.has_lora:
        vram += 1
    if node_count > 30:
        vram += 2
    return f"~{vram}GB"


@dataclass(frozen=True)
class ComplexityEstimate:
    score: float
    complexity: Complexity
    node_count: int
    custom_node_count: int
    connection_count: int
    execution_time: float
    node_times: dict[str, float] = field(default_factory=dict)
    node_memory: dict[str, int] = field(default_factory=dict)
    bottlenecks: tuple[Bottleneck, ...] = ()


class ComplexityEstimator:
    """Deterministic complexity and performance heuristics."""

    def __init__(self, config: AnalysisConfig | None = None):
        self.config = config or get_settings().analysis

    def node_time(self, node: Node) -> float:
        """Seconds for one node: steps * 0.5 for samplers, a flat default otherwise."""
        if node.class_type in SAMPLER_TYPES:
            steps = numeric_value(node, "steps")
            if steps is None:
                steps = 20
            return steps * self.config.sampler_seconds_per_step
        return self.config.default_node_seconds

    def node_memory(self, node: Node) -> int:
        return NODE_MEMORY_MB.get(node.class_type, DEFAULT_NODE_MEMORY_MB)

    def execution_time(self, node_count: int) -> float:
        return self.config.base_execution_seconds + node_count * self.config.per_node_execution_seconds

    def estimate(self, resolved: ResolvedGraph) -> ComplexityEstimate:
        graph = resolved.graph
        node_count = len(graph)
        custom_count = sum(1 for node in graph.values() if resolved.registry.is_custom(node.class_type))
        connection_count = resolved.connection_count

        score = node_count + 2 * custom_count + 0.5 * connection_count

        node_times: dict[str, float] = {}
        node_memory: dict[str, int] = {}
        bottlenecks: list[Bottleneck] = []
        for node_id, node in graph.items():
            seconds = self.node_time(node)
            memory = self.node_memory(node)
            node_times[node_id] = seconds
            node_memory[node_id] = memory
            if seconds > self.config.bottleneck_threshold_seconds:
                bottlenecks.append(
                    Bottleneck(
                        node_id=node_id,
                        node_type=node.class_type,
                        execution_time=seconds,
                        memory_usage=memory,
                        reason=BOTTLENECK_REASON,
                    )
                )

        return ComplexityEstimate(
            score=score,
            complexity=classify_score(score),
            node_count=node_count,
            custom_node_count=custom_count,
            connection_count=connection_count,
            execution_time=self.execution_time(node_count),
            node_times=node_times,
            node_memory=node_memory,
            bottlenecks=tuple(bottlenecks),
        )
