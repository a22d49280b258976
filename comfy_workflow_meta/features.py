"""
Comfy Workflow Meta - Feature Detection
========================================

Best-effort classification of workflow capabilities from the set of node
types present.

All heuristics live in one declarative table, FEATURE_RULES, evaluated once
per parse. Custom nodes with unusual names will be missed; that is accepted.
"""

from collections.abc import Callable
from dataclasses import dataclass

from .extractor import numeric_value
from .graph import WorkflowGraph
from .models import WorkflowFeatures
from .registry import SAMPLER_TYPES

__all__ = [
    "FeatureContext",
    "FeatureRule",
    "FEATURE_RULES",
    "FeatureDetector",
    "detect_features",
    "feature_tags",
]


@dataclass(frozen=True)
class FeatureContext:
    """What a feature predicate may look at."""

    graph: WorkflowGraph
    node_types: frozenset[str]

    @classmethod
    def from_graph(cls, graph: WorkflowGraph) -> "FeatureContext":
        return cls(graph=graph, node_types=graph.node_types())

    def any_type_contains(self, *needles: str) -> bool:
        """Case-insensitive substring test over node types."""
        return any(needle in node_type.lower() for node_type in self.node_types for needle in needles)


@dataclass(frozen=True)
class FeatureRule:
    flag: str  # WorkflowFeatures field name
    predicate: Callable[[FeatureContext], bool]
    description: str = ""


def _has_batch(ctx: FeatureContext) -> bool:
    for node in ctx.graph.values():
        batch_size = numeric_value(node, "batch_size")
        if batch_size is not None and batch_size > 1:
            return True
    return False


FEATURE_RULES: tuple[FeatureRule, ...] = (
    FeatureRule(
        "has_img2img",
        lambda ctx: {"LoadImage", "VAEEncode"} <= ctx.node_types,
        "LoadImage and VAEEncode both present",
    ),
    FeatureRule("has_inpainting", lambda ctx: ctx.any_type_contains("inpaint")),
    FeatureRule(
        "has_controlnet",
        lambda ctx: any("ControlNet" in t for t in ctx.node_types),
        "type name contains ControlNet (case-sensitive)",
    ),
    FeatureRule(
        "has_lora",
        lambda ctx: not ctx.node_types.isdisjoint({"LoraLoader", "LoraLoaderModelOnly"}),
    ),
    FeatureRule("has_embeddings", lambda ctx: ctx.any_type_contains("embedding")),
    FeatureRule("has_upscaling", lambda ctx: ctx.any_type_contains("upscale", "esrgan")),
    FeatureRule("has_face_restore", lambda ctx: ctx.any_type_contains("face", "gfpgan", "codeformer")),
    FeatureRule("has_animation_frames", lambda ctx: ctx.any_type_contains("animation", "frame")),
    FeatureRule("has_batch_processing", _has_batch, "any literal batch_size > 1"),
    FeatureRule(
        "has_custom_samplers",
        lambda ctx: any("Sampler" in t and t not in SAMPLER_TYPES for t in ctx.node_types),
        "a Sampler type other than KSampler/KSamplerAdvanced",
    ),
    FeatureRule("has_ip_adapter", lambda ctx: ctx.any_type_contains("ipadapter")),
    FeatureRule("has_regional_prompting", lambda ctx: ctx.any_type_contains("regional", "attention")),
)

# (flag, tag) pairs, in tag order
_TAGS = (
    ("has_img2img", "img2img"),
    ("has_controlnet", "controlnet"),
    ("has_lora", "lora"),
    ("has_upscaling", "upscaling"),
    ("has_inpainting", "inpainting"),
)


class FeatureDetector:
    """Evaluates a rule table against a graph."""

    def __init__(self, rules: tuple[FeatureRule, ...] = FEATURE_RULES):
        self.rules = rules

    def detect(self, graph: WorkflowGraph) -> WorkflowFeatures:
        ctx = FeatureContext.from_graph(graph)
        return WorkflowFeatures(**{rule.flag: bool(rule.predicate(ctx)) for rule in self.rules})


def detect_features(graph: WorkflowGraph) -> WorkflowFeatures:
    return FeatureDetector().detect(graph)


def feature_tags(features: WorkflowFeatures) -> list[str]:
    """Search tags derived from feature flags."""
    return [tag for flag, tag in _TAGS if getattr(features, flag)]
