"""
Comfy Workflow Meta - Output Models
====================================

Pydantic models for every value this package hands to callers: validation
results, relationship edges and the metadata snapshot.

All models are frozen. Attributes are snake_case; `to_dict()` serialises
with the camelCase keys that renderers and preset payloads expect.

Usage:
    snapshot = MetadataAssembler().parse(workflow)
    snapshot.workflow.architecture      # Architecture.SDXL
    snapshot.to_dict()["workflow"]      # {"id": ..., "nodeCount": ..., ...}
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = [
    # Enums
    "IssueKind",
    "Severity",
    "Architecture",
    "Complexity",
    "PromptType",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Graph
    "RelationshipEdge",
    # Snapshot parts
    "WorkflowFeatures",
    "WorkflowInfo",
    "SamplerInfo",
    "PromptEmbedding",
    "GenerationInfo",
    "CheckpointInfo",
    "VaeInfo",
    "LoraInfo",
    "EmbeddingInfo",
    "ControlNetInfo",
    "UpscalerInfo",
    "FaceRestorerInfo",
    "ModelStack",
    "Bottleneck",
    "PerformanceInfo",
    "NodeInputDetail",
    "NodeOutputDetail",
    "NodeDetail",
    "MetadataSnapshot",
]


# =============================================================================
# ENUMS
# =============================================================================


class IssueKind(str, Enum):
    SYNTAX = "syntax"
    STRUCTURE = "structure"
    NODE = "node"
    CONNECTION = "connection"
    SCHEMA = "schema"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Architecture(str, Enum):
    """Inferred target model family."""

    SD15 = "SD1.5"
    SDXL = "SDXL"
    SD3 = "SD3"
    FLUX = "Flux"
    UNKNOWN = "Unknown"


class Complexity(str, Enum):
    SIMPLE = "Simple"
    MODERATE = "Moderate"
    COMPLEX = "Complex"
    EXPERT = "Expert"


class PromptType(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


# =============================================================================
# BASE
# =============================================================================


class _FrozenModel(BaseModel):
    """Frozen model serialised with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationIssue(_FrozenModel):
    """One problem found by the structural validator."""

    kind: IssueKind
    severity: Severity
    message: str
    node_id: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


class ValidationResult(_FrozenModel):
    """
    Outcome of one validation run.

    `is_valid` is True exactly when `errors` is empty; warnings never affect it.
    """

    is_valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    node_count: int = 0
    node_types: tuple[str, ...] = ()

    @property
    def issues(self) -> tuple[ValidationIssue, ...]:
        return self.errors + self.warnings

    def errors_for(self, node_id: str) -> list[ValidationIssue]:
        return [issue for issue in self.errors if issue.node_id == node_id]


# =============================================================================
# GRAPH
# =============================================================================


class RelationshipEdge(_FrozenModel):
    """A resolved connection: output of `from_node` feeds input of `to_node`."""

    from_node: str
    from_output_name: str
    from_output_type: str
    to_node: str
    to_input_name: str
    required: bool


# =============================================================================
# SNAPSHOT: WORKFLOW
# =============================================================================


class WorkflowFeatures(_FrozenModel):
    has_img2img: bool = Field(False, alias="hasImg2Img")
    has_inpainting: bool = False
    has_controlnet: bool = Field(False, alias="hasControlNet")
    has_lora: bool = False
    has_embeddings: bool = False
    has_upscaling: bool = False
    has_face_restore: bool = False
    has_animation_frames: bool = False
    has_batch_processing: bool = False
    has_custom_samplers: bool = False
    has_ip_adapter: bool = Field(False, alias="hasIPAdapter")
    has_regional_prompting: bool = False


class WorkflowInfo(_FrozenModel):
    id: str
    name: str | None = None
    tags: tuple[str, ...] = ()
    architecture: Architecture = Architecture.UNKNOWN
    complexity: Complexity = Complexity.SIMPLE
    node_count: int = 0
    connection_count: int = 0
    custom_node_count: int = 0
    estimated_vram: str = Field("~4GB", alias="estimatedVRAM")
    estimated_execution_time: float = 0.0
    features: WorkflowFeatures = WorkflowFeatures()


# =============================================================================
# SNAPSHOT: GENERATION
# =============================================================================


class SamplerInfo(_FrozenModel):
    """One entry of the sampler chain, in order of first appearance."""

    node_id: str
    name: str = "Unknown"
    scheduler: str = "Unknown"
    steps: int | float = 20
    cfg: int | float = 7.0
    denoise: int | float = 1.0
    order: int = 0


class PromptEmbedding(_FrozenModel):
    node_id: str
    type: PromptType
    text: str
    token_count: int = 0
    embeddings: tuple[str, ...] = ()  # <...> weight tokens
    strength: float | None = None


class GenerationInfo(_FrozenModel):
    seed: int | float | None = None
    total_steps: int | float = 0
    sampler_chain: tuple[SamplerInfo, ...] = ()
    prompt_embeddings: tuple[PromptEmbedding, ...] = ()
    guidance_scale: int | float = 7.0
    conditioning_strength: float = 1.0
    width: int | float | None = None
    height: int | float | None = None
    batch_size: int | float = 1
    positive_prompt: str | None = None
    negative_prompt: str | None = None


# =============================================================================
# SNAPSHOT: MODELS
# =============================================================================


class CheckpointInfo(_FrozenModel):
    name: str = "Unknown"
    architecture: Architecture = Architecture.UNKNOWN
    base_model: str = "Unknown"
    variant: str | None = None
    clip_skip: int | None = None
    hash: str | None = None
    node_id: str | None = None


class VaeInfo(_FrozenModel):
    name: str
    hash: str | None = None
    node_id: str | None = None


class LoraInfo(_FrozenModel):
    name: str
    model_strength: float = 1.0
    clip_strength: float = 1.0
    trigger_words: tuple[str, ...] | None = None
    node_id: str | None = None


class EmbeddingInfo(_FrozenModel):
    """Textual inversion referenced as `embedding:<name>` in a prompt."""

    name: str
    node_id: str | None = None


class ControlNetInfo(_FrozenModel):
    name: str
    model: str
    strength: float = 1.0
    start_percent: float = 0.0
    end_percent: float = 1.0
    preprocessor: str | None = None
    node_id: str | None = None


class UpscalerInfo(_FrozenModel):
    name: str
    scale: float | None = None
    node_id: str | None = None


class FaceRestorerInfo(_FrozenModel):
    name: str
    strength: float | None = None
    node_id: str | None = None


class ModelStack(_FrozenModel):
    checkpoint: CheckpointInfo = CheckpointInfo()
    vae: VaeInfo | None = None
    loras: tuple[LoraInfo, ...] = ()
    embeddings: tuple[EmbeddingInfo, ...] = ()
    controlnets: tuple[ControlNetInfo, ...] = ()
    upscalers: tuple[UpscalerInfo, ...] = ()
    face_restorers: tuple[FaceRestorerInfo, ...] = ()


# =============================================================================
# SNAPSHOT: PERFORMANCE
# =============================================================================


class Bottleneck(_FrozenModel):
    node_id: str
    node_type: str
    execution_time: float
    memory_usage: int
    reason: str


class PerformanceInfo(_FrozenModel):
    total_nodes: int = 0
    processed_nodes: int = 0
    skipped_nodes: int = 0
    cached_nodes: int = 0
    estimated_time: float = 0.0
    bottlenecks: tuple[Bottleneck, ...] = ()


# =============================================================================
# SNAPSHOT: NODES
# =============================================================================


class NodeInputDetail(_FrozenModel):
    name: str
    type: str = "unknown"
    value: Any = None
    is_connected: bool = False
    connected_from: str | None = None
    connected_output: Any = None
    default_value: Any = None
    description: str | None = None


class NodeOutputDetail(_FrozenModel):
    name: str
    type: str
    connected_to: tuple[str, ...] = ()


class NodeDetail(_FrozenModel):
    id: str
    type: str
    title: str | None = None
    category: str = "Unknown"
    is_custom: bool = False
    inputs: tuple[NodeInputDetail, ...] = ()
    outputs: tuple[NodeOutputDetail, ...] = ()
    position: Any = None
    size: Any = None
    color: str | None = None
    execution_order: int | None = None
    estimated_time: float = 0.0
    memory_usage: int = 0


# =============================================================================
# SNAPSHOT
# =============================================================================


class MetadataSnapshot(_FrozenModel):
    """
    Everything derived from one workflow, computed once per parse call.

    `validation` carries the structural validator's result so a renderer can
    show issues beside the metadata.
    """

    version: str
    timestamp: int
    workflow: WorkflowInfo
    generation: GenerationInfo
    models: ModelStack
    performance: PerformanceInfo
    nodes: tuple[NodeDetail, ...] = ()
    relationships: tuple[RelationshipEdge, ...] = ()
    validation: ValidationResult
