"""
Comfy Workflow Meta - Parameter Extractor
==========================================

Pulls generation semantics out of a resolved workflow graph:

- Model stack: checkpoint (architecture, base model, variant, clip skip),
  VAE, LoRAs, ControlNets, textual-inversion embeddings, upscalers,
  face restorers
- Generation: sampler chain, total steps, seed, dimensions, prompts

Every accessor is defensive. A connected input counts as absent, missing
values fall back to documented defaults, and nothing here raises for odd
content.

Usage:
    extractor = ParameterExtractor(resolved)
    models = extractor.extract_models()
    generation = extractor.extract_generation()
"""

import math
import re
from collections import deque
from typing import Any

from .graph import LiteralValue, Node
from .models import (
    Architecture,
    CheckpointInfo,
    ControlNetInfo,
    EmbeddingInfo,
    FaceRestorerInfo,
    GenerationInfo,
    LoraInfo,
    ModelStack,
    PromptEmbedding,
    PromptType,
    SamplerInfo,
    UpscalerInfo,
    VaeInfo,
)
from .registry import MODEL_LOADER_TYPES, PROMPT_SAMPLER_TYPES, SAMPLER_TYPES, TEXT_ENCODER_TYPES
from .resolver import ResolvedGraph

__all__ = [
    "ParameterExtractor",
    "numeric_value",
    "string_value",
    "infer_architecture",
    "model_variant",
    "estimate_token_count",
    "extract_weight_tokens",
    "extract_embedding_names",
    "VARIANT_TOKENS",
]

# Sampler defaults used when a value is missing or connected
DEFAULT_STEPS = 20
DEFAULT_CFG = 7.0
DEFAULT_DENOISE = 1.0

VARIANT_TOKENS = ("fp16", "fp32", "bf16", "ema", "pruned", "inpainting", "turbo", "lightning")

LORA_TYPES = ("LoraLoader", "LoraLoaderModelOnly")
CONTROLNET_APPLY_TYPES = ("ControlNetApply", "ControlNetApplyAdvanced")
SCALE_BY_TYPES = ("LatentUpscaleBy", "ImageScaleBy")
FACE_RESTORE_MARKERS = ("facerestore", "gfpgan", "codeformer", "facedetailer")

_WEIGHT_TOKEN = re.compile(r"<([^>]+)>")
_EMBEDDING_TOKEN = re.compile(r"embedding:([^\s,()\[\]<>:]+)", re.IGNORECASE)
# "4x-UltraSharp", "RealESRGAN_x4plus"
_SCALE_IN_NAME = re.compile(r"(?<![a-z0-9])(?:(\d+)x|x(\d+))(?!\d)", re.IGNORECASE)


# =============================================================================
# VALUE ACCESSORS
# =============================================================================


def _finite(value: int | float) -> int | float | None:
    # ints too large for a float overflow here
    try:
        return value if math.isfinite(value) else None
    except OverflowError:
        return None


def numeric_value(node: Node, name: str) -> int | float | None:
    """
    Numeric literal of an input, or None.

    Numeric strings ("20", "7.5") are parsed; booleans, non-finite values,
    integers beyond float range and connected inputs are treated as absent.
    """
    port = node.inputs.get(name)
    if not isinstance(port, LiteralValue):
        return None
    value = port.value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return _finite(int(text))
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError:
            return None
        return _finite(parsed)
    return None


def string_value(node: Node, name: str) -> str | None:
    """String literal of an input, or None."""
    value = node.literal(name)
    return value if isinstance(value, str) else None


def _first_number(node: Node, *names: str) -> int | float | None:
    for name in names:
        value = numeric_value(node, name)
        if value is not None:
            return value
    return None


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None else value


# =============================================================================
# NAME AND TEXT HEURISTICS
# =============================================================================


def infer_architecture(checkpoint_name: str | None) -> Architecture:
    """
    Model family from checkpoint filename tokens.

    "xl" -> SDXL, "sd3" -> SD3, "flux" -> Flux, anything else SD1.5.
    No checkpoint name at all is Unknown.
    """
    if not checkpoint_name:
        return Architecture.UNKNOWN
    lowered = checkpoint_name.lower()
    if "xl" in lowered:
        return Architecture.SDXL
    if "sd3" in lowered or "stable-diffusion-3" in lowered:
        return Architecture.SD3
    if "flux" in lowered:
        return Architecture.FLUX
    return Architecture.SD15


def model_variant(checkpoint_name: str | None) -> str | None:
    """Variant tokens (fp16, pruned, ...) found in a checkpoint name."""
    if not checkpoint_name:
        return None
    tokens = set(re.split(r"[^a-z0-9]+", checkpoint_name.lower()))
    found = [token for token in VARIANT_TOKENS if token in tokens]
    return ", ".join(found) if found else None


def estimate_token_count(text: str) -> int:
    # ~0.75 tokens per word
    return math.ceil(len(text.split()) * 0.75)


def extract_weight_tokens(text: str) -> list[str]:
    """Contents of <...> tokens, e.g. "<lora:detail:0.6>" -> "lora:detail:0.6"."""
    return _WEIGHT_TOKEN.findall(text)


def extract_embedding_names(text: str) -> list[str]:
    """Names referenced as embedding:<name>, in order, without duplicates."""
    names: list[str] = []
    for name in _EMBEDDING_TOKEN.findall(text):
        if name not in names:
            names.append(name)
    return names


def _scale_from_name(name: str) -> float | None:
    match = _SCALE_IN_NAME.search(name)
    if not match:
        return None
    return float(match.group(1) or match.group(2))


# =============================================================================
# EXTRACTOR
# =============================================================================


class ParameterExtractor:
    """
    Reads domain parameters from a ResolvedGraph.

    Connectivity questions (which loader feeds this ControlNet, which sampler
    input consumes this prompt) go through the resolver's edges.
    """

    def __init__(self, resolved: ResolvedGraph):
        self.resolved = resolved
        self.graph = resolved.graph
        self._prompt_types: dict[str, PromptType] = {}

    # =========================================================================
    # MODELS
    # =========================================================================

    def extract_models(self) -> ModelStack:
        return ModelStack(
            checkpoint=self.checkpoint(),
            vae=self.vae(),
            loras=tuple(self.loras()),
            embeddings=tuple(self.embeddings()),
            controlnets=tuple(self.controlnets()),
            upscalers=tuple(self.upscalers()),
            face_restorers=tuple(self.face_restorers()),
        )

    def checkpoint_name(self) -> str | None:
        """ckpt_name of the first model loader."""
        for _, node in self.graph.nodes_of_type(*MODEL_LOADER_TYPES):
            return string_value(node, "ckpt_name")
        return None

    def architecture(self) -> Architecture:
        return infer_architecture(self.checkpoint_name())

    def checkpoint(self) -> CheckpointInfo:
        loaders = self.graph.nodes_of_type(*MODEL_LOADER_TYPES)
        if not loaders:
            return CheckpointInfo()

        node_id, node = loaders[0]
        name = string_value(node, "ckpt_name")
        architecture = infer_architecture(name)
        return CheckpointInfo(
            name=name or "Unknown",
            architecture=architecture,
            base_model=architecture.value,
            variant=model_variant(name),
            clip_skip=self.clip_skip(),
            node_id=node_id,
        )

    def clip_skip(self) -> int | None:
        """Layers skipped by the first CLIPSetLastLayer (stop_at_clip_layer=-2 -> 2)."""
        for _, node in self.graph.nodes_of_type("CLIPSetLastLayer"):
            value = numeric_value(node, "stop_at_clip_layer")
            if value is not None:
                return abs(int(value))
        return None

    def vae(self) -> VaeInfo | None:
        for node_id, node in self.graph.nodes_of_type("VAELoader"):
            return VaeInfo(name=string_value(node, "vae_name") or "Unknown", node_id=node_id)
        return None

    def loras(self) -> list[LoraInfo]:
        loras = []
        for node_id, node in self.graph.nodes_of_type(*LORA_TYPES):
            loras.append(
                LoraInfo(
                    name=string_value(node, "lora_name") or "Unknown",
                    model_strength=_or_default(numeric_value(node, "strength_model"), 1.0),
                    clip_strength=_or_default(numeric_value(node, "strength_clip"), 1.0),
                    node_id=node_id,
                )
            )
        return loras

    def controlnets(self) -> list[ControlNetInfo]:
        controlnets = []
        for node_id, node in self.graph.nodes_of_type(*CONTROLNET_APPLY_TYPES):
            model = None
            loader_id = self.resolved.source_of(node_id, "control_net")
            if loader_id is not None:
                model = string_value(self.graph[loader_id], "control_net_name")

            controlnets.append(
                ControlNetInfo(
                    name=model or "ControlNet",
                    model=model or "Unknown",
                    strength=_or_default(numeric_value(node, "strength"), 1.0),
                    start_percent=_or_default(numeric_value(node, "start_percent"), 0.0),
                    end_percent=_or_default(numeric_value(node, "end_percent"), 1.0),
                    preprocessor=self._preprocessor(node_id),
                    node_id=node_id,
                )
            )
        return controlnets

    def _preprocessor(self, controlnet_id: str) -> str | None:
        """Class type of the node feeding the ControlNet image, unless it is a plain image load."""
        source_id = self.resolved.source_of(controlnet_id, "image")
        if source_id is None:
            return None
        class_type = self.graph[source_id].class_type
        return None if class_type == "LoadImage" else class_type

    def embeddings(self) -> list[EmbeddingInfo]:
        seen: set[str] = set()
        embeddings = []
        for node_id, node in self.graph.nodes_of_type(*TEXT_ENCODER_TYPES):
            for name in extract_embedding_names(string_value(node, "text") or ""):
                if name not in seen:
                    seen.add(name)
                    embeddings.append(EmbeddingInfo(name=name, node_id=node_id))
        return embeddings

    def upscalers(self) -> list[UpscalerInfo]:
        upscalers = []
        for node_id, node in self.graph.items():
            if node.class_type == "UpscaleModelLoader":
                name = string_value(node, "model_name") or "Unknown"
                upscalers.append(UpscalerInfo(name=name, scale=_scale_from_name(name), node_id=node_id))
            elif node.class_type in SCALE_BY_TYPES:
                upscalers.append(
                    UpscalerInfo(
                        name=string_value(node, "upscale_method") or node.class_type,
                        scale=numeric_value(node, "scale_by"),
                        node_id=node_id,
                    )
                )
        return upscalers

    def face_restorers(self) -> list[FaceRestorerInfo]:
        restorers = []
        for node_id, node in self.graph.items():
            lowered = node.class_type.lower()
            if not any(marker in lowered for marker in FACE_RESTORE_MARKERS):
                continue
            name = (
                string_value(node, "model_name")
                or string_value(node, "facerestore_model")
                or node.class_type
            )
            restorers.append(
                FaceRestorerInfo(
                    name=name,
                    strength=_first_number(node, "strength", "codeformer_fidelity", "fidelity"),
                    node_id=node_id,
                )
            )
        return restorers

    # =========================================================================
    # GENERATION
    # =========================================================================

    def extract_generation(self) -> GenerationInfo:
        chain = self.sampler_chain()
        prompts = self.prompt_embeddings()
        latent = self._latent_source(chain[0].node_id if chain else None)

        return GenerationInfo(
            seed=self.seed(),
            total_steps=self.total_steps(),
            sampler_chain=tuple(chain),
            prompt_embeddings=tuple(prompts),
            guidance_scale=chain[0].cfg if chain else DEFAULT_CFG,
            conditioning_strength=1.0,
            width=numeric_value(latent, "width") if latent else None,
            height=numeric_value(latent, "height") if latent else None,
            batch_size=_or_default(numeric_value(latent, "batch_size") if latent else None, 1),
            positive_prompt=next((p.text for p in prompts if p.type == PromptType.POSITIVE), None),
            negative_prompt=next((p.text for p in prompts if p.type == PromptType.NEGATIVE), None),
        )

    def sampler_chain(self) -> list[SamplerInfo]:
        """Built-in samplers in order of first appearance."""
        chain = []
        for order, (node_id, node) in enumerate(self.graph.nodes_of_type(*SAMPLER_TYPES)):
            chain.append(
                SamplerInfo(
                    node_id=node_id,
                    name=string_value(node, "sampler_name") or "Unknown",
                    scheduler=string_value(node, "scheduler") or "Unknown",
                    steps=_or_default(numeric_value(node, "steps"), DEFAULT_STEPS),
                    cfg=_or_default(numeric_value(node, "cfg"), DEFAULT_CFG),
                    denoise=_or_default(numeric_value(node, "denoise"), DEFAULT_DENOISE),
                    order=order,
                )
            )
        return chain

    def total_steps(self) -> int | float:
        """Sum of steps over every sampler node; a missing value counts as 0."""
        return sum(
            _or_default(numeric_value(node, "steps"), 0)
            for _, node in self.graph.nodes_of_type(*SAMPLER_TYPES)
        )

    def seed(self) -> int | float | None:
        for _, node in self.graph.nodes_of_type(*SAMPLER_TYPES):
            return _first_number(node, "seed", "noise_seed")
        return None

    def _latent_source(self, sampler_id: str | None) -> Node | None:
        """Node providing the first sampler's latent, else the first EmptyLatentImage."""
        if sampler_id is not None:
            source_id = self.resolved.source_of(sampler_id, "latent_image")
            if source_id is not None and "width" in self.graph[source_id].inputs:
                return self.graph[source_id]
        for _, node in self.graph.nodes_of_type("EmptyLatentImage"):
            return node
        return None

    # =========================================================================
    # PROMPTS
    # =========================================================================

    def prompt_embeddings(self) -> list[PromptEmbedding]:
        prompts = []
        for node_id, node in self.graph.nodes_of_type(*TEXT_ENCODER_TYPES):
            text = string_value(node, "text") or ""
            prompts.append(
                PromptEmbedding(
                    node_id=node_id,
                    type=self.prompt_type(node_id),
                    text=text,
                    token_count=estimate_token_count(text),
                    embeddings=tuple(extract_weight_tokens(text)),
                    strength=numeric_value(node, "strength"),
                )
            )
        return prompts

    def prompt_type(self, encoder_id: str) -> PromptType:
        """
        Classify a text encoder by the sampler input its conditioning reaches.

        Follows edges downstream breadth-first (through ControlNet and other
        conditioning nodes) to the first sampler input named positive or
        negative. An encoder that reaches no sampler is reported as positive.
        """
        if encoder_id in self._prompt_types:
            return self._prompt_types[encoder_id]

        prompt_type = PromptType.POSITIVE
        visited = {encoder_id}
        queue = deque(self.resolved.links_from(encoder_id))
        while queue:
            link = queue.popleft()
            target_id = link.edge.to_node
            input_name = link.edge.to_input_name
            target = self.graph[target_id]

            if target.class_type in PROMPT_SAMPLER_TYPES and input_name in ("positive", "negative"):
                prompt_type = PromptType(input_name)
                break

            if target_id in visited:
                continue
            visited.add(target_id)
            queue.extend(self._onward_links(target_id, input_name))

        self._prompt_types[encoder_id] = prompt_type
        return prompt_type

    def _onward_links(self, node_id: str, entered_through: str):
        """
        Links to follow after entering `node_id` through `entered_through`.

        Nodes with separate positive/negative outputs (ControlNetApplyAdvanced)
        only pass conditioning through the output of the same name.
        """
        schema = self.resolved.registry.get(self.graph[node_id].class_type)
        if schema is not None and entered_through in ("positive", "negative"):
            for index, descriptor in enumerate(schema.outputs):
                if descriptor.name == entered_through:
                    return self.resolved.links_from(node_id, index)
        return self.resolved.links_from(node_id)
