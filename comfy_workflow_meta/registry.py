"""
Comfy Workflow Meta - Node Type Registry
=========================================

Static schema table for ComfyUI node types: which inputs a node must carry,
which it may carry, and the ordered, typed outputs it exposes.

The built-in table is assembled once at import time and never mutated.
Custom node packs are described with an explicit extension call that returns
a new registry:

    from comfy_workflow_meta.registry import DEFAULT_REGISTRY, NodeTypeSchema, output

    registry = DEFAULT_REGISTRY.extend({
        "IPAdapterApply": NodeTypeSchema(
            category="ipadapter",
            required_inputs=frozenset({"ipadapter", "model", "image"}),
            outputs=(output("MODEL"),),
        ),
    })
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .exceptions import NodeTypeRegistrationError

__all__ = [
    "OutputDescriptor",
    "NodeTypeSchema",
    "NodeTypeRegistry",
    "DEFAULT_REGISTRY",
    "UNKNOWN_OUTPUT",
    "output",
    # Node families
    "SAMPLER_TYPES",
    "PROMPT_SAMPLER_TYPES",
    "TEXT_ENCODER_TYPES",
    "MODEL_LOADER_TYPES",
    "DECODER_TYPES",
]


@dataclass(frozen=True)
class OutputDescriptor:
    """One output slot of a node type."""

    name: str
    type: str


UNKNOWN_OUTPUT = OutputDescriptor(name="unknown", type="unknown")


def output(type_name: str, name: str | None = None) -> OutputDescriptor:
    """Shorthand for an output whose name defaults to its type."""
    return OutputDescriptor(name=name or type_name, type=type_name)


@dataclass(frozen=True)
class NodeTypeSchema:
    """Schema of one node type."""

    category: str
    required_inputs: frozenset[str] = frozenset()
    optional_inputs: frozenset[str] = frozenset()
    outputs: tuple[OutputDescriptor, ...] = ()
    input_types: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    defaults: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    description: str = ""
    builtin: bool = False

    def output_at(self, index: Any) -> OutputDescriptor | None:
        if isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(self.outputs):
            return self.outputs[index]
        return None

    def is_required(self, input_name: str) -> bool:
        return input_name in self.required_inputs


def _builtin(
    category: str,
    required: dict[str, str],
    outputs: tuple[OutputDescriptor, ...] = (),
    *,
    optional: dict[str, str] | None = None,
    defaults: dict[str, Any] | None = None,
    description: str = "",
) -> NodeTypeSchema:
    """Build a core-node schema from {input_name: type} tables."""
    optional = optional or {}
    return NodeTypeSchema(
        category=category,
        required_inputs=frozenset(required),
        optional_inputs=frozenset(optional),
        outputs=outputs,
        input_types=MappingProxyType({**required, **optional}),
        defaults=MappingProxyType(defaults or {}),
        description=description,
        builtin=True,
    )


_MODEL_CLIP_VAE = (output("MODEL"), output("CLIP"), output("VAE"))

_BUILTIN_SCHEMAS: dict[str, NodeTypeSchema] = {
    # Loaders
    "CheckpointLoaderSimple": _builtin(
        "loaders",
        {"ckpt_name": "string"},
        _MODEL_CLIP_VAE,
        description="Loads model checkpoint",
    ),
    "CheckpointLoader": _builtin(
        "loaders",
        {"config_name": "string", "ckpt_name": "string"},
        _MODEL_CLIP_VAE,
        description="Loads model checkpoint with an explicit config",
    ),
    "VAELoader": _builtin(
        "loaders", {"vae_name": "string"}, (output("VAE"),), description="Loads a standalone VAE"
    ),
    "LoraLoader": _builtin(
        "loaders",
        {
            "model": "MODEL",
            "clip": "CLIP",
            "lora_name": "string",
            "strength_model": "float",
            "strength_clip": "float",
        },
        (output("MODEL"), output("CLIP")),
        defaults={"strength_model": 1.0, "strength_clip": 1.0},
        description="Loads and applies LoRA",
    ),
    "LoraLoaderModelOnly": _builtin(
        "loaders",
        {"model": "MODEL", "lora_name": "string", "strength_model": "float"},
        (output("MODEL"),),
        defaults={"strength_model": 1.0},
        description="Applies a LoRA to the diffusion model only",
    ),
    "ControlNetLoader": _builtin(
        "loaders",
        {"control_net_name": "string"},
        (output("CONTROL_NET"),),
        description="Loads ControlNet model",
    ),
    "UpscaleModelLoader": _builtin(
        "loaders",
        {"model_name": "string"},
        (output("UPSCALE_MODEL"),),
        description="Loads an upscale model (ESRGAN and friends)",
    ),
    # Conditioning
    "CLIPTextEncode": _builtin(
        "conditioning",
        {"text": "string", "clip": "CLIP"},
        (output("CONDITIONING"),),
        description="Encodes text prompts using CLIP",
    ),
    "CLIPSetLastLayer": _builtin(
        "conditioning",
        {"clip": "CLIP", "stop_at_clip_layer": "int"},
        (output("CLIP"),),
        defaults={"stop_at_clip_layer": -1},
        description="Skips the last CLIP layers (clip skip)",
    ),
    "ControlNetApply": _builtin(
        "conditioning",
        {
            "conditioning": "CONDITIONING",
            "control_net": "CONTROL_NET",
            "image": "IMAGE",
            "strength": "float",
        },
        (output("CONDITIONING"),),
        defaults={"strength": 1.0},
        description="Applies ControlNet conditioning",
    ),
    "ControlNetApplyAdvanced": _builtin(
        "conditioning",
        {
            "positive": "CONDITIONING",
            "negative": "CONDITIONING",
            "control_net": "CONTROL_NET",
            "image": "IMAGE",
            "strength": "float",
            "start_percent": "float",
            "end_percent": "float",
        },
        (output("CONDITIONING", "positive"), output("CONDITIONING", "negative")),
        defaults={"strength": 1.0, "start_percent": 0.0, "end_percent": 1.0},
        description="Applies ControlNet to both conditionings over a step range",
    ),
    # Sampling
    "KSampler": _builtin(
        "sampling",
        {
            "model": "MODEL",
            "positive": "CONDITIONING",
            "negative": "CONDITIONING",
            "latent_image": "LATENT",
            "seed": "int",
            "steps": "int",
            "cfg": "float",
            "sampler_name": "string",
            "scheduler": "string",
        },
        (output("LATENT"),),
        optional={"denoise": "float"},
        defaults={"seed": 0, "steps": 20, "cfg": 8.0, "denoise": 1.0},
        description="Main sampling node for image generation",
    ),
    "KSamplerAdvanced": _builtin(
        "sampling",
        {
            "model": "MODEL",
            "add_noise": "string",
            "noise_seed": "int",
            "steps": "int",
            "cfg": "float",
            "sampler_name": "string",
            "scheduler": "string",
            "positive": "CONDITIONING",
            "negative": "CONDITIONING",
            "latent_image": "LATENT",
            "start_at_step": "int",
            "end_at_step": "int",
            "return_with_leftover_noise": "string",
        },
        (output("LATENT"),),
        defaults={"noise_seed": 0, "steps": 20, "cfg": 8.0, "start_at_step": 0},
        description="Sampler with explicit step range and noise control",
    ),
    # Latent
    "EmptyLatentImage": _builtin(
        "latent",
        {"width": "int", "height": "int", "batch_size": "int"},
        (output("LATENT"),),
        defaults={"width": 512, "height": 512, "batch_size": 1},
        description="Creates empty latent image",
    ),
    "VAEDecode": _builtin(
        "latent",
        {"samples": "LATENT", "vae": "VAE"},
        (output("IMAGE"),),
        description="Decodes latent samples to images",
    ),
    "VAEEncode": _builtin(
        "latent",
        {"pixels": "IMAGE", "vae": "VAE"},
        (output("LATENT"),),
        description="Encodes images to latent space",
    ),
    "VAEEncodeForInpaint": _builtin(
        "latent",
        {"pixels": "IMAGE", "vae": "VAE", "mask": "MASK", "grow_mask_by": "int"},
        (output("LATENT"),),
        defaults={"grow_mask_by": 6},
        description="Encodes an image and mask for inpainting",
    ),
    "LatentUpscale": _builtin(
        "latent",
        {
            "samples": "LATENT",
            "upscale_method": "string",
            "width": "int",
            "height": "int",
            "crop": "string",
        },
        (output("LATENT"),),
        description="Resizes latent samples to explicit dimensions",
    ),
    "LatentUpscaleBy": _builtin(
        "latent",
        {"samples": "LATENT", "upscale_method": "string", "scale_by": "float"},
        (output("LATENT"),),
        defaults={"scale_by": 1.5},
        description="Resizes latent samples by a factor",
    ),
    # Image
    "LoadImage": _builtin(
        "image",
        {"image": "string"},
        (output("IMAGE"), output("MASK")),
        description="Loads image from file",
    ),
    "SaveImage": _builtin(
        "image",
        {"images": "IMAGE"},
        optional={"filename_prefix": "string"},
        defaults={"filename_prefix": "ComfyUI"},
        description="Saves generated images",
    ),
    "PreviewImage": _builtin(
        "image", {"images": "IMAGE"}, description="Shows images without saving them"
    ),
    "ImageScale": _builtin(
        "image",
        {
            "image": "IMAGE",
            "upscale_method": "string",
            "width": "int",
            "height": "int",
            "crop": "string",
        },
        (output("IMAGE"),),
        description="Resizes an image to explicit dimensions",
    ),
    "ImageUpscaleWithModel": _builtin(
        "image",
        {"upscale_model": "UPSCALE_MODEL", "image": "IMAGE"},
        (output("IMAGE"),),
        description="Upscales an image with a loaded upscale model",
    ),
}


# =============================================================================
# NODE FAMILIES
# =============================================================================

# Built-in samplers: the sampler chain, step totals and range checks use these.
SAMPLER_TYPES: tuple[str, ...] = ("KSampler", "KSamplerAdvanced")

# Anything that consumes positive/negative conditioning while sampling.
PROMPT_SAMPLER_TYPES: frozenset[str] = frozenset(
    {
        "KSampler",
        "KSamplerAdvanced",
        "SamplerCustom",
        "SamplerCustomAdvanced",
        "SamplerDPMPP_2M",
        "SamplerDPMPP_SDE",
        "SamplerEuler",
        "SamplerEulerAncestral",
        "SamplerDDIM",
        "SamplerLMS",
        "SamplerDPM2",
        "SamplerDPM2Ancestral",
    }
)

TEXT_ENCODER_TYPES: tuple[str, ...] = ("CLIPTextEncode",)
MODEL_LOADER_TYPES: tuple[str, ...] = ("CheckpointLoaderSimple", "CheckpointLoader")
DECODER_TYPES: tuple[str, ...] = ("VAEDecode",)


# =============================================================================
# REGISTRY
# =============================================================================


class NodeTypeRegistry(Mapping):
    """
    Immutable mapping of class type -> NodeTypeSchema.

    Safe to share between threads: nothing mutates a registry after
    construction, extend() builds a new one.
    """

    __slots__ = ("_schemas",)

    def __init__(self, schemas: Mapping[str, NodeTypeSchema] | None = None):
        self._schemas = MappingProxyType(dict(schemas or {}))

    def __getitem__(self, class_type: str) -> NodeTypeSchema:
        return self._schemas[class_type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __len__(self) -> int:
        return len(self._schemas)

    def __repr__(self) -> str:
        return f"NodeTypeRegistry({len(self._schemas)} types)"

    def extend(
        self, schemas: Mapping[str, NodeTypeSchema], *, replace: bool = False
    ) -> "NodeTypeRegistry":
        """
        Return a new registry with `schemas` added.

        Raises:
            NodeTypeRegistrationError: empty or non-string class type, a value
                that is not a NodeTypeSchema, an input listed as both required
                and optional, or a name collision while replace is False
        """
        merged = dict(self._schemas)
        for class_type, schema in schemas.items():
            if not isinstance(class_type, str) or not class_type:
                raise NodeTypeRegistrationError(str(class_type), "class type must be a non-empty string")
            if not isinstance(schema, NodeTypeSchema):
                raise NodeTypeRegistrationError(class_type, "schema must be a NodeTypeSchema")
            overlap = schema.required_inputs & schema.optional_inputs
            if overlap:
                raise NodeTypeRegistrationError(
                    class_type, f"inputs both required and optional: {sorted(overlap)}"
                )
            if class_type in merged and not replace:
                raise NodeTypeRegistrationError(class_type, "already registered")
            merged[class_type] = schema
        return NodeTypeRegistry(merged)

    def output_descriptor(self, class_type: str, index: Any) -> OutputDescriptor:
        """Output at `index` of `class_type`, or UNKNOWN_OUTPUT when not resolvable."""
        schema = self._schemas.get(class_type)
        if schema is None:
            return UNKNOWN_OUTPUT
        return schema.output_at(index) or UNKNOWN_OUTPUT

    def is_required_input(self, class_type: str, input_name: str) -> bool:
        schema = self._schemas.get(class_type)
        return schema is not None and schema.is_required(input_name)

    def is_custom(self, class_type: str) -> bool:
        """True for anything that is not a core ComfyUI node."""
        schema = self._schemas.get(class_type)
        return schema is None or not schema.builtin

    def category(self, class_type: str) -> str:
        schema = self._schemas.get(class_type)
        return schema.category if schema else "Unknown"


DEFAULT_REGISTRY = NodeTypeRegistry(_BUILTIN_SCHEMAS)
