"""
Shared workflow builders for the comfy_workflow_meta tests.

Every fixture returns a fresh dict, so tests may mutate what they get.
"""

import pytest


def build_txt2img(ckpt_name: str = "model_xl.safetensors") -> dict:
    """A complete, warning-free text-to-image workflow in API format."""
    return {
        "4": {
            "class_type": "CheckpointLoaderSimple",
            "inputs": {"ckpt_name": ckpt_name},
            "_meta": {"title": "Load Checkpoint"},
        },
        "5": {
            "class_type": "EmptyLatentImage",
            "inputs": {"width": 1024, "height": 1024, "batch_size": 1},
        },
        "6": {
            "class_type": "CLIPTextEncode",
            "inputs": {"text": "a cat", "clip": ["4", 1]},
        },
        "7": {
            "class_type": "CLIPTextEncode",
            "inputs": {"text": "blurry, lowres", "clip": ["4", 1]},
        },
        "3": {
            "class_type": "KSampler",
            "inputs": {
                "seed": 42,
                "steps": 20,
                "cfg": 7.5,
                "sampler_name": "euler",
                "scheduler": "normal",
                "denoise": 1.0,
                "model": ["4", 0],
                "positive": ["6", 0],
                "negative": ["7", 0],
                "latent_image": ["5", 0],
            },
        },
        "8": {
            "class_type": "VAEDecode",
            "inputs": {"samples": ["3", 0], "vae": ["4", 2]},
        },
        "9": {
            "class_type": "SaveImage",
            "inputs": {"filename_prefix": "ComfyUI", "images": ["8", 0]},
        },
    }


def build_multi_sampler(count: int = 10, steps: int = 30) -> dict:
    """`count` KSamplers sharing one loader, prompt pair and latent."""
    workflow = {
        "1": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": "v1-5.safetensors"}},
        "2": {"class_type": "CLIPTextEncode", "inputs": {"text": "a castle", "clip": ["1", 1]}},
        "3": {"class_type": "CLIPTextEncode", "inputs": {"text": "ugly", "clip": ["1", 1]}},
        "4": {
            "class_type": "EmptyLatentImage",
            "inputs": {"width": 512, "height": 512, "batch_size": 1},
        },
    }
    for i in range(count):
        workflow[str(10 + i)] = {
            "class_type": "KSampler",
            "inputs": {
                "seed": i,
                "steps": steps,
                "cfg": 7.0,
                "sampler_name": "euler",
                "scheduler": "normal",
                "model": ["1", 0],
                "positive": ["2", 0],
                "negative": ["3", 0],
                "latent_image": ["4", 0],
            },
        }
    return workflow


def build_controlnet() -> dict:
    """txt2img with an advanced ControlNet between the prompts and the sampler."""
    workflow = build_txt2img("dreamshaper_8_pruned_fp16.safetensors")
    workflow["11"] = {"class_type": "LoadImage", "inputs": {"image": "pose.png"}}
    workflow["12"] = {
        "class_type": "CannyEdgePreprocessor",
        "inputs": {"image": ["11", 0], "low_threshold": 100, "high_threshold": 200},
    }
    workflow["13"] = {
        "class_type": "ControlNetLoader",
        "inputs": {"control_net_name": "control_v11p_sd15_canny.pth"},
    }
    workflow["14"] = {
        "class_type": "ControlNetApplyAdvanced",
        "inputs": {
            "positive": ["6", 0],
            "negative": ["7", 0],
            "control_net": ["13", 0],
            "image": ["12", 0],
            "strength": 0.8,
            "start_percent": 0.0,
            "end_percent": 0.6,
        },
    }
    workflow["3"]["inputs"]["positive"] = ["14", 0]
    workflow["3"]["inputs"]["negative"] = ["14", 1]
    return workflow


@pytest.fixture
def txt2img_workflow():
    return build_txt2img()


@pytest.fixture
def multi_sampler_workflow():
    return build_multi_sampler()


@pytest.fixture
def controlnet_workflow():
    return build_controlnet()


@pytest.fixture
def graph_of():
    """Sanitize a raw workflow and return its graph."""
    from comfy_workflow_meta.sanitizer import sanitize_workflow

    def _graph_of(raw):
        return sanitize_workflow(raw).graph

    return _graph_of


@pytest.fixture
def resolved_of():
    """Sanitize and resolve a raw workflow."""
    from comfy_workflow_meta.resolver import resolve_connections
    from comfy_workflow_meta.sanitizer import sanitize_workflow

    def _resolved_of(raw, registry=None):
        return resolve_connections(sanitize_workflow(raw).graph, registry)

    return _resolved_of


@pytest.fixture
def make_multi_sampler():
    """The build_multi_sampler factory, for tests that vary count or steps."""
    return build_multi_sampler
