"""
Tests for comfy_workflow_meta/assembler.py

Covers:
- End-to-end snapshots for the reference workflows
- Degraded snapshots for invalid input
- Idempotence, order independence and edge round trip
- Node details, serialisation and post-conditions
"""

import re

import pytest


@pytest.fixture
def assembler():
    from comfy_workflow_meta.assembler import MetadataAssembler

    return MetadataAssembler()


def _stable(snapshot):
    data = snapshot.to_dict()
    data.pop("timestamp")
    data["workflow"].pop("id")
    return data


class TestReferenceWorkflows:
    """Test the snapshot of known workflows."""

    def test_sdxl_txt2img(self, assembler, txt2img_workflow):
        """An SDXL checkpoint feeding one KSampler."""
        snapshot = assembler.parse(txt2img_workflow)

        assert snapshot.workflow.architecture.value == "SDXL"
        assert snapshot.generation.total_steps == 20
        assert len(snapshot.generation.sampler_chain) == 1
        assert snapshot.generation.sampler_chain[0].cfg == 7.5
        assert snapshot.workflow.node_count == 7
        assert snapshot.workflow.connection_count == 9
        assert snapshot.workflow.complexity.value == "Simple"
        assert snapshot.workflow.estimated_vram == "~6GB"
        assert snapshot.workflow.name == "Load Checkpoint"
        assert snapshot.validation.is_valid is True

    def test_single_positive_prompt(self, assembler):
        """A text encoder feeding a sampler's positive input is a positive prompt."""
        snapshot = assembler.parse(
            {
                "5": {"class_type": "CLIPTextEncode", "inputs": {"text": "a cat"}},
                "3": {"class_type": "KSampler", "inputs": {"positive": ["5", 0]}},
            }
        )

        (prompt,) = snapshot.generation.prompt_embeddings
        assert prompt.type.value == "positive"
        assert prompt.text == "a cat"

    def test_dangling_reference_snapshot(self, assembler, txt2img_workflow):
        """A missing source yields one connection error and still a full snapshot."""
        txt2img_workflow["8"]["inputs"]["vae"] = ["99", 0]
        snapshot = assembler.parse(txt2img_workflow)

        assert snapshot.validation.is_valid is False
        (error,) = snapshot.validation.errors
        assert error.kind.value == "connection"
        assert error.node_id == "8"
        assert snapshot.workflow.architecture.value == "SDXL"

    def test_odd_width_snapshot(self, assembler, txt2img_workflow):
        """width=500 is a single warning."""
        txt2img_workflow["5"]["inputs"]["width"] = 500
        snapshot = assembler.parse(txt2img_workflow)

        assert snapshot.validation.is_valid is True
        assert len(snapshot.validation.warnings) == 1
        assert snapshot.generation.width == 500

    def test_ten_samplers(self, assembler, multi_sampler_workflow):
        """Ten 30-step samplers total 300 steps and are at least Moderate."""
        snapshot = assembler.parse(multi_sampler_workflow)

        assert snapshot.generation.total_steps == 300
        assert snapshot.workflow.complexity.value in ("Moderate", "Complex", "Expert")

    def test_controlnet_workflow(self, assembler, controlnet_workflow):
        """ControlNet workflows report the model, tag and VRAM add-on."""
        snapshot = assembler.parse(controlnet_workflow)

        assert snapshot.workflow.features.has_controlnet is True
        assert snapshot.workflow.tags == ("controlnet",)
        assert snapshot.workflow.estimated_vram == "~6GB"
        assert snapshot.models.controlnets[0].model == "control_v11p_sd15_canny.pth"
        assert snapshot.generation.negative_prompt == "blurry, lowres"
        assert snapshot.workflow.custom_node_count == 1


class TestDegradedInput:
    """Test that content problems never raise."""

    def test_empty_graph(self, assembler):
        """An empty graph gives an invalid, mostly empty snapshot."""
        snapshot = assembler.parse({})

        assert snapshot.validation.is_valid is False
        assert len(snapshot.validation.errors) == 1
        assert snapshot.validation.node_count == 0
        assert snapshot.workflow.node_count == 0
        assert snapshot.workflow.architecture.value == "Unknown"
        assert snapshot.generation.sampler_chain == ()
        assert snapshot.workflow.name is None

    def test_non_object(self, assembler):
        """A JSON array parses to a snapshot with a structure error."""
        snapshot = assembler.parse([1, 2, 3])

        assert snapshot.validation.errors[0].message == "Workflow must be a JSON object"
        assert snapshot.nodes == ()

    def test_cycle(self, assembler):
        """Cyclic graphs are reported, and cyclic nodes have no execution order."""
        snapshot = assembler.parse(
            {
                "1": {"class_type": "X", "inputs": {"a": ["2", 0]}},
                "2": {"class_type": "X", "inputs": {"a": ["1", 0]}},
            }
        )

        assert snapshot.validation.is_valid is False
        assert all(node.execution_order is None for node in snapshot.nodes)

    def test_non_ascii_digit_id(self, assembler):
        """A node id made of a Unicode digit still produces a snapshot."""
        snapshot = assembler.parse({"²": {"class_type": "VAEDecode", "inputs": {}}})

        assert snapshot.workflow.node_count == 1
        assert snapshot.nodes[0].execution_order == 0

    def test_oversized_integer_literals(self, assembler, txt2img_workflow):
        """Integers beyond float range fall back to defaults instead of raising."""
        huge = 10**400
        txt2img_workflow["3"]["inputs"]["steps"] = huge
        txt2img_workflow["5"]["inputs"]["batch_size"] = huge

        snapshot = assembler.parse(txt2img_workflow)

        assert snapshot.generation.sampler_chain[0].steps == 20
        assert snapshot.generation.total_steps == 0
        assert snapshot.generation.batch_size == 1
        assert snapshot.workflow.features.has_batch_processing is False
        assert next(n for n in snapshot.nodes if n.id == "3").estimated_time == 10.0

    def test_oversized_integer_from_json_text(self, assembler):
        """The same holds for a 400-digit literal read from JSON text."""
        text = '{"3": {"class_type": "KSampler", "inputs": {"steps": %s}}}' % ("9" * 400)

        snapshot = assembler.parse_json(text)

        assert snapshot.generation.sampler_chain[0].steps == 20

    def test_ui_export_wrapper(self, assembler, txt2img_workflow):
        """{nodes, links} exports are unwrapped."""
        snapshot = assembler.parse({"nodes": txt2img_workflow, "links": []})
        assert snapshot.workflow.node_count == 7


class TestProperties:
    """Test snapshot-wide properties."""

    def test_idempotent(self, assembler, controlnet_workflow):
        """Two parses differ only in timestamp and id."""
        assert _stable(assembler.parse(controlnet_workflow)) == _stable(assembler.parse(controlnet_workflow))

    def test_fingerprint_part_of_id_is_stable(self, assembler, txt2img_workflow):
        """The id ends in a content fingerprint."""
        first = assembler.parse(txt2img_workflow).workflow.id
        second = assembler.parse(txt2img_workflow).workflow.id

        assert re.match(r"^workflow_\d+_[0-9a-f]{8}$", first)
        assert first.rsplit("_", 1)[1] == second.rsplit("_", 1)[1]

    def test_order_independent(self, assembler, controlnet_workflow):
        """Permuting node entries keeps counts, features and the edge set."""
        forward = assembler.parse(controlnet_workflow)
        backward = assembler.parse(dict(reversed(list(controlnet_workflow.items()))))

        assert forward.workflow.node_count == backward.workflow.node_count
        assert forward.workflow.connection_count == backward.workflow.connection_count
        assert forward.workflow.features == backward.workflow.features
        assert set(forward.relationships) == set(backward.relationships)

    def test_edges_round_trip(self, assembler, controlnet_workflow):
        """Each edge matches exactly one connection in its destination's inputs."""
        snapshot = assembler.parse(controlnet_workflow)

        for edge in snapshot.relationships:
            inputs = controlnet_workflow[edge.to_node]["inputs"]
            matches = [
                name
                for name, value in inputs.items()
                if isinstance(value, list) and len(value) == 2 and str(value[0]) == edge.from_node
                and name == edge.to_input_name
            ]
            assert len(matches) == 1

    def test_frozen(self, assembler, txt2img_workflow):
        """Snapshots cannot be modified."""
        from pydantic import ValidationError

        snapshot = assembler.parse(txt2img_workflow)
        with pytest.raises(ValidationError):
            snapshot.version = "2.0"

    def test_timestamp_in_milliseconds(self, assembler, txt2img_workflow):
        """timestamp is epoch milliseconds."""
        assert assembler.parse(txt2img_workflow).timestamp > 1_600_000_000_000


class TestNodeDetails:
    """Test per-node detail records."""

    def test_inputs(self, assembler, txt2img_workflow):
        """Inputs carry type, value, connection and default."""
        snapshot = assembler.parse(txt2img_workflow)
        sampler = next(node for node in snapshot.nodes if node.id == "3")
        inputs = {detail.name: detail for detail in sampler.inputs}

        assert inputs["positive"].is_connected is True
        assert inputs["positive"].connected_from == "6"
        assert inputs["positive"].connected_output == 0
        assert inputs["positive"].type == "CONDITIONING"
        assert inputs["positive"].value is None
        assert inputs["steps"].value == 20
        assert inputs["steps"].default_value == 20
        assert inputs["steps"].is_connected is False

    def test_outputs(self, assembler, txt2img_workflow):
        """Outputs list the nodes they feed."""
        snapshot = assembler.parse(txt2img_workflow)
        loader = next(node for node in snapshot.nodes if node.id == "4")

        assert [(o.name, o.connected_to) for o in loader.outputs] == [
            ("MODEL", ("3",)),
            ("CLIP", ("6", "7")),
            ("VAE", ("8",)),
        ]
        assert loader.execution_order == 0
        assert loader.category == "loaders"
        assert loader.memory_usage == 2000

    def test_custom_node(self, assembler, controlnet_workflow):
        """Unregistered nodes are custom with no outputs."""
        snapshot = assembler.parse(controlnet_workflow)
        preprocessor = next(node for node in snapshot.nodes if node.id == "12")

        assert preprocessor.is_custom is True
        assert preprocessor.category == "Unknown"
        assert preprocessor.outputs == ()

    def test_custom_registry(self, controlnet_workflow):
        """A registered schema gives custom nodes their outputs."""
        from comfy_workflow_meta.assembler import parse_workflow_metadata
        from comfy_workflow_meta.registry import DEFAULT_REGISTRY, NodeTypeSchema, output

        registry = DEFAULT_REGISTRY.extend(
            {"CannyEdgePreprocessor": NodeTypeSchema(category="preprocessors", outputs=(output("IMAGE"),))}
        )
        snapshot = parse_workflow_metadata(controlnet_workflow, registry)
        preprocessor = next(node for node in snapshot.nodes if node.id == "12")

        assert preprocessor.category == "preprocessors"
        assert preprocessor.outputs[0].connected_to == ("14",)


class TestSerialisation:
    """Test to_dict output."""

    def test_camel_case_keys(self, assembler, txt2img_workflow):
        """Keys use camelCase with the documented acronyms."""
        data = assembler.parse(txt2img_workflow).to_dict()

        assert data["workflow"]["nodeCount"] == 7
        assert data["workflow"]["estimatedVRAM"] == "~6GB"
        assert "hasImg2Img" in data["workflow"]["features"]
        assert "hasIPAdapter" in data["workflow"]["features"]
        assert data["generation"]["totalSteps"] == 20
        assert data["models"]["checkpoint"]["baseModel"] == "SDXL"
        assert data["relationships"][0]["fromNode"] == "4"
        assert data["validation"]["isValid"] is True

    def test_json_serialisable(self, assembler, controlnet_workflow):
        """to_dict() output is plain JSON."""
        import json

        json.dumps(assembler.parse(controlnet_workflow).to_dict())


class TestErrors:
    """Test the two raising paths."""

    def test_parse_json_syntax_error(self, assembler):
        """Unparseable text raises WorkflowSyntaxError with its position."""
        from comfy_workflow_meta.exceptions import WorkflowSyntaxError

        with pytest.raises(WorkflowSyntaxError) as exc_info:
            assembler.parse_json('{"1": ')

        assert exc_info.value.details["line"] == 1
        assert "column" in exc_info.value.details

    def test_parse_json_valid(self, assembler, txt2img_workflow):
        """Valid text parses like the dict."""
        import json

        assert assembler.parse_json(json.dumps(txt2img_workflow)).workflow.node_count == 7

    def test_postcondition_failure(self, txt2img_workflow):
        """A snapshot without a version is an internal error."""
        from comfy_workflow_meta.assembler import MetadataAssembler
        from comfy_workflow_meta.config import AnalysisConfig
        from comfy_workflow_meta.exceptions import SnapshotAssemblyError

        assembler = MetadataAssembler(config=AnalysisConfig(snapshot_version=""))
        with pytest.raises(SnapshotAssemblyError) as exc_info:
            assembler.parse(txt2img_workflow)

        assert exc_info.value.details["missing_fields"] == ["version"]

    def test_try_parse_json(self, assembler, txt2img_workflow):
        """try_parse_json returns package errors in a Result instead of raising."""
        import json

        from comfy_workflow_meta.exceptions import WorkflowSyntaxError

        failed = assembler.try_parse_json('{"1": ')
        assert failed.failed
        assert isinstance(failed.error, WorkflowSyntaxError)
        assert failed.value_or(None) is None

        parsed = assembler.try_parse_json(json.dumps(txt2img_workflow))
        assert parsed.ok
        assert parsed.value.workflow.node_count == 7

    def test_try_parse_json_postcondition(self, txt2img_workflow):
        """Post-condition failures are captured too."""
        import json

        from comfy_workflow_meta.assembler import MetadataAssembler
        from comfy_workflow_meta.config import AnalysisConfig
        from comfy_workflow_meta.exceptions import SnapshotAssemblyError

        assembler = MetadataAssembler(config=AnalysisConfig(snapshot_version=""))
        result = assembler.try_parse_json(json.dumps(txt2img_workflow))

        assert isinstance(result.error, SnapshotAssemblyError)
