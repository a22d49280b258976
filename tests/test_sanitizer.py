"""
Tests for comfy_workflow_meta/sanitizer.py

Covers:
- Dropping malformed entries with reasons
- Normalizing missing inputs
- Deciding ConnectionRef vs LiteralValue once
- UI export wrapper unwrapping
"""


class TestDroppedEntries:
    """Test removal of entries that cannot become nodes."""

    def test_non_object_entry_dropped(self):
        """Entries that are not objects are dropped with a reason."""
        from comfy_workflow_meta.sanitizer import REASON_NOT_OBJECT, sanitize_workflow

        result = sanitize_workflow({"1": "not a node", "2": {"class_type": "SaveImage", "inputs": {}}})

        assert list(result.graph) == ["2"]
        assert result.dropped[0].node_id == "1"
        assert result.dropped[0].reason == REASON_NOT_OBJECT

    def test_missing_class_type_dropped(self):
        """Entries without a non-empty string class_type are dropped."""
        from comfy_workflow_meta.sanitizer import REASON_MISSING_CLASS_TYPE, sanitize_workflow

        result = sanitize_workflow(
            {
                "1": {"inputs": {}},
                "2": {"class_type": "", "inputs": {}},
                "3": {"class_type": 7, "inputs": {}},
            }
        )

        assert len(result.graph) == 0
        assert [d.reason for d in result.dropped] == [REASON_MISSING_CLASS_TYPE] * 3
        assert result.raw_count == 3

    def test_drops_produce_warnings(self):
        """Every dropped entry is reported as a warning message."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        result = sanitize_workflow({"1": None, "2": {"inputs": {}}})

        assert len(result.warnings) == 2
        assert "1" in result.warnings[0]
        assert "class_type" in result.warnings[1]

    def test_non_mapping_input(self):
        """A list or scalar yields an empty graph flagged as non-mapping."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        for raw in ([1, 2], "text", 42, None):
            result = sanitize_workflow(raw)
            assert result.is_mapping is False
            assert len(result.graph) == 0


class TestInputNormalization:
    """Test normalization of node inputs."""

    def test_missing_inputs_become_empty(self):
        """A node without inputs is kept with an empty mapping and flagged."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        result = sanitize_workflow({"1": {"class_type": "SaveImage"}})
        node = result.graph["1"]

        assert dict(node.inputs) == {}
        assert node.had_inputs is False
        assert len(result.warnings) == 1

    def test_non_mapping_inputs_become_empty(self):
        """inputs that is not an object is treated like a missing one."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        node = sanitize_workflow({"1": {"class_type": "SaveImage", "inputs": [1, 2]}}).graph["1"]
        assert node.had_inputs is False

    def test_connection_decided_once(self):
        """Two-element lists become ConnectionRefs with a string source id."""
        from comfy_workflow_meta.graph import ConnectionRef, LiteralValue
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        node = sanitize_workflow(
            {
                "1": {
                    "class_type": "Custom",
                    "inputs": {"a": [4, 0], "b": "text", "c": [1, 2, 3], "d": 5},
                }
            }
        ).graph["1"]

        assert node.inputs["a"] == ConnectionRef(source_id="4", output_index=0)
        assert node.inputs["b"] == LiteralValue("text")
        assert isinstance(node.inputs["c"], LiteralValue)
        assert node.literal("d") == 5
        assert node.literal("a") is None

    def test_output_index_kept_as_given(self):
        """The raw output index is preserved for the validator to judge."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        node = sanitize_workflow({"1": {"class_type": "X", "inputs": {"a": ["2", "zero"]}}}).graph["1"]
        assert node.inputs["a"].output_index == "zero"

    def test_literals_are_copied(self):
        """Mutating the raw input afterwards does not change the graph."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        raw = {"1": {"class_type": "X", "inputs": {"values": [1, 2, 3]}}}
        graph = sanitize_workflow(raw).graph
        raw["1"]["inputs"]["values"].append(4)

        assert graph["1"].literal("values") == [1, 2, 3]

    def test_malformed_output_index_is_copied(self):
        """A mutable output index is not shared with the raw input."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        raw = {"1": {"class_type": "X", "inputs": {"a": ["2", [0]]}}}
        graph = sanitize_workflow(raw).graph
        raw["1"]["inputs"]["a"][1].append(1)

        assert graph["1"].inputs["a"].output_index == [0]

    def test_meta_fields(self):
        """Title, position, size and color come from _meta."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        node = sanitize_workflow(
            {
                "1": {
                    "class_type": "SaveImage",
                    "inputs": {},
                    "_meta": {"title": "Save", "position": {"x": 1, "y": 2}, "color": "#fff"},
                }
            }
        ).graph["1"]

        assert node.title == "Save"
        assert node.position == {"x": 1, "y": 2}
        assert node.color == "#fff"
        assert node.size is None


class TestWorkflowShapes:
    """Test accepted top-level shapes."""

    def test_ui_export_wrapper_unwrapped(self):
        """{nodes, links} exports are unwrapped to their node mapping."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        raw = {"nodes": {"1": {"class_type": "SaveImage", "inputs": {}}}, "links": []}
        result = sanitize_workflow(raw)

        assert list(result.graph) == ["1"]
        assert result.dropped == ()

    def test_integer_keys_become_strings(self):
        """Node ids are always strings."""
        from comfy_workflow_meta.sanitizer import sanitize_workflow

        graph = sanitize_workflow({1: {"class_type": "SaveImage", "inputs": {}}}).graph
        assert "1" in graph

    def test_graph_is_read_only(self):
        """The sanitized graph cannot be mutated."""
        import pytest

        from comfy_workflow_meta.sanitizer import sanitize_workflow

        graph = sanitize_workflow({"1": {"class_type": "SaveImage", "inputs": {"a": 1}}}).graph
        with pytest.raises(TypeError):
            graph["2"] = graph["1"]
        with pytest.raises(TypeError):
            graph["1"].inputs["b"] = 2
