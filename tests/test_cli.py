"""
Tests for comfy_workflow_meta/__main__.py

Covers:
- Snapshot output
- --validate exit codes
- Syntax and file errors
- stdin input
"""

import io
import json

import pytest


@pytest.fixture
def workflow_file(tmp_path, txt2img_workflow):
    path = tmp_path / "workflow.json"
    path.write_text(json.dumps(txt2img_workflow), encoding="utf-8")
    return path


class TestCli:
    """Test main()."""

    def test_prints_snapshot(self, workflow_file, capsys):
        """Default mode prints the snapshot JSON."""
        from comfy_workflow_meta.__main__ import main

        assert main([str(workflow_file)]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["workflow"]["architecture"] == "SDXL"
        assert data["generation"]["totalSteps"] == 20

    def test_validate_valid(self, workflow_file, capsys):
        """--validate exits 0 for a valid workflow."""
        from comfy_workflow_meta.__main__ import main

        assert main([str(workflow_file), "--validate"]) == 0
        assert json.loads(capsys.readouterr().out)["isValid"] is True

    def test_validate_invalid(self, tmp_path, capsys):
        """--validate exits 1 for an invalid workflow."""
        from comfy_workflow_meta.__main__ import main

        path = tmp_path / "empty.json"
        path.write_text("{}", encoding="utf-8")

        assert main([str(path), "--validate"]) == 1
        assert json.loads(capsys.readouterr().out)["errors"][0]["message"] == "Workflow cannot be empty"

    def test_syntax_error(self, tmp_path, capsys):
        """Unparseable JSON prints an error with suggestions and exits 1."""
        from comfy_workflow_meta.__main__ import main

        path = tmp_path / "broken.json"
        path.write_text('{"1": ', encoding="utf-8")

        assert main([str(path)]) == 1
        err = capsys.readouterr().err
        assert err.startswith("Error:")
        assert "API Format" in err

    def test_missing_file(self, tmp_path, capsys):
        """An unreadable file exits 2."""
        from comfy_workflow_meta.__main__ import main

        assert main([str(tmp_path / "nope.json")]) == 2
        assert "cannot read" in capsys.readouterr().err

    def test_stdin(self, monkeypatch, capsys, txt2img_workflow):
        """- reads the workflow from stdin."""
        from comfy_workflow_meta.__main__ import main

        monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(txt2img_workflow)))

        assert main(["-", "--indent", "0"]) == 0
        assert json.loads(capsys.readouterr().out)["workflow"]["nodeCount"] == 7

    def test_version(self, capsys):
        """--version prints the package version."""
        from comfy_workflow_meta.__main__ import main

        assert main(["--version"]) == 0
        assert capsys.readouterr().out.strip() == "comfy-workflow-meta v1.2.0"

    def test_workflow_required(self):
        """Without a workflow argument argparse exits with status 2."""
        from comfy_workflow_meta.__main__ import main

        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2
