"""Tests for the ArchGraph CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from archgraph_cli import __version__, config_manager
from archgraph_cli.cli import app
from archgraph_cli.storage import ArchitectureStore

from conftest import make_graph, make_step

runner = CliRunner()


@pytest.fixture
def saved_graph(workspace: Path, valid_payload):
    graph = make_graph(valid_payload)
    ArchitectureStore(workspace).save_cluster_graph(graph)
    return graph


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"v{__version__}" in result.stdout


class TestAnalyze:
    """ag analyze and the inventory cache commands."""

    def test_json_output_and_cache(self, workspace: Path):
        result = runner.invoke(app, ["analyze", str(workspace), "--json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["metadata"]["fileCount"] == 7

        info = runner.invoke(app, ["inventory", "info", str(workspace)])
        assert json.loads(info.stdout)["fileCount"] == 7

    def test_summary_line(self, workspace: Path):
        result = runner.invoke(app, ["analyze", str(workspace), "--no-cache"])
        assert result.exit_code == 0, result.output
        assert "Inventory:" in result.stdout
        assert "7 files, 6 dependencies" in result.stdout

    def test_invalidate(self, workspace: Path):
        runner.invoke(app, ["analyze", str(workspace)])
        first = runner.invoke(app, ["inventory", "invalidate", str(workspace)])
        second = runner.invoke(app, ["inventory", "invalidate", str(workspace)])
        assert "Inventory cache invalidated." in first.stdout
        assert "No cached inventory." in second.stdout

    def test_nothing_to_analyze(self, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(app, ["analyze", str(empty)])
        assert result.exit_code == 1
        assert "No source files found" in result.output

    def test_explicit_extensions_skip_stale_cache(self, workspace: Path):
        """A scan with --ext is not answered from a cache built with other options."""
        (workspace / "tool.py").write_text("def run():\n    return 1\n", encoding="utf-8")
        runner.invoke(app, ["analyze", str(workspace)])

        result = runner.invoke(app, ["analyze", str(workspace), "--ext", ".py", "--json"])
        assert result.exit_code == 0, result.output
        assert [f["path"] for f in json.loads(result.stdout)["files"]] == ["tool.py"]

        cached = runner.invoke(app, ["analyze", str(workspace), "--json"])
        assert json.loads(cached.stdout)["metadata"]["fileCount"] == 1

    def test_unsupported_extension_rejected(self, workspace: Path):
        result = runner.invoke(app, ["analyze", str(workspace), "--ext", ".ts", "--ext", ".rb"])
        assert result.exit_code == 1
        assert "Unsupported extension(s): .rb" in result.output
        assert not (workspace / ".archgraph").exists()

    def test_generate_without_llm_fails_cleanly(self, workspace: Path):
        result = runner.invoke(app, ["generate", str(workspace)])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestDiagramsAndTraces:
    """Stored document commands."""

    def test_empty_listings(self, workspace: Path):
        assert "No diagrams saved yet." in runner.invoke(app, ["diagrams", "list", str(workspace)]).stdout
        assert "No traces saved yet." in runner.invoke(app, ["traces", "list", str(workspace)]).stdout

    def test_show_and_delete_diagram(self, workspace: Path, saved_graph):
        shown = runner.invoke(app, ["diagrams", "show", "arch-1", str(workspace)])
        assert shown.exit_code == 0
        assert len(json.loads(shown.stdout)["clusters"]) == 5

        deleted = runner.invoke(app, ["diagrams", "delete", "arch-1", str(workspace)])
        assert "Deleted diagram 'arch-1'." in deleted.stdout
        missing = runner.invoke(app, ["diagrams", "show", "arch-1", str(workspace)])
        assert missing.exit_code == 1
        assert "Diagram not found: arch-1" in missing.output

    def test_corrupt_diagram_fails_cleanly(self, workspace: Path, saved_graph):
        clusters = ArchitectureStore(workspace).root / "clusters"
        (clusters / "arch-bad.json").write_text('{"id": "arch-bad", "clusters": ["oops"]}', encoding="utf-8")

        listed = runner.invoke(app, ["diagrams", "list", str(workspace)])
        assert listed.exit_code == 0, listed.output
        assert "arch-bad" not in listed.stdout

        shown = runner.invoke(app, ["diagrams", "show", "arch-bad", str(workspace)])
        assert shown.exit_code == 1
        assert "Diagram arch-bad is corrupt" in shown.output

    def test_trace_round_trip(self, workspace: Path, saved_graph, tmp_path: Path):
        steps_file = tmp_path / "steps.json"
        steps_file.write_text(json.dumps([
            make_step(1, "http-api", "user-service"),
            make_step(2, "user-service"),
        ]), encoding="utf-8")

        result = runner.invoke(
            app, ["trace", str(workspace), "-d", "arch-1", "-e", "POST /users", "--steps", str(steps_file)],
        )
        assert result.exit_code == 0, result.output
        assert "2 steps, 1 animated edges" in result.stdout

        trace_id = ArchitectureStore(workspace).list_traces()[0]["id"]
        shown = runner.invoke(app, ["traces", "show", trace_id, str(workspace), "--check"])
        payload = json.loads(shown.stdout)
        assert payload["trace"]["entryPoint"] == "POST /users"
        assert payload["validation"]["valid"] is True

    def test_trace_with_unknown_component(self, workspace: Path, saved_graph, tmp_path: Path):
        steps_file = tmp_path / "steps.json"
        steps_file.write_text(json.dumps([make_step(1, "billing")]), encoding="utf-8")

        result = runner.invoke(
            app, ["trace", str(workspace), "-d", "arch-1", "-e", "x", "--steps", str(steps_file)],
        )
        assert result.exit_code == 1
        assert "Invalid componentId(s): billing" in result.output
        assert "  - http-api" in result.output


class TestLLMConfig:
    """set-llm and show-llm."""

    def test_set_and_show(self):
        result = runner.invoke(app, ["set-llm", "Anthropic", "-k", "sk-ant-1234567890"])
        assert result.exit_code == 0
        assert "LLM set to anthropic" in result.stdout
        assert config_manager.load_config()["provider"] == "anthropic"

        shown = runner.invoke(app, ["show-llm"])
        assert "Provider  anthropic" in shown.stdout
        assert "API Key   sk-a************" in shown.stdout
        assert "1234567890" not in shown.stdout

    @pytest.mark.parametrize("key", ["xq9", "gsk-1234"], ids=["three-chars", "eight-chars"])
    def test_short_key_is_fully_masked(self, key):
        """Keys too short to keep a prefix are never echoed back."""
        runner.invoke(app, ["set-llm", "groq", "-k", key])
        shown = runner.invoke(app, ["show-llm"])
        assert "API Key   ********\n" in shown.stdout
        assert key not in shown.stdout

    def test_unknown_provider(self):
        result = runner.invoke(app, ["set-llm", "skynet"])
        assert result.exit_code == 1
        assert "Unknown provider 'skynet'" in result.output
