"""Tests for the workspace pipeline's inventory caching."""

from pathlib import Path

import pytest

from archgraph_cli.analysis import ScanOptions
from archgraph_cli.orchestrator import ArchitecturePipeline


@pytest.fixture
def mixed_workspace(tmp_path: Path) -> Path:
    root = tmp_path / "mixed"
    root.mkdir()
    (root / "a.ts").write_text("export const a = 1;\n", encoding="utf-8")
    (root / "b.py").write_text("def b():\n    return 2\n", encoding="utf-8")
    return root


def _paths(inventory):
    return [f.path for f in inventory.files]


class TestAnalyzeCache:
    """ArchitecturePipeline.analyze and the single-slot inventory cache."""

    def test_explicit_options_bypass_cache(self, mixed_workspace: Path):
        """Each explicit scan reflects its own options, not the previous scan's."""
        pipeline = ArchitecturePipeline(mixed_workspace)

        assert _paths(pipeline.analyze(options=ScanOptions(extensions=[".ts"]))) == ["a.ts"]
        assert _paths(pipeline.analyze(options=ScanOptions(extensions=[".py"]))) == ["b.py"]

    def test_default_call_reuses_last_scan(self, mixed_workspace: Path):
        pipeline = ArchitecturePipeline(mixed_workspace)
        scanned = pipeline.analyze(options=ScanOptions(extensions=[".py"]))

        assert pipeline.analyze() == scanned
        assert pipeline.store.load_inventory_cache() == scanned

    def test_no_cache_rescans_with_settings(self, mixed_workspace: Path):
        pipeline = ArchitecturePipeline(mixed_workspace)
        pipeline.analyze(options=ScanOptions(extensions=[".py"]))

        assert _paths(pipeline.analyze(use_cache=False)) == ["a.ts"]
