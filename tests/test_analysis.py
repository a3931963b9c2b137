"""Tests for file analysis, dependency aggregation and inventory assembly."""

import itertools
import threading
from pathlib import Path

import pytest

from archgraph_cli.analysis import (
    FileAnalyzer,
    RawImportEdge,
    ScanOptions,
    aggregate_dependencies,
    collect_import_edges,
    generate_inventory,
)
from archgraph_cli.config import AnalysisSettings
from archgraph_cli.errors import AnalysisCancelledError, WorkspaceError
from archgraph_cli.models import DependencyEdge, FileRecord, ImportRecord, RepoInventory

from conftest import make_record


def _write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_single_import_produces_one_edge(tmp_path: Path):
    """b.ts importing foo from a.ts yields exactly one weighted edge."""
    _write(tmp_path, "a.ts", "export function foo() {}\n")
    _write(tmp_path, "b.ts", 'import { foo } from "./a";\nfoo();\n')

    inventory = generate_inventory(tmp_path)

    assert inventory.dependencies == (
        DependencyEdge(from_path="b.ts", to_path="a.ts", count=1, imported_types=("foo",)),
    )
    assert inventory.get_file("a.ts").exports[0].name == "foo"
    assert inventory.metadata.file_count == 2
    assert inventory.metadata.total_loc == 3


def test_sample_project_inventory(sample_project_path: Path):
    inventory = generate_inventory(sample_project_path)
    pairs = {(d.from_path, d.to_path) for d in inventory.dependencies}

    assert inventory.metadata.file_count == 7
    assert ("src/index.ts", "src/controllers/userController.ts") in pairs
    assert ("src/repositories/userRepository.ts", "src/models/user.ts") in pairs
    # type-only imports never become edges
    assert ("src/controllers/userController.ts", "src/models/user.ts") not in pairs
    assert len(pairs) == 6
    for dep in inventory.dependencies:
        assert inventory.get_file(dep.from_path) is not None
        assert inventory.get_file(dep.to_path) is not None


def test_python_project_inventory(tmp_path: Path):
    fixture = Path(__file__).parent / "fixtures" / "python_project"
    inventory = generate_inventory(fixture, ScanOptions(extensions=[".py"]))
    pairs = {(d.from_path, d.to_path) for d in inventory.dependencies}

    assert inventory.get_file("main.py").language == "python"
    assert ("main.py", "models.py") in pairs
    assert ("processor.py", "utils.py") in pairs
    assert {e.name for e in inventory.get_file("models.py").exports} >= {"User", "Order"}


def test_empty_workspace_raises(tmp_path: Path):
    _write(tmp_path, "notes.md", "# nothing\n")
    with pytest.raises(WorkspaceError, match="No source files found"):
        generate_inventory(tmp_path)


def test_progress_reported_per_batch(tmp_path: Path):
    for name in ("a.ts", "b.ts", "c.ts"):
        _write(tmp_path, name, "export const x = 1;\n")
    seen = []

    generate_inventory(tmp_path, ScanOptions(batch_size=2), progress_callback=lambda done, total: seen.append((done, total)))

    assert seen == [(2, 3), (3, 3)]


def test_cancel_stops_before_next_batch(tmp_path: Path):
    for name in ("a.ts", "b.ts", "c.ts"):
        _write(tmp_path, name, "export const x = 1;\n")
    cancel = threading.Event()

    with pytest.raises(AnalysisCancelledError) as excinfo:
        generate_inventory(tmp_path, ScanOptions(batch_size=1), progress_callback=lambda done, total: cancel.set(), cancel_event=cancel)

    assert excinfo.value.processed == 1
    assert excinfo.value.total == 3


def test_oversized_file_is_skipped(tmp_path: Path):
    big = _write(tmp_path, "big.js", "const x = 1;\n" * 100)
    analyzer = FileAnalyzer(tmp_path, max_file_size=64)
    assert analyzer.analyze(big.resolve()) is None


def test_scan_options_from_settings():
    settings = AnalysisSettings(batch_size=7)
    options = ScanOptions.from_settings(settings, max_files=3, extensions=None)
    assert options.batch_size == 7
    assert options.max_files == 3
    assert options.extensions == settings.extensions


class TestAggregation:
    """Dependency aggregation."""

    def test_merges_counts_and_symbols(self):
        edges = [
            RawImportEdge("b.ts", "a.ts", frozenset({"foo"})),
            RawImportEdge("b.ts", "a.ts", frozenset({"bar"})),
            RawImportEdge("c.ts", "a.ts", frozenset({"foo"})),
        ]
        result = aggregate_dependencies(edges)
        assert result == [
            DependencyEdge("b.ts", "a.ts", 2, ("bar", "foo")),
            DependencyEdge("c.ts", "a.ts", 1, ("foo",)),
        ]

    def test_order_independent(self):
        edges = [
            RawImportEdge("x.ts", "y.ts", frozenset({"a"})),
            RawImportEdge("y.ts", "z.ts", frozenset({"b"})),
            RawImportEdge("x.ts", "y.ts", frozenset({"c"})),
            RawImportEdge("z.ts", "x.ts"),
        ]
        expected = aggregate_dependencies(edges)
        for permutation in itertools.permutations(edges):
            assert aggregate_dependencies(permutation) == expected

    def test_collect_skips_type_only_and_unknown_targets(self):
        records = [
            make_record("a.ts"),
            make_record("b.ts", imports=[("./a", "a.ts", ["foo"]), ("./gone", "gone.ts", ["x"]), ("react", None, [])]),
            FileRecord(
                path="c.ts",
                size=1,
                lines_of_code=1,
                imports=(ImportRecord(source="./a", resolved_path="a.ts", is_type_only=True),),
            ),
        ]
        edges = collect_import_edges(records)
        assert [(e.from_path, e.to_path) for e in edges] == [("b.ts", "a.ts")]


def test_inventory_round_trips_through_json(sample_inventory: RepoInventory):
    restored = RepoInventory.from_dict(sample_inventory.to_dict())
    assert restored == sample_inventory
    assert sample_inventory.to_dict()["metadata"]["totalLOC"] == 70
