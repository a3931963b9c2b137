"""Tests for the workspace scanner."""

from pathlib import Path

import pytest

from archgraph_cli.errors import WorkspaceError
from archgraph_cli.scanner import GitignoreRules, scan_workspace


def _touch(root: Path, rel: str, text: str = "export const x = 1;\n") -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _rel(root: Path, paths):
    return [p.relative_to(root).as_posix() for p in paths]


class TestScanWorkspace:
    """Tests for scan_workspace."""

    def test_default_excludes(self, tmp_path: Path):
        for rel in (
            "src/a.ts",
            "src/b.tsx",
            "src/a.test.ts",
            "src/types.d.ts",
            "node_modules/pkg/index.js",
            "dist/bundle.js",
            "vite.config.ts",
            "README.md",
        ):
            _touch(tmp_path, rel)

        assert _rel(tmp_path, scan_workspace(tmp_path)) == ["src/a.ts", "src/b.tsx"]

    def test_results_are_sorted_and_capped(self, tmp_path: Path):
        for name in ("c.ts", "a.ts", "b.ts"):
            _touch(tmp_path, name)

        assert _rel(tmp_path, scan_workspace(tmp_path)) == ["a.ts", "b.ts", "c.ts"]
        assert _rel(tmp_path, scan_workspace(tmp_path, max_files=2)) == ["a.ts", "b.ts"]

    def test_custom_extensions(self, tmp_path: Path):
        _touch(tmp_path, "pkg/mod.py", "x = 1\n")
        _touch(tmp_path, "web/app.ts")

        assert _rel(tmp_path, scan_workspace(tmp_path, extensions=[".py"])) == ["pkg/mod.py"]

    def test_gitignore_is_honoured(self, tmp_path: Path):
        (tmp_path / ".gitignore").write_text("# generated\ngenerated/\n*.gen.ts\n!keep.gen.ts\n", encoding="utf-8")
        _touch(tmp_path, "src/app.ts")
        _touch(tmp_path, "generated/api.ts")
        _touch(tmp_path, "src/schema.gen.ts")
        _touch(tmp_path, "src/keep.gen.ts")

        assert _rel(tmp_path, scan_workspace(tmp_path)) == ["src/app.ts", "src/keep.gen.ts"]
        assert len(scan_workspace(tmp_path, respect_gitignore=False)) == 4

    def test_missing_root_raises(self, tmp_path: Path):
        with pytest.raises(WorkspaceError) as excinfo:
            scan_workspace(tmp_path / "missing")
        assert excinfo.value.root == str((tmp_path / "missing").resolve())

    def test_file_root_raises(self, tmp_path: Path):
        _touch(tmp_path, "a.ts")
        with pytest.raises(WorkspaceError):
            scan_workspace(tmp_path / "a.ts")

    def test_sample_project(self, sample_project_path: Path):
        found = _rel(sample_project_path, scan_workspace(sample_project_path))
        assert "src/services/userService.ts" in found
        assert "src/services/userService.test.ts" not in found
        assert len(found) == 7


class TestGitignoreRules:
    """Tests for the .gitignore subset."""

    def test_anchored_pattern(self):
        rules = GitignoreRules.from_lines(["/build"])
        assert rules.is_ignored("build/out.js")
        assert not rules.is_ignored("src/build/out.js")

    def test_directory_only_pattern(self):
        rules = GitignoreRules.from_lines(["tmp/"])
        assert rules.is_ignored("a/tmp/file.ts")
        assert not rules.is_ignored("a/tmp")

    def test_negation_last_match_wins(self):
        rules = GitignoreRules.from_lines(["*.ts", "!main.ts"])
        assert rules.is_ignored("lib/util.ts")
        assert not rules.is_ignored("main.ts")
