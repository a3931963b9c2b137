"""Workspace scanner: enumerate eligible source files under a root."""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULT_EXCLUDE_PATTERNS, DEFAULT_EXTENSIONS
from .errors import WorkspaceError

logger = logging.getLogger(__name__)


def _matches_glob(rel_path: str, pattern: str) -> bool:
    """Match a workspace-relative posix path against a ``**``-style glob.

    The path is prefixed with ``/`` so that a leading ``**/`` also matches
    files sitting directly under the root.
    """
    translated = pattern.replace("**/", "*/").replace("/**", "/*")
    if not translated.startswith("/") and not translated.startswith("*"):
        translated = "*/" + translated
    return fnmatch.fnmatchcase("/" + rel_path, translated)


def _pruned_dir_names(patterns: Iterable[str]) -> Tuple[str, ...]:
    """Directory names that can be skipped wholesale (``**/<name>/**``)."""
    names = []
    for pattern in patterns:
        if pattern.startswith("**/") and pattern.endswith("/**"):
            inner = pattern[3:-3]
            if inner and "/" not in inner and not any(ch in inner for ch in "*?["):
                names.append(inner)
    return tuple(names)


@dataclass(frozen=True)
class _IgnoreRule:
    pattern: str
    negated: bool
    dir_only: bool
    anchored: bool


class GitignoreRules:
    """The subset of ``.gitignore`` semantics needed to filter a scan.

    Supports comments, blank lines, ``!`` negation (last match wins),
    anchored patterns (leading ``/`` or an inner ``/``) and directory-only
    patterns (trailing ``/``).
    """

    def __init__(self, rules: Sequence[_IgnoreRule]) -> None:
        self.rules = list(rules)

    @classmethod
    def from_file(cls, path: Path) -> "GitignoreRules":
        try:
            text = path.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return cls([])
        return cls.from_lines(text.splitlines())

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "GitignoreRules":
        rules: List[_IgnoreRule] = []
        for raw in lines:
            line = raw.rstrip()
            if not line or line.startswith("#"):
                continue
            negated = line.startswith("!")
            if negated:
                line = line[1:]
            dir_only = line.endswith("/")
            line = line.rstrip("/")
            anchored = line.startswith("/") or "/" in line
            line = line.lstrip("/")
            if line:
                rules.append(_IgnoreRule(line, negated, dir_only, anchored))
        return cls(rules)

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        ignored = False
        parts = rel_path.split("/")
        for rule in self.rules:
            if self._rule_matches(rule, rel_path, parts, is_dir):
                ignored = not rule.negated
        return ignored

    @staticmethod
    def _rule_matches(rule: _IgnoreRule, rel_path: str, parts: List[str], is_dir: bool) -> bool:
        if rule.anchored:
            pattern = rule.pattern.replace("**/", "*/")
            # Anchored patterns match the path itself or any of its parent dirs.
            for depth in range(len(parts), 0, -1):
                candidate = "/".join(parts[:depth])
                candidate_is_dir = is_dir or depth < len(parts)
                if rule.dir_only and not candidate_is_dir:
                    continue
                if fnmatch.fnmatchcase(candidate, pattern):
                    return True
            return False
        for idx, part in enumerate(parts):
            part_is_dir = is_dir or idx < len(parts) - 1
            if rule.dir_only and not part_is_dir:
                continue
            if fnmatch.fnmatchcase(part, rule.pattern):
                return True
        return False


def scan_workspace(
    workspace_root: Path,
    extensions: Optional[Sequence[str]] = None,
    exclude_patterns: Optional[Sequence[str]] = None,
    max_files: Optional[int] = None,
    respect_gitignore: bool = True,
) -> List[Path]:
    """Return absolute paths of eligible files under *workspace_root*, sorted.

    Files are eligible when their suffix is in *extensions* and neither the
    exclude globs nor the root ``.gitignore`` reject them. Unreadable
    subdirectories are skipped; an unusable root raises
    :class:`~archgraph_cli.errors.WorkspaceError`.
    """
    root = Path(workspace_root).resolve()
    if not root.exists():
        raise WorkspaceError(f"Workspace root does not exist: {root}", root=str(root))
    if not root.is_dir():
        raise WorkspaceError(f"Workspace root is not a directory: {root}", root=str(root))
    if not os.access(root, os.R_OK | os.X_OK):
        raise WorkspaceError(f"Workspace root is not readable: {root}", root=str(root))

    exts = tuple(extensions or DEFAULT_EXTENSIONS)
    patterns = list(DEFAULT_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns)
    pruned = set(_pruned_dir_names(patterns))
    gitignore = GitignoreRules.from_file(root / ".gitignore") if respect_gitignore and (root / ".gitignore").is_file() else None

    def _on_walk_error(exc: OSError) -> None:
        logger.warning("Skipping unreadable path %s: %s", exc.filename, exc.strerror)

    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_walk_error):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        kept_dirs = []
        for name in dirnames:
            if name in pruned:
                continue
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if gitignore is not None and gitignore.is_ignored(rel, is_dir=True):
                continue
            kept_dirs.append(name)
        dirnames[:] = sorted(kept_dirs)

        for name in filenames:
            if not name.endswith(exts):
                continue
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if any(_matches_glob(rel, p) for p in patterns):
                continue
            if gitignore is not None and gitignore.is_ignored(rel):
                continue
            found.append(Path(dirpath) / name)

    found.sort()
    if max_files is not None and max_files >= 0:
        found = found[:max_files]
    logger.debug("Scanned %s: %d eligible files", root, len(found))
    return found
