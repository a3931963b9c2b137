"""Static analysis pass: files -> FileRecords -> aggregated dependency edges -> inventory."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULT_BATCH_SIZE, DEFAULT_EXTENSIONS, MAX_FILE_SIZE_BYTES, AnalysisSettings
from .errors import AnalysisCancelledError, WorkspaceError
from .models import DependencyEdge, FileRecord, ImportRecord, InventoryMetadata, RepoInventory
from .parser import RECORD_LANGUAGE, Parser, TreeSitterParser, language_for_path, resolve_import_path
from .scanner import scan_workspace

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class ScanOptions:
    """Per-run knobs for :func:`generate_inventory`."""

    extensions: Optional[List[str]] = None
    exclude_patterns: Optional[List[str]] = None
    max_files: Optional[int] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    max_file_size: int = MAX_FILE_SIZE_BYTES
    respect_gitignore: bool = True

    @classmethod
    def from_settings(cls, settings: AnalysisSettings, **overrides) -> "ScanOptions":
        options = cls(
            extensions=list(settings.extensions),
            exclude_patterns=list(settings.exclude_patterns),
            batch_size=settings.batch_size,
            max_file_size=settings.max_file_size,
            respect_gitignore=settings.respect_gitignore,
        )
        return replace(options, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class RawImportEdge:
    """One resolved, runtime import from one file to another."""

    from_path: str
    to_path: str
    symbols: FrozenSet[str] = field(default_factory=frozenset)
    count: int = 1


# ===================================================================
# File Analyzer
# ===================================================================

class FileAnalyzer:
    """Reads, parses and resolves a single file into a :class:`FileRecord`."""

    def __init__(
        self,
        workspace_root: Path,
        parser: Optional[Parser] = None,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        self.workspace_root = Path(workspace_root).resolve()
        self.parser = parser or TreeSitterParser()
        self.max_file_size = max_file_size

    def analyze(self, file_path: Path) -> Optional[FileRecord]:
        """Return the record for *file_path*, or None when the file is skipped.

        Oversized, unreadable, unsupported and unparseable files are logged and
        skipped; none of them aborts the scan.
        """
        rel_path = Path(file_path).relative_to(self.workspace_root).as_posix()
        language = language_for_path(file_path)
        if language is None or not self.parser.supports_language(language):
            logger.warning("Skipping %s: no parser available for its extension", rel_path)
            return None

        try:
            size = file_path.stat().st_size
            if size > self.max_file_size:
                logger.warning(
                    "Skipping large file %s (%.1f MB)", rel_path, size / 1024 / 1024,
                )
                return None
            source = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("Skipping unreadable file %s: %s", rel_path, exc)
            return None

        try:
            parsed = self.parser.parse_source(source, language)
        except (ValueError, RuntimeError) as exc:
            logger.warning("Failed to parse %s: %s", rel_path, exc)
            return None
        if parsed.has_syntax_errors:
            logger.debug("%s parsed with syntax errors; extraction is best-effort", rel_path)

        imports = tuple(self._resolve(record, file_path, language) for record in parsed.imports)
        return FileRecord(
            path=rel_path,
            size=size,
            lines_of_code=len(source.splitlines()),
            exports=parsed.exports,
            imports=imports,
            language=RECORD_LANGUAGE[language],  # type: ignore[arg-type]
        )

    def _resolve(self, record: ImportRecord, file_path: Path, language: str) -> ImportRecord:
        resolved = resolve_import_path(
            record.source,
            file_path,
            self.workspace_root,
            language,
            record.imported_symbols,
        )
        return replace(record, resolved_path=resolved) if resolved else record


# ===================================================================
# Dependency Aggregator
# ===================================================================

def collect_import_edges(files: Iterable[FileRecord]) -> List[RawImportEdge]:
    """Runtime import edges whose target is one of *files*.

    Type-only imports, unresolved specifiers and targets outside the given
    file set produce no edge.
    """
    records = list(files)
    known = {record.path for record in records}
    edges: List[RawImportEdge] = []
    for record in records:
        for imp in record.imports:
            if imp.is_type_only or not imp.resolved_path:
                continue
            if imp.resolved_path not in known:
                logger.debug("Dropping edge %s -> %s: target not in inventory", record.path, imp.resolved_path)
                continue
            edges.append(RawImportEdge(record.path, imp.resolved_path, frozenset(imp.imported_symbols)))
    return edges


def aggregate_dependencies(edges: Iterable[RawImportEdge]) -> List[DependencyEdge]:
    """Merge edges sharing a (from, to) pair into weighted dependency edges.

    Counts are summed and symbol names unioned. The result is sorted by
    (from, to) with sorted ``importedTypes``, so any input order yields an
    identical list.
    """
    counts: Dict[Tuple[str, str], int] = {}
    symbols: Dict[Tuple[str, str], set] = {}
    for edge in edges:
        key = (edge.from_path, edge.to_path)
        counts[key] = counts.get(key, 0) + edge.count
        symbols.setdefault(key, set()).update(edge.symbols)

    return [
        DependencyEdge(
            from_path=key[0],
            to_path=key[1],
            count=counts[key],
            imported_types=tuple(sorted(symbols[key])),
        )
        for key in sorted(counts)
    ]


# ===================================================================
# Inventory Assembler
# ===================================================================

def _batches(items: Sequence[Path], size: int) -> Iterable[Sequence[Path]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def generate_inventory(
    workspace_root: Path,
    options: Optional[ScanOptions] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    parser: Optional[Parser] = None,
) -> RepoInventory:
    """Scan *workspace_root* and build a fresh :class:`RepoInventory`.

    Files are analyzed in sequential batches of ``options.batch_size``; the
    files inside one batch run concurrently. *progress_callback* receives
    ``(processed, total)`` after each batch. Setting *cancel_event* lets the
    running batch finish and then raises
    :class:`~archgraph_cli.errors.AnalysisCancelledError`.
    """
    opts = options or ScanOptions()
    root = Path(workspace_root).resolve()
    started = time.perf_counter()
    extensions = list(opts.extensions or DEFAULT_EXTENSIONS)

    paths = scan_workspace(
        root,
        extensions=extensions,
        exclude_patterns=opts.exclude_patterns,
        max_files=opts.max_files,
        respect_gitignore=opts.respect_gitignore,
    )
    if not paths:
        raise WorkspaceError(
            f"No source files found in workspace (extensions: {', '.join(extensions)})",
            root=str(root),
        )

    analyzer = FileAnalyzer(root, parser=parser, max_file_size=opts.max_file_size)
    batch_size = max(1, opts.batch_size)
    total = len(paths)
    records: List[FileRecord] = []
    processed = 0
    logger.info("Analyzing %d files in batches of %d", total, batch_size)

    with ThreadPoolExecutor(max_workers=min(batch_size, 32)) as executor:
        for batch in _batches(paths, batch_size):
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelledError(processed, total)
            records.extend(r for r in executor.map(analyzer.analyze, batch) if r is not None)
            processed += len(batch)
            if progress_callback is not None:
                progress_callback(processed, total)

    dependencies = aggregate_dependencies(collect_import_edges(records))
    metadata = InventoryMetadata(
        timestamp=int(time.time() * 1000),
        workspace_root=str(root),
        file_count=len(records),
        total_loc=sum(r.lines_of_code for r in records),
        analyzed_extensions=tuple(extensions),
        duration_ms=int((time.perf_counter() - started) * 1000),
    )
    logger.info(
        "Inventory complete: %d files, %d dependencies, %d LOC",
        metadata.file_count, len(dependencies), metadata.total_loc,
    )
    return RepoInventory(files=tuple(records), dependencies=tuple(dependencies), metadata=metadata)
