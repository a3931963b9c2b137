"""Workspace-scoped JSON document store for inventories, diagrams and traces.

Layout under ``<workspace>/.archgraph/architecture/``::

    inventories/<id>.json
    clusters/<id>.json
    execution-traces/<id>.json
    inventory-cache.json

Documents are written through a temp file and ``os.replace`` so readers
never observe a partial write. Listings skip (and log) documents that
cannot be read or decoded.
"""

from __future__ import annotations

import json
import logging
import os
import re
import secrets
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from .config import ARCHITECTURE_DIRNAME, STORAGE_DIRNAME
from .errors import CorruptDocumentError, DocumentNotFoundError, InvalidDocumentIdError
from .models import ClusterGraph, ComponentExecutionTrace, RepoInventory

logger = logging.getLogger(__name__)

_DOC_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")

T = TypeVar("T")


def generate_trace_id() -> str:
    return f"trace_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def generate_inventory_id() -> str:
    return f"inventory-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def _metadata(doc: Dict[str, Any]) -> Dict[str, Any]:
    meta = doc.get("metadata") or {}
    if not isinstance(meta, dict):
        raise TypeError(f"metadata must be an object, got {type(meta).__name__}")
    return meta


class ArchitectureStore:
    """Persist and retrieve architecture documents for one workspace."""

    INVENTORIES = "inventories"
    CLUSTERS = "clusters"
    TRACES = "execution-traces"
    CACHE_FILE = "inventory-cache.json"

    def __init__(self, workspace_root: Path) -> None:
        self.workspace_root = Path(workspace_root).resolve()
        self.root = self.workspace_root / STORAGE_DIRNAME / ARCHITECTURE_DIRNAME

    # ------------------------------------------------------------------
    # Low-level document I/O
    # ------------------------------------------------------------------

    def _dir(self, kind: str) -> Path:
        return self.root / kind

    def _path(self, kind: str, doc_id: str) -> Path:
        if not doc_id or doc_id in (".", "..") or not _DOC_ID_RE.match(doc_id):
            raise InvalidDocumentIdError(doc_id)
        return self._dir(kind) / f"{doc_id}.json"

    @staticmethod
    def _write_json(path: Path, payload: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _read_json(path: Path) -> Dict[str, Any]:
        return json.loads(path.read_text(encoding="utf-8"))

    def _load(self, kind: str, label: str, doc_id: str, factory: Callable[[Dict[str, Any]], T]) -> T:
        path = self._path(kind, doc_id)
        if not path.exists():
            raise DocumentNotFoundError(label, doc_id)
        try:
            return factory(self._read_json(path))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise CorruptDocumentError(label, doc_id, f"{type(exc).__name__}: {exc}") from exc

    def _delete(self, kind: str, doc_id: str) -> bool:
        path = self._path(kind, doc_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted %s/%s", kind, doc_id)
        return True

    def _iter_documents(self, kind: str) -> List[Tuple[str, Dict[str, Any]]]:
        directory = self._dir(kind)
        if not directory.is_dir():
            return []
        documents = []
        for path in sorted(directory.glob("*.json")):
            try:
                data = self._read_json(path)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable document %s: %s", path.name, exc)
                continue
            if not isinstance(data, dict):
                logger.warning("Skipping malformed document %s", path.name)
                continue
            documents.append((path.name, data))
        return documents

    def _list_rows(
        self,
        kind: str,
        build_row: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]],
    ) -> List[Dict[str, Any]]:
        """Summary rows for every readable document of *kind*, newest first.

        A document whose fields have the wrong shape is logged and skipped;
        *build_row* returns None to filter a document out.
        """
        rows = []
        for name, doc in self._iter_documents(kind):
            try:
                row = build_row(doc)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed document %s: %s", name, exc)
                continue
            if row is not None:
                rows.append(row)
        return sorted(rows, key=lambda r: r["createdAt"], reverse=True)

    # ------------------------------------------------------------------
    # Inventories
    # ------------------------------------------------------------------

    def save_inventory(self, inventory: RepoInventory, inventory_id: Optional[str] = None) -> str:
        inventory_id = inventory_id or generate_inventory_id()
        self._write_json(self._path(self.INVENTORIES, inventory_id), {"id": inventory_id, **inventory.to_dict()})
        return inventory_id

    def load_inventory(self, inventory_id: str) -> RepoInventory:
        return self._load(self.INVENTORIES, "Inventory", inventory_id, RepoInventory.from_dict)

    def list_inventories(self) -> List[Dict[str, Any]]:
        def row(doc):
            meta = _metadata(doc)
            return {
                "id": doc.get("id"),
                "createdAt": int(meta.get("timestamp", 0)),
                "fileCount": int(meta.get("fileCount", 0)),
                "totalLOC": int(meta.get("totalLOC", 0)),
                "workspaceRoot": str(meta.get("workspaceRoot", "")),
            }

        return self._list_rows(self.INVENTORIES, row)

    def delete_inventory(self, inventory_id: str) -> bool:
        return self._delete(self.INVENTORIES, inventory_id)

    # ------------------------------------------------------------------
    # Inventory cache
    # ------------------------------------------------------------------

    @property
    def cache_path(self) -> Path:
        return self.root / self.CACHE_FILE

    def save_inventory_cache(self, inventory: RepoInventory) -> None:
        self._write_json(self.cache_path, inventory.to_dict())

    def load_inventory_cache(self) -> Optional[RepoInventory]:
        """Return the cached inventory, or None when absent or corrupt."""
        if not self.cache_path.exists():
            return None
        try:
            return RepoInventory.from_dict(self._read_json(self.cache_path))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring corrupt inventory cache: %s", exc)
            return None

    def invalidate_inventory_cache(self) -> bool:
        if not self.cache_path.exists():
            return False
        self.cache_path.unlink()
        logger.info("Inventory cache invalidated")
        return True

    def get_cached_inventory_info(self) -> Optional[Dict[str, Any]]:
        inventory = self.load_inventory_cache()
        if inventory is None:
            return None
        return {
            "cachedAt": inventory.metadata.timestamp,
            "fileCount": inventory.metadata.file_count,
            "totalLOC": inventory.metadata.total_loc,
        }

    # ------------------------------------------------------------------
    # Cluster graphs
    # ------------------------------------------------------------------

    def save_cluster_graph(self, graph: ClusterGraph) -> str:
        self._write_json(self._path(self.CLUSTERS, graph.id), graph.to_dict())
        return graph.id

    def load_cluster_graph(self, graph_id: str) -> ClusterGraph:
        return self._load(self.CLUSTERS, "Diagram", graph_id, ClusterGraph.from_dict)

    def list_cluster_graphs(self) -> List[Dict[str, Any]]:
        def row(doc):
            meta = _metadata(doc)
            clusters = doc.get("clusters") or []
            summary = {
                "id": doc.get("id"),
                "createdAt": int(meta.get("timestamp", 0)),
                "clusterCount": int(meta.get("clusterCount", len(clusters))),
                "fileCount": len({p for c in clusters for p in c.get("files", ())}),
            }
            if doc.get("name"):
                summary["name"] = doc["name"]
            return summary

        return self._list_rows(self.CLUSTERS, row)

    def delete_cluster_graph(self, graph_id: str) -> bool:
        return self._delete(self.CLUSTERS, graph_id)

    # ------------------------------------------------------------------
    # Execution traces
    # ------------------------------------------------------------------

    def save_trace(self, trace: ComponentExecutionTrace) -> str:
        self._write_json(self._path(self.TRACES, trace.id), trace.to_dict())
        return trace.id

    def load_trace(self, trace_id: str) -> ComponentExecutionTrace:
        return self._load(self.TRACES, "Trace", trace_id, ComponentExecutionTrace.from_dict)

    def list_traces(self, base_diagram_id: Optional[str] = None) -> List[Dict[str, Any]]:
        def row(doc):
            if base_diagram_id and doc.get("baseDiagramId") != base_diagram_id:
                return None
            meta = _metadata(doc)
            summary = {
                "id": doc.get("id"),
                "baseDiagramId": doc.get("baseDiagramId"),
                "entryPoint": doc.get("entryPoint", ""),
                "createdAt": int(meta.get("timestamp", 0)),
                "stepCount": int(meta.get("totalSteps", len(doc.get("steps") or []))),
            }
            if doc.get("name"):
                summary["name"] = doc["name"]
            return summary

        return self._list_rows(self.TRACES, row)

    def delete_trace(self, trace_id: str) -> bool:
        return self._delete(self.TRACES, trace_id)
