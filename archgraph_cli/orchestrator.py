"""Pipeline coordinating analysis, clustering, storage and tracing for one workspace."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Optional, Sequence

from .analysis import ProgressCallback, ScanOptions, generate_inventory
from .clustering import ClusteringOrchestrator
from .config import AnalysisSettings
from .config_manager import load_analysis_settings
from .llm import LocalLLM, TextCollaborator
from .models import ClusterGraph, ComponentExecutionTrace, RepoInventory
from .storage import ArchitectureStore
from .tracing import ExecutionTraceBuilder

logger = logging.getLogger(__name__)


class ArchitecturePipeline:
    """Runs the scanner, clustering orchestrator and trace builder against one store."""

    def __init__(
        self,
        workspace_root: Path,
        collaborator: Optional[TextCollaborator] = None,
        settings: Optional[AnalysisSettings] = None,
        store: Optional[ArchitectureStore] = None,
    ):
        self.workspace_root = Path(workspace_root).resolve()
        self.collaborator = collaborator
        self.settings = settings or load_analysis_settings()
        self.store = store or ArchitectureStore(self.workspace_root)

    def _require_collaborator(self) -> TextCollaborator:
        if self.collaborator is None:
            self.collaborator = LocalLLM()
        return self.collaborator

    def analyze(
        self,
        use_cache: bool = True,
        options: Optional[ScanOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RepoInventory:
        """Return the cached inventory when allowed, otherwise scan and refresh the cache.

        Explicit *options* always trigger a fresh scan, since the cache
        does not record the options it was built with.
        """
        if use_cache and options is None:
            cached = self.store.load_inventory_cache()
            if cached is not None:
                logger.info("Using cached inventory (%d files)", cached.metadata.file_count)
                return cached

        inventory = generate_inventory(
            self.workspace_root,
            options or ScanOptions.from_settings(self.settings),
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )
        self.store.save_inventory_cache(inventory)
        return inventory

    def generate(self, hint: Optional[str] = None, use_cache: bool = True) -> ClusterGraph:
        """Analyze, cluster, enrich and persist a new cluster graph."""
        inventory = self.analyze(use_cache=use_cache)
        orchestrator = ClusteringOrchestrator(self._require_collaborator(), self.settings)
        graph = orchestrator.cluster(inventory, hint)
        self.store.save_cluster_graph(graph)
        logger.info("Saved diagram %s with %d clusters", graph.id, len(graph.clusters))
        return graph

    def trace(
        self,
        base_diagram_id: str,
        entry_point: str,
        steps: Sequence[Any],
        name_with_collaborator: bool = False,
    ) -> ComponentExecutionTrace:
        collaborator = self._require_collaborator() if name_with_collaborator else None
        builder = ExecutionTraceBuilder(self.store, collaborator)
        return builder.build(base_diagram_id, entry_point, steps)
