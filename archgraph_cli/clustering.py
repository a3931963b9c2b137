"""LLM-driven clustering of an inventory into 5-12 C4 components.

The collaborator is untrusted: its text goes through JSON extraction,
schema validation and cross-reference validation before a
:class:`ClusterGraph` is built. Any failure is fed back into the next
prompt, for at most ``max_attempts`` round-trips.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import secrets
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .config import MAX_CLUSTERS, MIN_CLUSTERS, SCHEMA_VERSION, AnalysisSettings
from .detection import ComponentDetector, enrich_cluster_graph
from .errors import (
    ClusteringExhaustedError,
    CrossReferenceError,
    GraphValidationError,
    ResponseParseError,
)
from .llm import TextCollaborator, collect_text
from .models import ClusterGraph, ClusterGraphMetadata, RepoInventory
from .prompts import CLUSTERING_SYSTEM_PROMPT, build_clustering_prompt, retry_feedback
from .schemas import CLUSTER_ID_PATTERN, ClusterGraphPayload

logger = logging.getLogger(__name__)

_CLUSTER_ID_RE = re.compile(CLUSTER_ID_PATTERN)
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the first JSON object embedded in *text*.

    Fenced code blocks are tried before the raw text; inside each candidate
    every ``{`` is a possible start, decoded with ``raw_decode`` so trailing
    commentary is ignored.
    """
    decoder = json.JSONDecoder()
    candidates = [m.group(1) for m in _FENCE_RE.finditer(text)] + [text]
    for candidate in candidates:
        start = candidate.find("{")
        while start != -1:
            try:
                value, _ = decoder.raw_decode(candidate, start)
            except json.JSONDecodeError:
                start = candidate.find("{", start + 1)
                continue
            if isinstance(value, dict):
                return value
            start = candidate.find("{", start + 1)
    raise ResponseParseError(["No JSON object found in LLM response"])


def validate_cluster_graph(graph: ClusterGraph, inventory: RepoInventory) -> None:
    """Cross-check *graph* against *inventory*; raises :class:`CrossReferenceError`.

    Every violation is collected so one retry can fix all of them.
    """
    known_files = inventory.files_by_path
    cluster_ids = set(graph.cluster_ids)
    errors: List[str] = []

    seen = set()
    for cluster in graph.clusters:
        if not cluster.id or not _CLUSTER_ID_RE.match(cluster.id):
            errors.append(f'Cluster ID "{cluster.id}" must be lowercase-with-hyphens')
        if cluster.id in seen:
            errors.append(f'Duplicate cluster ID "{cluster.id}"')
        seen.add(cluster.id)
        if not cluster.files:
            errors.append(f'Cluster "{cluster.id}" has no files')
        for path in cluster.files:
            if path not in known_files:
                errors.append(f'Cluster "{cluster.id}" references non-existent file: {path}')
        files = set(cluster.files)
        for key_file in cluster.key_files:
            if key_file not in files:
                errors.append(f'Cluster "{cluster.id}" keyFile "{key_file}" not in files array')

    for edge in graph.cluster_edges:
        if edge.source not in cluster_ids:
            errors.append(f'Edge "{edge.id}" references unknown source cluster: {edge.source}')
        if edge.target not in cluster_ids:
            errors.append(f'Edge "{edge.id}" references unknown target cluster: {edge.target}')
        for dep in edge.top_dependencies:
            for path in (dep.from_path, dep.to_path):
                if path not in known_files:
                    errors.append(f'Edge "{edge.id}" topDependency references non-existent file: {path}')

    if errors:
        raise CrossReferenceError(errors, valid_values=sorted(cluster_ids))


def hash_inventory(inventory: RepoInventory) -> str:
    """Coarse staleness key over file count, total LOC and workspace root."""
    summary = json.dumps(
        {
            "fileCount": inventory.metadata.file_count,
            "totalLOC": inventory.metadata.total_loc,
            "workspaceRoot": inventory.metadata.workspace_root,
        },
        sort_keys=True,
    )
    return hashlib.sha256(summary.encode("utf-8")).hexdigest()[:16]


def is_graph_stale(graph: ClusterGraph, inventory: RepoInventory) -> bool:
    if graph.metadata is None:
        return True
    return graph.metadata.source_inventory_hash != hash_inventory(inventory)


def generate_graph_id() -> str:
    return f"arch-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


class ClusteringOrchestrator:
    """Prompt, parse, validate and retry until a valid graph is produced."""

    def __init__(
        self,
        collaborator: TextCollaborator,
        settings: Optional[AnalysisSettings] = None,
        detector: Optional[ComponentDetector] = None,
    ) -> None:
        self.collaborator = collaborator
        self.settings = settings or AnalysisSettings()
        self.detector = detector or ComponentDetector()

    def _attempt(self, inventory: RepoInventory, prompt: str) -> ClusterGraph:
        response = collect_text(self.collaborator, CLUSTERING_SYSTEM_PROMPT, prompt)
        logger.debug("Collaborator returned %d characters", len(response))
        payload = ClusterGraphPayload.validate_payload(extract_json_object(response))
        graph = payload.to_cluster_graph()
        validate_cluster_graph(graph, inventory)
        return graph

    def cluster(self, inventory: RepoInventory, hint: Optional[str] = None) -> ClusterGraph:
        """Return an enriched graph with a fresh id and metadata.

        Raises :class:`ClusteringExhaustedError` once every attempt failed;
        collaborator transport failures propagate unchanged.
        """
        max_attempts = max(1, self.settings.max_attempts)
        feedback = ""
        last_error = ""
        for attempt in range(1, max_attempts + 1):
            logger.info("Clustering attempt %d/%d", attempt, max_attempts)
            prompt = build_clustering_prompt(
                inventory,
                user_hint=hint,
                error_feedback=feedback,
                max_files=self.settings.max_prompt_files,
                max_symbols=self.settings.max_prompt_symbols,
                max_edges=self.settings.max_prompt_edges,
                min_clusters=MIN_CLUSTERS,
                max_clusters=MAX_CLUSTERS,
            )
            try:
                graph = self._attempt(inventory, prompt)
            except GraphValidationError as exc:
                last_error = str(exc)
                logger.warning("Clustering attempt %d failed: %s", attempt, last_error)
                feedback = retry_feedback(last_error)
                continue
            return self._finalize(graph, inventory)
        raise ClusteringExhaustedError(max_attempts, last_error)

    def _finalize(self, graph: ClusterGraph, inventory: RepoInventory) -> ClusterGraph:
        enriched = enrich_cluster_graph(graph, inventory, self.detector)
        metadata = ClusterGraphMetadata(
            timestamp=int(time.time() * 1000),
            cluster_count=len(enriched.clusters),
            source_inventory_hash=hash_inventory(inventory),
            schema_version=SCHEMA_VERSION,
        )
        return replace(enriched, id=generate_graph_id(), metadata=metadata)


def cluster_architecture(
    inventory: RepoInventory,
    collaborator: TextCollaborator,
    hint: Optional[str] = None,
    settings: Optional[AnalysisSettings] = None,
) -> ClusterGraph:
    """Convenience wrapper around :class:`ClusteringOrchestrator`."""
    return ClusteringOrchestrator(collaborator, settings).cluster(inventory, hint)
