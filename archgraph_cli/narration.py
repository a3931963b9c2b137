"""Collaborator-backed prose: data-flow walkthroughs, cluster summaries, trace names."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .errors import ArchgraphError
from .llm import TextCollaborator, collect_text
from .models import Cluster, ClusterGraph, ExecutionStep, RepoInventory
from .prompts import (
    CLUSTER_SUMMARY_SYSTEM_PROMPT,
    DATA_FLOW_SYSTEM_PROMPT,
    TRACE_NAME_SYSTEM_PROMPT,
    build_cluster_summary_prompt,
    build_data_flow_prompt,
    build_trace_name_prompt,
)

logger = logging.getLogger(__name__)

MAX_TRACE_NAME_LENGTH = 60
TRACE_NAME_STEPS = 5
STEP_DESCRIPTION_PREVIEW = 60


def generate_data_flow_explanation(graph: ClusterGraph, collaborator: TextCollaborator) -> str:
    return collect_text(collaborator, DATA_FLOW_SYSTEM_PROMPT, build_data_flow_prompt(graph)).strip()


def generate_cluster_summary(
    cluster: Cluster,
    inventory: RepoInventory,
    graph: ClusterGraph,
    collaborator: TextCollaborator,
) -> str:
    prompt = build_cluster_summary_prompt(cluster, inventory, graph)
    return collect_text(collaborator, CLUSTER_SUMMARY_SYSTEM_PROMPT, prompt).strip()


def _clean_name(raw: str) -> str:
    lines = raw.strip().splitlines()
    first = lines[0].strip() if lines else ""
    return first.strip("\"'`").strip()[:MAX_TRACE_NAME_LENGTH]


def generate_trace_name(
    entry_point: str,
    steps: Sequence[ExecutionStep],
    graph: Optional[ClusterGraph],
    collaborator: TextCollaborator,
) -> str:
    """Short human name for a trace.

    Falls back to the truncated entry point when the collaborator fails or
    answers with nothing usable.
    """
    step_lines = []
    for step in steps[:TRACE_NAME_STEPS]:
        cluster = graph.get_cluster(step.component_id) if graph is not None else None
        label = cluster.label if cluster is not None else step.component_id
        step_lines.append(f"{step.step_number}. {label}: {step.description[:STEP_DESCRIPTION_PREVIEW]}")

    fallback = entry_point[:MAX_TRACE_NAME_LENGTH]
    try:
        raw = collect_text(collaborator, TRACE_NAME_SYSTEM_PROMPT, build_trace_name_prompt(entry_point, step_lines))
    except ArchgraphError as exc:
        logger.warning("Trace naming failed, using entry point: %s", exc)
        return fallback
    return _clean_name(raw) or fallback
