"""Execution traces: authored step lists layered on a stored cluster graph."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from .config import TRACE_EDGE_DURATION_MS
from .errors import UnknownComponentError
from .llm import TextCollaborator
from .models import AnimatedEdge, ClusterGraph, ComponentExecutionTrace, ExecutionStep, TraceMetadata
from .narration import generate_trace_name
from .schemas import parse_execution_steps
from .storage import ArchitectureStore, generate_trace_id

logger = logging.getLogger(__name__)


def highlighted_components(steps: Sequence[ExecutionStep]) -> List[str]:
    """Unique component ids in first-seen order."""
    seen: Dict[str, None] = {}
    for step in steps:
        seen.setdefault(step.component_id, None)
    return list(seen)


def build_animated_edges(
    steps: Sequence[ExecutionStep],
    graph: ClusterGraph,
    duration_ms: int = TRACE_EDGE_DURATION_MS,
) -> List[AnimatedEdge]:
    """One animation per consecutive step pair backed by a direct cluster edge.

    ``animationOrder`` is the 1-based position of the pair, so gaps mark
    transitions without a direct edge.
    """
    edges = []
    for index in range(len(steps) - 1):
        current, following = steps[index], steps[index + 1]
        edge = graph.find_edge(current.component_id, following.component_id)
        if edge is None:
            logger.warning(
                "No direct edge from %s to %s; the relationship may be indirect",
                current.component_id, following.component_id,
            )
            continue
        edges.append(AnimatedEdge(edge_id=edge.id, animation_order=index + 1, duration_ms=duration_ms))
    return edges


def _transition_warnings(steps: Sequence[ExecutionStep]) -> List[str]:
    warnings = []
    for step, following in zip(steps, steps[1:]):
        if step.transition_to and step.transition_to != following.component_id:
            warnings.append(
                f'Step {step.step_number}: transitionTo "{step.transition_to}" '
                f'does not match next step\'s componentId "{following.component_id}"'
            )
    for expected, step in enumerate(steps, start=1):
        if step.step_number != expected:
            warnings.append(f"Step {step.step_number}: expected stepNumber {expected}")
    return warnings


def validate_trace(trace: ComponentExecutionTrace, graph: ClusterGraph) -> Dict[str, Any]:
    """Check a stored trace against *graph* without raising.

    Unknown component ids are errors; transition mismatches, numbering gaps
    and missing direct edges are warnings.
    """
    valid_ids = graph.cluster_ids
    known = set(valid_ids)
    errors = [
        f'Step {step.step_number}: Invalid componentId "{step.component_id}". '
        f"Valid IDs: {', '.join(valid_ids)}"
        for step in trace.steps
        if step.component_id not in known
    ]
    warnings = _transition_warnings(trace.steps)
    for step, following in zip(trace.steps, trace.steps[1:]):
        if step.component_id in known and following.component_id in known:
            if graph.find_edge(step.component_id, following.component_id) is None:
                warnings.append(
                    f'Step {step.step_number}: No direct edge from "{step.component_id}" '
                    f'to "{following.component_id}". Relationship may be indirect or inferred.'
                )
    return {"valid": not errors, "errors": errors, "warnings": warnings}


class ExecutionTraceBuilder:
    """Turns authored steps into a persisted :class:`ComponentExecutionTrace`."""

    def __init__(
        self,
        store: ArchitectureStore,
        collaborator: Optional[TextCollaborator] = None,
        duration_ms: int = TRACE_EDGE_DURATION_MS,
    ) -> None:
        self.store = store
        self.collaborator = collaborator
        self.duration_ms = duration_ms

    @staticmethod
    def _coerce_steps(steps: Sequence[Any]) -> List[ExecutionStep]:
        if steps and all(isinstance(s, ExecutionStep) for s in steps):
            return list(steps)
        if isinstance(steps, tuple):
            steps = list(steps)
        return [item.to_step() for item in parse_execution_steps(steps)]

    def build(self, base_diagram_id: str, entry_point: str, steps: Sequence[Any]) -> ComponentExecutionTrace:
        """Validate, derive and save a trace.

        Raises :class:`DocumentNotFoundError` for a missing diagram,
        :class:`CorruptDocumentError` for an unreadable one,
        :class:`StepFormatError` for malformed steps and
        :class:`UnknownComponentError` listing the valid ids for any
        unknown ``componentId``.
        """
        graph = self.store.load_cluster_graph(base_diagram_id)
        parsed = self._coerce_steps(steps)

        known = set(graph.cluster_ids)
        invalid = list(dict.fromkeys(s.component_id for s in parsed if s.component_id not in known))
        if invalid:
            raise UnknownComponentError(invalid, graph.cluster_ids, base_diagram_id)

        for warning in _transition_warnings(parsed):
            logger.warning("%s", warning)

        highlighted = highlighted_components(parsed)
        name = None
        if self.collaborator is not None:
            name = generate_trace_name(entry_point, parsed, graph, self.collaborator)

        trace = ComponentExecutionTrace(
            id=generate_trace_id(),
            base_diagram_id=base_diagram_id,
            entry_point=entry_point,
            steps=tuple(parsed),
            highlighted_components=tuple(highlighted),
            animated_edges=tuple(build_animated_edges(parsed, graph, self.duration_ms)),
            metadata=TraceMetadata(
                timestamp=int(time.time() * 1000),
                total_steps=len(parsed),
                components_involved=len(highlighted),
            ),
            name=name,
        )
        self.store.save_trace(trace)
        logger.info("Saved trace %s (%d steps) on %s", trace.id, len(parsed), base_diagram_id)
        return trace


def build_execution_trace(
    store: ArchitectureStore,
    base_diagram_id: str,
    entry_point: str,
    steps: Sequence[Any],
    collaborator: Optional[TextCollaborator] = None,
) -> ComponentExecutionTrace:
    return ExecutionTraceBuilder(store, collaborator).build(base_diagram_id, entry_point, steps)
