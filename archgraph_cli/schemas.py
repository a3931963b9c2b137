"""Pydantic schemas guarding collaborator output and authored trace steps.

The collaborator's JSON and externally supplied execution steps are
untrusted. Both pass through these schemas before any dataclass in
:mod:`archgraph_cli.models` is built from them. Field names follow the
camelCase document shape; unknown fields are ignored.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .config import MAX_CLUSTERS, MIN_CLUSTERS
from .errors import SchemaValidationError, StepFormatError
from .models import (
    Cluster,
    ClusterEdge,
    ClusterGraph,
    ClusterGraphMetadata,
    CodeReference,
    ExampleData,
    ExecutionStep,
    FilteringDefaults,
    TechnologyStack,
    TopDependency,
)

CLUSTER_ID_PATTERN = r"^[a-z0-9-]+$"

NonEmptyStr = Annotated[str, Field(min_length=1)]


class _Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def format_validation_errors(exc: ValidationError) -> List[str]:
    """Flatten a pydantic error into ``"<dotted.path>: <message>"`` strings."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return messages


# ===================================================================
# Cluster graph payload
# ===================================================================

class TechnologyStackSchema(_Schema):
    language: Optional[str] = None
    framework: Optional[str] = None
    libraries: Optional[List[str]] = None
    databases: Optional[List[str]] = None
    messaging: Optional[List[str]] = None


class ClusterSchema(_Schema):
    id: str = Field(min_length=1, pattern=CLUSTER_ID_PATTERN)
    label: NonEmptyStr
    description: NonEmptyStr
    files: List[NonEmptyStr] = Field(min_length=1)
    key_files: List[NonEmptyStr]
    layer: Optional[Literal["presentation", "business", "data", "infrastructure"]] = None
    component_type: Optional[Literal[
        "controller", "service", "repository", "component", "gateway", "database",
        "external_system", "message_queue", "cache", "middleware", "utility", "config",
    ]] = None
    technology: Optional[TechnologyStackSchema] = None
    responsibilities: Optional[List[str]] = None


class TopDependencySchema(_Schema):
    from_path: NonEmptyStr = Field(alias="from")
    to_path: NonEmptyStr = Field(alias="to")
    count: float = Field(gt=0)


class ClusterEdgeSchema(_Schema):
    id: NonEmptyStr
    source: NonEmptyStr
    target: NonEmptyStr
    weight: float = Field(gt=0)
    label: NonEmptyStr
    top_dependencies: List[TopDependencySchema]
    relationship_type: Optional[Literal[
        "uses", "calls", "renders", "reads_from", "writes_to", "publishes_to", "subscribes_to",
    ]] = None
    protocol: Optional[Literal[
        "HTTP", "gRPC", "SQL", "Redis", "REST", "GraphQL", "WebSocket", "AMQP", "Internal",
    ]] = None
    description: Optional[str] = None


class FilteringDefaultsSchema(_Schema):
    min_edge_weight: float = Field(default=2, ge=0)
    collapsed_clusters: List[str] = Field(default_factory=list)
    visible_layers: List[str] = Field(default_factory=list)


class ClusterGraphPayload(_Schema):
    """The JSON object the collaborator must produce."""

    id: Optional[str] = None
    clusters: List[ClusterSchema] = Field(min_length=MIN_CLUSTERS, max_length=MAX_CLUSTERS)
    cluster_edges: List[ClusterEdgeSchema]
    filtering_defaults: FilteringDefaultsSchema

    @classmethod
    def validate_payload(cls, data: Any) -> "ClusterGraphPayload":
        """Validate *data*, raising :class:`SchemaValidationError` on failure."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise SchemaValidationError(format_validation_errors(exc)) from exc

    def to_cluster_graph(self, graph_id: str = "", metadata: Optional[ClusterGraphMetadata] = None) -> ClusterGraph:
        clusters = tuple(
            Cluster(
                id=c.id,
                label=c.label,
                description=c.description,
                files=tuple(c.files),
                key_files=tuple(c.key_files),
                layer=c.layer,
                component_type=c.component_type,
                technology=TechnologyStack.from_dict(c.technology.model_dump()) if c.technology else None,
                responsibilities=tuple(c.responsibilities or ()),
            )
            for c in self.clusters
        )
        edges = tuple(
            ClusterEdge(
                id=e.id,
                source=e.source,
                target=e.target,
                weight=e.weight,
                label=e.label,
                top_dependencies=tuple(
                    TopDependency(from_path=d.from_path, to_path=d.to_path, count=int(d.count))
                    for d in e.top_dependencies
                ),
                relationship_type=e.relationship_type,
                protocol=e.protocol,
                description=e.description,
            )
            for e in self.cluster_edges
        )
        defaults = FilteringDefaults(
            min_edge_weight=self.filtering_defaults.min_edge_weight,
            collapsed_clusters=tuple(self.filtering_defaults.collapsed_clusters),
            visible_layers=tuple(self.filtering_defaults.visible_layers),
        )
        return ClusterGraph(
            id=graph_id or self.id or "",
            clusters=clusters,
            cluster_edges=edges,
            filtering_defaults=defaults,
            metadata=metadata,
        )


# ===================================================================
# Execution step input
# ===================================================================

class CodeReferenceInput(_Schema):
    file_path: NonEmptyStr
    line_number: Optional[int] = Field(default=None, ge=0)
    snippet: Optional[str] = None


class ExampleDataInput(_Schema):
    format: str
    sample: str


class ExecutionStepInput(_Schema):
    step_number: int = Field(ge=1)
    component_id: NonEmptyStr
    description: str
    code_reference: CodeReferenceInput
    example_data: ExampleDataInput
    transition_to: Optional[str] = None

    def to_step(self) -> ExecutionStep:
        return ExecutionStep(
            step_number=self.step_number,
            component_id=self.component_id,
            description=self.description,
            code_reference=CodeReference(
                file_path=self.code_reference.file_path,
                line_number=self.code_reference.line_number,
                snippet=self.code_reference.snippet,
            ),
            example_data=ExampleData(format=self.example_data.format, sample=self.example_data.sample),
            transition_to=self.transition_to,
        )


_STEP_LIST = TypeAdapter(Annotated[List[ExecutionStepInput], Field(min_length=1)])


def parse_execution_steps(data: Any) -> List[ExecutionStepInput]:
    """Validate an authored step list; raises :class:`StepFormatError`."""
    if not isinstance(data, list):
        raise StepFormatError([f"execution steps must be a JSON array, got {type(data).__name__}"])
    try:
        return _STEP_LIST.validate_python(data)
    except ValidationError as exc:
        raise StepFormatError(format_validation_errors(exc)) from exc
