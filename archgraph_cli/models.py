"""Core data models: inventories, cluster graphs and execution traces.

All models are frozen dataclasses. Sequence fields are normalised to tuples
so a snapshot cannot be edited after construction; enrichment and id
assignment build new instances with :func:`dataclasses.replace`.

``to_dict`` / ``from_dict`` translate between the Python attribute names
and the camelCase JSON documents that consumers read verbatim. Optional
fields that are unset are omitted from the JSON output.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from functools import cached_property
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

SymbolKind = Literal["function", "class", "interface", "type", "const", "enum", "variable"]
Language = Literal["typescript", "javascript", "python"]
Layer = Literal["presentation", "business", "data", "infrastructure"]
ComponentType = Literal[
    "controller",
    "service",
    "repository",
    "component",
    "gateway",
    "database",
    "external_system",
    "message_queue",
    "cache",
    "middleware",
    "utility",
    "config",
]
RelationshipType = Literal[
    "uses", "calls", "renders", "reads_from", "writes_to", "publishes_to", "subscribes_to",
]
ProtocolName = Literal[
    "HTTP", "gRPC", "SQL", "Redis", "REST", "GraphQL", "WebSocket", "AMQP", "Internal",
]

SYMBOL_KINDS: Tuple[str, ...] = ("function", "class", "interface", "type", "const", "enum", "variable")
LAYERS: Tuple[str, ...] = ("presentation", "business", "data", "infrastructure")
COMPONENT_TYPES: Tuple[str, ...] = (
    "controller", "service", "repository", "component", "gateway", "database",
    "external_system", "message_queue", "cache", "middleware", "utility", "config",
)
RELATIONSHIP_TYPES: Tuple[str, ...] = (
    "uses", "calls", "renders", "reads_from", "writes_to", "publishes_to", "subscribes_to",
)
PROTOCOLS: Tuple[str, ...] = (
    "HTTP", "gRPC", "SQL", "Redis", "REST", "GraphQL", "WebSocket", "AMQP", "Internal",
)


class _Frozen:
    """Mixin turning list-valued fields into tuples after construction."""

    def __post_init__(self) -> None:
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if isinstance(value, list):
                object.__setattr__(self, f.name, tuple(value))


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


# ===================================================================
# Inventory
# ===================================================================

@dataclass(frozen=True)
class ExportedSymbol:
    name: str
    kind: SymbolKind
    is_default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "kind": self.kind, "isDefault": self.is_default}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExportedSymbol":
        return cls(name=data["name"], kind=data["kind"], is_default=bool(data.get("isDefault", False)))


@dataclass(frozen=True)
class ImportRecord(_Frozen):
    source: str
    resolved_path: Optional[str] = None
    imported_symbols: Tuple[str, ...] = ()
    is_type_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "source": self.source,
            "resolvedPath": self.resolved_path,
            "importedSymbols": list(self.imported_symbols),
            "isTypeOnly": self.is_type_only,
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImportRecord":
        return cls(
            source=data["source"],
            resolved_path=data.get("resolvedPath"),
            imported_symbols=tuple(data.get("importedSymbols", ())),
            is_type_only=bool(data.get("isTypeOnly", False)),
        )


@dataclass(frozen=True)
class FileRecord(_Frozen):
    path: str
    size: int
    lines_of_code: int
    exports: Tuple[ExportedSymbol, ...] = ()
    imports: Tuple[ImportRecord, ...] = ()
    language: Language = "typescript"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "linesOfCode": self.lines_of_code,
            "exports": [e.to_dict() for e in self.exports],
            "imports": [i.to_dict() for i in self.imports],
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FileRecord":
        return cls(
            path=data["path"],
            size=int(data.get("size", 0)),
            lines_of_code=int(data.get("linesOfCode", 0)),
            exports=tuple(ExportedSymbol.from_dict(e) for e in data.get("exports", ())),
            imports=tuple(ImportRecord.from_dict(i) for i in data.get("imports", ())),
            language=data.get("language", "typescript"),
        )


@dataclass(frozen=True)
class DependencyEdge(_Frozen):
    from_path: str
    to_path: str
    count: int
    imported_types: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_path,
            "to": self.to_path,
            "count": self.count,
            "importedTypes": list(self.imported_types),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DependencyEdge":
        return cls(
            from_path=data["from"],
            to_path=data["to"],
            count=int(data["count"]),
            imported_types=tuple(data.get("importedTypes", ())),
        )


@dataclass(frozen=True)
class InventoryMetadata(_Frozen):
    timestamp: int
    workspace_root: str
    file_count: int
    total_loc: int
    analyzed_extensions: Tuple[str, ...] = ()
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "workspaceRoot": self.workspace_root,
            "fileCount": self.file_count,
            "totalLOC": self.total_loc,
            "analyzedExtensions": list(self.analyzed_extensions),
            "durationMs": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InventoryMetadata":
        return cls(
            timestamp=int(data["timestamp"]),
            workspace_root=data["workspaceRoot"],
            file_count=int(data.get("fileCount", 0)),
            total_loc=int(data.get("totalLOC", 0)),
            analyzed_extensions=tuple(data.get("analyzedExtensions", ())),
            duration_ms=int(data.get("durationMs", 0)),
        )


@dataclass(frozen=True)
class RepoInventory(_Frozen):
    files: Tuple[FileRecord, ...]
    dependencies: Tuple[DependencyEdge, ...]
    metadata: InventoryMetadata

    @cached_property
    def files_by_path(self) -> Dict[str, FileRecord]:
        return {f.path: f for f in self.files}

    def get_file(self, path: str) -> Optional[FileRecord]:
        return self.files_by_path.get(path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "dependencies": [d.to_dict() for d in self.dependencies],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RepoInventory":
        return cls(
            files=tuple(FileRecord.from_dict(f) for f in data.get("files", ())),
            dependencies=tuple(DependencyEdge.from_dict(d) for d in data.get("dependencies", ())),
            metadata=InventoryMetadata.from_dict(data["metadata"]),
        )


# ===================================================================
# Cluster graph
# ===================================================================

@dataclass(frozen=True)
class TechnologyStack(_Frozen):
    language: Optional[str] = None
    framework: Optional[str] = None
    libraries: Tuple[str, ...] = ()
    databases: Tuple[str, ...] = ()
    messaging: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (self.language or self.framework or self.libraries or self.databases or self.messaging)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "language": self.language,
            "framework": self.framework,
            "libraries": list(self.libraries) or None,
            "databases": list(self.databases) or None,
            "messaging": list(self.messaging) or None,
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TechnologyStack":
        return cls(
            language=data.get("language"),
            framework=data.get("framework"),
            libraries=tuple(data.get("libraries") or ()),
            databases=tuple(data.get("databases") or ()),
            messaging=tuple(data.get("messaging") or ()),
        )


@dataclass(frozen=True)
class Cluster(_Frozen):
    id: str
    label: str
    description: str
    files: Tuple[str, ...]
    key_files: Tuple[str, ...] = ()
    layer: Optional[Layer] = None
    component_type: Optional[ComponentType] = None
    technology: Optional[TechnologyStack] = None
    responsibilities: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "files": list(self.files),
            "keyFiles": list(self.key_files),
            "layer": self.layer,
            "componentType": self.component_type,
            "technology": self.technology.to_dict() if self.technology is not None else None,
            "responsibilities": list(self.responsibilities),
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Cluster":
        tech = data.get("technology")
        return cls(
            id=data["id"],
            label=data["label"],
            description=data.get("description", ""),
            files=tuple(data.get("files", ())),
            key_files=tuple(data.get("keyFiles", ())),
            layer=data.get("layer"),
            component_type=data.get("componentType"),
            technology=TechnologyStack.from_dict(tech) if tech else None,
            responsibilities=tuple(data.get("responsibilities") or ()),
        )


@dataclass(frozen=True)
class TopDependency:
    from_path: str
    to_path: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"from": self.from_path, "to": self.to_path, "count": self.count}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TopDependency":
        return cls(from_path=data["from"], to_path=data["to"], count=int(data["count"]))


@dataclass(frozen=True)
class ClusterEdge(_Frozen):
    id: str
    source: str
    target: str
    weight: float
    label: str
    top_dependencies: Tuple[TopDependency, ...] = ()
    relationship_type: Optional[RelationshipType] = None
    protocol: Optional[ProtocolName] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "weight": self.weight,
            "label": self.label,
            "topDependencies": [d.to_dict() for d in self.top_dependencies],
            "relationshipType": self.relationship_type,
            "protocol": self.protocol,
            "description": self.description,
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClusterEdge":
        return cls(
            id=data["id"],
            source=data["source"],
            target=data["target"],
            weight=data["weight"],
            label=data["label"],
            top_dependencies=tuple(TopDependency.from_dict(d) for d in data.get("topDependencies", ())),
            relationship_type=data.get("relationshipType"),
            protocol=data.get("protocol"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class FilteringDefaults(_Frozen):
    min_edge_weight: float = 2
    collapsed_clusters: Tuple[str, ...] = ()
    visible_layers: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minEdgeWeight": self.min_edge_weight,
            "collapsedClusters": list(self.collapsed_clusters),
            "visibleLayers": list(self.visible_layers),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FilteringDefaults":
        return cls(
            min_edge_weight=data.get("minEdgeWeight", 2),
            collapsed_clusters=tuple(data.get("collapsedClusters", ())),
            visible_layers=tuple(data.get("visibleLayers", ())),
        )


@dataclass(frozen=True)
class ClusterGraphMetadata:
    timestamp: int
    cluster_count: int
    source_inventory_hash: str
    schema_version: int = 2
    c4_level: str = "C3"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "clusterCount": self.cluster_count,
            "sourceInventoryHash": self.source_inventory_hash,
            "schemaVersion": self.schema_version,
            "c4Level": self.c4_level,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClusterGraphMetadata":
        return cls(
            timestamp=int(data["timestamp"]),
            cluster_count=int(data["clusterCount"]),
            source_inventory_hash=data["sourceInventoryHash"],
            schema_version=int(data.get("schemaVersion", 2)),
            c4_level=data.get("c4Level", "C3"),
        )


@dataclass(frozen=True)
class ClusterGraph(_Frozen):
    id: str
    clusters: Tuple[Cluster, ...]
    cluster_edges: Tuple[ClusterEdge, ...]
    filtering_defaults: FilteringDefaults = field(default_factory=FilteringDefaults)
    metadata: Optional[ClusterGraphMetadata] = None
    name: Optional[str] = None

    @cached_property
    def clusters_by_id(self) -> Dict[str, Cluster]:
        return {c.id: c for c in self.clusters}

    @property
    def cluster_ids(self) -> List[str]:
        return [c.id for c in self.clusters]

    def get_cluster(self, cluster_id: str) -> Optional[Cluster]:
        return self.clusters_by_id.get(cluster_id)

    def find_edge(self, source: str, target: str) -> Optional[ClusterEdge]:
        for edge in self.cluster_edges:
            if edge.source == source and edge.target == target:
                return edge
        return None

    def file_count(self) -> int:
        return len({path for c in self.clusters for path in c.files})

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "name": self.name,
            "clusters": [c.to_dict() for c in self.clusters],
            "clusterEdges": [e.to_dict() for e in self.cluster_edges],
            "filteringDefaults": self.filtering_defaults.to_dict(),
            "metadata": self.metadata.to_dict() if self.metadata is not None else None,
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClusterGraph":
        meta = data.get("metadata")
        return cls(
            id=data.get("id", ""),
            clusters=tuple(Cluster.from_dict(c) for c in data.get("clusters", ())),
            cluster_edges=tuple(ClusterEdge.from_dict(e) for e in data.get("clusterEdges", ())),
            filtering_defaults=FilteringDefaults.from_dict(data.get("filteringDefaults") or {}),
            metadata=ClusterGraphMetadata.from_dict(meta) if meta else None,
            name=data.get("name"),
        )


# ===================================================================
# Execution traces
# ===================================================================

@dataclass(frozen=True)
class CodeReference:
    file_path: str
    line_number: Optional[int] = None
    snippet: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"filePath": self.file_path, "lineNumber": self.line_number, "snippet": self.snippet})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CodeReference":
        return cls(file_path=data["filePath"], line_number=data.get("lineNumber"), snippet=data.get("snippet"))


@dataclass(frozen=True)
class ExampleData:
    format: str
    sample: str

    def to_dict(self) -> Dict[str, Any]:
        return {"format": self.format, "sample": self.sample}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExampleData":
        return cls(format=data["format"], sample=data["sample"])


@dataclass(frozen=True)
class ExecutionStep:
    step_number: int
    component_id: str
    description: str
    code_reference: CodeReference
    example_data: ExampleData
    transition_to: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # transitionTo is always present; null marks the terminal step.
        return {
            "stepNumber": self.step_number,
            "componentId": self.component_id,
            "description": self.description,
            "codeReference": self.code_reference.to_dict(),
            "exampleData": self.example_data.to_dict(),
            "transitionTo": self.transition_to,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExecutionStep":
        return cls(
            step_number=int(data["stepNumber"]),
            component_id=data["componentId"],
            description=data["description"],
            code_reference=CodeReference.from_dict(data["codeReference"]),
            example_data=ExampleData.from_dict(data["exampleData"]),
            transition_to=data.get("transitionTo"),
        )


@dataclass(frozen=True)
class AnimatedEdge:
    edge_id: str
    animation_order: int
    duration_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {"edgeId": self.edge_id, "animationOrder": self.animation_order, "durationMs": self.duration_ms}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnimatedEdge":
        return cls(
            edge_id=data["edgeId"],
            animation_order=int(data["animationOrder"]),
            duration_ms=int(data["durationMs"]),
        )


@dataclass(frozen=True)
class TraceMetadata:
    timestamp: int
    total_steps: int
    components_involved: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "totalSteps": self.total_steps,
            "componentsInvolved": self.components_involved,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TraceMetadata":
        return cls(
            timestamp=int(data["timestamp"]),
            total_steps=int(data["totalSteps"]),
            components_involved=int(data["componentsInvolved"]),
        )


@dataclass(frozen=True)
class ComponentExecutionTrace(_Frozen):
    id: str
    base_diagram_id: str
    entry_point: str
    steps: Tuple[ExecutionStep, ...]
    highlighted_components: Tuple[str, ...]
    animated_edges: Tuple[AnimatedEdge, ...]
    metadata: TraceMetadata
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "name": self.name,
            "baseDiagramId": self.base_diagram_id,
            "entryPoint": self.entry_point,
            "steps": [s.to_dict() for s in self.steps],
            "highlightedComponents": list(self.highlighted_components),
            "animatedEdges": [e.to_dict() for e in self.animated_edges],
            "metadata": self.metadata.to_dict(),
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComponentExecutionTrace":
        return cls(
            id=data.get("id", ""),
            base_diagram_id=data["baseDiagramId"],
            entry_point=data["entryPoint"],
            steps=tuple(ExecutionStep.from_dict(s) for s in data.get("steps", ())),
            highlighted_components=tuple(data.get("highlightedComponents", ())),
            animated_edges=tuple(AnimatedEdge.from_dict(e) for e in data.get("animatedEdges", ())),
            metadata=TraceMetadata.from_dict(data["metadata"]),
            name=data.get("name"),
        )
