"""Heuristic C4 classification: component types, technology stacks, edge semantics.

Every table here is an ordered rule list evaluated first-match-wins; the
order encodes precedence (controllers before gateways, ``next`` before
``react``, and so on), so rules are appended, never sorted.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import (
    Cluster,
    ClusterEdge,
    ClusterGraph,
    FileRecord,
    RepoInventory,
    TechnologyStack,
    TopDependency,
)

logger = logging.getLogger(__name__)

MAX_LIBRARIES = 5
WRITE_EVIDENCE_THRESHOLD = 5


@dataclass(frozen=True)
class FileFacts:
    """Normalised view of a FileRecord used by the path/import heuristics."""

    path: str                 # lowercased, always starting with "/"
    file_name: str            # lowercased basename
    original_name: str        # basename with its original casing
    export_names: Tuple[str, ...]
    export_kinds: Tuple[str, ...]
    packages: Tuple[str, ...]  # lowercased non-relative import specifiers

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileFacts":
        original_name = record.path.rsplit("/", 1)[-1]
        return cls(
            path="/" + record.path.lower().lstrip("/"),
            file_name=original_name.lower(),
            original_name=original_name,
            export_names=tuple(e.name for e in record.exports),
            export_kinds=tuple(e.kind for e in record.exports),
            packages=package_specifiers([record]),
        )

    def in_dir(self, *names: str) -> bool:
        return any(f"/{name}/" in self.path for name in names)

    def name_has(self, *fragments: str) -> bool:
        return any(fragment in self.file_name for fragment in fragments)

    def imports_any(self, *tokens: str) -> bool:
        return any(package_matches(spec, token) for spec in self.packages for token in tokens)


def package_specifiers(records: Sequence[FileRecord]) -> Tuple[str, ...]:
    """Lowercased import specifiers that name packages rather than local files."""
    return tuple(
        imp.source.lower()
        for record in records
        for imp in record.imports
        if not imp.source.startswith((".", "/"))
    )


_SHORT_TOKEN_CACHE: Dict[str, "re.Pattern[str]"] = {}


def package_matches(specifier: str, token: str) -> bool:
    """Substring match, except that tokens of two characters or fewer
    (``pg``, ``ws``) must stand alone between non-alphanumerics."""
    if len(token) > 2:
        return token in specifier
    pattern = _SHORT_TOKEN_CACHE.get(token)
    if pattern is None:
        pattern = re.compile(rf"(?:^|[^a-z0-9]){re.escape(token)}(?:$|[^a-z0-9])")
        _SHORT_TOKEN_CACHE[token] = pattern
    return pattern.search(specifier) is not None


# ===================================================================
# Component type
# ===================================================================

def _is_client_file(f: FileFacts) -> bool:
    return f.name_has("client.", "gateway.")


def _is_controller(f: FileFacts) -> bool:
    if _is_client_file(f):
        return False
    return (
        f.in_dir("controllers", "routes", "api")
        or f.name_has("controller.", "route.")
        or any(n.endswith("Controller") for n in f.export_names)
    )


def _is_middleware(f: FileFacts) -> bool:
    return (
        f.in_dir("middleware")
        or f.name_has("middleware.")
        or any("middleware" in n.lower() for n in f.export_names)
    )


def _is_service(f: FileFacts) -> bool:
    return (
        f.in_dir("services")
        or f.name_has("service.", "manager.")
        or any(n.endswith("Service") for n in f.export_names)
    )


def _is_repository(f: FileFacts) -> bool:
    return (
        f.in_dir("repositories", "data-access", "dao")
        or f.name_has("repository.", "dao.")
        or any(n.endswith("Repository") for n in f.export_names)
        or f.imports_any("prisma", "typeorm", "mongoose")
    )


def _is_database(f: FileFacts) -> bool:
    return (
        f.in_dir("models", "entities", "schemas")
        or f.name_has("model.", "entity.", "schema.")
        or f.imports_any("@prisma/client", "sequelize", "sqlalchemy")
    )


def _is_ui_component(f: FileFacts) -> bool:
    if f.in_dir("components", "views", "pages"):
        return True
    stem = re.sub(r"\.(tsx|jsx|ts|js)$", "", f.original_name)
    return (
        f.file_name.endswith((".tsx", ".jsx"))
        and any(kind in ("function", "const") for kind in f.export_kinds)
        and stem[:1].isupper()
    )


def _is_gateway(f: FileFacts) -> bool:
    if f.in_dir("gateways", "clients") or _is_client_file(f):
        return True
    return not f.in_dir("controllers", "routes", "api") and f.imports_any("axios", "@octokit")


def _is_message_queue(f: FileFacts) -> bool:
    return (
        f.in_dir("queue", "events", "jobs")
        or f.name_has("queue.", "worker.")
        or f.imports_any("bull", "kafka", "rabbitmq", "amqp", "celery", "pika")
    )


def _is_cache(f: FileFacts) -> bool:
    return f.in_dir("cache") or f.name_has("cache.") or f.imports_any("redis", "memcached", "node-cache")


def _is_external_system(f: FileFacts) -> bool:
    return f.in_dir("third-party", "external")


def _is_config(f: FileFacts) -> bool:
    return (
        f.in_dir("config")
        or f.name_has("config.", "settings.")
        or f.file_name in ("constants.ts", "env.ts", "constants.py")
    )


COMPONENT_TYPE_RULES: List[Tuple[str, Callable[[FileFacts], bool]]] = [
    ("controller", _is_controller),
    ("middleware", _is_middleware),
    ("service", _is_service),
    ("repository", _is_repository),
    ("database", _is_database),
    ("component", _is_ui_component),
    ("gateway", _is_gateway),
    ("message_queue", _is_message_queue),
    ("cache", _is_cache),
    ("external_system", _is_external_system),
    ("config", _is_config),
]

LAYER_BY_COMPONENT_TYPE: Dict[str, str] = {
    "controller": "presentation",
    "component": "presentation",
    "middleware": "presentation",
    "service": "business",
    "repository": "data",
    "database": "data",
    "cache": "data",
    "gateway": "infrastructure",
    "external_system": "infrastructure",
    "message_queue": "infrastructure",
    "config": "infrastructure",
    "utility": "infrastructure",
}


# ===================================================================
# Technology stack
# ===================================================================

LANGUAGE_NAMES: Dict[str, str] = {
    "typescript": "TypeScript",
    "javascript": "JavaScript",
    "python": "Python",
}

FRAMEWORK_RULES: List[Tuple[str, str]] = [
    ("next", "Next.js"),
    ("@nestjs", "NestJS"),
    ("express", "Express"),
    ("react", "React"),
    ("vue", "Vue"),
    ("angular", "Angular"),
    ("fastify", "Fastify"),
    ("koa", "Koa"),
    ("django", "Django"),
    ("fastapi", "FastAPI"),
    ("flask", "Flask"),
]

LIBRARY_RULES: List[Tuple[str, str]] = [
    ("axios", "Axios"),
    ("zod", "Zod"),
    ("rxjs", "RxJS"),
    ("lodash", "Lodash"),
    ("date-fns", "date-fns"),
    ("uuid", "uuid"),
    ("joi", "Joi"),
    ("yup", "Yup"),
    ("pydantic", "Pydantic"),
    ("requests", "Requests"),
    ("httpx", "HTTPX"),
]

DATABASE_RULES: List[Tuple[str, str]] = [
    ("@prisma/client", "Prisma"),
    ("prisma", "Prisma"),
    ("typeorm", "TypeORM"),
    ("mongoose", "MongoDB"),
    ("pymongo", "MongoDB"),
    ("sequelize", "Sequelize"),
    ("sqlalchemy", "SQLAlchemy"),
    ("pg", "PostgreSQL"),
    ("psycopg", "PostgreSQL"),
    ("mysql", "MySQL"),
    ("sqlite", "SQLite"),
]

MESSAGING_RULES: List[Tuple[str, str]] = [
    ("kafka", "Kafka"),
    ("rabbitmq", "RabbitMQ"),
    ("amqp", "AMQP"),
    ("bull", "Bull"),
    ("celery", "Celery"),
    ("redis", "Redis"),
]


# ===================================================================
# Edge semantics
# ===================================================================

# (source type or None for any, target type or None for any, relationship)
RELATIONSHIP_RULES: List[Tuple[Optional[str], Optional[str], str]] = [
    ("component", "component", "renders"),
    ("controller", "service", "calls"),
    ("service", "service", "calls"),
    ("service", "repository", "calls"),
    ("repository", "database", "reads_from"),  # upgraded to writes_to on heavy evidence
    (None, "message_queue", "publishes_to"),
    ("message_queue", None, "subscribes_to"),
    ("gateway", None, "calls"),
    (None, "external_system", "calls"),
]

# (source type, target type, relationship or None for any, description)
DESCRIPTION_RULES: List[Tuple[Optional[str], Optional[str], Optional[str], str]] = [
    ("controller", "service", None, "Delegates business operations"),
    ("service", "repository", None, "Requests data operations"),
    ("repository", "database", "writes_to", "Persists data"),
    ("repository", "database", None, "Queries data"),
    ("service", "gateway", None, "Calls external APIs"),
    ("gateway", "external_system", None, "Integrates with external services"),
    (None, "message_queue", None, "Publishes events"),
    ("message_queue", None, None, "Receives events"),
    (None, "cache", None, "Caches data"),
    ("component", "component", None, "Renders child components"),
    ("component", "service", None, "Invokes operations"),
    ("middleware", "service", None, "Forwards requests"),
]

DESCRIPTION_BY_RELATIONSHIP: Dict[str, str] = {
    "calls": "Invokes operations",
    "uses": "Uses functionality",
    "renders": "Displays content",
    "reads_from": "Reads data",
    "writes_to": "Writes data",
    "publishes_to": "Sends messages",
    "subscribes_to": "Receives messages",
}

# Evidence from the importing files wins over component-type defaults.
PROTOCOL_IMPORT_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("grpc",), "gRPC"),
    (("graphql", "apollo"), "GraphQL"),
    (("socket.io", "ws", "websocket"), "WebSocket"),
]

# (source type or None, target type or None, protocol)
PROTOCOL_TYPE_RULES: List[Tuple[Optional[str], Optional[str], str]] = [
    (None, "database", "SQL"),
    (None, "cache", "Redis"),
    (None, "message_queue", "AMQP"),
    ("controller", None, "HTTP"),
    (None, "gateway", "HTTP"),
    ("gateway", None, "REST"),
    (None, "external_system", "REST"),
]


def _pair_matches(rule_from: Optional[str], rule_to: Optional[str], src: Optional[str], dst: Optional[str]) -> bool:
    return (rule_from is None or rule_from == src) and (rule_to is None or rule_to == dst)


class ComponentDetector:
    """Deterministic classifier behind :func:`enrich_cluster_graph`."""

    def detect_component_type(self, record: FileRecord) -> str:
        facts = FileFacts.from_record(record)
        for component_type, matches in COMPONENT_TYPE_RULES:
            if matches(facts):
                return component_type
        return "utility"

    def detect_technology_stack(self, records: Sequence[FileRecord]) -> TechnologyStack:
        packages = package_specifiers(records)

        def _first(rules: List[Tuple[str, str]]) -> Optional[str]:
            for token, name in rules:
                if any(package_matches(spec, token) for spec in packages):
                    return name
            return None

        def _all(rules: List[Tuple[str, str]], limit: Optional[int] = None) -> Tuple[str, ...]:
            found: List[str] = []
            for token, name in rules:
                if name in found:
                    continue
                if any(package_matches(spec, token) for spec in packages):
                    found.append(name)
                    if limit is not None and len(found) >= limit:
                        break
            return tuple(found)

        language = None
        if records:
            counts = Counter(r.language for r in records)
            language = LANGUAGE_NAMES.get(counts.most_common(1)[0][0])
        return TechnologyStack(
            language=language,
            framework=_first(FRAMEWORK_RULES),
            libraries=_all(LIBRARY_RULES, MAX_LIBRARIES),
            databases=_all(DATABASE_RULES),
            messaging=_all(MESSAGING_RULES),
        )

    def detect_relationship_type(
        self,
        source: Cluster,
        target: Cluster,
        top_dependency: Optional[TopDependency] = None,
    ) -> str:
        src, dst = source.component_type, target.component_type
        if not src or not dst:
            return "uses"
        for rule_from, rule_to, relationship in RELATIONSHIP_RULES:
            if _pair_matches(rule_from, rule_to, src, dst):
                if relationship == "reads_from" and top_dependency and top_dependency.count > WRITE_EVIDENCE_THRESHOLD:
                    return "writes_to"
                return relationship
        return "uses"

    def describe_edge(self, source: Cluster, target: Cluster, relationship_type: str) -> str:
        src, dst = source.component_type, target.component_type
        for rule_from, rule_to, relationship, text in DESCRIPTION_RULES:
            if relationship is not None and relationship != relationship_type:
                continue
            if _pair_matches(rule_from, rule_to, src, dst):
                return text
        return DESCRIPTION_BY_RELATIONSHIP.get(relationship_type, "Interacts with")

    def detect_protocol(
        self,
        source: Cluster,
        target: Cluster,
        top_dependencies: Sequence[TopDependency],
        inventory: RepoInventory,
    ) -> str:
        evidence = [inventory.get_file(dep.from_path) for dep in top_dependencies]
        packages = package_specifiers([r for r in evidence if r is not None])
        for tokens, protocol in PROTOCOL_IMPORT_RULES:
            if any(package_matches(spec, token) for spec in packages for token in tokens):
                return protocol
        for rule_from, rule_to, protocol in PROTOCOL_TYPE_RULES:
            if _pair_matches(rule_from, rule_to, source.component_type, target.component_type):
                return protocol
        return "Internal"


def enrich_cluster_graph(
    graph: ClusterGraph,
    inventory: RepoInventory,
    detector: Optional[ComponentDetector] = None,
) -> ClusterGraph:
    """Return a copy of *graph* with unset classification fields filled in.

    Values the collaborator supplied are kept. Clusters whose files are all
    missing from *inventory* are left untouched.
    """
    detector = detector or ComponentDetector()

    clusters: List[Cluster] = []
    for cluster in graph.clusters:
        records = [r for r in (inventory.get_file(p) for p in cluster.files) if r is not None]
        if not records:
            clusters.append(cluster)
            continue

        component_type = cluster.component_type
        if component_type is None:
            key = inventory.get_file(cluster.key_files[0]) if cluster.key_files else records[0]
            if key is not None:
                component_type = detector.detect_component_type(key)

        technology = cluster.technology
        if technology is None or technology.is_empty():
            technology = detector.detect_technology_stack(records)

        layer = cluster.layer
        if layer is None and component_type is not None:
            layer = LAYER_BY_COMPONENT_TYPE.get(component_type)

        clusters.append(replace(
            cluster,
            component_type=component_type,
            technology=technology,
            layer=layer,
        ))

    by_id = {c.id: c for c in clusters}
    edges: List[ClusterEdge] = []
    for edge in graph.cluster_edges:
        source, target = by_id.get(edge.source), by_id.get(edge.target)
        if source is None or target is None:
            edges.append(edge)
            continue

        relationship = edge.relationship_type or detector.detect_relationship_type(
            source, target, edge.top_dependencies[0] if edge.top_dependencies else None,
        )
        protocol = edge.protocol or detector.detect_protocol(
            source, target, edge.top_dependencies, inventory,
        )
        description = edge.description or detector.describe_edge(source, target, relationship)
        edges.append(replace(
            edge,
            relationship_type=relationship,
            protocol=protocol,
            description=description,
        ))

    logger.info("Enriched %d clusters and %d edges", len(clusters), len(edges))
    return replace(graph, clusters=tuple(clusters), cluster_edges=tuple(edges))
