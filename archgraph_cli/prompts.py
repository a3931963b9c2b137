"""Prompt builders for clustering, narration and trace naming."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from .config import MAX_PROMPT_EDGES, MAX_PROMPT_FILES, MAX_PROMPT_SYMBOLS
from .models import Cluster, ClusterGraph, RepoInventory

CLUSTERING_SYSTEM_PROMPT = (
    "You are an expert software architect. "
    "Analyze codebases and create logical component groupings."
)
DATA_FLOW_SYSTEM_PROMPT = (
    "You are a technical writer explaining software architecture clearly and concisely."
)
CLUSTER_SUMMARY_SYSTEM_PROMPT = "You are a technical writer explaining software architecture."
TRACE_NAME_SYSTEM_PROMPT = (
    "You are an expert software architect. "
    "Generate concise, descriptive names for execution flows."
)


def retry_feedback(error_message: str) -> str:
    """Corrective block appended to the next clustering prompt."""
    return (
        f"\n\nPREVIOUS ATTEMPT FAILED:\n{error_message}\n\n"
        "Please fix the issues and output valid JSON."
    )


def build_inventory_summary(
    inventory: RepoInventory,
    max_files: int = MAX_PROMPT_FILES,
    max_symbols: int = MAX_PROMPT_SYMBOLS,
    max_edges: int = MAX_PROMPT_EDGES,
) -> Dict[str, Any]:
    """Bounded view of *inventory* sized for the collaborator's context window.

    Keeps the first *max_files* files with at most *max_symbols* export names
    and runtime import specifiers each, plus up to *max_edges* dependency
    edges that start at a shown file.
    """
    files = inventory.files[:max_files]
    shown = {f.path for f in files}
    return {
        "files": [
            {
                "path": f.path,
                "linesOfCode": f.lines_of_code,
                "exports": [e.name for e in f.exports][:max_symbols],
                "imports": [i.source for i in f.imports if not i.is_type_only][:max_symbols],
            }
            for f in files
        ],
        "dependencies": [
            d.to_dict() for d in inventory.dependencies if d.from_path in shown
        ][:max_edges],
    }


_CLUSTERING_INSTRUCTIONS = """You are analyzing a codebase to create a C4 Component diagram (Level 3).

C4 MODEL OVERVIEW:
- C1 System Context: how the system fits in the wider world
- C2 Container: deployable apps, databases and services
- C3 Component: logical building blocks inside a container (THIS DIAGRAM)
- C4 Code: class and function detail

A COMPONENT groups related functionality behind a well-defined interface. Components are
major architectural building blocks, not individual files.

CRITICAL CONSTRAINTS:
1. Reference ONLY file paths that appear in the inventory below
2. Never invent or guess a file path
3. Every cluster "files" array contains inventory paths only
4. Cite evidence: list 3-5 "keyFiles" per cluster, each also present in its "files"
5. Output valid JSON matching the schema exactly
6. Do not create clusters for configuration-only files (*.config.*, tsconfig.json, settings modules)
7. Do not create clusters for files that only declare types (interfaces, type aliases, protocols)
8. Ignore type-only imports; group by runtime dependencies

TASK:
Group the files into {min_clusters}-{max_clusters} C4 components by responsibility and runtime
dependencies. Give each component a componentType, 2-5 responsibilities and its technology stack.

COMPONENT TYPES (use exactly one):
- controller: HTTP handlers, API routes, REST controllers
- service: business logic, orchestration, application services
- repository: data access, database abstraction, DAOs
- component: UI components (React, Vue, Angular)
- gateway: clients for external APIs and third-party integrations
- database: schemas, ORM models, entity definitions
- external_system: integration with external systems
- message_queue: event queues, brokers, pub/sub
- cache: caching layer (Redis, Memcached, in-memory)
- middleware: request/response middleware, interceptors
- utility: shared helpers
- config: configuration and environment setup

OUTPUT JSON SCHEMA (exactly these three top-level fields; no "id", no "metadata"):
{{
  "clusters": [
    {{
      "id": "lowercase-with-hyphens",
      "label": "Business-focused label, e.g. 'User Authentication API'",
      "description": "1-2 sentence summary of the component's business purpose",
      "files": ["path/to/file1.ts", "path/to/file2.ts"],
      "keyFiles": ["path/to/file1.ts"],
      "layer": "presentation | business | data | infrastructure",
      "componentType": "controller | service | repository | component | gateway | database | external_system | message_queue | cache | middleware | utility | config",
      "responsibilities": ["Responsibility 1", "Responsibility 2"],
      "technology": {{
        "language": "TypeScript",
        "framework": "React | Express | NestJS | ...",
        "libraries": ["axios", "zod"]
      }}
    }}
  ],
  "clusterEdges": [
    {{
      "id": "source-id-to-target-id",
      "source": "source-cluster-id",
      "target": "target-cluster-id",
      "weight": 12,
      "label": "API calls",
      "relationshipType": "uses | calls | renders | reads_from | writes_to | publishes_to | subscribes_to",
      "protocol": "HTTP | gRPC | SQL | Redis | REST | GraphQL | WebSocket | AMQP | Internal",
      "description": "What is communicated, 8 words maximum",
      "topDependencies": [{{"from": "src/a.ts", "to": "src/b.ts", "count": 5}}]
    }}
  ],
  "filteringDefaults": {{"minEdgeWeight": 2, "collapsedClusters": [], "visibleLayers": []}}
}}

RELATIONSHIP TYPES:
- uses: generic usage
- calls: synchronous invocation
- renders: a UI component rendering another
- reads_from / writes_to: reading from or writing to a data store
- publishes_to / subscribes_to: producing to or consuming from a queue

PROTOCOLS:
HTTP, REST, gRPC, GraphQL, WebSocket, SQL (database queries), Redis, AMQP (queues),
Internal (in-process calls).

CLUSTERING STRATEGY:
- Use paths as hints: src/controllers/* is a controller, src/repositories/* a repository
- Use imports as hints: prisma means repository, axios means gateway
- Group by component type first, then by business domain
- Prefer balanced component sizes that are independently understandable

NAMING:
- Labels are business-domain names a product manager understands ("Payment Processing
  Service", not "PaymentService" or "payment-svc")
- Labels must match file locations: never call frontend files "Backend", or the reverse
- Descriptions say WHAT a component does for users, not HOW it is implemented
- Edge descriptions state the business action in at most 8 words
  ("Validates authentication credentials", not "calls")
"""


def build_clustering_prompt(
    inventory: RepoInventory,
    user_hint: Optional[str] = None,
    error_feedback: str = "",
    max_files: int = MAX_PROMPT_FILES,
    max_symbols: int = MAX_PROMPT_SYMBOLS,
    max_edges: int = MAX_PROMPT_EDGES,
    min_clusters: int = 5,
    max_clusters: int = 12,
) -> str:
    summary = build_inventory_summary(inventory, max_files, max_symbols, max_edges)
    total = len(inventory.files)
    heading = "INVENTORY"
    if total > max_files:
        heading += f" (showing first {max_files} of {total} files)"

    parts = [
        _CLUSTERING_INSTRUCTIONS.format(min_clusters=min_clusters, max_clusters=max_clusters),
        f"{heading}:\n{json.dumps(summary, indent=2)}\n\n",
    ]
    if user_hint:
        parts.append(f"USER HINT:\n{user_hint}\n\n")
    parts.append(error_feedback)
    parts.append("\nOUTPUT (JSON only, no markdown code fences):\n")
    return "".join(parts)


# ------------------------------------------------------------------
# Narration
# ------------------------------------------------------------------

def build_data_flow_prompt(graph: ClusterGraph) -> str:
    details = [
        {
            "id": c.id,
            "label": c.label,
            "description": c.description,
            "layer": c.layer,
            "fileCount": len(c.files),
            "keyFiles": list(c.key_files[:3]),
        }
        for c in graph.clusters
    ]
    lines = []
    for edge in graph.cluster_edges:
        source = graph.get_cluster(edge.source)
        target = graph.get_cluster(edge.target)
        if source is None or target is None or source.layer == target.layer:
            continue
        lines.append(
            f"- {source.label} ({source.layer}) -> {target.label} ({target.layer}): {edge.label}"
        )

    return f"""You are explaining the data flow in a software architecture.

ARCHITECTURE OVERVIEW:
{json.dumps(details, indent=2)}

EXECUTION PATH EDGES (how data flows between layers):
{chr(10).join(lines) or "(no cross-layer edges)"}

TASK:
Explain step by step how data flows through this architecture. Start at the presentation
layer, where user interaction begins, and follow the execution path down through business
logic, data access and infrastructure.

For each numbered step name the component, say what happens there and how it hands off to
the next step. Use the component names and edge labels above and stay on the critical path.

Example:
1. **[Component Name]** - User interaction begins here. It handles [action] and then [next].
2. **[Component Name]** - Receives [input] from the previous step, [processes it], then passes it on.
"""


def build_cluster_summary_prompt(
    cluster: Cluster,
    inventory: RepoInventory,
    graph: ClusterGraph,
) -> str:
    key_lines = []
    for path in cluster.key_files:
        record = inventory.get_file(path)
        exports = ", ".join(e.name for e in record.exports) if record and record.exports else "none"
        loc = record.lines_of_code if record else 0
        key_lines.append(f"- {path} ({loc} LOC)\n  Exports: {exports}")

    incoming = [e for e in graph.cluster_edges if e.target == cluster.id]
    outgoing = [e for e in graph.cluster_edges if e.source == cluster.id]

    def _edge_lines(edges: Sequence, attr: str) -> List[str]:
        out = []
        for edge in edges:
            other = graph.get_cluster(getattr(edge, attr))
            out.append(f"- {other.label if other else getattr(edge, attr)}: {edge.weight:g} dependencies")
        return out

    return f"""You are generating a summary for an architecture cluster.

CLUSTER DETAILS:
Name: {cluster.label}
Description: {cluster.description}
Files: {len(cluster.files)} total

KEY FILES (evidence):
{chr(10).join(key_lines) or "(none)"}

DEPENDENCIES:
Incoming ({len(incoming)} clusters depend on this):
{chr(10).join(_edge_lines(incoming, "source")) or "(none)"}

Outgoing (this cluster depends on {len(outgoing)} others):
{chr(10).join(_edge_lines(outgoing, "target")) or "(none)"}

TASK:
Write a concise 2-3 paragraph summary covering the cluster's role in the architecture, its
key files and what they do (cite file names), and how it interacts with upstream and
downstream clusters.
"""


def build_trace_name_prompt(entry_point: str, step_lines: Sequence[str]) -> str:
    return f"""Based on this execution trace, generate a concise, descriptive name (3-6 words max).

Entry Point: {entry_point}

Execution Steps:
{chr(10).join(step_lines)}

The name should capture the main action or feature being traced.
Reply with ONLY the name, no explanation.

Examples:
- "User Login Flow"
- "Todo Creation Process"
- "Payment Processing Pipeline"
"""
