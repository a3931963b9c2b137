"""Pytest configuration and fixtures for ArchGraph CLI tests."""

import copy
import shutil
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pytest

from archgraph_cli.analysis import aggregate_dependencies, collect_import_edges
from archgraph_cli.errors import CollaboratorError
from archgraph_cli.models import (
    ClusterGraph,
    ClusterGraphMetadata,
    ExportedSymbol,
    FileRecord,
    ImportRecord,
    InventoryMetadata,
    RepoInventory,
)
from archgraph_cli.schemas import ClusterGraphPayload


class ScriptedCollaborator:
    """Replays canned responses and records every prompt it receives."""

    def __init__(self, responses: Sequence[str]):
        self.responses = list(responses)
        self.prompts: List[str] = []
        self.systems: List[str] = []

    def stream(self, system: str, prompt: str) -> Iterator[str]:
        self.systems.append(system)
        self.prompts.append(prompt)
        if not self.responses:
            raise CollaboratorError("No scripted response left")
        text = self.responses.pop(0)
        for start in range(0, len(text), 64):
            yield text[start:start + 64]

    @property
    def calls(self) -> int:
        return len(self.prompts)


class _OfflineLLM:
    """Stand-in for LocalLLM so no test ever reaches a network endpoint."""

    def __init__(self, *args, **kwargs):
        self.provider_name = "offline"
        self.model = "none"

    def stream(self, system: str, prompt: str) -> Iterator[str]:
        raise CollaboratorError("LLM disabled in tests")
        yield  # pragma: no cover


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path: Path, monkeypatch):
    """Point config at a temp dir and keep the real LLM out of every test."""
    home = tmp_path / "home"
    monkeypatch.setenv("ARCHGRAPH_HOME", str(home))
    monkeypatch.setattr("archgraph_cli.config_manager.CONFIG_FILE", home / "config.toml")
    monkeypatch.setattr("archgraph_cli.orchestrator.LocalLLM", _OfflineLLM)


@pytest.fixture
def sample_project_path() -> Path:
    """Path to the TypeScript sample project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def workspace(tmp_path: Path, sample_project_path: Path) -> Path:
    """Writable copy of the sample project."""
    target = tmp_path / "workspace"
    shutil.copytree(sample_project_path, target)
    return target


def make_record(
    path: str,
    exports: Sequence[Tuple[str, str]] = (),
    imports: Sequence[Tuple[str, Any, Sequence[str]]] = (),
    language: str = "typescript",
    loc: int = 10,
) -> FileRecord:
    return FileRecord(
        path=path,
        size=loc * 20,
        lines_of_code=loc,
        exports=tuple(ExportedSymbol(name=n, kind=k) for n, k in exports),
        imports=tuple(
            ImportRecord(source=src, resolved_path=resolved, imported_symbols=tuple(symbols))
            for src, resolved, symbols in imports
        ),
        language=language,
    )


def make_inventory(records: Sequence[FileRecord], root: str = "/work/sample") -> RepoInventory:
    dependencies = aggregate_dependencies(collect_import_edges(records))
    return RepoInventory(
        files=tuple(records),
        dependencies=tuple(dependencies),
        metadata=InventoryMetadata(
            timestamp=1_700_000_000_000,
            workspace_root=root,
            file_count=len(records),
            total_loc=sum(r.lines_of_code for r in records),
            analyzed_extensions=(".ts", ".tsx"),
            duration_ms=5,
        ),
    )


@pytest.fixture
def sample_inventory() -> RepoInventory:
    """Hand-built inventory mirroring the sample project."""
    return make_inventory([
        make_record(
            "src/index.ts",
            imports=[
                ("express", None, ["default"]),
                ("./controllers/userController", "src/controllers/userController.ts", ["UserController"]),
            ],
        ),
        make_record(
            "src/controllers/userController.ts",
            exports=[("UserController", "class")],
            imports=[("../services/userService", "src/services/userService.ts", ["UserService"])],
        ),
        make_record(
            "src/services/userService.ts",
            exports=[("UserService", "class")],
            imports=[("../repositories/userRepository", "src/repositories/userRepository.ts", ["UserRepository"])],
        ),
        make_record(
            "src/repositories/userRepository.ts",
            exports=[("UserRepository", "class")],
            imports=[
                ("@prisma/client", None, ["PrismaClient"]),
                ("../models/user", "src/models/user.ts", ["USER_TABLE"]),
            ],
        ),
        make_record("src/models/user.ts", exports=[("User", "interface"), ("USER_TABLE", "const")]),
        make_record("src/utils/format.ts", exports=[("formatName", "function")]),
        make_record(
            "src/components/UserCard.tsx",
            exports=[("UserCard", "const")],
            imports=[
                ("react", None, ["default"]),
                ("../utils/format", "src/utils/format.ts", ["formatName"]),
            ],
        ),
    ])


_VALID_PAYLOAD: Dict[str, Any] = {
    "clusters": [
        {
            "id": "http-api",
            "label": "User HTTP API",
            "description": "Exposes user operations over HTTP.",
            "files": ["src/index.ts", "src/controllers/userController.ts"],
            "keyFiles": ["src/controllers/userController.ts"],
            "responsibilities": ["Route requests", "Validate input"],
        },
        {
            "id": "user-service",
            "label": "User Management Service",
            "description": "Applies user business rules.",
            "files": ["src/services/userService.ts"],
            "keyFiles": ["src/services/userService.ts"],
        },
        {
            "id": "user-data-access",
            "label": "User Data Access",
            "description": "Reads and writes user rows.",
            "files": ["src/repositories/userRepository.ts"],
            "keyFiles": ["src/repositories/userRepository.ts"],
        },
        {
            "id": "domain-models",
            "label": "User Domain Model",
            "description": "Describes the user entity.",
            "files": ["src/models/user.ts"],
            "keyFiles": ["src/models/user.ts"],
        },
        {
            "id": "user-interface",
            "label": "User Profile Interface",
            "description": "Shows user profiles in the browser.",
            "files": ["src/components/UserCard.tsx", "src/utils/format.ts"],
            "keyFiles": ["src/components/UserCard.tsx"],
        },
    ],
    "clusterEdges": [
        {
            "id": "http-api-to-user-service",
            "source": "http-api",
            "target": "user-service",
            "weight": 1,
            "label": "Delegates requests",
            "topDependencies": [
                {"from": "src/controllers/userController.ts", "to": "src/services/userService.ts", "count": 1},
            ],
        },
        {
            "id": "user-service-to-user-data-access",
            "source": "user-service",
            "target": "user-data-access",
            "weight": 1,
            "label": "Loads users",
            "topDependencies": [
                {"from": "src/services/userService.ts", "to": "src/repositories/userRepository.ts", "count": 1},
            ],
        },
        {
            "id": "user-data-access-to-domain-models",
            "source": "user-data-access",
            "target": "domain-models",
            "weight": 1,
            "label": "Maps rows",
            "topDependencies": [
                {"from": "src/repositories/userRepository.ts", "to": "src/models/user.ts", "count": 1},
            ],
        },
    ],
    "filteringDefaults": {"minEdgeWeight": 1},
}


@pytest.fixture
def valid_payload() -> Dict[str, Any]:
    """A collaborator answer that passes schema and cross-reference checks."""
    return copy.deepcopy(_VALID_PAYLOAD)


def make_graph(payload: Dict[str, Any], graph_id: str = "arch-1", timestamp: int = 1_700_000_000_000) -> ClusterGraph:
    """Validated graph with a fixed id and metadata."""
    return ClusterGraphPayload.validate_payload(payload).to_cluster_graph(
        graph_id,
        ClusterGraphMetadata(
            timestamp=timestamp,
            cluster_count=len(payload["clusters"]),
            source_inventory_hash="0" * 16,
        ),
    )


def make_step(number: int, component_id: str, transition_to: Optional[str] = None) -> Dict[str, Any]:
    step: Dict[str, Any] = {
        "stepNumber": number,
        "componentId": component_id,
        "description": f"Step {number} runs in {component_id}",
        "codeReference": {"filePath": "src/index.ts", "lineNumber": number},
        "exampleData": {"format": "json", "sample": "{}"},
    }
    if transition_to:
        step["transitionTo"] = transition_to
    return step
