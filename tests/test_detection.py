"""Tests for heuristic component classification and graph enrichment."""

import pytest

from archgraph_cli.detection import ComponentDetector, enrich_cluster_graph, package_matches
from archgraph_cli.models import Cluster, ClusterEdge, ClusterGraph, TechnologyStack, TopDependency
from archgraph_cli.schemas import ClusterGraphPayload

from conftest import make_inventory, make_record


@pytest.fixture
def detector() -> ComponentDetector:
    return ComponentDetector()


def _cluster(cid: str, component_type=None, files=("src/x.ts",)) -> Cluster:
    return Cluster(id=cid, label=cid, description=cid, files=files, component_type=component_type)


class TestComponentType:
    """First-match-wins component type rules."""

    @pytest.mark.parametrize(
        "path, exports, imports, expected",
        [
            ("src/controllers/user.ts", [], [], "controller"),
            ("src/api/githubClient.ts", [], [], "gateway"),
            ("src/auth/handler.ts", [("AuthController", "class")], [], "controller"),
            ("src/middleware/auth.ts", [], [], "middleware"),
            ("src/billing/invoice.service.ts", [], [], "service"),
            ("src/data/users.ts", [], [("typeorm", None, [])], "repository"),
            ("src/entities/order.ts", [], [], "database"),
            ("src/widgets/ProfileCard.tsx", [("ProfileCard", "function")], [], "component"),
            ("src/lib/http.ts", [], [("axios", None, [])], "gateway"),
            ("src/jobs/sendEmail.ts", [], [], "message_queue"),
            ("src/lib/store.ts", [], [("ioredis", None, [])], "cache"),
            ("src/external/stripe.ts", [], [], "external_system"),
            ("settings.py", [], [], "config"),
            ("src/lib/strings.ts", [], [], "utility"),
        ],
    )
    def test_rules(self, detector, path, exports, imports, expected):
        record = make_record(path, exports=exports, imports=imports)
        assert detector.detect_component_type(record) == expected

    def test_root_level_directory_still_matches(self, detector):
        assert detector.detect_component_type(make_record("controllers/user.ts")) == "controller"

    def test_relative_imports_are_not_package_evidence(self, detector):
        record = make_record("src/lib/prismaHelpers.ts", imports=[("./prisma-like", "src/lib/prisma-like.ts", [])])
        assert detector.detect_component_type(record) == "utility"


class TestTechnologyStack:
    """Per-cluster technology aggregation."""

    def test_typescript_backend(self, detector):
        records = [
            make_record("src/a.ts", imports=[("express", None, []), ("zod", None, []), ("@prisma/client", None, [])]),
            make_record("src/b.ts", imports=[("pg", None, []), ("kafkajs", None, [])]),
        ]
        stack = detector.detect_technology_stack(records)
        assert stack == TechnologyStack(
            language="TypeScript",
            framework="Express",
            libraries=("Zod",),
            databases=("Prisma", "PostgreSQL"),
            messaging=("Kafka",),
        )

    def test_framework_priority(self, detector):
        record = make_record("app/page.tsx", imports=[("react", None, []), ("next/link", None, [])])
        assert detector.detect_technology_stack([record]).framework == "Next.js"

    def test_python_stack(self, detector):
        record = make_record(
            "app/api.py",
            imports=[("fastapi", None, []), ("sqlalchemy.orm", None, []), ("celery", None, [])],
            language="python",
        )
        stack = detector.detect_technology_stack([record])
        assert stack.language == "Python"
        assert stack.framework == "FastAPI"
        assert stack.databases == ("SQLAlchemy",)
        assert stack.messaging == ("Celery",)

    def test_library_cap(self, detector):
        packages = ["axios", "zod", "rxjs", "lodash", "date-fns", "uuid", "joi"]
        record = make_record("src/a.js", imports=[(p, None, []) for p in packages], language="javascript")
        stack = detector.detect_technology_stack([record])
        assert len(stack.libraries) == 5
        assert stack.language == "JavaScript"


class TestEdgeSemantics:
    """Relationship, description and protocol inference."""

    def test_relationship_rules(self, detector):
        rel = detector.detect_relationship_type
        assert rel(_cluster("a", "controller"), _cluster("b", "service")) == "calls"
        assert rel(_cluster("a", "component"), _cluster("b", "component")) == "renders"
        assert rel(_cluster("a", "service"), _cluster("b", "message_queue")) == "publishes_to"
        assert rel(_cluster("a", "message_queue"), _cluster("b", "service")) == "subscribes_to"
        assert rel(_cluster("a", "utility"), _cluster("b", "config")) == "uses"
        assert rel(_cluster("a"), _cluster("b", "service")) == "uses"

    def test_repository_write_threshold(self, detector):
        repo, db = _cluster("r", "repository"), _cluster("d", "database")
        light = TopDependency("a.ts", "b.ts", 5)
        heavy = TopDependency("a.ts", "b.ts", 6)
        assert detector.detect_relationship_type(repo, db, light) == "reads_from"
        assert detector.detect_relationship_type(repo, db, heavy) == "writes_to"
        assert detector.describe_edge(repo, db, "writes_to") == "Persists data"
        assert detector.describe_edge(repo, db, "reads_from") == "Queries data"

    def test_description_fallbacks(self, detector):
        assert detector.describe_edge(_cluster("a", "utility"), _cluster("b", "config"), "uses") == "Uses functionality"
        assert detector.describe_edge(_cluster("a", "utility"), _cluster("b", "utility"), "other") == "Interacts with"

    def test_protocol_prefers_import_evidence(self, detector):
        inventory = make_inventory([
            make_record("src/a.ts", imports=[("@grpc/grpc-js", None, [])]),
            make_record("src/b.ts"),
        ])
        deps = [TopDependency("src/a.ts", "src/b.ts", 1)]
        protocol = detector.detect_protocol(_cluster("a", "service"), _cluster("b", "database"), deps, inventory)
        assert protocol == "gRPC"

    def test_protocol_type_defaults(self, detector, sample_inventory):
        proto = lambda s, t: detector.detect_protocol(_cluster("a", s), _cluster("b", t), [], sample_inventory)
        assert proto("service", "database") == "SQL"
        assert proto("service", "cache") == "Redis"
        assert proto("controller", "service") == "HTTP"
        assert proto("gateway", "utility") == "REST"
        assert proto("service", "utility") == "Internal"

    def test_short_tokens_need_boundaries(self):
        assert package_matches("ws", "ws")
        assert package_matches("@types/ws", "ws")
        assert not package_matches("aws-sdk", "ws")
        assert not package_matches("npm-run-all", "pg")


class TestEnrichment:
    """enrich_cluster_graph fills only what is missing."""

    def test_fills_sample_graph(self, sample_inventory, valid_payload):
        graph = ClusterGraphPayload.validate_payload(valid_payload).to_cluster_graph()
        enriched = enrich_cluster_graph(graph, sample_inventory)

        types = {c.id: c.component_type for c in enriched.clusters}
        assert types == {
            "http-api": "controller",
            "user-service": "service",
            "user-data-access": "repository",
            "domain-models": "database",
            "user-interface": "component",
        }
        assert enriched.get_cluster("http-api").layer == "presentation"
        assert enriched.get_cluster("http-api").technology.framework == "Express"
        assert enriched.get_cluster("user-data-access").technology.databases == ("Prisma",)

        edges = {e.id: e for e in enriched.cluster_edges}
        api_edge = edges["http-api-to-user-service"]
        assert (api_edge.relationship_type, api_edge.protocol, api_edge.description) == (
            "calls", "HTTP", "Delegates business operations",
        )
        data_edge = edges["user-data-access-to-domain-models"]
        assert (data_edge.relationship_type, data_edge.protocol) == ("reads_from", "SQL")
        # the input graph is untouched
        assert graph.get_cluster("http-api").component_type is None

    def test_keeps_collaborator_values(self, sample_inventory):
        cluster = Cluster(
            id="api",
            label="API",
            description="d",
            files=("src/controllers/userController.ts",),
            component_type="gateway",
            layer="business",
            technology=TechnologyStack(language="Go"),
        )
        edge = ClusterEdge(id="e", source="api", target="api", weight=1, label="self", protocol="GraphQL")
        enriched = enrich_cluster_graph(ClusterGraph(id="g", clusters=(cluster,), cluster_edges=(edge,)), sample_inventory)

        kept = enriched.clusters[0]
        assert (kept.component_type, kept.layer, kept.technology.language) == ("gateway", "business", "Go")
        assert enriched.cluster_edges[0].protocol == "GraphQL"

    def test_cluster_without_inventory_files_is_left_alone(self, sample_inventory):
        cluster = _cluster("ghost", files=("nowhere.ts",))
        enriched = enrich_cluster_graph(ClusterGraph(id="g", clusters=(cluster,), cluster_edges=()), sample_inventory)
        assert enriched.clusters[0] == cluster
