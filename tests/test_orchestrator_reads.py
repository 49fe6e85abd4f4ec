import pytest
from starlette.testclient import TestClient

from knowledge_hub.audit import AuditRecord
from knowledge_hub.orchestrator import create_orchestrator_app
from knowledge_hub.orchestrator.flows import ORCHESTRATOR_TOOLS, SUGGESTIONS, SUMMARY_UNAVAILABLE


def _insert(store, title="Notes", content="First sentence. Second one. Third. Fourth."):
    return store.insert_document(
        title=title,
        content=content,
        category="Education",
        tags=["notes"],
        file_name=None,
        classification=None,
        entities=[],
        metadata={},
        created_at="2024-01-01T00:00:00+00:00",
    )


def test_get_document_with_summary(make_orchestrator_app, store):
    doc_id = _insert(store)
    client = TestClient(make_orchestrator_app())

    response = client.get(f"/api/document/{doc_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["document"]["id"] == doc_id
    assert body["document"]["content"].startswith("First sentence.")
    assert body["summary"] == "First sentence. Second one. Third."
    assert body["related_graph_data"] == []
    assert body["degraded"] == []


def test_missing_document_is_404(make_orchestrator_app):
    client = TestClient(make_orchestrator_app())

    response = client.get("/api/document/4242")

    assert response.status_code == 404
    assert response.json()["error"] == "Document not found"


def test_non_positive_document_id_is_404(make_orchestrator_app, recording, backend_apps):
    storage = recording(backend_apps["storage"])
    client = TestClient(make_orchestrator_app(storage=storage))

    response = client.get("/api/document/0")

    assert response.status_code == 404
    assert response.json()["error"] == "Document not found"
    assert storage.paths == []


def test_document_with_storage_down_is_500(make_orchestrator_app, unreachable):
    client = TestClient(make_orchestrator_app(storage=unreachable()))

    response = client.get("/api/document/1")

    assert response.status_code == 500
    assert response.json()["success"] is False


def test_document_survives_generation_outage(make_orchestrator_app, store, timed_out):
    doc_id = _insert(store)
    client = TestClient(make_orchestrator_app(generation=timed_out()))

    body = client.get(f"/api/document/{doc_id}").json()

    assert body["summary"] == SUMMARY_UNAVAILABLE
    assert body["degraded"] == ["generate_summary"]


def test_recommendations_do_not_write_audit(make_orchestrator_app, store, audit):
    _insert(store, title="Trending")
    audit.append(
        AuditRecord(
            user_id="carol",
            action_type="search",
            target_type="system",
            target_id="search_results",
            metadata={"query": "x"},
        )
    )
    client = TestClient(make_orchestrator_app())

    body = client.get("/api/recommendations/carol").json()

    assert body["user_id"] == "carol"
    assert [item["action_type"] for item in body["recent_interactions"]] == ["search"]
    assert [doc["title"] for doc in body["trending_documents"]] == ["Trending"]
    assert body["graph_insights"]["total_nodes"] == 0
    assert body["recommendations"] == list(SUGGESTIONS)
    assert len(audit.recent()) == 1


def test_recommendations_default_user(make_orchestrator_app):
    client = TestClient(make_orchestrator_app())

    body = client.get("/api/recommendations").json()

    assert body["user_id"] == "anonymous"
    assert body["recent_interactions"] == []


def test_recommendations_with_backends_down(make_orchestrator_app, unreachable):
    client = TestClient(make_orchestrator_app(storage=unreachable(), graph=unreachable()))

    body = client.get("/api/recommendations/dave").json()

    assert body["trending_documents"] == []
    assert body["graph_insights"] == {}
    assert body["degraded"] == ["trending_documents", "graph_stats"]


def test_health_reports_dependents(make_orchestrator_app, unreachable):
    client = TestClient(make_orchestrator_app(graph=unreachable()))

    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["service"] == "knowledge-orchestrator"
    assert body["dependentServiceHealth"] == {
        "storage": "healthy",
        "graph": "unreachable",
        "generation": "healthy",
        "search": "healthy",
    }


def test_status(make_orchestrator_app, store, audit):
    _insert(store)
    audit.append(
        AuditRecord(
            user_id="erin",
            action_type="upload",
            target_type="document",
            target_id="1",
            metadata={},
        )
    )
    client = TestClient(make_orchestrator_app())

    status = client.get("/api/status").json()["status"]

    assert status["database"] == {
        "total_documents": 1,
        "unique_categories": 1,
        "total_graph_nodes": 0,
        "total_graph_edges": 0,
        "interactions_today": 1,
    }
    assert set(status["servers"]) == {"storage", "graph", "generation", "search"}
    assert status["recent_activity"][0]["user_id"] == "erin"


def test_tools_lists_orchestrator_and_backends(make_orchestrator_app, unreachable):
    client = TestClient(make_orchestrator_app(search=unreachable()))

    body = client.get("/api/tools").json()

    assert body["orchestrator_tools"] == [dict(tool) for tool in ORCHESTRATOR_TOOLS]
    assert {tool["name"] for tool in body["backend_tools"]["storage"]} >= {
        "store-document",
        "get-document",
    }
    assert body["backend_tools"]["search"] == []
    assert body["degraded"] == ["search_tools"]


def test_orchestrator_manifest_matches_routes(make_orchestrator_app):
    app = make_orchestrator_app()
    served = {
        route.path.replace("{document_id:int}", "{id}")
        for route in app.routes
        if route.path != "/api/recommendations"
    }

    assert {tool["endpoint"] for tool in ORCHESTRATOR_TOOLS} == served
    for tool in ORCHESTRATOR_TOOLS:
        assert set(tool) == {"name", "description", "endpoint", "method", "parameters"}
        assert tool["description"]


def test_unexpected_error_is_json_500(make_orchestrator_app, monkeypatch):
    app = make_orchestrator_app()

    async def boom():
        raise RuntimeError("unexpected")

    monkeypatch.setattr(app.state.orchestrator, "tools", boom)
    client = TestClient(app, raise_server_exceptions=False)

    response = client.get("/api/tools")

    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"


def test_lifespan_closes_clients_and_runs_hooks(make_orchestrator):
    closed = []
    orchestrator = make_orchestrator()
    app = create_orchestrator_app(orchestrator, on_shutdown=[lambda: closed.append(True)])

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200

    assert closed == [True]
    assert orchestrator.clients.storage._client.is_closed


@pytest.mark.asyncio
async def test_get_document_flow_directly(make_orchestrator, store):
    doc_id = _insert(store, content="Only one sentence.")

    result = await make_orchestrator().get_document(doc_id)

    assert result["summary"] == "Only one sentence."
