import httpx
import pytest

from knowledge_hub.clients import BackendClient, ServiceClients
from knowledge_hub.clients.services import GraphClient, StorageClient
from knowledge_hub.config import BackendSettings
from knowledge_hub.errors import (
    BackendError,
    BackendFailure,
    BackendNotFound,
    BackendTimeout,
    BackendUnreachable,
)


def _client(handler, backend: str = "storage", cls=BackendClient, **kwargs):
    return cls(backend, "http://backend.test", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_request_returns_json_object():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/tools/database-stats"
        return httpx.Response(200, json={"success": True, "stats": {}})

    client = _client(handler)
    try:
        payload = await client.request("GET", "/tools/database-stats")
    finally:
        await client.aclose()

    assert payload == {"success": True, "stats": {}}


@pytest.mark.asyncio
async def test_404_maps_to_backend_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"success": False, "error": "Document 7 not found"})

    client = _client(handler)
    try:
        with pytest.raises(BackendNotFound) as excinfo:
            await client.request("GET", "/tools/get-document/7")
    finally:
        await client.aclose()

    assert excinfo.value.backend == "storage"
    assert excinfo.value.status == 404
    assert "Document 7 not found" in str(excinfo.value)


@pytest.mark.asyncio
async def test_server_error_maps_to_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="kaboom")

    client = _client(handler, backend="graph")
    try:
        with pytest.raises(BackendError) as excinfo:
            await client.request("POST", "/tools/query-graph", json={})
    finally:
        await client.aclose()

    assert not isinstance(excinfo.value, BackendNotFound)
    assert excinfo.value.status == 500
    assert str(excinfo.value) == "graph backend error: HTTP 500: kaboom"


@pytest.mark.asyncio
async def test_connection_refused_maps_to_unreachable(unreachable):
    client = BackendClient("search", "http://backend.test", transport=unreachable())
    try:
        with pytest.raises(BackendUnreachable) as excinfo:
            await client.request("POST", "/tools/web-search", json={"query": "x"})
    finally:
        await client.aclose()

    assert isinstance(excinfo.value, BackendFailure)
    assert excinfo.value.backend == "search"


@pytest.mark.asyncio
async def test_timeout_maps_to_backend_timeout(timed_out):
    client = BackendClient("generation", "http://backend.test", timeout=2.5, transport=timed_out())
    try:
        with pytest.raises(BackendTimeout) as excinfo:
            await client.request("POST", "/tools/classify", json={"content": "x"})
    finally:
        await client.aclose()

    assert excinfo.value.timeout == 2.5
    assert "timed out after 2.5s" in str(excinfo.value)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"not json", b"[1, 2, 3]"])
async def test_non_object_body_is_backend_error(body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body)

    client = _client(handler)
    try:
        with pytest.raises(BackendError):
            await client.request("GET", "/tools/database-stats")
    finally:
        await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "expected"),
    [
        (httpx.Response(200, json={"status": "healthy"}), "healthy"),
        (httpx.Response(200, json={"status": "degraded"}), "unhealthy"),
        (httpx.Response(503, json={"status": "healthy"}), "unhealthy"),
        (httpx.Response(200, content=b"<html>"), "unhealthy"),
    ],
)
async def test_health_states(response, expected):
    client = _client(lambda request: response)
    try:
        assert await client.health() == expected
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_health_never_raises(unreachable, timed_out):
    for transport in (unreachable(), timed_out()):
        client = BackendClient("graph", "http://backend.test", transport=transport)
        try:
            assert await client.health() == "unreachable"
        finally:
            await client.aclose()


@pytest.mark.asyncio
async def test_entity_id_is_quoted_into_path():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["raw_path"] = request.url.raw_path
        seen["depth"] = request.url.params["depth"]
        return httpx.Response(200, json={"success": True})

    client = _client(handler, backend="graph", cls=GraphClient)
    try:
        await client.entity_relationships("person:ada lovelace", depth=2)
    finally:
        await client.aclose()

    assert seen["path"] == "/tools/entity-relationships/person:ada lovelace"
    assert b"%20" in seen["raw_path"]
    assert seen["depth"] == "2"


@pytest.mark.asyncio
async def test_store_document_drops_unset_fields():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        return httpx.Response(200, json={"success": True, "document_id": 1})

    client = _client(handler, cls=StorageClient)
    try:
        await client.store_document(title="T", content="C", category="Legal")
    finally:
        await client.aclose()

    assert b'"file_name"' not in seen["body"]
    assert b'"category"' in seen["body"]


@pytest.mark.asyncio
async def test_service_clients_against_backends(make_transports):
    clients = ServiceClients.from_settings(BackendSettings(), make_transports())
    try:
        stored = await clients.storage.store_document(title="Graphs", content="About graphs.")
        fetched = await clients.storage.get_document(stored["document_id"])
        manifest = await clients.graph.tools()
        health = await clients.health()
    finally:
        await clients.aclose()

    assert fetched["document"]["title"] == "Graphs"
    assert {tool["name"] for tool in manifest} >= {"extract-graph", "store-graph"}
    assert health == {
        "storage": "healthy",
        "graph": "healthy",
        "generation": "healthy",
        "search": "healthy",
    }


@pytest.mark.asyncio
async def test_service_clients_health_reports_each_backend(make_transports, unreachable):
    clients = ServiceClients.from_settings(
        BackendSettings(), make_transports(search=unreachable())
    )
    try:
        health = await clients.health()
    finally:
        await clients.aclose()

    assert health["search"] == "unreachable"
    assert health["storage"] == "healthy"


def test_clients_use_configured_urls():
    settings = BackendSettings(storage_url="http://storage.internal:9000/")
    clients = ServiceClients.from_settings(settings)

    assert clients.storage.base_url == "http://storage.internal:9000"
    assert clients.graph.base_url == "http://127.0.0.1:8102"
    assert set(clients.by_name()) == {"storage", "graph", "generation", "search"}
