import pytest
from starlette.testclient import TestClient

from knowledge_hub.backends.graph import node_id_for

ENTITIES = [
    {"id": "person_1", "type": "PERSON", "name": "Ada Lovelace", "properties": {"confidence": 0.9}},
    {"id": "org_1", "type": "ORGANIZATION", "name": "Analytical Engines Inc"},
    {"id": "location_1", "type": "LOCATION", "name": "London City"},
]
RELATIONSHIPS = [
    {
        "id": "rel_1",
        "source_id": "person_1",
        "target_id": "org_1",
        "type": "WORKS_AT",
        "properties": {"confidence": 0.75},
    },
    {
        "id": "rel_2",
        "source_id": "org_1",
        "target_id": "location_1",
        "type": "HEADQUARTERS_IN",
        "properties": {"confidence": 0.8},
    },
]

ADA = "person:ada lovelace"


@pytest.fixture
def client(backend_apps):
    return TestClient(backend_apps["graph"])


@pytest.fixture
def populated(client):
    response = client.post(
        "/tools/store-graph",
        json={"entities": ENTITIES, "relationships": RELATIONSHIPS, "document_id": 3},
    )
    assert response.status_code == 200
    return client


def test_node_id_is_case_insensitive():
    assert node_id_for("Person", " Ada Lovelace ") == ADA
    assert node_id_for("PERSON", "ada lovelace") == ADA


def test_extract_graph(client):
    text = "Ada Lovelace joined Analytical Engines Inc to work on Python."

    body = client.post("/tools/extract-graph", json={"text": text, "document_id": 9}).json()

    assert body["success"] is True
    assert body["entities_count"] == len(body["graph"]["entities"])
    assert body["relationships_count"] == len(body["graph"]["relationships"])
    assert body["processing_info"] == {"text_length": len(text)}
    assert body["graph"]["document_id"] == 9
    names = {entity["name"] for entity in body["graph"]["entities"]}
    assert {"Ada Lovelace", "Analytical Engines Inc", "Python"} <= names
    assert all(e["properties"]["source_document"] == "9" for e in body["graph"]["entities"])


def test_extract_graph_requires_text(client):
    assert client.post("/tools/extract-graph", json={"text": ""}).status_code == 400


def test_store_graph_counts(client):
    body = client.post(
        "/tools/store-graph",
        json={"entities": ENTITIES, "relationships": RELATIONSHIPS, "document_id": 3},
    ).json()

    assert body["stored_entities"] == 3
    assert body["stored_relationships"] == 2
    assert body["document_id"] == 3


def test_store_graph_skips_unknown_endpoints(client):
    relationships = RELATIONSHIPS + [
        {"source_id": "person_1", "target_id": "ghost_1", "type": "KNOWS"}
    ]

    body = client.post(
        "/tools/store-graph", json={"entities": ENTITIES, "relationships": relationships}
    ).json()

    assert body["stored_relationships"] == 2


def test_store_graph_merges_repeated_entities(populated):
    populated.post(
        "/tools/store-graph",
        json={"entities": [{"type": "person", "name": "ADA LOVELACE"}], "relationships": []},
    )

    stats = populated.get("/tools/graph-stats").json()["stats"]

    assert stats["total_nodes"] == 3
    assert stats["nodes_by_type"] == {"LOCATION": 1, "ORGANIZATION": 1, "PERSON": 1}
    assert stats["edges_by_type"] == {"HEADQUARTERS_IN": 1, "WORKS_AT": 1}


def test_query_graph_by_name(populated):
    body = populated.post("/tools/query-graph", json={"query": "ada"}).json()

    assert body["count"] == 1
    result = body["results"][0]
    assert result["entity"]["id"] == ADA
    assert result["relationships"] == [
        {
            "type": "WORKS_AT",
            "target": {
                "id": "organization:analytical engines inc",
                "type": "ORGANIZATION",
                "name": "Analytical Engines Inc",
            },
            "confidence": 0.75,
        }
    ]


def test_query_graph_filters(populated):
    by_type = populated.post("/tools/query-graph", json={"entity_type": "location"}).json()
    by_rel = populated.post(
        "/tools/query-graph", json={"relationship_type": "headquarters_in"}
    ).json()
    limited = populated.post("/tools/query-graph", json={"limit": 1}).json()

    assert [r["entity"]["name"] for r in by_type["results"]] == ["London City"]
    assert [r["entity"]["name"] for r in by_rel["results"]] == ["Analytical Engines Inc"]
    assert limited["count"] == 1
    assert limited["total_found"] == 3
    assert limited["query_info"]["limit"] == 1


def test_entity_relationships_depth_one(populated):
    body = populated.get("/tools/entity-relationships/person:ada%20lovelace").json()

    assert body["entity_id"] == ADA
    assert body["max_depth"] == 1
    assert body["relationship_count"] == 1
    assert body["relationships"][0]["relationship_type"] == "WORKS_AT"
    assert body["relationships"][0]["depth"] == 1


def test_entity_relationships_depth_two(populated):
    body = populated.get(
        "/tools/entity-relationships/person:ada%20lovelace", params={"depth": 2}
    ).json()

    assert body["relationship_count"] == 2
    second = body["relationships"][1]
    assert second["depth"] == 2
    assert second["relationship_type"] == "HEADQUARTERS_IN"
    assert second["path"] == ["organization:analytical engines inc", "location:london city"]


def test_entity_relationships_rejects_depth_three(populated):
    response = populated.get(
        "/tools/entity-relationships/person:ada%20lovelace", params={"depth": 3}
    )
    assert response.status_code == 400


def test_unknown_entity_is_404(client):
    response = client.get("/tools/entity-relationships/person:nobody")

    assert response.status_code == 404
    assert response.json()["success"] is False
