import logging

import pytest
from starlette.testclient import TestClient

from knowledge_hub.errors import StoreError, ValidationError
from knowledge_hub.orchestrator import UploadRequest
from knowledge_hub.orchestrator.flows import INSIGHTS_UNAVAILABLE
from knowledge_hub.orchestrator.http_app import parse_tags

CONTENT = (
    "Ada Lovelace joined Analytical Engines Inc in London City. "
    "She wrote about the database API and Python code."
)


def test_upload_multipart_file(make_orchestrator_app, store, audit):
    client = TestClient(make_orchestrator_app())

    response = client.post(
        "/api/upload-document",
        files={"file": ("notes.txt", CONTENT.encode("utf-8"), "text/plain")},
        data={"title": "Lovelace notes", "tags": "history, computing", "user_id": "alice"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["degraded"] == []
    assert body["classification"]["category"] == "Technical Documentation"
    assert {"Ada Lovelace", "Python"} <= {entity["name"] for entity in body["entities"]}
    assert body["insights"] != INSIGHTS_UNAVAILABLE

    document = store.get_document(body["document_id"])
    assert document.title == "Lovelace notes"
    assert document.file_name == "notes.txt"
    assert document.tags == ["history", "computing"]
    assert document.category == "Technical Documentation"

    assert store.graph_stats()["total_nodes"] > 0

    (record,) = audit.for_user("alice")
    assert record.action_type == "upload"
    assert record.target_type == "document"
    assert record.target_id == str(body["document_id"])
    assert record.metadata["file_name"] == "notes.txt"
    assert record.metadata["file_size"] == len(CONTENT.encode("utf-8"))
    assert record.metadata["entities_count"] == len(body["entities"])


def test_upload_json_body(make_orchestrator_app, store):
    client = TestClient(make_orchestrator_app())

    response = client.post(
        "/api/upload-document",
        json={"content": "A short tutorial.", "title": "Intro", "category": "Education"},
    )

    assert response.status_code == 200
    document = store.get_document(response.json()["document_id"])
    assert document.category == "Education"
    assert document.title == "Intro"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"data": {"title": "Empty"}},
        {"json": {"content": "   "}},
    ],
)
def test_upload_without_content_is_400(make_orchestrator_app, audit, kwargs):
    client = TestClient(make_orchestrator_app())

    response = client.post("/api/upload-document", **kwargs)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"] == "No content provided"
    assert audit.recent() == []


def test_storage_down_fails_upload(make_orchestrator_app, unreachable, audit):
    client = TestClient(make_orchestrator_app(storage=unreachable()))

    response = client.post("/api/upload-document", json={"content": CONTENT})

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "document_id" not in body
    assert "store_document" in body["error"]
    assert audit.recent() == []


def test_generation_down_uses_fallbacks(make_orchestrator_app, unreachable, store):
    client = TestClient(make_orchestrator_app(generation=unreachable()))

    response = client.post(
        "/api/upload-document", json={"content": CONTENT, "category": "Research Paper"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["classification"] == {
        "category": "Research Paper",
        "tags": [],
        "confidence": 0.5,
    }
    assert body["insights"] == INSIGHTS_UNAVAILABLE
    assert body["degraded"] == ["classify", "synthesize_insights"]
    assert store.get_document(body["document_id"]) is not None


def test_generation_timeout_defaults_category_to_general(make_orchestrator_app, timed_out):
    client = TestClient(make_orchestrator_app(generation=timed_out()))

    body = client.post("/api/upload-document", json={"content": CONTENT}).json()

    assert body["classification"]["category"] == "General"
    assert body["success"] is True


def test_graph_down_uploads_without_entities(make_orchestrator_app, unreachable, store):
    client = TestClient(make_orchestrator_app(graph=unreachable()))

    body = client.post("/api/upload-document", json={"content": CONTENT}).json()

    assert body["entities"] == []
    assert body["degraded"] == ["extract_entities"]
    assert store.graph_stats()["total_nodes"] == 0


def test_audit_failure_does_not_fail_upload(make_orchestrator_app, audit, store, monkeypatch, caplog):
    def fail(record):
        raise StoreError("disk full")

    monkeypatch.setattr(audit, "append", fail)
    caplog.set_level(logging.WARNING, logger="knowledge_hub.orchestrator.flows")
    client = TestClient(make_orchestrator_app())

    response = client.post("/api/upload-document", json={"content": CONTENT})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert store.get_document(body["document_id"]) is not None
    assert any(
        record.levelno == logging.WARNING and "Failed to append audit record upload" in record.getMessage()
        for record in caplog.records
    )


@pytest.mark.asyncio
async def test_upload_flow_directly(make_orchestrator):
    orchestrator = make_orchestrator()

    result = await orchestrator.upload_document(
        UploadRequest(content="nothing notable here", file_name="plain.txt")
    )

    assert result["entities"] == []
    assert result["degraded"] == []
    assert result["message"] == "Document uploaded and processed successfully"


@pytest.mark.asyncio
async def test_upload_flow_rejects_empty_content(make_orchestrator):
    with pytest.raises(ValidationError):
        await make_orchestrator().upload_document(UploadRequest(content=""))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, []),
        ("", []),
        ("a, b,,c", ["a", "b", "c"]),
        ('["x", " y "]', ["x", "y"]),
        (["p", ""], ["p"]),
    ],
)
def test_parse_tags(raw, expected):
    assert parse_tags(raw) == expected


def test_parse_tags_rejects_broken_json():
    with pytest.raises(ValidationError):
        parse_tags("[not json")
