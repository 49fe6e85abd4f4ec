"""Document storage backend."""

from __future__ import annotations

import logging

from starlette.applications import Starlette

from knowledge_hub.backends.base import ToolSpec, create_backend_app
from knowledge_hub.errors import NotFoundError
from knowledge_hub.storage.db import SqliteStore
from knowledge_hub.storage.models import DocumentRecord
from knowledge_hub.utils.blocking import run_blocking
from knowledge_hub.utils.jsonschema import object_schema
from knowledge_hub.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

SERVICE_NAME = "storage"

# Weight each matching field adds to a document's relevance score.
TITLE_WEIGHT = 0.8
CONTENT_WEIGHT = 0.6
CATEGORY_WEIGHT = 0.4
TAG_WEIGHT = 0.5

_NULLABLE_STRING = {"type": ["string", "null"]}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_DOCUMENT_ID = {"type": "integer", "minimum": 1}


def relevance_score(document: DocumentRecord, query: str) -> float:
    """Score a document against a case-insensitive query, capped at 1.0."""
    needle = query.lower()
    score = 0.0
    if needle in document.title.lower():
        score += TITLE_WEIGHT
    if needle in document.content.lower():
        score += CONTENT_WEIGHT
    if document.category and needle in document.category.lower():
        score += CATEGORY_WEIGHT
    if any(needle in str(tag).lower() for tag in document.tags):
        score += TAG_WEIGHT
    return min(score, 1.0)


def storage_tools(store: SqliteStore) -> list[ToolSpec]:
    async def store_document(params: dict[str, object]) -> dict[str, object]:
        now = utc_now_iso()
        document_id = await run_blocking(
            store.insert_document,
            title=str(params["title"]),
            content=str(params["content"]),
            category=params.get("category"),  # type: ignore[arg-type]
            tags=list(params.get("tags") or []),  # type: ignore[call-overload]
            file_name=params.get("file_name"),  # type: ignore[arg-type]
            classification=params.get("classification"),  # type: ignore[arg-type]
            entities=list(params.get("entities") or []),  # type: ignore[call-overload]
            metadata=dict(params.get("metadata") or {}),  # type: ignore[call-overload]
            created_at=now,
        )
        logger.info("Stored document %d", document_id)
        return {"document_id": document_id, "message": "Document stored successfully"}

    async def search_documents(params: dict[str, object]) -> dict[str, object]:
        query = str(params.get("query") or "").strip()
        limit = int(params.get("limit", 10))  # type: ignore[call-overload]
        offset = int(params.get("offset", 0))  # type: ignore[call-overload]
        documents = await run_blocking(store.list_documents, category=params.get("category"))  # type: ignore[arg-type]

        if query:
            scored = [(relevance_score(doc, query), doc) for doc in documents]
            # sorted() is stable, so equal scores keep most-recent-first order.
            ranked = sorted(
                (item for item in scored if item[0] > 0),
                key=lambda item: item[0],
                reverse=True,
            )
        else:
            ranked = [(0.0, doc) for doc in documents]

        page = ranked[offset : offset + limit]
        results = []
        for score, doc in page:
            entry = doc.to_dict(preview=True)
            if query:
                entry["relevance_score"] = round(score, 2)
            results.append(entry)
        return {"documents": results, "count": len(results), "total_matches": len(ranked)}

    async def get_document(params: dict[str, object]) -> dict[str, object]:
        document_id = int(params["document_id"])  # type: ignore[call-overload]
        document = await run_blocking(store.get_document, document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return {"document": document.to_dict()}

    async def update_document(params: dict[str, object]) -> dict[str, object]:
        document_id = int(params["document_id"])  # type: ignore[call-overload]
        if not await run_blocking(store.update_document, document_id, params, utc_now_iso()):
            raise NotFoundError(f"Document {document_id} not found")
        return {"document_id": document_id, "message": "Document updated successfully"}

    async def delete_document(params: dict[str, object]) -> dict[str, object]:
        document_id = int(params["document_id"])  # type: ignore[call-overload]
        if not await run_blocking(store.deactivate_document, document_id, utc_now_iso()):
            raise NotFoundError(f"Document {document_id} not found")
        logger.info("Deactivated document %d", document_id)
        return {"document_id": document_id, "message": "Document deleted successfully"}

    async def database_stats(params: dict[str, object]) -> dict[str, object]:
        return {"stats": await run_blocking(store.document_stats)}

    return [
        ToolSpec(
            name="store-document",
            description="Store a document with its metadata",
            method="POST",
            path="/tools/store-document",
            input_schema=object_schema(
                {
                    "title": {"type": "string", "minLength": 1},
                    "content": {"type": "string", "minLength": 1},
                    "category": _NULLABLE_STRING,
                    "tags": _STRING_LIST,
                    "file_name": _NULLABLE_STRING,
                    "classification": {"type": ["object", "null"]},
                    "entities": {"type": "array"},
                    "metadata": {"type": "object"},
                },
                required=("title", "content"),
            ),
            handler=store_document,
        ),
        ToolSpec(
            name="search-documents",
            description="Search active documents by text and category",
            method="POST",
            path="/tools/search-documents",
            input_schema=object_schema(
                {
                    "query": _NULLABLE_STRING,
                    "category": _NULLABLE_STRING,
                    "limit": {"type": "integer", "minimum": 1, "maximum": 100},
                    "offset": {"type": "integer", "minimum": 0},
                }
            ),
            handler=search_documents,
        ),
        ToolSpec(
            name="get-document",
            description="Retrieve a document by id",
            method="GET",
            path="/tools/get-document/{document_id:int}",
            input_schema=object_schema({"document_id": _DOCUMENT_ID}, required=("document_id",)),
            handler=get_document,
        ),
        ToolSpec(
            name="update-document",
            description="Update fields of an existing document",
            method="PUT",
            path="/tools/update-document/{document_id:int}",
            input_schema=object_schema(
                {
                    "document_id": _DOCUMENT_ID,
                    "title": {"type": "string", "minLength": 1},
                    "content": {"type": "string", "minLength": 1},
                    "category": {"type": "string"},
                    "tags": _STRING_LIST,
                    "metadata": {"type": "object"},
                },
                required=("document_id",),
            ),
            handler=update_document,
        ),
        ToolSpec(
            name="delete-document",
            description="Soft delete a document",
            method="DELETE",
            path="/tools/delete-document/{document_id:int}",
            input_schema=object_schema({"document_id": _DOCUMENT_ID}, required=("document_id",)),
            handler=delete_document,
        ),
        ToolSpec(
            name="database-stats",
            description="Document counts and category breakdown",
            method="GET",
            path="/tools/database-stats",
            input_schema=object_schema({}),
            handler=database_stats,
        ),
    ]


def create_storage_app(store: SqliteStore) -> Starlette:
    def health_details() -> dict[str, object]:
        return {"mode": "sqlite", "database": "connected" if store.ping() else "unavailable"}

    return create_backend_app(SERVICE_NAME, storage_tools(store), health_details=health_details)
