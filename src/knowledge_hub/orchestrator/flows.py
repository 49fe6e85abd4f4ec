"""User-facing flows of the orchestrator.

Each flow fans out to the backends through ``StepRunner`` and merges the
results. Only steps marked critical can fail a flow; the rest contribute
their fallback value and are reported in ``degraded``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from knowledge_hub.audit import AuditLog, AuditRecord
from knowledge_hub.clients import ServiceClients
from knowledge_hub.errors import KnowledgeHubError, NotFoundError, ValidationError
from knowledge_hub.orchestrator.steps import Step, StepRunner
from knowledge_hub.storage.db import SqliteStore
from knowledge_hub.utils.blocking import run_blocking
from knowledge_hub.utils.time import utc_iso_ago, utc_now_iso

logger = logging.getLogger(__name__)

SERVICE_NAME = "knowledge-orchestrator"

DEFAULT_USER = "anonymous"
DEFAULT_CATEGORY = "General"
DEFAULT_CONFIDENCE = 0.5
INSIGHTS_UNAVAILABLE = (
    "Document processed successfully. Insights generation temporarily unavailable."
)
SUMMARY_UNAVAILABLE = "Summary generation temporarily unavailable"
WEB_RESULT_COUNT = 5
INSIGHT_SAMPLE_SIZE = 3
SEARCH_DOCUMENT_LIMIT = 20
RELATED_GRAPH_LIMIT = 20
TRENDING_LIMIT = 5
RECENT_ACTIVITY_LIMIT = 10
ACTIVITY_WINDOW_SECONDS = 24 * 3600

ORCHESTRATOR_TOOLS: tuple[dict[str, object], ...] = (
    {
        "name": "health",
        "description": "Orchestrator health with the state of every backend",
        "endpoint": "/health",
        "method": "GET",
        "parameters": [],
    },
    {
        "name": "upload-document",
        "description": "Upload a document, classify it and link it into the knowledge graph",
        "endpoint": "/api/upload-document",
        "method": "POST",
        "parameters": ["file", "content", "title", "category", "tags", "user_id"],
    },
    {
        "name": "search",
        "description": "Search documents, the knowledge graph and optionally the web",
        "endpoint": "/api/search",
        "method": "POST",
        "parameters": ["query", "include_web", "user_id"],
    },
    {
        "name": "status",
        "description": "Database statistics, backend health and recent activity",
        "endpoint": "/api/status",
        "method": "GET",
        "parameters": [],
    },
    {
        "name": "document",
        "description": "A stored document with related graph data and a summary",
        "endpoint": "/api/document/{id}",
        "method": "GET",
        "parameters": ["id"],
    },
    {
        "name": "recommendations",
        "description": (
            "Recent activity, trending documents and graph insights for a user; "
            "/api/recommendations serves the anonymous user"
        ),
        "endpoint": "/api/recommendations/{user_id}",
        "method": "GET",
        "parameters": ["user_id"],
    },
    {
        "name": "tools",
        "description": "Orchestrator operations and every backend's tool manifest",
        "endpoint": "/api/tools",
        "method": "GET",
        "parameters": [],
    },
)

SUGGESTIONS: tuple[str, ...] = (
    "Explore recently uploaded documents",
    "Check out trending knowledge graph connections",
    "Search for topics related to your recent activity",
)


@dataclass
class UploadRequest:
    content: str
    title: str | None = None
    category: str | None = None
    tags: list[str] = field(default_factory=list)
    file_name: str | None = None
    user_id: str = DEFAULT_USER

    @property
    def file_size(self) -> int:
        return len(self.content.encode("utf-8"))


def _expect(payload: object, key: str, kind: type) -> object:
    """Pull ``key`` out of a backend payload, rejecting malformed responses."""
    if not isinstance(payload, dict) or not isinstance(payload.get(key), kind):
        raise ValueError(f"backend response has no {kind.__name__} field {key!r}")
    return payload[key]


def search_fallback_summary(query: str, documents: int, graph: int, web: int) -> str:
    return (
        f'Search completed for "{query}". Found {documents} documents, '
        f"{graph} graph nodes and {web} web results."
    )


class Orchestrator:
    """Flows over the backend clients, the audit log and the shared store."""

    def __init__(self, clients: ServiceClients, audit: AuditLog, store: SqliteStore) -> None:
        self.clients = clients
        self.audit = audit
        self.store = store

    async def _record(self, record: AuditRecord) -> None:
        try:
            await run_blocking(self.audit.append, record)
        except KnowledgeHubError:
            logger.warning(
                "Failed to append audit record %s/%s",
                record.action_type,
                record.target_id,
                exc_info=True,
            )

    # -- upload ---------------------------------------------------------

    async def upload_document(self, request: UploadRequest) -> dict[str, object]:
        if not request.content or not request.content.strip():
            raise ValidationError("No content provided")

        clients = self.clients
        runner = StepRunner()
        title = request.title or request.file_name or "Untitled"

        async def classify() -> object:
            payload = await clients.generation.classify(
                request.content,
                context=f"Title: {title}, Category: {request.category or 'Unknown'}",
            )
            return _expect(payload, "classification", dict)

        async def extract_entities() -> object:
            return _expect(
                await clients.graph.extract_graph(request.content), "graph", dict
            )

        classification, graph = await runner.gather(
            Step(
                "classify",
                classify,
                fallback={
                    "category": request.category or DEFAULT_CATEGORY,
                    "tags": [],
                    "confidence": DEFAULT_CONFIDENCE,
                },
            ),
            Step(
                "extract_entities",
                extract_entities,
                fallback={"entities": [], "relationships": []},
            ),
        )
        entities = list(graph.get("entities") or [])  # type: ignore[union-attr]
        relationships = list(graph.get("relationships") or [])  # type: ignore[union-attr]

        async def store_document() -> object:
            payload = await clients.storage.store_document(
                title=title,
                content=request.content,
                category=request.category or classification.get("category"),  # type: ignore[union-attr]
                tags=request.tags or list(classification.get("tags") or []),  # type: ignore[union-attr]
                file_name=request.file_name,
                classification=classification,  # type: ignore[arg-type]
                entities=[entity.get("name") for entity in entities if isinstance(entity, dict)],
            )
            return _expect(payload, "document_id", int)

        document_id = await runner.run(Step("store_document", store_document, critical=True))

        if entities:
            await runner.run(
                Step(
                    "link_graph",
                    lambda: clients.graph.store_graph(entities, relationships, document_id),
                    fallback={"stored_entities": 0, "stored_relationships": 0},
                )
            )
        else:
            runner.skip("link_graph", {"stored_entities": 0, "stored_relationships": 0})

        async def synthesize() -> object:
            payload = await clients.generation.synthesize_insights(request.content, entities)
            return _expect(payload, "insights", str)

        insights = await runner.run(
            Step("synthesize_insights", synthesize, fallback=INSIGHTS_UNAVAILABLE)
        )

        await self._record(
            AuditRecord(
                user_id=request.user_id,
                action_type="upload",
                target_type="document",
                target_id=str(document_id),
                metadata={
                    "file_name": request.file_name,
                    "file_size": request.file_size,
                    "classification": classification,
                    "entities_count": len(entities),
                },
            )
        )

        logger.info(
            "Uploaded document %s (degraded=%s)", document_id, ",".join(runner.degraded) or "-"
        )
        return {
            "success": True,
            "document_id": document_id,
            "classification": classification,
            "entities": entities,
            "insights": insights,
            "degraded": runner.degraded,
            "message": "Document uploaded and processed successfully",
            "timestamp": utc_now_iso(),
        }

    # -- search ---------------------------------------------------------

    async def search(
        self, query: str, include_web: bool = False, user_id: str = DEFAULT_USER
    ) -> dict[str, object]:
        query = (query or "").strip()
        if not query:
            raise ValidationError("Query is required")

        clients = self.clients
        runner = StepRunner()

        async def search_documents() -> object:
            payload = await clients.storage.search_documents(query, limit=SEARCH_DOCUMENT_LIMIT)
            return _expect(payload, "documents", list)

        async def query_graph() -> object:
            return _expect(await clients.graph.query_graph(query), "results", list)

        async def web_search() -> object:
            return _expect(
                await clients.search.web_search(query, count=WEB_RESULT_COUNT), "results", list
            )

        steps = [
            Step("search_documents", search_documents, fallback=[]),
            Step("query_graph", query_graph, fallback=[]),
        ]
        if include_web:
            steps.append(Step("web_search", web_search, fallback=[]))
        values = await runner.gather(*steps)
        documents, graph_results = values[0], values[1]
        web_results = values[2] if include_web else []

        fallback_summary = search_fallback_summary(
            query,
            len(documents),  # type: ignore[arg-type]
            len(graph_results),  # type: ignore[arg-type]
            len(web_results),  # type: ignore[arg-type]
        )

        async def synthesize() -> object:
            related = (
                list(documents[:INSIGHT_SAMPLE_SIZE])  # type: ignore[index]
                + list(graph_results[:INSIGHT_SAMPLE_SIZE])  # type: ignore[index]
            )
            payload = await clients.generation.synthesize_insights(
                f"Search query: {query}", related
            )
            return _expect(payload, "insights", str)

        insights = await runner.run(Step("synthesize_insights", synthesize, fallback=fallback_summary))

        counts = {
            "document_count": len(documents),  # type: ignore[arg-type]
            "graph_count": len(graph_results),  # type: ignore[arg-type]
            "web_count": len(web_results),  # type: ignore[arg-type]
        }
        await self._record(
            AuditRecord(
                user_id=user_id,
                action_type="search",
                target_type="system",
                target_id="search_results",
                metadata={"query": query, "include_web": include_web, **counts},
            )
        )

        return {
            "success": True,
            "query": query,
            "results": {
                "documents": {"documents": documents, "count": counts["document_count"]},
                "graph": {"results": graph_results, "count": counts["graph_count"]},
                "web": {"results": web_results, "total": counts["web_count"]},
            },
            "summary": {**counts, "include_web": include_web},
            "insights": insights,
            "degraded": runner.degraded,
            "timestamp": utc_now_iso(),
        }

    # -- reads ----------------------------------------------------------

    async def get_document(self, document_id: int) -> dict[str, object]:
        # Storage ids start at 1.
        if document_id < 1:
            raise NotFoundError("Document not found")
        clients = self.clients
        runner = StepRunner()

        async def fetch() -> object:
            return _expect(await clients.storage.get_document(document_id), "document", dict)

        document = await runner.run(Step("get_document", fetch, critical=True))

        async def related() -> object:
            payload = await clients.graph.query_graph(limit=RELATED_GRAPH_LIMIT)
            return _expect(payload, "results", list)

        async def summarize() -> object:
            payload = await clients.generation.generate_summary(
                str(document.get("content") or ""), "medium"  # type: ignore[union-attr]
            )
            return _expect(payload, "summary", str)

        related_graph, summary = await runner.gather(
            Step("related_graph", related, fallback=[]),
            Step("generate_summary", summarize, fallback=SUMMARY_UNAVAILABLE),
        )
        return {
            "success": True,
            "document": document,
            "related_graph_data": related_graph,
            "summary": summary,
            "degraded": runner.degraded,
            "timestamp": utc_now_iso(),
        }

    async def recommendations(self, user_id: str = DEFAULT_USER) -> dict[str, object]:
        clients = self.clients
        runner = StepRunner()

        try:
            records = await run_blocking(self.audit.for_user, user_id)
        except KnowledgeHubError:
            logger.warning("Failed to read interactions for %s", user_id, exc_info=True)
            recent = []
        else:
            recent = [record.to_dict() for record in records]

        async def trending() -> object:
            payload = await clients.storage.search_documents(limit=TRENDING_LIMIT)
            return _expect(payload, "documents", list)

        async def graph_stats() -> object:
            return _expect(await clients.graph.graph_stats(), "stats", dict)

        trending_documents, graph_insights = await runner.gather(
            Step("trending_documents", trending, fallback=[]),
            Step("graph_stats", graph_stats, fallback={}),
        )
        return {
            "success": True,
            "user_id": user_id,
            "recent_interactions": recent,
            "trending_documents": trending_documents,
            "graph_insights": graph_insights,
            "recommendations": list(SUGGESTIONS),
            "degraded": runner.degraded,
            "timestamp": utc_now_iso(),
        }

    # -- operational ----------------------------------------------------

    async def health(self) -> dict[str, object]:
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "dependentServiceHealth": await self.clients.health(),
            "timestamp": utc_now_iso(),
        }

    def _database_stats(self) -> dict[str, object]:
        try:
            documents = self.store.document_stats()
            graph = self.store.graph_stats()
            interactions = self.audit.count_since(utc_iso_ago(ACTIVITY_WINDOW_SECONDS))
        except KnowledgeHubError:
            logger.warning("Database stats unavailable", exc_info=True)
            return {"error": "Database stats unavailable"}
        return {
            "total_documents": documents.get("active_documents", 0),
            "unique_categories": documents.get("unique_categories", 0),
            "total_graph_nodes": graph["total_nodes"],
            "total_graph_edges": graph["total_edges"],
            "interactions_today": interactions,
        }

    async def status(self) -> dict[str, object]:
        servers = await self.clients.health()
        try:
            records = await run_blocking(self.audit.recent, RECENT_ACTIVITY_LIMIT)
        except KnowledgeHubError:
            logger.warning("Recent activity unavailable", exc_info=True)
            recent = []
        else:
            recent = [record.to_dict() for record in records]
        return {
            "status": {
                "database": await run_blocking(self._database_stats),
                "servers": servers,
                "recent_activity": recent,
            },
            "timestamp": utc_now_iso(),
        }

    async def tools(self) -> dict[str, object]:
        runner = StepRunner()
        clients = self.clients.by_name()
        manifests = await runner.gather(
            *(Step(f"{name}_tools", client.tools, fallback=[]) for name, client in clients.items())
        )
        return {
            "orchestrator_tools": [dict(tool) for tool in ORCHESTRATOR_TOOLS],
            "backend_tools": dict(zip(clients, manifests)),
            "degraded": runner.degraded,
            "timestamp": utc_now_iso(),
        }
