"""Typed clients, one method per backend tool."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from knowledge_hub.clients.base import BackendClient, HealthState
from knowledge_hub.config import BackendSettings


def _drop_none(values: dict[str, object]) -> dict[str, object]:
    return {key: value for key, value in values.items() if value is not None}


class StorageClient(BackendClient):
    async def store_document(
        self,
        *,
        title: str,
        content: str,
        category: str | None = None,
        tags: list[str] | None = None,
        file_name: str | None = None,
        classification: dict[str, object] | None = None,
        entities: list[object] | None = None,
        metadata: dict[str, object] | None = None,
    ) -> dict[str, object]:
        return await self.request(
            "POST",
            "/tools/store-document",
            json=_drop_none(
                {
                    "title": title,
                    "content": content,
                    "category": category,
                    "tags": tags,
                    "file_name": file_name,
                    "classification": classification,
                    "entities": entities,
                    "metadata": metadata,
                }
            ),
        )

    async def search_documents(
        self,
        query: str | None = None,
        *,
        category: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> dict[str, object]:
        return await self.request(
            "POST",
            "/tools/search-documents",
            json=_drop_none(
                {"query": query, "category": category, "limit": limit, "offset": offset}
            ),
        )

    async def get_document(self, document_id: int) -> dict[str, object]:
        return await self.request("GET", f"/tools/get-document/{int(document_id)}")

    async def update_document(self, document_id: int, **changes: object) -> dict[str, object]:
        return await self.request(
            "PUT", f"/tools/update-document/{int(document_id)}", json=_drop_none(changes)
        )

    async def delete_document(self, document_id: int) -> dict[str, object]:
        return await self.request("DELETE", f"/tools/delete-document/{int(document_id)}")

    async def database_stats(self) -> dict[str, object]:
        return await self.request("GET", "/tools/database-stats")


class GraphClient(BackendClient):
    async def extract_graph(self, text: str, document_id: object = None) -> dict[str, object]:
        return await self.request(
            "POST",
            "/tools/extract-graph",
            json=_drop_none({"text": text, "document_id": document_id}),
        )

    async def store_graph(
        self,
        entities: list[object],
        relationships: list[object],
        document_id: object = None,
    ) -> dict[str, object]:
        return await self.request(
            "POST",
            "/tools/store-graph",
            json=_drop_none(
                {
                    "entities": entities,
                    "relationships": relationships,
                    "document_id": document_id,
                }
            ),
        )

    async def query_graph(
        self,
        query: str | None = None,
        *,
        entity_type: str | None = None,
        relationship_type: str | None = None,
        limit: int = 10,
    ) -> dict[str, object]:
        return await self.request(
            "POST",
            "/tools/query-graph",
            json=_drop_none(
                {
                    "query": query,
                    "entity_type": entity_type,
                    "relationship_type": relationship_type,
                    "limit": limit,
                }
            ),
        )

    async def entity_relationships(self, entity_id: str, depth: int = 1) -> dict[str, object]:
        return await self.request(
            "GET",
            f"/tools/entity-relationships/{quote(entity_id, safe='')}",
            params={"depth": depth},
        )

    async def graph_stats(self) -> dict[str, object]:
        return await self.request("GET", "/tools/graph-stats")


class GenerationClient(BackendClient):
    async def generate(
        self, prompt: str, *, max_tokens: int = 1000, temperature: float = 0.7
    ) -> dict[str, object]:
        return await self.request(
            "POST",
            "/tools/generate",
            json={"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature},
        )

    async def classify(
        self,
        content: str,
        *,
        context: str | None = None,
        categories: list[str] | None = None,
    ) -> dict[str, object]:
        return await self.request(
            "POST",
            "/tools/classify",
            json=_drop_none({"content": content, "context": context, "categories": categories}),
        )

    async def extract_entities(self, text: str) -> dict[str, object]:
        return await self.request("POST", "/tools/extract-entities", json={"text": text})

    async def synthesize_insights(
        self, content: str, related_content: list[object]
    ) -> dict[str, object]:
        return await self.request(
            "POST",
            "/tools/synthesize-insights",
            json={"content": content, "related_content": related_content},
        )

    async def generate_summary(self, content: str, length: str = "medium") -> dict[str, object]:
        return await self.request(
            "POST", "/tools/generate-summary", json={"content": content, "length": length}
        )


class SearchClient(BackendClient):
    async def web_search(self, query: str, *, count: int = 10, offset: int = 0) -> dict[str, object]:
        return await self.request(
            "POST", "/tools/web-search", json={"query": query, "count": count, "offset": offset}
        )

    async def news_search(self, query: str, *, count: int = 10) -> dict[str, object]:
        return await self.request(
            "POST", "/tools/news-search", json={"query": query, "count": count}
        )

    async def fetch_url(self, url: str, *, extract_text: bool = True) -> dict[str, object]:
        return await self.request(
            "POST", "/tools/fetch-url", json={"url": url, "extract_text": extract_text}
        )

    async def search_and_summarize(self, query: str, *, count: int = 5) -> dict[str, object]:
        return await self.request(
            "POST", "/tools/search-and-summarize", json={"query": query, "count": count}
        )

    async def search_analytics(self) -> dict[str, object]:
        return await self.request("GET", "/tools/search-analytics")


@dataclass
class ServiceClients:
    """The four backend clients the orchestrator talks to."""

    storage: StorageClient
    graph: GraphClient
    generation: GenerationClient
    search: SearchClient

    @classmethod
    def from_settings(
        cls,
        settings: BackendSettings,
        transports: Mapping[str, httpx.AsyncBaseTransport] | None = None,
    ) -> ServiceClients:
        """Build clients from configuration.

        ``transports`` maps a backend name to an httpx transport, used to
        route a client to an in-process app or a fake.
        """
        transports = transports or {}

        def make(client_cls: type[BackendClient], backend: str) -> BackendClient:
            return client_cls(
                backend,
                settings.url_for(backend),
                timeout=settings.timeout_seconds,
                health_timeout=settings.health_timeout_seconds,
                transport=transports.get(backend),
            )

        return cls(
            storage=make(StorageClient, "storage"),  # type: ignore[arg-type]
            graph=make(GraphClient, "graph"),  # type: ignore[arg-type]
            generation=make(GenerationClient, "generation"),  # type: ignore[arg-type]
            search=make(SearchClient, "search"),  # type: ignore[arg-type]
        )

    def by_name(self) -> dict[str, BackendClient]:
        return {
            "storage": self.storage,
            "graph": self.graph,
            "generation": self.generation,
            "search": self.search,
        }

    async def health(self) -> dict[str, HealthState]:
        clients = self.by_name()
        states = await asyncio.gather(*(client.health() for client in clients.values()))
        return dict(zip(clients, states))

    async def aclose(self) -> None:
        for client in self.by_name().values():
            await client.aclose()
