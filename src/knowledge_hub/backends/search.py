"""Web search backend."""

from __future__ import annotations

import logging
import re
import time

import httpx
from starlette.applications import Starlette

from knowledge_hub.backends.base import ToolSpec, create_backend_app
from knowledge_hub.errors import StoreError, ValidationError
from knowledge_hub.providers.web import WebSearchProvider
from knowledge_hub.storage.db import SqliteStore
from knowledge_hub.utils.blocking import run_blocking
from knowledge_hub.utils.http import validate_fetch_url
from knowledge_hub.utils.jsonschema import object_schema
from knowledge_hub.utils.time import utc_iso_ago, utc_now_iso

logger = logging.getLogger(__name__)

SERVICE_NAME = "search"

MAX_FETCH_CHARS = 10_000
ANALYTICS_WINDOW_SECONDS = 30 * 24 * 3600
_USER_AGENT = "knowledge-hub/0.3 (+https://example.com/knowledge-hub)"

_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")
_SNIPPET_SENTENCE_RE = re.compile(r"[.!?]+")


def html_to_text(html: str) -> str:
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    return _SPACE_RE.sub(" ", text).strip()


def summarize_snippets(query: str, results: list[dict[str, object]]) -> str:
    """Extractive summary: the first three substantial snippet sentences plus a result list."""
    if not results:
        return "No search results found"
    snippets = " ".join(str(item.get("snippet") or "") for item in results)
    sentences = [s.strip() for s in _SNIPPET_SENTENCE_RE.split(snippets) if len(s.strip()) > 20]
    lines = [f'Found {len(results)} results for "{query}":', ""]
    if sentences:
        lines.append(f"Summary: {'. '.join(sentences[:3])}.")
        lines.append("")
    lines.append("Top Results:")
    for index, item in enumerate(results, start=1):
        lines.append(f"{index}. {item.get('title')}")
        lines.append(f"   {item.get('url')}")
    return "\n".join(lines)


def search_tools(
    store: SqliteStore,
    provider: WebSearchProvider,
    fetch_client: httpx.AsyncClient,
) -> list[ToolSpec]:
    async def run_web_search(
        query: str, count: int, offset: int, market: str, safe_search: str
    ) -> dict[str, object]:
        started = time.perf_counter()
        found = await provider.web_search(query, count, offset, market, safe_search)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        results = list(found.get("results") or [])  # type: ignore[call-overload]
        try:
            await run_blocking(
                store.log_search_query, query, len(results), elapsed_ms, utc_now_iso()
            )
        except StoreError:
            logger.warning("Failed to log search query", exc_info=True)
        return {
            "query": query,
            "total": found.get("total_estimated_matches", len(results)),
            "results": results,
            "execution_time_ms": elapsed_ms,
            "provider": provider.name,
        }

    async def web_search(params: dict[str, object]) -> dict[str, object]:
        return await run_web_search(
            str(params["query"]),
            int(params.get("count", 10)),  # type: ignore[call-overload]
            int(params.get("offset", 0)),  # type: ignore[call-overload]
            str(params.get("market") or "en-US"),
            str(params.get("safe_search") or "Moderate"),
        )

    async def news_search(params: dict[str, object]) -> dict[str, object]:
        query = str(params["query"])
        articles = await provider.news_search(
            query,
            int(params.get("count", 10)),  # type: ignore[call-overload]
            str(params.get("market") or "en-US"),
            str(params.get("sort_by") or "Date"),
        )
        return {"query": query, "results": articles, "count": len(articles)}

    async def fetch_url(params: dict[str, object]) -> dict[str, object]:
        url = str(params["url"])
        extract_text = bool(params.get("extract_text", True))
        try:
            await run_blocking(validate_fetch_url, url)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        response = await fetch_client.get(url)
        response.raise_for_status()
        content_type = response.headers.get("content-type", "")
        content = response.text
        if extract_text and "text/html" in content_type:
            content = html_to_text(content)
        return {
            "url": url,
            "content_type": content_type,
            "content": content[:MAX_FETCH_CHARS],
            "content_length": len(content),
            "truncated": len(content) > MAX_FETCH_CHARS,
            "extracted": extract_text,
        }

    async def search_and_summarize(params: dict[str, object]) -> dict[str, object]:
        query = str(params["query"])
        found = await run_web_search(
            query,
            int(params.get("count", 5)),  # type: ignore[call-overload]
            0,
            "en-US",
            "Moderate",
        )
        results = found["results"]
        return {
            "query": query,
            "summary": summarize_snippets(query, results),  # type: ignore[arg-type]
            "results": results,
            "total": found["total"],
        }

    async def search_analytics(params: dict[str, object]) -> dict[str, object]:
        return {
            "analytics": await run_blocking(
                store.search_analytics, utc_iso_ago(ANALYTICS_WINDOW_SECONDS)
            ),
            "window_days": ANALYTICS_WINDOW_SECONDS // 86400,
        }

    return [
        ToolSpec(
            name="web-search",
            description="Search the web",
            method="POST",
            path="/tools/web-search",
            input_schema=object_schema(
                {
                    "query": {"type": "string", "minLength": 1},
                    "count": {"type": "integer", "minimum": 1, "maximum": 50},
                    "offset": {"type": "integer", "minimum": 0},
                    "market": {"type": "string"},
                    "safe_search": {"type": "string", "enum": ["Off", "Moderate", "Strict"]},
                },
                required=("query",),
            ),
            handler=web_search,
        ),
        ToolSpec(
            name="news-search",
            description="Search recent news articles",
            method="POST",
            path="/tools/news-search",
            input_schema=object_schema(
                {
                    "query": {"type": "string", "minLength": 1},
                    "count": {"type": "integer", "minimum": 1, "maximum": 50},
                    "market": {"type": "string"},
                    "sort_by": {"type": "string", "enum": ["Date", "Relevance"]},
                },
                required=("query",),
            ),
            handler=news_search,
        ),
        ToolSpec(
            name="fetch-url",
            description="Fetch a public web page and extract its text",
            method="POST",
            path="/tools/fetch-url",
            input_schema=object_schema(
                {
                    "url": {"type": "string", "minLength": 1},
                    "extract_text": {"type": "boolean"},
                },
                required=("url",),
            ),
            handler=fetch_url,
        ),
        ToolSpec(
            name="search-and-summarize",
            description="Search the web and summarize the top results",
            method="POST",
            path="/tools/search-and-summarize",
            input_schema=object_schema(
                {
                    "query": {"type": "string", "minLength": 1},
                    "count": {"type": "integer", "minimum": 1, "maximum": 20},
                },
                required=("query",),
            ),
            handler=search_and_summarize,
        ),
        ToolSpec(
            name="search-analytics",
            description="Search volume and top queries over the last 30 days",
            method="GET",
            path="/tools/search-analytics",
            input_schema=object_schema({}),
            handler=search_analytics,
        ),
    ]


def create_search_app(
    store: SqliteStore,
    provider: WebSearchProvider,
    *,
    fetch_timeout: float = 10.0,
    fetch_transport: httpx.AsyncBaseTransport | None = None,
) -> Starlette:
    fetch_client = httpx.AsyncClient(
        timeout=fetch_timeout,
        follow_redirects=False,
        headers={"User-Agent": _USER_AGENT},
        transport=fetch_transport,
    )

    def health_details() -> dict[str, object]:
        return {"mode": provider.name}

    on_shutdown = [fetch_client.aclose]
    aclose = getattr(provider, "aclose", None)
    if aclose is not None:
        on_shutdown.append(aclose)

    return create_backend_app(
        SERVICE_NAME,
        search_tools(store, provider, fetch_client),
        health_details=health_details,
        on_shutdown=on_shutdown,
    )
