"""Web and news search providers used by the search backend."""

from __future__ import annotations

from datetime import timedelta
from typing import Protocol

import httpx

from knowledge_hub.utils.time import utc_now, utc_now_iso


class WebSearchProvider(Protocol):
    name: str

    async def web_search(
        self, query: str, count: int, offset: int, market: str, safe_search: str
    ) -> dict[str, object]: ...

    async def news_search(
        self, query: str, count: int, market: str, sort_by: str
    ) -> list[dict[str, object]]: ...


class SimulatedSearchProvider:
    """Canned results shaped like the live provider's output."""

    name = "simulated"

    async def web_search(
        self, query: str, count: int, offset: int, market: str, safe_search: str
    ) -> dict[str, object]:
        results = []
        for i in range(offset, offset + min(count, 5)):
            results.append(
                {
                    "title": f'Sample Result {i + 1} for "{query}"',
                    "url": f"https://example.com/result-{i + 1}",
                    "snippet": (
                        f'This is a sample search result snippet for the query "{query}". '
                        "It contains relevant information about the topic."
                    ),
                    "display_url": f"example.com/result-{i + 1}",
                    "date_last_crawled": utc_now_iso(),
                }
            )
        return {"total_estimated_matches": count * 10, "results": results}

    async def news_search(
        self, query: str, count: int, market: str, sort_by: str
    ) -> list[dict[str, object]]:
        now = utc_now()
        return [
            {
                "title": f"Breaking News: {query} Update {i + 1}",
                "url": f"https://news.example.com/article-{i + 1}",
                "description": f"Latest news about {query}. This is a sample article description.",
                "provider": f"News Source {i + 1}",
                "date_published": (now - timedelta(hours=i)).isoformat(),
                "category": "Technology",
                "image": None,
            }
            for i in range(min(count, 3))
        ]


class BingSearchProvider:
    name = "bing"

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=endpoint,
            timeout=timeout,
            headers={"Ocp-Apim-Subscription-Key": api_key, "Accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def web_search(
        self, query: str, count: int, offset: int, market: str, safe_search: str
    ) -> dict[str, object]:
        response = await self._client.get(
            "/search",
            params={
                "q": query,
                "count": count,
                "offset": offset,
                "mkt": market,
                "safeSearch": safe_search,
            },
        )
        response.raise_for_status()
        pages = response.json().get("webPages") or {}
        return {
            "total_estimated_matches": pages.get("totalEstimatedMatches", 0),
            "results": [
                {
                    "title": item.get("name"),
                    "url": item.get("url"),
                    "snippet": item.get("snippet"),
                    "display_url": item.get("displayUrl") or item.get("url"),
                    "date_last_crawled": item.get("dateLastCrawled"),
                }
                for item in pages.get("value") or []
            ],
        }

    async def news_search(
        self, query: str, count: int, market: str, sort_by: str
    ) -> list[dict[str, object]]:
        response = await self._client.get(
            "/news/search",
            params={"q": query, "count": count, "mkt": market, "sortBy": sort_by},
        )
        response.raise_for_status()
        articles = []
        for item in response.json().get("value") or []:
            providers = item.get("provider") or [{}]
            image = (item.get("image") or {}).get("thumbnail") or {}
            articles.append(
                {
                    "title": item.get("name"),
                    "url": item.get("url"),
                    "description": item.get("description"),
                    "provider": providers[0].get("name", "Unknown"),
                    "date_published": item.get("datePublished"),
                    "category": item.get("category", "General"),
                    "image": image.get("contentUrl"),
                }
            )
        return articles
