"""
Web search: Tavily client returning ranked SearchResult lists.

Responsibility: Post a query to the search provider and map its results. Transport
failures never raise out of search(); they yield [] or, with a mock fallback
attached, the mock backend's results.
"""

import logging
from typing import Any, Literal

import httpx
from pydantic import BaseModel

from app.core.config import SEARCH_API_TIMEOUT, TAVILY_API_KEY, TAVILY_SEARCH_URL
from app.core.errors import ServiceUnavailableError, TransportError
from app.schemas.agent import SearchResult

logger = logging.getLogger(__name__)


class SearchOptions(BaseModel):
    search_depth: Literal["basic", "advanced"] = "advanced"
    include_images: bool = False
    include_answer: bool = False
    max_results: int = 5


DEFAULT_SEARCH_OPTIONS = SearchOptions()


def results_from_payload(data: dict[str, Any]) -> list[SearchResult]:
    """Map a provider response body to SearchResults; images are attached by index, cycling."""
    raw_results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(raw_results, list):
        logger.warning("[search:results_from_payload] response has no results list")
        return []
    images = [
        img if isinstance(img, dict) else {"url": img}
        for img in (data.get("images") or [])
        if img
    ]
    out: list[SearchResult] = []
    for i, raw in enumerate(raw_results):
        if not isinstance(raw, dict) or not raw.get("url"):
            continue
        image = images[i % len(images)] if images else None
        out.append(SearchResult.from_tavily(raw, image))
    return out


class SearchClient:
    def __init__(
        self,
        api_key: str = TAVILY_API_KEY,
        url: str = TAVILY_SEARCH_URL,
        timeout: float = SEARCH_API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        fallback: Any = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self.transport = transport
        self.fallback = fallback

    async def raw_search(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a provider payload and return the JSON body. Raises TransportError."""
        if not self.api_key:
            raise ServiceUnavailableError("TAVILY_API_KEY is not set")
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"search request failed: {e}") from e
        if response.status_code != 200:
            raise TransportError(f"search endpoint returned {response.status_code}: {response.text[:200]}")
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("search endpoint returned invalid JSON") from e

    async def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        opts = options or DEFAULT_SEARCH_OPTIONS
        logger.info("[search] IN  query=%r max_results=%d", query, opts.max_results)
        payload = {"query": query, **opts.model_dump()}
        try:
            data = await self.raw_search(payload)
        except TransportError as e:
            if self.fallback is not None:
                logger.warning("[search] failed (%s); using mock backend", e.message)
                return await self.fallback.search(query, opts)
            logger.warning("[search] failed (%s); returning no results", e.message)
            return []
        results = results_from_payload(data)
        logger.info("[search] OUT results=%d", len(results))
        return results
