"""
Category news: fan-out searches per category, near-duplicate merge, cap, cache.

The cache is process-wide, keyed by category, and updated by replacing the whole
entry. A hit needs an entry younger than the rate-limit window that already holds
at least the requested number of articles.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from app.core.config import NEWS_MAX_RESULTS, NEWS_RATE_LIMIT_SECONDS, NEWS_SEARCH_TYPES
from app.core.errors import TransportError
from app.schemas.agent import SearchResult
from app.services.dedup import merge_results
from app.services.search_client import SearchClient, results_from_payload

logger = logging.getLogger(__name__)

_EXCLUDED_DOMAINS = [
    "wikipedia.org", "reddit.com", "youtube.com",
    "facebook.com", "twitter.com", "instagram.com",
    "tiktok.com", "pinterest.com",
]


@dataclass(frozen=True)
class _CacheEntry:
    articles: list[SearchResult]
    fetched_at: float


_cache: dict[str, _CacheEntry] = {}


def clear_cache() -> None:
    _cache.clear()


def news_query(category: str, search_type: str) -> str:
    if search_type == "top":
        return f"top trending {category} news this week"
    return f"latest breaking {category} news today"


def news_payload(category: str, search_type: str, max_results: int = NEWS_MAX_RESULTS) -> dict[str, Any]:
    latest = search_type != "top"
    return {
        "query": news_query(category, search_type),
        "search_depth": "advanced",
        "include_images": True,
        "include_image_descriptions": True,
        "include_answer": False,
        "max_results": max_results,
        "filter": {
            "domain_types": ["news"],
            "time_period": "last_day" if latest else "last_week",
            "exclude_domains": _EXCLUDED_DOMAINS,
            "content_type": ["news"],
        },
        "search_params": {"sort_by": "date" if latest else "relevance"},
    }


class NewsService:
    def __init__(
        self,
        search_client: SearchClient,
        fallback: Any = None,
        search_types: tuple[str, ...] = NEWS_SEARCH_TYPES,
        rate_limit_seconds: float = NEWS_RATE_LIMIT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.search_client = search_client
        self.fallback = fallback
        self.search_types = search_types
        self.rate_limit_seconds = rate_limit_seconds
        self.clock = clock

    async def _fetch(self, category: str, search_type: str) -> list[SearchResult]:
        data = await self.search_client.raw_search(news_payload(category, search_type))
        return results_from_payload(data)

    async def get_news_by_category(self, category: str, max_results: int = 10) -> list[SearchResult]:
        category = (category or "").strip().lower()
        logger.info("[news:get_news_by_category] IN  category=%r max_results=%d", category, max_results)
        now = self.clock()
        entry = _cache.get(category)
        if entry is not None and now - entry.fetched_at < self.rate_limit_seconds and len(entry.articles) >= max_results:
            logger.info("[news:get_news_by_category] cache hit category=%r", category)
            return entry.articles[:max_results]
        try:
            batches = await asyncio.gather(*(self._fetch(category, t) for t in self.search_types))
        except TransportError as e:
            if self.fallback is not None:
                logger.warning("[news:get_news_by_category] search failed (%s); using mock news", e.message)
                return await self.fallback.get_news_by_category(category, max_results)
            logger.warning("[news:get_news_by_category] search failed (%s); returning no articles", e.message)
            return []
        merged: list[SearchResult] = []
        for batch in batches:
            merged = merge_results(merged, batch)
        articles = merged[:max_results]
        _cache[category] = _CacheEntry(articles=articles, fetched_at=now)
        logger.info("[news:get_news_by_category] OUT articles=%d", len(articles))
        return articles
