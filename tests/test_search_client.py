"""
Tests for the Tavily search client: payload, mapping, and failure handling.
"""

import json

import httpx
import pytest

from app.core.errors import ServiceUnavailableError
from app.services.mock_service import MockSearchClient
from app.services.search_client import SearchClient, SearchOptions, results_from_payload

TAVILY_BODY = {
    "results": [
        {
            "title": "Rates rise",
            "url": "https://www.reuters.com/markets/rates",
            "content": "The Fed raised rates.",
            "score": 0.91,
            "published_date": "Mon, 14 Oct 2024 10:00:00 GMT",
        },
        {"title": "Second", "url": "https://apnews.com/a", "content": "More.", "score": 0.5},
        {"title": "Third", "url": "https://bbc.co.uk/b", "content": "Even more.", "score": 0.4},
        {"title": "no url"},
    ],
    "images": [
        {"url": "https://img.test/1.jpg", "description": "one"},
        "https://img.test/2.jpg",
    ],
}


def _client(handler, **kwargs) -> SearchClient:
    return SearchClient(api_key="tvly-test", url="https://search.test", transport=httpx.MockTransport(handler), **kwargs)


def test_results_from_payload_maps_fields_and_cycles_images() -> None:
    results = results_from_payload(TAVILY_BODY)
    assert [r.title for r in results] == ["Rates rise", "Second", "Third"]
    first = results[0]
    assert first.snippet == "The Fed raised rates."
    assert first.domain == "reuters.com"
    assert first.published_date is not None and first.published_date.year == 2024
    assert [r.image_url for r in results] == [
        "https://img.test/1.jpg",
        "https://img.test/2.jpg",
        "https://img.test/1.jpg",
    ]
    assert first.image_description == "one"


def test_results_from_payload_without_results() -> None:
    assert results_from_payload({"answer": "x"}) == []


@pytest.mark.asyncio
async def test_search_posts_options_and_auth() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers["authorization"]
        return httpx.Response(200, json=TAVILY_BODY)

    results = await _client(handler).search("fed rates", SearchOptions(max_results=3, include_images=True))
    assert len(results) == 3
    assert captured["body"] == {
        "query": "fed rates",
        "search_depth": "advanced",
        "include_images": True,
        "include_answer": False,
        "max_results": 3,
    }
    assert captured["auth"] == "Bearer tvly-test"


@pytest.mark.asyncio
async def test_transport_failure_returns_empty() -> None:
    assert await _client(lambda req: httpx.Response(502)).search("q") == []


@pytest.mark.asyncio
async def test_transport_failure_uses_mock_fallback() -> None:
    client = _client(lambda req: httpx.Response(502), fallback=MockSearchClient(delay=0))
    results = await client.search("quantum computing", SearchOptions(max_results=2))
    assert len(results) == 2


@pytest.mark.asyncio
async def test_missing_key_raises_service_unavailable_on_raw_search() -> None:
    with pytest.raises(ServiceUnavailableError):
        await SearchClient(api_key="").raw_search({"query": "q"})


@pytest.mark.asyncio
async def test_missing_key_search_returns_empty() -> None:
    assert await SearchClient(api_key="").search("q") == []
