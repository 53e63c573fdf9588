"""
Mock backend: deterministic, keyword-driven stand-ins for the completion, search,
news and weather providers.

Selected by BACKEND_MODE=mock, or attached as the transparent fallback of the
live clients under BACKEND_MODE=auto. Latency is simulated with asyncio.sleep.
"""

import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from app.agent.llm import CONTENT, TOOL_ARGS, CompletionClient, StreamEvent, as_message_dicts
from app.core.config import MOCK_DELAY
from app.schemas.agent import SearchResult

logger = logging.getLogger(__name__)

MOCK_RELATED_QUESTIONS = [
    "Can you explain this in more detail?",
    "What are the main benefits?",
    "How does this compare to alternatives?",
    "What are some practical examples?",
    "Are there any limitations I should know about?",
]

_SEARCH_KEYWORDS = ("search", "find", "latest", "news", "current", "today", "weather", "price")

_QUOTED_QUERY_RE = re.compile(r'Query: "(.*)"', re.DOTALL)
_ORIGINAL_QUERY_RE = re.compile(r"Original query: (.*)")
_LANGUAGE_RE = re.compile(r"ONLY in ([^.\s]+)")
_LOCATION_RE = re.compile(r"\b(?:in|for|at)\s+([A-Z][\w\s-]*?)(?:[?.!,]|\s+(?:today|now|tomorrow|this)\b|$)")


def generate_mock_response(query: str) -> str:
    lowered = query.lower()
    if "what is" in lowered or "what are" in lowered:
        return (
            f"Based on the available information, I can explain this topic for you. {query} is a complex subject "
            "that involves multiple aspects. Let me break it down:\n\n"
            "1. **Core Concept**: The fundamental idea relates to how this concept works in practice.\n\n"
            "2. **Key Components**: There are several important elements to consider, including practical "
            "applications and theoretical foundations.\n\n"
            "3. **Real-World Applications**: This concept has been applied in various contexts, showing "
            "significant impact in different industries.\n\n"
            "4. **Current Trends**: Recent developments suggest that this area is evolving rapidly.\n\n"
            "Would you like me to dive deeper into any specific aspect of this topic?"
        )
    if "how" in lowered:
        return (
            f"Here's a step-by-step guide on {query}:\n\n"
            "**Step 1: Getting Started**\nBegin by understanding the basic requirements and prerequisites.\n\n"
            "**Step 2: Preparation**\nGather all necessary resources and tools needed to proceed effectively.\n\n"
            "**Step 3: Implementation**\nFollow the established process, paying attention to important details.\n\n"
            "**Step 4: Verification**\nCheck your work and ensure everything is functioning as expected.\n\n"
            "Would you like more details on any specific step?"
        )
    if "why" in lowered:
        return (
            f"There are several important reasons why {query}:\n\n"
            "1. **Primary Reason**: The most significant factor is related to fundamental principles.\n\n"
            "2. **Supporting Factors**: Additional considerations include efficiency and long-term benefits.\n\n"
            "3. **Historical Context**: Looking at past developments, this trend has been building for some time.\n\n"
            "Understanding these reasons helps provide context for why this topic matters."
        )
    return (
        f'Thank you for your question about "{query}". Let me provide you with a comprehensive answer.\n\n'
        "**Overview**\nThis is an important topic that touches on several key areas.\n\n"
        "**Main Points**\n"
        "1. The topic involves multiple interconnected elements that work together.\n"
        "2. Recent developments have shown significant progress in understanding these concepts.\n"
        "3. Practical applications demonstrate real-world value and effectiveness.\n\n"
        "Would you like me to elaborate on any specific aspect?"
    )


def mock_plan(query: str, language: str) -> dict[str, Any]:
    return {
        "answer": f"Plan for handling: {query}",
        "sources": [],
        "confidence": 0.85,
        "steps": [
            {
                "id": 1,
                "description": f"Analyzing query in {language}",
                "requires_search": True,
                "requires_tools": ["web_search"],
                "status": "pending",
            },
            {
                "id": 2,
                "description": f"Gathering information in {language}",
                "requires_search": True,
                "requires_tools": [],
                "status": "pending",
            },
            {
                "id": 3,
                "description": f"Synthesizing response in {language}",
                "requires_search": False,
                "requires_tools": [],
                "status": "pending",
            },
        ],
    }


def mock_location(query: str) -> str:
    match = _LOCATION_RE.search(query)
    return match.group(1).strip() if match else "London"


def mock_weather_summary(request: str) -> str:
    try:
        report = json.loads(request[request.index("{"):])
    except ValueError:
        return "Here is the current weather."
    return (
        f"It is currently {str(report.get('conditions', 'clear')).lower()} in {report.get('location', 'your area')} "
        f"at {report.get('temperature_c')} °C, with {report.get('humidity')}% humidity "
        f"and wind at {report.get('wind_speed_kmh')} km/h."
    )


def _user_query(messages: list[dict[str, Any]]) -> str:
    user = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "") or "Hello"
    for pattern in (_QUOTED_QUERY_RE, _ORIGINAL_QUERY_RE):
        match = pattern.search(user)
        if match:
            return match.group(1).strip()
    return user.strip()


class MockCompletionClient(CompletionClient):
    """Picks a canned reply from the persona in the system prompt and the user's words."""

    def __init__(self, delay: float = MOCK_DELAY) -> None:
        self.delay = delay

    def respond(
        self, messages: Sequence[Any], tool_choice: dict[str, Any] | None = None
    ) -> StreamEvent:
        msgs = as_message_dicts(messages)
        system = next((m["content"] for m in msgs if m["role"] == "system"), "")
        query = _user_query(msgs)
        tool = ((tool_choice or {}).get("function") or {}).get("name")
        if tool == "get_related_questions":
            return TOOL_ARGS, json.dumps({"questions": MOCK_RELATED_QUESTIONS})
        if tool == "extract_location":
            return TOOL_ARGS, json.dumps({"city": mock_location(query.removeprefix("Extract the location from this query:").strip())})
        if "search necessity checker" in system:
            lowered = query.lower()
            return CONTENT, "true" if any(k in lowered for k in _SEARCH_KEYWORDS) else "false"
        if "planning agent" in system:
            match = _LANGUAGE_RE.search(system)
            return CONTENT, json.dumps(mock_plan(query, match.group(1) if match else "en"))
        if "search agent" in system:
            return CONTENT, query
        if "weather assistant" in system:
            return CONTENT, mock_weather_summary(query)
        return CONTENT, generate_mock_response(query)

    async def stream(
        self,
        messages,
        *,
        tools=None,
        tool_choice=None,
        temperature=None,
        max_tokens=None,
        cancel=None,
    ) -> AsyncIterator[StreamEvent]:
        kind, text = self.respond(messages, tool_choice)
        logger.info("[mock:stream] kind=%s len=%d", kind, len(text))
        if kind == TOOL_ARGS:
            pieces = [text[i:i + 8] for i in range(0, len(text), 8)]
        else:
            words = text.split(" ")
            pieces = [w if i == 0 else f" {w}" for i, w in enumerate(words)]
        for piece in pieces:
            if cancel is not None and cancel.is_set():
                return
            await asyncio.sleep(self.delay)
            yield kind, piece

    async def create(self, messages, *, temperature=None, max_tokens=None) -> str:
        _, text = self.respond(messages)
        return text


_NOW = datetime.now(timezone.utc)

MOCK_SEARCH_RESULTS = [
    ("Wikipedia - Comprehensive Information", "https://en.wikipedia.org/wiki/example",
     "A comprehensive source of information about the topic. It provides detailed explanations and context.", 0.95),
    ("Academic Research Paper", "https://research.example.edu/paper",
     "Recent research findings and academic analysis on this subject. Peer-reviewed sources provide authoritative information.", 0.92),
    ("Expert Analysis and Insights", "https://expert.example.com/analysis",
     "In-depth analysis from industry experts covering various aspects of the topic, with real-world examples.", 0.88),
    ("Official Documentation", "https://docs.example.com/guide",
     "Official documentation and specifications. Provides technical details and implementation guidelines.", 0.85),
    ("News Article - Latest Updates", "https://news.example.com/updates",
     "Latest news and developments related to this topic. Includes recent events and current trends.", 0.82),
]

MOCK_NEWS_BY_CATEGORY: dict[str, list[tuple[str, str, str, int]]] = {
    "general": [
        ("Breaking: Major Global Development Unfolds", "https://news.example.com/breaking-1",
         "Significant developments are happening around the world that could impact multiple sectors.", 2),
        ("Technology Advances Change Industry Landscape", "https://tech.example.com/tech-1",
         "New technological innovations are reshaping how businesses operate.", 4),
        ("Economic Trends Show Positive Growth", "https://finance.example.com/economy-1",
         "Economic indicators suggest positive trends in multiple sectors.", 6),
    ],
    "business": [
        ("Corporate Strategy Shifts This Year", "https://business.example.com/business-1",
         "Major corporations are adapting their strategies to meet changing market demands.", 1),
        ("Startup Funding Reaches New Heights", "https://vc.example.com/business-2",
         "Venture capital investments continue to flow into innovative startups.", 3),
    ],
    "science": [
        ("Scientific Breakthrough in Medical Research", "https://science.example.com/science-1",
         "Researchers make significant progress in understanding complex medical conditions.", 2),
    ],
    "world": [
        ("Global Events Shape International Relations", "https://world.example.com/world-1",
         "Recent developments in international affairs are reshaping diplomatic relationships.", 1),
    ],
    "technology": [
        ("New Chips Promise Faster, Greener Computing", "https://tech.example.com/chips-1",
         "Hardware makers unveiled processors that cut power use while boosting performance.", 2),
    ],
    "health": [
        ("Health Innovations Improve Patient Outcomes", "https://health.example.com/health-1",
         "New health technologies and medical advances are improving treatment options.", 2),
    ],
}


class MockSearchClient:
    """Fixed result catalog, lightly customized with the query's first word."""

    def __init__(self, delay: float = MOCK_DELAY) -> None:
        self.delay = delay

    async def search(self, query: str, options: Any = None) -> list[SearchResult]:
        await asyncio.sleep(self.delay * 10)
        max_results = getattr(options, "max_results", 5)
        first_word = (query.split() or ["topic"])[0]
        results = [
            SearchResult(
                title=title.replace("example", first_word),
                url=url,
                snippet=snippet.replace("the topic", query),
                score=score,
                published_date=_NOW,
            )
            for title, url, snippet, score in MOCK_SEARCH_RESULTS
        ]
        logger.info("[mock:search] query=%r results=%d", query, min(len(results), max_results))
        return results[:max_results]

    async def get_news_by_category(self, category: str, max_results: int = 10) -> list[SearchResult]:
        await asyncio.sleep(self.delay * 10)
        catalog = MOCK_NEWS_BY_CATEGORY.get(category) or MOCK_NEWS_BY_CATEGORY["general"]
        articles = [
            SearchResult(
                title=title,
                url=url,
                snippet=snippet,
                published_date=_NOW - timedelta(hours=hours),
                image_url=f"https://via.placeholder.com/400x225?text={category}+{i + 1}",
                image_description=f"{category} news image",
            )
            for i, (title, url, snippet, hours) in enumerate(catalog)
        ]
        for i in range(len(articles), max_results):
            articles.append(
                SearchResult(
                    title=f"{category.capitalize()} News Article {i + 1}",
                    url=f"https://news.example.com/{category}-{i + 1}",
                    snippet=f"This is article {i + 1} in the {category} category.",
                    published_date=_NOW - timedelta(hours=i),
                    image_url=f"https://via.placeholder.com/400x225?text={category}+{i + 1}",
                    image_description=f"{category} news image {i + 1}",
                )
            )
        return articles[:max_results]


class MockWeatherClient:
    """Same contract as WeatherClient.current; every place is mild and partly cloudy."""

    def __init__(self, delay: float = MOCK_DELAY) -> None:
        self.delay = delay

    async def current(
        self, city: str, country: str | None = None, region: str | None = None
    ) -> dict[str, Any] | None:
        await asyncio.sleep(self.delay)
        city = (city or "").strip()
        if not city:
            return None
        return {
            "location": city,
            "country": country or "",
            "latitude": 51.51,
            "longitude": -0.13,
            "temperature_c": 18.0,
            "humidity": 62,
            "wind_speed_kmh": 11.0,
            "conditions": "Partly cloudy",
        }
