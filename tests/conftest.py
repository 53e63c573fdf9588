"""Shared fakes: a scripted completion client and a canned search client."""

import json
from collections.abc import Callable
from typing import Any

import pytest

from app.agent.llm import CONTENT, TOOL_ARGS, CompletionClient
from app.core.errors import TransportError
from app.schemas.agent import SearchResult
from app.services import news_service


def persona(messages: list[Any]) -> str:
    """Which prompt a request came from, by its system message."""
    system = next((m["content"] for m in messages if m["role"] == "system"), "")
    for key in ("search necessity checker", "planning agent", "search agent", "consolidation agent", "weather assistant"):
        if key in system:
            return key
    return "assistant"


class ScriptedLLM(CompletionClient):
    """
    Completion client driven by a reply table keyed by persona (or tool name).
    A value may be a string, an Exception instance to raise, or a callable(messages) -> str.
    """

    def __init__(self, replies: dict[str, Any], chunk_size: int = 7) -> None:
        self.replies = replies
        self.chunk_size = chunk_size
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []

    def _reply(self, messages, tool_choice=None) -> tuple[str, str]:
        msgs = [m if isinstance(m, dict) else m.model_dump() for m in messages]
        tool = ((tool_choice or {}).get("function") or {}).get("name")
        key = tool or persona(msgs)
        self.calls.append((key, msgs))
        value = self.replies.get(key, "")
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(msgs)
        return (TOOL_ARGS if tool else CONTENT), value

    def keys(self) -> list[str]:
        return [k for k, _ in self.calls]

    async def stream(self, messages, *, tools=None, tool_choice=None, temperature=None, max_tokens=None, cancel=None):
        kind, text = self._reply(messages, tool_choice)
        for i in range(0, len(text), self.chunk_size):
            if cancel is not None and cancel.is_set():
                return
            yield kind, text[i:i + self.chunk_size]

    async def create(self, messages, *, temperature=None, max_tokens=None) -> str:
        return self._reply(messages)[1]


class FakeSearch:
    def __init__(self, results: list[SearchResult] | None = None, error: Exception | None = None) -> None:
        self.results = results or []
        self.error = error
        self.queries: list[str] = []

    async def search(self, query, options=None):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.results)


def make_result(title: str, url: str, snippet: str = "snippet", **kwargs) -> SearchResult:
    return SearchResult(title=title, url=url, snippet=snippet, **kwargs)


PLAN_JSON = json.dumps(
    {
        "answer": "Look up the topic and summarize it.",
        "sources": [],
        "confidence": 0.9,
        "steps": [
            {"id": 1, "description": "Search", "requires_search": True, "requires_tools": ["web_search"], "status": "pending"},
            {"id": 2, "description": "Summarize", "requires_search": False, "requires_tools": [], "status": "pending"},
        ],
    }
)

QUESTIONS_JSON = json.dumps({"questions": [f"Question {i}?" for i in range(1, 6)]})


@pytest.fixture
def results() -> list[SearchResult]:
    return [
        make_result("Python 3.13 released", "https://www.python.org/downloads/release/3.13", "New REPL and JIT."),
        make_result("What's new in Python 3.13", "https://docs.python.org/3/whatsnew/3.13.html", "Free-threaded build."),
    ]


@pytest.fixture
def llm_factory() -> Callable[..., ScriptedLLM]:
    def factory(**overrides: Any) -> ScriptedLLM:
        replies = {
            "search necessity checker": "true",
            "planning agent": PLAN_JSON,
            "search agent": "python 3.13 release notes",
            "consolidation agent": json.dumps(
                {
                    "answer": "Python 3.13 ships a new REPL [1].",
                    "sources": [{"title": "Python 3.13 released", "url": "https://www.python.org/downloads/release/3.13"}],
                    "confidence": 0.92,
                }
            ),
            "get_related_questions": QUESTIONS_JSON,
            "assistant": "Python 3.13 ships a new REPL.",
        }
        replies.update(overrides)
        return ScriptedLLM(replies)

    return factory


@pytest.fixture(autouse=True)
def _clear_news_cache():
    news_service.clear_cache()
    yield
    news_service.clear_cache()


def transport_error(message: str = "connection refused") -> TransportError:
    return TransportError(message)
