"""
Tests for the deterministic mock backend.
"""

import json

import pytest

from app.agent import prompts
from app.agent.tools import EXTRACT_LOCATION_TOOL, RELATED_QUESTIONS_TOOL, forced_choice
from app.services.mock_service import (
    MockCompletionClient,
    MockSearchClient,
    generate_mock_response,
    mock_location,
)


@pytest.fixture
def llm() -> MockCompletionClient:
    return MockCompletionClient(delay=0)


@pytest.mark.parametrize(
    "query, marker",
    [
        ("What is a monad?", "Based on the available information"),
        ("How to bake bread", "step-by-step guide"),
        ("Why do cats purr", "several important reasons"),
        ("Tell me a story", "Thank you for your question"),
    ],
)
def test_keyword_responses(query: str, marker: str) -> None:
    assert marker in generate_mock_response(query)


@pytest.mark.parametrize(
    "query, city",
    [("weather in Paris today?", "Paris"), ("forecast for New York", "New York"), ("is it raining", "London")],
)
def test_mock_location(query: str, city: str) -> None:
    assert mock_location(query) == city


@pytest.mark.asyncio
async def test_tokens_stream_word_by_word(llm: MockCompletionClient) -> None:
    tokens: list[str] = []
    result = await llm.complete([{"role": "user", "content": "Why do cats purr"}], on_token=tokens.append)
    assert "".join(tokens) == result.text
    assert len(tokens) > 5
    assert tokens[1].startswith(" ")


@pytest.mark.asyncio
async def test_related_questions_tool_call(llm: MockCompletionClient) -> None:
    result = await llm.complete(
        [{"role": "user", "content": "topic"}],
        tools=[RELATED_QUESTIONS_TOOL],
        tool_choice=forced_choice(RELATED_QUESTIONS_TOOL),
    )
    assert result.text == ""
    assert len(json.loads(result.tool_args_text)["questions"]) == 5


@pytest.mark.asyncio
async def test_extract_location_tool_call(llm: MockCompletionClient) -> None:
    result = await llm.complete(
        [{"role": "user", "content": "Extract the location from this query: weather in Tokyo now"}],
        tool_choice=forced_choice(EXTRACT_LOCATION_TOOL),
    )
    assert json.loads(result.tool_args_text) == {"city": "Tokyo"}


@pytest.mark.asyncio
async def test_gate_keywords(llm: MockCompletionClient) -> None:
    def check(query: str) -> list[dict]:
        return [
            {"role": "system", "content": prompts.search_necessity_system_prompt("en")},
            {"role": "user", "content": prompts.search_check_prompt(query)},
        ]

    assert await llm.create(check("latest AI news")) == "true"
    assert await llm.create(check("tell me a joke")) == "false"


@pytest.mark.asyncio
async def test_plan_is_json_with_three_steps(llm: MockCompletionClient) -> None:
    result = await llm.complete(
        [{"role": "system", "content": prompts.planning_prompt("de")}, {"role": "user", "content": "q"}]
    )
    plan = json.loads(result.text)
    assert len(plan["steps"]) == 3
    assert plan["steps"][0]["description"] == "Analyzing query in de"


@pytest.mark.asyncio
async def test_mock_search_respects_max_results() -> None:
    class Opts:
        max_results = 3

    results = await MockSearchClient(delay=0).search("quantum computing", Opts())
    assert len(results) == 3
    assert all(r.url.startswith("https://") for r in results)


@pytest.mark.asyncio
async def test_mock_news_pads_to_requested_count() -> None:
    articles = await MockSearchClient(delay=0).get_news_by_category("unknown-category", 5)
    assert len(articles) == 5
    assert articles[0].title == "Breaking: Major Global Development Unfolds"
    assert articles[-1].url == "https://news.example.com/unknown-category-5"
