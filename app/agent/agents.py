"""
Agents: LLM personas bound to one pipeline phase.

Agent is the generic executor (plan, search, consolidate, related questions);
WeatherAgent is the one specialized agent. Every recoverable failure maps to a
documented fallback here, so the orchestrator only sees results or fatal errors.
"""

import asyncio
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from app.agent import prompts
from app.agent.llm import CompletionClient
from app.agent.tools import (
    DEFAULT_RELATED_QUESTIONS,
    EXTRACT_LOCATION_TOOL,
    RELATED_QUESTIONS_TOOL,
    WeatherClient,
    forced_choice,
    forecast_url,
    parse_related_questions,
    parse_tool_args,
)
from app.core.config import DEFAULT_CONFIDENCE, SEARCH_QUERY_MAX_CHARS
from app.core.errors import CancellationError, ParseError, TransportError
from app.schemas.agent import (
    AgentResult,
    ConsolidationResult,
    PlanResult,
    PlanStep,
    SearchResult,
    Source,
    cited_sources,
    parse_agent_output,
    sources_from_results,
)
from app.services.search_client import SearchClient, SearchOptions
from app.services.search_gate import SearchNecessityGate

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


@dataclass
class AgentConfig:
    name: str
    description: str
    system_prompt: Callable[[str], str]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    stripped = (text or "").strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1) if match else stripped


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse model output as a JSON object with a non-empty string answer. Raises ParseError."""
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ParseError(f"response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("response is not a JSON object")
    answer = data.get("answer")
    if not isinstance(answer, str) or not answer.strip():
        raise ParseError("missing or invalid answer")
    return data


def format_search_context(results: list[SearchResult]) -> str:
    return "\n\n".join(f"[Source: {r.title}]\n{r.snippet}" for r in results)


def fallback_plan(raw_text: str) -> PlanResult:
    return PlanResult(
        answer=raw_text,
        sources=[],
        confidence=DEFAULT_CONFIDENCE,
        steps=[PlanStep(id=1, description="Process the query", requires_search=True)],
    )


def _raise_if_cancelled(cancel: asyncio.Event | None, phase: str) -> None:
    if cancel is not None and cancel.is_set():
        raise CancellationError(f"cancelled during {phase}")


class Agent:
    """Generic executor: one persona, one completion client, optional search collaborators."""

    def __init__(
        self,
        config: AgentConfig,
        llm: CompletionClient,
        search_client: SearchClient | None = None,
        gate: SearchNecessityGate | None = None,
    ) -> None:
        self.config = config
        self.llm = llm
        self.search_client = search_client
        self.gate = gate

    def _system(self, language: str, suffix: str = "") -> dict[str, str]:
        prompt = self.config.system_prompt(language)
        return {"role": "system", "content": f"{prompt}\n\n{suffix}" if suffix else prompt}

    async def plan(self, query: str, language: str, cancel: asyncio.Event | None = None) -> PlanResult:
        logger.info("[agent:%s:plan] IN  query=%r language=%s", self.config.name, query, language)
        messages = [
            self._system(language, prompts.PLAN_SCHEMA_INSTRUCTIONS),
            {"role": "user", "content": query},
        ]
        try:
            response = await self.llm.complete(messages, cancel=cancel)
        except TransportError as e:
            logger.warning("[agent:%s:plan] completion failed (%s); using fallback plan", self.config.name, e.message)
            return fallback_plan("")
        _raise_if_cancelled(cancel, "planning")
        try:
            result = parse_agent_output("plan", parse_json_object(response.text))
        except ParseError as e:
            logger.warning("[agent:%s:plan] unparseable plan (%s); using fallback plan", self.config.name, e)
            return fallback_plan(response.text)
        logger.info("[agent:%s:plan] OUT steps=%d confidence=%.2f", self.config.name, len(result.steps), result.confidence)
        return result

    async def derive_search_query(
        self, query: str, plan: PlanResult, language: str, cancel: asyncio.Event | None = None
    ) -> str:
        """Focused search query from the plan, truncated; the user's query when empty or on failure."""
        messages = [
            self._system(language, prompts.SEARCH_QUERY_INSTRUCTIONS),
            {"role": "user", "content": prompts.search_query_request(query, plan.model_dump_json(indent=2))},
        ]
        try:
            response = await self.llm.complete(messages, cancel=cancel)
        except TransportError as e:
            logger.warning("[agent:%s:search] query derivation failed (%s); using original query", self.config.name, e.message)
            return query[:SEARCH_QUERY_MAX_CHARS]
        _raise_if_cancelled(cancel, "search query derivation")
        derived = response.text.strip().strip('"').strip()
        return (derived or query)[:SEARCH_QUERY_MAX_CHARS]

    async def search(
        self, query: str, plan: PlanResult, language: str, cancel: asyncio.Event | None = None
    ) -> list[SearchResult]:
        if self.search_client is None:
            return []
        logger.info("[agent:%s:search] IN  query=%r", self.config.name, query)
        if self.gate is not None and not await self.gate.should_search(query, language):
            logger.info("[agent:%s:search] OUT skipped by gate", self.config.name)
            return []
        _raise_if_cancelled(cancel, "searching")
        search_query = await self.derive_search_query(query, plan, language, cancel)
        results = await self.search_client.search(search_query, SearchOptions())
        logger.info("[agent:%s:search] OUT search_query=%r results=%d", self.config.name, search_query, len(results))
        return results

    async def consolidate(
        self,
        query: str,
        plan: PlanResult,
        results: list[SearchResult],
        language: str,
        cancel: asyncio.Event | None = None,
        on_token: Callable[[str], None] | None = None,
    ) -> ConsolidationResult:
        """Final answer. A TransportError here is fatal and propagates."""
        logger.info("[agent:%s:consolidate] IN  query=%r results=%d", self.config.name, query, len(results))
        messages = [
            self._system(language, prompts.CONSOLIDATION_SCHEMA_INSTRUCTIONS),
            {
                "role": "user",
                "content": prompts.consolidation_request(
                    query, plan.model_dump_json(indent=2), format_search_context(results)
                ),
            },
        ]
        response = await self.llm.complete(messages, cancel=cancel, on_token=on_token)
        _raise_if_cancelled(cancel, "consolidation")
        try:
            data = parse_json_object(response.text)
            raw_sources = data.get("sources")
            data["sources"] = (
                cited_sources(raw_sources, results) if isinstance(raw_sources, list) else sources_from_results(results)
            )
            result = parse_agent_output("consolidation", data)
        except ParseError as e:
            logger.warning("[agent:%s:consolidate] unparseable answer (%s); using raw text", self.config.name, e)
            return ConsolidationResult(
                answer=response.text,
                sources=sources_from_results(results),
                confidence=DEFAULT_CONFIDENCE,
            )
        logger.info("[agent:%s:consolidate] OUT answer_len=%d sources=%d", self.config.name, len(result.answer), len(result.sources))

    async def related_questions(
        self,
        query: str,
        language: str,
        previous_topic: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        """Five follow-up questions via a forced tool call; the default list on any failure."""
        messages = [
            {"role": "system", "content": prompts.related_questions_system_prompt(language)},
            {"role": "user", "content": prompts.related_questions_request(query, previous_topic)},
        ]
        try:
            response = await self.llm.complete(
                messages,
                tools=[RELATED_QUESTIONS_TOOL],
                tool_choice=forced_choice(RELATED_QUESTIONS_TOOL),
                cancel=cancel,
            )
            questions = parse_related_questions(response.tool_args_text)
        except (TransportError, ParseError) as e:
            logger.warning("[agent:%s:related_questions] falling back to defaults: %s", self.config.name, e)
            return list(DEFAULT_RELATED_QUESTIONS)
        logger.info("[agent:%s:related_questions] OUT questions=%d", self.config.name, len(questions))
        return questions


class WeatherAgent(Agent):
    """extract_location tool call, Open-Meteo lookup, then a formatting completion."""

    def __init__(self, config: AgentConfig, llm: CompletionClient, weather: WeatherClient) -> None:
        super().__init__(config, llm)
        self.weather = weather

    async def _extract_location(self, query: str, language: str) -> dict[str, Any]:
        messages = [
            self._system(language),
            {"role": "user", "content": f"Extract the location from this query: {query}"},
        ]
        try:
            response = await self.llm.complete(
                messages, tools=[EXTRACT_LOCATION_TOOL], tool_choice=forced_choice(EXTRACT_LOCATION_TOOL)
            )
            args = parse_tool_args(response.tool_args_text)
        except (TransportError, ParseError) as e:
            logger.warning("[agent:weather] location extraction failed (%s); using query text", e)
            return {"city": query}
        if not str(args.get("city") or "").strip():
            return {"city": query}
        return args

    async def process(self, query: str, language: str = "en") -> AgentResult:
        logger.info("[agent:weather:process] IN  query=%r language=%s", query, language)
        location = await self._extract_location(query, language)
        city = str(location.get("city") or "").strip()
        report = await self.weather.current(city, location.get("country"), location.get("region"))
        if report is None:
            logger.info("[agent:weather:process] OUT no location for %r", city)
            return AgentResult(
                answer=f"Sorry, I couldn't find weather information for \"{city}\". Could you specify the country or region?",
                sources=[],
                confidence=0.2,
            )
        messages = [
            {"role": "system", "content": prompts.weather_prompt(language)},
            {"role": "user", "content": prompts.weather_format_request(language, report)},
        ]
        formatted = await self.llm.complete(messages)
        source = Source(
            title=f"Weather data for {report['location']}",
            url=forecast_url(report["latitude"], report["longitude"]),
        )
        logger.info("[agent:weather:process] OUT location=%r answer_len=%d", report["location"], len(formatted.text))
        return AgentResult(answer=formatted.text, sources=[source], confidence=0.95)
