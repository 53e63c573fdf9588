"""
LangGraph orchestrator: planning → searching → consolidating → END.

Strictly sequential. Three tracked PlanSteps move pending → loading → complete,
and the progress callback receives a fresh deep snapshot after every transition.
Related follow-up questions are generated concurrently with consolidation.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, TypedDict

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from app.agent import prompts
from app.agent.agents import Agent, AgentConfig
from app.agent.llm import CompletionClient
from app.core.errors import CancellationError, ValidationError
from app.schemas.agent import (
    AgentResult,
    ConsolidationResult,
    Message,
    PlanResult,
    PlanStep,
    SearchResult,
    first_user_turn,
)
from app.services.search_client import SearchClient
from app.services.search_gate import SearchNecessityGate

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[list[PlanStep]], None]

PLANNING, SEARCHING, CONSOLIDATING = "planning", "searching", "consolidating"
_PHASE_INDEX = {PLANNING: 0, SEARCHING: 1, CONSOLIDATING: 2}


class OrchestratorState(TypedDict, total=False):
    query: str
    language: str
    previous_topic: str | None
    plan: PlanResult
    results: list[SearchResult]
    consolidation: ConsolidationResult
    related_questions: list[str]
    steps: list[PlanStep]


def initial_steps(language: str) -> list[PlanStep]:
    return [
        PlanStep(id=1, description=f"Planning response in {language}", status="loading"),
        PlanStep(
            id=2,
            description=f"Searching for relevant information in {language}",
            requires_search=True,
            requires_tools=["web_search"],
        ),
        PlanStep(id=3, description=f"Consolidating information and generating response in {language}"),
    ]


def snapshot(steps: Sequence[PlanStep]) -> list[PlanStep]:
    return [s.model_copy(deep=True) for s in steps]


def complete_phase(steps: Sequence[PlanStep], phase: str) -> list[PlanStep]:
    """New step list with the phase's step complete and the next one loading."""
    updated = snapshot(steps)
    index = _PHASE_INDEX[phase]
    updated[index].advance("complete")
    if index + 1 < len(updated):
        updated[index + 1].advance("loading")
    return updated


def _check_cancel(config: RunnableConfig, phase: str) -> asyncio.Event | None:
    cancel = (config.get("configurable") or {}).get("cancel")
    if cancel is not None and cancel.is_set():
        raise CancellationError(f"cancelled before {phase}")
    return cancel


def build_graph(planner: Agent, searcher: Agent, consolidator: Agent):
    """
    Build and compile the orchestrator graph.
    planning → searching → consolidating → END.
    """

    async def _planning(state: OrchestratorState, config: RunnableConfig) -> dict:
        cancel = _check_cancel(config, PLANNING)
        plan = await planner.plan(state["query"], state["language"], cancel)
        return {"plan": plan, "steps": complete_phase(state["steps"], PLANNING)}

    async def _searching(state: OrchestratorState, config: RunnableConfig) -> dict:
        cancel = _check_cancel(config, SEARCHING)
        results = await searcher.search(state["query"], state["plan"], state["language"], cancel)
        return {"results": results, "steps": complete_phase(state["steps"], SEARCHING)}

    async def _consolidating(state: OrchestratorState, config: RunnableConfig) -> dict:
        cancel = _check_cancel(config, CONSOLIDATING)
        on_token = (config.get("configurable") or {}).get("on_token")
        related = asyncio.create_task(
            consolidator.related_questions(state["query"], state["language"], state.get("previous_topic"), cancel)
        )
        try:
            consolidation = await consolidator.consolidate(
                state["query"], state["plan"], state["results"], state["language"], cancel, on_token
            )
        except BaseException:
            related.cancel()
            raise
        questions = await related
        return {
            "consolidation": consolidation,
            "related_questions": questions,
            "steps": complete_phase(state["steps"], CONSOLIDATING),
        }

    graph = StateGraph(OrchestratorState)

    graph.add_node(PLANNING, _planning)
    graph.add_node(SEARCHING, _searching)
    graph.add_node(CONSOLIDATING, _consolidating)

    graph.set_entry_point(PLANNING)
    graph.add_edge(PLANNING, SEARCHING)
    graph.add_edge(SEARCHING, CONSOLIDATING)
    graph.add_edge(CONSOLIDATING, END)

    return graph.compile()


class Orchestrator:
    """Drives one query through the three agents. Collaborators are injected, never global."""

    def __init__(
        self,
        llm: CompletionClient,
        search_client: SearchClient,
        gate: SearchNecessityGate | None = None,
    ) -> None:
        gate = gate if gate is not None else SearchNecessityGate(llm)
        self.planner = Agent(
            AgentConfig("planner", "Plans the execution of complex queries", prompts.planning_prompt), llm
        )
        self.searcher = Agent(
            AgentConfig("searcher", "Generates focused search queries", prompts.search_agent_prompt),
            llm,
            search_client=search_client,
            gate=gate,
        )
        self.consolidator = Agent(
            AgentConfig("consolidator", "Combines information into comprehensive answers", prompts.consolidation_prompt),
            llm,
        )
        self.graph = build_graph(self.planner, self.searcher, self.consolidator)

    async def process(
        self,
        query: str,
        history: Sequence[Message | dict[str, Any]] | None = None,
        on_progress: ProgressCallback | None = None,
        language: str = "en",
        cancel: asyncio.Event | None = None,
        on_token: Callable[[str], None] | None = None,
    ) -> AgentResult:
        q = (query or "").strip()
        if not q:
            raise ValidationError("query is required")
        hist = list(history or [])
        logger.info("[orchestrator:process] START query=%r history_len=%d language=%s", q, len(hist), language)

        def report(steps: list[PlanStep]) -> None:
            if on_progress is not None:
                on_progress(snapshot(steps))

        steps = initial_steps(language)
        report(steps)
        state: OrchestratorState = {
            "query": q,
            "language": language,
            "previous_topic": first_user_turn(hist),
            "steps": steps,
        }
        config: RunnableConfig = {"configurable": {"cancel": cancel, "on_token": on_token}}
        async for event in self.graph.astream(state, config=config, stream_mode="updates"):
            # event: {node_name: state_update}
            for node_name, update in event.items():
                state.update(update)
                logger.info("[orchestrator:process] %s complete", node_name)
                report(update["steps"])

        consolidation = state["consolidation"]
        result = AgentResult(
            answer=consolidation.answer,
            sources=consolidation.sources,
            confidence=consolidation.confidence,
            steps=snapshot(state["steps"]),
            related_questions=state.get("related_questions") or [],
        )
        logger.info(
            "[orchestrator:process] END answer_len=%d sources=%d confidence=%.2f",
            len(result.answer), len(result.sources), result.confidence,
        )
        return result
