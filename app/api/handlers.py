"""
API handlers: call services, map results/errors to HTTP, and build SSE streams.

Responsibility: Bridge HTTP types and services. Marshalling and exception-to-HTTP mapping.
Lives in the API layer so services stay free of FastAPI/HTTP types.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import HTTPException

from app.core.errors import CancellationError, TransportError, ValidationError
from app.schemas.agent import AgentResult, ChatResult, PlanStep, sources_from_results
from app.schemas.query import NewsResponse, QueryRequest, QueryResponse, WeatherRequest
from app.services.agent_service import run_agent_query, run_direct_query
from app.services.backends import Services

logger = logging.getLogger(__name__)


def to_response(result: AgentResult | ChatResult) -> QueryResponse:
    if isinstance(result, ChatResult):
        return QueryResponse(
            answer=result.answer,
            sources=sources_from_results(result.sources),
            related_questions=result.related_questions,
        )
    return QueryResponse(
        answer=result.answer,
        sources=result.sources,
        confidence=result.confidence,
        steps=result.steps,
        related_questions=result.related_questions,
    )


async def handle_query(services: Services, body: QueryRequest) -> QueryResponse:
    try:
        if body.mode == "direct":
            result = await run_direct_query(services.direct, body.question, body.history, body.language)
        else:
            result = await run_agent_query(services.orchestrator, body.question, body.history, body.language)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return to_response(result)


def sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


async def query_events(services: Services, body: QueryRequest) -> AsyncIterator[str]:
    """
    Yield Server-Sent Events for one submission: progress / answer_delta, then done or error.
    Closing the stream (client disconnect) sets the submission's cancel event.
    """
    queue: asyncio.Queue[tuple[str, dict[str, Any]] | None] = asyncio.Queue()
    cancel = asyncio.Event()

    def on_progress(steps: list[PlanStep]) -> None:
        queue.put_nowait(("progress", {"steps": [s.model_dump() for s in steps]}))

    def on_update(text: str) -> None:
        queue.put_nowait(("answer_delta", {"content": text}))

    async def run() -> None:
        try:
            if body.mode == "direct":
                result = await run_direct_query(
                    services.direct, body.question, body.history, body.language, on_update, cancel
                )
            else:
                result = await run_agent_query(
                    services.orchestrator, body.question, body.history, body.language, on_progress, cancel
                )
            queue.put_nowait(("done", to_response(result).model_dump(mode="json")))
        except CancellationError:
            logger.info("[api:query_events] submission cancelled")
        except ValidationError as e:
            queue.put_nowait(("error", {"message": str(e)}))
        except Exception as e:
            logger.exception("[api:query_events] stream failed")
            queue.put_nowait(("error", {"message": str(e)}))
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(run())
    try:
        while True:
            item = await queue.get()
            if item is None:
                break
            yield sse(*item)
    finally:
        if not task.done():
            logger.info("[api:query_events] client went away; cancelling submission")
            cancel.set()


async def handle_news(services: Services, category: str, max_results: int) -> NewsResponse:
    articles = await services.news.get_news_by_category(category, max_results)
    return NewsResponse(category=category.strip().lower(), articles=articles)


async def handle_weather(services: Services, body: WeatherRequest) -> QueryResponse:
    try:
        result = await services.weather_agent.process(body.query, body.language)
    except TransportError as e:
        raise HTTPException(status_code=502, detail=e.message) from e
    return to_response(result)
