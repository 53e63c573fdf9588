"""
API route aggregator: register endpoints; no logic, only delegate to handlers.
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from app.api.deps import get_services
from app.api.handlers import handle_news, handle_query, handle_weather, query_events
from app.schemas.query import NewsResponse, QueryRequest, QueryResponse, WeatherRequest
from app.services.backends import Services

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Agentic search backend running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Query ---

@router.post(
    "/query",
    response_model=QueryResponse,
    tags=["query"],
    summary="Answer a question (agent pipeline or direct)",
    description="agent mode: plan → search → consolidate, with steps and confidence. direct mode: gated search and one answer. 400 on empty input.",
)
async def post_query(body: QueryRequest, services: Services = Depends(get_services)) -> QueryResponse:
    logger.info("[api:post_query] IN  question=%r mode=%s history_len=%d", body.question, body.mode, len(body.history))
    response = await handle_query(services, body)
    logger.info("[api:post_query] OUT answer_len=%d sources=%d", len(response.answer), len(response.sources))
    return response


@router.post(
    "/query/stream",
    tags=["query"],
    summary="Answer a question (SSE stream)",
    description="Server-Sent Events: progress (agent step snapshots), answer_delta (direct mode, coalesced text), done, error. Disconnecting cancels the run.",
)
async def post_query_stream(body: QueryRequest, services: Services = Depends(get_services)) -> StreamingResponse:
    logger.info("[api:post_query_stream] IN  question=%r mode=%s", body.question, body.mode)
    return StreamingResponse(
        query_events(services, body),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# --- Discover ---

@router.get(
    "/news/{category}",
    response_model=NewsResponse,
    tags=["discover"],
    summary="Deduplicated category news",
)
async def get_news(
    category: str,
    max_results: int = Query(10, ge=1, le=50),
    services: Services = Depends(get_services),
) -> NewsResponse:
    return await handle_news(services, category, max_results)


@router.post(
    "/agents/weather",
    response_model=QueryResponse,
    tags=["agents"],
    summary="Current weather for the place named in the question",
)
async def post_weather(body: WeatherRequest, services: Services = Depends(get_services)) -> QueryResponse:
    logger.info("[api:post_weather] IN  query=%r", body.query)
    return await handle_weather(services, body)
