"""
Server-side provider proxies: keep the OpenAI and Tavily keys off the client.

POST /api/chat   → OpenAI chat completions (NDJSON stream or full JSON)
POST /api/search → Tavily search
POST /api/news   → Tavily category news search
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from openai import AsyncOpenAI, OpenAIError

from app.api.deps import get_services
from app.core.config import OPENAI_API_KEY, OPENAI_LLM_MODEL
from app.core.errors import ServiceUnavailableError, TransportError
from app.schemas.query import ChatProxyRequest, NewsProxyRequest, SearchProxyRequest
from app.services.backends import Services
from app.services.news_service import news_payload
from app.services.search_client import SearchClient

logger = logging.getLogger(__name__)
proxy_router = APIRouter()


def _error(status: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": error, "message": message})


def _openai_client() -> AsyncOpenAI | None:
    return AsyncOpenAI(api_key=OPENAI_API_KEY) if OPENAI_API_KEY else None


@proxy_router.post("/chat", tags=["proxy"], summary="Proxy a chat completion to OpenAI")
async def proxy_chat(body: ChatProxyRequest, client: AsyncOpenAI | None = Depends(_openai_client)):
    if client is None:
        return _error(500, "OpenAI API key not configured", "Set OPENAI_API_KEY in your .env file.")
    params = {
        "messages": body.messages,
        "model": body.model or OPENAI_LLM_MODEL,
        **{k: v for k, v in (("temperature", body.temperature), ("max_tokens", body.max_tokens),
                             ("tools", body.tools), ("tool_choice", body.tool_choice)) if v is not None},
    }
    logger.info("[proxy:chat] IN  messages=%d stream=%s model=%s", len(body.messages), body.stream, params["model"])
    try:
        if not body.stream:
            completion = await client.chat.completions.create(stream=False, **params)
            return JSONResponse(content=completion.model_dump(mode="json"))
        stream = await client.chat.completions.create(stream=True, **params)
    except OpenAIError as e:
        logger.warning("[proxy:chat] OpenAI call failed: %s", e)
        return _error(500, "OpenAI API error", str(e))

    async def ndjson():
        async for chunk in stream:
            yield chunk.model_dump_json() + "\n"

    return StreamingResponse(
        ndjson(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def _search_client(services: Services) -> SearchClient:
    """The live search client; mock mode still proxies to Tavily with the configured key."""
    if hasattr(services.search, "raw_search"):
        return services.search
    return SearchClient()


async def _forward(client: SearchClient, payload: dict, label: str):
    try:
        return await client.raw_search(payload)
    except ServiceUnavailableError as e:
        return _error(500, "Tavily API key not configured", e.message)
    except TransportError as e:
        logger.warning("[proxy:%s] Tavily call failed: %s", label, e.message)
        return _error(502, "Tavily API error", e.message)


@proxy_router.post("/search", tags=["proxy"], summary="Proxy a web search to Tavily")
async def proxy_search(body: SearchProxyRequest, services: Services = Depends(get_services)):
    logger.info("[proxy:search] IN  query=%r", body.query)
    return await _forward(_search_client(services), body.model_dump(), "search")


@proxy_router.post("/news", tags=["proxy"], summary="Proxy a category news search to Tavily")
async def proxy_news(body: NewsProxyRequest, services: Services = Depends(get_services)):
    logger.info("[proxy:news] IN  category=%r search_type=%s", body.category, body.search_type)
    payload = news_payload(body.category, body.search_type, body.max_results)
    return await _forward(_search_client(services), payload, "news")
