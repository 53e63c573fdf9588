"""
Agent service: run one query through the agent pipeline or the direct path.

Responsibility: Validate the query at the boundary and turn fatal pipeline
failures into the generic apology result. Called by the API; no HTTP here.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from app.agent.direct import DirectResponder
from app.agent.graph import Orchestrator, ProgressCallback
from app.core.errors import CancellationError, ValidationError
from app.schemas.agent import AgentResult, ChatResult

logger = logging.getLogger(__name__)

APOLOGY = (
    "I apologize, but I encountered an error while processing your request. Please try again."
)


def _require_query(query: str) -> str:
    q = (query or "").strip()
    if not q:
        raise ValidationError("question is required")
    return q


async def run_agent_query(
    orchestrator: Orchestrator,
    query: str,
    history: list[Any] | None = None,
    language: str = "en",
    on_progress: ProgressCallback | None = None,
    cancel: asyncio.Event | None = None,
) -> AgentResult:
    """
    Run the planning → searching → consolidating pipeline.
    Raises ValidationError for an empty query and CancellationError when aborted;
    any other failure yields the apology result.
    """
    q = _require_query(query)
    try:
        return await orchestrator.process(q, history or [], on_progress, language, cancel)
    except CancellationError:
        logger.info("[agent_service:run_agent_query] cancelled query=%r", q)
        raise
    except Exception:
        logger.exception("[agent_service:run_agent_query] pipeline failed query=%r", q)
        return AgentResult(answer=APOLOGY, sources=[], confidence=0.0, related_questions=[])


async def run_direct_query(
    responder: DirectResponder,
    query: str,
    history: list[Any] | None = None,
    language: str = "en",
    on_update: Callable[[str], None] | None = None,
    cancel: asyncio.Event | None = None,
) -> ChatResult:
    q = _require_query(query)
    try:
        result = await responder.respond(q, history or [], language, on_update, cancel)
    except Exception:
        logger.exception("[agent_service:run_direct_query] direct response failed query=%r", q)
        return ChatResult(answer=APOLOGY)
    if result.cancelled:
        logger.info("[agent_service:run_direct_query] cancelled query=%r", q)
    return result
