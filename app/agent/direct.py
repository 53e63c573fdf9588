"""
Direct (non-agent) response path: gate, optional search, then one streamed answer
with related questions generated concurrently.

Token updates are coalesced: on_update receives the accumulated text at most once
per UPDATE_INTERVAL, plus a final flush.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from app.agent import prompts
from app.agent.agents import Agent, AgentConfig, format_search_context
from app.agent.llm import CompletionClient
from app.core.config import HISTORY_MAX_MESSAGES, SEARCH_QUERY_MAX_CHARS, UPDATE_INTERVAL
from app.core.errors import ValidationError
from app.schemas.agent import ChatResult, Message, first_user_turn
from app.services.search_client import DEFAULT_SEARCH_OPTIONS, SearchClient
from app.services.search_gate import SearchNecessityGate

logger = logging.getLogger(__name__)


class UpdateThrottle:
    """Coalesce rapid text updates into at most one callback per interval."""

    def __init__(
        self,
        callback: Callable[[str], None] | None,
        interval: float = UPDATE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.callback = callback
        self.interval = interval
        self.clock = clock
        self._last: float | None = None
        self._pending: str | None = None

    def push(self, text: str) -> None:
        if self.callback is None:
            return
        now = self.clock()
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            self._pending = None
            self.callback(text)
        else:
            self._pending = text

    def flush(self) -> None:
        if self.callback is not None and self._pending is not None:
            text, self._pending = self._pending, None
            self._last = self.clock()
            self.callback(text)


def _history_messages(history: Sequence[Message | dict[str, Any]]) -> list[dict[str, str]]:
    out = []
    for m in list(history)[-HISTORY_MAX_MESSAGES:]:
        role = m.role if isinstance(m, Message) else (m.get("role") or "user").strip().lower()
        content = m.content if isinstance(m, Message) else (m.get("content") or "").strip()
        if role in ("user", "assistant") and content:
            out.append({"role": role, "content": content})
    return out


class DirectResponder:
    def __init__(
        self,
        llm: CompletionClient,
        search_client: SearchClient,
        gate: SearchNecessityGate | None = None,
        update_interval: float = UPDATE_INTERVAL,
    ) -> None:
        self.llm = llm
        self.search_client = search_client
        self.gate = gate if gate is not None else SearchNecessityGate(llm)
        self.update_interval = update_interval
        self.assistant = Agent(
            AgentConfig("assistant", "Answers directly", lambda language: prompts.main_assistant_prompt(language, False)),
            llm,
        )

    async def respond(
        self,
        query: str,
        history: Sequence[Message | dict[str, Any]] | None = None,
        language: str = "en",
        on_update: Callable[[str], None] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ChatResult:
        q = (query or "").strip()
        if not q:
            raise ValidationError("query is required")
        hist = list(history or [])
        logger.info("[direct:respond] START query=%r history_len=%d language=%s", q, len(hist), language)

        results = []
        if await self.gate.should_search(q, language):
            results = await self.search_client.search(q[:SEARCH_QUERY_MAX_CHARS], DEFAULT_SEARCH_OPTIONS)

        previous_topic = first_user_turn(hist)
        messages: list[dict[str, str]] = [
            {"role": "system", "content": prompts.main_assistant_prompt(language, bool(results))},
            *_history_messages(hist),
        ]
        if results:
            messages.append({"role": "user", "content": f"Search Results:\n{format_search_context(results)}"})
        user_content = f"Previous topic: {previous_topic}\nNew question: {q}" if previous_topic else q
        messages.append({"role": "user", "content": user_content})

        throttle = UpdateThrottle(on_update, self.update_interval)
        parts: list[str] = []

        def on_token(delta: str) -> None:
            parts.append(delta)
            throttle.push("".join(parts))

        related_task = asyncio.create_task(self.assistant.related_questions(q, language, previous_topic, cancel))
        try:
            completion = await self.llm.complete(messages, on_token=on_token, cancel=cancel)
        except BaseException:
            related_task.cancel()
            raise
        related = await related_task
        throttle.flush()
        if completion.cancelled:
            logger.info("[direct:respond] cancelled answer_len=%d", len(completion.text))
            return ChatResult(answer=completion.text, sources=results, related_questions=[], cancelled=True)
        logger.info("[direct:respond] END answer_len=%d sources=%d", len(completion.text), len(results))
        return ChatResult(answer=completion.text, sources=results, related_questions=related)
