"""
Agent LLM: streaming chat completions against an OpenAI-compatible endpoint.

The wire stream is one JSON chunk per line (a "data: " SSE prefix is tolerated and
"[DONE]" ends the stream). Content deltas and tool-call argument deltas are split
apart; tool arguments arrive as partial JSON text and are assembled by concatenation.
When a mock fallback is attached, a transport failure before any delta was
delivered is retried transparently on the mock.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.config import COMPLETION_URL, LLM_API_TIMEOUT, OPENAI_API_KEY, OPENAI_LLM_MODEL
from app.core.errors import TransportError, ValidationError
from app.schemas.agent import Message

logger = logging.getLogger(__name__)

CONTENT = "content"
TOOL_ARGS = "tool_args"
_DONE = "[DONE]"

StreamEvent = tuple[str, str]


@dataclass
class CompletionResult:
    text: str = ""
    tool_args_text: str = ""
    cancelled: bool = False


def as_message_dicts(messages: Sequence[Message | dict[str, Any]]) -> list[dict[str, Any]]:
    if not messages:
        raise ValidationError("at least one message is required")
    out = []
    for m in messages:
        out.append(m.model_dump() if isinstance(m, Message) else {"role": m["role"], "content": m["content"]})
    return out


def parse_chunk(line: str) -> list[StreamEvent] | None:
    """
    Decode one line of the stream into events. Returns None on the end-of-stream
    marker; malformed or non-envelope lines yield no events.
    """
    text = line.strip()
    if not text:
        return []
    if text.startswith("data:"):
        text = text[5:].strip()
    if text == _DONE:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("[llm:parse_chunk] skip malformed chunk=%r", text[:120])
        return []
    if not isinstance(data, dict) or not isinstance(data.get("choices"), list) or not data["choices"]:
        return []
    choice = data["choices"][0]
    delta = choice.get("delta") if isinstance(choice, dict) else None
    if not isinstance(delta, dict):
        return []
    events: list[StreamEvent] = []
    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append((CONTENT, content))
    tool_calls = delta.get("tool_calls")
    if isinstance(tool_calls, list) and tool_calls and isinstance(tool_calls[0], dict):
        fn = tool_calls[0].get("function") or {}
        args = fn.get("arguments") if isinstance(fn, dict) else None
        if isinstance(args, str) and args:
            events.append((TOOL_ARGS, args))
    return events


async def _read_line(lines: AsyncIterator[str]) -> str | None:
    return await anext(lines, None)


async def _next_line(lines: AsyncIterator[str], cancel: asyncio.Event | None) -> str | None:
    """
    Next line from the response, or None at end of stream.
    A set cancel event wins over a stalled read; the read is unwound before returning
    so the response can be closed right away.
    """
    if cancel is None:
        return await _read_line(lines)
    read = asyncio.create_task(_read_line(lines))
    waiter = asyncio.create_task(cancel.wait())
    try:
        await asyncio.wait({read, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        read.cancel()
        waiter.cancel()
        await asyncio.wait({read, waiter})
    if read.cancelled():
        return None
    return read.result()


class CompletionClient:
    """
    Common contract for live and mock completion backends.

    Subclasses implement stream() and create(); complete() drains stream() into a
    single result while pushing deltas to the optional callbacks in arrival order.
    """

    fallback: "CompletionClient | None" = None

    def stream(
        self,
        messages: Sequence[Message | dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: dict[str, Any] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        raise NotImplementedError

    async def create(
        self,
        messages: Sequence[Message | dict[str, Any]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        raise NotImplementedError

    async def complete(
        self,
        messages: Sequence[Message | dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: dict[str, Any] | None = None,
        on_token: Callable[[str], None] | None = None,
        on_tool_args: Callable[[str], None] | None = None,
        cancel: asyncio.Event | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> CompletionResult:
        text_parts: list[str] = []
        tool_parts: list[str] = []
        events = self.stream(
            messages,
            tools=tools,
            tool_choice=tool_choice,
            temperature=temperature,
            max_tokens=max_tokens,
            cancel=cancel,
        )
        try:
            async for kind, delta in events:
                if cancel is not None and cancel.is_set():
                    break
                if kind == CONTENT:
                    text_parts.append(delta)
                    if on_token is not None:
                        on_token(delta)
                elif kind == TOOL_ARGS:
                    tool_parts.append(delta)
                    if on_tool_args is not None:
                        on_tool_args(delta)
        except TransportError as e:
            if self.fallback is None or text_parts or tool_parts:
                raise
            logger.warning("[llm:complete] transport failed (%s); falling back to mock backend", e)
            return await self.fallback.complete(
                messages,
                tools=tools,
                tool_choice=tool_choice,
                on_token=on_token,
                on_tool_args=on_tool_args,
                cancel=cancel,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        finally:
            await events.aclose()
        cancelled = cancel is not None and cancel.is_set()
        if cancelled:
            logger.info("[llm:complete] cancelled after text_len=%d", sum(len(p) for p in text_parts))
        return CompletionResult(text="".join(text_parts), tool_args_text="".join(tool_parts), cancelled=cancelled)


class StreamingCompletionClient(CompletionClient):
    """Live client: httpx streaming POST to the completion endpoint."""

    def __init__(
        self,
        api_key: str = OPENAI_API_KEY,
        url: str = COMPLETION_URL,
        model: str = OPENAI_LLM_MODEL,
        timeout: float = LLM_API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        fallback: CompletionClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        self.transport = transport
        self.fallback = fallback

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(self, messages, stream, tools, tool_choice, temperature, max_tokens) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model, "messages": as_message_dicts(messages), "stream": stream}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if tools:
            payload["tools"] = tools
        if tool_choice:
            payload["tool_choice"] = tool_choice
        return payload

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

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
        payload = self._payload(messages, True, tools, tool_choice, temperature, max_tokens)
        logger.info(
            "[llm:stream] IN  messages=%d tools=%s model=%s",
            len(payload["messages"]), [t["function"]["name"] for t in tools or []], self.model,
        )
        chunks = 0
        try:
            async with self._client() as client:
                async with client.stream("POST", self.url, json=payload, headers=self._headers()) as response:
                    if response.status_code != 200:
                        body = (await response.aread()).decode("utf-8", "replace")
                        raise TransportError(f"completion endpoint returned {response.status_code}: {body[:200]}")
                    lines = response.aiter_lines()
                    while True:
                        line = await _next_line(lines, cancel)
                        if cancel is not None and cancel.is_set():
                            logger.info("[llm:stream] cancelled after chunks=%d", chunks)
                            return
                        if line is None:
                            break
                        events = parse_chunk(line)
                        if events is None:
                            break
                        chunks += 1
                        for event in events:
                            yield event
        except httpx.HTTPError as e:
            raise TransportError(f"completion stream failed: {e}") from e
        logger.info("[llm:stream] OUT chunks=%d", chunks)

    async def create(self, messages, *, temperature=None, max_tokens=None) -> str:
        """Non-streaming completion. Returns the message content (may be empty)."""
        payload = self._payload(messages, False, None, None, temperature, max_tokens)
        try:
            async with self._client() as client:
                response = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            if self.fallback is not None:
                logger.warning("[llm:create] transport failed (%s); falling back to mock backend", e)
                return await self.fallback.create(messages, temperature=temperature, max_tokens=max_tokens)
            raise TransportError(f"completion request failed: {e}") from e
        if response.status_code != 200:
            if self.fallback is not None:
                logger.warning("[llm:create] endpoint returned %s; falling back to mock backend", response.status_code)
                return await self.fallback.create(messages, temperature=temperature, max_tokens=max_tokens)
            raise TransportError(f"completion endpoint returned {response.status_code}: {response.text[:200]}")
        try:
            data = response.json()
        except ValueError:
            return ""
        choices = (data.get("choices") or []) if isinstance(data, dict) else []
        if choices and isinstance(choices[0], dict):
            msg = choices[0].get("message") or {}
            out = (msg.get("content") or "").strip()
            logger.info("[llm:create] OUT response_len=%d", len(out))
            return out
        return ""
