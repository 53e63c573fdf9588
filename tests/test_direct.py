"""
Tests for the direct response path and token-update coalescing.
"""

import asyncio

import pytest
from conftest import FakeSearch, ScriptedLLM, transport_error

from app.agent.direct import DirectResponder, UpdateThrottle
from app.agent.llm import TOOL_ARGS
from app.core.errors import TransportError, ValidationError


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestUpdateThrottle:
    def test_coalesces_within_interval_and_flushes_last(self) -> None:
        clock = FakeClock()
        seen: list[str] = []
        throttle = UpdateThrottle(seen.append, interval=0.05, clock=clock)
        throttle.push("a")
        clock.now = 0.01
        throttle.push("ab")
        clock.now = 0.02
        throttle.push("abc")
        assert seen == ["a"]
        clock.now = 0.06
        throttle.push("abcd")
        assert seen == ["a", "abcd"]
        clock.now = 0.07
        throttle.push("abcde")
        throttle.flush()
        assert seen == ["a", "abcd", "abcde"]

    def test_flush_without_pending_is_noop(self) -> None:
        seen: list[str] = []
        throttle = UpdateThrottle(seen.append, clock=FakeClock())
        throttle.push("x")
        throttle.flush()
        assert seen == ["x"]

    def test_no_callback(self) -> None:
        throttle = UpdateThrottle(None)
        throttle.push("x")
        throttle.flush()


class TestDirectResponder:
    @pytest.mark.asyncio
    async def test_answer_with_search_and_related_questions(self, llm_factory, results) -> None:
        llm = llm_factory()
        search = FakeSearch(results)
        updates: list[str] = []
        result = await DirectResponder(llm, search, update_interval=0).respond(
            "What is new in Python 3.13?", [], "en", updates.append
        )
        assert result.answer == "Python 3.13 ships a new REPL."
        assert result.sources == results
        assert len(result.related_questions) == 5
        assert updates[-1] == result.answer
        assert search.queries == ["What is new in Python 3.13?"]
        _, messages = next(c for c in llm.calls if c[0] == "assistant")
        assert messages[-2]["content"].startswith("Search Results:\n[Source: Python 3.13 released]")

    @pytest.mark.asyncio
    async def test_gate_false_sends_no_search_context(self, llm_factory, results) -> None:
        llm = llm_factory(**{"search necessity checker": "false"})
        search = FakeSearch(results)
        result = await DirectResponder(llm, search).respond("Say hello")
        assert search.queries == []
        assert result.sources == []
        _, messages = next(c for c in llm.calls if c[0] == "assistant")
        assert not any(m["content"].startswith("Search Results:") for m in messages)

    @pytest.mark.asyncio
    async def test_history_forwarded_and_topic_prefixed(self, llm_factory) -> None:
        llm = llm_factory(**{"search necessity checker": "false"})
        history = [
            {"role": "user", "content": "Tell me about Rust"},
            {"role": "assistant", "content": "Rust is a systems language."},
        ]
        await DirectResponder(llm, FakeSearch()).respond("Is it fast?", history)
        _, messages = next(c for c in llm.calls if c[0] == "assistant")
        assert messages[1] == {"role": "user", "content": "Tell me about Rust"}
        assert messages[2]["role"] == "assistant"
        assert messages[-1]["content"] == "Previous topic: Tell me about Rust\nNew question: Is it fast?"

    @pytest.mark.asyncio
    async def test_cancel_returns_partial(self, llm_factory) -> None:
        cancel = asyncio.Event()
        cancel.set()
        llm = llm_factory(**{"search necessity checker": "false"})
        result = await DirectResponder(llm, FakeSearch()).respond("hello", cancel=cancel)
        assert result.cancelled is True
        assert result.answer == ""
        assert result.related_questions == []

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, llm_factory) -> None:
        with pytest.raises(ValidationError):
            await DirectResponder(llm_factory(), FakeSearch()).respond(" ")

    @pytest.mark.asyncio
    async def test_failed_answer_cancels_related_questions(self) -> None:
        class StalledQuestionsLLM(ScriptedLLM):
            questions_cancelled = False

            async def stream(self, messages, *, tools=None, tool_choice=None, **kwargs):
                if not tool_choice:
                    await asyncio.sleep(0)
                    raise transport_error()
                try:
                    await asyncio.sleep(30)
                except asyncio.CancelledError:
                    self.questions_cancelled = True
                    raise
                yield TOOL_ARGS, ""

        llm = StalledQuestionsLLM({"search necessity checker": "false"})
        with pytest.raises(TransportError):
            await DirectResponder(llm, FakeSearch()).respond("hello")
        await asyncio.sleep(0.01)
        assert llm.questions_cancelled is True
