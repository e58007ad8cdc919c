"""Tests for StreamingCoordinator: forwarding, timeout and fallback."""

from __future__ import annotations

import asyncio

import pytest

from agent_runtime.core.errors import LLMAuthenticationError, LLMRateLimitError
from agent_runtime.core.streaming import StreamingCoordinator
from agent_runtime.core.types import ChatCompletionOptions, ChatCompletionResponse, ChatMessage, TokenUsage
from agent_runtime.streaming.events import (
    CompleteEvent,
    ErrorEvent,
    StreamMetrics,
    StreamStart,
    TextChunk,
    TextStart,
    ToolCallEvent,
)
from agent_runtime.streaming.renderer import BufferedRenderer

from conftest import FakeLLM, FakeStream, make_tool_call


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def options() -> ChatCompletionOptions:
    return ChatCompletionOptions(model="gpt-4o-mini", messages=[ChatMessage.user("hi")])


def text_events(*parts: str) -> list:
    events: list = [StreamStart(provider="openai", model="gpt-4o-mini"), TextStart()]
    accumulated = ""
    for i, part in enumerate(parts, start=1):
        accumulated += part
        events.append(TextChunk(delta=part, accumulated=accumulated, sequence=i))
    return events


class ExplodingRenderer:
    def handle_event(self, event) -> None:
        raise RuntimeError("terminal closed")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def test_stream_events_are_forwarded_and_complete_response_used(fast_retry) -> None:
    final = ChatCompletionResponse(content="Hello", usage=TokenUsage(10, 2))
    stream = FakeStream(
        text_events("He", "llo") + [CompleteEvent(response=final, metrics=StreamMetrics(first_token_latency_ms=42.0))]
    )
    llm = FakeLLM(streams=[stream])
    renderer = BufferedRenderer()
    coordinator = StreamingCoordinator(llm, fast_retry, renderer=renderer, timeout=5)

    outcome = asyncio.run(coordinator.complete("openai", options()))

    assert outcome.fell_back is False
    assert outcome.response is final
    assert outcome.first_token_latency_ms == 42.0
    assert renderer.text == "Hello"
    assert [e.type for e in renderer.events][:2] == ["stream_start", "text_start"]
    assert llm.calls == []


def test_final_response_awaited_when_no_complete_event(fast_retry) -> None:
    final = ChatCompletionResponse(content="Hi there")
    llm = FakeLLM(streams=[FakeStream(text_events("Hi", " there"), final=final)])
    coordinator = StreamingCoordinator(llm, fast_retry, timeout=5)

    outcome = asyncio.run(coordinator.complete("openai", options()))

    assert outcome.response.content == "Hi there"
    assert outcome.fell_back is False


def test_announced_tool_calls_fill_missing_final_tool_calls(fast_retry) -> None:
    announced = make_tool_call("call_1", "search", '{"q": "x"}')
    final = ChatCompletionResponse(content="")
    llm = FakeLLM(streams=[FakeStream([ToolCallEvent(tool_call=announced), CompleteEvent(response=final)])])
    coordinator = StreamingCoordinator(llm, fast_retry, timeout=5)

    outcome = asyncio.run(coordinator.complete("openai", options()))

    assert outcome.response.tool_calls == (announced,)
    assert outcome.announced_tool_calls == [announced]


def test_timeout_cancels_stream_and_falls_back(fast_retry) -> None:
    stalled = FakeStream(text_events("Partial"), hang=True)
    llm = FakeLLM(responses=[ChatCompletionResponse(content="Full answer")], streams=[stalled])
    renderer = BufferedRenderer()
    coordinator = StreamingCoordinator(llm, fast_retry, renderer=renderer, timeout=0.05)

    outcome = asyncio.run(coordinator.complete("openai", options()))

    assert outcome.fell_back is True
    assert outcome.response.content == "Full answer"
    assert stalled.cancelled is True
    assert len(llm.calls) == 1


def test_non_recoverable_error_event_triggers_fallback(fast_retry) -> None:
    broken = FakeStream(text_events("Hel") + [ErrorEvent(error="connection reset", recoverable=False)], hang=True)
    llm = FakeLLM(responses=[ChatCompletionResponse(content="Hello")], streams=[broken])
    coordinator = StreamingCoordinator(llm, fast_retry, timeout=5)

    outcome = asyncio.run(coordinator.complete("openai", options()))

    assert outcome.fell_back is True
    assert outcome.response.content == "Hello"
    assert broken.cancelled is True


def test_recoverable_error_event_is_forwarded_only(fast_retry) -> None:
    final = ChatCompletionResponse(content="ok")
    events = [ErrorEvent(error="slow chunk", recoverable=True), CompleteEvent(response=final)]
    llm = FakeLLM(streams=[FakeStream(events)])
    renderer = BufferedRenderer()
    coordinator = StreamingCoordinator(llm, fast_retry, renderer=renderer, timeout=5)

    outcome = asyncio.run(coordinator.complete("openai", options()))

    assert outcome.fell_back is False
    assert renderer.events_of_type("error")


def test_stream_creation_rate_limit_is_retried_before_streaming(fast_retry, recording_sleep) -> None:
    final = ChatCompletionResponse(content="streamed")
    llm = FakeLLM(streams=[LLMRateLimitError("openai"), FakeStream([CompleteEvent(response=final)])])
    retries: list[int] = []
    coordinator = StreamingCoordinator(llm, fast_retry, timeout=5)

    outcome = asyncio.run(coordinator.complete("openai", options(), on_retry=lambda e, n: retries.append(n)))

    assert outcome.fell_back is False
    assert outcome.response is final
    assert retries == [1]
    assert recording_sleep.delays == [1.0]


def test_stream_creation_failure_falls_back(fast_retry) -> None:
    llm = FakeLLM(
        responses=[ChatCompletionResponse(content="fallback")],
        streams=[RuntimeError("streaming not supported")],
    )
    coordinator = StreamingCoordinator(llm, fast_retry, timeout=5)

    outcome = asyncio.run(coordinator.complete("openai", options()))

    assert outcome.fell_back is True
    assert outcome.response.content == "fallback"


def test_fallback_failure_propagates(fast_retry) -> None:
    llm = FakeLLM(
        responses=[LLMAuthenticationError("openai", "bad key")],
        streams=[LLMAuthenticationError("openai", "bad key")],
    )
    coordinator = StreamingCoordinator(llm, fast_retry, timeout=5)

    with pytest.raises(LLMAuthenticationError):
        asyncio.run(coordinator.complete("openai", options()))


def test_renderer_failures_do_not_break_streaming(fast_retry) -> None:
    final = ChatCompletionResponse(content="Hello")
    llm = FakeLLM(streams=[FakeStream(text_events("Hello") + [CompleteEvent(response=final)])])
    coordinator = StreamingCoordinator(llm, fast_retry, renderer=ExplodingRenderer(), timeout=5)

    outcome = asyncio.run(coordinator.complete("openai", options()))

    assert outcome.fell_back is False
    assert outcome.response.content == "Hello"
