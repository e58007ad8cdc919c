"""Shared fakes for engine tests: a scripted LLM service and fast retries."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Optional

import pytest

from agent_runtime.core.protocols import StreamingResult
from agent_runtime.core.retry import RetryPolicy
from agent_runtime.core.types import (
    AgentDescriptor,
    ChatCompletionOptions,
    ChatCompletionResponse,
    ChatMessage,
    FunctionCall,
    ToolCall,
)
from agent_runtime.streaming.events import StreamEvent


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_tool_call(call_id: str, name: str, arguments: str = "{}") -> ToolCall:
    return ToolCall(id=call_id, function=FunctionCall(name=name, arguments=arguments))


def assert_calls_answered(messages: list[ChatMessage]) -> None:
    """Every tool call has its result, except calls made by the newest message."""
    answered = {m.tool_call_id for m in messages if m.role == "tool"}
    for message in messages[:-1]:
        if message.role != "assistant":
            continue
        for call in message.tool_calls:
            assert call.id in answered, f"tool call {call.id} lost its result"


class FakeStream:
    """StreamingResult factory with observable cancellation.

    Args:
        events: Events yielded in order.
        final: Value returned by ``response()``.
        hang: Block forever after the last event, as a stalled connection would.
    """

    def __init__(
        self,
        events: Iterable[StreamEvent] = (),
        final: Optional[ChatCompletionResponse] = None,
        hang: bool = False,
    ):
        self.events = list(events)
        self.final = final or ChatCompletionResponse(content="")
        self.hang = hang
        self.cancelled = False

    async def _iterate(self):
        for event in self.events:
            await asyncio.sleep(0)
            yield event
        if self.hang:
            await asyncio.Event().wait()

    async def _response(self) -> ChatCompletionResponse:
        return self.final

    async def _cancel(self) -> None:
        self.cancelled = True

    def result(self) -> StreamingResult:
        return StreamingResult(stream=self._iterate(), response=self._response, cancel=self._cancel)


class FakeLLM:
    """LLM service answering from scripted queues.

    Each queue entry is a value to return or an exception to raise. The last
    non-streaming entry is reused once the queue runs dry.
    """

    def __init__(
        self,
        responses: Iterable[Any] = (),
        streams: Iterable[Any] = (),
    ):
        self.responses = list(responses)
        self.streams = list(streams)
        self.calls: list[ChatCompletionOptions] = []
        self.stream_calls: list[ChatCompletionOptions] = []

    async def create_chat_completion(self, provider: str, options: ChatCompletionOptions) -> ChatCompletionResponse:
        self.calls.append(options)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def create_streaming_chat_completion(self, provider: str, options: ChatCompletionOptions) -> StreamingResult:
        self.stream_calls.append(options)
        item = self.streams.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, FakeStream):
            return item.result()
        return item


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def fast_retry(recording_sleep) -> RetryPolicy:
    return RetryPolicy(max_retries=3, initial_delay=1.0, multiplier=2.0, sleep=recording_sleep)


@pytest.fixture()
def agent() -> AgentDescriptor:
    return AgentDescriptor(
        id="helper",
        name="Helper",
        provider="openai",
        model="gpt-4o-mini",
        system_prompt="You are a careful assistant.",
    )
