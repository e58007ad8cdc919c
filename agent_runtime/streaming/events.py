"""Stream events exchanged between the streaming coordinator and renderers.

Each variant is a frozen dataclass carrying a literal ``type`` tag, and
``StreamEvent`` is their union. Text and thinking chunks carry both the
delta and the full accumulated text, along with a sequence number, so a
renderer can recover from dropped or reordered chunks.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Optional, Union

from ..core.types import ChatCompletionResponse, ToolCall


@dataclass(frozen=True)
class StreamStart:
    provider: str
    model: str
    timestamp: float = field(default_factory=time.time)
    type: Literal["stream_start"] = field(default="stream_start", init=False)


@dataclass(frozen=True)
class ThinkingStart:
    type: Literal["thinking_start"] = field(default="thinking_start", init=False)


@dataclass(frozen=True)
class ThinkingChunk:
    """Reasoning text so far (``content``) and the newest piece (``delta``)."""
    content: str
    sequence: int
    delta: str = ""
    type: Literal["thinking_chunk"] = field(default="thinking_chunk", init=False)


@dataclass(frozen=True)
class ThinkingComplete:
    content: str = ""
    type: Literal["thinking_complete"] = field(default="thinking_complete", init=False)


@dataclass(frozen=True)
class TextStart:
    type: Literal["text_start"] = field(default="text_start", init=False)


@dataclass(frozen=True)
class TextChunk:
    delta: str
    accumulated: str
    sequence: int
    type: Literal["text_chunk"] = field(default="text_chunk", init=False)


@dataclass(frozen=True)
class ToolCallEvent:
    """A tool call announced by the provider mid-stream."""
    tool_call: ToolCall
    type: Literal["tool_call"] = field(default="tool_call", init=False)


@dataclass(frozen=True)
class ToolExecutionStart:
    tool_name: str
    tool_call_id: str
    arguments: Optional[dict[str, Any]] = None
    long_running: bool = False
    type: Literal["tool_execution_start"] = field(default="tool_execution_start", init=False)


@dataclass(frozen=True)
class ToolExecutionComplete:
    tool_call_id: str
    result: str
    duration_ms: float
    tool_name: str = ""
    success: bool = True
    type: Literal["tool_execution_complete"] = field(default="tool_execution_complete", init=False)


@dataclass(frozen=True)
class ErrorEvent:
    """A provider error; a non-recoverable one ends the stream."""
    error: str
    recoverable: bool = False
    type: Literal["error"] = field(default="error", init=False)


@dataclass(frozen=True)
class StreamMetrics:
    first_token_latency_ms: Optional[float] = None
    tokens_per_second: Optional[float] = None


@dataclass(frozen=True)
class CompleteEvent:
    """End of stream, carrying the aggregated final response."""
    response: ChatCompletionResponse
    total_duration_ms: float = 0.0
    metrics: Optional[StreamMetrics] = None
    type: Literal["complete"] = field(default="complete", init=False)


StreamEvent = Union[
    StreamStart,
    ThinkingStart,
    ThinkingChunk,
    ThinkingComplete,
    TextStart,
    TextChunk,
    ToolCallEvent,
    ToolExecutionStart,
    ToolExecutionComplete,
    ErrorEvent,
    CompleteEvent,
]


def event_to_dict(event: StreamEvent) -> dict[str, Any]:
    """Convert an event to a JSON-serializable dict, ``type`` included."""
    return asdict(event)
