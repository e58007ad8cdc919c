"""Interfaces of the services the engine consumes.

The engine never imports a provider SDK, a tool implementation or a UI
toolkit. It talks to them through these protocols, so tests can pass in
plain fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol, runtime_checkable

from ..streaming.events import StreamEvent
from .types import (
    ChatCompletionOptions,
    ChatCompletionResponse,
    ToolExecutionContext,
    ToolExecutionResult,
)


@dataclass
class StreamingResult:
    """Handle to an in-flight streaming completion.

    Attributes:
        stream: Async iterator of stream events.
        response: Zero-argument callable returning an awaitable of the final
            aggregated completion.
        cancel: Zero-argument callable returning an awaitable that aborts the
            underlying request. Must be safe to call more than once.
    """
    stream: AsyncIterator[StreamEvent]
    response: Callable[[], Awaitable[ChatCompletionResponse]]
    cancel: Callable[[], Awaitable[None]]


@runtime_checkable
class LLMService(Protocol):
    """Chat completion entry points for every configured provider."""

    async def create_chat_completion(
        self,
        provider: str,
        options: ChatCompletionOptions,
    ) -> ChatCompletionResponse:
        """Run one completion and return the full response."""
        ...

    async def create_streaming_chat_completion(
        self,
        provider: str,
        options: ChatCompletionOptions,
    ) -> StreamingResult:
        """Start a streaming completion and return a handle to it."""
        ...


@runtime_checkable
class ToolDefinition(Protocol):
    """Minimal view of a registered tool."""

    name: str
    description: str
    long_running: bool
    approval_execute_tool_name: Optional[str]


@runtime_checkable
class ToolRegistry(Protocol):
    """Lookup and execution of tools."""

    async def list_tools(self) -> list[str]:
        ...

    async def get_tool_definitions(self, names: Optional[list[str]] = None) -> list[dict[str, Any]]:
        """Return OpenAI-style function schemas, optionally limited to ``names``."""
        ...

    async def get_tool(self, name: str) -> Optional[ToolDefinition]:
        ...

    async def execute_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolExecutionContext,
    ) -> ToolExecutionResult:
        ...


@runtime_checkable
class StreamRenderer(Protocol):
    """Receives stream and tool lifecycle events. Must not block."""

    def handle_event(self, event: StreamEvent) -> None:
        ...


@runtime_checkable
class TelemetrySink(Protocol):
    """Destination for finalized run summaries."""

    async def write(self, summary: Any) -> None:
        ...
