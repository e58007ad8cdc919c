"""Streaming completions with timeout and non-streaming fallback.

The coordinator opens a provider stream, consumes it in a separate task
that forwards every event to the renderer, and races that task against a
single deadline covering stream creation, consumption and final response
resolution. Any failure cancels the task and the provider request, then
the same request is repeated once as a plain completion. Nothing is
appended to the conversation before the outcome is known, so a cancelled
attempt leaves no trace in the history.
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..logging import get_logger
from ..streaming.events import CompleteEvent, ErrorEvent, ToolCallEvent
from ..streaming.renderer import dispatch_event
from .errors import StreamInterruptedError
from .protocols import LLMService, StreamingResult, StreamRenderer
from .retry import RetryPolicy
from .types import ChatCompletionOptions, ChatCompletionResponse, ToolCall

logger = get_logger(__name__)

DEFAULT_STREAM_TIMEOUT = 300.0

OnRetry = Callable[[BaseException, int], None]


@dataclass
class StreamOutcome:
    """Result of one streaming attempt (or its fallback)."""
    response: ChatCompletionResponse
    announced_tool_calls: list[ToolCall] = field(default_factory=list)
    fell_back: bool = False
    first_token_latency_ms: Optional[float] = None


@dataclass
class _ConsumerState:
    announced: list[ToolCall] = field(default_factory=list)
    final: Optional[ChatCompletionResponse] = None
    first_token_latency_ms: Optional[float] = None
    events: int = 0


class StreamingCoordinator:
    """Run one streaming completion under a deadline, falling back on failure.

    Args:
        llm: Service providing both completion entry points.
        retry_policy: Applied to stream creation and to the fallback call.
        renderer: Receives every stream event; failures are logged only.
        timeout: Default deadline in seconds for a whole streaming attempt.
    """

    def __init__(
        self,
        llm: LLMService,
        retry_policy: RetryPolicy,
        renderer: Optional[StreamRenderer] = None,
        timeout: float = DEFAULT_STREAM_TIMEOUT,
    ):
        self.llm = llm
        self.retry_policy = retry_policy
        self.renderer = renderer
        self.timeout = timeout

    async def complete(
        self,
        provider: str,
        options: ChatCompletionOptions,
        timeout: Optional[float] = None,
        on_retry: Optional[OnRetry] = None,
    ) -> StreamOutcome:
        """Get a completion, streaming when possible.

        Args:
            provider: Provider name passed to the LLM service.
            options: The request.
            timeout: Deadline override in seconds for this attempt.
            on_retry: Called for every retried model call.

        Returns:
            The outcome; ``fell_back`` is True when the response came from the
            non-streaming fallback.

        Raises:
            Whatever the fallback call raises. Streaming failures themselves
            are never propagated.
        """
        limit = timeout if timeout is not None else self.timeout
        try:
            return await self._stream(provider, options, limit, on_retry)
        except Exception as e:
            logger.warning(
                "Streaming failed, falling back to non-streaming mode",
                provider=provider,
                model=options.model,
                timeout_seconds=limit,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )

        response = await self.retry_policy.call(
            lambda: self.llm.create_chat_completion(provider, options),
            on_retry=on_retry,
            operation="chat_completion",
        )
        return StreamOutcome(response=response, fell_back=True)

    async def _stream(
        self,
        provider: str,
        options: ChatCompletionOptions,
        limit: float,
        on_retry: Optional[OnRetry],
    ) -> StreamOutcome:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + limit

        def remaining() -> float:
            return max(0.0, deadline - loop.time())

        result: StreamingResult = await asyncio.wait_for(
            self.retry_policy.call(
                lambda: self.llm.create_streaming_chat_completion(provider, options),
                on_retry=on_retry,
                operation="streaming_chat_completion",
            ),
            timeout=remaining(),
        )

        state = _ConsumerState()
        consumer = asyncio.create_task(self._consume(result, state))
        try:
            done, _ = await asyncio.wait({consumer}, timeout=remaining())
            if consumer not in done:
                raise asyncio.TimeoutError(f"Stream did not finish within {limit:g}s")
            consumer.result()

            if state.final is not None:
                response = state.final
            else:
                response = await asyncio.wait_for(result.response(), timeout=remaining())
        except BaseException:
            await self._cancel(consumer, result)
            raise

        if not response.tool_calls and state.announced:
            response = dataclasses.replace(response, tool_calls=tuple(state.announced))

        logger.debug(
            "Stream completed",
            provider=provider,
            model=options.model,
            events=state.events,
            tool_calls=len(response.tool_calls),
        )
        return StreamOutcome(
            response=response,
            announced_tool_calls=list(state.announced),
            first_token_latency_ms=state.first_token_latency_ms,
        )

    async def _consume(self, result: StreamingResult, state: _ConsumerState) -> None:
        async for event in result.stream:
            state.events += 1
            dispatch_event(self.renderer, event)

            if isinstance(event, ToolCallEvent):
                state.announced.append(event.tool_call)
            elif isinstance(event, ErrorEvent):
                if not event.recoverable:
                    raise StreamInterruptedError(event.error)
                logger.warning("Recoverable stream error", error=event.error)
            elif isinstance(event, CompleteEvent):
                state.final = event.response
                if event.metrics is not None:
                    state.first_token_latency_ms = event.metrics.first_token_latency_ms
                break

    @staticmethod
    async def _cancel(consumer: asyncio.Task, result: StreamingResult) -> None:
        consumer.cancel()
        try:
            await result.cancel()
        except Exception as e:
            logger.debug("Stream cancel failed", error=str(e), error_type=type(e).__name__)
        await asyncio.gather(consumer, return_exceptions=True)
