"""Agent execution engine.

``AgentEngine.run`` drives one conversation turn: it assembles the request,
keeps the history inside the token budget, calls the model (streaming when
enabled, with retry and fallback), executes requested tools one after
another, and repeats until the model answers without tool calls or the
iteration limit is reached.

All state of a run lives in a per-run object, so one engine can serve
concurrent runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..config import EngineConfig, StreamDecision, should_enable_streaming
from ..logging import bound_context, get_logger
from .compaction import Compactor, CompactionResult, get_compactor
from .context_window import ContextWindowManager
from .errors import AgentConfigurationError, AgentRuntimeError, classify_llm_error
from .prompt import build_agent_messages, build_system_prompt, resolve_allowed_tools
from .protocols import LLMService, StreamRenderer, TelemetrySink, ToolRegistry
from .retry import RetryPolicy
from .run_tracker import RunSummary, RunTracker, TokenUsageLogWriter
from .streaming import StreamingCoordinator
from .tool_executor import ToolExecutor
from .types import (
    AgentDescriptor,
    AgentResponse,
    ChatCompletionOptions,
    ChatCompletionResponse,
    ChatMessage,
    RunOptions,
    TokenUsage,
    ToolCall,
    ToolExecutionContext,
    generate_conversation_id,
)

logger = get_logger(__name__)

FALLBACK_USER_MESSAGE = "Continue"


class EngineState(str, Enum):
    BUILDING_REQUEST = "building_request"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    FINISHED = "finished"
    ABORTED = "aborted"


@dataclass
class _Run:
    options: RunOptions
    agent: AgentDescriptor
    conversation_id: str
    tracker: RunTracker
    max_iterations: int
    streaming: StreamDecision
    stream_timeout: float
    messages: list[ChatMessage] = field(default_factory=list)
    tool_definitions: list[dict[str, Any]] = field(default_factory=list)
    state: EngineState = EngineState.BUILDING_REQUEST
    iterations: int = 0
    finished: bool = False
    content: str = ""
    tool_calls: Optional[list[ToolCall]] = None
    tool_results: dict[str, Any] = field(default_factory=dict)
    usage: TokenUsage = field(default_factory=TokenUsage)

    def transition(self, state: EngineState) -> None:
        logger.debug("Engine state changed", previous=self.state.value, state=state.value)
        self.state = state


class AgentEngine:
    """Runs agents against an LLM service and a tool registry.

    Args:
        llm: Chat completion service.
        tool_registry: Tool lookup and execution service.
        renderer: Receives stream and tool lifecycle events.
        config: Engine settings; defaults to ``EngineConfig()``.
        context_window: Token budget manager; built from ``config`` when omitted.
        retry_policy: Model call retry policy; built from ``config`` when omitted.
        telemetry: Destination for run summaries; a ``TokenUsageLogWriter``
            when ``config.telemetry_log_path`` is set.
        compactor: History compaction strategy; built from ``config.compactor``
            when omitted.

    Example:
        >>> engine = AgentEngine(llm=my_llm, tool_registry=registry)
        >>> response = await engine.run(RunOptions(agent=agent, user_input="Hi"))
        >>> print(response.content)
    """

    def __init__(
        self,
        llm: LLMService,
        tool_registry: ToolRegistry,
        renderer: Optional[StreamRenderer] = None,
        config: Optional[EngineConfig] = None,
        context_window: Optional[ContextWindowManager] = None,
        retry_policy: Optional[RetryPolicy] = None,
        telemetry: Optional[TelemetrySink] = None,
        compactor: Optional[Compactor] = None,
    ):
        self.config = config or EngineConfig()
        self.llm = llm
        self.tool_registry = tool_registry
        self.renderer = renderer
        self.context_window = context_window or ContextWindowManager(
            max_tokens=self.config.context_max_tokens,
            protected_recent_turns=self.config.protected_recent_turns,
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=self.config.max_retries,
            initial_delay=self.config.retry_initial_delay,
            multiplier=self.config.retry_multiplier,
        )
        if telemetry is None and self.config.telemetry_log_path is not None:
            telemetry = TokenUsageLogWriter(self.config.telemetry_log_path)
        self.telemetry = telemetry
        if compactor is None:
            if self.config.compactor == "summarize":
                compactor = get_compactor("summarize", llm=llm, retry_policy=self.retry_policy)
            else:
                compactor = get_compactor(self.config.compactor)
        self.compactor = compactor
        self.streaming = StreamingCoordinator(
            llm,
            self.retry_policy,
            renderer=renderer,
            timeout=self.config.stream_timeout,
        )
        self.tool_executor = ToolExecutor(
            tool_registry,
            renderer=renderer,
            emit_events=self.config.show_tool_execution,
        )

    async def run(self, options: RunOptions) -> AgentResponse:
        """Execute one agent turn.

        Returns:
            The response. When the iteration limit was reached first,
            ``finished`` is False and ``content`` holds whatever the last
            model call produced.

        Raises:
            ToolNotFoundError: If the model called a tool the registry lacks.
            LLMError: If a model call failed and could not be retried.
            AgentConfigurationError: If the request could not be assembled.
        """
        agent = options.agent
        max_iterations = options.max_iterations
        if max_iterations is None:
            max_iterations = self.config.max_iterations
        if max_iterations < 1:
            raise AgentConfigurationError(agent.id, "max_iterations", "must be at least 1")

        conversation_id = options.conversation_id or generate_conversation_id()
        tracker = RunTracker(agent, conversation_id, max_iterations, user_id=options.user_id)
        run = _Run(
            options=options,
            agent=agent,
            conversation_id=conversation_id,
            tracker=tracker,
            max_iterations=max_iterations,
            streaming=should_enable_streaming(
                self.config,
                force_stream=options.force_stream,
                force_no_stream=options.force_no_stream,
            ),
            stream_timeout=agent.timeout or self.config.stream_timeout,
        )

        with bound_context(run_id=tracker.run_id, agent_id=agent.id, conversation_id=conversation_id):
            logger.info(
                "Agent run started",
                agent_name=agent.name,
                provider=agent.provider,
                model=agent.model,
                streaming=run.streaming.should_stream,
                streaming_reason=run.streaming.reason,
                max_iterations=max_iterations,
            )
            try:
                await self._prepare(run)
                await self._loop(run)
            except BaseException as e:
                run.transition(EngineState.ABORTED)
                tracker.record_error(e)
                await self._finalize(run)
                raise

            self._report_outcome(run)
            await self._finalize(run)
            return AgentResponse(
                content=run.content,
                conversation_id=conversation_id,
                messages=list(run.messages),
                tool_calls=run.tool_calls,
                tool_results=dict(run.tool_results) or None,
                was_streamed=run.streaming.should_stream,
                finished=run.finished,
                iterations=run.iterations,
                usage=run.usage,
                run_id=tracker.run_id,
            )

    async def _prepare(self, run: _Run) -> None:
        allowed = await resolve_allowed_tools(run.agent, self.tool_registry)
        if allowed:
            run.tool_definitions = await self.tool_registry.get_tool_definitions(allowed)
        system_prompt = await build_system_prompt(run.agent, self.tool_registry, allowed)
        run.messages = build_agent_messages(
            system_prompt,
            run.options.conversation_history,
            run.options.user_input,
        )

    async def _loop(self, run: _Run) -> None:
        while run.iterations < run.max_iterations:
            run.iterations += 1
            run.tracker.begin_iteration()
            run.transition(EngineState.BUILDING_REQUEST)
            await self._compact(run)
            request_messages = self._enforce_budget(run)
            if not request_messages:
                fallback = run.options.user_input.strip() or FALLBACK_USER_MESSAGE
                logger.warning("No messages to send, using fallback user message")
                request_messages = [ChatMessage.user(fallback)]
                run.messages = list(request_messages)

            run.transition(EngineState.AWAITING_MODEL)
            response = await self._call_model(run, request_messages)

            run.tracker.record_llm_usage(response.usage)
            run.usage.add(response.usage)
            run.messages.append(ChatMessage.assistant(response.content, response.tool_calls))
            run.content = response.content
            run.tool_calls = list(response.tool_calls) or None

            if not response.tool_calls:
                logger.info(
                    "Agent provided final response",
                    iteration=run.iterations,
                    content_length=len(response.content),
                )
                run.finished = True
                run.transition(EngineState.FINISHED)
                return

            logger.info(
                "Agent decided to use tools",
                iteration=run.iterations,
                tools=[call.function.name for call in response.tool_calls],
            )
            run.transition(EngineState.EXECUTING_TOOLS)
            await self._execute_tools(run, response.tool_calls)

        run.transition(EngineState.ABORTED)

    async def _compact(self, run: _Run) -> Optional[CompactionResult]:
        """Compact ``run.messages`` once they use over 80% of the budget.

        A failed compaction is logged and leaves the history to the trim.
        """
        if not self.context_window.should_summarize(run.messages):
            return None
        try:
            messages, result = await self.compactor.compact(run.messages, run.agent, self.context_window)
        except Exception as e:
            logger.warning(
                "Context compaction failed, trimming instead",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        if result is None:
            return None

        run.messages = messages
        if result.usage is not None:
            run.tracker.record_llm_usage(result.usage)
            run.usage.add(result.usage)
        logger.info(
            "Context compacted",
            strategy=result.strategy,
            original_count=result.original_count,
            compacted_count=result.compacted_count,
            original_tokens=result.original_tokens,
            compacted_tokens=result.compacted_tokens,
            tokens_saved=result.tokens_saved,
        )
        return result

    def _enforce_budget(self, run: _Run) -> list[ChatMessage]:
        """Trim ``run.messages`` in place and return the list to send.

        A trailing user message still awaiting an answer is held out of the
        trim and re-appended, with its cost taken off the budget.
        """
        messages = run.messages
        pending: Optional[ChatMessage] = None
        if messages and messages[-1].role == "user":
            pending = messages[-1]
            messages = messages[:-1]

        budget = self.context_window.max_tokens
        if pending is not None:
            budget -= self.context_window.estimate_tokens(pending)

        trimmed, result = self.context_window.trim(messages, max_tokens=budget)
        if result is not None:
            run.messages = trimmed + ([pending] if pending is not None else [])
        return list(run.messages)

    async def _call_model(self, run: _Run, messages: list[ChatMessage]) -> ChatCompletionResponse:
        agent = run.agent
        options = ChatCompletionOptions(
            model=agent.model,
            messages=messages,
            tools=run.tool_definitions,
            tool_choice="auto",
            reasoning_effort=agent.reasoning_effort,
        )
        logger.debug(
            "Sending LLM request",
            iteration=run.iterations,
            message_count=len(messages),
            tool_count=len(run.tool_definitions),
            streaming=run.streaming.should_stream,
        )

        def on_retry(error: BaseException, attempt: int) -> None:
            run.tracker.record_retry(error)

        try:
            if run.streaming.should_stream:
                outcome = await self.streaming.complete(
                    agent.provider,
                    options,
                    timeout=run.stream_timeout,
                    on_retry=on_retry,
                )
                run.tracker.record_first_token_latency(outcome.first_token_latency_ms)
                response = outcome.response
            else:
                response = await self.retry_policy.call(
                    lambda: self.llm.create_chat_completion(agent.provider, options),
                    on_retry=on_retry,
                    operation="chat_completion",
                )
        except AgentRuntimeError:
            raise
        except Exception as e:
            raise classify_llm_error(e, agent.provider) from e

        logger.debug(
            "LLM response received",
            iteration=run.iterations,
            content_length=len(response.content),
            tool_calls=len(response.tool_calls),
            usage=response.usage.to_dict() if response.usage else None,
        )
        return response

    async def _execute_tools(self, run: _Run, tool_calls: tuple[ToolCall, ...]) -> None:
        for call in tool_calls:
            context = ToolExecutionContext(
                agent_id=run.agent.id,
                run_id=run.tracker.run_id,
                tool_call_id=call.id,
                conversation_id=run.conversation_id,
                user_id=run.options.user_id,
            )
            outcome = await self.tool_executor.execute(call, context, tracker=run.tracker)
            run.messages.append(outcome.message)
            if outcome.success:
                run.tool_results[outcome.tool_name] = outcome.result
            else:
                run.tool_results[outcome.tool_name] = {"error": outcome.error}

    def _report_outcome(self, run: _Run) -> None:
        if not run.finished:
            logger.warning(
                "Reached maximum iterations",
                max_iterations=run.max_iterations,
                finished=False,
            )
        elif not run.content.strip() and not run.tool_calls:
            logger.warning("Model returned an empty response", iteration=run.iterations)

    async def _finalize(self, run: _Run) -> Optional[RunSummary]:
        if run.tracker.finalized:
            return None
        summary = run.tracker.finalize(iterations_used=run.iterations, finished=run.finished)
        logger.info(
            "Agent run finalized",
            state=run.state.value,
            finished=summary.finished,
            iterations=summary.iterations,
            duration_ms=summary.duration_ms,
            prompt_tokens=summary.prompt_tokens,
            completion_tokens=summary.completion_tokens,
            retry_count=summary.retry_count,
            tool_calls=summary.tool_calls,
            tool_errors=summary.tool_errors,
        )
        if self.telemetry is not None:
            try:
                await self.telemetry.write(summary)
            except Exception as e:
                logger.warning(
                    "Failed to write agent token usage log",
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return summary
