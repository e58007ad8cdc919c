"""agent_runtime - a bounded LLM/tool execution loop with token-budgeted history.

Quick start:
    >>> from agent_runtime import AgentEngine, AgentDescriptor, RunOptions, ToolRegistry, tool
    >>> @tool
    ... def get_time(timezone: str) -> str:
    ...     '''Current time in a timezone.
    ...
    ...     Args:
    ...         timezone: IANA timezone name.
    ...     '''
    ...     ...
    >>> registry = ToolRegistry([get_time])
    >>> engine = AgentEngine(llm=my_llm_service, tool_registry=registry)
    >>> agent = AgentDescriptor(id="helper", name="Helper", provider="openai",
    ...                         model="gpt-4o", tools=("get_time",))
    >>> response = await engine.run(RunOptions(agent=agent, user_input="What time is it in Paris?"))
"""

from .core import (
    AgentConfigurationError,
    AgentDescriptor,
    AgentEngine,
    AgentResponse,
    AgentRuntimeError,
    ChatCompletionOptions,
    ChatCompletionResponse,
    ChatMessage,
    ContextWindowManager,
    EngineState,
    FunctionCall,
    LLMAuthenticationError,
    LLMError,
    LLMRateLimitError,
    LLMRequestError,
    RetryPolicy,
    RunOptions,
    RunSummary,
    RunTracker,
    StreamingCoordinator,
    StreamingResult,
    SummarizingCompactor,
    TokenUsage,
    TokenUsageLogWriter,
    ToolCall,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolExecutor,
    ToolNotFoundError,
    ToolResultRemovalCompactor,
    TrimResult,
)
from .config import EngineConfig, StreamDecision, should_enable_streaming
from .streaming import BufferedRenderer, NullRenderer, QueueRenderer
from .tools import Tool, ToolRegistry, tool

__all__ = [
    "AgentEngine",
    "EngineConfig",
    "EngineState",
    "AgentDescriptor",
    "AgentResponse",
    "RunOptions",
    "ChatMessage",
    "ToolCall",
    "FunctionCall",
    "TokenUsage",
    "ChatCompletionOptions",
    "ChatCompletionResponse",
    "StreamingResult",
    "ToolExecutionContext",
    "ToolExecutionResult",
    "ContextWindowManager",
    "TrimResult",
    "SummarizingCompactor",
    "ToolResultRemovalCompactor",
    "RetryPolicy",
    "RunTracker",
    "RunSummary",
    "TokenUsageLogWriter",
    "StreamingCoordinator",
    "ToolExecutor",
    "StreamDecision",
    "should_enable_streaming",
    "BufferedRenderer",
    "NullRenderer",
    "QueueRenderer",
    "Tool",
    "ToolRegistry",
    "tool",
    "AgentRuntimeError",
    "AgentConfigurationError",
    "LLMError",
    "LLMRateLimitError",
    "LLMRequestError",
    "LLMAuthenticationError",
    "ToolNotFoundError",
]
