"""Core of the agent runtime: the execution engine and its components."""

from .types import (
    AgentDescriptor,
    AgentResponse,
    ChatCompletionOptions,
    ChatCompletionResponse,
    ChatMessage,
    FunctionCall,
    RunOptions,
    TokenUsage,
    ToolCall,
    ToolExecutionContext,
    ToolExecutionResult,
    generate_conversation_id,
)
from .errors import (
    AgentConfigurationError,
    AgentRuntimeError,
    LLMAuthenticationError,
    LLMError,
    LLMRateLimitError,
    LLMRequestError,
    StreamInterruptedError,
    ToolNotFoundError,
    classify_llm_error,
    is_rate_limit_error,
)
from .protocols import LLMService, StreamingResult, StreamRenderer, TelemetrySink, ToolRegistry
from .retry import RetryPolicy, async_retry
from .context_window import ContextWindowConfig, ContextWindowManager, TrimResult
from .compaction import (
    CompactionResult,
    Compactor,
    NoOpCompactor,
    SummarizingCompactor,
    ToolResultRemovalCompactor,
    get_compactor,
)
from .run_tracker import RunSummary, RunTracker, TokenUsageLogWriter
from .streaming import StreamingCoordinator, StreamOutcome
from .tool_executor import ToolExecutionOutcome, ToolExecutor, parse_tool_arguments
from .prompt import build_agent_messages, build_system_prompt, normalize_tool_config, resolve_allowed_tools
from .engine import AgentEngine, EngineState

__all__ = [
    # Types
    "AgentDescriptor",
    "AgentResponse",
    "ChatCompletionOptions",
    "ChatCompletionResponse",
    "ChatMessage",
    "FunctionCall",
    "RunOptions",
    "TokenUsage",
    "ToolCall",
    "ToolExecutionContext",
    "ToolExecutionResult",
    "generate_conversation_id",
    # Errors
    "AgentRuntimeError",
    "AgentConfigurationError",
    "LLMError",
    "LLMRateLimitError",
    "LLMRequestError",
    "LLMAuthenticationError",
    "StreamInterruptedError",
    "ToolNotFoundError",
    "classify_llm_error",
    "is_rate_limit_error",
    # Protocols
    "LLMService",
    "StreamingResult",
    "StreamRenderer",
    "TelemetrySink",
    "ToolRegistry",
    # Components
    "RetryPolicy",
    "async_retry",
    "ContextWindowConfig",
    "ContextWindowManager",
    "TrimResult",
    "CompactionResult",
    "Compactor",
    "NoOpCompactor",
    "SummarizingCompactor",
    "ToolResultRemovalCompactor",
    "get_compactor",
    "RunSummary",
    "RunTracker",
    "TokenUsageLogWriter",
    "StreamingCoordinator",
    "StreamOutcome",
    "ToolExecutionOutcome",
    "ToolExecutor",
    "parse_tool_arguments",
    "build_agent_messages",
    "build_system_prompt",
    "normalize_tool_config",
    "resolve_allowed_tools",
    # Engine
    "AgentEngine",
    "EngineState",
]
