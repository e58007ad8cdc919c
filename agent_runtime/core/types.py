"""Type definitions for the agent execution engine.

Messages and tool calls are immutable: the context window manager caches the
token cost of each message by its ``message_id``, so changing a message means
building a new one (``dataclasses.replace`` assigns a fresh id).
"""

from __future__ import annotations

import itertools
import json
import time
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Sequence

Role = Literal["system", "user", "assistant", "tool"]

_message_ids = itertools.count(1)


def _next_message_id() -> int:
    return next(_message_ids)


@dataclass(frozen=True)
class FunctionCall:
    """Name and serialized JSON arguments of a requested tool invocation."""
    name: str
    arguments: str = "{}"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by an assistant message.

    Attributes:
        id: Identifier unique within the producing assistant message.
        function: Tool name plus serialized arguments.
    """
    id: str
    function: FunctionCall
    type: str = "function"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.function.name, "arguments": self.function.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCall":
        function = data.get("function") or {}
        arguments = function.get("arguments", "{}")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return cls(
            id=data["id"],
            function=FunctionCall(name=function.get("name", ""), arguments=arguments),
            type=data.get("type", "function"),
        )


@dataclass(frozen=True)
class ChatMessage:
    """One entry of a conversation history.

    Attributes:
        role: ``system``, ``user``, ``assistant`` or ``tool``.
        content: Message text.
        name: Optional author name.
        tool_call_id: For ``tool`` messages, the call this result answers.
        tool_calls: For ``assistant`` messages, the calls requested.
        message_id: Process-unique id, used as the token memo key.
    """
    role: Role
    content: str = ""
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: tuple[ToolCall, ...] = ()
    message_id: int = field(default_factory=_next_message_id, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls or ()))
        if self.content is None:
            object.__setattr__(self, "content", "")

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: Sequence[ToolCall] = ()) -> "ChatMessage":
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, tool_call_id: str, content: str, name: Optional[str] = None) -> "ChatMessage":
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the chat-completions wire shape."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            payload["name"] = self.name
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            name=data.get("name"),
            tool_call_id=data.get("tool_call_id"),
            tool_calls=tuple(ToolCall.from_dict(c) for c in data.get("tool_calls") or ()),
        )


@dataclass
class TokenUsage:
    """Token usage reported by a provider for one or more calls."""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def add(self, other: Optional["TokenUsage"]) -> None:
        """Accumulate another usage record into this one."""
        if other is None:
            return
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ChatCompletionResponse:
    """Provider-agnostic result of one chat completion."""
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class ChatCompletionOptions:
    """Request handed to the LLM service."""
    model: str
    messages: list[ChatMessage]
    tools: list[dict[str, Any]] = field(default_factory=list)
    tool_choice: str = "auto"
    reasoning_effort: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
        }
        if self.tools:
            payload["tools"] = self.tools
            payload["tool_choice"] = self.tool_choice
        if self.reasoning_effort and self.reasoning_effort != "disable":
            payload["reasoning_effort"] = self.reasoning_effort
        return payload


@dataclass(frozen=True)
class AgentDescriptor:
    """Static description of an agent.

    Attributes:
        id: Stable identifier.
        name: Display name.
        provider: LLM provider name passed to the LLM service.
        model: Model name.
        description: Short description, used in the default system prompt.
        system_prompt: Instructions sent as the system message.
        tools: Tool allow-list; empty means no tools.
        timeout: Stream timeout in seconds; None uses the engine default.
        reasoning_effort: Provider reasoning setting; ``disable`` omits it.
    """
    id: str
    name: str
    provider: str
    model: str
    description: str = ""
    system_prompt: Optional[str] = None
    tools: tuple[str, ...] = ()
    timeout: Optional[float] = None
    reasoning_effort: str = "disable"


@dataclass
class RunOptions:
    """Inputs of a single ``AgentEngine.run`` call."""
    agent: AgentDescriptor
    user_input: str
    conversation_id: Optional[str] = None
    user_id: Optional[str] = None
    max_iterations: Optional[int] = None
    conversation_history: Optional[Sequence[ChatMessage]] = None
    force_stream: bool = False
    force_no_stream: bool = False


@dataclass
class AgentResponse:
    """Result returned from ``AgentEngine.run``.

    Attributes:
        content: Final assistant text (may be empty).
        conversation_id: Id of the conversation, generated when not supplied.
        messages: Full updated history, for the caller to persist and resend.
        tool_calls: Tool calls of the last assistant message, if any.
        tool_results: Latest result per tool name produced during the run;
            a failed call stores ``{"error": message}``.
        was_streamed: True when the run started in streaming mode.
        finished: False when the iteration limit was reached first.
        iterations: Number of model calls made.
        usage: Token usage summed over the run.
        run_id: Identifier of the run, as recorded in telemetry.
    """
    content: str
    conversation_id: str
    messages: list[ChatMessage]
    tool_calls: Optional[list[ToolCall]] = None
    tool_results: Optional[dict[str, Any]] = None
    was_streamed: bool = False
    finished: bool = True
    iterations: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)
    run_id: Optional[str] = None

    def __str__(self) -> str:
        payload = {
            "content": self.content,
            "conversation_id": self.conversation_id,
            "tool_calls": [c.to_dict() for c in self.tool_calls or []],
            "tool_results": self.tool_results,
            "was_streamed": self.was_streamed,
            "finished": self.finished,
            "iterations": self.iterations,
            "usage": self.usage.to_dict(),
            "messages": [m.to_dict() for m in self.messages],
        }
        return json.dumps(payload, indent=2, default=str)


def generate_conversation_id() -> str:
    """Return a new ``conv-<epoch-ms>`` identifier."""
    return f"conv-{int(time.time() * 1000)}"


@dataclass
class ToolExecutionContext:
    """Run information handed to tool handlers alongside their arguments."""
    agent_id: str
    run_id: str
    tool_call_id: str
    conversation_id: Optional[str] = None
    user_id: Optional[str] = None


@dataclass
class ToolExecutionResult:
    """Outcome of one tool invocation as reported by a tool registry."""
    success: bool
    result: Any = None
    error: Optional[str] = None
