"""Assembly of the outbound request: allowed tools and the message list."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from ..logging import get_logger
from .errors import AgentConfigurationError
from .protocols import ToolRegistry
from .types import AgentDescriptor, ChatMessage

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are {name}, a helpful assistant."


def normalize_tool_config(value: Any, agent_id: str) -> list[str]:
    """Validate and de-duplicate a tool allow-list.

    Names are stripped of surrounding whitespace; the first occurrence of a
    name wins.

    Args:
        value: The configured allow-list (``None`` means no tools).
        agent_id: Agent id used in error messages.

    Raises:
        AgentConfigurationError: If the value is not a sequence of non-empty strings.
    """
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise AgentConfigurationError(agent_id, "tools", "expected a list of tool names")

    seen: list[str] = []
    for entry in value:
        if not isinstance(entry, str) or not entry.strip():
            raise AgentConfigurationError(
                agent_id, "tools", f"tool names must be non-empty strings, got {entry!r}"
            )
        name = entry.strip()
        if name not in seen:
            seen.append(name)
    return seen


async def resolve_allowed_tools(agent: AgentDescriptor, registry: ToolRegistry) -> list[str]:
    """Return the tool names an agent may call, in allow-list order.

    Every allow-listed tool must exist in the registry. A tool declaring an
    ``approval_execute_tool_name`` brings that tool along.

    Raises:
        AgentConfigurationError: If the allow-list is malformed or names an
            unknown tool.
    """
    requested = normalize_tool_config(agent.tools, agent.id)
    if not requested:
        return []

    available = set(await registry.list_tools())
    missing = [name for name in requested if name not in available]
    if missing:
        raise AgentConfigurationError(
            agent.id, "tools", f"unknown tools: {', '.join(missing)}"
        )

    allowed = list(requested)
    for name in requested:
        definition = await registry.get_tool(name)
        follow_up = getattr(definition, "approval_execute_tool_name", None)
        if not follow_up or follow_up in allowed:
            continue
        if follow_up not in available:
            raise AgentConfigurationError(
                agent.id, "tools", f"tool '{name}' requires unknown tool '{follow_up}'"
            )
        allowed.append(follow_up)
    return allowed


async def build_system_prompt(
    agent: AgentDescriptor,
    registry: ToolRegistry,
    allowed_tools: Sequence[str],
) -> str:
    """Agent instructions followed by a catalogue of the allowed tools."""
    prompt = agent.system_prompt or DEFAULT_SYSTEM_PROMPT.format(name=agent.name)
    if agent.description and not agent.system_prompt:
        prompt = f"{prompt} {agent.description}"
    if not allowed_tools:
        return prompt

    lines = []
    for name in allowed_tools:
        definition = await registry.get_tool(name)
        description = getattr(definition, "description", "") or ""
        lines.append(f"- {name}: {description}" if description else f"- {name}")
    return f"{prompt}\n\nAvailable tools:\n" + "\n".join(lines)


def build_agent_messages(
    system_prompt: str,
    history: Optional[Sequence[ChatMessage]],
    user_input: str,
) -> list[ChatMessage]:
    """Build ``[system, *history, user]`` for a new run.

    System messages in ``history`` are dropped in favour of the fresh one.
    The user input is not appended when it is blank or when the history
    already ends with an unanswered user message.
    """
    prior = [m for m in history or () if m.role != "system"]
    messages = [ChatMessage.system(system_prompt), *prior]
    if user_input.strip() and not (prior and prior[-1].role == "user"):
        messages.append(ChatMessage.user(user_input))
    return messages
