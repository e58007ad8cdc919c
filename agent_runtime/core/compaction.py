"""Context compaction strategies for long conversation histories.

Compaction runs before the token-budget trim, once a history uses more than
80% of the budget (``ContextWindowManager.should_summarize``). Where the
trim simply drops old messages, a compactor tries to keep their substance:

- ``SummarizingCompactor`` replaces the older part of the history with a
  model-written summary;
- ``ToolResultRemovalCompactor`` blanks out tool results from earlier turns;
- ``NoOpCompactor`` leaves the history alone.

Compactors never separate an assistant message from the tool results
answering its calls, and always keep the leading system message and the
newest message.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Literal, Optional, Protocol, Sequence

from ..logging import get_logger
from .context_window import ContextWindowManager
from .protocols import LLMService
from .retry import RetryPolicy
from .types import AgentDescriptor, ChatCompletionOptions, ChatMessage, TokenUsage

logger = get_logger(__name__)

CompactorType = Literal["summarize", "tool_result_removal", "none"]

RECENT_CONTEXT_SHARE = 0.2
SUMMARY_SYSTEM_PROMPT = (
    "You compress conversation transcripts. Write a concise summary of the "
    "transcript you are given, keeping the facts, decisions and pending work "
    "needed to continue the conversation. Reply with the summary only."
)
EMPTY_SUMMARY = "No history to summarize."


@dataclass(frozen=True)
class CompactionResult:
    """Summary of one compaction, for logging and usage accounting."""
    strategy: str
    original_count: int
    compacted_count: int
    original_tokens: int
    compacted_tokens: int
    tool_results_modified: int = 0
    usage: Optional[TokenUsage] = None

    @property
    def tokens_saved(self) -> int:
        return self.original_tokens - self.compacted_tokens


class Compactor(Protocol):
    """Protocol for context compaction strategies.

    ``compact`` returns the compacted history and a ``CompactionResult``, or
    the history unchanged and ``None`` when there was nothing to compact.
    """

    async def compact(
        self,
        messages: Sequence[ChatMessage],
        agent: AgentDescriptor,
        window: ContextWindowManager,
    ) -> tuple[list[ChatMessage], Optional[CompactionResult]]:
        ...


class NoOpCompactor:
    """Compactor that returns messages unchanged."""

    async def compact(
        self,
        messages: Sequence[ChatMessage],
        agent: AgentDescriptor,
        window: ContextWindowManager,
    ) -> tuple[list[ChatMessage], Optional[CompactionResult]]:
        return list(messages), None


class ToolResultRemovalCompactor:
    """Replace the content of tool results from earlier turns with a placeholder.

    Tool results after the last user message belong to the turn in progress
    and are kept, as is the message pairing: only the content changes.
    """

    PLACEHOLDER_TEXT = "[Tool result removed during compaction]"

    async def compact(
        self,
        messages: Sequence[ChatMessage],
        agent: AgentDescriptor,
        window: ContextWindowManager,
    ) -> tuple[list[ChatMessage], Optional[CompactionResult]]:
        messages = list(messages)
        last_user = max((i for i, m in enumerate(messages) if m.role == "user"), default=-1)

        compacted: list[ChatMessage] = []
        modified = 0
        for i, message in enumerate(messages):
            if i < last_user and message.role == "tool" and message.content != self.PLACEHOLDER_TEXT:
                message = dataclasses.replace(message, content=self.PLACEHOLDER_TEXT)
                modified += 1
            compacted.append(message)

        if not modified:
            return messages, None
        return compacted, CompactionResult(
            strategy="tool_result_removal",
            original_count=len(messages),
            compacted_count=len(compacted),
            original_tokens=window.calculate_total_tokens(messages),
            compacted_tokens=window.calculate_total_tokens(compacted),
            tool_results_modified=modified,
        )


class SummarizingCompactor:
    """Summarize the older part of the history through the LLM service.

    The newest messages fitting in 20% of the token budget are kept verbatim
    (at least the last one). Everything between the system message and them
    is rendered as a transcript and replaced by a single assistant message
    holding the model's summary, giving ``[system, summary, *recent]``.

    Args:
        llm: Service used for the summary call.
        retry_policy: Policy wrapping the summary call.
        recent_share: Share of the budget reserved for verbatim recent messages.
    """

    def __init__(
        self,
        llm: LLMService,
        retry_policy: Optional[RetryPolicy] = None,
        recent_share: float = RECENT_CONTEXT_SHARE,
    ):
        self.llm = llm
        self.retry_policy = retry_policy or RetryPolicy()
        self.recent_share = recent_share

    def _recent_start(self, messages: list[ChatMessage], first: int, window: ContextWindowManager) -> int:
        budget = int(window.max_tokens * self.recent_share)
        start = len(messages) - 1
        used = window.estimate_tokens(messages[start])
        while start - 1 >= first:
            cost = window.estimate_tokens(messages[start - 1])
            if used + cost > budget:
                break
            used += cost
            start -= 1
        # A tool result must stay behind the assistant message that requested it.
        while start > first and messages[start].role == "tool":
            start -= 1
        return start

    async def compact(
        self,
        messages: Sequence[ChatMessage],
        agent: AgentDescriptor,
        window: ContextWindowManager,
    ) -> tuple[list[ChatMessage], Optional[CompactionResult]]:
        messages = list(messages)
        first = 1 if messages and messages[0].role == "system" else 0
        if len(messages) - first < 2:
            return messages, None

        start = self._recent_start(messages, first, window)
        older = messages[first:start]
        if not older:
            return messages, None

        logger.debug(
            "Summarizing messages from conversation",
            total_messages=len(messages),
            messages_to_summarize=len(older),
            recent_kept=len(messages) - start,
        )
        summary, usage = await self.summarize(older, agent)
        compacted = messages[:first] + [ChatMessage.assistant(summary)] + messages[start:]

        return compacted, CompactionResult(
            strategy="summarize",
            original_count=len(messages),
            compacted_count=len(compacted),
            original_tokens=window.calculate_total_tokens(messages),
            compacted_tokens=window.calculate_total_tokens(compacted),
            usage=usage,
        )

    async def summarize(
        self,
        messages: Sequence[ChatMessage],
        agent: AgentDescriptor,
    ) -> tuple[str, Optional[TokenUsage]]:
        """Ask the agent's model for a summary of ``messages``.

        Returns:
            The summary text and the usage of the call.
        """
        if not messages:
            return EMPTY_SUMMARY, None

        options = ChatCompletionOptions(
            model=agent.model,
            messages=[
                ChatMessage.system(SUMMARY_SYSTEM_PROMPT),
                ChatMessage.user(render_transcript(messages)),
            ],
            tool_choice="none",
            reasoning_effort=agent.reasoning_effort,
        )
        response = await self.retry_policy.call(
            lambda: self.llm.create_chat_completion(agent.provider, options),
            operation="summarize_history",
        )
        return response.content.strip() or EMPTY_SUMMARY, response.usage


def render_transcript(messages: Sequence[ChatMessage]) -> str:
    """Render messages as ``[ROLE] content`` blocks separated by ``---``.

    Tool calls are listed by name under the message that made them.
    """
    blocks = []
    for message in messages:
        content = message.content or ""
        if message.tool_calls:
            names = ", ".join(call.function.name for call in message.tool_calls)
            content += f"\n[Tool Calls: {names}]"
        blocks.append(f"[{message.role.upper()}] {content}")
    return "\n\n---\n\n".join(blocks)


COMPACTORS: dict[str, type] = {
    "summarize": SummarizingCompactor,
    "tool_result_removal": ToolResultRemovalCompactor,
    "none": NoOpCompactor,
}


def get_compactor(name: CompactorType, **kwargs) -> Compactor:
    """Get a compactor instance by name.

    Args:
        name: ``"summarize"``, ``"tool_result_removal"`` or ``"none"``.
        **kwargs: Constructor arguments (``llm`` and ``retry_policy`` for
            ``"summarize"``).

    Raises:
        ValueError: If the compactor name is not recognized.
    """
    if name not in COMPACTORS:
        raise ValueError(
            f"Unknown compactor '{name}'. Available compactors: {list(COMPACTORS.keys())}"
        )
    return COMPACTORS[name](**kwargs)
