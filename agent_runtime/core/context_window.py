"""Token-budget trimming of conversation histories.

``ContextWindowManager.trim`` keeps a history under a token budget while
preserving the properties the model APIs rely on:

- a leading system message is always kept, at index 0;
- the most recent ``protected_recent_turns`` turns (a user message plus
  everything up to the next user message) are kept verbatim;
- older messages are kept newest-first while the budget allows;
- a tool result is never kept without the assistant message that issued
  its call.

Token counts are a character heuristic, not a real tokenizer. Each
message's estimate is memoized by ``message_id``.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from ..logging import get_logger
from .types import ChatMessage

logger = get_logger(__name__)

DEFAULT_MAX_TOKENS = 50_000
DEFAULT_PROTECTED_RECENT_TURNS = 2
SUMMARIZE_THRESHOLD = 0.8

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4
TOOL_RESULT_OVERHEAD_TOKENS = 10
MAX_CACHE_ENTRIES = 50_000


@dataclass(frozen=True)
class TrimResult:
    """Summary of one trim, for logging."""
    original_count: int
    trimmed_count: int
    messages_removed: int
    estimated_tokens: int


@dataclass(frozen=True)
class ContextWindowConfig:
    max_tokens: int
    protected_recent_turns: int


def _chars_to_tokens(length: int) -> int:
    return math.ceil(length / CHARS_PER_TOKEN)


class ContextWindowManager:
    """Keeps message histories inside a token budget.

    Args:
        max_tokens: Default token budget for ``trim``.
        protected_recent_turns: Number of most recent turns never trimmed.
            Zero disables the protected zone.

    Example:
        >>> manager = ContextWindowManager(max_tokens=8_000, protected_recent_turns=2)
        >>> messages, result = manager.trim(history)
        >>> if result:
        ...     print(f"dropped {result.messages_removed} messages")
    """

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        protected_recent_turns: int = DEFAULT_PROTECTED_RECENT_TURNS,
    ):
        if max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {max_tokens}")
        if protected_recent_turns < 0:
            raise ValueError(
                f"protected_recent_turns must not be negative, got {protected_recent_turns}"
            )
        self.max_tokens = max_tokens
        self.protected_recent_turns = protected_recent_turns
        self._token_cache: dict[int, int] = {}

    @property
    def config(self) -> ContextWindowConfig:
        return ContextWindowConfig(
            max_tokens=self.max_tokens,
            protected_recent_turns=self.protected_recent_turns,
        )

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def estimate_tokens(self, message: ChatMessage) -> int:
        """Approximate the token cost of one message.

        ``ceil(len(content) / 4)`` plus the serialized tool calls of an
        assistant message (or a fixed overhead for a tool result), plus a
        per-message overhead.
        """
        cached = self._token_cache.get(message.message_id)
        if cached is not None:
            return cached

        tokens = _chars_to_tokens(len(message.content or ""))
        if message.role == "assistant" and message.tool_calls:
            serialized = json.dumps(
                [call.to_dict() for call in message.tool_calls],
                separators=(",", ":"),
            )
            tokens += _chars_to_tokens(len(serialized))
        elif message.role == "tool" and message.tool_call_id:
            tokens += TOOL_RESULT_OVERHEAD_TOKENS
        tokens += MESSAGE_OVERHEAD_TOKENS

        if len(self._token_cache) >= MAX_CACHE_ENTRIES:
            self._token_cache.clear()
        self._token_cache[message.message_id] = tokens
        return tokens

    def calculate_total_tokens(self, messages: Sequence[ChatMessage]) -> int:
        return sum(self.estimate_tokens(m) for m in messages)

    def needs_trimming(self, messages: Sequence[ChatMessage], max_tokens: Optional[int] = None) -> bool:
        budget = self.max_tokens if max_tokens is None else max_tokens
        return self.calculate_total_tokens(messages) > budget

    def should_summarize(self, messages: Sequence[ChatMessage], max_tokens: Optional[int] = None) -> bool:
        """True once the history uses more than 80% of the budget."""
        budget = self.max_tokens if max_tokens is None else max_tokens
        return self.calculate_total_tokens(messages) > budget * SUMMARIZE_THRESHOLD

    # ------------------------------------------------------------------
    # Trimming
    # ------------------------------------------------------------------

    def _find_protected_start(self, messages: Sequence[ChatMessage], first: int, turns: int) -> int:
        """Index of the user message opening the oldest protected turn.

        Returns ``len(messages)`` when nothing is protected. With fewer turns
        than requested, every turn found is protected.
        """
        if turns <= 0:
            return len(messages)
        found = 0
        earliest = len(messages)
        for i in range(len(messages) - 1, first - 1, -1):
            if messages[i].role == "user":
                found += 1
                earliest = i
                if found == turns:
                    break
        return earliest

    def trim(
        self,
        messages: Sequence[ChatMessage],
        max_tokens: Optional[int] = None,
        protected_recent_turns: Optional[int] = None,
    ) -> tuple[list[ChatMessage], Optional[TrimResult]]:
        """Trim ``messages`` to fit the token budget.

        Args:
            messages: History in chronological order.
            max_tokens: Budget override for this call.
            protected_recent_turns: Protected turn count override for this call.

        Returns:
            ``(messages, None)`` when already within budget, otherwise the
            trimmed list and a ``TrimResult``. The protected zone is kept
            even when it alone exceeds the budget.
        """
        messages = list(messages)
        if not messages:
            return messages, None
        budget = self.max_tokens if max_tokens is None else max_tokens
        turns = self.protected_recent_turns if protected_recent_turns is None else protected_recent_turns

        if self.calculate_total_tokens(messages) <= budget:
            return messages, None

        has_system = messages[0].role == "system"
        first = 1 if has_system else 0
        system_tokens = self.estimate_tokens(messages[0]) if has_system else 0

        protected_start = self._find_protected_start(messages, first, turns)
        protected_tokens = self.calculate_total_tokens(messages[protected_start:])

        remaining = budget - system_tokens - protected_tokens
        kept: set[int] = set()
        for i in range(protected_start - 1, first - 1, -1):
            cost = self.estimate_tokens(messages[i])
            if cost > remaining:
                break
            kept.add(i)
            remaining -= cost

        call_owner: dict[str, int] = {}
        for i, message in enumerate(messages):
            if message.role == "assistant":
                for call in message.tool_calls:
                    call_owner[call.id] = i

        orphans = {
            i for i in kept
            if messages[i].role == "tool" and call_owner.get(messages[i].tool_call_id or "") not in kept
        }
        kept -= orphans

        indices = ([0] if has_system else []) + sorted(kept) + list(range(protected_start, len(messages)))
        if not indices:
            indices = self._last_resort_indices(messages)

        trimmed = [messages[i] for i in indices]
        survivors = {m.message_id for m in trimmed}
        for message in messages:
            if message.message_id not in survivors:
                self._token_cache.pop(message.message_id, None)

        result = TrimResult(
            original_count=len(messages),
            trimmed_count=len(trimmed),
            messages_removed=len(messages) - len(trimmed),
            estimated_tokens=self.calculate_total_tokens(trimmed),
        )
        logger.warning(
            "Message history trimmed",
            original_count=result.original_count,
            trimmed_count=result.trimmed_count,
            messages_removed=result.messages_removed,
            estimated_tokens=result.estimated_tokens,
            max_tokens=budget,
            orphaned_tool_results=len(orphans),
        )
        return trimmed, result

    @staticmethod
    def _last_resort_indices(messages: Sequence[ChatMessage]) -> list[int]:
        # Nothing fit and nothing was protected: keep the newest message that
        # can stand on its own, together with the tool results following it.
        for i in range(len(messages) - 1, -1, -1):
            if messages[i].role != "tool":
                return list(range(i, len(messages)))
        return [len(messages) - 1]
