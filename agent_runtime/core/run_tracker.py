"""Per-run metrics and their token usage log.

A ``RunTracker`` is created at the start of every run, written to only by
the engine that owns the run, and finalized exactly once into an immutable
``RunSummary``. ``TokenUsageLogWriter`` appends one ``key=value`` line per
summary to a log file.
"""

from __future__ import annotations

import json
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os

from ..logging import get_logger
from .retry import async_retry
from .types import AgentDescriptor, TokenUsage

logger = get_logger(__name__)

DEFAULT_TOKEN_USAGE_LOG = Path("logs") / "agent-token-usage.log"

_WHITESPACE = re.compile(r"\s+")


def _normalize_error(error: BaseException | str) -> str:
    text = str(error) or type(error).__name__
    return _WHITESPACE.sub(" ", text).strip()


@dataclass
class IterationRecord:
    """What happened in one model call and the tool calls that followed."""
    number: int
    tool_calls: int = 0
    tools_used: list[str] = field(default_factory=list)
    errors: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass(frozen=True)
class RunSummary:
    """Finalized, immutable view of a run's metrics."""
    run_id: str
    agent_id: str
    agent_name: str
    conversation_id: str
    user_id: Optional[str]
    provider: str
    model: str
    reasoning_effort: str
    iterations: int
    max_iterations: int
    finished: bool
    prompt_tokens: int
    completion_tokens: int
    retry_count: int
    last_error: Optional[str]
    tool_calls: int
    tool_errors: int
    tools_used: tuple[str, ...]
    tool_call_counts: dict[str, int]
    started_at: datetime
    ended_at: datetime
    duration_ms: int
    first_token_latency_ms: Optional[float] = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "provider": self.provider,
            "model": self.model,
            "reasoning_effort": self.reasoning_effort,
            "iterations": self.iterations,
            "max_iterations": self.max_iterations,
            "finished": self.finished,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "tool_calls": self.tool_calls,
            "tool_errors": self.tool_errors,
            "tools_used": list(self.tools_used),
            "tool_call_counts": dict(self.tool_call_counts),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_ms": self.duration_ms,
            "first_token_latency_ms": self.first_token_latency_ms,
        }

    def to_log_line(self) -> str:
        """Render as a single ``key=value`` line, newline included."""
        agent_name = self.agent_name.replace('"', '\\"')
        last_error = (self.last_error or "none").replace('"', '\\"')
        parts = [
            datetime.now(timezone.utc).isoformat(),
            f"runId={self.run_id}",
            f"agentId={self.agent_id}",
            f'agentName="{agent_name}"',
            f"conversationId={self.conversation_id}",
            f"userId={self.user_id or 'anonymous'}",
            f"provider={self.provider or 'unknown'}",
            f"model={self.model or 'unknown'}",
            f"reasoningEffort={self.reasoning_effort or 'disable'}",
            f"iterations={self.iterations}",
            f"maxIterations={self.max_iterations}",
            f"finished={str(self.finished).lower()}",
            f"retryCount={self.retry_count}",
            f'lastError="{last_error}"',
            f"promptTokens={self.prompt_tokens}",
            f"completionTokens={self.completion_tokens}",
            f"totalTokens={self.total_tokens}",
            f"toolCalls={self.tool_calls}",
            f"toolErrors={self.tool_errors}",
            f"toolsUsed=[{','.join(self.tools_used)}]",
            f"toolCallCounts={json.dumps(self.tool_call_counts, separators=(',', ':'))}",
            f"startedAt={self.started_at.isoformat()}",
            f"endedAt={self.ended_at.isoformat()}",
            f"durationMs={self.duration_ms}",
        ]
        return " ".join(parts) + "\n"


class RunTracker:
    """Mutable accumulator for one run's metrics."""

    def __init__(
        self,
        agent: AgentDescriptor,
        conversation_id: str,
        max_iterations: int,
        user_id: Optional[str] = None,
    ):
        self.run_id = str(uuid.uuid4())
        self.agent = agent
        self.conversation_id = conversation_id
        self.user_id = user_id
        self.max_iterations = max_iterations
        self.started_at = datetime.now(timezone.utc)
        self._started_monotonic = time.monotonic()

        self.usage = TokenUsage()
        self.retry_count = 0
        self.last_error: Optional[str] = None
        self.tool_calls = 0
        self.tool_errors = 0
        self.tools_used: set[str] = set()
        self.tool_call_counts: dict[str, int] = {}
        self.tool_sequence: list[str] = []
        self.iterations: list[IterationRecord] = []
        self.first_token_latency_ms: Optional[float] = None
        self._summary: Optional[RunSummary] = None

    @property
    def current_iteration(self) -> Optional[IterationRecord]:
        return self.iterations[-1] if self.iterations else None

    @property
    def finalized(self) -> bool:
        return self._summary is not None

    def begin_iteration(self) -> IterationRecord:
        record = IterationRecord(number=len(self.iterations) + 1)
        self.iterations.append(record)
        return record

    def record_llm_usage(self, usage: Optional[TokenUsage]) -> None:
        if usage is None:
            return
        self.usage.add(usage)
        if self.current_iteration is not None:
            self.current_iteration.prompt_tokens += usage.prompt_tokens
            self.current_iteration.completion_tokens += usage.completion_tokens

    def record_retry(self, error: BaseException) -> None:
        self.retry_count += 1
        self.last_error = _normalize_error(error)

    def record_first_token_latency(self, latency_ms: Optional[float]) -> None:
        if latency_ms is not None and self.first_token_latency_ms is None:
            self.first_token_latency_ms = latency_ms

    def record_tool_invocation(self, tool_name: str) -> None:
        self.tool_calls += 1
        self.tools_used.add(tool_name)
        self.tool_call_counts[tool_name] = self.tool_call_counts.get(tool_name, 0) + 1
        self.tool_sequence.append(tool_name)
        if self.current_iteration is not None:
            self.current_iteration.tool_calls += 1
            self.current_iteration.tools_used.append(tool_name)

    def record_tool_error(self, error: BaseException | str) -> None:
        self.tool_errors += 1
        self.last_error = _normalize_error(error)
        if self.current_iteration is not None:
            self.current_iteration.errors += 1

    def record_error(self, error: BaseException | str) -> None:
        self.last_error = _normalize_error(error)

    def finalize(self, iterations_used: int, finished: bool) -> RunSummary:
        """Freeze the metrics into a ``RunSummary``.

        Raises:
            RuntimeError: If the tracker was already finalized.
        """
        if self._summary is not None:
            raise RuntimeError(f"Run {self.run_id} was already finalized")

        duration_ms = int((time.monotonic() - self._started_monotonic) * 1000)
        self._summary = RunSummary(
            run_id=self.run_id,
            agent_id=self.agent.id,
            agent_name=self.agent.name,
            conversation_id=self.conversation_id,
            user_id=self.user_id,
            provider=self.agent.provider,
            model=self.agent.model,
            reasoning_effort=self.agent.reasoning_effort,
            iterations=iterations_used,
            max_iterations=self.max_iterations,
            finished=finished,
            prompt_tokens=self.usage.prompt_tokens,
            completion_tokens=self.usage.completion_tokens,
            retry_count=self.retry_count,
            last_error=self.last_error or None,
            tool_calls=self.tool_calls,
            tool_errors=self.tool_errors,
            tools_used=tuple(sorted(self.tools_used)),
            tool_call_counts=dict(sorted(self.tool_call_counts.items())),
            started_at=self.started_at,
            ended_at=datetime.now(timezone.utc),
            duration_ms=duration_ms,
            first_token_latency_ms=self.first_token_latency_ms,
        )
        return self._summary


class TokenUsageLogWriter:
    """Append run summaries to a token usage log file."""

    def __init__(self, path: Path | str = DEFAULT_TOKEN_USAGE_LOG):
        self.path = Path(path)

    async def write(self, summary: RunSummary) -> None:
        await self._append(summary.to_log_line())
        logger.debug("Token usage logged", path=str(self.path), run_id=summary.run_id)

    @async_retry(max_retries=3, base_delay=0.1, retryable_exceptions=(OSError,))
    async def _append(self, line: str) -> None:
        await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
        async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
            await f.write(line)
