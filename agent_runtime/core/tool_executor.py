"""Execution of individual tool calls.

Every call produces exactly one ``tool`` message. Malformed arguments and
handler failures become ``Error: <message>`` results that the model can
react to; only an unknown tool name aborts the run.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Optional

from ..logging import get_logger
from ..streaming.events import ToolExecutionComplete, ToolExecutionStart
from ..streaming.renderer import dispatch_event
from .errors import ToolNotFoundError
from .protocols import StreamRenderer, ToolRegistry
from .run_tracker import RunTracker
from .types import ChatMessage, ToolCall, ToolExecutionContext

logger = get_logger(__name__)


class _ArgumentError(ValueError):
    pass


@dataclass
class ToolExecutionOutcome:
    """The ``tool`` message for one call, plus what produced it."""
    message: ChatMessage
    tool_name: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration_ms: float = 0.0


def parse_tool_arguments(raw: str) -> dict[str, Any]:
    """Decode serialized tool arguments.

    Blank input means no arguments; valid JSON that is not an object is
    treated as no arguments as well.

    Raises:
        ValueError: If ``raw`` is not valid JSON.
    """
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise _ArgumentError(f"Invalid JSON in tool arguments: {e.msg}") from e
    return parsed if isinstance(parsed, dict) else {}


def serialize_tool_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


class ToolExecutor:
    """Execute tool calls against a registry, one at a time.

    Args:
        registry: Tool lookup and execution service.
        renderer: Receives ``tool_execution_start``/``tool_execution_complete``.
        emit_events: Whether lifecycle events are sent at all.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        renderer: Optional[StreamRenderer] = None,
        emit_events: bool = True,
    ):
        self.registry = registry
        self.renderer = renderer
        self.emit_events = emit_events

    def _emit(self, event) -> None:
        if self.emit_events:
            dispatch_event(self.renderer, event)

    async def execute(
        self,
        tool_call: ToolCall,
        context: ToolExecutionContext,
        tracker: Optional[RunTracker] = None,
    ) -> ToolExecutionOutcome:
        """Execute one tool call and build its ``tool`` message.

        Raises:
            ToolNotFoundError: If the registry has no tool of that name.
        """
        name = tool_call.function.name
        started = time.monotonic()

        try:
            arguments: Optional[dict[str, Any]] = parse_tool_arguments(tool_call.function.arguments)
            argument_error: Optional[str] = None
        except _ArgumentError as e:
            arguments = None
            argument_error = str(e)

        definition = await self.registry.get_tool(name)
        if definition is None:
            raise ToolNotFoundError(name)

        if tracker is not None:
            tracker.record_tool_invocation(name)

        self._emit(ToolExecutionStart(
            tool_name=name,
            tool_call_id=tool_call.id,
            arguments=arguments,
            long_running=bool(getattr(definition, "long_running", False)),
        ))

        success = False
        result: Any = None
        error: Optional[str] = argument_error
        if error is None:
            try:
                execution = await self.registry.execute_tool(name, arguments or {}, context)
            except ToolNotFoundError:
                raise
            except Exception as e:
                error = str(e) or type(e).__name__
            else:
                if execution.success:
                    success = True
                    result = execution.result
                else:
                    error = execution.error or "Tool execution failed"

        duration_ms = round((time.monotonic() - started) * 1000, 2)
        if success:
            content = serialize_tool_result(result)
        else:
            content = f"Error: {error}"
            if tracker is not None:
                tracker.record_tool_error(error)
            logger.error(
                "Tool execution failed",
                tool_name=name,
                tool_call_id=tool_call.id,
                error=error,
                duration_ms=duration_ms,
            )

        self._emit(ToolExecutionComplete(
            tool_call_id=tool_call.id,
            result=content,
            duration_ms=duration_ms,
            tool_name=name,
            success=success,
        ))

        return ToolExecutionOutcome(
            message=ChatMessage.tool(tool_call_id=tool_call.id, content=content, name=name),
            tool_name=name,
            success=success,
            result=result if success else None,
            error=None if success else error,
            duration_ms=duration_ms,
        )
