"""In-memory implementation of the tool registry interface."""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from ..core.types import ToolExecutionContext, ToolExecutionResult
from ..logging import get_logger
from .schema import CONTEXT_PARAMETER

logger = get_logger(__name__)


@dataclass
class Tool:
    """A registered tool.

    Attributes:
        name: Unique tool name.
        description: Text shown to the model.
        handler: Sync or async callable taking the tool arguments as keyword
            arguments, plus ``context`` when its signature declares it.
        parameters: JSON schema of the arguments.
        long_running: Hint for renderers.
        approval_execute_tool_name: Follow-up tool enabled alongside this one.
    """
    name: str
    description: str
    handler: Callable[..., Any]
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    long_running: bool = False
    approval_execute_tool_name: Optional[str] = None

    @classmethod
    def from_function(cls, func: Callable[..., Any]) -> "Tool":
        """Build a tool from a function decorated with ``@tool``.

        Raises:
            ValueError: If the function is missing the ``__tool_schema__`` attribute.
        """
        schema = getattr(func, "__tool_schema__", None)
        if schema is None:
            raise ValueError(
                f"Function '{func.__name__}' is missing __tool_schema__ attribute. "
                f"Did you forget to apply the @tool decorator?"
            )
        return cls(
            name=schema["name"],
            description=schema["description"],
            handler=func,
            parameters=schema["input_schema"],
            long_running=schema.get("long_running", False),
            approval_execute_tool_name=schema.get("approval_execute_tool_name"),
        )

    @property
    def accepts_context(self) -> bool:
        try:
            return CONTEXT_PARAMETER in inspect.signature(self.handler).parameters
        except (TypeError, ValueError):
            return False

    def to_openai_schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """Registry for managing tools and executing them by name.

    Sync handlers run in a worker thread so they do not block the event loop.
    Handler exceptions are reported as ``ToolExecutionResult(success=False)``.
    """

    def __init__(self, tools: Optional[Iterable[Tool | Callable[..., Any]]] = None):
        self.tools: dict[str, Tool] = {}
        for item in tools or ():
            if isinstance(item, Tool):
                self.register_tool(item)
            else:
                self.register_tools([item])

    def register_tool(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        if tool.name in self.tools:
            logger.warning("Replacing registered tool", tool_name=tool.name)
        self.tools[tool.name] = tool

    def register(self, name: str, func: Callable[..., Any], schema: dict[str, Any]) -> None:
        """Register a function under ``name`` with an explicit schema."""
        self.register_tool(Tool(
            name=name,
            description=schema.get("description", ""),
            handler=func,
            parameters=schema.get("input_schema", {"type": "object", "properties": {}}),
            long_running=schema.get("long_running", False),
            approval_execute_tool_name=schema.get("approval_execute_tool_name"),
        ))

    def register_tools(self, funcs: list[Callable[..., Any]]) -> None:
        """Register multiple ``@tool``-decorated functions at once.

        Raises:
            ValueError: If a function is missing the ``__tool_schema__`` attribute.
        """
        for func in funcs:
            self.register_tool(Tool.from_function(func))

    async def list_tools(self) -> list[str]:
        return list(self.tools)

    async def get_tool(self, name: str) -> Optional[Tool]:
        return self.tools.get(name)

    async def get_tool_definitions(self, names: Optional[list[str]] = None) -> list[dict[str, Any]]:
        """Return OpenAI-style function schemas, in registration order."""
        if names is None:
            return [t.to_openai_schema() for t in self.tools.values()]
        wanted = set(names)
        return [t.to_openai_schema() for n, t in self.tools.items() if n in wanted]

    async def execute_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolExecutionContext,
    ) -> ToolExecutionResult:
        """Execute a registered tool.

        Args:
            name: Name of the tool to execute.
            arguments: Keyword arguments for the handler.
            context: Run information, passed when the handler accepts it.

        Returns:
            The handler's return value wrapped in a ``ToolExecutionResult``.
        """
        tool = self.tools.get(name)
        if tool is None:
            return ToolExecutionResult(success=False, error=f"Unknown tool '{name}'")

        kwargs = dict(arguments)
        if tool.accepts_context:
            kwargs[CONTEXT_PARAMETER] = context

        try:
            if inspect.iscoroutinefunction(tool.handler):
                result = await tool.handler(**kwargs)
            else:
                result = await asyncio.to_thread(tool.handler, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
        except Exception as e:
            logger.debug(
                "Tool handler raised",
                tool_name=name,
                tool_call_id=context.tool_call_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ToolExecutionResult(success=False, error=str(e) or type(e).__name__)

        return ToolExecutionResult(success=True, result=result)
