"""In-memory tool registry and the ``@tool`` decorator.

The engine talks to tools only through ``core.protocols.ToolRegistry``.
This package is a ready-made implementation of that interface for
applications whose tools are plain Python functions; registries backed by
other sources (remote tool servers, plugin systems) plug in the same way.
"""

from .base import Tool, ToolRegistry
from .decorators import tool
from .schema import (
    DocstringParsingException,
    TypeHintParsingException,
    generate_tool_schema,
    parse_docstring,
    type_to_schema,
)

__all__ = [
    "Tool",
    "ToolRegistry",
    "tool",
    "generate_tool_schema",
    "parse_docstring",
    "type_to_schema",
    "TypeHintParsingException",
    "DocstringParsingException",
]
