"""Decorators for automatic tool schema generation."""
from typing import Callable, Optional, overload

from .schema import DocstringParsingException, TypeHintParsingException, generate_tool_schema


@overload
def tool(func: Callable) -> Callable: ...


@overload
def tool(
    *,
    name: Optional[str] = None,
    long_running: bool = False,
    approval_execute_tool_name: Optional[str] = None,
) -> Callable[[Callable], Callable]: ...


def tool(
    func: Optional[Callable] = None,
    *,
    name: Optional[str] = None,
    long_running: bool = False,
    approval_execute_tool_name: Optional[str] = None,
):
    """Attach a generated tool schema to a function.

    The schema is built from the function's type hints and Google-style
    docstring and stored on the function as ``__tool_schema__``, ready for
    ``ToolRegistry.register_tools``. The function itself is returned
    unchanged. Usable bare (``@tool``) or with options.

    Args:
        func: The function to decorate.
        name: Tool name override; defaults to the function name.
        long_running: Hint for renderers that execution may take a while.
        approval_execute_tool_name: Follow-up tool that executes this tool's
            action once approved. Allowing this tool allows that one too.

    Raises:
        TypeHintParsingException: If type hints are missing or cannot be parsed.
        DocstringParsingException: If the docstring cannot be parsed.

    Example:
        >>> @tool
        ... def add(a: float, b: float) -> str:
        ...     '''Add two numbers together.
        ...
        ...     Args:
        ...         a: The first number
        ...         b: The second number
        ...     '''
        ...     return str(a + b)
        >>> add.__tool_schema__["input_schema"]["required"]
        ['a', 'b']
    """

    def decorate(f: Callable) -> Callable:
        try:
            schema = generate_tool_schema(f)
        except (TypeHintParsingException, DocstringParsingException) as e:
            raise type(e)(
                f"Failed to generate tool schema for function '{f.__name__}': {e}"
            ) from e
        if name:
            schema["name"] = name
        if long_running:
            schema["long_running"] = True
        if approval_execute_tool_name:
            schema["approval_execute_tool_name"] = approval_execute_tool_name
        f.__tool_schema__ = schema
        return f

    if func is not None:
        return decorate(func)
    return decorate
