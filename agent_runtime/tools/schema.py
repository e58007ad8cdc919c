"""JSON schema generation from Python signatures and Google-style docstrings."""

from __future__ import annotations

import inspect
import re
import types
import typing
from typing import Any, Callable, Literal, Union, get_args, get_origin

from ..core.types import ToolExecutionContext

CONTEXT_PARAMETER = "context"

_SECTION_HEADER = re.compile(r"^\s*(Args|Arguments|Parameters|Returns|Raises|Yields|Example|Examples|Note|Notes):\s*$")
_ARG_LINE = re.compile(r"^\s*(\*{0,2}\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)$")
_ARG_SECTIONS = ("Args", "Arguments", "Parameters")


class TypeHintParsingException(Exception):
    """A parameter has no type hint or an unsupported one."""
    pass


class DocstringParsingException(Exception):
    """The docstring could not be parsed."""
    pass


_PRIMITIVES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
    tuple: "array",
    set: "array",
}


def type_to_schema(annotation: Any) -> dict[str, Any]:
    """Convert a type annotation to a JSON schema fragment."""
    if annotation is Any:
        return {}
    if annotation in _PRIMITIVES:
        return {"type": _PRIMITIVES[annotation]}
    if annotation is type(None):
        return {"type": "null"}

    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Literal:
        values = list(args)
        schema: dict[str, Any] = {"enum": values}
        kinds = {type(v) for v in values}
        if len(kinds) == 1 and next(iter(kinds)) in _PRIMITIVES:
            schema["type"] = _PRIMITIVES[next(iter(kinds))]
        return schema
    if origin in (Union, types.UnionType):
        non_null = [a for a in args if a is not type(None)]
        if len(non_null) == 1:
            schema = type_to_schema(non_null[0])
        else:
            schema = {"anyOf": [type_to_schema(a) for a in non_null]}
        if len(non_null) < len(args):
            schema["nullable"] = True
        return schema
    if origin in (list, tuple, set, frozenset):
        schema = {"type": "array"}
        item_args = [a for a in args if a is not Ellipsis]
        if item_args:
            schema["items"] = type_to_schema(item_args[0])
        return schema
    if origin is dict:
        schema = {"type": "object"}
        if len(args) == 2:
            schema["additionalProperties"] = type_to_schema(args[1])
        return schema

    raise TypeHintParsingException(f"Unsupported type hint: {annotation!r}")


def parse_docstring(doc: str | None) -> tuple[str, dict[str, str]]:
    """Split a Google-style docstring into a description and per-argument text.

    Returns:
        ``(description, {arg_name: description})``. The description is the
        text before the first section header.
    """
    if not doc:
        return "", {}

    description_lines: list[str] = []
    arg_docs: dict[str, str] = {}
    section: str | None = None
    current: str | None = None
    arg_indent: int | None = None

    for line in inspect.cleandoc(doc).splitlines():
        header = _SECTION_HEADER.match(line)
        if header:
            section = header.group(1)
            current = None
            arg_indent = None
            continue
        if section is None:
            description_lines.append(line)
            continue
        if section not in _ARG_SECTIONS or not line.strip():
            continue

        indent = len(line) - len(line.lstrip())
        match = _ARG_LINE.match(line)
        if match and (arg_indent is None or indent <= arg_indent):
            arg_indent = indent
            current = match.group(1).lstrip("*")
            arg_docs[current] = match.group(2).strip()
        elif current:
            arg_docs[current] = f"{arg_docs[current]} {line.strip()}".strip()

    description = " ".join(l.strip() for l in description_lines if l.strip())
    return description, arg_docs


def generate_tool_schema(func: Callable) -> dict[str, Any]:
    """Build a ``{name, description, input_schema}`` schema for ``func``.

    A parameter named ``context`` receives the ``ToolExecutionContext`` at
    call time and is left out of the schema.

    Raises:
        TypeHintParsingException: If a parameter lacks a usable type hint.
        DocstringParsingException: If the docstring cannot be parsed.
    """
    try:
        description, arg_docs = parse_docstring(func.__doc__)
    except Exception as e:
        raise DocstringParsingException(str(e)) from e

    try:
        hints = typing.get_type_hints(func)
    except Exception as e:
        raise TypeHintParsingException(f"Could not resolve type hints: {e}") from e

    properties: dict[str, Any] = {}
    required: list[str] = []
    for name, param in inspect.signature(func).parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        if name == CONTEXT_PARAMETER or hints.get(name) is ToolExecutionContext:
            continue
        if name not in hints:
            raise TypeHintParsingException(f"Parameter '{name}' is missing a type hint")

        schema = type_to_schema(hints[name])
        schema["description"] = arg_docs.get(name, f"The {name} parameter")
        if param.default is inspect.Parameter.empty:
            required.append(name)
        else:
            schema["nullable"] = True
        properties[name] = schema

    input_schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        input_schema["required"] = required
    return {
        "name": func.__name__,
        "description": description or f"Execute {func.__name__}",
        "input_schema": input_schema,
    }
