"""Custom structlog processors for agent_runtime.

Processors are functions that transform log event dictionaries as they
pass through the logging pipeline.
"""
from typing import Any

from .context import get_context

# Message bodies and tool results can be arbitrarily large.
DEFAULT_MAX_VALUE_CHARS = 2_000


def inject_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Inject run-scoped context variables into the log event.

    Explicit keyword arguments on the log call win over bound context.

    Args:
        logger: The logger instance.
        method_name: The name of the log method called (e.g., "info").
        event_dict: The log event dictionary.

    Returns:
        The event dictionary with context values injected.
    """
    for key, value in get_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def add_logger_name(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add a ``logger`` field naming the logger that produced the event."""
    record = event_dict.get("_record")
    if record is not None:
        event_dict["logger"] = record.name
    elif hasattr(logger, "name"):
        event_dict["logger"] = logger.name
    return event_dict


def truncate_long_values(max_chars: int = DEFAULT_MAX_VALUE_CHARS) -> Any:
    """Create a processor that shortens oversized string values.

    Args:
        max_chars: Maximum characters kept per string value.

    Returns:
        A processor that truncates every string field except ``event``.
    """

    def processor(
        logger: Any,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        for key, value in event_dict.items():
            if key == "event" or not isinstance(value, str):
                continue
            if len(value) > max_chars:
                event_dict[key] = f"{value[:max_chars]}... [{len(value) - max_chars} chars truncated]"
        return event_dict

    return processor
