"""Structured logging for agent_runtime.

Every module logs through ``get_logger(__name__)``. Log calls take a short,
stable message plus keyword metadata:

    >>> from agent_runtime.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.warning("Message history trimmed", messages_removed=4)

The engine binds ``run_id``, ``agent_id`` and ``conversation_id`` while a run
is in progress, so those fields appear on every entry emitted inside it.
"""
import structlog

from .config import (
    LogConfig,
    LogFormat,
    LogLevel,
    configure_logging,
    ensure_configured,
    is_configured,
)
from .context import bind_context, bound_context, clear_context, get_context, unbind_context


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Logging is configured with default settings on first use.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        A bound logger instance.
    """
    ensure_configured()
    return structlog.get_logger(name)


__all__ = [
    # Configuration
    "LogConfig",
    "LogFormat",
    "LogLevel",
    "configure_logging",
    "ensure_configured",
    "is_configured",
    # Logger
    "get_logger",
    # Context management
    "bind_context",
    "bound_context",
    "unbind_context",
    "clear_context",
    "get_context",
]
