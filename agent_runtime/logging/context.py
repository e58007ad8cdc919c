"""Run-scoped logging context.

Values bound here are merged into every log entry emitted from the same
async context, so log lines produced by the engine, the streaming
coordinator and the tool executor all carry the identifiers of the run
that produced them.
"""
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

_log_context: ContextVar[dict[str, Any]] = ContextVar("agent_runtime_log_context", default={})


def bind_context(**kwargs: Any) -> None:
    """Bind key-value pairs to the current logging context.

    Args:
        **kwargs: Key-value pairs to bind to the context.

    Example:
        >>> bind_context(run_id="run-123", agent_id="coder")
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the current logging context."""
    current = _log_context.get().copy()
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


def clear_context() -> None:
    """Clear all bound context values."""
    _log_context.set({})


def get_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return _log_context.get().copy()


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind values for the duration of a ``with`` block.

    Keys that were already bound before entering the block are restored to
    their previous values on exit; new keys are removed.

    Example:
        >>> with bound_context(run_id="run-123"):
        ...     logger.info("inside the run")
    """
    previous = _log_context.get()
    bind_context(**kwargs)
    try:
        yield
    finally:
        _log_context.set(previous)
