"""Exceptions raised by the agent execution engine.

Only a few of these ever escape ``AgentEngine.run``: a tool-not-found error,
an LLM error that was not retryable (or exhausted its retries), and a
configuration error raised while assembling the request. Everything else is
absorbed into the response or into a ``tool`` message.
"""
from __future__ import annotations

import re

_STATUS_PATTERN = re.compile(r"\b([45]\d\d)\b")


class AgentRuntimeError(Exception):
    """Base exception for all agent runtime errors."""
    pass


class LLMError(AgentRuntimeError):
    """A model call failed."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(message)


class LLMRateLimitError(LLMError):
    """The provider rejected the call because of rate limiting."""

    def __init__(self, provider: str, message: str = "Rate limit exceeded", retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(provider, message)


class LLMRequestError(LLMError):
    """The provider rejected or failed to serve the request."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(provider, message)


class LLMAuthenticationError(LLMError):
    """Credentials were missing or rejected."""
    pass


class StreamInterruptedError(AgentRuntimeError):
    """A provider stream reported an error it cannot recover from."""
    pass


class ToolNotFoundError(AgentRuntimeError):
    """The model asked for a tool the registry does not know."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool not found: {tool_name}")


class AgentConfigurationError(AgentRuntimeError):
    """An agent or engine setting is invalid."""

    def __init__(self, agent_id: str, field: str, message: str):
        self.agent_id = agent_id
        self.field = field
        super().__init__(f"Invalid {field} for agent '{agent_id}': {message}")


def _status_of(error: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    match = _STATUS_PATTERN.search(str(error))
    return int(match.group(1)) if match else None


def classify_llm_error(error: BaseException, provider: str) -> LLMError:
    """Map an arbitrary provider exception onto the ``LLMError`` taxonomy.

    The HTTP status is read from a ``status_code``/``status`` attribute, from
    ``error.response.status_code``, or from a three digit 4xx/5xx code in the
    message.

    Args:
        error: Exception raised by a provider client.
        provider: Provider name recorded on the resulting error.

    Returns:
        ``error`` itself when it already is an ``LLMError``, otherwise a new
        ``LLMAuthenticationError``, ``LLMRateLimitError`` or ``LLMRequestError``.
    """
    if isinstance(error, LLMError):
        return error

    message = str(error) or type(error).__name__
    status = _status_of(error)

    if status in (401, 403):
        return LLMAuthenticationError(provider, message)
    if status == 429:
        return LLMRateLimitError(provider, message)
    if status is not None and 400 <= status < 500:
        return LLMRequestError(provider, message, status_code=status)
    if status is not None and status >= 500:
        return LLMRequestError(provider, f"Server error ({status}): {message}", status_code=status)

    lowered = message.lower()
    if "rate limit" in lowered or "too many requests" in lowered:
        return LLMRateLimitError(provider, message)
    if "authentication" in lowered or "api key" in lowered:
        return LLMAuthenticationError(provider, message)
    return LLMRequestError(provider, message)


def is_rate_limit_error(error: BaseException) -> bool:
    """Default retry predicate: only rate-limit errors are retried."""
    if isinstance(error, LLMRateLimitError):
        return True
    if isinstance(error, LLMError):
        return False
    return isinstance(classify_llm_error(error, "unknown"), LLMRateLimitError)
