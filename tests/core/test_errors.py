"""Tests for provider error classification."""

import pytest

from agent_runtime.core.errors import (
    LLMAuthenticationError,
    LLMRateLimitError,
    LLMRequestError,
    classify_llm_error,
    is_rate_limit_error,
)


class ProviderError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code


class ResponseError(Exception):
    def __init__(self, message: str, status_code: int):
        self.response = FakeResponse(status_code)
        super().__init__(message)


@pytest.mark.parametrize(
    "error, expected",
    [
        (ProviderError("denied", 401), LLMAuthenticationError),
        (ProviderError("forbidden", 403), LLMAuthenticationError),
        (ProviderError("slow down", 429), LLMRateLimitError),
        (ProviderError("bad input", 400), LLMRequestError),
        (ResponseError("too many", 429), LLMRateLimitError),
        (RuntimeError("upstream returned 429"), LLMRateLimitError),
        (RuntimeError("Invalid API key provided"), LLMAuthenticationError),
        (RuntimeError("something odd"), LLMRequestError),
    ],
)
def test_classify_llm_error(error, expected) -> None:
    classified = classify_llm_error(error, "openai")
    assert type(classified) is expected
    assert classified.provider == "openai"


def test_server_errors_are_prefixed() -> None:
    classified = classify_llm_error(ProviderError("bad gateway", 502), "anthropic")
    assert isinstance(classified, LLMRequestError)
    assert classified.status_code == 502
    assert str(classified) == "Server error (502): bad gateway"


def test_llm_errors_pass_through_unchanged() -> None:
    original = LLMRateLimitError("openai", "limit")
    assert classify_llm_error(original, "other") is original


def test_is_rate_limit_error() -> None:
    assert is_rate_limit_error(LLMRateLimitError("openai"))
    assert is_rate_limit_error(ProviderError("slow down", 429))
    assert not is_rate_limit_error(LLMRequestError("openai", "bad", 400))
    assert not is_rate_limit_error(ValueError("nope"))
