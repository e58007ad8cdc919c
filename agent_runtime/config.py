"""Engine configuration.

Settings resolve in this order: explicit constructor arguments of
``AgentEngine``, then ``EngineConfig``, then the defaults below.
``EngineConfig.from_env`` reads ``AGENT_RUNTIME_*`` variables after loading
a ``.env`` file.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, TextIO, TypeVar

from dotenv import load_dotenv

from .core.compaction import COMPACTORS, CompactorType
from .core.context_window import DEFAULT_MAX_TOKENS
from .core.errors import AgentConfigurationError
from .core.retry import DEFAULT_INITIAL_DELAY, DEFAULT_MAX_RETRIES, DEFAULT_MULTIPLIER

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_PROTECTED_RECENT_TURNS = 3
DEFAULT_STREAM_TIMEOUT = 300.0
ENV_PREFIX = "AGENT_RUNTIME_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

T = TypeVar("T")


@dataclass
class EngineConfig:
    """Settings shared by every run of an ``AgentEngine``.

    Attributes:
        max_iterations: Model calls allowed per run.
        context_max_tokens: Token budget of the outbound history.
        protected_recent_turns: Most recent turns never trimmed.
        stream_timeout: Seconds a streaming attempt may take.
        max_retries: Retries of a rate-limited model call.
        retry_initial_delay: Seconds before the first retry.
        retry_multiplier: Backoff growth factor.
        streaming_enabled: True/False to force, None to auto-detect.
        show_tool_execution: Emit tool lifecycle events to the renderer.
        telemetry_log_path: Token usage log file; None disables it.
        compactor: History compaction strategy applied above 80% of the
            token budget: "summarize", "tool_result_removal" or "none".
    """
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    context_max_tokens: int = DEFAULT_MAX_TOKENS
    protected_recent_turns: int = DEFAULT_PROTECTED_RECENT_TURNS
    stream_timeout: float = DEFAULT_STREAM_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_initial_delay: float = DEFAULT_INITIAL_DELAY
    retry_multiplier: float = DEFAULT_MULTIPLIER
    streaming_enabled: Optional[bool] = None
    show_tool_execution: bool = True
    telemetry_log_path: Optional[Path] = None
    compactor: CompactorType = "none"

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise AgentConfigurationError("engine", "max_iterations", "must be at least 1")
        if self.context_max_tokens < 1:
            raise AgentConfigurationError("engine", "context_max_tokens", "must be positive")
        if self.protected_recent_turns < 0:
            raise AgentConfigurationError("engine", "protected_recent_turns", "must not be negative")
        if self.stream_timeout <= 0:
            raise AgentConfigurationError("engine", "stream_timeout", "must be positive")
        if self.max_retries < 0:
            raise AgentConfigurationError("engine", "max_retries", "must not be negative")
        if self.compactor not in COMPACTORS:
            raise AgentConfigurationError(
                "engine", "compactor", f"expected one of {sorted(COMPACTORS)}, got {self.compactor!r}"
            )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        prefix: str = ENV_PREFIX,
        dotenv_path: Optional[str | Path] = None,
    ) -> "EngineConfig":
        """Build a config from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``. When given,
                no ``.env`` file is loaded.
            prefix: Variable name prefix.
            dotenv_path: Explicit ``.env`` file; by default one is searched for.

        Raises:
            AgentConfigurationError: If a variable holds a malformed value.
        """
        if environ is None:
            load_dotenv(dotenv_path=dotenv_path)
            environ = os.environ

        def read(name: str, parse: Callable[[str], T], default: T) -> T:
            raw = environ.get(f"{prefix}{name}")
            if raw is None or raw.strip() == "":
                return default
            try:
                return parse(raw.strip())
            except ValueError as e:
                raise AgentConfigurationError("engine", f"{prefix}{name}", str(e)) from e

        telemetry = environ.get(f"{prefix}TELEMETRY_LOG")
        return cls(
            max_iterations=read("MAX_ITERATIONS", int, DEFAULT_MAX_ITERATIONS),
            context_max_tokens=read("CONTEXT_MAX_TOKENS", int, DEFAULT_MAX_TOKENS),
            protected_recent_turns=read("PROTECTED_RECENT_TURNS", int, DEFAULT_PROTECTED_RECENT_TURNS),
            stream_timeout=read("STREAM_TIMEOUT", float, DEFAULT_STREAM_TIMEOUT),
            max_retries=read("MAX_RETRIES", int, DEFAULT_MAX_RETRIES),
            retry_initial_delay=read("RETRY_INITIAL_DELAY", float, DEFAULT_INITIAL_DELAY),
            retry_multiplier=read("RETRY_MULTIPLIER", float, DEFAULT_MULTIPLIER),
            streaming_enabled=read("STREAMING", _parse_tristate, None),
            show_tool_execution=read("SHOW_TOOL_EXECUTION", _parse_bool, True),
            telemetry_log_path=Path(telemetry) if telemetry else None,
            compactor=read("COMPACTOR", str.lower, "none"),
        )


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _parse_tristate(value: str) -> Optional[bool]:
    if value.lower() == "auto":
        return None
    return _parse_bool(value)


@dataclass(frozen=True)
class StreamDecision:
    should_stream: bool
    reason: str


def should_enable_streaming(
    config: Optional[EngineConfig] = None,
    force_stream: bool = False,
    force_no_stream: bool = False,
    environ: Optional[Mapping[str, str]] = None,
    stream: Optional[TextIO] = None,
) -> StreamDecision:
    """Decide whether a run should stream.

    Priority: force flags (no-stream wins), then ``config.streaming_enabled``,
    then ``CI``/``NO_COLOR`` (either set to true disables streaming), then
    whether ``stream`` (stdout by default) is a terminal.
    """
    if force_no_stream:
        return StreamDecision(False, "disabled by force_no_stream")
    if force_stream:
        return StreamDecision(True, "enabled by force_stream")

    if config is not None and config.streaming_enabled is not None:
        state = "enabled" if config.streaming_enabled else "disabled"
        return StreamDecision(config.streaming_enabled, f"{state} by configuration")

    env = os.environ if environ is None else environ
    for name in ("CI", "NO_COLOR"):
        if env.get(name, "").strip().lower() in ("1", "true"):
            return StreamDecision(False, f"disabled by {name} environment variable")

    out = sys.stdout if stream is None else stream
    try:
        is_tty = out.isatty()
    except (AttributeError, ValueError):
        is_tty = False
    if is_tty:
        return StreamDecision(True, "output is a terminal")
    return StreamDecision(False, "output is not a terminal")
