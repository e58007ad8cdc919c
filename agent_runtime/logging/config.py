"""Logging configuration for agent_runtime.

Handlers are attached to the ``agent_runtime`` logger only, so configuring
the engine's output never replaces the host application's root handlers.
"""
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

import structlog

from .processors import DEFAULT_MAX_VALUE_CHARS, add_logger_name, inject_context, truncate_long_values

PACKAGE_LOGGER = "agent_runtime"

_configured = False


class LogLevel(str, Enum):
    """Log level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_int(self) -> int:
        return getattr(logging, self.value)


class LogFormat(str, Enum):
    PLAIN = "plain"  # console
    JSON = "json"    # one object per line


@dataclass
class LogConfig:
    """Configuration for the engine's logs.

    Attributes:
        level: Minimum level emitted by ``agent_runtime`` loggers.
        format: PLAIN for a console, JSON for log shipping.
        log_file: Also write to this file, rotated by size.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files kept.
        max_value_chars: Longest string value kept verbatim in a log entry.
    """
    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.PLAIN
    log_file: Optional[Path] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    max_value_chars: int = DEFAULT_MAX_VALUE_CHARS

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        prefix: str = "AGENT_RUNTIME_",
    ) -> "LogConfig":
        """Build a config from ``<prefix>LOG_LEVEL``, ``LOG_FORMAT`` and ``LOG_FILE``.

        Unknown level or format names raise ``ValueError``.
        """
        env = os.environ if environ is None else environ
        config = cls()
        level = env.get(f"{prefix}LOG_LEVEL")
        if level:
            config.level = LogLevel(level.strip().upper())
        fmt = env.get(f"{prefix}LOG_FORMAT")
        if fmt:
            config.format = LogFormat(fmt.strip().lower())
        log_file = env.get(f"{prefix}LOG_FILE")
        if log_file:
            config.log_file = Path(log_file)
        return config


def _shared_processors(config: LogConfig) -> list:
    return [
        structlog.contextvars.merge_contextvars,
        inject_context,
        add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        truncate_long_values(config.max_value_chars),
    ]


def _renderer(config: LogConfig):
    if config.format == LogFormat.JSON:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def _handlers(config: LogConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
        ))
    return handlers


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """Route ``agent_runtime`` logs through structlog.

    Calling it again replaces the handlers installed by the previous call.

    Example:
        >>> from agent_runtime.logging import configure_logging, LogConfig, LogFormat
        >>> configure_logging(LogConfig(format=LogFormat.JSON))
    """
    global _configured

    config = config or LogConfig()
    shared = _shared_processors(config)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(config),
        ],
    )

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()
    for handler in _handlers(config):
        handler.setLevel(config.level.to_int())
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)
    package_logger.setLevel(config.level.to_int())
    package_logger.propagate = False

    _configured = True


def is_configured() -> bool:
    return _configured


def ensure_configured() -> None:
    """Configure logging with defaults unless ``configure_logging`` already ran."""
    if not _configured:
        configure_logging()
