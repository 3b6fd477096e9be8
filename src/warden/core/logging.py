"""Structured logging infrastructure for Warden.

Provides structured logging using structlog with Warden-specific context
such as the repository being worked on and the current loop number.

Example usage:
    from warden.core.logging import get_logger, configure_logging, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("retry_strategy")
    logger.info("retry_strategy.decision", strategy="wait_and_retry")

    # Correlate every entry of a job
    ctx = ExecutionContext(repo="api", session_id="abc-123")
    with with_context(ctx.with_loop(4)):
        logger.info("loop_started")  # Includes repo, session_id, loop_number
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from warden.utils.time import iso_timestamp

# Keys whose values never reach a log sink
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
})

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console", "both"]


@dataclass(frozen=True)
class ExecutionContext:
    """Immutable correlation context for a supervised session.

    Attributes:
        session_id: Identifier of the supervision session (UUID by default).
        repo: Repository currently being worked on, if any.
        loop_number: Current loop iteration, if inside a loop.
        component: Component that owns the current operation.
    """

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    repo: str | None = None
    loop_number: int | None = None
    component: str = "unknown"

    def with_loop(self, loop_number: int) -> ExecutionContext:
        """Return a copy bound to a loop number."""
        return replace(self, loop_number=loop_number)

    def with_repo(self, repo: str) -> ExecutionContext:
        """Return a copy bound to a repository name."""
        return replace(self, repo=repo)

    def to_dict(self) -> dict[str, Any]:
        """Context fields for a log entry, skipping unset values."""
        result: dict[str, Any] = {
            "session_id": self.session_id,
            "component": self.component,
        }
        if self.repo is not None:
            result["repo"] = self.repo
        if self.loop_number is not None:
            result["loop_number"] = self.loop_number
        return result


_current_context: ContextVar[ExecutionContext | None] = ContextVar(
    "warden_context", default=None
)


def get_current_context() -> ExecutionContext | None:
    """Get the current ExecutionContext if set."""
    return _current_context.get()


@contextmanager
def with_context(ctx: ExecutionContext) -> Iterator[ExecutionContext]:
    """Set the ExecutionContext for the duration of a block.

    Args:
        ctx: The ExecutionContext to use for the block.

    Yields:
        The ExecutionContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = iso_timestamp()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that merges the active ExecutionContext.

    Explicitly bound keys win over context keys.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


class WardenLogger:
    """Component-bound wrapper around structlog.

    The underlying structlog logger is fetched on every call so loggers
    created at import time honor a later configure_logging().
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> WardenLogger:
        """Create a new logger with additional bound context."""
        new_logger = WardenLogger.__new__(WardenLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an exception with traceback; call from an exception handler."""
        self._get_logger().exception(event, **kw)


def _build_processors(renderer: Processor, include_context: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_context:
        processors.append(_add_context)
    processors.extend([
        _add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 10,
    backup_count: int = 3,
    include_context: bool = True,
) -> None:
    """Configure Warden structured logging.

    Call once at application startup.

    Args:
        level: Minimum log level to capture.
        format: "console" for human-readable stderr output, "json" for
            structured output, "both" for console on stderr and JSON to file.
        file_path: Log file path. Required when format="both".
        max_file_size_mb: Maximum log file size before rotation (MB).
        backup_count: Number of rotated log files to keep.
        include_context: Whether to merge ExecutionContext fields.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        handlers.append(logging.StreamHandler(sys.stderr))

    if format in ("json", "both"):
        if file_path is not None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    file_path,
                    maxBytes=max_file_size_mb * 1024 * 1024,
                    backupCount=backup_count,
                    encoding="utf-8",
                )
            )
        else:
            handlers.append(logging.StreamHandler(sys.stdout))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    # cache_logger_on_first_use=False keeps import-time loggers in sync with
    # a configuration applied later
    structlog.configure(
        processors=_build_processors(renderer, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> WardenLogger:
    """Get a Warden logger bound to a component name."""
    return WardenLogger(component, **initial_context)


__all__ = [
    "ExecutionContext",
    "SENSITIVE_PATTERNS",
    "WardenLogger",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
