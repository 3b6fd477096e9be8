"""Shared utilities for Warden CLI commands.

This module contains helpers used across multiple CLI command modules:
- Output level and logging configuration set by global options
- Config loading with the --config and --state-dir overrides
- State store and engine construction
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console
from rich.markup import escape

from warden.core.config import WardenConfig
from warden.core.errors import ConfigurationError
from warden.core.logging import configure_logging, get_logger
from warden.execution.circuit_breaker import CircuitBreaker
from warden.execution.orchestrator import Orchestrator
from warden.execution.retry_strategy import RetryEngine
from warden.state import JsonStateStore, StateStore
from warden.state.audit import AuditLog

_logger = get_logger("cli")


class ErrorMessages:
    """Constants for CLI error messages."""

    CONFIG_LOAD_ERROR = "Error loading config"
    REPO_CONFIG_ERROR = "Invalid repo config"
    NO_ORCHESTRATION = "No orchestration in progress."


# =============================================================================
# Output level management
# =============================================================================


class OutputLevel(str, Enum):
    """Output verbosity level."""

    QUIET = "quiet"  # Errors only
    NORMAL = "normal"
    VERBOSE = "verbose"


_output_level: OutputLevel = OutputLevel.NORMAL


def set_output_level(level: OutputLevel) -> None:
    global _output_level
    _output_level = level


def is_verbose() -> bool:
    return _output_level == OutputLevel.VERBOSE


def is_quiet() -> bool:
    return _output_level == OutputLevel.QUIET


# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """CLI logging configuration collected from global options."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


_log_config = CliLoggingConfig()


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    """Set the log file path.

    A log file switches the format to JSON so the file holds one
    structured record per line; Rich command output stays on the console.
    """
    _log_config.file = path
    if path:
        _log_config.format = "json"


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt.lower()  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options, once per session.

    Raises:
        typer.Exit: If logging configuration fails.
    """
    if _log_config.configured:
        return

    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except (ValueError, AttributeError) as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Allow logging to be configured again (used by tests)."""
    _log_config.configured = False


# =============================================================================
# Config and state
# =============================================================================


@dataclass
class CliStateConfig:
    """Paths selected by the --config and --state-dir global options."""

    config_file: Path | None = None
    state_dir: Path | None = None


_state_config = CliStateConfig()


def set_config_file(path: Path | None) -> None:
    _state_config.config_file = path


def set_state_dir(path: Path | None) -> None:
    _state_config.state_dir = path


def reset_state_config() -> None:
    """Forget --config and --state-dir (used by tests)."""
    _state_config.config_file = None
    _state_config.state_dir = None


def load_config(console: Console) -> WardenConfig:
    """Load the Warden config, applying the --state-dir override.

    Raises:
        typer.Exit: If the config file is invalid.
    """
    try:
        config = WardenConfig.load(_state_config.config_file)
    except ConfigurationError as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None
    if _state_config.state_dir is not None:
        config = config.model_copy(update={"state_dir": _state_config.state_dir})
    return config


@dataclass
class CliContext:
    """Everything a command needs to operate on persisted state."""

    config: WardenConfig
    store: StateStore
    audit: AuditLog

    def retry_engine(self) -> RetryEngine:
        return RetryEngine(self.config.retry, store=self.store, audit=self.audit)

    def circuit_breaker(self) -> CircuitBreaker:
        return CircuitBreaker(self.config.circuit_breaker, store=self.store, audit=self.audit)

    def orchestrator(self) -> Orchestrator:
        return Orchestrator(self.store, audit=self.audit)


def create_context(console: Console) -> CliContext:
    """Load config and open the state store it points at."""
    config = load_config(console)
    store = JsonStateStore(config.state_dir)
    audit = AuditLog(store, config.audit)
    _logger.debug("cli.context_created", state_dir=str(config.state_dir))
    return CliContext(config=config, store=store, audit=audit)
