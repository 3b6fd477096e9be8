"""Warden CLI.

Package structure:
    cli/
    ├── __init__.py           # This file - app assembly and global options
    ├── helpers.py            # Logging, config and state helpers
    ├── output.py             # Rich formatting
    └── commands/
        ├── __init__.py       # Command exports
        ├── circuit.py        # circuit reset, circuit status
        ├── orchestrate.py    # validate, orchestrate, unblock
        ├── retry.py          # retry reset, retry status
        └── status.py         # status
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from warden import __version__

# Re-export helpers module for direct access to internal state (conftest.py needs this)
from . import helpers as helpers
from .commands import circuit_app, orchestrate, retry_app, status, unblock, validate
from .helpers import (
    OutputLevel,
    configure_global_logging,
    set_config_file,
    set_log_file,
    set_log_format,
    set_log_level,
    set_output_level,
    set_state_dir,
)
from .output import console

app = typer.Typer(
    name="warden",
    help="Retry, circuit breaker and dependency scheduling for autonomous coding loops",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Warden v{__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    if value:
        set_output_level(OutputLevel.VERBOSE)


def quiet_callback(value: bool) -> None:
    if value:
        set_output_level(OutputLevel.QUIET)


def log_level_callback(value: str | None) -> str | None:
    if value:
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    if value:
        set_log_format(value)
    return value


def state_dir_callback(value: Path | None) -> Path | None:
    if value:
        set_state_dir(value)
    return value


def config_callback(value: Path | None) -> Path | None:
    if value:
        set_config_file(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        is_eager=True,
        help="Show detailed output",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        callback=quiet_callback,
        is_eager=True,
        help="Show minimal output (errors only)",
    ),
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="WARDEN_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="WARDEN_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json, console, or both",
            envvar="WARDEN_LOG_FORMAT",
        ),
    ] = None,
    state_dir: Annotated[
        Path | None,
        typer.Option(
            "--state-dir",
            callback=state_dir_callback,
            help="Directory for persisted state (default: .warden)",
            envvar="WARDEN_STATE_DIR",
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            callback=config_callback,
            help="Warden config file (default: .warden.yaml if present)",
            envvar="WARDEN_CONFIG",
        ),
    ] = None,
) -> None:
    """Warden - resilience and scheduling core for autonomous coding loops."""
    configure_global_logging(console)


app.add_typer(retry_app)
app.add_typer(circuit_app)
app.command()(status)
app.command()(validate)
app.command()(orchestrate)
app.command()(unblock)


__all__ = [
    "app",
    "main",
    "console",
    "OutputLevel",
]
