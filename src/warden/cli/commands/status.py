"""Status command for the Warden CLI."""

from __future__ import annotations

import typer

from warden.core.errors import NoOrchestrationError

from ..helpers import ErrorMessages, configure_global_logging, create_context
from ..output import console, output_json, render_orchestration_status


def status(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show the progress of the current or last orchestration."""
    configure_global_logging(console)
    ctx = create_context(console)
    try:
        report = ctx.orchestrator().get_status()
    except NoOrchestrationError:
        if json_output:
            output_json({"active": False, "message": ErrorMessages.NO_ORCHESTRATION})
        else:
            console.print(ErrorMessages.NO_ORCHESTRATION)
        return

    if json_output:
        output_json(report)
        return
    render_orchestration_status(report)
