"""Retry state commands for the Warden CLI."""

from __future__ import annotations

import typer

from ..helpers import configure_global_logging, create_context, is_quiet
from ..output import console, output_json

retry_app = typer.Typer(
    name="retry",
    help="Inspect and reset per-error retry state",
    no_args_is_help=True,
)


@retry_app.command("reset")
def retry_reset() -> None:
    """Forget every tracked error signature and its attempt count."""
    configure_global_logging(console)
    ctx = create_context(console)
    ctx.retry_engine().reset_retry_state()
    if not is_quiet():
        console.print("[green]Retry state reset.[/green]")


@retry_app.command("status")
def retry_status(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show tracked error signatures and their attempt counts."""
    configure_global_logging(console)
    ctx = create_context(console)
    engine = ctx.retry_engine()
    errors = engine.get_all_retry_state()

    if json_output:
        output_json(
            {
                "max_attempts": engine.config.max_attempts,
                "errors": {sig: entry.model_dump(mode="json") for sig, entry in errors.items()},
            }
        )
        return

    if not errors:
        console.print("No tracked errors.")
        return
    for signature, entry in errors.items():
        console.print(
            f"[cyan]{signature}[/cyan]  {entry.category.value}  "
            f"{entry.attempt_count}/{engine.config.max_attempts} attempts  "
            f"(loop {entry.last_loop}, {entry.last_outcome or '-'})"
        )
