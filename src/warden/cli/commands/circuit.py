"""Circuit breaker commands for the Warden CLI."""

from __future__ import annotations

import typer

from ..helpers import configure_global_logging, create_context, is_quiet
from ..output import StatusColors, console, create_header_panel, output_json

circuit_app = typer.Typer(
    name="circuit",
    help="Inspect and reset the loop circuit breaker",
    no_args_is_help=True,
)


@circuit_app.command("reset")
def circuit_reset(
    reason: str = typer.Option("manual_reset", "--reason", "-r", help="Reason recorded in history"),
) -> None:
    """Close the circuit and clear every stagnation counter."""
    configure_global_logging(console)
    ctx = create_context(console)
    ctx.circuit_breaker().reset(reason)
    if not is_quiet():
        console.print("[green]Circuit breaker reset to CLOSED.[/green]")


@circuit_app.command("status")
def circuit_status(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    history: int = typer.Option(
        5, "--history", "-n", min=0, help="Number of recent transitions to show"
    ),
) -> None:
    """Show circuit state, counters and recent transitions."""
    configure_global_logging(console)
    ctx = create_context(console)
    breaker = ctx.circuit_breaker()
    status = breaker.get_status()
    transitions = breaker.get_history(history)

    if json_output:
        status["history"] = [t.model_dump(mode="json") for t in transitions]
        output_json(status)
        return

    color = StatusColors.get_circuit_color(status["state"])
    counters = status["counters"]
    thresholds = status["thresholds"]
    lines = [
        f"State:               [{color}]{status['state'].upper()}[/{color}]",
        f"Can execute:         {'yes' if status['can_execute'] else 'no'}",
        f"No progress:         {counters['consecutive_no_progress']}/{thresholds['no_progress']}",
        f"Same error:          {counters['consecutive_same_error']}/{thresholds['same_error']}",
        f"Output decline:      {counters['output_decline_pct']:.0f}%"
        f"/{thresholds['output_decline_pct']:.0f}%",
        f"Permission denials:  "
        f"{counters['consecutive_permission_denials']}/{thresholds['permission_denials']}",
    ]
    if status["last_transition_reason"]:
        lines.append(f"Last reason:         {status['last_transition_reason']}")
    if status["seconds_until_half_open"] is not None:
        lines.append(f"Probation in:        {status['seconds_until_half_open']:.0f}s")
    console.print(create_header_panel(lines, "Circuit Breaker", color))

    if transitions and not is_quiet():
        console.print("[dim]Recent transitions:[/dim]")
        for t in transitions:
            console.print(
                f"  {t.timestamp:%Y-%m-%d %H:%M:%S}  loop {t.loop}  "
                f"{t.from_state.value} -> {t.to_state.value}  ({t.reason})",
                highlight=False,
            )
