"""Rich output formatting for the Warden CLI.

Centralizes the console, status colors and table builders so every
command renders state the same way.
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from warden.core.checkpoint import CircuitState, RepoStatusValue

# Quiet and JSON modes are handled by each command, not by this Console.
console = Console()


class StatusColors:
    """Color mappings for status values."""

    REPO_STATUS: dict[str, str] = {
        RepoStatusValue.PENDING.value: "yellow",
        RepoStatusValue.IN_PROGRESS.value: "blue",
        RepoStatusValue.COMPLETED.value: "green",
        RepoStatusValue.BLOCKED.value: "red",
    }

    CIRCUIT_STATE: dict[str, str] = {
        CircuitState.CLOSED.value: "green",
        CircuitState.HALF_OPEN.value: "yellow",
        CircuitState.OPEN.value: "red",
    }

    @classmethod
    def get_repo_color(cls, status: str) -> str:
        return cls.REPO_STATUS.get(status, "white")

    @classmethod
    def get_circuit_color(cls, state: str) -> str:
        return cls.CIRCUIT_STATE.get(state, "white")


def format_cost(cost_usd: float) -> str:
    return f"${cost_usd:.2f}"


def output_json(data: Any, console_instance: Console | None = None) -> None:
    """Print ``data`` as indented JSON without Rich markup or wrapping."""
    out = console_instance or console
    out.print(
        json.dumps(data, indent=2, default=str),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def output_error(
    message: str,
    *,
    hints: list[str] | None = None,
    json_output: bool = False,
    console_instance: Console | None = None,
) -> None:
    """Print an error with optional hints, or its JSON equivalent."""
    out = console_instance or console
    if json_output:
        result: dict[str, Any] = {"success": False, "message": message}
        if hints:
            result["hints"] = hints
        output_json(result, out)
        return

    out.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
    if hints:
        out.print()
        out.print("[dim]Hints:[/dim]")
        for hint in hints:
            out.print(f"  - {hint}")


# =============================================================================
# Table and panel builders
# =============================================================================


def create_repos_table(title: str = "Repositories") -> Table:
    """Table for per-repo orchestration status."""
    table = Table(title=title)
    table.add_column("Repo", style="cyan", no_wrap=True)
    table.add_column("Status", style="bold")
    table.add_column("Loops", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Blocked by / reason", style="dim")
    return table


def create_order_table(title: str = "Execution Order") -> Table:
    """Table for a resolved execution order."""
    table = Table(title=title)
    table.add_column("#", justify="right", style="cyan", width=4)
    table.add_column("Repo", style="bold")
    table.add_column("Priority", justify="right")
    table.add_column("Depends on", style="dim")
    table.add_column("Path", style="dim")
    return table


def create_header_panel(lines: list[str], title: str, border_style: str = "default") -> Panel:
    return Panel("\n".join(lines), title=title, border_style=border_style)


def render_orchestration_status(
    report: dict[str, Any], console_instance: Console | None = None
) -> None:
    """Render a status report from Orchestrator.get_status()."""
    out = console_instance or console
    header = [
        f"Total repos:  {report['total_repos']}",
        f"[green]Completed:[/green]    {report['completed']}",
        f"[red]Blocked:[/red]      {report['blocked']}",
        f"[yellow]Pending:[/yellow]      {report['pending']}",
        f"Current:      {report['current_repo'] or 'none'}",
        f"Total cost:   {format_cost(report['total_cost_usd'])}",
    ]
    border = "cyan" if report["active"] else "default"
    out.print(create_header_panel(header, "Orchestration Status", border))

    table = create_repos_table()
    for name, repo in report["repos"].items():
        color = StatusColors.get_repo_color(repo["status"])
        detail = ""
        if repo["blocked_by"]:
            detail = "blocked by: " + ", ".join(repo["blocked_by"])
        elif repo["block_reason"]:
            detail = repo["block_reason"]
        table.add_row(
            escape(name),
            f"[{color}]{repo['status']}[/{color}]",
            str(repo["loops"]),
            format_cost(repo["cost_usd"]),
            escape(detail),
        )
    out.print(table)
