"""Multi-repository orchestration commands for the Warden CLI.

``validate`` checks a job-graph declaration and prints the execution order.
``orchestrate`` runs a shell command in every repository, in dependency
order, through the loop supervisor. ``unblock`` returns a failed repo to
pending.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

import typer
from rich.markup import escape

from warden.core.errors import OrchestrationError, RepoConfigError
from warden.core.logging import ExecutionContext, get_logger, with_context
from warden.execution.dag import RepoGraph, RepoNode, build_repo_graph, resolve_execution_order
from warden.execution.supervisor import LoopContext, LoopResult, LoopSupervisor

from ..helpers import (
    CliContext,
    ErrorMessages,
    configure_global_logging,
    create_context,
    is_quiet,
    is_verbose,
)
from ..output import (
    console,
    create_order_table,
    output_error,
    output_json,
    render_orchestration_status,
)

_logger = get_logger("cli.orchestrate")

# Characters of command output kept as the error message of a failed loop
ERROR_TAIL_CHARS = 2000


def _load_graph(config_file: Path, json_output: bool) -> tuple[RepoGraph, list[str]]:
    try:
        graph = build_repo_graph(config_file)
        order = resolve_execution_order(graph)
    except RepoConfigError as e:
        output_error(
            f"{ErrorMessages.REPO_CONFIG_ERROR}: {e}",
            json_output=json_output,
        )
        raise typer.Exit(1) from None
    return graph, order


def _print_order(graph: RepoGraph, order: list[str]) -> None:
    table = create_order_table()
    for i, name in enumerate(order, start=1):
        node = graph.get(name)
        table.add_row(
            str(i),
            escape(name),
            str(node.priority),
            escape(", ".join(node.deps)) or "-",
            escape(str(node.path)),
        )
    console.print(table)


def validate(
    config_file: Path = typer.Argument(
        ..., help="Path to the repo graph declaration (JSON or YAML)"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Validate a repo graph declaration and show its execution order.

    Exit codes:
      0: Valid
      1: Invalid (missing file, bad field, unknown dependency, cycle, ...)
    """
    configure_global_logging(console)
    graph, order = _load_graph(config_file, json_output)

    if json_output:
        output_json({"valid": True, "execution_order": order, **graph.to_dict()})
        return

    console.print(f"[green]✓[/green] {len(graph)} repos, no circular dependencies")
    if not is_quiet():
        _print_order(graph, order)


def make_command_worker(command: str, node: RepoNode, echo_output: bool = False):
    """Worker that runs ``command`` through the shell in the repo directory.

    A zero exit status completes the job. Context for the command is
    exported as WARDEN_REPO, WARDEN_LOOP, WARDEN_HINT and
    WARDEN_RESET_SESSION. With ``echo_output`` the captured output of each
    loop is printed after a per-repo heading.
    """

    def worker(ctx: LoopContext) -> LoopResult:
        env = dict(os.environ)
        env.update(
            WARDEN_REPO=node.name,
            WARDEN_LOOP=str(ctx.loop),
            WARDEN_HINT=ctx.hint or "",
            WARDEN_RESET_SESSION="1" if ctx.reset_session else "",
        )
        _logger.info("orchestrate.command_started", repo=node.name, loop=ctx.loop)
        proc = subprocess.run(
            command,
            shell=True,
            cwd=node.path,
            env=env,
            capture_output=True,
            text=True,
        )
        output = proc.stdout + proc.stderr
        if echo_output:
            console.print(f"[dim]{escape(node.name)} loop {ctx.loop}:[/dim]")
            if output:
                console.print(escape(output.rstrip("\n")), highlight=False)
        if proc.returncode == 0:
            # A successful run counts as progress for the circuit breaker
            return LoopResult(done=True, files_changed=1, output_length=len(output))

        message = f"command exited with code {proc.returncode}"
        tail = (proc.stderr or proc.stdout).strip()[-ERROR_TAIL_CHARS:]
        if tail:
            message = f"{message}: {tail}"
        return LoopResult(output_length=len(output), error_message=message)

    return worker


def _command_runner(
    ctx: CliContext, command: str, max_loops: int, echo_output: bool = False
):
    def supervisor_for(node: RepoNode) -> LoopSupervisor:
        # Each repo starts with a closed circuit and no retry history
        engine = ctx.retry_engine()
        engine.reset_retry_state()
        breaker = ctx.circuit_breaker()
        breaker.reset(f"job_started: {node.name}")
        return LoopSupervisor(
            make_command_worker(command, node, echo_output=echo_output),
            engine,
            breaker,
            max_loops=max_loops,
        )

    return LoopSupervisor.as_job_runner(supervisor_for)


def orchestrate(
    config_file: Path = typer.Argument(
        ..., help="Path to the repo graph declaration (JSON or YAML)"
    ),
    command: str | None = typer.Option(
        None,
        "--command",
        "-c",
        help="Shell command to run in each repository",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Validate and show the execution order without running"
    ),
    max_loops: int = typer.Option(
        1, "--max-loops", min=1, help="Loops allowed per repository"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output the final report as JSON"),
) -> None:
    """Run a command across repositories in dependency order.

    Repositories run one at a time. A repository whose command fails is
    marked blocked; its dependents stay pending and the rest continue.
    """
    configure_global_logging(console)
    graph, order = _load_graph(config_file, json_output)

    if dry_run:
        if json_output:
            output_json({"dry_run": True, "execution_order": order, **graph.to_dict()})
        else:
            console.print("[yellow]Dry run - nothing will be executed[/yellow]")
            _print_order(graph, order)
        return

    if not command:
        output_error(
            "Nothing to run",
            hints=["Pass --command CMD to run it in each repo", "Or use --dry-run"],
            json_output=json_output,
        )
        raise typer.Exit(1)

    ctx = create_context(console)
    orchestrator = ctx.orchestrator()
    with with_context(ExecutionContext(component="orchestrate")):
        runner = _command_runner(
            ctx, command, max_loops, echo_output=is_verbose() and not json_output
        )
        report = orchestrator.run(graph, runner)

    if json_output:
        output_json(report)
    elif not is_quiet():
        render_orchestration_status(report)

    if report["blocked"] or report["pending"]:
        raise typer.Exit(1)


def unblock(
    repo: str = typer.Argument(..., help="Name of the blocked repository"),
) -> None:
    """Return a blocked repository to pending."""
    configure_global_logging(console)
    ctx = create_context(console)
    try:
        ctx.orchestrator().unblock_repo(repo)
    except OrchestrationError as e:
        output_error(str(e))
        raise typer.Exit(1) from None
    if not is_quiet():
        console.print(f"[green]Repo '{escape(repo)}' unblocked.[/green]")
