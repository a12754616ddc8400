"""
CLI command for provisioning a program's resources.
"""

from __future__ import annotations

import json
from typing import Optional

from rich.markup import escape

from infragraph.cli.program import declare_program, load_program
from infragraph.cli.ux import console, state_label, success, warning
from infragraph.core.errors import ExitCode, main_with_error_handling
from infragraph.engine.reporter import MISSING, RunReport
from infragraph.engine.scheduler import ExecutionState, NodeEvent


def print_progress(event: NodeEvent) -> None:
    """Print one line per node state change."""
    suffix = f" (attempt {event.attempt})" if event.attempt > 1 else ""
    label = state_label(event.state, f"{event.state.value:<10}")
    console.print(f"  {label} {event.resource}{suffix}")


def print_up_summary(report: RunReport, verbose: bool = False) -> None:
    """Print the convergence summary with rich formatting."""
    console.print()

    for rid, outcome in report.outcomes.items():
        detail = ""
        if outcome.state is ExecutionState.FAILED:
            detail = f" [dim]{outcome.error_kind}: {escape(str(outcome.error))}[/dim]"
        elif outcome.state is ExecutionState.SKIPPED:
            cause = outcome.skipped_because.name if outcome.skipped_because else outcome.skip_reason
            detail = f" [dim]skipped: {cause}[/dim]"
        elif verbose:
            detail = f" [dim]{outcome.duration_seconds:.2f}s[/dim]"
        console.print(f"  {state_label(outcome.state, f'{rid.name:<24}')} {rid.kind}{detail}")

    console.print()
    counts = report.counts
    duration = f" in {report.duration_seconds:.1f}s" if report.duration_seconds > 0 else ""
    if report.success:
        success(f"{counts['succeeded']} resources converged{duration}")
    else:
        warning(
            f"{counts['succeeded']} succeeded, {counts['failed']} failed, "
            f"{counts['skipped']} skipped{duration}"
        )

    if report.failures:
        console.print()
        console.print("[red]Failures:[/red]")
        for chain in report.failures:
            console.print(f"  [dim]•[/dim] {chain.failed}: {escape(str(chain.error))}")
            for rid in chain.skipped:
                console.print(f"      [dim]↳ skipped {rid}[/dim]")

    if report.exports:
        console.print()
        console.print("[bold]Outputs:[/bold]")
        for name, value in report.exports.items():
            shown = "[yellow]<missing>[/yellow]" if value is MISSING else escape(str(value))
            console.print(f"  [cyan]{name}:[/cyan] {shown}")

    console.print()


def print_up_json(report: RunReport) -> None:
    print(json.dumps(report.to_dict(), indent=2, default=str))


@main_with_error_handling()
def up_command(
    program: str,
    config_path: Optional[str] = None,
    stack: str = "dev",
    simulate: bool = False,
    output_format: str = "text",
    verbose: bool = False,
) -> int:
    """
    Provision every resource a program declares.

    Args:
        program: Built-in program name or 'module:function'
        config_path: Stack configuration YAML
        stack: Stack name
        simulate: Use the in-memory provider instead of real adapters
        output_format: text or json
        verbose: Print each node state change while running

    Returns:
        Exit code (0 when every resource succeeded, 1 otherwise)
    """
    loaded = load_program(program)
    ctx = declare_program(loaded, stack, config_path)
    registry = loaded.registry(simulate=simulate)

    listeners = [print_progress] if verbose and output_format == "text" else []
    report = ctx.up(registry, listeners=listeners)

    if output_format == "json":
        print_up_json(report)
    else:
        print_up_summary(report, verbose=verbose)

    return ExitCode.SUCCESS if report.success else ExitCode.NOT_CONVERGED
