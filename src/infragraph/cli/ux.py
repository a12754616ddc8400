"""
CLI output helpers built on rich.

Respects NO_COLOR and FORCE_COLOR environment variables. Execution states
have their own theme styles so summaries and progress lines colour the
same way everywhere.
"""

from __future__ import annotations

import os

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from infragraph.engine.scheduler import ExecutionState

# Nord color palette (https://www.nordtheme.com/)
INFRAGRAPH_THEME = Theme(
    {
        "success": "#A3BE8C",
        "warning": "#EBCB8B",
        "muted": "#D8DEE9",
        "state.succeeded": "#A3BE8C",
        "state.failed": "#BF616A bold",
        "state.skipped": "#EBCB8B",
        "state.running": "#88C0D0",
        "state.not_started": "#4C566A",
    }
)

STATE_ICONS = {
    ExecutionState.SUCCEEDED: "✓",
    ExecutionState.FAILED: "✗",
    ExecutionState.SKIPPED: "○",
    ExecutionState.RUNNING: "…",
    ExecutionState.NOT_STARTED: "·",
}

console = Console(
    theme=INFRAGRAPH_THEME,
    force_terminal=os.environ.get("FORCE_COLOR") is not None,
    no_color=os.environ.get("NO_COLOR") is not None,
)


def success(message: str) -> None:
    console.print(f"[success]✓ {message}[/success]")


def warning(message: str) -> None:
    console.print(f"[warning]⚠ {message}[/warning]")


def state_label(state: ExecutionState, text: str) -> str:
    """Markup for ``text`` prefixed with the state's icon and colour."""
    style = f"state.{state.value}"
    return f"[{style}]{STATE_ICONS[state]} {text}[/{style}]"


def header(title: str) -> None:
    console.print()
    console.print(Panel(f"[bold]{title}[/bold]", border_style="cyan"))


def print_table(title: str, columns: list[str], rows: list[list[str]]) -> None:
    table = Table(title=title)
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*row)
    console.print(table)
