"""
CLI command for previewing a program's dependency graph.

Builds the graph (so duplicate names and cycles are reported) without
calling any provider.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from infragraph.cli.program import declare_program, load_program
from infragraph.cli.ux import console, header, print_table, success
from infragraph.core.errors import main_with_error_handling
from infragraph.engine.graph import DependencyGraph, EdgeKind
from infragraph.engine.serializers import (
    serialize_dot,
    serialize_json,
    serialize_mermaid,
    serialize_text,
)

SERIALIZERS = {
    "json": serialize_json,
    "mermaid": serialize_mermaid,
    "dot": serialize_dot,
    "plain": serialize_text,
}


@main_with_error_handling()
def preview_command(
    program: str,
    config_path: Optional[str] = None,
    stack: str = "dev",
    output_format: str = "text",
    output_file: Optional[str] = None,
) -> int:
    """
    Show the resources a program declares and the order they would run in.

    Args:
        program: Built-in program name or 'module:function'
        config_path: Stack configuration YAML
        stack: Stack name
        output_format: text, plain, json, mermaid or dot
        output_file: Write serialized output to this file instead of stdout

    Returns:
        Exit code (0 on success)
    """
    loaded = load_program(program)
    ctx = declare_program(loaded, stack, config_path)
    graph = ctx.build_graph()

    if output_format == "text":
        _print_graph(graph, stack)
        return 0

    rendered = SERIALIZERS[output_format](graph)
    if output_file:
        Path(output_file).write_text(rendered + "\n")
        success(f"Wrote {output_format} graph to {output_file}")
    else:
        print(rendered)
    return 0


def _print_graph(graph: DependencyGraph, stack: str) -> None:
    header(f"Preview: {stack}")

    rows = []
    for step, rid in enumerate(graph.topological_order(), 1):
        needs = []
        for pred in graph.predecessors(rid):
            marker = "" if graph.edge_kinds[(pred, rid)] is EdgeKind.INFERRED else "*"
            needs.append(f"{pred.name}{marker}")
        rows.append([str(step), rid.name, rid.kind, ", ".join(needs) or "-"])

    print_table("Resources", ["#", "Name", "Kind", "Depends on"], rows)
    console.print(
        f"[muted]{len(graph)} resources, {len(graph.edges)} edges, "
        f"{len(graph.roots())} can start immediately (* = explicit dependency)[/muted]"
    )
