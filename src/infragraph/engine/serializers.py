"""
Graph serializers: text, JSON, Mermaid, and DOT output formats.

Pure functions that convert a DependencyGraph (optionally with execution
states from a finished run) to string output.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Mapping

from infragraph.engine.graph import EdgeKind

if TYPE_CHECKING:
    from infragraph.engine.descriptor import ResourceId
    from infragraph.engine.graph import DependencyGraph
    from infragraph.engine.scheduler import ExecutionState

# Nord palette mapped to execution states
STATE_COLORS = {
    "succeeded": "#A3BE8C",
    "failed": "#BF616A",
    "skipped": "#EBCB8B",
    "running": "#88C0D0",
    "not_started": "#4C566A",
}


def serialize_text(graph: DependencyGraph) -> str:
    """One line per resource in topological order, with its predecessors."""
    lines: list[str] = []
    for rid in graph.topological_order():
        preds = graph.predecessors(rid)
        if preds:
            needs = ", ".join(rid_.name for rid_ in preds)
            lines.append(f"{rid.name} ({rid.kind}) ← {needs}")
        else:
            lines.append(f"{rid.name} ({rid.kind})")
    return "\n".join(lines)


def serialize_json(graph: DependencyGraph) -> str:
    return json.dumps(graph.to_dict(), indent=2)


def serialize_mermaid(
    graph: DependencyGraph,
    states: Mapping[ResourceId, ExecutionState] | None = None,
) -> str:
    """
    Serialize the graph as a Mermaid flowchart.

    Explicit-only edges are dotted; edges discovered from value references
    are solid.
    """
    lines: list[str] = ["graph LR"]

    for rid in graph.nodes:
        lines.append(f"    {_node_id(rid)}[\"{rid.name}<br/><small>{rid.kind}</small>\"]")

    lines.append("")

    for (src, tgt), kind in graph.edge_kinds.items():
        arrow = "-.->" if kind is EdgeKind.EXPLICIT else "-->"
        lines.append(f"    {_node_id(src)} {arrow} {_node_id(tgt)}")

    if states:
        lines.append("")
        for state, color in STATE_COLORS.items():
            lines.append(f"    classDef {state} fill:{color},stroke:#2E3440,color:#2E3440")
        for rid, state in states.items():
            lines.append(f"    class {_node_id(rid)} {state.value}")

    return "\n".join(lines)


def serialize_dot(
    graph: DependencyGraph,
    states: Mapping[ResourceId, ExecutionState] | None = None,
) -> str:
    """Serialize the graph as a Graphviz DOT digraph."""
    lines: list[str] = [
        "digraph resources {",
        "    rankdir=LR;",
        '    node [shape=box, style=filled, fontname="sans-serif", fontcolor="#2E3440"];',
        '    edge [fontname="sans-serif", fontsize=10];',
        "",
    ]

    for rid in graph.nodes:
        state = states.get(rid) if states else None
        color = STATE_COLORS[state.value] if state else "#D8DEE9"
        lines.append(f'    {_node_id(rid)} [label="{rid.name}\\n{rid.kind}", fillcolor="{color}"];')

    lines.append("")

    for (src, tgt), kind in graph.edge_kinds.items():
        attr = " [style=dashed]" if kind is EdgeKind.EXPLICIT else ""
        lines.append(f"    {_node_id(src)} -> {_node_id(tgt)}{attr};")

    lines.append("}")

    return "\n".join(lines)


def _node_id(rid: ResourceId) -> str:
    """Convert a resource identity to a valid Mermaid/DOT node ID."""
    return re.sub(r"[^a-zA-Z0-9]", "_", f"{rid.kind}__{rid.name}")
