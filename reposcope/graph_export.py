"""Graph export helpers for DOT and node-link JSON outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Set, Tuple

from .models import DependencyGraph


def to_json(graph: DependencyGraph) -> str:
    """Node-link document readable by ``networkx.node_link_graph``."""
    payload = {
        "directed": True,
        "multigraph": False,
        "graph": {},
        "nodes": [
            {
                "id": node.id,
                "name": node.name,
                "type": node.kind,
                "path": node.path,
                "exports": node.exported_names,
            }
            for node in graph.nodes
        ],
        "links": [
            {"source": edge.source, "target": edge.target, "type": "import", "symbols": edge.symbols}
            for edge in graph.edges
        ],
    }
    return json.dumps(payload, indent=2)


def to_dot(graph: DependencyGraph, title: str = "Dependency Graph", highlight_circular: bool = True) -> str:
    cycle_nodes, cycle_edges = _cycle_members(graph) if highlight_circular else (set(), set())

    lines = [f'digraph "{_esc(title)}" {{']
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box, style=rounded];")
    lines.append("")

    for node in graph.nodes:
        style = ", color=red, penwidth=2" if node.id in cycle_nodes else ""
        lines.append(f'  "{_esc(node.id)}" [label="{_esc(node.name)}"{style}];')

    lines.append("")
    for edge in graph.edges:
        style = " [color=red, penwidth=2]" if (edge.source, edge.target) in cycle_edges else ""
        lines.append(f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}"{style};')

    lines.append("}")
    return "\n".join(lines)


def export_json(graph: DependencyGraph, output_file: Path) -> None:
    output_file.write_text(to_json(graph), encoding="utf-8")


def export_dot(
    graph: DependencyGraph,
    output_file: Path,
    title: str = "Dependency Graph",
    highlight_circular: bool = True,
) -> None:
    output_file.write_text(to_dot(graph, title, highlight_circular), encoding="utf-8")


def _cycle_members(graph: DependencyGraph) -> Tuple[Set[str], Set[Tuple[str, str]]]:
    nodes: Set[str] = set()
    edges: Set[Tuple[str, str]] = set()
    for cycle in graph.circular_dependencies:
        nodes.update(cycle)
        # Normalized cycles omit the closing node; wrap around.
        for i, member in enumerate(cycle):
            edges.add((member, cycle[(i + 1) % len(cycle)]))
    return nodes, edges


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
