# tscodemap/renderer.py
from __future__ import annotations

import contextlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .graph import DependencyGraph, GraphEdge, GraphNode

__all__ = [
    "DEFAULT_OUTPUT",
    "RendererConfig",
    "format_node",
    "format_edge",
    "build_mermaid",
    "write_mermaid",
]

DEFAULT_OUTPUT = "interdependencies.mmd"


@dataclass
class RendererConfig:
    """
    Controls the layout of the Mermaid document.

    direction:
        Graph direction written after ``graph`` (TD, LR, ...).
    indent:
        Prefix for every node and edge line.
    """

    direction: str = "TD"
    indent: str = "    "


def format_node(node: GraphNode) -> str:
    """Function nodes are rounded, every other kind is a box."""
    if node.kind == "function":
        return f"{node.id}({node.id}::function)"
    return f"{node.id}[{node.id}::{node.kind}]"


def format_edge(edge: GraphEdge) -> str:
    return f"{edge.src} -->|{edge.relation}| {edge.dst}"


def build_mermaid(
    graph: DependencyGraph,
    title: str,
    config: Optional[RendererConfig] = None,
) -> str:
    """
    Render a graph as a Mermaid flowchart.

    Node lines and edge lines are each sorted by their text, so the same graph
    always renders to the same document. This is a pure function: it does not
    touch the filesystem.
    """
    if config is None:
        config = RendererConfig()

    lines: List[str] = ["---", f"title: {title}", "---", f"graph {config.direction}"]
    for line in sorted(format_node(node) for node in graph.nodes.values()):
        lines.append(f"{config.indent}{line}")
    for line in sorted(format_edge(edge) for edge in graph.edges):
        lines.append(f"{config.indent}{line}")
    return "\n".join(lines)


def write_mermaid(text: str, output: Path) -> None:
    """
    Write ``text`` to ``output`` atomically.

    The document goes to a temporary file next to ``output`` and is moved into
    place once complete, so readers never see a partial file.
    """
    output = Path(output)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{output.name}.",
        suffix=".tmp",
        dir=output.parent,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        os.replace(tmp_name, output)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
