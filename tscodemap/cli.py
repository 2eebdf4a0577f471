# tscodemap/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from .errors import CodemapError
from .graph import DependencyGraph, GraphConfig, build_dependency_graph
from .project import Project, load_project
from .renderer import DEFAULT_OUTPUT, build_mermaid, format_edge, format_node, write_mermaid


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tscodemap",
        description=(
            "Scan a TypeScript project and map how its top-level classes, "
            "functions, variables and imports depend on each other, as a "
            "Mermaid diagram."
        ),
    )
    parser.add_argument(
        "project",
        type=str,
        help="Path to the project root (the directory holding tsconfig.json).",
    )
    parser.add_argument(
        "output",
        type=str,
        nargs="?",
        default=DEFAULT_OUTPUT,
        help=f"Output file for the Mermaid diagram (default: {DEFAULT_OUTPUT}).",
    )
    parser.add_argument(
        "--format",
        choices=("mermaid", "json", "summary"),
        default="mermaid",
        help=(
            "Output format: 'mermaid' (write the diagram file), 'json' (graph "
            "on stdout) or 'summary' (counts on stdout). Default: mermaid."
        ),
    )
    parser.add_argument(
        "--no-imports",
        action="store_true",
        help="Leave import and module nodes out of the graph.",
    )
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Skip files that fail to extract instead of aborting.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log per-file progress.",
    )
    return parser


def main(argv: Any | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    graph_cfg = GraphConfig(
        include_imports=not args.no_imports,
        keep_going=args.keep_going,
    )

    try:
        project = load_project(Path(args.project))
        graph = build_dependency_graph(project, graph_cfg)
    except CodemapError as exc:
        print(f"Error generating diagram: {exc}", file=sys.stderr)
        return 1

    if args.format == "summary":
        _print_summary(project, graph)
        return 0

    if args.format == "json":
        data = _graph_to_jsonable(project, graph)
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 0

    text = build_mermaid(graph, title=project.title)
    output = Path(args.output)
    try:
        write_mermaid(text, output)
    except OSError as exc:
        print(f"Error generating diagram: {exc}", file=sys.stderr)
        return 1
    print(f"Wrote Mermaid diagram to {output}")
    return 0


def _graph_to_jsonable(project: Project, graph: DependencyGraph) -> Dict[str, Any]:
    return {
        "title": project.title,
        "root": str(project.root),
        "files": [f.path.as_posix() for f in project.files],
        "nodes": [
            {"id": n.id, "kind": n.kind, "line": format_node(n)}
            for n in sorted(graph.nodes.values(), key=lambda n: n.id)
        ],
        "edges": [
            {"src": e.src, "dst": e.dst, "relation": e.relation, "line": format_edge(e)}
            for e in graph.iter_edges()
        ],
    }


def _print_summary(project: Project, graph: DependencyGraph) -> None:
    print(f"Project root: {project.root}")
    print(f"  Files     : {len(project.files)}")
    print(f"  Nodes     : {len(graph.nodes)}")
    print(f"  Edges     : {len(graph.edges)}")
    kinds: Dict[str, int] = {}
    for node in graph.nodes.values():
        kinds[node.kind] = kinds.get(node.kind, 0) + 1
    for kind in sorted(kinds):
        print(f"    - {kind}: {kinds[kind]}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
