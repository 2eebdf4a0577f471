from pathlib import Path
import os
import textwrap

import pytest

from tscodemap import (
    DependencyGraph,
    RendererConfig,
    build_dependency_graph,
    build_mermaid,
    load_project,
    write_mermaid,
)


def _sample_graph() -> DependencyGraph:
    graph = DependencyGraph()
    graph.add_node("X_Circle", "class")
    graph.add_node("X_Shape", "class")
    graph.add_node("X_area", "function")
    graph.add_node("X_PI", "const")
    graph.add_edge("X_Circle", "X_Shape", "extends")
    graph.add_edge("X_area", "X_PI", "uses")
    return graph


def test_build_mermaid_document_layout() -> None:
    text = build_mermaid(_sample_graph(), title="shapes")

    assert text == "\n".join(
        [
            "---",
            "title: shapes",
            "---",
            "graph TD",
            "    X_Circle[X_Circle::class]",
            "    X_PI[X_PI::const]",
            "    X_Shape[X_Shape::class]",
            "    X_area(X_area::function)",
            "    X_Circle -->|extends| X_Shape",
            "    X_area -->|uses| X_PI",
        ]
    )


def test_build_mermaid_empty_graph_has_only_header() -> None:
    text = build_mermaid(DependencyGraph(), title="empty")
    assert text.splitlines() == ["---", "title: empty", "---", "graph TD"]
    assert not text.endswith("\n")


def test_build_mermaid_direction_and_indent() -> None:
    text = build_mermaid(
        _sample_graph(),
        title="shapes",
        config=RendererConfig(direction="LR", indent="  "),
    )
    lines = text.splitlines()
    assert lines[3] == "graph LR"
    assert "  X_Circle -->|extends| X_Shape" in lines


def test_rendering_is_deterministic(tmp_path: Path) -> None:
    (tmp_path / "tsconfig.json").write_text("{}", encoding="utf-8")
    (tmp_path / "b.ts").write_text(
        textwrap.dedent(
            """
            import { a } from "./a";

            export function b() {
                return a;
            }
            """
        ),
        encoding="utf-8",
    )
    (tmp_path / "a.ts").write_text("export const a = 1;\n", encoding="utf-8")

    first = build_mermaid(build_dependency_graph(load_project(tmp_path)), title="demo")
    second = build_mermaid(build_dependency_graph(load_project(tmp_path)), title="demo")

    assert first == second


def test_write_mermaid_replaces_file_without_leftovers(tmp_path: Path) -> None:
    output = tmp_path / "out.mmd"
    output.write_text("old", encoding="utf-8")

    write_mermaid("graph TD", output)

    assert output.read_text(encoding="utf-8") == "graph TD"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["out.mmd"]


def test_write_mermaid_failure_keeps_previous_file(tmp_path: Path, monkeypatch) -> None:
    output = tmp_path / "out.mmd"
    output.write_text("old", encoding="utf-8")

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", failing_replace)

    with pytest.raises(OSError, match="disk full"):
        write_mermaid("graph TD", output)

    assert output.read_text(encoding="utf-8") == "old"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["out.mmd"]
