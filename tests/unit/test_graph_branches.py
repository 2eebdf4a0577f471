from pathlib import Path

import pytest

from tscodemap import (
    ExtractionFailure,
    GraphConfig,
    ScopeResolver,
    build_dependency_graph,
    load_project,
)
from tscodemap.graph import DependencyGraph, GraphEdge, GraphNode, display_kind
from tscodemap.resolver import Declaration


def test_add_edge_drops_self_loops() -> None:
    graph = DependencyGraph()
    graph.add_node("X_f", "function")
    assert graph.add_edge("X_f", "X_f", "uses") is False
    assert graph.edges == set()


def test_add_edge_requires_registered_endpoints() -> None:
    graph = DependencyGraph()
    graph.add_node("X_f", "function")
    with pytest.raises(ValueError, match="X_g"):
        graph.add_edge("X_f", "X_g", "uses")


def test_add_edge_ignores_duplicates() -> None:
    graph = DependencyGraph()
    graph.add_node("X_f", "function")
    graph.add_node("X_g", "function")
    assert graph.add_edge("X_f", "X_g", "uses") is True
    assert graph.add_edge("X_f", "X_g", "uses") is False
    assert graph.iter_edges() == [GraphEdge("X_f", "X_g", "uses")]


def test_import_node_gives_way_to_declared_kind() -> None:
    graph = DependencyGraph()
    graph.add_node("X_helper", "import")
    graph.add_node("X_helper", "function")
    assert graph.nodes["X_helper"] == GraphNode("X_helper", "function")

    # first declared kind wins over later ones
    graph.add_node("X_helper", "const")
    graph.add_node("X_helper", "import")
    assert graph.nodes["X_helper"].kind == "function"


def test_merge_combines_nodes_and_edges() -> None:
    left = DependencyGraph()
    left.add_node("X_a", "import")
    right = DependencyGraph()
    right.add_node("X_a", "class")
    right.add_node("X_b", "class")
    right.add_edge("X_b", "X_a", "extends")

    left.merge(right)
    assert left.nodes["X_a"].kind == "class"
    assert GraphEdge("X_b", "X_a", "extends") in left.edges


def test_display_kind_by_declaration() -> None:
    def decl(kind, keyword=None):
        return Declaration(kind=kind, name="x", file=Path("a.ts"), start_byte=0, end_byte=1, keyword=keyword)

    assert display_kind(decl("class")) == "class"
    assert display_kind(decl("function")) == "function"
    assert display_kind(decl("variable", "const")) == "const"
    assert display_kind(decl("variable", "var")) == "var"
    # destructured names are never tagged by keyword
    assert display_kind(decl("binding", "let")) == "other_var"
    assert display_kind(decl("variable")) == "other_var"


class _FailingResolver(ScopeResolver):
    """Blows up while resolving anything inside broken.ts."""

    def usages(self, source, scope):
        if source.path.name == "broken.ts":
            raise RuntimeError("resolver exploded")
        return super().usages(source, scope)


def _failing_project(tmp_path: Path):
    (tmp_path / "tsconfig.json").write_text("{}", encoding="utf-8")
    (tmp_path / "broken.ts").write_text(
        "export default class {}\nexport function oops() {\n    return 1;\n}\n",
        encoding="utf-8",
    )
    (tmp_path / "good.ts").write_text("export default class {}\n", encoding="utf-8")
    return load_project(tmp_path)


def test_extraction_failure_wraps_cause(tmp_path: Path) -> None:
    project = _failing_project(tmp_path)

    with pytest.raises(ExtractionFailure, match="broken.ts") as info:
        build_dependency_graph(project, resolver=_FailingResolver(project))

    assert isinstance(info.value.__cause__, RuntimeError)


def test_keep_going_skips_failed_file(tmp_path: Path, caplog) -> None:
    project = _failing_project(tmp_path)

    with caplog.at_level("WARNING", logger="tscodemap.graph"):
        graph = build_dependency_graph(
            project,
            GraphConfig(keep_going=True),
            resolver=_FailingResolver(project),
        )

    # the failed file's anonymous class does not use up a number
    assert set(graph.nodes) == {"X_nn_class_0"}
    assert "Skipping broken.ts" in caplog.text
