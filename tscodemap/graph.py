from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Set

from tree_sitter import Node

from .errors import ExtractionFailure
from .identity import IdentityRegistry, node_id
from .project import Project, SourceFile
from .resolver import (
    CLASS_DECLARATIONS,
    FUNCTION_DECLARATIONS,
    FUNCTION_EXPRESSIONS,
    FUNCTION_SIGNATURES,
    Declaration,
    Resolver,
    ScopeResolver,
    name_value,
    pattern_names,
    string_value,
)

__all__ = [
    "NodeKind",
    "Relation",
    "GraphNode",
    "GraphEdge",
    "DependencyGraph",
    "GraphConfig",
    "build_dependency_graph",
    "display_kind",
]

logger = logging.getLogger(__name__)

NodeKind = Literal["class", "function", "const", "let", "var", "other_var", "import", "module"]
Relation = Literal["extends", "uses", "imported_from"]

DECLARED_KINDS = ("class", "function", "const", "let", "var", "other_var")


@dataclass(frozen=True)
class GraphNode:
    """A vertex: a declaration, an imported name, or a module."""

    id: str
    kind: NodeKind


@dataclass(frozen=True, order=True)
class GraphEdge:
    """A directed, labelled relation between two node ids."""

    src: str
    dst: str
    relation: Relation


@dataclass
class DependencyGraph:
    """
    Nodes keyed by id plus a set of relation triples.

    Node ids are unique by name: registering an id twice keeps the first kind,
    except that an ``import`` node gives way to a declared kind.
    """

    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    edges: Set[GraphEdge] = field(default_factory=set)

    def add_node(self, node_id: str, kind: NodeKind) -> GraphNode:
        existing = self.nodes.get(node_id)
        if existing is None or (existing.kind == "import" and kind in DECLARED_KINDS):
            existing = GraphNode(id=node_id, kind=kind)
            self.nodes[node_id] = existing
        return existing

    def add_edge(self, src: str, dst: str, relation: Relation) -> bool:
        """Insert an edge between registered nodes; self-loops are dropped."""
        if src == dst:
            return False
        for endpoint in (src, dst):
            if endpoint not in self.nodes:
                raise ValueError(f"Edge endpoint {endpoint!r} is not a node")
        edge = GraphEdge(src=src, dst=dst, relation=relation)
        if edge in self.edges:
            return False
        self.edges.add(edge)
        return True

    def merge(self, other: "DependencyGraph") -> None:
        for node in other.nodes.values():
            self.add_node(node.id, node.kind)
        self.edges.update(other.edges)

    def iter_edges(self) -> List[GraphEdge]:
        return sorted(self.edges)


@dataclass
class GraphConfig:
    """
    Configuration controlling how the graph is extracted.

    Parameters
    ----------
    include_imports:
        If True, run the import pass (import -> module edges).
    track_initializers:
        If True, top-level variables declared by a plain ``const`` / ``let``
        / ``var`` statement also get ``uses`` edges to the declarations
        their initializer references. Without it only destructured names
        get ``uses`` edges and statement variables are bare nodes.
    keep_going:
        If True, a file whose extraction fails is logged and skipped instead
        of aborting the run. Results from other files are kept.
    """

    include_imports: bool = True
    track_initializers: bool = True
    keep_going: bool = False


def build_dependency_graph(
    project: Project,
    config: Optional[GraphConfig] = None,
    resolver: Optional[Resolver] = None,
) -> DependencyGraph:
    """
    Build a `DependencyGraph` from a loaded `Project`.

    Files are visited in project order. Each file runs the class, function,
    variable and import passes, in that order, into a staging graph that is
    merged once the file completes, so the result only depends on the
    project's content.
    """
    if config is None:
        config = GraphConfig()
    if resolver is None:
        resolver = ScopeResolver(project)

    graph = DependencyGraph()
    names = IdentityRegistry()

    for source in project.files:
        logger.debug("Extracting %s", source.path.as_posix())
        checkpoint = names.checkpoint()
        staging = DependencyGraph()
        try:
            _FileExtractor(source, resolver, names, staging, config).run()
        except Exception as exc:
            if not config.keep_going:
                if isinstance(exc, ExtractionFailure):
                    raise
                raise ExtractionFailure(f"Failed to extract {source.path.as_posix()}: {exc}") from exc
            names.rollback(checkpoint)
            logger.warning("Skipping %s: %s", source.path.as_posix(), exc)
            continue
        graph.merge(staging)

    logger.debug("Graph has %d nodes and %d edges", len(graph.nodes), len(graph.edges))
    return graph


def display_kind(declaration: Declaration) -> NodeKind:
    """Kind tag shown for a declaration's node."""
    if declaration.kind in ("class", "function"):
        return declaration.kind
    if declaration.kind == "variable" and declaration.keyword in ("const", "let", "var"):
        return declaration.keyword
    return "other_var"


# ---------------------------------------------------------------------------
# Per-file extraction
# ---------------------------------------------------------------------------

@dataclass
class _TopLevel:
    classes: List[Node] = field(default_factory=list)
    functions: List[Node] = field(default_factory=list)
    variables: List[Node] = field(default_factory=list)  # variable_declarator nodes
    imports: List[Node] = field(default_factory=list)


class _FileExtractor:
    """Runs the extraction passes for one source file."""

    def __init__(
        self,
        source: SourceFile,
        resolver: Resolver,
        names: IdentityRegistry,
        graph: DependencyGraph,
        config: GraphConfig,
    ) -> None:
        self.source = source
        self.resolver = resolver
        self.names = names
        self.graph = graph
        self.config = config

    def run(self) -> None:
        top = _collect_top_level(self.source.root_node)
        self.extract_classes(top.classes)
        self.extract_functions(top.functions)
        self.extract_variables(top.variables)
        if self.config.include_imports:
            self.extract_imports(top.imports)

    # --- passes ----------------------------------------------------------

    def extract_classes(self, classes: List[Node]) -> None:
        for node in classes:
            decl = self._declaration(node)
            class_id = self._add_declaration(decl)

            base = self.resolver.resolve_base_class(self.source, node)
            if base is not None:
                base_id = self.names.id_of(base)
                self.graph.add_node(base_id, "class")
                self.graph.add_edge(class_id, base_id, "extends")

    def extract_functions(self, functions: List[Node]) -> None:
        for node in functions:
            decl = self._declaration(node)
            func_id = self._add_declaration(decl)
            self._add_uses(func_id, node)

    def extract_variables(self, declarators: List[Node]) -> None:
        for declarator in declarators:
            name = declarator.child_by_field_name("name")
            if name is None:
                continue

            if name.type == "identifier":
                decl = self._declaration(declarator)
                var_id = self._add_declaration(decl)
                if self.config.track_initializers:
                    self._add_uses(var_id, declarator)
                continue

            # Destructuring: each bound name uses what the declarator references.
            targets = self.resolver.usages(self.source, declarator)
            for ident in pattern_names(name):
                binding = self._declaration(ident)
                binding_id = self.names.id_of(binding)
                for target in targets:
                    target_id = self.names.id_of(target)
                    if target_id == binding_id:
                        continue
                    self.graph.add_node(target_id, display_kind(target))
                    self.graph.add_node(binding_id, "other_var")
                    self.graph.add_edge(binding_id, target_id, "uses")

    def extract_imports(self, statements: List[Node]) -> None:
        for stmt in statements:
            specifier_node = stmt.child_by_field_name("source")
            if specifier_node is None:
                continue
            module_id = string_value(self.source, specifier_node).replace("@", "")
            for imported in _named_imports(self.source, stmt):
                import_id = node_id(imported)
                self.graph.add_node(import_id, "import")
                self.graph.add_node(module_id, "module")
                self.graph.add_edge(import_id, module_id, "imported_from")

    # --- helpers ---------------------------------------------------------

    def _declaration(self, node: Node) -> Declaration:
        decl = self.resolver.declaration_at(self.source, node)
        if decl is None:
            raise ExtractionFailure(
                f"No declaration recorded for {node.type} at "
                f"{self.source.path.as_posix()}:{node.start_point[0] + 1}"
            )
        return decl

    def _add_declaration(self, decl: Declaration) -> str:
        decl_id = self.names.id_of(decl)
        self.graph.add_node(decl_id, display_kind(decl))
        return decl_id

    def _add_uses(self, owner_id: str, scope: Node) -> None:
        for target in self.resolver.usages(self.source, scope):
            target_id = self.names.id_of(target)
            if target_id == owner_id:
                continue
            self.graph.add_node(target_id, display_kind(target))
            self.graph.add_edge(owner_id, target_id, "uses")


def _collect_top_level(root: Node) -> _TopLevel:
    top = _TopLevel()
    statements = list(_iter_top_level(root))
    # overload heads are dropped when the implementation is in the same file
    implemented = {
        _field_text(stmt, "name") for stmt in statements if stmt.type in FUNCTION_DECLARATIONS
    }
    for stmt in statements:
        t = stmt.type
        if t in CLASS_DECLARATIONS or t == "class":
            top.classes.append(stmt)
        elif t in FUNCTION_DECLARATIONS or t in FUNCTION_EXPRESSIONS:
            top.functions.append(stmt)
        elif t in FUNCTION_SIGNATURES:
            if _field_text(stmt, "name") not in implemented:
                top.functions.append(stmt)
        elif t in ("lexical_declaration", "variable_declaration"):
            top.variables.extend(c for c in stmt.named_children if c.type == "variable_declarator")
        elif t == "import_statement":
            top.imports.append(stmt)
    return top


def _iter_top_level(root: Node):
    """Top-level statements, looking through ``export`` and ``declare``."""
    stack: List[Node] = list(reversed(root.named_children))
    while stack:
        node = stack.pop()
        if node.type == "export_statement":
            inner = node.child_by_field_name("declaration") or node.child_by_field_name("value")
            if inner is not None:
                stack.append(inner)
        elif node.type == "ambient_declaration":
            stack.extend(reversed(node.named_children))
        else:
            yield node


def _field_text(node: Node, field_name: str) -> Optional[bytes]:
    child = node.child_by_field_name(field_name)
    return child.text if child is not None else None


def _named_imports(source: SourceFile, stmt: Node) -> List[str]:
    names: List[str] = []
    for clause in stmt.named_children:
        if clause.type != "import_clause":
            continue
        for part in clause.named_children:
            if part.type != "named_imports":
                continue
            for spec in part.named_children:
                if spec.type != "import_specifier":
                    continue
                name = spec.child_by_field_name("name")
                if name is not None:
                    names.append(name_value(source, name))
    return names

