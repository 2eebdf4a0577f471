from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Literal, Optional, Protocol, Set, Tuple

from tree_sitter import Node

from .project import Project, SourceFile

__all__ = [
    "DeclarationKind",
    "Declaration",
    "Resolver",
    "ScopeResolver",
    "RELEVANT_KINDS",
    "base_class_expression",
    "pattern_names",
    "string_value",
    "name_value",
]

DeclarationKind = Literal[
    "class",
    "function",
    "variable",
    "binding",
    "parameter",
    "import",
    "interface",
    "type",
    "enum",
    "namespace",
    "type_parameter",
]

RELEVANT_KINDS = ("class", "function", "variable")
TYPE_MEANING_KINDS = ("class", "interface", "type", "enum", "namespace", "import", "type_parameter")
TYPE_ONLY_KINDS = ("interface", "type", "type_parameter")

USAGE_TYPES = ("identifier", "type_identifier", "shorthand_property_identifier")

CLASS_DECLARATIONS = ("class_declaration", "abstract_class_declaration")
FUNCTION_DECLARATIONS = ("function_declaration", "generator_function_declaration")
# bodiless `declare function` and overload heads
FUNCTION_SIGNATURES = ("function_signature",)
FUNCTION_EXPRESSIONS = ("function_expression", "function", "generator_function")
BLOCK_SCOPES = ("statement_block", "switch_body", "for_statement", "for_in_statement", "catch_clause")
MODULE_STATEMENTS = ("import_statement", "export_statement")

# Probe order when a relative specifier has no usable extension.
_MODULE_SUFFIXES = (".ts", ".tsx", ".d.ts", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")
_JS_TO_TS = {".js": (".ts", ".tsx", ".d.ts"), ".jsx": (".tsx",), ".mjs": (".mts",), ".cjs": (".cts",)}

NodeKey = Tuple[int, int, str]


@dataclass(frozen=True)
class Declaration:
    """
    A binding site found in a source file.

    Two declarations are equal when they come from the same syntax node of the
    same file, so they can be used as dict keys and deduplicated in sets.

    - `kind`     : what the binding introduces (class, function, variable, ...)
    - `name`     : bound name; None for anonymous classes / functions
    - `file`     : path of the declaring file, relative to the project root
    - `keyword`  : `const` / `let` / `var` for variables and bindings, if any
    - `module`   : module specifier, for imports
    - `imported` : exported name an import refers to (`default`, `*`, or a name)
    """

    kind: DeclarationKind
    name: Optional[str]
    file: Path
    start_byte: int
    end_byte: int
    keyword: Optional[str] = None
    module: Optional[str] = None
    imported: Optional[str] = None
    node: Optional[Node] = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> Tuple[Path, int, int, str]:
        return (self.file, self.start_byte, self.end_byte, self.kind)


class Resolver(Protocol):
    """What the graph builder needs from a language-analysis engine."""

    def resolve(self, source: SourceFile, use_site: Node) -> List[Declaration]:
        ...

    def declaration_at(self, source: SourceFile, node: Node) -> Optional[Declaration]:
        ...

    def usages(self, source: SourceFile, scope: Node) -> List[Declaration]:
        ...

    def resolve_base_class(self, source: SourceFile, class_node: Node) -> Optional[Declaration]:
        ...


@dataclass
class _FileScopes:
    bindings: Dict[NodeKey, Dict[str, List[Declaration]]]
    by_node: Dict[NodeKey, Declaration]
    is_script: bool


class ScopeResolver:
    """
    Lexical-scope symbol resolver over tree-sitter syntax trees.

    Scopes are built lazily, once per file. A use-site resolves to the
    declarations bound under its name in the nearest enclosing scope; when no
    scope of the file binds it, top-level declarations of script files (files
    without import/export) are tried as project globals.
    """

    def __init__(self, project: Project) -> None:
        self.project = project
        self._files: Dict[Path, SourceFile] = {f.path: f for f in project.files}
        self._scopes: Dict[Path, _FileScopes] = {}
        self._globals: Optional[Dict[str, List[Declaration]]] = None

    # --- declarations ----------------------------------------------------

    def declaration_at(self, source: SourceFile, node: Node) -> Optional[Declaration]:
        """Declaration introduced by ``node`` (a class, function, declarator, ...)."""
        return self._scopes_for(source).by_node.get(_node_key(node))

    # --- resolution ------------------------------------------------------

    def resolve(self, source: SourceFile, use_site: Node) -> List[Declaration]:
        name = source.text(use_site)
        type_position = use_site.type == "type_identifier"
        scopes = self._scopes_for(source)

        node = use_site.parent
        while node is not None:
            bound = scopes.bindings.get(_node_key(node))
            if bound and name in bound:
                matches = _with_meaning(bound[name], type_position)
                if matches:
                    return matches
            node = node.parent

        return _with_meaning(self._global_bindings().get(name, []), type_position)

    def usages(self, source: SourceFile, scope: Node) -> List[Declaration]:
        """
        Resolve every identifier under ``scope``.

        Returns the distinct class / function / variable declarations found,
        in source order. Names without a declaration in the project are
        skipped. The caller filters out references back to ``scope`` itself.
        """
        seen: Set[Declaration] = set()
        found: List[Declaration] = []
        for use_site in _iter_use_sites(scope):
            for decl in self.resolve(source, use_site):
                if decl.kind not in RELEVANT_KINDS or decl in seen:
                    continue
                seen.add(decl)
                found.append(decl)
        return found

    def resolve_base_class(self, source: SourceFile, class_node: Node) -> Optional[Declaration]:
        """
        The class declaration named by the ``extends`` clause, if any.

        Only the immediate superclass is considered. Relative imports are
        followed into other project files; bases from outside the project, or
        expressions other than a plain name, give None.
        """
        expr = base_class_expression(class_node)
        if expr is None or expr.type not in ("identifier", "type_identifier"):
            return None
        return self._class_from(source, self.resolve(source, expr), seen=set())

    def module_file(self, source: SourceFile, specifier: str) -> Optional[SourceFile]:
        """Map a relative module specifier to a project file."""
        if not specifier.startswith("."):
            return None
        base = Path(os.path.normpath((source.path.parent / specifier).as_posix()))
        if base.parts and base.parts[0] == "..":
            return None

        candidates: List[Path] = []
        if base.name:
            ts_suffixes = _JS_TO_TS.get(base.suffix)
            if ts_suffixes:
                stem = base.with_suffix("")
                candidates.extend(stem.with_name(stem.name + s) for s in ts_suffixes)
            candidates.append(base)
            candidates.extend(base.with_name(base.name + s) for s in _MODULE_SUFFIXES)
        candidates.extend(base / f"index{s}" for s in _MODULE_SUFFIXES)

        for path in candidates:
            target = self._files.get(path)
            if target is not None:
                return target
        return None

    # --- private helpers ---------------------------------------------------

    def _scopes_for(self, source: SourceFile) -> _FileScopes:
        scopes = self._scopes.get(source.path)
        if scopes is None:
            scopes = _ScopeBuilder(source).build()
            self._scopes[source.path] = scopes
        return scopes

    def _global_bindings(self) -> Dict[str, List[Declaration]]:
        if self._globals is None:
            merged: Dict[str, List[Declaration]] = {}
            for source in self.project.files:
                scopes = self._scopes_for(source)
                if not scopes.is_script:
                    continue
                program = scopes.bindings.get(_node_key(source.root_node), {})
                for name, decls in program.items():
                    merged.setdefault(name, []).extend(d for d in decls if d.kind != "import")
            self._globals = merged
        return self._globals

    def _class_from(
        self,
        source: SourceFile,
        candidates: Iterable[Declaration],
        seen: Set[Tuple[Path, str]],
    ) -> Optional[Declaration]:
        for decl in candidates:
            if decl.kind == "class":
                return decl
            if decl.kind == "import" and decl.module and decl.imported not in (None, "*"):
                target = self.module_file(source, decl.module)
                if target is not None:
                    found = self._exported_class(target, decl.imported, seen)
                    if found is not None:
                        return found
        return None

    def _exported_class(
        self,
        source: SourceFile,
        name: str,
        seen: Set[Tuple[Path, str]],
    ) -> Optional[Declaration]:
        """Follow ``export`` forms in ``source`` to the class exported as ``name``."""
        if (source.path, name) in seen:
            return None
        seen.add((source.path, name))

        program = self._scopes_for(source).bindings.get(_node_key(source.root_node), {})

        def local(local_name: str) -> Optional[Declaration]:
            return self._class_from(source, program.get(local_name, []), seen)

        for stmt in source.root_node.named_children:
            if stmt.type != "export_statement":
                continue
            is_default = any(c.type == "default" for c in stmt.children)
            declaration = stmt.child_by_field_name("declaration")
            value = stmt.child_by_field_name("value")
            module = stmt.child_by_field_name("source")

            if declaration is not None:
                if declaration.type in CLASS_DECLARATIONS:
                    decl = self.declaration_at(source, declaration)
                    if decl is not None and (decl.name == name or (is_default and name == "default")):
                        return decl
                continue

            if value is not None:
                if not is_default or name != "default":
                    continue
                if value.type == "class":
                    return self.declaration_at(source, value)
                if value.type == "identifier":
                    return local(source.text(value))
                continue

            clause = next((c for c in stmt.named_children if c.type == "export_clause"), None)
            if clause is None:
                # export * from "./x"
                if module is not None and name != "default":
                    target = self.module_file(source, string_value(source, module))
                    if target is not None:
                        found = self._exported_class(target, name, seen)
                        if found is not None:
                            return found
                continue

            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                local_node = spec.child_by_field_name("name")
                alias_node = spec.child_by_field_name("alias")
                if local_node is None:
                    continue
                local_name = name_value(source, local_node)
                exported = name_value(source, alias_node) if alias_node is not None else local_name
                if exported != name:
                    continue
                if module is None:
                    return local(local_name)
                target = self.module_file(source, string_value(source, module))
                if target is not None:
                    return self._exported_class(target, local_name, seen)
        return None


# ---------------------------------------------------------------------------
# Scope construction
# ---------------------------------------------------------------------------

class _ScopeBuilder:
    """
    Walks one syntax tree and records which names each scope binds.

    Every scope is keyed by its node; ``var`` declarations go to the nearest
    function scope, everything else to the nearest block scope.
    """

    def __init__(self, source: SourceFile) -> None:
        self.source = source
        self.bindings: Dict[NodeKey, Dict[str, List[Declaration]]] = {}
        self.by_node: Dict[NodeKey, Declaration] = {}

    def build(self) -> _FileScopes:
        root = self.source.root_node
        is_script = not any(c.type in MODULE_STATEMENTS for c in root.named_children)

        # (node, block scope, function scope); iterative so deep trees are fine
        stack: List[Tuple[Node, Node, Node]] = [(root, root, root)]
        while stack:
            node, block, func = stack.pop()
            if not node.is_named:
                continue
            block, func = self._visit(node, block, func)
            for child in reversed(node.children):
                stack.append((child, block, func))

        return _FileScopes(bindings=self.bindings, by_node=self.by_node, is_script=is_script)

    def _visit(self, node: Node, block: Node, func: Node) -> Tuple[Node, Node]:
        t = node.type

        if t == "program":
            return node, node

        if t in FUNCTION_DECLARATIONS or t in FUNCTION_SIGNATURES:
            decl = self._record(node, "function", self._name_of(node))
            if decl.name:
                self._bind(block, decl.name, decl)
            self._bind_parameters(node)
            return node, node

        if t in FUNCTION_EXPRESSIONS or t in ("arrow_function", "method_definition"):
            if t in FUNCTION_EXPRESSIONS:
                decl = self._record(node, "function", self._name_of(node))
                if decl.name:
                    self._bind(node, decl.name, decl)
            self._bind_parameters(node)
            return node, node

        if t in CLASS_DECLARATIONS:
            decl = self._record(node, "class", self._name_of(node))
            if decl.name:
                self._bind(block, decl.name, decl)
            return node, func

        if t == "class":
            decl = self._record(node, "class", self._name_of(node))
            if decl.name:
                self._bind(node, decl.name, decl)
            return node, func

        if t == "lexical_declaration":
            kind = node.child_by_field_name("kind")
            if kind is None and node.children:
                kind = node.children[0]
            keyword = kind.type if kind is not None else None
            if keyword not in ("const", "let"):
                keyword = None
            self._bind_declarators(node, keyword, block)
            return block, func

        if t == "variable_declaration":
            self._bind_declarators(node, "var", func)
            return block, func

        if t == "for_in_statement":
            kind = node.child_by_field_name("kind")
            left = node.child_by_field_name("left")
            if kind is not None and left is not None:
                keyword = kind.type
                self._bind_target(left, keyword, func if keyword == "var" else node)
            return node, func

        if t == "catch_clause":
            param = node.child_by_field_name("parameter")
            if param is not None:
                self._bind_target(param, None, node)
            return node, func

        if t in BLOCK_SCOPES:
            return node, func

        if t == "import_statement":
            self._bind_imports(node, block)
            return block, func

        if t == "type_parameter":
            # `<T>` belongs to the function, class, interface or alias declaring it
            owner = node.parent.parent if node.parent is not None else None
            name = node.child_by_field_name("name")
            if owner is not None and name is not None:
                decl = self._record(node, "type_parameter", self.source.text(name))
                self._bind(owner, decl.name, decl)
            return block, func

        if t == "interface_declaration":
            self._bind_named(node, "interface", block)
        elif t == "type_alias_declaration":
            self._bind_named(node, "type", block)
        elif t == "enum_declaration":
            self._bind_named(node, "enum", block)
        elif t in ("internal_module", "module"):
            self._bind_named(node, "namespace", block)

        return block, func

    # --- binding helpers -------------------------------------------------

    def _record(self, node: Node, kind: DeclarationKind, name: Optional[str], **extra) -> Declaration:
        decl = Declaration(
            kind=kind,
            name=name,
            file=self.source.path,
            start_byte=node.start_byte,
            end_byte=node.end_byte,
            node=node,
            **extra,
        )
        self.by_node[_node_key(node)] = decl
        return decl

    def _bind(self, scope: Node, name: str, decl: Declaration) -> None:
        names = self.bindings.setdefault(_node_key(scope), {})
        names.setdefault(name, []).append(decl)

    def _name_of(self, node: Node) -> Optional[str]:
        name = node.child_by_field_name("name")
        if name is None:
            return None
        return self.source.text(name)

    def _bind_named(self, node: Node, kind: DeclarationKind, scope: Node) -> None:
        name = node.child_by_field_name("name")
        if name is not None and name.type in ("identifier", "type_identifier"):
            decl = self._record(node, kind, self.source.text(name))
            self._bind(scope, decl.name, decl)

    def _bind_declarators(self, node: Node, keyword: Optional[str], scope: Node) -> None:
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            if name is None:
                continue
            if name.type == "identifier":
                decl = self._record(declarator, "variable", self.source.text(name), keyword=keyword)
                self._bind(scope, decl.name, decl)
            else:
                for ident in pattern_names(name):
                    decl = self._record(ident, "binding", self.source.text(ident), keyword=keyword)
                    self._bind(scope, decl.name, decl)

    def _bind_target(self, target: Node, keyword: Optional[str], scope: Node) -> None:
        # for-in/of heads and catch parameters
        if target.type == "identifier":
            decl = self._record(target, "variable", self.source.text(target), keyword=keyword)
            self._bind(scope, decl.name, decl)
            return
        for ident in pattern_names(target):
            decl = self._record(ident, "binding", self.source.text(ident), keyword=keyword)
            self._bind(scope, decl.name, decl)

    def _bind_parameters(self, fn: Node) -> None:
        patterns: List[Node] = []
        single = fn.child_by_field_name("parameter")
        if single is not None:
            patterns.append(single)
        params = fn.child_by_field_name("parameters")
        if params is not None:
            for child in params.named_children:
                if child.type in ("required_parameter", "optional_parameter"):
                    pattern = child.child_by_field_name("pattern")
                    if pattern is not None:
                        patterns.append(pattern)
                else:
                    patterns.append(child)
        for pattern in patterns:
            for ident in pattern_names(pattern):
                decl = self._record(ident, "parameter", self.source.text(ident))
                self._bind(fn, decl.name, decl)

    def _bind_imports(self, stmt: Node, scope: Node) -> None:
        source_node = stmt.child_by_field_name("source")
        module = string_value(self.source, source_node) if source_node is not None else None

        for child in stmt.named_children:
            if child.type == "import_require_clause":
                ident = next((c for c in child.named_children if c.type == "identifier"), None)
                spec = next((c for c in child.named_children if c.type == "string"), None)
                if ident is not None:
                    decl = self._record(
                        ident,
                        "import",
                        self.source.text(ident),
                        module=string_value(self.source, spec) if spec is not None else None,
                        imported="*",
                    )
                    self._bind(scope, decl.name, decl)
                continue
            if child.type != "import_clause":
                continue
            for part in child.named_children:
                if part.type == "identifier":
                    self._bind_import(part, part, "default", module, scope)
                elif part.type == "namespace_import":
                    ident = next((c for c in part.named_children if c.type == "identifier"), None)
                    if ident is not None:
                        self._bind_import(ident, ident, "*", module, scope)
                elif part.type == "named_imports":
                    for spec in part.named_children:
                        if spec.type != "import_specifier":
                            continue
                        name = spec.child_by_field_name("name")
                        alias = spec.child_by_field_name("alias")
                        if name is None:
                            continue
                        imported = name_value(self.source, name)
                        local = alias if alias is not None else name
                        self._bind_import(spec, local, imported, module, scope)

    def _bind_import(
        self,
        node: Node,
        local: Node,
        imported: str,
        module: Optional[str],
        scope: Node,
    ) -> None:
        decl = self._record(
            node,
            "import",
            name_value(self.source, local),
            module=module,
            imported=imported,
        )
        self._bind(scope, decl.name, decl)


# ---------------------------------------------------------------------------
# Syntax helpers
# ---------------------------------------------------------------------------

def base_class_expression(class_node: Node) -> Optional[Node]:
    """The expression after ``extends`` in a class declaration, if any."""
    for child in class_node.named_children:
        if child.type != "class_heritage":
            continue
        for clause in child.named_children:
            if clause.type == "extends_clause":
                value = clause.child_by_field_name("value")
                if value is None and clause.named_children:
                    value = clause.named_children[0]
                return value
            if clause.type != "implements_clause":
                return clause
    return None


def pattern_names(pattern: Node) -> Iterator[Node]:
    """
    Yield the identifier nodes a binding pattern introduces.

    Default values (``{a = b}``) and property keys are not bindings.
    """
    stack = [pattern]
    while stack:
        node = stack.pop()
        t = node.type
        if t in ("identifier", "shorthand_property_identifier_pattern"):
            yield node
        elif t in ("object_pattern", "array_pattern"):
            stack.extend(reversed(node.named_children))
        elif t == "pair_pattern":
            value = node.child_by_field_name("value")
            if value is not None:
                stack.append(value)
        elif t in ("assignment_pattern", "object_assignment_pattern"):
            left = node.child_by_field_name("left")
            if left is not None:
                stack.append(left)
        elif t == "rest_pattern":
            stack.extend(reversed(node.named_children))


def _iter_use_sites(scope: Node) -> Iterator[Node]:
    stack = [scope]
    while stack:
        node = stack.pop()
        if node.type in USAGE_TYPES:
            parent = node.parent
            # the member part of `ns.Type` is not a scope lookup
            if not (node.type == "type_identifier" and parent is not None and parent.type == "nested_type_identifier"):
                yield node
        stack.extend(reversed(node.children))


def _with_meaning(decls: List[Declaration], type_position: bool) -> List[Declaration]:
    if type_position:
        return [d for d in decls if d.kind in TYPE_MEANING_KINDS]
    return [d for d in decls if d.kind not in TYPE_ONLY_KINDS]


def _node_key(node: Node) -> NodeKey:
    return (node.start_byte, node.end_byte, node.type)


def string_value(source: SourceFile, node: Node) -> str:
    text = source.text(node)
    if len(text) >= 2 and text[0] in "'\"" and text[-1] == text[0]:
        return text[1:-1]
    return text


def name_value(source: SourceFile, node: Node) -> str:
    if node.type == "string":
        return string_value(source, node)
    return source.text(node)
