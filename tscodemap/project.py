from __future__ import annotations

import fnmatch
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from .errors import ConfigurationInvalid, ConfigurationMissing, ExtractionFailure

__all__ = [
    "ProjectConfig",
    "SourceFile",
    "Project",
    "load_project",
    "parse_source",
]

logger = logging.getLogger(__name__)

TS_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts")
JS_EXTENSIONS = (".js", ".jsx", ".mjs", ".cjs")
DEFAULT_EXCLUDE = ("node_modules", "bower_components", "jspm_packages")

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_WILDCARDS = ("*", "?", "[")

_PARSERS: Dict[str, Parser] = {}


@dataclass
class ProjectConfig:
    """
    Configuration for the project loader.

    config_name:
        File name of the compiler configuration inside the project root.
    follow_symlinks:
        If False, symlinked source files are skipped.
    extra_exclude:
        Glob patterns excluded on top of the configuration's own ``exclude``.
    """

    config_name: str = "tsconfig.json"
    follow_symlinks: bool = False
    extra_exclude: Sequence[str] = ()


@dataclass
class SourceFile:
    """A parsed source file. ``path`` is relative to the project root."""

    path: Path
    source: bytes
    tree: Tree

    @property
    def root_node(self) -> Node:
        return self.tree.root_node

    def text(self, node: Node) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8")


@dataclass
class Project:
    """The set of source files in scope for one ``tsconfig.json``."""

    root: Path
    config_path: Path
    files: List[SourceFile]
    compiler_options: Dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.root.name


def load_project(root: Path, config: Optional[ProjectConfig] = None) -> Project:
    """
    Load every source file listed by the project's ``tsconfig.json``.

    1. Locate and read the configuration (comments and trailing commas are
       accepted, as the TypeScript compiler does).
    2. Expand ``files`` and ``include`` minus ``exclude`` into source paths.
    3. Parse each file with the tree-sitter TypeScript (or TSX) grammar.

    Raises
    ------
    ConfigurationMissing
        ``root`` is not a directory or has no configuration file.
    ConfigurationInvalid
        The configuration file is not valid JSON(C).
    ExtractionFailure
        A source file could not be read or decoded.
    """
    if config is None:
        config = ProjectConfig()

    root = Path(root).resolve()
    config_path = root / config.config_name
    if not root.is_dir() or not config_path.is_file():
        raise ConfigurationMissing(f"{config.config_name} not found in {root}")

    settings = _read_config(config_path)
    compiler_options = settings.get("compilerOptions") or {}

    files: List[SourceFile] = []
    for path in _iter_source_paths(root, settings, compiler_options, config):
        rel = path.relative_to(root)
        try:
            source = path.read_bytes()
            source.decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ExtractionFailure(f"Cannot read {rel.as_posix()}: {exc}") from exc
        files.append(parse_source(rel, source))

    logger.debug("Loaded %d source files from %s", len(files), config_path)
    return Project(
        root=root,
        config_path=config_path,
        files=files,
        compiler_options=compiler_options,
    )


def parse_source(path: Path, source: bytes) -> SourceFile:
    """Parse ``source`` with the grammar matching the extension of ``path``."""
    grammar = "tsx" if path.suffix in (".tsx", ".jsx") else "typescript"
    tree = _get_parser(grammar).parse(source)
    if tree.root_node.has_error:
        logger.warning("Syntax errors in %s; extracting what could be parsed", path.as_posix())
    return SourceFile(path=path, source=source, tree=tree)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _get_parser(grammar: str) -> Parser:
    parser = _PARSERS.get(grammar)
    if parser is None:
        if grammar == "tsx":
            language = Language(tree_sitter_typescript.language_tsx())
        else:
            language = Language(tree_sitter_typescript.language_typescript())
        parser = Parser(language)
        _PARSERS[grammar] = parser
    return parser


def _read_config(config_path: Path) -> Dict[str, Any]:
    try:
        text = config_path.read_text(encoding="utf-8")
        data = json.loads(_strip_jsonc(text)) if text.strip() else {}
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationInvalid(f"Cannot parse {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationInvalid(f"Cannot parse {config_path}: expected a JSON object")

    options = data.get("compilerOptions")
    if options is not None and not isinstance(options, dict):
        raise ConfigurationInvalid(f"Invalid {config_path}: 'compilerOptions' must be an object")
    out_dir = (options or {}).get("outDir")
    if out_dir is not None and not isinstance(out_dir, str):
        raise ConfigurationInvalid(f"Invalid {config_path}: 'compilerOptions.outDir' must be a string")
    for key in ("files", "include", "exclude"):
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigurationInvalid(f"Invalid {config_path}: '{key}' must be a list of strings")
    return data


def _strip_jsonc(text: str) -> str:
    """Drop ``//`` and ``/* */`` comments and trailing commas outside strings."""
    out: List[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
    return _TRAILING_COMMA.sub(r"\1", "".join(out))


def _iter_source_paths(
    root: Path,
    settings: Dict[str, Any],
    compiler_options: Dict[str, Any],
    config: ProjectConfig,
) -> List[Path]:
    extensions = TS_EXTENSIONS
    if compiler_options.get("allowJs"):
        extensions = TS_EXTENSIONS + JS_EXTENSIONS

    excludes = [*DEFAULT_EXCLUDE, *settings.get("exclude", ()), *config.extra_exclude]
    out_dir = compiler_options.get("outDir")
    if out_dir:
        excludes.append(out_dir)
    excludes = [_normalize_pattern(p) for p in excludes]

    found: Dict[str, Path] = {}

    for entry in settings.get("files", ()):
        path = root / entry
        if path.is_file():
            found[path.relative_to(root).as_posix()] = path
        else:
            logger.warning("File listed in configuration does not exist: %s", entry)

    include = settings.get("include")
    if include is None:
        include = () if "files" in settings else ("**/*",)

    for pattern in include:
        for path in _glob(root, _normalize_pattern(pattern)):
            rel = path.relative_to(root).as_posix()
            if rel in found or not path.name.endswith(extensions):
                continue
            if not config.follow_symlinks and path.is_symlink():
                continue
            if _is_excluded(rel, excludes):
                continue
            found[rel] = path

    return [found[rel] for rel in sorted(found)]


def _normalize_pattern(pattern: str) -> str:
    pattern = pattern.replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern.rstrip("/")


def _glob(root: Path, pattern: str) -> Iterable[Path]:
    if not pattern or pattern == ".":
        pattern = "**/*"
    if Path(pattern).is_absolute():
        logger.warning("Ignoring absolute include pattern: %s", pattern)
        return []
    if not any(w in pattern for w in _WILDCARDS) and (root / pattern).is_dir():
        pattern = f"{pattern}/**/*"
    return [p for p in root.glob(pattern) if p.is_file()]


def _is_excluded(rel: str, excludes: Sequence[str]) -> bool:
    if "node_modules" in rel.split("/"):
        return True
    for pattern in excludes:
        if not pattern:
            continue
        if fnmatch.fnmatchcase(rel, pattern) or rel.startswith(pattern + "/"):
            return True
        # a wildcard pattern may name a directory
        has_wildcard = any(w in pattern for w in _WILDCARDS)
        if has_wildcard and fnmatch.fnmatchcase(rel, pattern + "/*"):
            return True
        # "**/" may also match zero directories
        if pattern.startswith("**/"):
            rest = pattern[3:]
            if fnmatch.fnmatchcase(rel, rest) or fnmatch.fnmatchcase(rel, rest + "/*"):
                return True
    return False
