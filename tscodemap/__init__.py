
from .errors import (
    CodemapError,
    ConfigurationMissing,
    ConfigurationInvalid,
    ExtractionFailure,
)

from .project import ProjectConfig, SourceFile, Project, load_project

from .resolver import Declaration, Resolver, ScopeResolver

from .identity import NodeName, IdentityRegistry, node_name, node_id

from .graph import (
    GraphConfig,
    GraphNode,
    GraphEdge,
    DependencyGraph,
    build_dependency_graph,
)

from .renderer import RendererConfig, build_mermaid, write_mermaid

__all__ = [
    "CodemapError",
    "ConfigurationMissing",
    "ConfigurationInvalid",
    "ExtractionFailure",
    "ProjectConfig",
    "SourceFile",
    "Project",
    "load_project",
    "Declaration",
    "Resolver",
    "ScopeResolver",
    "NodeName",
    "IdentityRegistry",
    "node_name",
    "node_id",
    "GraphConfig",
    "GraphNode",
    "GraphEdge",
    "DependencyGraph",
    "build_dependency_graph",
    "RendererConfig",
    "build_mermaid",
    "write_mermaid",
]

__version__ = "0.1.0"
