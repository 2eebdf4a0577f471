from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from .resolver import Declaration

__all__ = ["ID_PREFIX", "NodeName", "node_name", "node_id", "IdentityRegistry"]

ID_PREFIX = "X_"


@dataclass(frozen=True)
class NodeName:
    """A canonical name plus the counter value to use for the next lookup."""

    name: str
    counter: int


def node_name(declaration: Declaration, counter: int) -> NodeName:
    """
    Name ``declaration``, synthesizing a placeholder when it has none.

    The counter advances only when a name is synthesized: an anonymous class
    looked up with counter 3 becomes ``nn_class_3`` and hands back 4, while a
    named one hands back 3 unchanged.
    """
    kind = declaration.kind
    if kind in ("class", "function"):
        if declaration.name:
            return NodeName(declaration.name, counter)
        return NodeName(f"nn_{kind}_{counter}", counter + 1)
    if kind in ("variable", "binding"):
        return NodeName(declaration.name or "", counter)
    return NodeName(f"node_{counter}", counter + 1)


def node_id(name: str) -> str:
    return f"{ID_PREFIX}{name}"


class IdentityRegistry:
    """
    Threads the synthetic-name counter through one traversal.

    Synthesized names are remembered per declaration, so looking the same
    declaration up twice never consumes a second number.
    """

    def __init__(self, counter: int = 0) -> None:
        self.counter = counter
        self._synthesized: Dict[Tuple, str] = {}

    def name_of(self, declaration: Declaration) -> str:
        cached = self._synthesized.get(declaration.key)
        if cached is not None:
            return cached
        result = node_name(declaration, self.counter)
        if result.counter != self.counter:
            self._synthesized[declaration.key] = result.name
        self.counter = result.counter
        return result.name

    def id_of(self, declaration: Declaration) -> str:
        return node_id(self.name_of(declaration))

    def checkpoint(self) -> Tuple[int, Dict[Tuple, str]]:
        return self.counter, dict(self._synthesized)

    def rollback(self, checkpoint: Tuple[int, Dict[Tuple, str]]) -> None:
        self.counter, synthesized = checkpoint
        self._synthesized = dict(synthesized)
