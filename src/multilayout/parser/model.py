"""Data model for layout graphs."""

from __future__ import annotations

from dataclasses import dataclass, field

from multilayout.layout.constants import DEFAULT_NODE_HEIGHT, DEFAULT_NODE_WIDTH


@dataclass
class Position:
    """Anchor point of a node in layout space."""

    x: float = 0.0
    y: float = 0.0


@dataclass
class Size:
    """Width and height of a node's box."""

    width: float = DEFAULT_NODE_WIDTH
    height: float = DEFAULT_NODE_HEIGHT


@dataclass
class Node:
    """A node to be positioned.

    ``group`` is an opaque cluster label supplied by the caller. ``type``
    is an optional category used for alignment constraints. Nodes marked
    ``fixed`` keep their position under every algorithm that honours
    fixed positions.
    """

    id: str
    position: Position = field(default_factory=Position)
    size: Size = field(default_factory=Size)
    group: str | None = None
    fixed: bool = False
    type: str | None = None
    label: str = ""

    @property
    def display_label(self) -> str:
        return self.label or self.id


@dataclass
class Edge:
    """A directed dependency edge: ``source`` must come before ``target``."""

    id: str
    source: str
    target: str
    weight: float = 1.0


@dataclass
class LayoutGraph:
    """Nodes and edges of one layout request."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    def node_map(self) -> dict[str, Node]:
        return {n.id: n for n in self.nodes}

    def add_node(self, node: Node) -> None:
        self.nodes.append(node)

    def add_edge(self, edge: Edge) -> None:
        self.edges.append(edge)

    def groups(self) -> dict[str, list[str]]:
        """Map each group label to its member node ids, in node order."""
        result: dict[str, list[str]] = {}
        for node in self.nodes:
            if node.group is not None:
                result.setdefault(node.group, []).append(node.id)
        return result
