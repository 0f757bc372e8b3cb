"""Graph model for layout requests."""

from multilayout.parser.model import Edge, LayoutGraph, Node, Position, Size

__all__ = ["Edge", "LayoutGraph", "Node", "Position", "Size"]
