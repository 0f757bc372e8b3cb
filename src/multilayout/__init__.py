"""multilayout: multi-algorithm graph layout with automatic algorithm selection."""

__version__ = "0.1.0"

from multilayout.layout.engine import LayoutEngine, create_layout_engine
from multilayout.layout.errors import LayoutError, LayoutErrorType
from multilayout.layout.validator import validate_layout
from multilayout.parser.model import Edge, LayoutGraph, Node, Position, Size

__all__ = [
    "__version__",
    "Edge",
    "LayoutEngine",
    "LayoutError",
    "LayoutErrorType",
    "LayoutGraph",
    "Node",
    "Position",
    "Size",
    "create_layout_engine",
    "validate_layout",
]
