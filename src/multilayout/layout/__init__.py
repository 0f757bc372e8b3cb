"""Layout algorithms, selection, the engine and validation."""

from multilayout.layout.constraint_based import ConstraintBasedLayout
from multilayout.layout.engine import EngineConfig, LayoutEngine, create_layout_engine
from multilayout.layout.force_directed import ForceDirectedLayout
from multilayout.layout.hierarchical import HierarchicalLayout
from multilayout.layout.metrics import analyze_graph
from multilayout.layout.selector import AlgorithmSelectionCriteria, AlgorithmSelector
from multilayout.layout.validator import ValidationOptions, validate_layout

__all__ = [
    "AlgorithmSelectionCriteria",
    "AlgorithmSelector",
    "ConstraintBasedLayout",
    "EngineConfig",
    "ForceDirectedLayout",
    "HierarchicalLayout",
    "LayoutEngine",
    "ValidationOptions",
    "analyze_graph",
    "create_layout_engine",
    "validate_layout",
]
