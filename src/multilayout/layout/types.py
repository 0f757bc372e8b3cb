"""Result and metric types shared by the layout algorithms."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from multilayout.parser.model import Node


@dataclass(frozen=True)
class GraphMetrics:
    """Structural summary of one graph, recomputed for every request."""

    node_count: int
    edge_count: int
    density: float
    group_count: int
    avg_group_size: float
    max_group_size: int
    average_connectivity: float
    max_connectivity: int
    has_circular_dependencies: bool
    diameter: int
    clustering_coefficient: float
    is_directed: bool
    strongly_connected_components: int

    @property
    def edge_node_ratio(self) -> float:
        return self.edge_count / self.node_count if self.node_count else 0.0


@dataclass
class LayoutDimensions:
    width: float = 0.0
    height: float = 0.0
    aspect_ratio: float = 1.0


@dataclass
class GroupInfo:
    total_groups: int = 0
    largest_group: int = 0
    average_group_size: float = 0.0


@dataclass
class CycleInfo:
    cycles_detected: int = 0
    cycles_broken: int = 0
    cycle_breaking_strategy: str = "none"


@dataclass
class LayoutMetadata:
    algorithm: str
    processed_nodes: int = 0
    processed_edges: int = 0
    layout_dimensions: LayoutDimensions = field(default_factory=LayoutDimensions)
    total_layers: int | None = None
    group_info: GroupInfo = field(default_factory=GroupInfo)
    cycle_info: CycleInfo | None = None
    # Node ids per layer, for algorithms that layer the graph
    layers: list[list[str]] | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PerformanceMetrics:
    total_time: float = 0.0
    phase_timings: dict[str, float] = field(default_factory=dict)
    performance_rating: int = 5
    meets_thresholds: bool = True
    memory_usage: float | None = None


@dataclass
class QualityMeasures:
    """Per-aspect quality scores on a 0-100 scale."""

    dependency_compliance: float = 0.0
    visual_clarity: float = 0.0
    space_utilization: float = 0.0
    group_organization: float = 0.0
    edge_crossings: float = 0.0
    node_overlaps: float = 0.0

    def items(self) -> list[tuple[str, float]]:
        return [
            ("dependency_compliance", self.dependency_compliance),
            ("visual_clarity", self.visual_clarity),
            ("space_utilization", self.space_utilization),
            ("group_organization", self.group_organization),
            ("edge_crossings", self.edge_crossings),
            ("node_overlaps", self.node_overlaps),
        ]


@dataclass
class QualityMetrics:
    overall_score: float = 0.0
    measures: QualityMeasures = field(default_factory=QualityMeasures)
    improvement_areas: list[str] = field(default_factory=list)


@dataclass
class LayoutResult:
    """Positioned nodes plus everything known about how they were placed."""

    nodes: list[Node]
    metadata: LayoutMetadata
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    quality: QualityMetrics = field(default_factory=QualityMetrics)
    recommendations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def positions(self) -> dict[str, tuple[float, float]]:
        return {n.id: (n.position.x, n.position.y) for n in self.nodes}
