"""Layout validator: programmatic checks for layout defects.

Runs a suite of checks against positioned nodes and returns a scored
ValidationResult. Errors carry a severity; the layout is valid as long
as none of them is critical. Warnings and suggestions never affect
validity.
"""

from __future__ import annotations

import logging
import math
import statistics
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np

from multilayout.layout.constants import (
    MAX_COORDINATE,
    MAX_EDGE_CROSSINGS,
    MAX_LAYER_WIDTH,
    MAX_LAYOUT_HEIGHT,
    MAX_LAYOUT_WIDTH,
    MAX_VALIDATED_NODES,
    MIN_SAFE_DISTANCE,
    TOLERANCE_THRESHOLD,
)
from multilayout.layout.quality import count_crossings, space_utilization
from multilayout.parser.model import LayoutGraph, Node, Position

logger = logging.getLogger(__name__)


class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class ValidationError:
    type: str
    message: str
    node_ids: list[str]
    severity: Severity
    fixable: bool = True


@dataclass
class ValidationWarning:
    type: str
    message: str
    node_ids: list[str] = field(default_factory=list)
    impact: Severity = Severity.LOW


@dataclass
class LayoutSuggestion:
    type: str
    title: str
    description: str
    estimated_improvement: float
    auto_applicable: bool = False


@dataclass
class ValidationMetrics:
    dependency_compliance: float = 1.0
    coordinate_validity: float = 1.0
    spacing_compliance: float = 1.0
    layout_efficiency: float = 1.0
    visual_quality: float = 1.0
    space_utilization: float = 0.0
    layer_balance: float = 1.0
    edge_crossings: int | None = 0


@dataclass
class ValidationResult:
    is_valid: bool
    score: float
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)
    suggestions: list[LayoutSuggestion] = field(default_factory=list)
    metrics: ValidationMetrics = field(default_factory=ValidationMetrics)

    def errors_of(self, severity: Severity) -> list[ValidationError]:
        return [e for e in self.errors if e.severity == severity]


@dataclass
class ValidationOptions:
    strict_dependency_checking: bool = True
    allow_minor_overlaps: bool = False
    tolerance_threshold: float = TOLERANCE_THRESHOLD
    min_safe_distance: float = MIN_SAFE_DISTANCE
    max_coordinate: float = MAX_COORDINATE
    max_width: float = MAX_LAYOUT_WIDTH
    max_height: float = MAX_LAYOUT_HEIGHT
    max_nodes: int = MAX_VALIDATED_NODES
    max_edge_crossings: int = MAX_EDGE_CROSSINGS
    max_layer_width: int = MAX_LAYER_WIDTH
    flow_axis: str = "x"
    flow_reversed: bool = False


PositionInput = Iterable[Node] | Mapping[str, Position | tuple[float, float]]


def validate_layout(
    graph: LayoutGraph,
    layers: Sequence[Sequence[str]] | None,
    positioned_nodes: PositionInput,
    options: ValidationOptions | None = None,
) -> ValidationResult:
    """Run all layout checks and return the scored result."""
    opts = options or ValidationOptions()
    positions = _normalize_positions(positioned_nodes)
    layers = [list(layer) for layer in (layers or []) if layer]

    dependency = check_dependency_flow(
        graph, positions, opts.strict_dependency_checking, opts.flow_axis,
        opts.flow_reversed,
    )
    coordinates = check_coordinates(graph, positions, opts.max_coordinate)
    spacing = check_spacing(
        graph, positions, opts.min_safe_distance, opts.tolerance_threshold,
        opts.allow_minor_overlaps,
    )
    bounds = check_bounds(graph, positions, opts.max_width, opts.max_height)
    errors = dependency + coordinates + spacing + bounds

    placed = _placed_nodes(graph, positions)
    utilization = space_utilization(placed)
    balance = layer_balance(layers)
    crossings = count_crossings(placed, graph.edges)

    warnings = _collect_warnings(graph, layers, opts, utilization, balance, crossings)
    suggestions = _suggest(dependency, spacing, warnings, utilization)

    n = len(graph.nodes)
    edge_total = sum(1 for e in graph.edges if e.source != e.target) or 1
    pair_total = n * (n - 1) // 2 or 1
    metrics = ValidationMetrics(
        dependency_compliance=max(0.0, 1 - len(dependency) / edge_total),
        coordinate_validity=max(0.0, 1 - len({i for e in coordinates for i in e.node_ids}) / max(n, 1)),
        spacing_compliance=max(0.0, 1 - len(spacing) / pair_total),
        layout_efficiency=(utilization + balance) / 2,
        visual_quality=max(
            0.0,
            1 - min(1.0, (crossings or 0) / 20) - min(0.5, len(warnings) / 10),
        ),
        space_utilization=utilization,
        layer_balance=balance,
        edge_crossings=crossings,
    )
    score = (
        0.3 * metrics.dependency_compliance
        + 0.2 * metrics.coordinate_validity
        + 0.2 * metrics.spacing_compliance
        + 0.15 * metrics.layout_efficiency
        + 0.15 * metrics.visual_quality
    )
    is_valid = not any(e.severity == Severity.CRITICAL for e in errors)
    logger.debug(
        "Validated %d nodes: score=%.3f errors=%d warnings=%d",
        n, score, len(errors), len(warnings),
    )
    return ValidationResult(
        is_valid=is_valid,
        score=score,
        errors=errors,
        warnings=warnings,
        suggestions=suggestions,
        metrics=metrics,
    )


def _normalize_positions(positioned: PositionInput) -> dict[str, tuple[float, float]]:
    if isinstance(positioned, Mapping):
        result = {}
        for nid, pos in positioned.items():
            if isinstance(pos, Position):
                result[nid] = (pos.x, pos.y)
            else:
                result[nid] = (float(pos[0]), float(pos[1]))
        return result
    return {n.id: (n.position.x, n.position.y) for n in positioned}


def _finite(pos: tuple[float, float]) -> bool:
    return math.isfinite(pos[0]) and math.isfinite(pos[1])


def _placed_nodes(
    graph: LayoutGraph, positions: Mapping[str, tuple[float, float]]
) -> list[Node]:
    return [
        replace(node, position=Position(*positions[node.id]))
        for node in graph.nodes
        if node.id in positions and _finite(positions[node.id])
    ]


def check_dependency_flow(
    graph: LayoutGraph,
    positions: Mapping[str, tuple[float, float]],
    strict: bool = True,
    axis: str = "x",
    reverse: bool = False,
) -> list[ValidationError]:
    """Every edge's source must lie strictly before its target on ``axis``.

    With ``reverse`` the flow runs towards decreasing coordinates.
    """
    errors: list[ValidationError] = []
    k = 0 if axis == "x" else 1
    against = "<=" if reverse else ">="
    for edge in graph.edges:
        if edge.source == edge.target:
            continue
        missing = [nid for nid in (edge.source, edge.target) if nid not in positions]
        if missing:
            errors.append(
                ValidationError(
                    type="missing_position",
                    message=f"Edge {edge.id!r} endpoint(s) without position: {', '.join(missing)}",
                    node_ids=missing,
                    severity=Severity.CRITICAL,
                    fixable=False,
                )
            )
            continue
        src = positions[edge.source][k]
        tgt = positions[edge.target][k]
        if not (src > tgt if reverse else src < tgt):
            errors.append(
                ValidationError(
                    type="dependency_violation",
                    message=(
                        f"Dependency {edge.source} -> {edge.target} flows backwards "
                        f"on {axis} ({src:.1f} {against} {tgt:.1f})"
                    ),
                    node_ids=[edge.source, edge.target],
                    severity=Severity.CRITICAL if strict else Severity.HIGH,
                )
            )
    return errors


def check_coordinates(
    graph: LayoutGraph,
    positions: Mapping[str, tuple[float, float]],
    max_coordinate: float = MAX_COORDINATE,
) -> list[ValidationError]:
    """Flag non-finite, negative and implausibly large coordinates."""
    errors: list[ValidationError] = []
    for node in graph.nodes:
        if node.id not in positions:
            continue
        x, y = positions[node.id]
        if not _finite((x, y)):
            errors.append(
                ValidationError(
                    type="invalid_coordinates",
                    message=f"Node {node.id!r} has non-finite position ({x}, {y})",
                    node_ids=[node.id],
                    severity=Severity.CRITICAL,
                )
            )
        elif x < 0 or y < 0:
            errors.append(
                ValidationError(
                    type="negative_coordinates",
                    message=f"Node {node.id!r} has negative position ({x:.1f}, {y:.1f})",
                    node_ids=[node.id],
                    severity=Severity.HIGH,
                )
            )
        elif x > max_coordinate or y > max_coordinate:
            errors.append(
                ValidationError(
                    type="extreme_coordinates",
                    message=f"Node {node.id!r} is very far out ({x:.1f}, {y:.1f})",
                    node_ids=[node.id],
                    severity=Severity.MEDIUM,
                )
            )
    return errors


def check_spacing(
    graph: LayoutGraph,
    positions: Mapping[str, tuple[float, float]],
    min_distance: float = MIN_SAFE_DISTANCE,
    tolerance: float = TOLERANCE_THRESHOLD,
    allow_minor_overlaps: bool = False,
) -> list[ValidationError]:
    """Node anchors closer than ``min_distance - tolerance`` are too close.

    Pairs under half the threshold are critical. With
    ``allow_minor_overlaps`` only those critical pairs are reported.
    """
    ids = [n.id for n in graph.nodes if n.id in positions and _finite(positions[n.id])]
    if len(ids) < 2:
        return []
    pts = np.array([positions[nid] for nid in ids], dtype=float)
    threshold = min_distance - tolerance
    i, j = np.triu_indices(len(ids), k=1)
    dist = np.hypot(pts[j, 0] - pts[i, 0], pts[j, 1] - pts[i, 1])
    close = np.flatnonzero(dist < threshold)

    errors: list[ValidationError] = []
    for k in close:
        a, b, d = ids[i[k]], ids[j[k]], float(dist[k])
        critical = d < threshold / 2
        if allow_minor_overlaps and not critical:
            continue
        errors.append(
            ValidationError(
                type="spacing_violation",
                message=f"Nodes {a!r} and {b!r} are {d:.1f} apart (minimum {threshold:.1f})",
                node_ids=[a, b],
                severity=Severity.CRITICAL if critical else Severity.HIGH,
            )
        )
    return errors


def check_bounds(
    graph: LayoutGraph,
    positions: Mapping[str, tuple[float, float]],
    max_width: float = MAX_LAYOUT_WIDTH,
    max_height: float = MAX_LAYOUT_HEIGHT,
) -> list[ValidationError]:
    """The layout's anchor bounding box must fit ``max_width`` x ``max_height``."""
    pts = [positions[n.id] for n in graph.nodes if n.id in positions and _finite(positions[n.id])]
    if not pts:
        return []
    width = max(p[0] for p in pts) - min(p[0] for p in pts)
    height = max(p[1] for p in pts) - min(p[1] for p in pts)
    if width > max_width or height > max_height:
        return [
            ValidationError(
                type="layout_bounds",
                message=(
                    f"Layout spans {width:.0f} x {height:.0f}, "
                    f"beyond {max_width:.0f} x {max_height:.0f}"
                ),
                node_ids=[],
                severity=Severity.MEDIUM,
            )
        ]
    return []


def layer_balance(layers: Sequence[Sequence[str]]) -> float:
    """1 minus the coefficient of variation of layer widths, floored at 0."""
    widths = [len(layer) for layer in layers if layer]
    if len(widths) < 2:
        return 1.0
    mean = statistics.fmean(widths)
    return max(0.0, 1 - statistics.pstdev(widths) / mean)


def _collect_warnings(
    graph: LayoutGraph,
    layers: list[list[str]],
    opts: ValidationOptions,
    utilization: float,
    balance: float,
    crossings: int | None,
) -> list[ValidationWarning]:
    warnings: list[ValidationWarning] = []
    if graph.nodes and utilization < 0.5:
        warnings.append(
            ValidationWarning(
                type="space_utilization",
                message=f"Only {utilization:.0%} of the layout area is covered by nodes",
                impact=Severity.LOW,
            )
        )
    if balance < 0.6:
        warnings.append(
            ValidationWarning(
                type="layer_balance",
                message=f"Layer widths are unbalanced (balance {balance:.2f})",
                impact=Severity.MEDIUM,
            )
        )
    for idx, layer in enumerate(layers):
        if len(layer) > opts.max_layer_width:
            warnings.append(
                ValidationWarning(
                    type="layer_width",
                    message=(
                        f"Layer {idx} holds {len(layer)} nodes "
                        f"(more than {opts.max_layer_width})"
                    ),
                    node_ids=list(layer),
                    impact=Severity.MEDIUM,
                )
            )
    if len(graph.nodes) > opts.max_nodes:
        warnings.append(
            ValidationWarning(
                type="large_graph",
                message=f"{len(graph.nodes)} nodes may be hard to read in one view",
                impact=Severity.MEDIUM,
            )
        )
    if crossings is not None and crossings > opts.max_edge_crossings:
        warnings.append(
            ValidationWarning(
                type="edge_crossings",
                message=f"{crossings} edge crossings reduce readability",
                impact=Severity.HIGH,
            )
        )
    return warnings


def _suggest(
    dependency: list[ValidationError],
    spacing: list[ValidationError],
    warnings: list[ValidationWarning],
    utilization: float,
) -> list[LayoutSuggestion]:
    suggestions: list[LayoutSuggestion] = []
    kinds = {w.type for w in warnings}
    if any(e.type == "dependency_violation" for e in dependency):
        suggestions.append(
            LayoutSuggestion(
                type="algorithm",
                title="Fix Dependency Flow",
                description="Use a layered algorithm so every dependency points forward",
                estimated_improvement=0.8,
                auto_applicable=True,
            )
        )
    if spacing:
        suggestions.append(
            LayoutSuggestion(
                type="spacing",
                title="Improve Node Spacing",
                description="Increase node separation or enable overlap avoidance",
                estimated_improvement=0.6,
                auto_applicable=True,
            )
        )
    if "edge_crossings" in kinds:
        suggestions.append(
            LayoutSuggestion(
                type="optimization",
                title="Minimize Edge Crossings",
                description="Enable crossing reduction or switch to a hierarchical layout",
                estimated_improvement=0.5,
            )
        )
    if "layer_balance" in kinds or "layer_width" in kinds:
        suggestions.append(
            LayoutSuggestion(
                type="optimization",
                title="Balance Layer Distribution",
                description="Cap nodes per layer to spread wide layers",
                estimated_improvement=0.3,
            )
        )
    if utilization < 0.4:
        suggestions.append(
            LayoutSuggestion(
                type="configuration",
                title="Reduce Spacing",
                description="Lower rank and node separation to use space better",
                estimated_improvement=0.2,
                auto_applicable=True,
            )
        )
    elif utilization > 0.9:
        suggestions.append(
            LayoutSuggestion(
                type="configuration",
                title="Increase Spacing",
                description="Raise node separation to give the layout room",
                estimated_improvement=0.4,
                auto_applicable=True,
            )
        )
    return suggestions
