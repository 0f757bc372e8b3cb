"""Structural checks shared by the algorithms and the validator.

A node occupies the box ``[x, x + width] x [y, y + height]`` anchored at
its position. Edges are straight segments between box centres.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence

import numpy as np

from multilayout.layout.constants import (
    IMPROVEMENT_THRESHOLD,
    MAX_CROSSING_EDGES,
    QUALITY_WEIGHTS,
)
from multilayout.layout.types import (
    GroupInfo,
    LayoutDimensions,
    PerformanceMetrics,
    QualityMeasures,
    QualityMetrics,
)
from multilayout.parser.model import Edge, Node

logger = logging.getLogger(__name__)

_BLOCK = 256


def _boxes(nodes: Sequence[Node]) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    x = np.array([n.position.x for n in nodes], dtype=float)
    y = np.array([n.position.y for n in nodes], dtype=float)
    w = np.array([n.size.width for n in nodes], dtype=float)
    h = np.array([n.size.height for n in nodes], dtype=float)
    return x, y, w, h


def bounding_box(nodes: Sequence[Node]) -> tuple[float, float, float, float]:
    """Return (min_x, min_y, max_x, max_y) over all node boxes."""
    if not nodes:
        return 0.0, 0.0, 0.0, 0.0
    x, y, w, h = _boxes(nodes)
    return (
        float(x.min()),
        float(y.min()),
        float((x + w).max()),
        float((y + h).max()),
    )


def layout_dimensions(nodes: Sequence[Node]) -> LayoutDimensions:
    min_x, min_y, max_x, max_y = bounding_box(nodes)
    width = max_x - min_x
    height = max_y - min_y
    return LayoutDimensions(
        width=width,
        height=height,
        aspect_ratio=width / height if height > 0 else 1.0,
    )


def group_info(nodes: Sequence[Node]) -> GroupInfo:
    sizes = Counter(n.group for n in nodes if n.group is not None)
    if not sizes:
        return GroupInfo()
    return GroupInfo(
        total_groups=len(sizes),
        largest_group=max(sizes.values()),
        average_group_size=sum(sizes.values()) / len(sizes),
    )


def count_overlaps(nodes: Sequence[Node]) -> int:
    """Number of node pairs whose boxes intersect with positive area."""
    n = len(nodes)
    if n < 2:
        return 0
    x, y, w, h = _boxes(nodes)
    total = 0
    for start in range(0, n, _BLOCK):
        stop = min(n, start + _BLOCK)
        rows = slice(start, stop)
        ox = np.minimum(x[rows, None] + w[rows, None], x[None, :] + w[None, :]) - np.maximum(
            x[rows, None], x[None, :]
        )
        oy = np.minimum(y[rows, None] + h[rows, None], y[None, :] + h[None, :]) - np.maximum(
            y[rows, None], y[None, :]
        )
        hit = (ox > 0) & (oy > 0)
        # Upper triangle only: each pair once, no self pairs
        cols = np.arange(n)[None, :]
        hit &= cols > np.arange(start, stop)[:, None]
        total += int(hit.sum())
    return total


def count_crossings(nodes: Sequence[Node], edges: Sequence[Edge]) -> int | None:
    """Number of proper crossings between straight edges.

    Edges sharing an endpoint never cross. Returns None when the graph
    has too many edges for the pairwise check.
    """
    index = {n.id: i for i, n in enumerate(nodes)}
    segs = [(index[e.source], index[e.target]) for e in edges
            if e.source in index and e.target in index and e.source != e.target]
    m = len(segs)
    if m < 2:
        return 0
    if m > MAX_CROSSING_EDGES:
        logger.debug("Skipping crossing count for %d edges", m)
        return None

    x, y, w, h = _boxes(nodes)
    cx = x + w / 2
    cy = y + h / 2
    src = np.array([s for s, _ in segs])
    dst = np.array([t for _, t in segs])
    ax, ay, bx, by = cx[src], cy[src], cx[dst], cy[dst]

    def orient(px, py, qx, qy, rx, ry):
        return np.sign((qx - px) * (ry - py) - (qy - py) * (rx - px))

    total = 0
    for start in range(0, m, _BLOCK):
        stop = min(m, start + _BLOCK)
        r = slice(start, stop)
        a_x, a_y = ax[r, None], ay[r, None]
        b_x, b_y = bx[r, None], by[r, None]
        o1 = orient(a_x, a_y, b_x, b_y, ax[None, :], ay[None, :])
        o2 = orient(a_x, a_y, b_x, b_y, bx[None, :], by[None, :])
        o3 = orient(ax[None, :], ay[None, :], bx[None, :], by[None, :], a_x, a_y)
        o4 = orient(ax[None, :], ay[None, :], bx[None, :], by[None, :], b_x, b_y)
        cross = (o1 * o2 < 0) & (o3 * o4 < 0)
        s_r, d_r = src[r, None], dst[r, None]
        shared = (
            (s_r == src[None, :]) | (s_r == dst[None, :])
            | (d_r == src[None, :]) | (d_r == dst[None, :])
        )
        upper = np.arange(m)[None, :] > np.arange(start, stop)[:, None]
        total += int((cross & ~shared & upper).sum())
    return total


def forward_ratio(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    axis: str = "x",
    reverse: bool = False,
) -> float:
    """Fraction of edges whose source lies strictly before its target on ``axis``.

    With ``reverse`` the flow runs towards decreasing coordinates.
    """
    sign = -1.0 if reverse else 1.0
    pos = {n.id: sign * getattr(n.position, axis) for n in nodes}
    relevant = [e for e in edges if e.source in pos and e.target in pos and e.source != e.target]
    if not relevant:
        return 1.0
    forward = sum(1 for e in relevant if pos[e.source] < pos[e.target])
    return forward / len(relevant)


def space_utilization(nodes: Sequence[Node]) -> float:
    """Summed node area over bounding-box area, capped at 1."""
    if not nodes:
        return 0.0
    min_x, min_y, max_x, max_y = bounding_box(nodes)
    area = (max_x - min_x) * (max_y - min_y)
    if area <= 0:
        return 0.0
    used = sum(n.size.width * n.size.height for n in nodes)
    return min(1.0, used / area)


def score_quality(
    baseline: QualityMeasures,
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    flow_axis: str | None = None,
    flow_reversed: bool = False,
) -> QualityMetrics:
    """Adjust an algorithm's baseline measures by structural checks.

    Overlapping boxes lower ``node_overlaps``, crossings lower
    ``edge_crossings`` and ``visual_clarity``, and for algorithms with a
    flow axis the share of backward edges lowers ``dependency_compliance``.
    """
    n = max(len(nodes), 1)
    m = max(len(edges), 1)

    overlaps = count_overlaps(nodes)
    overlap_penalty = min(1.0, overlaps / n)

    crossings = count_crossings(nodes, edges)
    crossing_penalty = 0.0 if crossings is None else min(1.0, crossings / m)

    compliance = baseline.dependency_compliance
    if flow_axis is not None:
        compliance *= forward_ratio(nodes, edges, flow_axis, flow_reversed)

    measures = QualityMeasures(
        dependency_compliance=compliance,
        visual_clarity=baseline.visual_clarity * (1 - 0.25 * crossing_penalty - 0.25 * overlap_penalty),
        space_utilization=baseline.space_utilization,
        group_organization=baseline.group_organization,
        edge_crossings=baseline.edge_crossings * (1 - 0.5 * crossing_penalty),
        node_overlaps=baseline.node_overlaps * (1 - overlap_penalty),
    )
    overall = sum(QUALITY_WEIGHTS[name] * value for name, value in measures.items())
    return QualityMetrics(
        overall_score=round(overall, 1),
        measures=measures,
        improvement_areas=[name for name, value in measures.items() if value < IMPROVEMENT_THRESHOLD],
    )


def rate_performance(
    total_time: float,
    phase_timings: dict[str, float],
    thresholds: tuple[float, float, float, float],
) -> PerformanceMetrics:
    """Rate a run 1-5 against per-algorithm time thresholds (ms).

    The last threshold is the budget the run must meet.
    """
    rating = 1
    for score, limit in zip((5, 4, 3, 2), thresholds):
        if total_time < limit:
            rating = score
            break
    return PerformanceMetrics(
        total_time=total_time,
        phase_timings=dict(phase_timings),
        performance_rating=rating,
        meets_thresholds=total_time < thresholds[-1],
    )
