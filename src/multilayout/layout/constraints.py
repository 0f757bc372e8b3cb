"""Constraint generation and the stress-majorization solver behind it.

Positions here are node centres. Two constraint shapes cover every
family:

- directed separations along one axis (``right - left >= gap``, or
  ``== gap`` for equalities), used for alignment, ordering, flow and
  user constraints;
- non-overlap pairs with a gap on both axes, resolved along the axis of
  least penetration unless an equality pins that axis, used for
  separation and group constraints.

Projection is Jacobi style: corrections from all violated constraints
are averaged per node, which keeps it vectorized and stable.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any

import networkx as nx
import numpy as np

from multilayout.layout.errors import LayoutError, LayoutErrorType
from multilayout.layout.layers import break_cycles
from multilayout.layout.metrics import build_digraph
from multilayout.parser.model import Edge, Node

logger = logging.getLogger(__name__)

AXES = {"x": 0, "y": 1}
CUSTOM_TYPES = ("alignment", "separation", "ordering")
CUSTOM_DEFAULT_GAPS = {"alignment": 0.0, "separation": 50.0, "ordering": 10.0}


@dataclass(frozen=True)
class CustomConstraint:
    """A caller-supplied constraint over named nodes.

    ``alignment`` puts all nodes on one line along ``axis``;
    ``separation`` and ``ordering`` keep consecutive nodes at least
    ``gap`` apart in the listed order (exactly ``gap`` with ``equality``).
    """

    type: str
    nodes: tuple[str, ...]
    axis: str = "x"
    gap: float | None = None
    equality: bool = False

    @classmethod
    def from_value(cls, value: CustomConstraint | Mapping[str, Any]) -> CustomConstraint:
        if isinstance(value, CustomConstraint):
            return value
        try:
            return cls(
                type=value["type"],
                nodes=tuple(value["nodes"]),
                axis=value.get("axis", "x"),
                gap=value.get("gap"),
                equality=bool(value.get("equality", False)),
            )
        except (KeyError, TypeError) as e:
            raise LayoutError(
                f"Malformed custom constraint {value!r}: {e}",
                LayoutErrorType.CONFIGURATION_ERROR,
            ) from e


@dataclass
class ConstraintSet:
    """Index-based constraints ready for vectorized projection."""

    axis: list[int] = field(default_factory=list)
    left: list[int] = field(default_factory=list)
    right: list[int] = field(default_factory=list)
    gap: list[float] = field(default_factory=list)
    equality: list[bool] = field(default_factory=list)
    slack: list[float] = field(default_factory=list)
    overlap_i: list[np.ndarray] = field(default_factory=list)
    overlap_j: list[np.ndarray] = field(default_factory=list)
    overlap_gx: list[np.ndarray] = field(default_factory=list)
    overlap_gy: list[np.ndarray] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)

    def add_separation(
        self,
        axis: int,
        left: int,
        right: int,
        gap: float,
        equality: bool = False,
        slack: float = 0.0,
    ) -> None:
        self.axis.append(axis)
        self.left.append(left)
        self.right.append(right)
        self.gap.append(gap)
        self.equality.append(equality)
        self.slack.append(slack)

    def add_non_overlap(
        self, i: np.ndarray, j: np.ndarray, gap_x: np.ndarray, gap_y: np.ndarray
    ) -> None:
        self.overlap_i.append(i)
        self.overlap_j.append(j)
        self.overlap_gx.append(gap_x)
        self.overlap_gy.append(gap_y)

    def count(self, family: str, amount: int) -> None:
        self.counts[family] = self.counts.get(family, 0) + amount

    def freeze(self) -> FrozenConstraints:
        def cat(parts: list[np.ndarray], dtype) -> np.ndarray:
            return np.concatenate(parts).astype(dtype) if parts else np.zeros(0, dtype=dtype)

        axis = np.array(self.axis, dtype=int)
        left = np.array(self.left, dtype=int)
        right = np.array(self.right, dtype=int)
        equality = np.array(self.equality, dtype=bool)
        overlap_i = cat(self.overlap_i, int)
        overlap_j = cat(self.overlap_j, int)

        pinned = []
        for k in (0, 1):
            sel = equality & (axis == k)
            roots = _equality_roots(left[sel], right[sel], overlap_i, overlap_j)
            pinned.append(roots[overlap_i] == roots[overlap_j])

        return FrozenConstraints(
            axis=axis,
            left=left,
            right=right,
            gap=np.array(self.gap, dtype=float),
            equality=equality,
            slack=np.array(self.slack, dtype=float),
            overlap_i=overlap_i,
            overlap_j=overlap_j,
            overlap_gx=cat(self.overlap_gx, float),
            overlap_gy=cat(self.overlap_gy, float),
            overlap_pinned_x=pinned[0],
            overlap_pinned_y=pinned[1],
        )


def _equality_roots(
    left: np.ndarray, right: np.ndarray, i: np.ndarray, j: np.ndarray
) -> np.ndarray:
    """Component id per node index for nodes joined by equality constraints."""
    size = int(max([0, *(a.max() + 1 for a in (left, right, i, j) if len(a))]))
    parent = list(range(size))

    def find(a: int) -> int:
        while parent[a] != a:
            parent[a] = parent[parent[a]]
            a = parent[a]
        return a

    for a, b in zip(left.tolist(), right.tolist()):
        parent[find(a)] = find(b)
    return np.array([find(a) for a in range(size)], dtype=int)


@dataclass(frozen=True)
class FrozenConstraints:
    """Constraint arrays for projection.

    A non-overlap pair is pinned on an axis when an equality constraint
    chain fixes the pair's offset on that axis; such pairs only separate
    along the other axis.
    """

    axis: np.ndarray
    left: np.ndarray
    right: np.ndarray
    gap: np.ndarray
    equality: np.ndarray
    slack: np.ndarray
    overlap_i: np.ndarray
    overlap_j: np.ndarray
    overlap_gx: np.ndarray
    overlap_gy: np.ndarray
    overlap_pinned_x: np.ndarray
    overlap_pinned_y: np.ndarray


def generate_constraints(
    nodes: Sequence[Node], edges: Sequence[Edge], cfg: Mapping[str, Any]
) -> ConstraintSet:
    """Build every enabled constraint family for ``nodes``."""
    index = {n.id: i for i, n in enumerate(nodes)}
    widths = np.array([n.size.width for n in nodes], dtype=float)
    heights = np.array([n.size.height for n in nodes], dtype=float)
    cs = ConstraintSet()

    group_cfg = cfg["group_constraints"]
    if group_cfg["enabled"]:
        members: dict[str, list[int]] = {}
        for i, node in enumerate(nodes):
            if node.group is not None:
                members.setdefault(node.group, []).append(i)
        for ids in members.values():
            if len(ids) < 2:
                continue
            i, j = (np.array(side) for side in zip(*combinations(ids, 2)))
            pad = group_cfg["padding"]
            cs.add_non_overlap(
                i, j, (widths[i] + widths[j]) / 2 + pad, (heights[i] + heights[j]) / 2 + pad
            )
            cs.count("group", len(i))

    align_cfg = cfg["alignment_constraints"]
    if align_cfg["enabled"]:
        by_type: dict[str, list[int]] = {}
        for i, node in enumerate(nodes):
            if node.type is not None:
                by_type.setdefault(node.type, []).append(i)
        for ids in by_type.values():
            if len(ids) < 3:
                continue
            for other in ids[1:]:
                cs.add_separation(1, ids[0], other, 0.0, True, align_cfg["tolerance"])
            cs.count("alignment", len(ids) - 1)

    sep_cfg = cfg["separation_constraints"]
    if cfg["avoid_overlaps"] and sep_cfg["enabled"] and len(nodes) > 1:
        i, j = np.triu_indices(len(nodes), k=1)
        margin = sep_cfg["min_separation"]
        cs.add_non_overlap(
            i, j, (widths[i] + widths[j]) / 2 + margin, (heights[i] + heights[j]) / 2 + margin
        )
        cs.count("separation", len(i))

    flow = cfg["flow_direction"]
    if flow is not None:
        axis = _axis(flow)
        G = build_digraph(nodes, edges)
        skip = set(break_cycles(G, "greedy"))
        sizes = widths if axis == 0 else heights
        for u, v in G.edges:
            if u == v or (u, v) in skip:
                continue
            a, b = index[u], index[v]
            cs.add_separation(axis, a, b, (sizes[a] + sizes[b]) / 2 + cfg["flow_separation"])
            cs.count("flow", 1)

    for raw in cfg["custom_constraints"]:
        _add_custom(cs, CustomConstraint.from_value(raw), index)

    logger.debug("Generated constraints: %s", cs.counts)
    return cs


def _axis(name: str) -> int:
    if name not in AXES:
        raise LayoutError(
            f"Invalid axis {name!r}; expected 'x' or 'y'",
            LayoutErrorType.CONFIGURATION_ERROR,
        )
    return AXES[name]


def _add_custom(cs: ConstraintSet, c: CustomConstraint, index: Mapping[str, int]) -> None:
    if c.type not in CUSTOM_TYPES:
        raise LayoutError(
            f"Unknown constraint type {c.type!r}",
            LayoutErrorType.CONFIGURATION_ERROR,
        )
    missing = [nid for nid in c.nodes if nid not in index]
    if missing:
        raise LayoutError(
            f"Constraint references unknown nodes: {', '.join(missing)}",
            LayoutErrorType.CONFIGURATION_ERROR,
        )
    axis = _axis(c.axis)
    ids = [index[nid] for nid in c.nodes]
    gap = CUSTOM_DEFAULT_GAPS[c.type] if c.gap is None else float(c.gap)
    if c.type == "alignment":
        for other in ids[1:]:
            cs.add_separation(axis, ids[0], other, 0.0, True)
    else:
        for a, b in zip(ids, ids[1:]):
            cs.add_separation(axis, a, b, gap, c.equality)
    cs.count("custom", max(len(ids) - 1, 0))


def ideal_distances(
    nodes: Sequence[Node], edges: Sequence[Edge], link_distance: float, mode: str
) -> np.ndarray:
    """All-pairs target distances from weighted shortest paths.

    ``jaccard`` lengthens links between nodes with few shared neighbours.
    Disconnected pairs get a distance past the farthest connected pair.
    """
    G = nx.Graph()
    G.add_nodes_from(n.id for n in nodes)
    neighbours: dict[str, set[str]] = {n.id: set() for n in nodes}
    pairs = [(e.source, e.target) for e in edges
             if e.source in neighbours and e.target in neighbours and e.source != e.target]
    for u, v in pairs:
        neighbours[u].add(v)
        neighbours[v].add(u)
    for u, v in pairs:
        length = link_distance
        if mode == "jaccard":
            union = neighbours[u] | neighbours[v]
            shared = neighbours[u] & neighbours[v]
            length = link_distance * (1 + (1 - len(shared) / len(union)))
        G.add_edge(u, v, length=length)

    D = nx.floyd_warshall_numpy(G, nodelist=[n.id for n in nodes], weight="length")
    D = np.asarray(D, dtype=float)
    finite = np.isfinite(D)
    reach = D[finite].max() if finite.any() else 0.0
    D[~finite] = max(reach, link_distance) + link_distance
    np.fill_diagonal(D, 0.0)
    return D


class StressSolver:
    """Localized stress majorization with constraint projection.

    ``mobility`` is 1 for free nodes and 0 for locked ones; locked nodes
    never move during a stress step or projection.
    """

    def __init__(
        self,
        x: np.ndarray,
        y: np.ndarray,
        distances: np.ndarray,
        weights: np.ndarray,
        mobility: np.ndarray,
        constraints: FrozenConstraints,
        bounds: tuple[float, float, float, float] | None = None,
    ) -> None:
        self.x = x
        self.y = y
        self.D = distances
        self.W = weights
        self.mobility = mobility
        self.c = constraints
        self.bounds = bounds

    def stress(self) -> float:
        dist = np.hypot(self.x[:, None] - self.x[None, :], self.y[:, None] - self.y[None, :])
        return float(np.triu(self.W * (dist - self.D) ** 2, k=1).sum())

    def stress_step(self) -> None:
        """One Jacobi majorization update of every free node."""
        dx = self.x[:, None] - self.x[None, :]
        dy = self.y[:, None] - self.y[None, :]
        dist = np.hypot(dx, dy)
        np.fill_diagonal(dist, 1.0)
        dist = np.maximum(dist, 1e-9)
        scale = self.W * self.D / dist
        total = self.W.sum(axis=1)
        ok = (total > 0) & (self.mobility > 0)
        nx_ = ((self.W * self.x[None, :]).sum(axis=1) + (scale * dx).sum(axis=1))
        ny_ = ((self.W * self.y[None, :]).sum(axis=1) + (scale * dy).sum(axis=1))
        self.x[ok] = nx_[ok] / total[ok]
        self.y[ok] = ny_[ok] / total[ok]

    def project(self) -> float:
        """One projection pass; returns the largest correction applied.

        Non-overlap goes first so separations and equalities have the last
        word on every pass.
        """
        moved = self._project_non_overlap()
        moved = max(moved, self._project_separations())
        if self.bounds is not None:
            bx, by, bw, bh = self.bounds
            free = self.mobility > 0
            self.x[free] = np.clip(self.x[free], bx, bx + bw)
            self.y[free] = np.clip(self.y[free], by, by + bh)
        return moved

    def residual(self) -> float:
        """Largest remaining violation over every constraint."""
        c = self.c
        worst = 0.0
        for axis, pos in ((0, self.x), (1, self.y)):
            sel = c.axis == axis
            if not sel.any():
                continue
            delta = pos[c.right[sel]] - pos[c.left[sel]] - c.gap[sel]
            eq = c.equality[sel]
            excess = np.where(eq, np.abs(delta) - c.slack[sel], -delta)
            worst = max(worst, float(excess.max()))
        if len(c.overlap_i):
            ox = c.overlap_gx - np.abs(self.x[c.overlap_j] - self.x[c.overlap_i])
            oy = c.overlap_gy - np.abs(self.y[c.overlap_j] - self.y[c.overlap_i])
            hit = (ox > 0) & (oy > 0)
            if hit.any():
                worst = max(worst, float(np.minimum(ox, oy)[hit].max()))
        return max(worst, 0.0)

    def _project_separations(self) -> float:
        c = self.c
        if not len(c.left):
            return 0.0
        moved = 0.0
        for axis, pos in ((0, self.x), (1, self.y)):
            sel = c.axis == axis
            if not sel.any():
                continue
            left, right = c.left[sel], c.right[sel]
            delta = pos[right] - pos[left] - c.gap[sel]
            violated = np.where(c.equality[sel], np.abs(delta) > c.slack[sel], delta < 0)
            moved = max(moved, self._apply(pos, left, right, np.where(violated, delta, 0.0)))
        return moved

    def _project_non_overlap(self) -> float:
        c = self.c
        if not len(c.overlap_i):
            return 0.0
        i, j = c.overlap_i, c.overlap_j
        dx = self.x[j] - self.x[i]
        dy = self.y[j] - self.y[i]
        ox = c.overlap_gx - np.abs(dx)
        oy = c.overlap_gy - np.abs(dy)
        hit = (ox > 0) & (oy > 0)
        if not hit.any():
            return 0.0
        pin_x, pin_y = c.overlap_pinned_x, c.overlap_pinned_y
        along_x = hit & ~pin_x & ((ox <= oy) | pin_y)
        along_y = hit & ~pin_y & ~along_x
        # Coincident pairs separate towards +axis for the higher index
        sx = np.where(dx >= 0, 1.0, -1.0)
        sy = np.where(dy >= 0, 1.0, -1.0)
        moved_x = self._apply(self.x, i, j, np.where(along_x, -sx * ox, 0.0))
        moved_y = self._apply(self.y, i, j, np.where(along_y, -sy * oy, 0.0))
        return max(moved_x, moved_y)

    def _apply(
        self, pos: np.ndarray, left: np.ndarray, right: np.ndarray, delta: np.ndarray
    ) -> float:
        """Close ``delta`` (= current - target of ``right - left``), split by mobility."""
        active = delta != 0
        if not active.any():
            return 0.0
        left, right, delta = left[active], right[active], delta[active]
        ml = self.mobility[left]
        mr = self.mobility[right]
        total = ml + mr
        movable = total > 0
        left, right, delta = left[movable], right[movable], delta[movable]
        share_l = ml[movable] / total[movable]
        share_r = mr[movable] / total[movable]

        n = len(pos)
        shift = np.zeros(n)
        hits = np.zeros(n)
        np.add.at(shift, left, delta * share_l)
        np.subtract.at(shift, right, delta * share_r)
        np.add.at(hits, left, share_l > 0)
        np.add.at(hits, right, share_r > 0)
        touched = hits > 0
        shift[touched] /= hits[touched]
        pos += shift
        return float(np.abs(shift).max()) if n else 0.0
