"""Force-directed layout driven by a d3-force style particle simulation.

Every step cools ``alpha``, accumulates velocity from each force, damps
velocity and integrates. Pairwise forces (repulsion and collision) are
exact and evaluated in row blocks so memory stays linear in the node
count per block.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from multilayout.layout.base import LayoutAlgorithm, place_nodes
from multilayout.layout.constants import DEFAULT_BOUNDS, DEFAULT_SEED
from multilayout.layout.errors import LayoutError, LayoutErrorType
from multilayout.layout.types import (
    GraphMetrics,
    LayoutMetadata,
    LayoutResult,
    QualityMeasures,
)
from multilayout.parser.model import Edge, Node

logger = logging.getLogger(__name__)

INITIAL_POSITIONING = ("random", "circle", "grid", "existing")

_BLOCK = 256
_JIGGLE = 1e-6
_EXISTING_JITTER = 50.0


class Simulation:
    """Mutable particle state plus the forces acting on it.

    Positions are node anchors. ``locked`` particles take part in
    repulsion and collision but never move.
    """

    def __init__(
        self,
        x: np.ndarray,
        y: np.ndarray,
        radius: np.ndarray,
        locked: np.ndarray,
        links: tuple[np.ndarray, np.ndarray, np.ndarray],
        groups: np.ndarray,
        config: Mapping[str, Any],
        rng: np.random.Generator,
    ) -> None:
        self.x = x
        self.y = y
        self.vx = np.zeros_like(x)
        self.vy = np.zeros_like(y)
        self.radius = radius
        self.locked = locked
        self.free = ~locked
        self.src, self.dst, self.link_strength = links
        self.groups = groups
        self.config = config
        self.rng = rng
        self.alpha = 1.0
        self.iterations = 0

        n = len(x)
        degree = np.bincount(np.concatenate([self.src, self.dst]), minlength=n).astype(float)
        if len(self.src):
            self.bias = degree[self.src] / (degree[self.src] + degree[self.dst])
        else:
            self.bias = np.zeros(0)

        bx, by, bw, bh = config["bounds"] or DEFAULT_BOUNDS
        self.center = (bx + bw / 2, by + bh / 2)

    @property
    def converged(self) -> bool:
        return (
            self.iterations >= self.config["iterations"]
            or self.alpha < self.config["alpha_min"]
        )

    def step(self) -> float:
        """Advance one tick; returns the new alpha."""
        cfg = self.config
        self.alpha += (0.0 - self.alpha) * cfg["alpha_decay"]

        self._apply_links()
        self._apply_pairwise()
        if cfg["enable_group_forces"] and cfg["group_attraction"] > 0:
            self._apply_groups()

        self.vx[self.locked] = 0.0
        self.vy[self.locked] = 0.0
        keep = 1.0 - cfg["velocity_decay"]
        self.vx *= keep
        self.vy *= keep
        self.x += self.vx
        self.y += self.vy

        self._apply_center()
        if cfg["bounds"] is not None:
            self._clamp_to_bounds()

        self.iterations += 1
        return self.alpha

    def _apply_links(self) -> None:
        if not len(self.src):
            return
        s, t = self.src, self.dst
        dx = self.x[t] + self.vx[t] - self.x[s] - self.vx[s]
        dy = self.y[t] + self.vy[t] - self.y[s] - self.vy[s]
        zero = (dx == 0) & (dy == 0)
        if zero.any():
            dx[zero] = self._jiggle(int(zero.sum()))
            dy[zero] = self._jiggle(int(zero.sum()))
        length = np.hypot(dx, dy)
        k = (length - self.config["edge_length"]) / length * self.alpha * self.link_strength
        dx *= k
        dy *= k
        np.subtract.at(self.vx, t, dx * self.bias)
        np.subtract.at(self.vy, t, dy * self.bias)
        np.add.at(self.vx, s, dx * (1 - self.bias))
        np.add.at(self.vy, s, dy * (1 - self.bias))

    def _apply_pairwise(self) -> None:
        """Many-body repulsion and collision, one block of rows at a time."""
        n = len(self.x)
        if n < 2:
            return
        charge = self.config["charge_strength"] * self.alpha
        collide = self.config["collision_strength"]
        r2 = self.radius * self.radius
        ax = np.zeros(n)
        ay = np.zeros(n)
        for start in range(0, n, _BLOCK):
            stop = min(n, start + _BLOCK)
            rows = np.arange(start, stop)
            dx = self.x[None, :] - self.x[rows, None]
            dy = self.y[None, :] - self.y[rows, None]
            d2 = dx * dx + dy * dy
            same = d2 == 0
            same[rows - start, rows] = False
            if same.any():
                count = int(same.sum())
                dx[same] = self._jiggle(count)
                dy[same] = self._jiggle(count)
                d2 = dx * dx + dy * dy
            d2[rows - start, rows] = np.inf

            # Many-body: distance_min of 1 keeps the force bounded
            l2 = np.where(d2 < 1.0, np.sqrt(d2), d2)
            w = charge / l2
            ax[rows] += (dx * w).sum(axis=1)
            ay[rows] += (dy * w).sum(axis=1)

            reach = self.radius[rows, None] + self.radius[None, :]
            dist = np.sqrt(d2)
            hit = dist < reach
            if hit.any():
                ratio = r2[None, :] / (r2[rows, None] + r2[None, :])
                push = np.zeros_like(dist)
                push[hit] = (reach[hit] - dist[hit]) / dist[hit] * collide * ratio[hit]
                ax[rows] -= (dx * push).sum(axis=1)
                ay[rows] -= (dy * push).sum(axis=1)
        self.vx += ax
        self.vy += ay

    def _apply_groups(self) -> None:
        grouped = self.groups >= 0
        if not grouped.any():
            return
        g = self.groups[grouped]
        counts = np.bincount(g)
        cx = np.bincount(g, weights=self.x[grouped]) / np.maximum(counts, 1)
        cy = np.bincount(g, weights=self.y[grouped]) / np.maximum(counts, 1)
        k = self.config["group_attraction"] * self.alpha
        multi = counts[g] > 1
        idx = np.flatnonzero(grouped)[multi]
        self.vx[idx] += (cx[g[multi]] - self.x[idx]) * k
        self.vy[idx] += (cy[g[multi]] - self.y[idx]) * k

    def _apply_center(self) -> None:
        strength = self.config["center_strength"]
        if strength <= 0 or not self.free.any():
            return
        sx = (self.x.mean() - self.center[0]) * strength
        sy = (self.y.mean() - self.center[1]) * strength
        self.x[self.free] -= sx
        self.y[self.free] -= sy

    def _clamp_to_bounds(self) -> None:
        bx, by, bw, bh = self.config["bounds"]
        free = self.free
        self.x[free] = np.clip(self.x[free], bx, bx + bw)
        self.y[free] = np.clip(self.y[free], by, by + bh)

    def _jiggle(self, count: int) -> np.ndarray:
        return (self.rng.random(count) - 0.5) * _JIGGLE


def initial_positions(
    nodes: Sequence[Node],
    mode: str,
    bounds: tuple[float, float, float, float],
    spacing: float,
    rng: np.random.Generator,
) -> tuple[np.ndarray, np.ndarray]:
    """Starting anchors for every node; fixed nodes always start in place."""
    n = len(nodes)
    bx, by, bw, bh = bounds
    if mode == "circle":
        angle = 2 * math.pi * np.arange(n) / max(n, 1)
        r = min(bw, bh) / 2
        x = bx + bw / 2 + r * np.cos(angle)
        y = by + bh / 2 + r * np.sin(angle)
    elif mode == "grid":
        cols = max(1, math.ceil(math.sqrt(n)))
        step_x = max((node.size.width for node in nodes), default=0.0) + spacing
        step_y = max((node.size.height for node in nodes), default=0.0) + spacing
        idx = np.arange(n)
        x = bx + (idx % cols) * step_x
        y = by + (idx // cols) * step_y
    elif mode == "existing":
        # Nodes still at the origin start close to the centre
        x = bx + bw / 2 + (rng.random(n) - 0.5) * 2 * _EXISTING_JITTER
        y = by + bh / 2 + (rng.random(n) - 0.5) * 2 * _EXISTING_JITTER
    else:
        x = bx + rng.random(n) * bw
        y = by + rng.random(n) * bh

    if mode == "existing":
        for i, node in enumerate(nodes):
            if node.position.x != 0 or node.position.y != 0:
                x[i], y[i] = node.position.x, node.position.y

    for i, node in enumerate(nodes):
        if node.fixed:
            x[i], y[i] = node.position.x, node.position.y
    return x.astype(float), y.astype(float)


class ForceDirectedLayout(LayoutAlgorithm):
    name = "force-directed"
    display_name = "Force-Directed"
    description = (
        "Physics simulation balancing spring, repulsion, collision and group forces"
    )
    time_thresholds = (1000.0, 3000.0, 5000.0, 10000.0)
    quality_baseline = QualityMeasures(
        dependency_compliance=80.0,
        visual_clarity=85.0,
        space_utilization=70.0,
        group_organization=90.0,
        edge_crossings=70.0,
        node_overlaps=95.0,
    )

    def get_default_config(self) -> dict[str, Any]:
        return {
            "link_strength": 0.5,
            "charge_strength": -300.0,
            "center_strength": 0.1,
            "collision_radius": 1.5,
            "collision_strength": 0.7,
            "group_attraction": 0.3,
            "iterations": 300,
            "alpha_decay": 0.02,
            "alpha_min": 0.001,
            "velocity_decay": 0.4,
            "edge_length": 100.0,
            "node_spacing": 100.0,
            "enable_group_forces": True,
            "initial_positioning": "random",
            "respect_fixed_positions": True,
            "bounds": None,
            "seed": DEFAULT_SEED,
        }

    def suitability(self, metrics: GraphMetrics) -> float:
        score = 0.5
        if 10 <= metrics.node_count <= 200:
            score += 0.3
        elif metrics.node_count > 200:
            score -= min(0.4, (metrics.node_count - 200) / 1000)
        if metrics.group_count > 1:
            score += 0.2
        if 0.1 <= metrics.density <= 0.5:
            score += 0.2
        elif metrics.density > 0.7:
            score -= 0.2
        if 2 <= metrics.average_connectivity <= 8:
            score += 0.1
        if metrics.has_circular_dependencies:
            score += 0.1
        return max(0.0, min(1.0, score))

    def can_handle(self, metrics: GraphMetrics) -> bool:
        if metrics.node_count > 1000:
            return False
        return metrics.edge_count <= metrics.node_count * 10

    async def calculate(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        config: Mapping[str, Any] | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> LayoutResult:
        cfg = self.resolve_config(config)
        if cfg["initial_positioning"] not in INITIAL_POSITIONING:
            raise LayoutError(
                f"Invalid initial_positioning {cfg['initial_positioning']!r}",
                LayoutErrorType.CONFIGURATION_ERROR,
                algorithm=self.name,
            )
        with self._run(stop_event) as run:
            timer = run.timer
            warnings = self._warnings(nodes, edges, cfg)

            with timer.phase("preprocessing"):
                sim = self._build_simulation(nodes, edges, cfg)

            with timer.phase("calculation"):
                while not sim.converged:
                    if run.stopped:
                        logger.debug("Force simulation stopped at iteration %d", sim.iterations)
                        break
                    sim.step()
                    await asyncio.sleep(0)

            coords = {
                node.id: (float(sim.x[i]), float(sim.y[i])) for i, node in enumerate(nodes)
            }
            placed = place_nodes(nodes, coords, keep_fixed=cfg["respect_fixed_positions"])
            metadata = LayoutMetadata(
                algorithm=self.name,
                details={
                    "iterations": sim.iterations,
                    "final_alpha": sim.alpha,
                    "converged": sim.converged,
                    "stopped": run.stopped,
                },
            )
            return self._build_result(nodes, edges, placed, timer, metadata, warnings)

    def _build_simulation(
        self, nodes: Sequence[Node], edges: Sequence[Edge], cfg: Mapping[str, Any]
    ) -> Simulation:
        rng = np.random.default_rng(cfg["seed"])
        index = {n.id: i for i, n in enumerate(nodes)}
        x, y = initial_positions(
            nodes,
            cfg["initial_positioning"],
            cfg["bounds"] or DEFAULT_BOUNDS,
            cfg["node_spacing"],
            rng,
        )
        radius = np.array([n.size.width / 2 * cfg["collision_radius"] for n in nodes])
        locked = np.array(
            [n.fixed and cfg["respect_fixed_positions"] for n in nodes], dtype=bool
        )

        pairs = [
            (index[e.source], index[e.target], e.weight)
            for e in edges
            if e.source in index and e.target in index and e.source != e.target
        ]
        links = (
            np.array([p[0] for p in pairs], dtype=int),
            np.array([p[1] for p in pairs], dtype=int),
            np.array([p[2] for p in pairs], dtype=float) * cfg["link_strength"],
        )

        group_ids: dict[str, int] = {}
        groups = np.array(
            [
                group_ids.setdefault(n.group, len(group_ids)) if n.group is not None else -1
                for n in nodes
            ],
            dtype=int,
        )
        return Simulation(x, y, radius, locked, links, groups, cfg, rng)

    def _warnings(
        self, nodes: Sequence[Node], edges: Sequence[Edge], cfg: Mapping[str, Any]
    ) -> list[str]:
        warnings = []
        if len(nodes) > 500:
            warnings.append("Large graph may take longer to converge")
        if len(edges) > len(nodes) * 5:
            warnings.append("High edge density may create cluttered layout")
        if cfg["iterations"] < 100:
            warnings.append("Low iteration count may produce suboptimal layout")
        return warnings
