"""Constraint-based layout: stress majorization under geometric constraints."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from multilayout.layout.base import LayoutAlgorithm, LayoutRun, place_nodes
from multilayout.layout.constants import DEFAULT_SEED
from multilayout.layout.constraints import (
    StressSolver,
    generate_constraints,
    ideal_distances,
)
from multilayout.layout.errors import ErrorContext, LayoutError, LayoutErrorType
from multilayout.layout.types import (
    GraphMetrics,
    LayoutMetadata,
    LayoutResult,
    QualityMeasures,
)
from multilayout.parser.model import Edge, Node

logger = logging.getLogger(__name__)

INITIAL_LAYOUTS = ("link-distance", "jaccard")

# Sum of every suitability bonus; scores are normalised by it
_MAX_RAW_SUITABILITY = 1.4

_SETTLE_PASSES = 50
_SETTLE_TOLERANCE = 1e-6
_RESIDUAL_TOLERANCE = 1.0


class ConstraintBasedLayout(LayoutAlgorithm):
    name = "constraint-based"
    display_name = "Constraint-Based"
    description = (
        "Stress majorization with alignment, separation, group and "
        "user-defined constraints"
    )
    time_thresholds = (2000.0, 5000.0, 10000.0, 15000.0)
    quality_baseline = QualityMeasures(
        dependency_compliance=85.0,
        visual_clarity=92.0,
        space_utilization=85.0,
        group_organization=95.0,
        edge_crossings=80.0,
        node_overlaps=100.0,
    )

    def get_default_config(self) -> dict[str, Any]:
        return {
            "link_distance": 100.0,
            "initial_layout": "link-distance",
            "avoid_overlaps": True,
            "alignment_constraints": {"enabled": True, "tolerance": 5.0},
            "separation_constraints": {"enabled": True, "min_separation": 50.0},
            "group_constraints": {"enabled": True, "padding": 20.0, "stiffness": 0.5},
            "boundary_constraints": {"enabled": False, "bounds": (0.0, 0.0, 2000.0, 2000.0)},
            "flow_direction": None,
            "flow_separation": 50.0,
            "custom_constraints": [],
            "convergence_threshold": 0.01,
            "max_iterations": 1000,
            "unconstrained_iterations": 10,
            "stress_minimization": {
                "enabled": True,
                "major_iterations": 100,
                "minor_iterations": 10,
            },
            "solver_timeout": 30000.0,
            "seed": DEFAULT_SEED,
        }

    def suitability(self, metrics: GraphMetrics) -> float:
        score = 0.3
        if metrics.density > 0.3:
            score += 0.4
        if 20 <= metrics.node_count <= 300:
            score += 0.2
        elif metrics.node_count > 300:
            score -= min(0.3, (metrics.node_count - 300) / 500)
        if metrics.group_count > 2:
            score += 0.2
        if metrics.average_connectivity > 4:
            score += 0.2
        if metrics.max_connectivity > 8:
            score += 0.1
        return max(0.0, min(1.0, score / _MAX_RAW_SUITABILITY))

    def can_handle(self, metrics: GraphMetrics) -> bool:
        if metrics.node_count > 500:
            return False
        return metrics.edge_count <= metrics.node_count * 15

    async def calculate(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        config: Mapping[str, Any] | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> LayoutResult:
        cfg = self.resolve_config(config)
        if cfg["initial_layout"] not in INITIAL_LAYOUTS:
            raise LayoutError(
                f"Invalid initial_layout {cfg['initial_layout']!r}",
                LayoutErrorType.CONFIGURATION_ERROR,
                algorithm=self.name,
            )
        with self._run(stop_event) as run:
            timer = run.timer
            warnings = self._warnings(nodes, cfg)
            deadline = time.monotonic() + cfg["solver_timeout"] / 1000.0

            with timer.phase("preprocessing"):
                constraints = generate_constraints(nodes, edges, cfg)
                solver = self._build_solver(nodes, edges, cfg, constraints)

            with timer.phase("calculation"):
                stats = await self._solve(solver, cfg, deadline, run, len(nodes), len(edges))

            if stats["constraint_residual"] > _RESIDUAL_TOLERANCE:
                warnings.append(
                    "Constraints could not all be satisfied "
                    f"(largest violation {stats['constraint_residual']:.1f})"
                )

            # Solver works on centres; results are anchors
            coords = {
                node.id: (
                    float(solver.x[i]) - node.size.width / 2,
                    float(solver.y[i]) - node.size.height / 2,
                )
                for i, node in enumerate(nodes)
            }
            placed = place_nodes(nodes, coords)
            metadata = LayoutMetadata(
                algorithm=self.name,
                details={"constraints": dict(constraints.counts), **stats},
            )
            return self._build_result(nodes, edges, placed, timer, metadata, warnings)

    def _build_solver(self, nodes, edges, cfg, constraints) -> StressSolver:
        n = len(nodes)
        D = ideal_distances(nodes, edges, cfg["link_distance"], cfg["initial_layout"])
        with np.errstate(divide="ignore"):
            W = np.where(D > 0, 1.0 / (D * D), 0.0)

        group_cfg = cfg["group_constraints"]
        if group_cfg["enabled"] and group_cfg["stiffness"] > 0:
            labels = np.array([n_.group or "" for n_ in nodes], dtype=object)
            same = (labels[:, None] == labels[None, :]) & (labels[:, None] != "")
            np.fill_diagonal(same, False)
            cap = cfg["link_distance"] * 1.5
            D = np.where(same, np.minimum(D, cap), D)
            with np.errstate(divide="ignore"):
                W = np.where(same, 1.0 / (D * D) * (1 + group_cfg["stiffness"]), W)

        rng = np.random.default_rng(cfg["seed"])
        extent = max(cfg["link_distance"] * np.sqrt(max(n, 1)), 1.0)
        x = np.empty(n)
        y = np.empty(n)
        for i, node in enumerate(nodes):
            if node.fixed or node.position.x or node.position.y:
                x[i] = node.position.x + node.size.width / 2
                y[i] = node.position.y + node.size.height / 2
            else:
                x[i], y[i] = rng.random(2) * extent
        mobility = np.array([0.0 if node.fixed else 1.0 for node in nodes])

        boundary = cfg["boundary_constraints"]
        bounds = tuple(boundary["bounds"]) if boundary["enabled"] else None
        return StressSolver(x, y, D, W, mobility, constraints.freeze(), bounds)

    async def _solve(
        self,
        solver: StressSolver,
        cfg: Mapping[str, Any],
        deadline: float,
        run: LayoutRun,
        node_count: int,
        edge_count: int,
    ) -> dict[str, Any]:
        stress_cfg = cfg["stress_minimization"]
        budget = cfg["max_iterations"]
        iterations = 0

        if stress_cfg["enabled"]:
            for _ in range(min(cfg["unconstrained_iterations"], budget)):
                if run.stopped:
                    break
                solver.stress_step()
                iterations += 1

        converged = False
        previous = solver.stress()
        majors = stress_cfg["major_iterations"] if stress_cfg["enabled"] else 1
        for _ in range(majors):
            if iterations >= budget or run.stopped:
                break
            if time.monotonic() > deadline:
                raise LayoutError(
                    f"Constraint solver exceeded {cfg['solver_timeout']:.0f} ms",
                    LayoutErrorType.PERFORMANCE_TIMEOUT,
                    algorithm=self.name,
                    context=ErrorContext(node_count=node_count, edge_count=edge_count),
                    suggestions=["Reduce the number of custom constraints",
                                 "Lower max_iterations"],
                )
            if stress_cfg["enabled"]:
                solver.stress_step()
            for _ in range(stress_cfg["minor_iterations"]):
                if solver.project() == 0.0:
                    break
            iterations += 1

            current = solver.stress()
            if previous == 0 or abs(previous - current) / previous < cfg["convergence_threshold"]:
                converged = True
                break
            previous = current
            await asyncio.sleep(0)

        # Settle the constraints on the returned layout
        for _ in range(max(stress_cfg["minor_iterations"], _SETTLE_PASSES)):
            if solver.project() < _SETTLE_TOLERANCE:
                break
        residual = solver.residual()
        if residual > _RESIDUAL_TOLERANCE:
            logger.debug("Constraint residual %.2f after settling", residual)

        logger.debug(
            "Constraint solver finished after %d iterations (converged=%s)",
            iterations, converged,
        )
        return {
            "iterations": iterations,
            "converged": converged,
            "stopped": run.stopped,
            "final_stress": float(solver.stress()),
            "constraint_residual": residual,
        }

    def _warnings(self, nodes: Sequence[Node], cfg: Mapping[str, Any]) -> list[str]:
        warnings = []
        if len(nodes) > 200:
            warnings.append("Large graph may take a long time to solve all constraints")
        if len(cfg["custom_constraints"]) > len(nodes):
            warnings.append("Many custom constraints may over-constrain the layout")
        if cfg["convergence_threshold"] < 0.001:
            warnings.append("Very low convergence threshold may increase computation time")
        return warnings
