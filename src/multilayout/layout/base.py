"""Base layout algorithm contract.

Defines the interface every layout algorithm implements, plus the
shared bookkeeping (config merging, phase timing, result assembly) the
concrete algorithms build on.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from multilayout.layout.quality import (
    group_info,
    layout_dimensions,
    rate_performance,
    score_quality,
)
from multilayout.layout.types import (
    GraphMetrics,
    LayoutMetadata,
    LayoutResult,
    QualityMeasures,
)
from multilayout.parser.model import Edge, Node, Position


class PhaseTimer:
    """Accumulates wall-clock milliseconds per named phase."""

    def __init__(self) -> None:
        self.timings: dict[str, float] = {}
        self._start = time.perf_counter()

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - start) * 1000.0
            self.timings[name] = self.timings.get(name, 0.0) + elapsed

    @property
    def total(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0


@dataclass(eq=False)
class LayoutRun:
    """One in-flight ``calculate`` call.

    ``stop_event`` belongs to this run only; setting it ends this run's
    step loop without touching other runs of the same algorithm.
    """

    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    timer: PhaseTimer = field(default_factory=PhaseTimer)

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()


def merge_config(
    defaults: Mapping[str, Any], overrides: Mapping[str, Any] | None
) -> Mapping[str, Any]:
    """Overlay ``overrides`` on ``defaults`` into a read-only mapping.

    Nested dict options are merged one level deep, so overriding a single
    sub-key keeps the other defaults of that option.
    """
    merged: dict[str, Any] = {}
    for key, value in defaults.items():
        merged[key] = dict(value) if isinstance(value, dict) else value
    for key, value in (overrides or {}).items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return MappingProxyType(merged)


def place_nodes(
    nodes: Sequence[Node],
    positions: Mapping[str, tuple[float, float]],
    keep_fixed: bool = True,
) -> list[Node]:
    """Copy ``nodes`` in input order with positions taken from ``positions``.

    With ``keep_fixed``, fixed nodes keep their input coordinates exactly.
    """
    placed = []
    for node in nodes:
        if (node.fixed and keep_fixed) or node.id not in positions:
            pos = Position(node.position.x, node.position.y)
        else:
            x, y = positions[node.id]
            pos = Position(float(x), float(y))
        placed.append(replace(node, position=pos))
    return placed


class LayoutAlgorithm(ABC):
    """Abstract base class for layout algorithms.

    Subclasses set ``name`` (the registry key), ``display_name`` and
    ``description``, the 1-5 rating ``time_thresholds`` (ms, the last one
    being the run budget) and the ``quality_baseline`` measures.
    """

    name: str = ""
    display_name: str = ""
    description: str = ""
    time_thresholds: tuple[float, float, float, float] = (1000.0, 3000.0, 5000.0, 10000.0)
    quality_baseline: QualityMeasures = QualityMeasures()

    def __init__(self) -> None:
        self._runs: set[LayoutRun] = set()

    @abstractmethod
    def suitability(self, metrics: GraphMetrics) -> float:
        """Score in [0, 1] of how well this algorithm fits the graph."""
        ...

    @abstractmethod
    def can_handle(self, metrics: GraphMetrics) -> bool:
        """Whether the graph is within this algorithm's hard limits."""
        ...

    @abstractmethod
    def get_default_config(self) -> dict[str, Any]:
        ...

    @abstractmethod
    async def calculate(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        config: Mapping[str, Any] | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> LayoutResult:
        """Position ``nodes``; returns a result with the same node ids.

        Setting ``stop_event`` ends this call at its next step.
        """
        ...

    def stop(self) -> None:
        """Ask every in-flight ``calculate`` of this instance to finish at its next step."""
        for run in list(self._runs):
            run.stop_event.set()

    @property
    def active_runs(self) -> int:
        return len(self._runs)

    def resolve_config(self, config: Mapping[str, Any] | None) -> Mapping[str, Any]:
        return merge_config(self.get_default_config(), config)

    @contextmanager
    def _run(self, stop_event: asyncio.Event | None = None) -> Iterator[LayoutRun]:
        run = LayoutRun(stop_event if stop_event is not None else asyncio.Event())
        self._runs.add(run)
        try:
            yield run
        finally:
            self._runs.discard(run)

    def _build_result(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        placed: list[Node],
        timer: PhaseTimer,
        metadata: LayoutMetadata,
        warnings: list[str],
        flow: tuple[str, bool] | None = None,
    ) -> LayoutResult:
        """Fill dimensions, quality and performance for a finished layout.

        ``flow`` is the (axis, reversed) direction edges are expected to
        follow, for algorithms that impose one.
        """
        with timer.phase("postprocessing"):
            metadata.processed_nodes = len(nodes)
            metadata.processed_edges = len(edges)
            metadata.layout_dimensions = layout_dimensions(placed)
            metadata.group_info = group_info(placed)
            axis, reverse = flow if flow else (None, False)
            quality = score_quality(self.quality_baseline, placed, edges, axis, reverse)
        performance = rate_performance(timer.total, timer.timings, self.time_thresholds)
        return LayoutResult(
            nodes=placed,
            metadata=metadata,
            performance=performance,
            quality=quality,
            recommendations=self._recommendations(quality.improvement_areas),
            warnings=warnings,
        )

    def _recommendations(self, improvement_areas: list[str]) -> list[str]:
        hints = {
            "dependency_compliance": "Use a layered layout to keep dependencies flowing in one direction",
            "visual_clarity": "Increase node spacing to reduce clutter",
            "space_utilization": "Reduce spacing or enable compaction to use space better",
            "group_organization": "Enable group forces or constraints to keep groups together",
            "edge_crossings": "Try a hierarchical layout to reduce edge crossings",
            "node_overlaps": "Enable overlap avoidance or increase collision radius",
        }
        return [hints[area] for area in improvement_areas if area in hints]
