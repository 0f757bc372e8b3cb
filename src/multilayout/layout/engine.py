"""Layout coordinator: validation, analysis, selection and timed execution.

One ``process_layout`` call moves through Validating, Analyzing,
Selecting (skipped when an algorithm is named), Executing and Enriching.
Execution runs the algorithm as a task under a wall-clock budget; an
expired task is stopped through its own stop event and cancelled, but
never awaited. Concurrent calls on one engine each see their own state.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import threading
import time
import tracemalloc
import weakref
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from multilayout.layout.base import LayoutAlgorithm
from multilayout.layout.constants import (
    ENGINE_HISTORY_SIZE,
    MAX_EXECUTION_TIME_MS,
    MAX_MEMORY_MB,
    MIN_OVERALL_SCORE,
    TREND_TOLERANCE_MS,
    TREND_WINDOW,
)
from multilayout.layout.constraint_based import ConstraintBasedLayout
from multilayout.layout.errors import ErrorContext, LayoutError, LayoutErrorType
from multilayout.layout.force_directed import ForceDirectedLayout
from multilayout.layout.hierarchical import HierarchicalLayout
from multilayout.layout.metrics import analyze_graph
from multilayout.layout.selector import (
    AlgorithmSelectionCriteria,
    AlgorithmSelector,
    SelectionResult,
)
from multilayout.layout.types import GraphMetrics, LayoutResult
from multilayout.parser.model import Edge, Node

logger = logging.getLogger(__name__)

FAILURE_SUGGESTIONS = [
    "Try a different algorithm",
    "Check input data validity",
    "Reduce graph complexity",
]


class EngineState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    ANALYZING = "analyzing"
    SELECTING = "selecting"
    EXECUTING = "executing"
    ENRICHING = "enriching"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PerformanceLimits:
    max_execution_time: float = MAX_EXECUTION_TIME_MS
    max_memory_usage: float = MAX_MEMORY_MB
    track_memory: bool = False


@dataclass
class QualityRequirements:
    min_overall_score: float = MIN_OVERALL_SCORE
    prioritize_speed: bool = False


@dataclass
class EngineConfig:
    auto_selection: bool = True
    default_algorithm: str | None = None
    selection_strategy: str = "automatic"
    performance: PerformanceLimits = field(default_factory=PerformanceLimits)
    quality: QualityRequirements = field(default_factory=QualityRequirements)


@dataclass
class PerformanceSample:
    algorithm: str
    total_time: float
    performance_rating: int
    quality_score: float
    timestamp: float


@dataclass
class PerformanceStats:
    total_runs: int = 0
    average_time: float = 0.0
    min_time: float = 0.0
    max_time: float = 0.0
    average_rating: float = 0.0
    recent_trend: str = "stable"


class LayoutEngine:
    """Registry of layout algorithms plus the request pipeline around them."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        selector: AlgorithmSelector | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.selector = selector or AlgorithmSelector()
        self._states: weakref.WeakKeyDictionary[asyncio.Task, EngineState] = (
            weakref.WeakKeyDictionary()
        )
        self._algorithms: dict[str, LayoutAlgorithm] = {}
        self._history: deque[PerformanceSample] = deque(maxlen=ENGINE_HISTORY_SIZE)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_algorithm(self, algorithm: LayoutAlgorithm) -> None:
        if algorithm.name in self._algorithms:
            logger.warning("Replacing registered algorithm %s", algorithm.name)
        self._algorithms[algorithm.name] = algorithm

    def unregister_algorithm(self, name: str) -> bool:
        return self._algorithms.pop(name, None) is not None

    def get_algorithms(self) -> list[LayoutAlgorithm]:
        return list(self._algorithms.values())

    def get_algorithm(self, name: str) -> LayoutAlgorithm | None:
        return self._algorithms.get(name)

    def update_config(self, **changes: Any) -> None:
        self.config = replace(self.config, **changes)

    @property
    def state(self) -> EngineState:
        """Pipeline state of the ``process_layout`` call in the current task."""
        try:
            task = asyncio.current_task()
        except RuntimeError:
            return EngineState.IDLE
        if task is None:
            return EngineState.IDLE
        return self._states.get(task, EngineState.IDLE)

    def _set_state(self, state: EngineState) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._states[task] = state

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def analyze_graph(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> GraphMetrics:
        return analyze_graph(nodes, edges)

    def select_algorithm(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        criteria: AlgorithmSelectionCriteria | None = None,
    ) -> SelectionResult:
        return self._select(analyze_graph(nodes, edges), criteria)

    def _select(
        self, metrics: GraphMetrics, criteria: AlgorithmSelectionCriteria | None
    ) -> SelectionResult:
        """Select with the engine limits filling any constraint left unset."""
        criteria = criteria or AlgorithmSelectionCriteria()
        limits = self.config.performance
        given = criteria.constraints
        constraints = replace(
            given,
            max_execution_time=(
                limits.max_execution_time if given.max_execution_time is None
                else given.max_execution_time
            ),
            max_memory_usage=(
                limits.max_memory_usage if given.max_memory_usage is None
                else given.max_memory_usage
            ),
        )
        preferences = criteria.preferences
        if self.config.quality.prioritize_speed:
            preferences = replace(preferences, prioritize_speed=True)
        criteria = replace(criteria, preferences=preferences, constraints=constraints)
        return self.selector.select_for_metrics(
            self._algorithms, metrics, criteria, self.config.selection_strategy
        )

    async def process_layout(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        algorithm_name: str | None = None,
        config: Mapping[str, Any] | None = None,
        selection_criteria: AlgorithmSelectionCriteria | None = None,
    ) -> LayoutResult:
        """Lay out ``nodes`` and ``edges``; raises LayoutError on failure."""
        start = time.perf_counter()
        try:
            self._set_state(EngineState.VALIDATING)
            self._validate_input(nodes, edges)

            self._set_state(EngineState.ANALYZING)
            metrics = analyze_graph(nodes, edges)

            algorithm, notes = self._resolve_algorithm(
                metrics, algorithm_name, selection_criteria
            )

            self._set_state(EngineState.EXECUTING)
            result = await self._execute(algorithm, nodes, edges, config, metrics)

            self._set_state(EngineState.ENRICHING)
            total_time = (time.perf_counter() - start) * 1000.0
            self._enrich(result, algorithm, metrics, total_time, notes)
        except LayoutError:
            self._set_state(EngineState.FAILED)
            raise
        except asyncio.CancelledError:
            self._set_state(EngineState.FAILED)
            raise
        self._set_state(EngineState.DONE)
        return result

    def _validate_input(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
        def invalid(message: str) -> LayoutError:
            return LayoutError(
                message,
                LayoutErrorType.INVALID_INPUT,
                context=ErrorContext(
                    node_count=len(nodes) if isinstance(nodes, Sequence) else 0,
                    edge_count=len(edges) if isinstance(edges, Sequence) else 0,
                ),
                suggestions=["Check input data validity"],
            )

        for label, items in (("nodes", nodes), ("edges", edges)):
            if not isinstance(items, Sequence) or isinstance(items, (str, bytes)):
                raise invalid(f"{label} must be a sequence, got {type(items).__name__}")
        if not nodes:
            raise invalid("At least one node is required")
        if not all(isinstance(n, Node) for n in nodes):
            raise invalid("Every node must be a Node")
        if not all(isinstance(e, Edge) for e in edges):
            raise invalid("Every edge must be an Edge")

        ids: set[str] = set()
        for node in nodes:
            if node.id in ids:
                raise invalid(f"Duplicate node id {node.id!r}")
            ids.add(node.id)
        for edge in edges:
            missing = [end for end in (edge.source, edge.target) if end not in ids]
            if missing:
                raise invalid(
                    f"Edge {edge.id!r} references unknown node(s): {', '.join(missing)}"
                )

    def _resolve_algorithm(
        self,
        metrics: GraphMetrics,
        algorithm_name: str | None,
        criteria: AlgorithmSelectionCriteria | None,
    ) -> tuple[LayoutAlgorithm, list[str]]:
        notes: list[str] = []
        if algorithm_name is not None:
            algorithm = self._algorithms.get(algorithm_name)
            if algorithm is None:
                raise LayoutError(
                    f"Unknown layout algorithm {algorithm_name!r}",
                    LayoutErrorType.CONFIGURATION_ERROR,
                    context=ErrorContext(metrics.node_count, metrics.edge_count),
                    suggestions=[f"Available algorithms: {', '.join(self._algorithms)}"],
                )
            if not algorithm.can_handle(metrics):
                notes.append(
                    f"{algorithm.display_name} is not designed for graphs of this size or density"
                )
            return algorithm, notes

        if self.config.auto_selection:
            self._set_state(EngineState.SELECTING)
            selection = self._select(metrics, criteria)
            logger.debug("Selection reasoning: %s", "; ".join(selection.reasoning))
            return selection.algorithm, notes

        default = self.config.default_algorithm
        if default is not None and default in self._algorithms:
            return self._algorithms[default], notes
        raise LayoutError(
            "No algorithm named, auto-selection disabled and no usable default algorithm",
            LayoutErrorType.CONFIGURATION_ERROR,
            context=ErrorContext(metrics.node_count, metrics.edge_count),
            suggestions=["Name an algorithm", "Enable auto_selection", "Set default_algorithm"],
        )

    async def _execute(
        self,
        algorithm: LayoutAlgorithm,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        config: Mapping[str, Any] | None,
        metrics: GraphMetrics,
    ) -> LayoutResult:
        limits = self.config.performance
        context = ErrorContext(metrics.node_count, metrics.edge_count)
        owns_trace = limits.track_memory and not tracemalloc.is_tracing()
        if owns_trace:
            tracemalloc.start()
        elif limits.track_memory:
            tracemalloc.reset_peak()

        logger.info(
            "Running %s on %d nodes / %d edges",
            algorithm.name, metrics.node_count, metrics.edge_count,
        )
        stop_event = asyncio.Event()
        task = asyncio.ensure_future(
            algorithm.calculate(nodes, edges, config, stop_event=stop_event)
        )
        peak = None
        try:
            done, _ = await asyncio.wait({task}, timeout=limits.max_execution_time / 1000.0)
        except asyncio.CancelledError:
            self._abandon(stop_event, task)
            raise
        finally:
            if limits.track_memory:
                peak = tracemalloc.get_traced_memory()[1] / (1024 * 1024)
            if owns_trace:
                tracemalloc.stop()

        if task not in done:
            self._abandon(stop_event, task)
            logger.warning(
                "%s exceeded %.0f ms budget", algorithm.name, limits.max_execution_time
            )
            raise LayoutError(
                f"{algorithm.display_name} did not finish within "
                f"{limits.max_execution_time:.0f} ms",
                LayoutErrorType.PERFORMANCE_TIMEOUT,
                algorithm=algorithm.name,
                context=context,
                suggestions=["Increase max_execution_time", "Try a faster algorithm",
                             "Reduce graph complexity"],
            )

        try:
            result = task.result()
        except LayoutError as e:
            e.algorithm = e.algorithm or algorithm.name
            e.context = context
            raise
        except Exception as e:
            logger.exception("%s failed", algorithm.name)
            raise LayoutError(
                f"{algorithm.display_name} failed: {e}",
                LayoutErrorType.ALGORITHM_FAILURE,
                algorithm=algorithm.name,
                context=context,
                suggestions=list(FAILURE_SUGGESTIONS),
            ) from e

        if peak is not None:
            result.performance.memory_usage = peak
            if peak > limits.max_memory_usage:
                raise LayoutError(
                    f"{algorithm.display_name} used {peak:.1f} MB, "
                    f"above the {limits.max_memory_usage:.0f} MB limit",
                    LayoutErrorType.MEMORY_EXCEEDED,
                    algorithm=algorithm.name,
                    context=context,
                    suggestions=["Increase max_memory_usage", "Reduce graph complexity"],
                )
        return result

    @staticmethod
    def _abandon(stop_event: asyncio.Event, task: asyncio.Future) -> None:
        stop_event.set()
        task.cancel()
        task.add_done_callback(_retrieve_outcome)

    def _enrich(
        self,
        result: LayoutResult,
        algorithm: LayoutAlgorithm,
        metrics: GraphMetrics,
        total_time: float,
        notes: list[str],
    ) -> None:
        result.metadata.algorithm = algorithm.name
        result.performance.total_time = total_time
        result.warnings.extend(notes)

        minimum = self.config.quality.min_overall_score
        score = result.quality.overall_score
        if score < minimum:
            result.warnings.append(
                f"Layout quality ({score:.1f}) below minimum threshold ({minimum:.1f})"
            )

        self.selector.record_performance(algorithm.name, total_time, score, metrics)
        self.selector.increment_layout_count()
        with self._lock:
            self._history.append(
                PerformanceSample(
                    algorithm=algorithm.name,
                    total_time=total_time,
                    performance_rating=result.performance.performance_rating,
                    quality_score=score,
                    timestamp=time.time(),
                )
            )
        logger.info(
            "%s finished in %.1f ms (quality %.1f)", algorithm.name, total_time, score
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_performance_stats(self) -> PerformanceStats:
        with self._lock:
            samples = list(self._history)
        if not samples:
            return PerformanceStats()
        times = [s.total_time for s in samples]
        return PerformanceStats(
            total_runs=len(samples),
            average_time=sum(times) / len(times),
            min_time=min(times),
            max_time=max(times),
            average_rating=sum(s.performance_rating for s in samples) / len(samples),
            recent_trend=performance_trend(times[-TREND_WINDOW:]),
        )


def performance_trend(times: Sequence[float], tolerance: float = TREND_TOLERANCE_MS) -> str:
    """Classify run times by their least-squares slope in ms per run."""
    if len(times) < 2:
        return "stable"
    slope = statistics.linear_regression(range(len(times)), times).slope
    if slope < -tolerance:
        return "improving"
    if slope > tolerance:
        return "degrading"
    return "stable"


def _retrieve_outcome(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


def create_layout_engine(
    config: EngineConfig | None = None, selector: AlgorithmSelector | None = None
) -> LayoutEngine:
    """Engine with the force-directed, hierarchical and constraint-based algorithms."""
    engine = LayoutEngine(config, selector)
    engine.register_algorithm(ForceDirectedLayout())
    engine.register_algorithm(HierarchicalLayout())
    engine.register_algorithm(ConstraintBasedLayout())
    return engine
