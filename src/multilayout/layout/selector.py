"""Multi-criteria algorithm selection with historical learning.

Every candidate that passes ``can_handle`` is scored as a weighted sum
of six factors in [0, 1]:

- suitability: the algorithm's own fitness estimate;
- performance: recency- and size-weighted time-to-quality of past runs
  on similarly sized graphs;
- quality: average historical quality, or a static baseline;
- user preference: how often the algorithm was chosen before;
- system fit: penalties under constrained CPU, memory or power;
- context relevance: task type and urgency of the session.

Strategies only change the weights. History and the user profile live
on the selector instance and are capped.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from multilayout.layout.base import LayoutAlgorithm
from multilayout.layout.constants import (
    DEFAULT_EXECUTION_ESTIMATE_MS,
    FAST_EXECUTION_MS,
    MAX_EXECUTION_TIME_MS,
    RECENCY_FLOOR,
    RECENCY_TIME_CONSTANT_DAYS,
    SELECTOR_HISTORY_KEEP,
    SELECTOR_HISTORY_LIMIT,
    SIMILAR_SIZE_RATIO,
)
from multilayout.layout.errors import ErrorContext, LayoutError, LayoutErrorType
from multilayout.layout.metrics import analyze_graph
from multilayout.layout.types import GraphMetrics
from multilayout.parser.model import Edge, Node

logger = logging.getLogger(__name__)

STRATEGIES = ("automatic", "performance", "quality", "balanced", "user-guided")
TASK_AFFINITY = {
    "exploration": "force-directed",
    "analysis": "enhanced-hierarchical",
    "presentation": "constraint-based",
}
BASE_QUALITY = {
    "force-directed": 0.75,
    "enhanced-hierarchical": 0.85,
    "constraint-based": 0.88,
}
DEFAULT_BASE_QUALITY = 0.7

_DAY_SECONDS = 86400.0


@dataclass(frozen=True)
class ScoringWeights:
    suitability: float = 0.3
    performance: float = 0.2
    quality: float = 0.2
    user_preference: float = 0.15
    system_fit: float = 0.1
    context_relevance: float = 0.05


STRATEGY_WEIGHTS = {
    "performance": ScoringWeights(0.3, 0.4, 0.1, 0.05, 0.15, 0.0),
    "quality": ScoringWeights(0.3, 0.1, 0.4, 0.1, 0.05, 0.05),
    "balanced": ScoringWeights(0.25, 0.25, 0.25, 0.1, 0.1, 0.05),
    "user-guided": ScoringWeights(0.2, 0.15, 0.15, 0.4, 0.05, 0.05),
}


@dataclass
class SelectionPreferences:
    prioritize_speed: bool = False
    prioritize_quality: bool = False
    preferred_algorithm: str | None = None


@dataclass
class SelectionConstraints:
    max_execution_time: float | None = None
    max_memory_usage: float | None = None


@dataclass
class AlgorithmSelectionCriteria:
    """What the caller wants.

    Graph metrics are never taken from the caller; every selection
    analyzes the graph it is given.
    """

    preferences: SelectionPreferences = field(default_factory=SelectionPreferences)
    constraints: SelectionConstraints = field(default_factory=SelectionConstraints)


@dataclass
class SystemConstraints:
    available_memory: float = 2048.0
    cpu_performance: str = "medium"
    max_execution_time: float = MAX_EXECUTION_TIME_MS
    power_constraints: bool = False


@dataclass
class SessionContext:
    task_type: str = "analysis"
    urgency: str = "medium"
    layout_count: int = 0
    session_duration: float = 0.0


@dataclass
class SelectionContext:
    system: SystemConstraints = field(default_factory=SystemConstraints)
    session: SessionContext = field(default_factory=SessionContext)


@dataclass
class UserBehaviorProfile:
    preferred_algorithms: dict[str, int] = field(default_factory=dict)
    speed_tolerance: str = "medium"
    quality_expectations: str = "good"
    interaction_frequency: int = 0


@dataclass
class PerformanceRecord:
    algorithm: str
    graph_size: int
    execution_time: float
    quality_score: float
    timestamp: float
    user_satisfaction: int = 3
    density: float = 0.0
    group_count: int = 0
    average_connectivity: float = 0.0


@dataclass
class AlternativeAlgorithm:
    algorithm: LayoutAlgorithm
    score: float
    reason: str


@dataclass
class SelectionResult:
    algorithm: LayoutAlgorithm
    confidence: float
    reasoning: list[str]
    alternatives: list[AlternativeAlgorithm]
    score: float = 0.0


class AlgorithmSelector:
    """Chooses an algorithm and learns from recorded runs.

    ``clock`` returns seconds since the epoch and is injectable so
    recency weighting can be tested without waiting.
    """

    def __init__(
        self,
        weights: ScoringWeights | None = None,
        profile: UserBehaviorProfile | None = None,
        history: Iterable[PerformanceRecord] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.weights = weights or ScoringWeights()
        self.profile = profile or UserBehaviorProfile()
        self.history: list[PerformanceRecord] = list(history or [])
        self.clock = clock
        self._lock = threading.Lock()
        self._session_start = clock()
        self._layout_count = 0

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_algorithm(
        self,
        algorithms: Iterable[LayoutAlgorithm] | Mapping[str, LayoutAlgorithm],
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        criteria: AlgorithmSelectionCriteria | None = None,
        strategy: str = "automatic",
        context: SelectionContext | None = None,
    ) -> SelectionResult:
        return self.select_for_metrics(
            algorithms, analyze_graph(nodes, edges), criteria, strategy, context
        )

    def select_for_metrics(
        self,
        algorithms: Iterable[LayoutAlgorithm] | Mapping[str, LayoutAlgorithm],
        metrics: GraphMetrics,
        criteria: AlgorithmSelectionCriteria | None = None,
        strategy: str = "automatic",
        context: SelectionContext | None = None,
    ) -> SelectionResult:
        """Select for a graph already analyzed into ``metrics``."""
        if strategy not in STRATEGIES:
            raise LayoutError(
                f"Unknown selection strategy {strategy!r}",
                LayoutErrorType.CONFIGURATION_ERROR,
            )
        if isinstance(algorithms, Mapping):
            algorithms = algorithms.values()
        criteria = criteria or AlgorithmSelectionCriteria()
        context = self._full_context(criteria, context)
        weights = self._weights_for(strategy, criteria)

        candidates = [a for a in algorithms if a.can_handle(metrics)]
        if not candidates:
            raise LayoutError(
                "No registered algorithm can handle this graph",
                LayoutErrorType.UNSUPPORTED_GRAPH,
                context=ErrorContext(metrics.node_count, metrics.edge_count),
                suggestions=["Reduce the graph size", "Register an algorithm for large graphs"],
            )

        scored = sorted(
            ((self.score_algorithm(a, metrics, criteria, context, weights), a) for a in candidates),
            key=lambda pair: pair[0],
            reverse=True,
        )
        best_score, best = scored[0]
        if best_score <= 0:
            raise LayoutError(
                f"Best candidate {best.name} scored 0 for this graph",
                LayoutErrorType.UNSUPPORTED_GRAPH,
                context=ErrorContext(metrics.node_count, metrics.edge_count),
            )

        self._update_profile(best)
        reasoning = [
            f"Selected {best.display_name} (strategy: {strategy})",
            f"Overall score: {best_score * 100:.1f}%",
            *self._reasoning_for(best, metrics),
            *self._contextual_reasoning(context),
        ]
        logger.info("Selected %s with score %.3f (%s)", best.name, best_score, strategy)
        return SelectionResult(
            algorithm=best,
            confidence=min(best_score, 1.0),
            reasoning=reasoning,
            alternatives=[
                AlternativeAlgorithm(a, s, ", ".join(self._reasoning_for(a, metrics)))
                for s, a in scored[1:4]
            ],
            score=best_score,
        )

    def score_algorithm(
        self,
        algorithm: LayoutAlgorithm,
        metrics: GraphMetrics,
        criteria: AlgorithmSelectionCriteria,
        context: SelectionContext,
        weights: ScoringWeights,
    ) -> float:
        factors = self.factor_scores(algorithm, metrics, criteria, context)
        return sum(getattr(weights, name) * value for name, value in factors.items())

    def factor_scores(
        self,
        algorithm: LayoutAlgorithm,
        metrics: GraphMetrics,
        criteria: AlgorithmSelectionCriteria | None = None,
        context: SelectionContext | None = None,
    ) -> dict[str, float]:
        """The six factor scores of one algorithm, keyed like ScoringWeights."""
        criteria = criteria or AlgorithmSelectionCriteria()
        context = context or SelectionContext()
        return {
            "suitability": algorithm.suitability(metrics),
            "performance": self._performance_score(algorithm, metrics),
            "quality": self._quality_score(algorithm),
            "user_preference": self._preference_score(algorithm, criteria),
            "system_fit": self._system_fit_score(algorithm, metrics, context),
            "context_relevance": self._context_score(algorithm, context),
        }

    def _weights_for(
        self, strategy: str, criteria: AlgorithmSelectionCriteria
    ) -> ScoringWeights:
        if strategy != "automatic":
            return STRATEGY_WEIGHTS[strategy]
        weights = self.weights
        # Shift weight from suitability towards what the caller cares about
        if criteria.preferences.prioritize_speed or self.profile.speed_tolerance == "low":
            weights = replace(
                weights,
                suitability=weights.suitability - 0.1,
                performance=weights.performance + 0.1,
            )
        if criteria.preferences.prioritize_quality or self.profile.quality_expectations == "excellent":
            weights = replace(
                weights,
                suitability=weights.suitability - 0.1,
                quality=weights.quality + 0.1,
            )
        return weights

    def _full_context(
        self, criteria: AlgorithmSelectionCriteria, context: SelectionContext | None
    ) -> SelectionContext:
        context = context or SelectionContext()
        if criteria.constraints.max_execution_time is not None:
            context = replace(
                context,
                system=replace(
                    context.system, max_execution_time=criteria.constraints.max_execution_time
                ),
            )
        if criteria.constraints.max_memory_usage is not None:
            context = replace(
                context,
                system=replace(
                    context.system,
                    available_memory=min(
                        context.system.available_memory, criteria.constraints.max_memory_usage
                    ),
                ),
            )
        session = replace(
            context.session,
            layout_count=self._layout_count,
            session_duration=self.clock() - self._session_start,
        )
        return replace(context, session=session)

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def _performance_score(self, algorithm: LayoutAlgorithm, metrics: GraphMetrics) -> float:
        n = metrics.node_count
        with self._lock:
            relevant = [
                r for r in self.history
                if r.algorithm == algorithm.name
                and abs(r.graph_size - n) < n * SIMILAR_SIZE_RATIO
            ]
        if not relevant:
            return 0.5
        total = 0.0
        weight_sum = 0.0
        for record in relevant:
            weight = self.recency_weight(record.timestamp) * _size_weight(record.graph_size, n)
            ratio = record.execution_time / max(record.quality_score, 1.0)
            total += weight / (1.0 + ratio / 100.0)
            weight_sum += weight
        return total / weight_sum if weight_sum else 0.5

    def _quality_score(self, algorithm: LayoutAlgorithm) -> float:
        with self._lock:
            scores = [r.quality_score for r in self.history if r.algorithm == algorithm.name]
        if not scores:
            return BASE_QUALITY.get(algorithm.name, DEFAULT_BASE_QUALITY)
        return sum(scores) / len(scores) / 100.0

    def _preference_score(
        self, algorithm: LayoutAlgorithm, criteria: AlgorithmSelectionCriteria
    ) -> float:
        if criteria.preferences.preferred_algorithm == algorithm.name:
            return 1.0
        counts = self.profile.preferred_algorithms
        return counts.get(algorithm.name, 0) / max([*counts.values(), 1])

    def _system_fit_score(
        self, algorithm: LayoutAlgorithm, metrics: GraphMetrics, context: SelectionContext
    ) -> float:
        score = 1.0
        system = context.system
        if system.cpu_performance == "low":
            if algorithm.name == "constraint-based":
                score *= 0.6
            if algorithm.name == "force-directed" and metrics.node_count > 100:
                score *= 0.7
        if system.available_memory < 1024 and metrics.node_count > 200:
            score *= 0.8
        if system.power_constraints:
            score *= 0.9
        average = self.average_execution_time(algorithm.name)
        if average is not None and average > system.max_execution_time:
            score *= 0.5
        return score

    def _context_score(self, algorithm: LayoutAlgorithm, context: SelectionContext) -> float:
        score = 0.5
        if TASK_AFFINITY.get(context.session.task_type) == algorithm.name:
            score += 0.3
        if context.session.urgency == "high":
            average = self.average_execution_time(algorithm.name)
            if (average if average is not None else DEFAULT_EXECUTION_ESTIMATE_MS) < FAST_EXECUTION_MS:
                score += 0.2
        return min(score, 1.0)

    def recency_weight(self, timestamp: float) -> float:
        age_days = max(0.0, self.clock() - timestamp) / _DAY_SECONDS
        return max(RECENCY_FLOOR, math.exp(-age_days / RECENCY_TIME_CONSTANT_DAYS))

    def average_execution_time(self, algorithm_name: str) -> float | None:
        with self._lock:
            times = [r.execution_time for r in self.history if r.algorithm == algorithm_name]
        return sum(times) / len(times) if times else None

    # ------------------------------------------------------------------
    # Reasoning
    # ------------------------------------------------------------------

    def _reasoning_for(self, algorithm: LayoutAlgorithm, metrics: GraphMetrics) -> list[str]:
        reasons = []
        suitability = algorithm.suitability(metrics)
        if suitability > 0.8:
            reasons.append(f"Excellent match for graph characteristics ({suitability:.0%} suitability)")
        elif suitability > 0.6:
            reasons.append(f"Good match for graph characteristics ({suitability:.0%} suitability)")
        average = self.average_execution_time(algorithm.name)
        if average is not None and average < FAST_EXECUTION_MS:
            reasons.append("Fast execution based on historical data")
        elif average is not None and average > 8000:
            reasons.append("Slower execution but higher quality expected")
        if metrics.node_count > 200:
            reasons.append("Suitable for large graphs")
        elif metrics.node_count < 50:
            reasons.append("Optimal for small to medium graphs")
        return reasons

    def _contextual_reasoning(self, context: SelectionContext) -> list[str]:
        reasons = []
        if context.session.urgency == "high":
            reasons.append("Prioritized performance due to high urgency")
        if context.system.power_constraints:
            reasons.append("Optimized for power efficiency")
        if self.profile.quality_expectations == "excellent":
            reasons.append("Selected for high quality output")
        return reasons

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def record_performance(
        self,
        algorithm_name: str,
        execution_time: float,
        quality_score: float,
        metrics: GraphMetrics,
        user_satisfaction: int = 3,
    ) -> PerformanceRecord:
        record = PerformanceRecord(
            algorithm=algorithm_name,
            graph_size=metrics.node_count,
            execution_time=execution_time,
            quality_score=quality_score,
            timestamp=self.clock(),
            user_satisfaction=user_satisfaction,
            density=metrics.density,
            group_count=metrics.group_count,
            average_connectivity=metrics.average_connectivity,
        )
        with self._lock:
            self.history.append(record)
            if len(self.history) > SELECTOR_HISTORY_LIMIT:
                del self.history[:-SELECTOR_HISTORY_KEEP]
        return record

    def record_user_feedback(
        self,
        algorithm_name: str,
        satisfaction: int,
        too_slow: bool = False,
        good_result: bool = False,
    ) -> None:
        """Attach a 1-5 satisfaction rating to the latest run of an algorithm."""
        with self._lock:
            runs = [r for r in self.history if r.algorithm == algorithm_name]
            if not runs:
                return
            latest = max(runs, key=lambda r: r.timestamp)
            latest.user_satisfaction = satisfaction
        if too_slow and self.profile.speed_tolerance == "medium":
            self.profile.speed_tolerance = "low"
        elif good_result and satisfaction >= 4:
            counts = self.profile.preferred_algorithms
            counts[algorithm_name] = counts.get(algorithm_name, 0) + 2

    def _update_profile(self, algorithm: LayoutAlgorithm) -> None:
        with self._lock:
            counts = self.profile.preferred_algorithms
            counts[algorithm.name] = counts.get(algorithm.name, 0) + 1
            self.profile.interaction_frequency += 1

    def reset_session(self) -> None:
        self._session_start = self.clock()
        self._layout_count = 0

    def increment_layout_count(self) -> None:
        self._layout_count += 1

    @property
    def layout_count(self) -> int:
        return self._layout_count

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_configuration(self) -> dict[str, Any]:
        with self._lock:
            return {
                "user_profile": asdict(self.profile),
                "performance_history": [asdict(r) for r in self.history],
                "scoring_weights": asdict(self.weights),
            }

    def import_configuration(self, data: Mapping[str, Any]) -> None:
        with self._lock:
            if "user_profile" in data:
                self.profile = replace(self.profile, **data["user_profile"])
            if "performance_history" in data:
                self.history = [
                    r if isinstance(r, PerformanceRecord) else PerformanceRecord(**r)
                    for r in data["performance_history"]
                ]
            if "scoring_weights" in data:
                self.weights = replace(self.weights, **data["scoring_weights"])

    def get_selection_statistics(self) -> dict[str, Any]:
        with self._lock:
            history = list(self.history)
        usage = Counter(r.algorithm for r in history)
        trends = {}
        for name in usage:
            runs = [r for r in history if r.algorithm == name]
            trends[name] = {
                "average_time": sum(r.execution_time for r in runs) / len(runs),
                "average_quality": sum(r.quality_score for r in runs) / len(runs),
            }
        return {
            "total_selections": len(history),
            "algorithm_usage": dict(usage),
            "average_satisfaction": (
                sum(r.user_satisfaction for r in history) / len(history) if history else 0.0
            ),
            "performance_trends": trends,
        }


def _size_weight(a: int, b: int) -> float:
    if max(a, b) == 0:
        return 1.0
    return min(a, b) / max(a, b)
