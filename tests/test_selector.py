"""Tests for algorithm selection and historical learning."""

import pytest

from multilayout.layout.constraint_based import ConstraintBasedLayout
from multilayout.layout.errors import LayoutError, LayoutErrorType
from multilayout.layout.force_directed import ForceDirectedLayout
from multilayout.layout.hierarchical import HierarchicalLayout
from multilayout.layout.metrics import analyze_graph
from multilayout.layout.selector import (
    AlgorithmSelectionCriteria,
    AlgorithmSelector,
    PerformanceRecord,
    SelectionContext,
    SelectionPreferences,
    SessionContext,
    SystemConstraints,
)

from graph_fixtures import chain_graph, grouped_graph

DAY = 86400.0


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def _algorithms():
    return [ForceDirectedLayout(), HierarchicalLayout(), ConstraintBasedLayout()]


def test_selects_hierarchical_for_long_chain():
    nodes, edges = chain_graph(40)
    result = AlgorithmSelector().select_algorithm(_algorithms(), nodes, edges)
    assert result.algorithm.name == "enhanced-hierarchical"
    assert 0 < result.confidence <= 1
    assert result.reasoning[0].startswith("Selected Enhanced Hierarchical")
    assert len(result.alternatives) == 2


def test_accepts_mapping_of_algorithms():
    nodes, edges = chain_graph(40)
    registry = {a.name: a for a in _algorithms()}
    result = AlgorithmSelector().select_algorithm(registry, nodes, edges)
    assert result.algorithm.name in registry


def test_preferred_algorithm_scores_full_preference():
    nodes, edges = grouped_graph()
    selector = AlgorithmSelector()
    metrics = analyze_graph(nodes, edges)
    criteria = AlgorithmSelectionCriteria(
        preferences=SelectionPreferences(preferred_algorithm="force-directed"),
    )
    factors = selector.factor_scores(ForceDirectedLayout(), metrics, criteria)
    assert factors["user_preference"] == 1.0
    assert set(factors) == {
        "suitability", "performance", "quality",
        "user_preference", "system_fit", "context_relevance",
    }


def test_unknown_strategy_is_configuration_error():
    nodes, edges = chain_graph(3)
    with pytest.raises(LayoutError) as exc:
        AlgorithmSelector().select_algorithm(_algorithms(), nodes, edges, strategy="fastest")
    assert exc.value.error_type == LayoutErrorType.CONFIGURATION_ERROR


def test_no_capable_algorithm_is_unsupported_graph():
    nodes, edges = chain_graph(2500)
    with pytest.raises(LayoutError) as exc:
        AlgorithmSelector().select_algorithm(_algorithms(), nodes, edges)
    assert exc.value.error_type == LayoutErrorType.UNSUPPORTED_GRAPH


def test_criteria_do_not_carry_metrics():
    nodes, edges = chain_graph(10)
    with pytest.raises(TypeError):
        AlgorithmSelectionCriteria(metrics=analyze_graph(nodes, edges))


def test_select_for_metrics_filters_on_given_metrics():
    big_nodes, big_edges = chain_graph(2500)
    with pytest.raises(LayoutError) as exc:
        AlgorithmSelector().select_for_metrics(
            _algorithms(), analyze_graph(big_nodes, big_edges)
        )
    assert exc.value.error_type == LayoutErrorType.UNSUPPORTED_GRAPH

    nodes, edges = chain_graph(600)
    result = AlgorithmSelector().select_for_metrics(_algorithms(), analyze_graph(nodes, edges))
    assert result.algorithm.name != "constraint-based"
    assert "constraint-based" not in {alt.algorithm.name for alt in result.alternatives}


def test_performance_factor_defaults_without_history():
    nodes, edges = chain_graph(10)
    metrics = analyze_graph(nodes, edges)
    factors = AlgorithmSelector().factor_scores(HierarchicalLayout(), metrics)
    assert factors["performance"] == 0.5
    assert factors["quality"] == 0.85


def test_performance_factor_uses_similar_sized_runs_only():
    clock = FakeClock()
    nodes, edges = chain_graph(100)
    metrics = analyze_graph(nodes, edges)
    history = [
        PerformanceRecord("force-directed", 100, 100.0, 100.0, clock.now),
        # Far too large to count for a 100-node graph
        PerformanceRecord("force-directed", 1000, 100000.0, 1.0, clock.now),
    ]
    selector = AlgorithmSelector(history=history, clock=clock)
    score = selector.factor_scores(ForceDirectedLayout(), metrics)["performance"]
    # time / quality = 1 ms per point -> 1 / (1 + 0.01)
    assert score == pytest.approx(1 / 1.01)


def test_recency_weight_decays_to_floor():
    clock = FakeClock()
    selector = AlgorithmSelector(clock=clock)
    assert selector.recency_weight(clock.now) == 1.0
    assert selector.recency_weight(clock.now - 30 * DAY) == pytest.approx(0.3679, abs=1e-3)
    assert selector.recency_weight(clock.now - 365 * DAY) == 0.1


def test_quality_factor_learns_from_history():
    nodes, edges = chain_graph(10)
    metrics = analyze_graph(nodes, edges)
    selector = AlgorithmSelector()
    selector.record_performance("enhanced-hierarchical", 50.0, 60.0, metrics)
    selector.record_performance("enhanced-hierarchical", 50.0, 80.0, metrics)
    assert selector.factor_scores(HierarchicalLayout(), metrics)["quality"] == pytest.approx(0.7)


def test_system_fit_penalties():
    nodes, edges = chain_graph(300)
    metrics = analyze_graph(nodes, edges)
    selector = AlgorithmSelector()
    context = SelectionContext(
        system=SystemConstraints(cpu_performance="low", available_memory=512, power_constraints=True)
    )
    force = selector.factor_scores(ForceDirectedLayout(), metrics, context=context)
    assert force["system_fit"] == pytest.approx(0.7 * 0.8 * 0.9)
    constraint = selector.factor_scores(ConstraintBasedLayout(), metrics, context=context)
    assert constraint["system_fit"] == pytest.approx(0.6 * 0.8 * 0.9)


def test_slow_history_halves_system_fit():
    nodes, edges = chain_graph(20)
    metrics = analyze_graph(nodes, edges)
    selector = AlgorithmSelector()
    selector.record_performance("force-directed", 20000.0, 80.0, metrics)
    assert selector.factor_scores(ForceDirectedLayout(), metrics)["system_fit"] == 0.5


def test_context_relevance():
    nodes, edges = chain_graph(20)
    metrics = analyze_graph(nodes, edges)
    selector = AlgorithmSelector()
    context = SelectionContext(session=SessionContext(task_type="exploration", urgency="high"))
    selector.record_performance("force-directed", 100.0, 80.0, metrics)
    factors = selector.factor_scores(ForceDirectedLayout(), metrics, context=context)
    assert factors["context_relevance"] == 1.0
    # No history: assumed too slow for the urgency bonus
    factors = selector.factor_scores(ConstraintBasedLayout(), metrics, context=context)
    assert factors["context_relevance"] == 0.5


def test_selection_updates_profile_and_statistics():
    nodes, edges = chain_graph(40)
    selector = AlgorithmSelector()
    result = selector.select_algorithm(_algorithms(), nodes, edges)
    assert selector.profile.preferred_algorithms == {result.algorithm.name: 1}
    assert selector.profile.interaction_frequency == 1

    metrics = analyze_graph(nodes, edges)
    selector.record_performance(result.algorithm.name, 120.0, 90.0, metrics)
    stats = selector.get_selection_statistics()
    assert stats["total_selections"] == 1
    assert stats["algorithm_usage"] == {result.algorithm.name: 1}
    assert stats["average_satisfaction"] == 3


def test_user_feedback():
    nodes, edges = chain_graph(10)
    metrics = analyze_graph(nodes, edges)
    selector = AlgorithmSelector()
    selector.record_performance("force-directed", 100.0, 80.0, metrics)
    selector.record_user_feedback("force-directed", 5, good_result=True)
    assert selector.history[-1].user_satisfaction == 5
    assert selector.profile.preferred_algorithms["force-directed"] == 2

    selector.record_user_feedback("force-directed", 2, too_slow=True)
    assert selector.profile.speed_tolerance == "low"


def test_history_is_trimmed():
    nodes, edges = chain_graph(10)
    metrics = analyze_graph(nodes, edges)
    selector = AlgorithmSelector()
    for i in range(1001):
        selector.record_performance("force-directed", float(i), 80.0, metrics)
    assert len(selector.history) == 800
    assert selector.history[-1].execution_time == 1000.0


def test_export_import_round_trip():
    nodes, edges = chain_graph(10)
    metrics = analyze_graph(nodes, edges)
    source = AlgorithmSelector()
    source.record_performance("constraint-based", 300.0, 88.0, metrics)
    source.profile.quality_expectations = "excellent"

    target = AlgorithmSelector()
    target.import_configuration(source.export_configuration())
    assert target.profile.quality_expectations == "excellent"
    assert len(target.history) == 1
    assert target.history[0].algorithm == "constraint-based"
    assert target.weights == source.weights


def test_session_counters():
    clock = FakeClock()
    selector = AlgorithmSelector(clock=clock)
    selector.increment_layout_count()
    selector.increment_layout_count()
    assert selector.layout_count == 2
    selector.reset_session()
    assert selector.layout_count == 0
