"""Tests for graph analysis and layout quality scoring."""

import pytest

from multilayout.layout.metrics import analyze_graph, build_digraph, estimate_diameter
from multilayout.layout.quality import (
    count_crossings,
    count_overlaps,
    forward_ratio,
    rate_performance,
    score_quality,
    space_utilization,
)
from multilayout.layout.types import QualityMeasures
from multilayout.parser.model import Edge, Node, Position, Size

from graph_fixtures import chain_graph, cyclic_graph, grouped_graph, make_edges, make_nodes


def test_chain_metrics():
    nodes, edges = chain_graph(3)
    m = analyze_graph(nodes, edges)
    assert m.node_count == 3
    assert m.edge_count == 2
    assert m.density == pytest.approx(2 / 3)
    assert m.average_connectivity == pytest.approx(4 / 3)
    assert m.max_connectivity == 2
    assert m.diameter == 2
    assert m.clustering_coefficient == 0.0
    assert not m.has_circular_dependencies
    assert m.strongly_connected_components == 3
    assert m.is_directed


def test_cycle_detection():
    nodes, edges = cyclic_graph()
    m = analyze_graph(nodes, edges)
    assert m.has_circular_dependencies
    # {a, b, c} and {d}
    assert m.strongly_connected_components == 2


def test_group_metrics():
    nodes, edges = grouped_graph()
    m = analyze_graph(nodes, edges)
    assert m.group_count == 2
    assert m.avg_group_size == 3
    assert m.max_group_size == 3


def test_empty_graph_metrics():
    m = analyze_graph([], [])
    assert m.node_count == 0
    assert m.density == 0.0
    assert m.diameter == 0
    assert m.strongly_connected_components == 0
    assert not m.has_circular_dependencies


def test_triangle_clustering():
    nodes = make_nodes("a", "b", "c")
    edges = make_edges(("a", "b"), ("b", "c"), ("a", "c"))
    assert analyze_graph(nodes, edges).clustering_coefficient == pytest.approx(1.0)


def test_build_digraph_skips_unknown_and_keeps_max_weight():
    nodes = make_nodes("a", "b")
    edges = [
        Edge("e0", "a", "b", weight=1.0),
        Edge("e1", "a", "b", weight=3.0),
        Edge("e2", "a", "ghost"),
    ]
    G = build_digraph(nodes, edges)
    assert G.number_of_edges() == 1
    assert G["a"]["b"]["weight"] == 3.0


def test_diameter_over_components():
    nodes, edges = chain_graph(5)
    extra, extra_edges = chain_graph(2, prefix="x")
    G = build_digraph(nodes + extra, edges + extra_edges).to_undirected()
    assert estimate_diameter(G) == 4


def _at(node_id, x, y, w=100.0, h=50.0):
    return Node(id=node_id, position=Position(x, y), size=Size(w, h))


def test_count_overlaps():
    nodes = [_at("a", 0, 0), _at("b", 50, 25), _at("c", 500, 500)]
    assert count_overlaps(nodes) == 1


def test_touching_boxes_do_not_overlap():
    nodes = [_at("a", 0, 0), _at("b", 100, 0)]
    assert count_overlaps(nodes) == 0


def test_count_crossings_x_shape():
    nodes = [_at("a", 0, 0), _at("b", 400, 400), _at("c", 0, 400), _at("d", 400, 0)]
    edges = make_edges(("a", "b"), ("c", "d"))
    assert count_crossings(nodes, edges) == 1


def test_shared_endpoint_is_not_a_crossing():
    nodes = [_at("a", 0, 0), _at("b", 400, 400), _at("c", 0, 400)]
    edges = make_edges(("a", "b"), ("a", "c"))
    assert count_crossings(nodes, edges) == 0


def test_forward_ratio():
    nodes = [_at("a", 0, 0), _at("b", 200, 0), _at("c", 100, 0)]
    edges = make_edges(("a", "b"), ("b", "c"))
    assert forward_ratio(nodes, edges) == 0.5
    assert forward_ratio(nodes, edges, reverse=True) == 0.5


def test_space_utilization():
    nodes = [_at("a", 0, 0, 100, 100), _at("b", 100, 0, 100, 100)]
    assert space_utilization(nodes) == pytest.approx(1.0)
    nodes = [_at("a", 0, 0, 100, 100), _at("b", 300, 0, 100, 100)]
    assert space_utilization(nodes) == pytest.approx(0.5)


def test_score_quality_penalizes_overlaps():
    baseline = QualityMeasures(90, 90, 90, 90, 90, 90)
    clean = [_at("a", 0, 0), _at("b", 300, 0)]
    stacked = [_at("a", 0, 0), _at("b", 10, 0)]
    edges = make_edges(("a", "b"))
    good = score_quality(baseline, clean, edges, flow_axis="x")
    bad = score_quality(baseline, stacked, edges, flow_axis="x")
    assert good.measures.node_overlaps == 90
    assert bad.measures.node_overlaps < good.measures.node_overlaps
    assert bad.overall_score < good.overall_score
    assert good.improvement_areas == []


def test_score_quality_backward_flow_lowers_compliance():
    baseline = QualityMeasures(100, 90, 90, 90, 90, 90)
    nodes = [_at("a", 300, 0), _at("b", 0, 0)]
    edges = make_edges(("a", "b"))
    result = score_quality(baseline, nodes, edges, flow_axis="x")
    assert result.measures.dependency_compliance == 0
    assert "dependency_compliance" in result.improvement_areas


@pytest.mark.parametrize(
    "elapsed, rating",
    [(100, 5), (700, 4), (2000, 3), (4000, 2), (6000, 1)],
)
def test_rate_performance(elapsed, rating):
    perf = rate_performance(elapsed, {"calculation": elapsed}, (500, 1500, 3000, 5000))
    assert perf.performance_rating == rating
    assert perf.meets_thresholds == (elapsed < 5000)
