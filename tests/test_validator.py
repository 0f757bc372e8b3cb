"""Tests for layout validation."""

import math

import pytest

from multilayout.layout.hierarchical import HierarchicalLayout
from multilayout.layout.validator import (
    Severity,
    ValidationOptions,
    check_bounds,
    check_coordinates,
    check_dependency_flow,
    check_spacing,
    layer_balance,
    validate_layout,
)
from multilayout.parser.model import LayoutGraph, Node, Position

from graph_fixtures import abc_graph, chain_graph, make_edges, make_nodes


def _graph(nodes, edges):
    return LayoutGraph(nodes=list(nodes), edges=list(edges))


@pytest.mark.asyncio
async def test_hierarchical_chain_is_valid():
    nodes, edges = abc_graph()
    result = await HierarchicalLayout().calculate(nodes, edges)
    report = validate_layout(_graph(nodes, edges), result.metadata.layers, result.nodes)
    assert report.is_valid
    assert not report.errors_of(Severity.CRITICAL)
    assert report.score > 0.9
    assert report.metrics.dependency_compliance == 1.0
    assert report.metrics.layer_balance == 1.0


def test_backward_edge_is_critical_in_strict_mode():
    graph = _graph(*abc_graph())
    positions = {"A": (500, 50), "B": (50, 50), "C": (1000, 50)}
    report = validate_layout(graph, None, positions)
    assert not report.is_valid
    errors = report.errors_of(Severity.CRITICAL)
    assert [e.type for e in errors] == ["dependency_violation"]
    assert errors[0].node_ids == ["A", "B"]
    assert report.suggestions[0].title == "Fix Dependency Flow"
    assert report.suggestions[0].estimated_improvement == 0.8


def test_backward_edge_is_high_in_lenient_mode():
    graph = _graph(*abc_graph())
    positions = {"A": (500, 50), "B": (50, 50), "C": (1000, 50)}
    report = validate_layout(
        graph, None, positions, ValidationOptions(strict_dependency_checking=False)
    )
    assert report.is_valid
    assert report.errors[0].severity == Severity.HIGH


def test_vertical_flow_axis():
    graph = _graph(*abc_graph())
    positions = {"A": (50, 50), "B": (50, 400), "C": (50, 800)}
    report = validate_layout(graph, None, positions, ValidationOptions(flow_axis="y"))
    assert not check_dependency_flow(graph, positions, axis="y")
    assert report.is_valid


def test_reversed_flow():
    graph = _graph(*abc_graph())
    positions = {"A": (50, 800), "B": (50, 400), "C": (50, 50)}
    assert check_dependency_flow(graph, positions, axis="y")
    assert not check_dependency_flow(graph, positions, axis="y", reverse=True)
    report = validate_layout(
        graph, None, positions, ValidationOptions(flow_axis="y", flow_reversed=True)
    )
    assert report.is_valid
    errors = check_dependency_flow(graph, {"A": (0, 0), "B": (500, 0), "C": (900, 0)},
                                   reverse=True)
    assert len(errors) == 2
    assert "(0.0 <= 500.0)" in errors[0].message


def test_missing_position_is_critical():
    graph = _graph(*abc_graph())
    errors = check_dependency_flow(graph, {"A": (0, 0), "B": (500, 0)})
    assert [e.type for e in errors] == ["missing_position"]
    assert errors[0].severity == Severity.CRITICAL
    assert errors[0].node_ids == ["C"]


def test_coordinate_checks():
    nodes = make_nodes("nan", "neg", "far", "ok")
    graph = _graph(nodes, [])
    positions = {
        "nan": (math.nan, 0.0),
        "neg": (-5.0, 10.0),
        "far": (20000.0, 10.0),
        "ok": (10.0, 10.0),
    }
    errors = {e.node_ids[0]: e.severity for e in check_coordinates(graph, positions)}
    assert errors == {
        "nan": Severity.CRITICAL,
        "neg": Severity.HIGH,
        "far": Severity.MEDIUM,
    }


def test_non_finite_positions_do_not_break_other_checks():
    nodes, edges = chain_graph(2)
    positions = {"n0": (math.inf, 0.0), "n1": (500.0, 0.0)}
    report = validate_layout(_graph(nodes, edges), None, positions)
    assert not report.is_valid
    assert any(e.type == "invalid_coordinates" for e in report.errors)
    assert math.isfinite(report.score)


def test_spacing_severity():
    nodes = make_nodes("a", "b", "c")
    graph = _graph(nodes, [])
    positions = {"a": (0, 0), "b": (50, 0), "c": (0, 100)}
    errors = check_spacing(graph, positions)
    by_pair = {tuple(e.node_ids): e.severity for e in errors}
    # threshold 145: a-b at 50 is critical, a-c at 100 and b-c at ~112 are high
    assert by_pair[("a", "b")] == Severity.CRITICAL
    assert by_pair[("a", "c")] == Severity.HIGH
    assert by_pair[("b", "c")] == Severity.HIGH

    minor_ok = check_spacing(graph, positions, allow_minor_overlaps=True)
    assert [tuple(e.node_ids) for e in minor_ok] == [("a", "b")]


def test_bounds():
    nodes = make_nodes("a", "b")
    graph = _graph(nodes, [])
    errors = check_bounds(graph, {"a": (0, 0), "b": (6000, 0)})
    assert len(errors) == 1
    assert errors[0].severity == Severity.MEDIUM
    assert not check_bounds(graph, {"a": (0, 0), "b": (4000, 0)})


def test_layer_balance():
    assert layer_balance([["a"], ["b"], ["c"]]) == 1.0
    assert layer_balance([]) == 1.0
    assert layer_balance([["a"], ["b", "c", "d", "e", "f", "g", "h"]]) == pytest.approx(0.25)


def test_unbalanced_and_wide_layers_warn():
    ids = [f"w{i}" for i in range(10)]
    nodes = make_nodes("root", *ids)
    edges = make_edges(*[("root", i) for i in ids])
    positions = {"root": (0, 0)}
    positions.update({nid: (500, 300 * k) for k, nid in enumerate(ids)})
    report = validate_layout(_graph(nodes, edges), [["root"], ids], positions)
    kinds = {w.type for w in report.warnings}
    assert {"layer_balance", "layer_width"} <= kinds
    assert any(s.title == "Balance Layer Distribution" for s in report.suggestions)


def test_crossing_warning():
    # Eleven edges all crossing one long edge
    top = [f"t{i}" for i in range(11)]
    bottom = [f"b{i}" for i in range(11)]
    nodes = make_nodes("l", "r", *top, *bottom)
    edges = make_edges(("l", "r"), *zip(top, bottom))
    positions = {"l": (0, 1000), "r": (5000, 1000)}
    for i in range(11):
        positions[f"t{i}"] = (400 * (i + 1), 0)
        positions[f"b{i}"] = (400 * (i + 1) + 10, 2000)
    report = validate_layout(
        _graph(nodes, edges), None, positions,
        ValidationOptions(max_width=10000, max_height=10000),
    )
    assert report.metrics.edge_crossings == 11
    assert any(w.type == "edge_crossings" for w in report.warnings)
    assert any(s.title == "Minimize Edge Crossings" for s in report.suggestions)


def test_large_graph_warning():
    nodes, edges = chain_graph(5)
    positions = {f"n{i}": (i * 500.0, 0.0) for i in range(5)}
    report = validate_layout(
        _graph(nodes, edges), None, positions, ValidationOptions(max_nodes=3)
    )
    assert any(w.type == "large_graph" for w in report.warnings)


def test_sparse_layout_suggests_reducing_spacing():
    nodes, edges = chain_graph(2)
    positions = {"n0": (0.0, 0.0), "n1": (3000.0, 2000.0)}
    report = validate_layout(_graph(nodes, edges), None, positions)
    assert any(s.title == "Reduce Spacing" for s in report.suggestions)


def test_accepts_nodes_or_mapping():
    nodes, edges = abc_graph()
    placed = [
        Node(id=n.id, position=Position(50 + 500 * i, 50))
        for i, n in enumerate(nodes)
    ]
    from_nodes = validate_layout(_graph(nodes, edges), None, placed)
    from_mapping = validate_layout(
        _graph(nodes, edges), None, {n.id: n.position for n in placed}
    )
    assert from_nodes.score == from_mapping.score
