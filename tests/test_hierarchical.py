"""Tests for the layered hierarchical layout."""

import networkx as nx
import pytest

from multilayout.layout.clusters import find_local_clusters, order_clusters
from multilayout.layout.errors import LayoutError, LayoutErrorType
from multilayout.layout.hierarchical import HierarchicalLayout
from multilayout.layout.layers import (
    assign_layers,
    break_cycles,
    layers_to_lists,
    limit_layer_width,
)
from multilayout.layout.metrics import analyze_graph, build_digraph
from multilayout.layout.ordering import barycenter_order, regroup_layers

from graph_fixtures import (
    abc_graph,
    branching_graph,
    chain_graph,
    complete_graph,
    cyclic_graph,
    grouped_graph,
    make_edges,
    make_nodes,
)


def test_layer_assignment_linear():
    nodes, edges = abc_graph()
    layers = assign_layers(build_digraph(nodes, edges))
    assert layers["A"] == 0
    assert layers["B"] == 1
    assert layers["C"] == 2


def test_layer_assignment_branching():
    nodes, edges = branching_graph()
    layers = assign_layers(build_digraph(nodes, edges))
    assert layers["a"] == 0
    # b and c both have a as predecessor, so both at layer 1
    assert layers["b"] == 1
    assert layers["c"] == 1
    # d has b and c as predecessors (both at layer 1), so at layer 2
    assert layers["d"] == 2


def test_layers_to_lists_keeps_node_order():
    nodes, edges = branching_graph()
    lists = layers_to_lists(assign_layers(build_digraph(nodes, edges)))
    assert lists == [["a"], ["b", "c"], ["d"]]


@pytest.mark.parametrize("strategy", ["greedy", "dfs"])
def test_break_cycles_makes_graph_acyclic(strategy):
    nodes, edges = cyclic_graph()
    G = build_digraph(nodes, edges)
    flipped = break_cycles(G, strategy)
    assert flipped
    H = nx.DiGraph()
    H.add_nodes_from(G.nodes)
    for u, v in G.edges:
        H.add_edge(*((v, u) if (u, v) in flipped else (u, v)))
    assert nx.is_directed_acyclic_graph(H)


def test_break_cycles_none_and_unknown():
    nodes, edges = cyclic_graph()
    G = build_digraph(nodes, edges)
    assert break_cycles(G, "none") == []
    with pytest.raises(ValueError):
        break_cycles(G, "random")


def test_reversed_edges_point_forward_in_layers():
    nodes, edges = cyclic_graph()
    G = build_digraph(nodes, edges)
    flipped = set(break_cycles(G))
    layers = assign_layers(G, list(flipped))
    for u, v in G.edges:
        if (u, v) in flipped:
            u, v = v, u
        assert layers[u] < layers[v]


def test_limit_layer_width_splits_wide_layers():
    result = limit_layer_width([["a"], ["b", "c", "d", "e", "f"]], 2)
    assert result == [["a"], ["b", "c"], ["d", "e"], ["f"]]
    assert limit_layer_width([["a", "b"]], 0) == [["a", "b"]]


def test_barycenter_order_follows_predecessors():
    # Predecessors p0, p1 in that order; their children listed reversed
    nodes = make_nodes("p0", "p1", "c1", "c0")
    edges = make_edges(("p0", "c0"), ("p1", "c1"))
    G = build_digraph(nodes, edges)
    ordered = barycenter_order(G, [["p0", "p1"], ["c1", "c0"]])
    assert ordered[1] == ["c0", "c1"]


def test_regroup_layers_makes_groups_contiguous():
    nodes = [
        *make_nodes("a1", "a2", group="a"),
        *make_nodes("b1", group="b"),
    ]
    node_map = {n.id: n for n in nodes}
    assert regroup_layers([["a1", "b1", "a2"]], node_map) == [["a1", "a2", "b1"]]


def test_local_clusters_split_disconnected_group_members():
    nodes = [*make_nodes("x1", "x2", "x3", group="x"), *make_nodes("u")]
    edges = make_edges(("x1", "x2"), ("x2", "u"), ("u", "x3"))
    clusters = find_local_clusters(nodes, edges)
    assert [c.id for c in clusters] == ["x_0", "x_1", "ungrouped"]
    assert clusters[0].node_ids == ["x1", "x2"]
    assert clusters[1].node_ids == ["x3"]


def test_order_clusters_puts_upstream_first():
    nodes, edges = grouped_graph()
    # List the downstream group first
    nodes = nodes[3:] + nodes[:3]
    ordered = order_clusters(find_local_clusters(nodes, edges), edges)
    assert [c.group for c in ordered] == ["ingest", "serve"]


@pytest.mark.asyncio
async def test_abc_chain_flows_left_to_right():
    nodes, edges = abc_graph()
    result = await HierarchicalLayout().calculate(
        nodes, edges, {"group_layout_strategy": "global"}
    )
    pos = result.positions()
    assert pos["A"][0] < pos["B"][0] < pos["C"][0]
    assert result.metadata.total_layers == 3
    assert result.metadata.layers == [["A"], ["B"], ["C"]]


@pytest.mark.asyncio
async def test_identity_and_order_preserved():
    nodes, edges = branching_graph()
    result = await HierarchicalLayout().calculate(nodes, edges)
    assert [n.id for n in result.nodes] == [n.id for n in nodes]
    # Inputs are not mutated
    assert all(n.position.x == 0 and n.position.y == 0 for n in nodes)


@pytest.mark.asyncio
async def test_two_runs_are_identical():
    nodes, edges = complete_graph(8)
    layout = HierarchicalLayout()
    first = await layout.calculate(nodes, edges)
    second = await layout.calculate(nodes, edges)
    assert first.positions() == second.positions()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "direction, axis, sign",
    [("LR", 0, 1), ("RL", 0, -1), ("TB", 1, 1), ("BT", 1, -1)],
)
async def test_directions(direction, axis, sign):
    nodes, edges = chain_graph(4)
    result = await HierarchicalLayout().calculate(
        nodes, edges, {"direction": direction, "group_layout_strategy": "global"}
    )
    pos = result.positions()
    coords = [sign * pos[f"n{i}"][axis] for i in range(4)]
    assert coords == sorted(coords)
    assert len(set(coords)) == 4
    assert min(min(p) for p in pos.values()) >= 0
    assert result.quality.measures.dependency_compliance == pytest.approx(95.0)


@pytest.mark.asyncio
async def test_cycles_are_broken_and_reported():
    nodes, edges = cyclic_graph()
    result = await HierarchicalLayout().calculate(nodes, edges)
    info = result.metadata.cycle_info
    assert info.cycles_detected == 1
    assert info.cycles_broken >= 1
    assert info.cycle_breaking_strategy == "greedy"
    assert not any("unbroken" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_unbroken_cycles_warn():
    nodes, edges = cyclic_graph()
    result = await HierarchicalLayout().calculate(nodes, edges, {"cycle_breaking": "none"})
    assert result.metadata.cycle_info.cycles_broken == 0
    assert any("unbroken" in w for w in result.warnings)
    assert {n.id for n in result.nodes} == {"a", "b", "c", "d"}


@pytest.mark.asyncio
async def test_local_strategy_tiles_groups_in_dependency_order():
    nodes, edges = grouped_graph()
    result = await HierarchicalLayout().calculate(nodes, edges)
    pos = result.positions()
    by_id = {n.id: n for n in result.nodes}
    ingest_right = max(pos[i][0] + by_id[i].size.width for i in ("i1", "i2", "i3"))
    serve_left = min(pos[s][0] for s in ("s1", "s2", "s3"))
    assert ingest_right < serve_left
    assert set(result.metadata.details["clusters"]) == {"ingest_0", "serve_0"}
    assert result.quality.measures.node_overlaps == 100.0


@pytest.mark.asyncio
async def test_local_strategy_reports_cluster_depth_not_sum():
    nodes, edges = grouped_graph()
    result = await HierarchicalLayout().calculate(nodes, edges)
    assert result.metadata.total_layers == 3
    assert result.metadata.layers == [["i1", "s1"], ["i2", "s2"], ["i3", "s3"]]
    assert result.metadata.details["cluster_layers"] == {
        "ingest_0": [["i1"], ["i2"], ["i3"]],
        "serve_0": [["s1"], ["s2"], ["s3"]],
    }


@pytest.mark.asyncio
async def test_hybrid_strategy_keeps_groups_contiguous():
    nodes = [
        *make_nodes("r"),
        *make_nodes("a1", group="a"),
        *make_nodes("b1", group="b"),
        *make_nodes("a2", group="a"),
    ]
    edges = make_edges(("r", "a1"), ("r", "b1"), ("r", "a2"))
    result = await HierarchicalLayout().calculate(
        nodes, edges, {"group_layout_strategy": "hybrid", "minimize_edge_crossings": False}
    )
    assert result.metadata.layers[1] == ["a1", "a2", "b1"]


@pytest.mark.asyncio
async def test_max_nodes_per_layer():
    nodes = make_nodes("root", "c1", "c2", "c3", "c4", "c5")
    edges = make_edges(*[("root", f"c{i}") for i in range(1, 6)])
    result = await HierarchicalLayout().calculate(
        nodes, edges, {"max_nodes_per_layer": 2, "group_layout_strategy": "global"}
    )
    assert all(len(layer) <= 2 for layer in result.metadata.layers)
    assert any("max_nodes_per_layer" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_invalid_direction_is_configuration_error():
    nodes, edges = abc_graph()
    with pytest.raises(LayoutError) as exc:
        await HierarchicalLayout().calculate(nodes, edges, {"direction": "diagonal"})
    assert exc.value.error_type == LayoutErrorType.CONFIGURATION_ERROR


def test_suitability_and_can_handle():
    layout = HierarchicalLayout()
    nodes, edges = chain_graph(30)
    metrics = analyze_graph(nodes, edges)
    assert 0.0 <= layout.suitability(metrics) <= 1.0
    assert layout.suitability(metrics) == pytest.approx(1.0)
    assert layout.can_handle(metrics)
    big_nodes, big_edges = chain_graph(2001)
    assert not layout.can_handle(analyze_graph(big_nodes, big_edges))
