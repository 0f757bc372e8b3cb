"""Tests for the force-directed layout."""

import asyncio

import numpy as np
import pytest

from multilayout.layout.errors import LayoutError, LayoutErrorType
from multilayout.layout.force_directed import ForceDirectedLayout, initial_positions
from multilayout.layout.metrics import analyze_graph
from multilayout.parser.model import Node, Position

from graph_fixtures import chain_graph, grouped_graph, make_nodes, with_fixed


@pytest.mark.asyncio
async def test_identity_preserved():
    nodes, edges = grouped_graph()
    result = await ForceDirectedLayout().calculate(nodes, edges, {"iterations": 50})
    assert [n.id for n in result.nodes] == [n.id for n in nodes]
    assert all(np.isfinite([n.position.x, n.position.y]).all() for n in result.nodes)


@pytest.mark.asyncio
async def test_fixed_node_keeps_exact_position():
    nodes, edges = chain_graph(6)
    with_fixed(nodes, "n2", 123.5, 456.25)
    result = await ForceDirectedLayout().calculate(nodes, edges, {"iterations": 80})
    fixed = next(n for n in result.nodes if n.id == "n2")
    assert fixed.position.x == 123.5
    assert fixed.position.y == 456.25
    assert fixed.fixed


@pytest.mark.asyncio
async def test_same_seed_same_layout():
    nodes, edges = chain_graph(10)
    layout = ForceDirectedLayout()
    first = await layout.calculate(nodes, edges, {"iterations": 60, "seed": 7})
    second = await layout.calculate(nodes, edges, {"iterations": 60, "seed": 7})
    assert first.positions() == second.positions()


@pytest.mark.asyncio
async def test_iteration_budget_and_details():
    nodes, edges = chain_graph(5)
    result = await ForceDirectedLayout().calculate(nodes, edges, {"iterations": 25})
    details = result.metadata.details
    assert details["iterations"] == 25
    assert details["converged"]
    assert 0 < details["final_alpha"] < 1
    assert "Low iteration count may produce suboptimal layout" in result.warnings


@pytest.mark.asyncio
async def test_repulsion_spreads_nodes_apart():
    nodes = make_nodes("a", "b", "c", "d")
    result = await ForceDirectedLayout().calculate(nodes, [], {"iterations": 150})
    pts = np.array(list(result.positions().values()))
    gaps = np.hypot(*(pts[:, None, :] - pts[None, :, :]).transpose(2, 0, 1))
    gaps = gaps[np.triu_indices(4, k=1)]
    assert gaps.min() > 50


@pytest.mark.asyncio
async def test_bounds_keep_free_nodes_inside():
    nodes, edges = chain_graph(12)
    bounds = (0.0, 0.0, 400.0, 300.0)
    result = await ForceDirectedLayout().calculate(
        nodes, edges, {"iterations": 100, "bounds": bounds}
    )
    for x, y in result.positions().values():
        assert 0.0 <= x <= 400.0
        assert 0.0 <= y <= 300.0


@pytest.mark.asyncio
async def test_stop_request_ends_run_early():
    nodes, edges = chain_graph(5)
    layout = ForceDirectedLayout()

    sim = layout._build_simulation(nodes, edges, layout.resolve_config({"iterations": 300}))
    step = sim.step

    def step_then_stop():
        layout.stop()
        return step()

    sim.step = step_then_stop
    layout._build_simulation = lambda *args: sim

    result = await layout.calculate(nodes, edges, {"iterations": 300})
    assert result.metadata.details["iterations"] == 1
    assert not result.metadata.details["converged"]


@pytest.mark.asyncio
async def test_stop_event_only_ends_its_own_run():
    nodes, edges = chain_graph(5)
    layout = ForceDirectedLayout()
    stopped = asyncio.Event()
    stopped.set()
    halted, finished = await asyncio.gather(
        layout.calculate(nodes, edges, {"iterations": 50}, stop_event=stopped),
        layout.calculate(nodes, edges, {"iterations": 50}),
    )
    assert halted.metadata.details["iterations"] == 0
    assert halted.metadata.details["stopped"]
    assert finished.metadata.details["iterations"] == 50
    assert not finished.metadata.details["stopped"]
    assert layout.active_runs == 0


@pytest.mark.asyncio
async def test_invalid_initial_positioning():
    nodes, edges = chain_graph(3)
    with pytest.raises(LayoutError) as exc:
        await ForceDirectedLayout().calculate(nodes, edges, {"initial_positioning": "spiral"})
    assert exc.value.error_type == LayoutErrorType.CONFIGURATION_ERROR


def test_initial_positions_grid_and_existing():
    rng = np.random.default_rng(0)
    nodes = [Node(id=f"g{i}") for i in range(4)]
    x, y = initial_positions(nodes, "grid", (0, 0, 800, 600), 100.0, rng)
    assert list(x) == [0, 380, 0, 380]
    assert list(y) == [0, 0, 320, 320]

    nodes[1].position = Position(42.0, 24.0)
    x, y = initial_positions(nodes, "existing", (0, 0, 800, 600), 100.0, rng)
    assert (x[1], y[1]) == (42.0, 24.0)


def test_existing_mode_jitters_unplaced_nodes_around_centre():
    rng = np.random.default_rng(1)
    nodes = [Node(id=f"e{i}") for i in range(20)]
    nodes[0].position = Position(5.0, 7.0)
    x, y = initial_positions(nodes, "existing", (0, 0, 800, 600), 100.0, rng)
    assert (x[0], y[0]) == (5.0, 7.0)
    assert np.all(np.abs(x[1:] - 400) <= 50)
    assert np.all(np.abs(y[1:] - 300) <= 50)
    assert len(set(x[1:])) > 1


def test_initial_positions_circle_centred_in_bounds():
    rng = np.random.default_rng(0)
    nodes = [Node(id=f"c{i}") for i in range(8)]
    x, y = initial_positions(nodes, "circle", (0, 0, 800, 600), 100.0, rng)
    assert np.hypot(x - 400, y - 300) == pytest.approx(np.full(8, 300.0))


def test_suitability_prefers_medium_grouped_graphs():
    layout = ForceDirectedLayout()
    nodes, edges = grouped_graph()
    small = analyze_graph(nodes, edges)
    big_nodes, big_edges = chain_graph(1200)
    big = analyze_graph(big_nodes, big_edges)
    assert layout.suitability(small) > layout.suitability(big)
    assert layout.can_handle(small)
    assert not layout.can_handle(big)
