"""Within-layer ordering and coordinate assignment.

Barycenter crossing reduction orders each layer by the mean index of
its predecessors in the previous layer. Coordinates are then assigned
layer by layer: the primary axis follows the layer index, the secondary
axis the order within the layer.
"""

from __future__ import annotations

__all__ = ["assign_coordinates", "barycenter_order", "regroup_layers"]

import random
from collections.abc import Mapping

import networkx as nx

from multilayout.layout.constants import DEFAULT_SEED, LAYOUT_ORIGIN
from multilayout.parser.model import Node


def barycenter_order(
    G: nx.DiGraph,
    layer_lists: list[list[str]],
    seed: int = DEFAULT_SEED,
) -> list[list[str]]:
    """Reorder every layer after the first by predecessor barycenter.

    Nodes with no predecessor in the previous layer draw a random key in
    [0, 1) from a generator seeded with ``seed``, so the result is
    reproducible. Sorting is stable.
    """
    rng = random.Random(seed)
    ordered = [list(layer_lists[0])] if layer_lists else []
    for layer in layer_lists[1:]:
        prev_index = {node: i for i, node in enumerate(ordered[-1])}
        keys: dict[str, float] = {}
        for node in layer:
            preds = [prev_index[p] for p in G.predecessors(node) if p in prev_index]
            if preds:
                keys[node] = sum(preds) / len(preds)
            else:
                keys[node] = rng.random()
        ordered.append(sorted(layer, key=keys.__getitem__))
    return ordered


def regroup_layers(
    layer_lists: list[list[str]], node_map: Mapping[str, Node]
) -> list[list[str]]:
    """Make same-group nodes contiguous inside each layer.

    Groups appear in the order their first member appears in the layer;
    ungrouped nodes form their own run.
    """
    result = []
    for layer in layer_lists:
        first_seen: dict[str | None, int] = {}
        for i, node in enumerate(layer):
            first_seen.setdefault(node_map[node].group, i)
        result.append(sorted(layer, key=lambda n: first_seen[node_map[n].group]))
    return result


def assign_coordinates(
    layer_lists: list[list[str]],
    node_map: Mapping[str, Node],
    direction: str = "LR",
    rank_separation: float = 200.0,
    node_separation: float = 150.0,
    group_gap: float = 0.0,
    origin: float = LAYOUT_ORIGIN,
) -> dict[str, tuple[float, float]]:
    """Place layered nodes on a grid of ranks.

    Each rank is as deep as its largest node along the primary axis and
    nodes are centred within it. ``group_gap`` adds extra secondary-axis
    space wherever consecutive nodes of a rank belong to different
    groups. ``RL`` and ``BT`` mirror ``LR`` and ``TB`` so every edge of
    the layering still points along the flow direction.

    Returns a dict mapping node id -> (x, y) of the node's top-left
    corner.
    """
    horizontal = direction in ("LR", "RL")

    def depth(node: Node) -> float:
        return node.size.width if horizontal else node.size.height

    def breadth(node: Node) -> float:
        return node.size.height if horizontal else node.size.width

    coords: dict[str, tuple[float, float]] = {}
    rank_start: list[float] = []
    rank_depth: list[float] = []
    primary = origin
    for layer in layer_lists:
        if not layer:
            continue
        d = max(depth(node_map[n]) for n in layer)
        secondary = origin
        prev_group: str | None = None
        for i, node_id in enumerate(layer):
            node = node_map[node_id]
            if i > 0 and group_gap and node.group != prev_group:
                secondary += group_gap
            offset = (d - depth(node)) / 2
            coords[node_id] = (primary + offset, secondary)
            secondary += breadth(node) + node_separation
            prev_group = node.group
        rank_start.append(primary)
        rank_depth.append(d)
        primary += d + rank_separation

    if direction in ("RL", "BT") and coords:
        # Mirror the primary axis inside the occupied extent
        extent = rank_start[-1] + rank_depth[-1]
        coords = {
            n: (extent - p - depth(node_map[n]) + origin, s)
            for n, (p, s) in coords.items()
        }

    if horizontal:
        return coords
    return {n: (s, p) for n, (p, s) in coords.items()}
