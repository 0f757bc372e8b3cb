"""Layer assignment for hierarchical layout (primary-axis positioning).

Uses longest-path layering in Kahn order so every edge points from a
lower layer to a higher one. Graphs with cycles are first made acyclic
by reversing a feedback arc set; with cycle breaking disabled, cycle
members keep the best layer found before processing stalls.
"""

from __future__ import annotations

__all__ = ["assign_layers", "break_cycles", "layers_to_lists", "limit_layer_width"]

import logging
from collections import deque

import networkx as nx

logger = logging.getLogger(__name__)


def break_cycles(G: nx.DiGraph, strategy: str = "greedy") -> list[tuple[str, str]]:
    """Return the edges to reverse so that ``G`` becomes acyclic.

    ``greedy`` is the Eades-Lin-Smyth heuristic: repeatedly peel sinks to
    the back and sources to the front, otherwise move the node with the
    largest out-minus-in degree to the front; edges pointing backwards in
    the resulting order are reversed. ``dfs`` reverses the back edges of
    a depth-first search in node order. Self-loops are always dropped
    rather than reversed. ``none`` reverses nothing.
    """
    if strategy == "none":
        return []
    if strategy == "dfs":
        return _dfs_back_edges(G)
    if strategy == "greedy":
        return _greedy_feedback_arcs(G)
    raise ValueError(f"Unknown cycle breaking strategy: {strategy!r}")


def _dfs_back_edges(G: nx.DiGraph) -> list[tuple[str, str]]:
    state: dict[str, int] = {}  # 1 = on stack, 2 = done
    back: list[tuple[str, str]] = []
    for root in G.nodes:
        if root in state:
            continue
        state[root] = 1
        stack = [(root, iter(G.successors(root)))]
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                state[node] = 2
                stack.pop()
            elif child not in state:
                state[child] = 1
                stack.append((child, iter(G.successors(child))))
            elif state[child] == 1 and child != node:
                back.append((node, child))
    return back


def _greedy_feedback_arcs(G: nx.DiGraph) -> list[tuple[str, str]]:
    order_index = {node: i for i, node in enumerate(G.nodes)}
    remaining = set(G.nodes)
    in_deg = {n: sum(1 for p in G.predecessors(n) if p != n) for n in G.nodes}
    out_deg = {n: sum(1 for s in G.successors(n) if s != n) for n in G.nodes}
    front: list[str] = []
    back: list[str] = []

    def remove(node: str) -> None:
        remaining.discard(node)
        for s in G.successors(node):
            if s in remaining and s != node:
                in_deg[s] -= 1
        for p in G.predecessors(node):
            if p in remaining and p != node:
                out_deg[p] -= 1

    while remaining:
        changed = True
        while changed:
            changed = False
            for node in sorted(remaining, key=order_index.__getitem__):
                if out_deg[node] == 0:
                    back.append(node)
                    remove(node)
                    changed = True
            for node in sorted(remaining, key=order_index.__getitem__):
                if in_deg[node] == 0:
                    front.append(node)
                    remove(node)
                    changed = True
        if remaining:
            pick = max(
                sorted(remaining, key=order_index.__getitem__),
                key=lambda n: out_deg[n] - in_deg[n],
            )
            front.append(pick)
            remove(pick)

    position = {node: i for i, node in enumerate(front + back[::-1])}
    return [
        (u, v) for u, v in G.edges
        if u != v and position[u] > position[v]
    ]


def assign_layers(
    G: nx.DiGraph, reversed_edges: list[tuple[str, str]] | None = None
) -> dict[str, int]:
    """Assign each node to a layer (integer primary-axis position).

    Each node's layer is 1 + the maximum layer of its predecessors,
    computed in Kahn order over ``G`` with ``reversed_edges`` flipped and
    self-loops ignored. Nodes still blocked by a cycle when the queue
    empties keep the layer accumulated from their resolved predecessors.

    Returns a dict mapping node id -> layer number (0-based), in the
    node order of ``G``.
    """
    flipped = set(reversed_edges or [])
    succ: dict[str, list[str]] = {n: [] for n in G.nodes}
    in_deg = dict.fromkeys(G.nodes, 0)
    for u, v in G.edges:
        if u == v:
            continue
        if (u, v) in flipped:
            u, v = v, u
        succ[u].append(v)
        in_deg[v] += 1

    layer = dict.fromkeys(G.nodes, 0)
    queue = deque(n for n in G.nodes if in_deg[n] == 0)
    processed = 0
    while queue:
        node = queue.popleft()
        processed += 1
        for s in succ[node]:
            layer[s] = max(layer[s], layer[node] + 1)
            in_deg[s] -= 1
            if in_deg[s] == 0:
                queue.append(s)

    if processed < G.number_of_nodes():
        logger.debug(
            "%d nodes left unresolved by cycles", G.number_of_nodes() - processed
        )
    return layer


def layers_to_lists(layers: dict[str, int]) -> list[list[str]]:
    """Group node ids by layer, keeping their relative order."""
    if not layers:
        return []
    result: list[list[str]] = [[] for _ in range(max(layers.values()) + 1)]
    for node, idx in layers.items():
        result[idx].append(node)
    return [layer for layer in result if layer]


def limit_layer_width(layer_lists: list[list[str]], max_width: int) -> list[list[str]]:
    """Split layers wider than ``max_width`` into consecutive layers.

    Nodes of one longest-path layer have no edges among themselves, so
    the split keeps every edge pointing forward.
    """
    if max_width <= 0:
        return layer_lists
    result: list[list[str]] = []
    for layer in layer_lists:
        for start in range(0, len(layer), max_width):
            result.append(layer[start:start + max_width])
    return result
