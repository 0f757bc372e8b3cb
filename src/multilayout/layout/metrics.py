"""Structural graph analysis feeding algorithm selection.

Builds a networkx view of the request and reduces it to a GraphMetrics
record. Nothing here is cached: every call analyzes the graph it is
given.
"""

from __future__ import annotations

__all__ = ["analyze_graph", "build_digraph"]

import logging
import random
from collections import Counter
from collections.abc import Sequence

import networkx as nx

from multilayout.layout.constants import (
    CLUSTERING_SAMPLE_SIZE,
    CLUSTERING_SAMPLE_THRESHOLD,
    DEFAULT_SEED,
)
from multilayout.layout.types import GraphMetrics
from multilayout.parser.model import Edge, Node

logger = logging.getLogger(__name__)


def build_digraph(nodes: Sequence[Node], edges: Sequence[Edge]) -> nx.DiGraph:
    """Directed graph over node ids, in input order.

    Edges whose endpoints are not among ``nodes`` are skipped. Parallel
    edges collapse into one, keeping the largest weight.
    """
    G = nx.DiGraph()
    for node in nodes:
        G.add_node(node.id)
    for edge in edges:
        if edge.source not in G or edge.target not in G:
            continue
        if G.has_edge(edge.source, edge.target):
            current = G[edge.source][edge.target]["weight"]
            G[edge.source][edge.target]["weight"] = max(current, edge.weight)
        else:
            G.add_edge(edge.source, edge.target, weight=edge.weight)
    return G


def analyze_graph(nodes: Sequence[Node], edges: Sequence[Edge]) -> GraphMetrics:
    """Compute the structural metrics of a graph."""
    G = build_digraph(nodes, edges)
    n = len(nodes)
    e = len(edges)

    density = e / (n * (n - 1) / 2) if n > 1 else 0.0

    group_sizes = Counter(node.group for node in nodes if node.group is not None)
    group_count = len(group_sizes)
    max_group = max(group_sizes.values()) if group_sizes else 0
    avg_group = sum(group_sizes.values()) / group_count if group_count else 0.0

    degree: Counter[str] = Counter()
    for edge in edges:
        degree[edge.source] += 1
        degree[edge.target] += 1
    avg_conn = sum(degree.values()) / len(degree) if degree else 0.0
    max_conn = max(degree.values()) if degree else 0

    undirected = G.to_undirected(as_view=True)

    metrics = GraphMetrics(
        node_count=n,
        edge_count=e,
        density=density,
        group_count=group_count,
        avg_group_size=avg_group,
        max_group_size=max_group,
        average_connectivity=avg_conn,
        max_connectivity=max_conn,
        has_circular_dependencies=not nx.is_directed_acyclic_graph(G),
        diameter=estimate_diameter(undirected),
        clustering_coefficient=_clustering(undirected),
        is_directed=True,
        strongly_connected_components=(
            nx.number_strongly_connected_components(G) if n else 0
        ),
    )
    logger.debug("Analyzed graph: %s", metrics)
    return metrics


def estimate_diameter(G: nx.Graph) -> int:
    """Double-sweep BFS lower bound on the diameter, max over components.

    From an arbitrary node, BFS to the farthest node, then BFS again from
    there; the second eccentricity is exact on trees and a tight lower
    bound in general.
    """
    best = 0
    for component in nx.connected_components(G):
        start = next(iter(component))
        lengths = nx.single_source_shortest_path_length(G, start)
        far = max(lengths, key=lengths.__getitem__)
        lengths = nx.single_source_shortest_path_length(G, far)
        best = max(best, max(lengths.values()))
    return best


def _clustering(G: nx.Graph) -> float:
    n = G.number_of_nodes()
    if n < 3:
        return 0.0
    if n > CLUSTERING_SAMPLE_THRESHOLD:
        rng = random.Random(DEFAULT_SEED)
        sample = rng.sample(list(G.nodes), CLUSTERING_SAMPLE_SIZE)
        return float(nx.average_clustering(G, nodes=sample))
    return float(nx.average_clustering(G))
