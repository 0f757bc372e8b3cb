"""Local cluster partitioning and placement.

A local cluster is a connected set of nodes sharing one group label:
two members of the same group land in different clusters when no path
inside the group joins them. Clusters are laid out independently, then
tiled left to right in dependency order.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from multilayout.layout.constants import LAYOUT_ORIGIN
from multilayout.parser.model import Edge, Node

UNGROUPED_CLUSTER = "ungrouped"


@dataclass
class Cluster:
    """A connected same-group node set laid out as one unit."""

    id: str
    group: str | None
    node_ids: list[str] = field(default_factory=list)


def find_local_clusters(nodes: Sequence[Node], edges: Sequence[Edge]) -> list[Cluster]:
    """Partition grouped nodes into connected same-group clusters.

    Clusters are numbered per group (``"<group>_<k>"``) in the order of
    their first node. Ungrouped nodes form one trailing cluster.
    """
    parent = {n.id: n.id for n in nodes}

    def find(x: str) -> str:
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    group_of = {n.id: n.group for n in nodes}
    for edge in edges:
        g = group_of.get(edge.source)
        if g is None or g != group_of.get(edge.target):
            continue
        a, b = find(edge.source), find(edge.target)
        if a != b:
            parent[b] = a

    clusters: dict[str, Cluster] = {}
    per_group: dict[str, int] = defaultdict(int)
    ungrouped = Cluster(UNGROUPED_CLUSTER, None)
    for node in nodes:
        if node.group is None:
            ungrouped.node_ids.append(node.id)
            continue
        root = find(node.id)
        if root not in clusters:
            clusters[root] = Cluster(f"{node.group}_{per_group[node.group]}", node.group)
            per_group[node.group] += 1
        clusters[root].node_ids.append(node.id)

    result = list(clusters.values())
    if ungrouped.node_ids:
        result.append(ungrouped)
    return result


def order_clusters(clusters: list[Cluster], edges: Sequence[Edge]) -> list[Cluster]:
    """Sort clusters so dependencies come first.

    Depth-first over inter-cluster edges, visiting a cluster's upstream
    clusters before the cluster itself. An edge back into a cluster on
    the current path is skipped. The ungrouped cluster always goes last.
    """
    owner = {nid: c.id for c in clusters for nid in c.node_ids}
    by_id = {c.id: c for c in clusters}
    upstream: dict[str, list[str]] = {c.id: [] for c in clusters}
    for edge in edges:
        src, tgt = owner.get(edge.source), owner.get(edge.target)
        if src is None or tgt is None or src == tgt:
            continue
        if src not in upstream[tgt]:
            upstream[tgt].append(src)

    order: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    def visit(cid: str) -> None:
        if cid in visited or cid in visiting:
            return
        visiting.add(cid)
        for dep in upstream[cid]:
            if dep != UNGROUPED_CLUSTER:
                visit(dep)
        visiting.discard(cid)
        visited.add(cid)
        order.append(cid)

    for cluster in clusters:
        if cluster.id != UNGROUPED_CLUSTER:
            visit(cluster.id)
    if UNGROUPED_CLUSTER in by_id:
        order.append(UNGROUPED_CLUSTER)
    return [by_id[cid] for cid in order]


def tile_clusters(
    ordered: Sequence[Cluster],
    cluster_coords: Mapping[str, Mapping[str, tuple[float, float]]],
    node_map: Mapping[str, Node],
    group_spacing: float = 500.0,
    group_padding: float = 120.0,
    origin: float = LAYOUT_ORIGIN,
) -> dict[str, tuple[float, float]]:
    """Shift each cluster's own layout into its column, left to right.

    Each cluster is normalised to its own bounding box, padded by
    ``group_padding`` and separated from the next by ``group_spacing``.
    """
    coords: dict[str, tuple[float, float]] = {}
    current_x = origin
    for cluster in ordered:
        local = cluster_coords[cluster.id]
        if not local:
            continue
        min_x = min(x for x, _ in local.values())
        min_y = min(y for _, y in local.values())
        right = current_x
        for nid, (x, y) in local.items():
            nx_ = x - min_x + current_x + group_padding
            coords[nid] = (nx_, y - min_y + origin + group_padding)
            right = max(right, nx_ + node_map[nid].size.width)
        current_x = right + group_padding + group_spacing
    return coords
