"""Reader and writer for JSON graph documents.

A document looks like::

    {
      "nodes": [
        {"id": "a", "position": {"x": 0, "y": 0}, "size": {"width": 280, "height": 220},
         "group": "ingest", "fixed": false, "type": "service", "label": "A"}
      ],
      "edges": [{"id": "e0", "source": "a", "target": "b", "weight": 1.0}]
    }

Only ``id`` is required on nodes and only ``source``/``target`` on edges.
Positions and sizes may also be given as two-element lists.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from multilayout.layout.errors import LayoutError, LayoutErrorType
from multilayout.layout.types import LayoutResult
from multilayout.parser.model import Edge, LayoutGraph, Node, Position, Size


def _invalid(message: str) -> LayoutError:
    return LayoutError(
        message,
        LayoutErrorType.INVALID_INPUT,
        suggestions=["Check the document against the graph JSON format"],
    )


def _pair(value: Any, keys: tuple[str, str], what: str) -> tuple[float, float]:
    if isinstance(value, dict):
        try:
            return float(value.get(keys[0], 0.0)), float(value.get(keys[1], 0.0))
        except (TypeError, ValueError) as e:
            raise _invalid(f"Invalid {what}: {value!r}") from e
    if isinstance(value, (list, tuple)) and len(value) == 2:
        try:
            return float(value[0]), float(value[1])
        except (TypeError, ValueError) as e:
            raise _invalid(f"Invalid {what}: {value!r}") from e
    raise _invalid(f"Invalid {what}: {value!r}")


def _parse_node(raw: Any, index: int) -> Node:
    if not isinstance(raw, dict) or "id" not in raw:
        raise _invalid(f"Node #{index} must be an object with an 'id'")
    node = Node(id=str(raw["id"]))
    if raw.get("position") is not None:
        node.position = Position(*_pair(raw["position"], ("x", "y"), "position"))
    if raw.get("size") is not None:
        node.size = Size(*_pair(raw["size"], ("width", "height"), "size"))
    if raw.get("group") is not None:
        node.group = str(raw["group"])
    if raw.get("type") is not None:
        node.type = str(raw["type"])
    node.fixed = bool(raw.get("fixed", False))
    node.label = str(raw.get("label", ""))
    return node


def _parse_edge(raw: Any, index: int) -> Edge:
    if not isinstance(raw, dict) or "source" not in raw or "target" not in raw:
        raise _invalid(f"Edge #{index} must be an object with 'source' and 'target'")
    try:
        weight = float(raw.get("weight", 1.0))
    except (TypeError, ValueError) as e:
        raise _invalid(f"Edge #{index} has invalid weight {raw.get('weight')!r}") from e
    return Edge(
        id=str(raw.get("id", f"e{index}")),
        source=str(raw["source"]),
        target=str(raw["target"]),
        weight=weight,
    )


def parse_graph_json(text: str) -> LayoutGraph:
    """Parse a JSON graph document into a LayoutGraph.

    Raises LayoutError(INVALID_INPUT) on malformed documents. Referential
    checks (unknown endpoints, duplicate ids) are left to the engine.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise _invalid(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise _invalid("Graph document must be a JSON object")

    raw_nodes = data.get("nodes", [])
    raw_edges = data.get("edges", [])
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise _invalid("'nodes' and 'edges' must be lists")

    graph = LayoutGraph()
    for i, raw in enumerate(raw_nodes):
        graph.add_node(_parse_node(raw, i))
    for i, raw in enumerate(raw_edges):
        graph.add_edge(_parse_edge(raw, i))
    return graph


def node_to_dict(node: Node) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": node.id,
        "position": {"x": node.position.x, "y": node.position.y},
        "size": {"width": node.size.width, "height": node.size.height},
    }
    if node.group is not None:
        data["group"] = node.group
    if node.type is not None:
        data["type"] = node.type
    if node.fixed:
        data["fixed"] = True
    if node.label:
        data["label"] = node.label
    return data


def graph_to_dict(graph: LayoutGraph) -> dict[str, Any]:
    return {
        "nodes": [node_to_dict(n) for n in graph.nodes],
        "edges": [asdict(e) for e in graph.edges],
    }


def result_to_dict(result: LayoutResult) -> dict[str, Any]:
    """JSON-ready view of a layout result."""
    return {
        "nodes": [node_to_dict(n) for n in result.nodes],
        "metadata": asdict(result.metadata),
        "performance": asdict(result.performance),
        "quality": asdict(result.quality),
        "recommendations": list(result.recommendations),
        "warnings": list(result.warnings),
    }


def dump_json(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, default=str)
