"""SVG preview of a computed layout using drawsvg.

Draws node boxes, group outlines and straight edges. This is a
diagnostic snapshot of positions, not a diagram renderer.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import drawsvg as draw

from multilayout.layout.quality import bounding_box
from multilayout.parser.model import Edge, Node
from multilayout.render.style import Theme


def render_svg(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    theme: Theme,
    width: int | None = None,
    height: int | None = None,
    padding: float = 40.0,
    title: str | None = None,
) -> str:
    """Render positioned nodes and edges to an SVG string."""
    visible = [
        n for n in nodes if math.isfinite(n.position.x) and math.isfinite(n.position.y)
    ]
    if not visible:
        return '<svg xmlns="http://www.w3.org/2000/svg"></svg>'

    min_x, min_y, max_x, max_y = bounding_box(visible)
    title_height = theme.title_font_size + 20 if title else 0.0
    # Shift the layout so its top-left corner sits at the padding
    dx = padding - min_x
    dy = padding + title_height - min_y

    svg_width = width or int(math.ceil(max_x - min_x + padding * 2))
    svg_height = height or int(math.ceil(max_y - min_y + padding * 2 + title_height))

    d = draw.Drawing(svg_width, svg_height)
    d.append(draw.Rectangle(0, 0, svg_width, svg_height, fill=theme.background_color))

    if title:
        d.append(draw.Text(
            title,
            theme.title_font_size,
            padding, padding / 2 + theme.title_font_size,
            fill=theme.title_color,
            font_family=theme.label_font_family,
            font_weight="bold",
        ))

    group_index = _group_indices(visible)
    _render_groups(d, visible, group_index, theme, dx, dy)
    _render_edges(d, visible, edges, theme, dx, dy)
    _render_nodes(d, visible, group_index, theme, dx, dy)

    return d.as_svg()


def _group_indices(nodes: Sequence[Node]) -> dict[str, int]:
    indices: dict[str, int] = {}
    for node in nodes:
        if node.group is not None and node.group not in indices:
            indices[node.group] = len(indices)
    return indices


def _render_groups(
    d: draw.Drawing,
    nodes: Sequence[Node],
    group_index: dict[str, int],
    theme: Theme,
    dx: float,
    dy: float,
    margin: float = 12.0,
) -> None:
    """Outline each group's bounding box behind its members."""
    for group in group_index:
        members = [n for n in nodes if n.group == group]
        x0, y0, x1, y1 = bounding_box(members)
        d.append(draw.Rectangle(
            x0 + dx - margin, y0 + dy - margin,
            x1 - x0 + 2 * margin, y1 - y0 + 2 * margin,
            rx=10, ry=10,
            fill="none",
            stroke=theme.group_stroke,
            stroke_width=1.0,
            stroke_dasharray="6,4",
        ))
        d.append(draw.Text(
            group,
            theme.label_font_size * 0.85,
            x0 + dx - margin + 4, y0 + dy - margin - 4,
            fill=theme.label_color,
            font_family=theme.label_font_family,
        ))


def _clip_to_box(cx: float, cy: float, ox: float, oy: float,
                 half_w: float, half_h: float) -> tuple[float, float]:
    """Point where the segment from (ox, oy) to the box centre (cx, cy) meets the box."""
    vx, vy = ox - cx, oy - cy
    if vx == 0 and vy == 0:
        return cx, cy
    t = min(
        half_w / abs(vx) if vx else math.inf,
        half_h / abs(vy) if vy else math.inf,
    )
    if t >= 1:
        return cx, cy
    return cx + vx * t, cy + vy * t


def _render_edges(
    d: draw.Drawing,
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    theme: Theme,
    dx: float,
    dy: float,
) -> None:
    """Straight centre-to-centre edges with an arrowhead at the target."""
    arrow = draw.Marker(-0.1, -0.5, 0.9, 0.5, scale=6, orient="auto")
    arrow.append(draw.Lines(-0.1, 0.5, -0.1, -0.5, 0.9, 0, fill=theme.edge_color, close=True))

    by_id = {n.id: n for n in nodes}
    for edge in edges:
        src = by_id.get(edge.source)
        tgt = by_id.get(edge.target)
        if src is None or tgt is None or src is tgt:
            continue
        sx = src.position.x + src.size.width / 2 + dx
        sy = src.position.y + src.size.height / 2 + dy
        tx = tgt.position.x + tgt.size.width / 2 + dx
        ty = tgt.position.y + tgt.size.height / 2 + dy
        x1, y1 = _clip_to_box(sx, sy, tx, ty, src.size.width / 2, src.size.height / 2)
        x2, y2 = _clip_to_box(tx, ty, sx, sy, tgt.size.width / 2, tgt.size.height / 2)
        d.append(draw.Line(
            x1, y1, x2, y2,
            stroke=theme.edge_color,
            stroke_width=theme.edge_width * max(0.5, min(edge.weight, 4.0)),
            marker_end=arrow,
        ))


def _render_nodes(
    d: draw.Drawing,
    nodes: Sequence[Node],
    group_index: dict[str, int],
    theme: Theme,
    dx: float,
    dy: float,
) -> None:
    for node in nodes:
        x = node.position.x + dx
        y = node.position.y + dy
        stroke = theme.node_stroke
        if node.fixed and theme.fixed_stroke:
            stroke = theme.fixed_stroke
        d.append(draw.Rectangle(
            x, y, node.size.width, node.size.height,
            rx=theme.node_corner_radius, ry=theme.node_corner_radius,
            fill=theme.group_fill(group_index.get(node.group) if node.group else None),
            stroke=stroke,
            stroke_width=theme.node_stroke_width,
        ))
        d.append(draw.Text(
            node.display_label,
            theme.label_font_size,
            x + node.size.width / 2, y + node.size.height / 2,
            fill=theme.label_color,
            font_family=theme.label_font_family,
            text_anchor="middle",
            dominant_baseline="central",
        ))
