"""Theme for layout previews."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Theme:
    """Visual theme for a layout preview."""

    name: str
    background_color: str
    node_fill: str
    node_stroke: str
    node_stroke_width: float
    node_corner_radius: float
    edge_color: str
    edge_width: float
    label_color: str
    label_font_family: str
    label_font_size: float
    title_color: str
    title_font_size: float
    group_stroke: str
    # Fill per group label, cycled in first-seen order
    group_palette: list[str] = field(default_factory=list)
    fixed_stroke: str = ""  # empty = inherit node_stroke

    def group_fill(self, index: int | None) -> str:
        if index is None or not self.group_palette:
            return self.node_fill
        return self.group_palette[index % len(self.group_palette)]
