"""Light theme."""

from multilayout.render.style import Theme

LIGHT_THEME = Theme(
    name="light",
    background_color="#ffffff",
    node_fill="#f5f5f5",
    node_stroke="#333333",
    node_stroke_width=1.5,
    node_corner_radius=6.0,
    edge_color="#888888",
    edge_width=1.5,
    label_color="#222222",
    label_font_family="'Helvetica Neue', Helvetica, Arial, sans-serif",
    label_font_size=14.0,
    title_color="#111111",
    title_font_size=22.0,
    group_stroke="rgba(0, 0, 0, 0.15)",
    group_palette=["#e3f2fd", "#e8f5e9", "#fff3e0", "#f3e5f5", "#fce4ec", "#e0f7fa"],
    fixed_stroke="#d32f2f",
)
