"""Dark theme."""

from multilayout.render.style import Theme

DARK_THEME = Theme(
    name="dark",
    background_color="#2e3440",
    node_fill="#3b4252",
    node_stroke="#d8dee9",
    node_stroke_width=1.5,
    node_corner_radius=6.0,
    edge_color="#81a1c1",
    edge_width=1.5,
    label_color="#eceff4",
    label_font_family="'Helvetica Neue', Helvetica, Arial, sans-serif",
    label_font_size=14.0,
    title_color="#eceff4",
    title_font_size=22.0,
    group_stroke="rgba(255, 255, 255, 0.2)",
    group_palette=["#434c5e", "#4c566a", "#5e4b56", "#4b5e56", "#56504b"],
    fixed_stroke="#bf616a",
)
