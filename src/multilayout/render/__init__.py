"""SVG previews of computed layouts."""

from multilayout.render.svg import render_svg

__all__ = ["render_svg"]
