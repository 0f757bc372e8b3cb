"""Theme definitions for layout previews."""

from multilayout.themes.dark import DARK_THEME
from multilayout.themes.light import LIGHT_THEME

THEMES = {
    "light": LIGHT_THEME,
    "dark": DARK_THEME,
}

__all__ = ["THEMES", "LIGHT_THEME", "DARK_THEME"]
