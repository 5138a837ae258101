"""
Category color helpers.

Colors are kept as ``#RRGGBB`` strings.
"""

import random

from PIL import ImageColor


def random_color() -> str:
    """Generate a random opaque color."""
    return "#{:02X}{:02X}{:02X}".format(
        random.randint(0, 255), random.randint(0, 255), random.randint(0, 255)
    )


def rgb_to_hex(rgb: tuple) -> str:
    """Format an RGB(A) tuple as an uppercase ``#RRGGBB`` string (alpha dropped)."""
    r, g, b = rgb[:3]
    return f"#{r:02X}{g:02X}{b:02X}"


def parse_color(value: str) -> str:
    """
    Parse a web color (hex or CSS name) into ``#RRGGBB``.

    Raises:
        ValueError: if the value is not a color Pillow understands
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid color: {value!r}")
    return rgb_to_hex(ImageColor.getrgb(value.strip()))
