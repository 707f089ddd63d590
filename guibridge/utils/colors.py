"""Color parsing helpers."""

from typing import Tuple

from guibridge.constants import HIGHLIGHT_ALPHA
from guibridge.errors import InvalidArgument


def parse_hex_color(color: str, default_alpha: int = HIGHLIGHT_ALPHA) -> Tuple[int, int, int, int]:
    """Parse '#RRGGBB' or '#RRGGBBAA' into an RGBA tuple.

    Six digit colors get `default_alpha` so highlights stay translucent.
    """
    text = (color or "").strip()
    if text.startswith("#"):
        text = text[1:]
    if len(text) not in (6, 8):
        raise InvalidArgument(f"Invalid color '{color}', expected #RRGGBB or #RRGGBBAA",
                              code="invalid_color")
    try:
        parts = [int(text[i:i + 2], 16) for i in range(0, len(text), 2)]
    except ValueError:
        raise InvalidArgument(f"Invalid color '{color}', expected hex digits", code="invalid_color")
    if len(parts) == 3:
        parts.append(default_alpha)
    return tuple(parts)
