"""
Time-bounded highlight rectangles painted over the target's UI.
"""

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from PIL import Image, ImageDraw

from guibridge.core.models import Bounds

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int, int]

OUTLINE_WIDTH = 3


@dataclass(frozen=True)
class Highlight:
    handle: int
    bounds: Bounds
    color: Color
    duration_ms: int
    created_at: float = field(default_factory=time.monotonic)

    def expired(self, now: float) -> bool:
        # duration 0 means the highlight stays until cleared
        if self.duration_ms <= 0:
            return False
        return now - self.created_at >= self.duration_ms / 1000.0

    def to_dict(self) -> Dict:
        return {
            "handle": self.handle,
            "bounds": self.bounds.to_dict(),
            "color": list(self.color),
            "duration_ms": self.duration_ms,
        }


class HighlightOverlay:
    """Holds active highlights. Expired entries are dropped lazily on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._lock = threading.Lock()
        self._handles = itertools.count(1)
        self._highlights: Dict[int, Highlight] = {}

    def add(self, bounds: Bounds, color: Color, duration_ms: int) -> int:
        """Register a highlight and return its handle."""
        with self._lock:
            handle = next(self._handles)
            self._highlights[handle] = Highlight(
                handle=handle,
                bounds=bounds,
                color=tuple(color),
                duration_ms=max(int(duration_ms), 0),
                created_at=self.clock(),
            )
        logger.debug(f"Added highlight {handle} at {bounds} for {duration_ms}ms")
        return handle

    def remove(self, handle: int) -> bool:
        with self._lock:
            return self._highlights.pop(handle, None) is not None

    def clear(self):
        with self._lock:
            self._highlights.clear()

    def active(self, now: Optional[float] = None) -> List[Highlight]:
        """Return unexpired highlights in creation order."""
        now = self.clock() if now is None else now
        with self._lock:
            expired = [handle for handle, item in self._highlights.items() if item.expired(now)]
            for handle in expired:
                del self._highlights[handle]
            return list(self._highlights.values())

    def draw(self, image: Image.Image, origin: Tuple[float, float] = (0.0, 0.0)) -> Image.Image:
        """Paint active highlights onto a copy of `image`.

        `origin` is the screen position of the image's top-left pixel.
        """
        highlights = self.active()
        if not highlights:
            return image
        base = image.convert("RGBA")
        overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
        painter = ImageDraw.Draw(overlay)
        for item in highlights:
            left = item.bounds.x - origin[0]
            top = item.bounds.y - origin[1]
            box = [left, top, left + item.bounds.width, top + item.bounds.height]
            fill = item.color[:3] + (item.color[3] // 4,)
            painter.rectangle(box, fill=fill, outline=item.color, width=OUTLINE_WIDTH)
        return Image.alpha_composite(base, overlay)
