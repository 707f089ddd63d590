"""
Tests for the highlight overlay.
"""

from PIL import Image

from guibridge.core.highlight import HighlightOverlay
from guibridge.core.models import Bounds


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_handles_are_unique_and_increasing():
    overlay = HighlightOverlay()
    first = overlay.add(Bounds(0, 0, 10, 10), (255, 0, 0, 200), 1000)
    second = overlay.add(Bounds(5, 5, 10, 10), (0, 255, 0, 200), 1000)
    assert second > first
    assert [item.handle for item in overlay.active()] == [first, second]


def test_expired_highlights_are_pruned():
    clock = FakeClock()
    overlay = HighlightOverlay(clock)
    overlay.add(Bounds(0, 0, 10, 10), (255, 0, 0, 200), 500)
    sticky = overlay.add(Bounds(0, 0, 10, 10), (255, 0, 0, 200), 0)

    clock.now = 0.4
    assert len(overlay.active()) == 2
    clock.now = 0.5
    assert [item.handle for item in overlay.active()] == [sticky]
    clock.now = 3600.0
    assert [item.handle for item in overlay.active()] == [sticky]


def test_remove_and_clear():
    overlay = HighlightOverlay()
    handle = overlay.add(Bounds(0, 0, 10, 10), (255, 0, 0, 200), 0)
    overlay.add(Bounds(0, 0, 10, 10), (255, 0, 0, 200), 0)
    assert overlay.remove(handle) is True
    assert overlay.remove(handle) is False
    overlay.clear()
    assert overlay.active() == []


def test_draw_outlines_highlight_relative_to_origin():
    overlay = HighlightOverlay()
    overlay.add(Bounds(110, 210, 20, 20), (255, 0, 0, 255), 0)
    image = Image.new("RGB", (50, 50), (255, 255, 255))

    painted = overlay.draw(image, origin=(100, 200))

    assert painted.mode == "RGBA"
    assert painted.getpixel((10, 10))[:3] == (255, 0, 0)
    assert painted.getpixel((45, 45)) == (255, 255, 255, 255)


def test_draw_without_highlights_returns_image_unchanged():
    image = Image.new("RGB", (4, 4))
    assert HighlightOverlay().draw(image) is image
