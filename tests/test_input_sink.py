"""
Tests for replaying queued input through pynput.
"""

import pytest

from guibridge.channel.input_sink import PendingInput, PynputInputSink, scroll_steps


class RecordingMouse:
    """Stands in for pynput.mouse.Controller."""

    def __init__(self):
        self.position = (0, 0)
        self.scrolls = []

    def scroll(self, dx, dy):
        # pynput's X11 backend turns each step count into range(abs(n))
        for steps in (dx, dy):
            list(range(abs(steps)))
        self.scrolls.append((dx, dy))


def _sink_with(mouse):
    sink = PynputInputSink.__new__(PynputInputSink)
    sink.mouse = mouse
    return sink


@pytest.mark.parametrize("delta, expected", [
    (0.0, 0),
    (120.0, 3),
    (-80.0, -2),
    (5.0, 1),
    (-5.0, -1),
    (59.0, 1),
    (61.0, 2),
])
def test_scroll_steps_are_whole_numbers(delta, expected):
    steps = scroll_steps(delta)
    assert steps == expected
    assert isinstance(steps, int)


def test_scroll_event_passes_integer_steps():
    mouse = RecordingMouse()
    _sink_with(mouse).apply(PendingInput("scroll", {"x": 10.0, "y": 20.0, "delta_x": 0.0, "delta_y": 120.0}))

    assert mouse.position == (10.0, 20.0)
    assert mouse.scrolls == [(0, 3)]
    assert all(isinstance(steps, int) for steps in mouse.scrolls[0])


def test_unknown_input_kind_is_rejected():
    with pytest.raises(ValueError):
        _sink_with(RecordingMouse()).apply(PendingInput("teleport", {}))
