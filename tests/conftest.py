"""
Shared fixtures and fakes for the guibridge tests.
"""

import base64
import io
import os
import shutil
import sys
import tempfile

import pytest
from PIL import Image

# Add the repository root to the Python path to import guibridge modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from guibridge.config import BridgeConfig
from guibridge.core.models import Bounds, ElementInfo, TextInfo, TextSelection, ValueInfo
from guibridge.core.source import TreeSource
from guibridge.errors import ElementGone
from guibridge.protocol import messages


class FakeElement:
    """In-memory widget used in place of a real accessibility object."""

    def __init__(self, role, name=None, key=None, children=None, value=None,
                 bounds=(0, 0, 100, 20), states=("visible", "enabled"), actions=("click",),
                 value_info=None, text=None, editable=False, selection=None):
        self.role = role
        self.name = name
        self.key = key
        self.children = list(children or [])
        self.value = value
        self.bounds = Bounds(*bounds) if bounds else None
        self.states = set(states)
        self.actions = list(actions)
        self.value_info = value_info
        self.text = text
        self.editable = editable
        self.caret = -1
        self.text_selection = None
        self.selection = selection  # list of selected child indexes, or None
        self.gone = False
        self.performed = []


class FakeTreeSource(TreeSource):
    """TreeSource over a FakeElement tree."""

    def __init__(self, root, app_name="Demo", stable_handles=False):
        self.root = root
        self.app_name = app_name
        self.stable_handles = stable_handles
        self.calls = []
        self.closed = False

    def _check(self, element):
        if element.gone:
            raise ElementGone(f"{element.name} is gone")

    def find_application(self, app_name):
        self.calls.append("find_application")
        return self.root if app_name == self.app_name else None

    def get_children(self, handle):
        self._check(handle)
        return list(handle.children)

    def describe(self, handle):
        self._check(handle)
        return ElementInfo(
            role=handle.role,
            name=handle.name,
            value=handle.value,
            bounds=handle.bounds,
            states=frozenset(handle.states),
            native_key=handle.key,
        )

    def get_actions(self, handle):
        self._check(handle)
        return list(handle.actions)

    def do_action(self, handle, action_name):
        self._check(handle)
        if action_name not in handle.actions:
            return False
        handle.performed.append(action_name)
        if action_name == "toggle":
            handle.states ^= {"checked"}
        return True

    def grab_focus(self, handle):
        self._check(handle)
        if "focusable" not in handle.states:
            return False
        handle.states.add("focused")
        return True

    def scroll_into_view(self, handle):
        self._check(handle)
        return handle.bounds is not None

    def get_value(self, handle):
        self._check(handle)
        return handle.value_info

    def set_value(self, handle, value):
        self._check(handle)
        handle.value_info = ValueInfo(value, handle.value_info.minimum,
                                      handle.value_info.maximum, handle.value_info.increment)
        return True

    def get_text(self, handle):
        self._check(handle)
        if handle.text is None:
            return None
        return TextInfo(handle.text, len(handle.text), handle.caret)

    def set_text_contents(self, handle, text):
        self._check(handle)
        if not handle.editable:
            return None
        handle.text = text
        return True

    def get_text_selection(self, handle):
        self._check(handle)
        return handle.text_selection

    def set_text_selection(self, handle, start, end):
        self._check(handle)
        if handle.text is None or end > len(handle.text):
            return False
        handle.text_selection = TextSelection(start, end)
        return True

    def set_caret_offset(self, handle, offset):
        self._check(handle)
        if handle.text is None or offset > len(handle.text):
            return False
        handle.caret = offset
        return True

    def get_selected_count(self, handle):
        return None if handle.selection is None else len(handle.selection)

    def select_child(self, handle, index):
        if handle.selection is None:
            return None
        if not 0 <= index < len(handle.children):
            return False
        if index not in handle.selection:
            handle.selection.append(index)
        return True

    def deselect_child(self, handle, index):
        if handle.selection is None:
            return None
        if index not in handle.selection:
            return False
        handle.selection.remove(index)
        return True

    def select_all(self, handle):
        if handle.selection is None:
            return None
        handle.selection[:] = list(range(len(handle.children)))
        return True

    def clear_selection(self, handle):
        if handle.selection is None:
            return None
        handle.selection.clear()
        return True

    def close(self):
        self.closed = True


class FakeAgentChannel:
    """Records agent requests instead of sending them over a socket."""

    def __init__(self, available=True, screenshot=None, origin=(0.0, 0.0)):
        self.available = available
        self.socket_path = "/tmp/fake-guibridge.sock"
        self.calls = []
        self.screenshot = screenshot
        self.origin = origin
        self.closed = False

    def socket_available(self):
        return self.available

    async def ping(self):
        self.calls.append(("ping",))
        return True

    async def move_mouse(self, x, y):
        self.calls.append(("move_mouse", x, y))

    async def click(self, x, y, button="left"):
        self.calls.append(("click", x, y, button))

    async def double_click(self, x, y, button="left"):
        self.calls.append(("double_click", x, y, button))

    async def drag(self, start_x, start_y, end_x, end_y, button="left"):
        self.calls.append(("drag", start_x, start_y, end_x, end_y, button))

    async def keyboard_input(self, key):
        self.calls.append(("keyboard_input", key))

    async def scroll(self, x, y, delta_x=0.0, delta_y=0.0):
        self.calls.append(("scroll", x, y, delta_x, delta_y))

    async def take_screenshot(self):
        self.calls.append(("take_screenshot",))
        return self.screenshot, self.origin

    async def highlight(self, x, y, width, height, color, duration_ms):
        self.calls.append(("highlight", x, y, width, height, tuple(color), duration_ms))
        return 1

    async def clear_highlights(self):
        self.calls.append(("clear_highlights",))

    async def crop_region(self, x, y, width, height):
        self.calls.append(("crop_region", x, y, width, height))
        return png_b64((int(width), int(height)))

    async def get_frame_stats(self):
        return messages.FrameStatsResponse(fps=50.0, frame_time_ms=20.0, min_frame_time_ms=16.0,
                                           max_frame_time_ms=24.0, sample_count=3)

    async def start_perf_recording(self, duration_ms=0):
        self.calls.append(("start_perf_recording", duration_ms))

    async def get_perf_report(self):
        return messages.PerfReportResponse(duration_ms=1000.0, total_frames=2, avg_fps=50.0,
                                           avg_frame_time_ms=20.0, min_frame_time_ms=10.0,
                                           max_frame_time_ms=30.0, p95_frame_time_ms=29.0,
                                           p99_frame_time_ms=29.8)

    async def stop_perf_recording(self):
        return await self.get_perf_report()

    async def get_logs(self, level=None, limit=None):
        self.calls.append(("get_logs", level, limit))
        return [messages.WireLogEntry(level="INFO", target="app", message="ready", timestamp_ms=1.0)]

    async def clear_logs(self):
        self.calls.append(("clear_logs",))

    async def close(self):
        self.closed = True


def png_b64(size=(16, 16), color=(255, 0, 0, 255)):
    """A solid color image as base64 PNG."""
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def png_bytes(size=(16, 16), color=(255, 0, 0, 255)):
    return base64.b64decode(png_b64(size, color))


def build_demo_tree():
    """Window with a button, a check box, a slider, a text field and a list."""
    go = FakeElement("button", "Go", key=":1.5/obj/go", bounds=(10, 10, 80, 20))
    check = FakeElement("check_box", "Remember me", key=":1.5/obj/check",
                        states=("visible", "enabled", "checkable"), actions=("toggle",))
    slider = FakeElement("slider", "Volume", key=":1.5/obj/slider", actions=(),
                         value_info=ValueInfo(5.0, 0.0, 10.0, 1.0))
    field = FakeElement("text_input", "Name", key=":1.5/obj/field", text="hello", editable=True,
                        states=("visible", "enabled", "focusable"), actions=())
    items = [FakeElement("list_item", f"Item {i}", key=f":1.5/obj/item{i}", actions=()) for i in range(3)]
    listbox = FakeElement("list", "Choices", key=":1.5/obj/list", children=items, actions=(), selection=[])
    combo = FakeElement("combo_box", "Theme", key=":1.5/obj/combo", actions=("press",))
    window = FakeElement("window", "Main", key=":1.5/obj/window",
                         children=[go, check, slider, field, listbox, combo], actions=())
    root = FakeElement("application", "Demo", key=":1.5/obj/app", children=[window], actions=())
    return root


@pytest.fixture
def demo_root():
    return build_demo_tree()


@pytest.fixture
def fake_source(demo_root):
    return FakeTreeSource(demo_root)


@pytest.fixture
def fake_channel():
    return FakeAgentChannel(screenshot=png_b64((200, 100)))


@pytest.fixture
def bridge_config():
    return BridgeConfig(app_name="Demo", socket_path="/tmp/fake-guibridge.sock",
                        wait_timeout_ms=300, wait_interval_ms=20)


@pytest.fixture
def socket_path():
    """A short socket path; AF_UNIX paths are limited to about 100 bytes."""
    directory = tempfile.mkdtemp(prefix="gb-")
    yield os.path.join(directory, "agent.sock")
    shutil.rmtree(directory, ignore_errors=True)
