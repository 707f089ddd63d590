"""
Replays coordinate input inside the target process using pynput.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from guibridge.utils.key_mapping import parse_key_combo

logger = logging.getLogger(__name__)

# Scroll deltas arrive in pixels; pynput scrolls in wheel steps
PIXELS_PER_SCROLL_STEP = 40.0


@dataclass
class PendingInput:
    """One coordinate input event waiting to be applied by the host."""
    kind: str  # move, click, double_click, drag, key, scroll
    params: Dict[str, Any] = field(default_factory=dict)
    queued_at: float = field(default_factory=time.time)


def scroll_steps(delta: float) -> int:
    """Whole wheel steps for a pixel delta; any non-zero delta moves at least one step."""
    if not delta:
        return 0
    steps = int(round(delta / PIXELS_PER_SCROLL_STEP))
    if steps == 0:
        return 1 if delta > 0 else -1
    return steps


class PynputInputSink:
    """Applies PendingInput records as OS level mouse and keyboard events."""

    def __init__(self, step_delay: float = 0.02):
        # Imported here so hosts without an input backend can still run the agent
        from pynput import keyboard, mouse

        self._keyboard_module = keyboard
        self._mouse_module = mouse
        self.mouse = mouse.Controller()
        self.keyboard = keyboard.Controller()
        self.step_delay = step_delay

    def _button(self, name: Optional[str]):
        return getattr(self._mouse_module.Button, name or "left")

    def _key(self, name: str):
        if len(name) == 1:
            return name
        return getattr(self._keyboard_module.Key, name)

    def apply(self, event: PendingInput):
        """Perform one input event."""
        params = event.params
        if event.kind == "move":
            self.mouse.position = (params["x"], params["y"])
        elif event.kind == "click":
            self.mouse.position = (params["x"], params["y"])
            self.mouse.click(self._button(params.get("button")), 1)
        elif event.kind == "double_click":
            self.mouse.position = (params["x"], params["y"])
            self.mouse.click(self._button(params.get("button")), 2)
        elif event.kind == "drag":
            self._drag(params)
        elif event.kind == "key":
            self._press_combo(params["key"])
        elif event.kind == "scroll":
            self.mouse.position = (params["x"], params["y"])
            self.mouse.scroll(scroll_steps(params.get("delta_x", 0.0)),
                              scroll_steps(params.get("delta_y", 0.0)))
        else:
            raise ValueError(f"Unknown input kind: {event.kind}")
        logger.debug(f"Applied {event.kind} input: {params}")

    def _drag(self, params: Dict[str, Any]):
        button = self._button(params.get("button"))
        self.mouse.position = (params["start_x"], params["start_y"])
        self.mouse.press(button)
        try:
            time.sleep(self.step_delay)
            self.mouse.position = (params["end_x"], params["end_y"])
            time.sleep(self.step_delay)
        finally:
            self.mouse.release(button)

    def _press_combo(self, combo: str):
        modifiers, key = parse_key_combo(combo)
        held = [getattr(self._keyboard_module.Key, name) for name in modifiers]
        for modifier in held:
            self.keyboard.press(modifier)
        try:
            self.keyboard.tap(self._key(key))
        finally:
            for modifier in reversed(held):
                self.keyboard.release(modifier)
