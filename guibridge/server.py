"""
Bridge server: the controller facing operations.

Every operation returns a JSON-ready dict. Failures are reported as
{"error": code, "message": ...} by `call`, so one bad request never takes
the server down.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from guibridge.channel.client import AgentChannel
from guibridge.config import BridgeConfig
from guibridge.constants import HIGHLIGHT_COLOR, HIGHLIGHT_DURATION_MS
from guibridge.core import screenshots
from guibridge.core.dispatcher import STATE_NAMES, ActionDispatcher
from guibridge.core.indexer import NodeIndexer
from guibridge.core.models import CheckState
from guibridge.core.polling import PollEngine
from guibridge.core.snapshots import SnapshotStore, diff_trees, summarize_diff
from guibridge.core.source import SourceGateway, TreeSource
from guibridge.errors import BridgeError, InvalidArgument, NotFound, TargetUnavailable, WaitTimeout
from guibridge.protocol.messages import MouseButton, to_plain
from guibridge.utils.colors import parse_hex_color

logger = logging.getLogger(__name__)


def parse_element_id(value: Any) -> int:
    """Accept ids as ints or decimal strings, the way JSON clients send them."""
    if isinstance(value, bool):
        raise InvalidArgument(f"Invalid element ID: {value}", code="invalid_id")
    if isinstance(value, int):
        node_id = value
    else:
        try:
            node_id = int(str(value).strip())
        except ValueError:
            raise InvalidArgument(f"Invalid element ID: {value}", code="invalid_id")
    if node_id < 0:
        raise InvalidArgument(f"Invalid element ID: {value}", code="invalid_id")
    return node_id


def success(message: str, **extra) -> Dict[str, Any]:
    return {"success": True, "message": message, **extra}


def parse_button(value: str) -> str:
    try:
        return MouseButton(str(value).lower()).value
    except ValueError:
        raise InvalidArgument(f"Invalid mouse button: {value}", code="invalid_button")


class BridgeServer:
    """Wires the indexer, dispatcher, waits, snapshots and agent channel together."""

    def __init__(self, config: BridgeConfig,
                 source: Optional[TreeSource] = None,
                 channel: Optional[AgentChannel] = None,
                 snapshots: Optional[SnapshotStore] = None,
                 poller: Optional[PollEngine] = None):
        self.config = config
        if source is None:
            from guibridge.sources import create_source
            source = create_source(config.source)
        self.gateway = SourceGateway(source, config.bus_call_timeout)
        self.channel = channel or AgentChannel(
            config.socket_path,
            max_message_size=config.max_message_size,
            request_timeout=config.request_timeout,
            connect_attempts=config.connect_attempts,
            backoff_initial=config.backoff_initial,
            backoff_max=config.backoff_max,
        )
        self.indexer = NodeIndexer(self.gateway, config.app_name or "",
                                   max_depth=config.max_tree_depth, max_nodes=config.max_tree_nodes)
        self.dispatcher = ActionDispatcher(self.indexer, self.gateway, self.channel)
        self.snapshots = snapshots or SnapshotStore()
        self.poller = poller or PollEngine()
        self._active_waits: Set[asyncio.Event] = set()

    async def call(self, operation: str, **kwargs) -> Dict[str, Any]:
        """Run one operation by name and convert any failure into an error dict."""
        handler: Optional[Callable[..., Awaitable[Dict[str, Any]]]] = None
        if operation in OPERATIONS:
            handler = getattr(self, operation)
        if handler is None:
            return {"error": "unknown_operation", "message": f"Unknown operation '{operation}'"}
        try:
            inspect.signature(handler).bind(**kwargs)
        except TypeError as e:
            logger.warning(f"{operation} called with bad arguments: {e}")
            return {"error": "invalid_argument", "message": str(e)}
        try:
            return await handler(**kwargs)
        except BridgeError as e:
            logger.warning(f"{operation} failed: [{e.code}] {e.message}")
            return e.to_dict()
        except Exception as e:
            logger.exception(f"{operation} failed unexpectedly")
            return {"error": "internal_error", "message": str(e)}

    def _require_channel(self):
        if not self.channel.socket_available():
            raise TargetUnavailable(
                f"No application socket found at {self.channel.socket_path}. "
                "Make sure the target application is running with the guibridge agent.",
                code="not_connected",
            )

    # Basic

    async def ping(self) -> Dict[str, Any]:
        return {"status": "pong", "app_name": self.config.app_name}

    async def check_connection(self) -> Dict[str, Any]:
        if not self.channel.socket_available():
            return {"connected": False, "error": "target_unavailable",
                    "message": f"No application socket found at {self.channel.socket_path}"}
        try:
            await self.channel.ping()
        except TargetUnavailable as e:
            return {"connected": False, "error": e.code, "message": e.message}
        except BridgeError as e:
            return {"connected": False, "error": e.code, "message": f"Failed to connect: {e.message}"}
        return {"connected": True, "message": "Application is connected and responding"}

    # Tree

    async def get_ui_tree(self) -> Dict[str, Any]:
        tree = await self.indexer.build_tree()
        return tree.to_dict()

    async def find_by_label(self, pattern: str) -> Dict[str, Any]:
        elements = await self.indexer.find_by_label(pattern)
        return {"count": len(elements), "elements": [node.to_dict() for node in elements]}

    async def find_by_label_exact(self, pattern: str) -> Dict[str, Any]:
        elements = await self.indexer.find_by_label_exact(pattern)
        return {"count": len(elements), "elements": [node.to_dict() for node in elements]}

    async def find_by_role(self, role: str) -> Dict[str, Any]:
        elements = await self.indexer.find_by_role(role)
        return {"count": len(elements), "elements": [node.to_dict() for node in elements]}

    async def get_element(self, id) -> Dict[str, Any]:
        record = await self.indexer.get_element(parse_element_id(id))
        return record.to_dict()

    # Actions and components

    async def click_element(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        action = await self.dispatcher.click_element(node_id)
        return success(f"Clicked element {node_id}", action=action)

    async def get_bounds(self, id) -> Dict[str, Any]:
        bounds = await self.dispatcher.get_bounds(parse_element_id(id))
        return bounds.to_dict()

    async def focus_element(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        await self.dispatcher.focus_element(node_id)
        return success(f"Focused element {node_id}")

    async def scroll_to_element(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        await self.dispatcher.scroll_to_element(node_id)
        return success(f"Scrolled element {node_id} into view")

    async def drag_element(self, id, end_x: float, end_y: float, button: str = "left") -> Dict[str, Any]:
        node_id = parse_element_id(id)
        self._require_channel()
        start_x, start_y = await self.dispatcher.drag_element(node_id, end_x, end_y, parse_button(button))
        return success(
            f"Dragged element {node_id} from ({start_x:.1f}, {start_y:.1f}) to ({end_x:.1f}, {end_y:.1f})",
            start={"x": start_x, "y": start_y},
            end={"x": end_x, "y": end_y},
        )

    # Value

    async def get_value(self, id) -> Dict[str, Any]:
        value = await self.dispatcher.get_value(parse_element_id(id))
        return {"current": value.current, "min": value.minimum, "max": value.maximum, "step": value.increment}

    async def set_value(self, id, value: float) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        await self.dispatcher.set_value(node_id, float(value))
        return success(f"Set value of element {node_id} to {value}")

    # Selection

    async def select_item(self, id, index: int) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        selected = await self.dispatcher.select_item(node_id, int(index))
        return {"success": selected, "message": f"Selected item {index} of element {node_id}"
                if selected else f"Element {node_id} did not select item {index}"}

    async def deselect_item(self, id, index: int) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        deselected = await self.dispatcher.deselect_item(node_id, int(index))
        return {"success": deselected, "message": f"Deselected item {index} of element {node_id}"
                if deselected else f"Element {node_id} did not deselect item {index}"}

    async def get_selected_count(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        count = await self.dispatcher.get_selected_count(node_id)
        return {"id": str(node_id), "count": count}

    async def select_all(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        done = await self.dispatcher.select_all(node_id)
        return {"success": done, "message": f"Selected all items of element {node_id}"
                if done else f"Element {node_id} did not select all items"}

    async def clear_selection(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        done = await self.dispatcher.clear_selection(node_id)
        return {"success": done, "message": f"Cleared selection of element {node_id}"
                if done else f"Element {node_id} did not clear its selection"}

    # Text

    async def get_text(self, id) -> Dict[str, Any]:
        text = await self.dispatcher.get_text(parse_element_id(id))
        return text.to_dict()

    async def set_text(self, id, text: str) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        await self.dispatcher.set_text(node_id, text)
        return success(f"Set text of element {node_id}")

    async def get_text_selection(self, id) -> Dict[str, Any]:
        selection = await self.dispatcher.get_text_selection(parse_element_id(id))
        if selection is None:
            return {"start": -1, "end": -1, "has_selection": False,
                    "message": "Element has no focus or no text interface"}
        return {"start": selection.start, "end": selection.end,
                "has_selection": selection.start != selection.end}

    async def set_text_selection(self, id, start: int, end: int) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        await self.dispatcher.set_text_selection(node_id, int(start), int(end))
        return success(f"Selected text {start}..{end} in element {node_id}")

    async def get_caret_position(self, id) -> Dict[str, Any]:
        offset = await self.dispatcher.get_caret_position(parse_element_id(id))
        return {"offset": offset, "has_focus": offset >= 0}

    async def set_caret_position(self, id, offset: int) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        await self.dispatcher.set_caret_position(node_id, int(offset))
        return success(f"Moved caret to {offset} in element {node_id}")

    # State

    async def is_visible(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        return {"id": str(node_id), "visible": await self.dispatcher.is_visible(node_id)}

    async def is_enabled(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        return {"id": str(node_id), "enabled": await self.dispatcher.is_enabled(node_id)}

    async def is_focused(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        return {"id": str(node_id), "focused": await self.dispatcher.is_focused(node_id)}

    async def is_checked(self, id) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        state = await self.dispatcher.is_checked(node_id)
        if state == CheckState.NOT_CHECKABLE:
            return {"id": str(node_id), "checked": None, "message": "Element is not a checkable type"}
        return {"id": str(node_id), "checked": state == CheckState.CHECKED}

    # Coordinate input

    async def click_at(self, x: float, y: float, button: str = "left") -> Dict[str, Any]:
        self._require_channel()
        await self.dispatcher.click_at(x, y, parse_button(button))
        return success(f"Clicked {button} at ({x:.1f}, {y:.1f})")

    async def double_click(self, x: float, y: float, button: str = "left") -> Dict[str, Any]:
        self._require_channel()
        await self.dispatcher.double_click(x, y, parse_button(button))
        return success(f"Double-clicked {button} at ({x:.1f}, {y:.1f})")

    async def hover(self, x: float, y: float) -> Dict[str, Any]:
        self._require_channel()
        await self.dispatcher.hover(x, y)
        return success(f"Moved mouse to ({x:.1f}, {y:.1f})")

    async def drag(self, start_x: float, start_y: float, end_x: float, end_y: float,
                   button: str = "left") -> Dict[str, Any]:
        self._require_channel()
        await self.dispatcher.drag(start_x, start_y, end_x, end_y, parse_button(button))
        return success(f"Dragged from ({start_x:.1f}, {start_y:.1f}) to ({end_x:.1f}, {end_y:.1f})")

    async def keyboard_input(self, key: str) -> Dict[str, Any]:
        self._require_channel()
        await self.dispatcher.keyboard_input(key)
        return success(f"Sent key '{key}'")

    async def scroll(self, x: float, y: float, delta_x: float = 0.0, delta_y: float = 0.0) -> Dict[str, Any]:
        self._require_channel()
        await self.dispatcher.scroll(x, y, delta_x, delta_y)
        return success(f"Scrolled by ({delta_x:.1f}, {delta_y:.1f}) at ({x:.1f}, {y:.1f})")

    # Screenshots

    def _image_result(self, data: str, save_to_file: bool) -> Dict[str, Any]:
        if save_to_file:
            return screenshots.save_png_to_file(data)
        return {"image": data, "format": "png"}

    async def take_screenshot(self, save_to_file: bool = False) -> Dict[str, Any]:
        self._require_channel()
        data, _ = await self.channel.take_screenshot()
        return self._image_result(data, save_to_file)

    async def screenshot_element(self, id, save_to_file: bool = False) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        self._require_channel()
        bounds = await self.dispatcher.get_bounds(node_id)
        data, origin = await self.channel.take_screenshot()
        return self._image_result(screenshots.crop_png(data, bounds, origin), save_to_file)

    async def screenshot_region(self, x: float, y: float, width: float, height: float,
                                save_to_file: bool = False) -> Dict[str, Any]:
        if width <= 0 or height <= 0:
            raise InvalidArgument("Region width and height must be positive")
        self._require_channel()
        data = await self.channel.crop_region(x, y, width, height)
        return self._image_result(data, save_to_file)

    async def compare_screenshots(self, base64_a: Optional[str] = None, base64_b: Optional[str] = None,
                                  path_a: Optional[str] = None, path_b: Optional[str] = None,
                                  algorithm: str = "hybrid") -> Dict[str, Any]:
        image_a = screenshots.load_image(base64_a, path_a)
        image_b = screenshots.load_image(base64_b, path_b)
        try:
            return screenshots.compare_images(image_a, image_b, algorithm)
        except InvalidArgument as e:
            if e.code != "dimension_mismatch":
                raise
            return {"score": 0.0, "identical": False, **e.to_dict()}

    async def diff_screenshots(self, base64_a: Optional[str] = None, base64_b: Optional[str] = None,
                               path_a: Optional[str] = None, path_b: Optional[str] = None,
                               save_to_file: bool = False) -> Dict[str, Any]:
        image_a = screenshots.load_image(base64_a, path_a)
        image_b = screenshots.load_image(base64_b, path_b)
        diff = screenshots.diff_images(image_a, image_b)
        return self._image_result(screenshots.encode_png(diff), save_to_file)

    # Waits

    async def _wait(self, predicate, timeout_ms: Optional[int]):
        timeout = (self.config.wait_timeout_ms if timeout_ms is None else int(timeout_ms)) / 1000.0
        interval = self.config.wait_interval_ms / 1000.0
        cancel = asyncio.Event()
        self._active_waits.add(cancel)
        try:
            return await self.poller.wait_until(predicate, timeout, interval, cancel)
        finally:
            self._active_waits.discard(cancel)

    def cancel_waits(self):
        """Abort every wait that is currently sleeping."""
        for event in list(self._active_waits):
            event.set()

    async def wait_for_element(self, pattern: str, appear: bool = True,
                               timeout_ms: Optional[int] = None) -> Dict[str, Any]:
        waited_for = "appear" if appear else "disappear"

        async def predicate():
            elements = await self.indexer.find_by_label(pattern)
            return (bool(elements) == appear), elements

        try:
            elements = await self._wait(predicate, timeout_ms)
        except WaitTimeout as e:
            e.details = {
                "pattern": pattern,
                "waited_for": waited_for,
                "last_observation": _observation(e.observation),
            }
            raise
        return {
            "success": True,
            "found": bool(elements),
            "pattern": pattern,
            "count": len(elements),
            "elements": [node.to_dict() for node in elements] if appear else [],
        }

    async def wait_for_state(self, id, state: str, expected: bool = True,
                             timeout_ms: Optional[int] = None) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        if state not in STATE_NAMES:
            raise InvalidArgument(f"Unknown state '{state}', expected one of {', '.join(STATE_NAMES)}",
                                  code="invalid_state")

        async def predicate():
            current = await self.dispatcher.state_of(node_id, state)
            return current == expected, current

        try:
            current = await self._wait(predicate, timeout_ms)
        except WaitTimeout as e:
            e.details = {
                "id": str(node_id),
                "state": state,
                "expected": expected,
                "last_observation": _observation(e.observation),
            }
            raise
        return {"success": True, "id": str(node_id), "state": state, "value": current}

    # Highlights

    async def highlight_element(self, id, color: str = HIGHLIGHT_COLOR,
                                duration_ms: int = HIGHLIGHT_DURATION_MS) -> Dict[str, Any]:
        node_id = parse_element_id(id)
        rgba = parse_hex_color(color)
        if duration_ms < 0:
            raise InvalidArgument("duration_ms must not be negative")
        self._require_channel()
        bounds = await self.dispatcher.get_bounds(node_id)
        handle = await self.channel.highlight(bounds.x, bounds.y, bounds.width, bounds.height, rgba, duration_ms)
        return success(f"Highlighted element {node_id}", handle=handle, bounds=bounds.to_dict(),
                       duration_ms=duration_ms)

    async def clear_highlights(self) -> Dict[str, Any]:
        self._require_channel()
        await self.channel.clear_highlights()
        return success("Cleared all highlights")

    # Snapshots

    async def save_snapshot(self, name: str) -> Dict[str, Any]:
        tree = await self.indexer.build_tree()
        self.snapshots.save(name, tree)
        return {"success": True, "name": name, "node_count": len(tree)}

    async def load_snapshot(self, name: str) -> Dict[str, Any]:
        snapshot = self.snapshots.load(name)
        return {"success": True, "name": name, "node_count": len(snapshot.tree),
                "created_at": snapshot.created_at, "tree": snapshot.tree.to_dict()}

    async def diff_snapshots(self, name_a: str, name_b: str) -> Dict[str, Any]:
        diff = summarize_diff(self.snapshots.diff(name_a, name_b))
        return {"name_a": name_a, "name_b": name_b, **diff}

    async def diff_current(self, name: str) -> Dict[str, Any]:
        snapshot = self.snapshots.load(name)
        current = await self.indexer.build_tree()
        diff = summarize_diff(diff_trees(snapshot.tree, current))
        return {"snapshot_name": name, **diff}

    async def delete_snapshot(self, name: str) -> Dict[str, Any]:
        if not self.snapshots.delete(name):
            raise NotFound(f"Snapshot '{name}' not found", code="snapshot_not_found")
        return success(f"Deleted snapshot '{name}'")

    async def list_snapshots(self) -> Dict[str, Any]:
        names = self.snapshots.names()
        return {"count": len(names), "names": names}

    # Telemetry

    async def get_frame_stats(self) -> Dict[str, Any]:
        self._require_channel()
        return to_plain(await self.channel.get_frame_stats())

    async def start_perf_recording(self, duration_ms: int = 0) -> Dict[str, Any]:
        if duration_ms < 0:
            raise InvalidArgument("duration_ms must not be negative")
        self._require_channel()
        await self.channel.start_perf_recording(int(duration_ms))
        if duration_ms:
            return success(f"Performance recording started for {duration_ms}ms")
        return success("Performance recording started until a report is requested")

    async def get_perf_report(self) -> Dict[str, Any]:
        self._require_channel()
        return to_plain(await self.channel.get_perf_report())

    async def stop_perf_recording(self) -> Dict[str, Any]:
        self._require_channel()
        return to_plain(await self.channel.stop_perf_recording())

    async def get_logs(self, level: Optional[str] = None, limit: Optional[int] = None) -> Dict[str, Any]:
        self._require_channel()
        entries = await self.channel.get_logs(level, limit)
        logs = [to_plain(entry) for entry in entries]
        return {"count": len(logs), "logs": logs}

    async def clear_logs(self) -> Dict[str, Any]:
        self._require_channel()
        await self.channel.clear_logs()
        return success("Log buffer cleared")

    async def shutdown(self):
        """Cancel waits, close the agent connection and drop snapshots."""
        self.cancel_waits()
        await self.channel.close()
        self.gateway.close()
        self.snapshots.clear()
        logger.info("Bridge server shut down")


def _observation(value: Any) -> Any:
    if isinstance(value, list):
        return [item.to_dict() if hasattr(item, "to_dict") else item for item in value]
    return value


OPERATIONS: List[str] = [
    "ping", "check_connection",
    "get_ui_tree", "find_by_label", "find_by_label_exact", "find_by_role", "get_element",
    "click_element", "get_bounds", "focus_element", "scroll_to_element", "drag_element",
    "get_value", "set_value",
    "select_item", "deselect_item", "get_selected_count", "select_all", "clear_selection",
    "get_text", "set_text", "get_text_selection", "set_text_selection",
    "get_caret_position", "set_caret_position",
    "is_visible", "is_enabled", "is_focused", "is_checked",
    "click_at", "double_click", "hover", "drag", "keyboard_input", "scroll",
    "take_screenshot", "screenshot_element", "screenshot_region",
    "compare_screenshots", "diff_screenshots",
    "wait_for_element", "wait_for_state",
    "highlight_element", "clear_highlights",
    "save_snapshot", "load_snapshot", "diff_snapshots", "diff_current",
    "delete_snapshot", "list_snapshots",
    "get_frame_stats", "start_perf_recording", "get_perf_report", "stop_perf_recording",
    "get_logs", "clear_logs",
]
