"""
Element and coordinate actions.

Element operations take a node id from the latest tree build, resolve it to
a live accessibility handle and call the matching source capability.
Coordinate operations always go through the agent channel.
"""

import logging
from typing import Any, Optional, Tuple

from guibridge.core.indexer import NodeIndexer
from guibridge.core.models import (
    Bounds,
    CheckState,
    NodeRecord,
    Role,
    TextInfo,
    TextSelection,
    ValueInfo,
    normalize_role_name,
)
from guibridge.core.source import SourceGateway
from guibridge.errors import BridgeError, InvalidArgument, NoSuchAction, NotFocused, NotSupported

logger = logging.getLogger(__name__)

# Checked in order when choosing the action that clicks an element
CLICK_ACTIONS = ("click", "press", "activate", "axpress", "jump", "toggle")

# Roles whose items are rendered in a popup and never exposed as children
POPUP_SELECTION_ROLES = {normalize_role_name(Role.COMBO_BOX.value)}

SELECTION_OPERATIONS = ("select_item", "deselect_item", "get_selected_count", "select_all", "clear_selection")

STATE_NAMES = ("visible", "enabled", "focused", "checked")


class ActionDispatcher:
    """Performs element and coordinate operations on the target."""

    def __init__(self, indexer: NodeIndexer, gateway: SourceGateway, channel):
        self.indexer = indexer
        self.gateway = gateway
        self.channel = channel

    async def _call(self, method: str, node_id: int, *args) -> Tuple[NodeRecord, Any]:
        record, handle = await self.indexer.resolve(node_id)
        result = await self.gateway.call(method, handle, *args)
        return record, result

    async def _live_info(self, node_id: int):
        _, info = await self._call("describe", node_id)
        return info

    # Action

    async def click_element(self, node_id: int) -> str:
        """Invoke the element's click-like action and return its name."""
        record, actions = await self._call("get_actions", node_id)
        if not actions:
            raise NoSuchAction(f"Element {node_id} ({record.role}) exposes no actions")

        by_name = {normalize_role_name(name): name for name in actions}
        chosen = next((by_name[name] for name in CLICK_ACTIONS if name in by_name), actions[0])

        _, performed = await self._call("do_action", node_id, chosen)
        if not performed:
            raise BridgeError(f"Action '{chosen}' on element {node_id} failed", code="action_failed")
        logger.debug(f"Clicked element {node_id} using '{chosen}'")
        return chosen

    # Component

    async def get_bounds(self, node_id: int) -> Bounds:
        info = await self._live_info(node_id)
        if info.bounds is None:
            raise NotSupported(f"Element {node_id} has no bounds", code="no_bounds")
        return info.bounds

    async def focus_element(self, node_id: int):
        _, focused = await self._call("grab_focus", node_id)
        if not focused:
            raise BridgeError(f"Element {node_id} refused focus", code="focus_failed")

    async def scroll_to_element(self, node_id: int):
        _, scrolled = await self._call("scroll_into_view", node_id)
        if not scrolled:
            raise NotSupported(f"Element {node_id} cannot be scrolled into view", code="scroll_failed")

    async def drag_element(self, node_id: int, end_x: float, end_y: float, button: str = "left") -> Tuple[float, float]:
        """Drag from the element's center to (end_x, end_y). Returns the start point."""
        bounds = await self.get_bounds(node_id)
        start_x, start_y = bounds.center()
        await self.channel.drag(start_x, start_y, end_x, end_y, button)
        return start_x, start_y

    # Value

    async def get_value(self, node_id: int) -> ValueInfo:
        _, value = await self._call("get_value", node_id)
        if value is None:
            raise NotSupported(f"Element {node_id} does not support the Value interface", code="no_value")
        return value

    async def set_value(self, node_id: int, value: float):
        current = await self.get_value(node_id)
        if current.minimum is not None and value < current.minimum:
            raise InvalidArgument(f"Value {value} is below the minimum {current.minimum}", code="out_of_range")
        if current.maximum is not None and value > current.maximum:
            raise InvalidArgument(f"Value {value} is above the maximum {current.maximum}", code="out_of_range")
        _, applied = await self._call("set_value", node_id, value)
        if not applied:
            raise BridgeError(f"Element {node_id} rejected value {value}", code="set_value_failed")

    # Selection

    def _check_selectable(self, record: NodeRecord):
        if normalize_role_name(record.role) in POPUP_SELECTION_ROLES:
            raise NotSupported(
                f"Element {record.id} is a {record.role}; its items are not exposed for selection",
                details={"unsupported": list(SELECTION_OPERATIONS), "fallback": "click_at"},
            )

    async def _selection(self, method: str, node_id: int, *args):
        record, _ = await self.indexer.resolve(node_id)
        self._check_selectable(record)
        _, result = await self._call(method, node_id, *args)
        if result is None:
            raise NotSupported(f"Element {node_id} does not support the Selection interface", code="no_selection")
        return result

    async def select_item(self, node_id: int, index: int) -> bool:
        return bool(await self._selection("select_child", node_id, index))

    async def deselect_item(self, node_id: int, index: int) -> bool:
        return bool(await self._selection("deselect_child", node_id, index))

    async def get_selected_count(self, node_id: int) -> int:
        return int(await self._selection("get_selected_count", node_id))

    async def select_all(self, node_id: int) -> bool:
        return bool(await self._selection("select_all", node_id))

    async def clear_selection(self, node_id: int) -> bool:
        return bool(await self._selection("clear_selection", node_id))

    # Text

    async def get_text(self, node_id: int) -> TextInfo:
        _, text = await self._call("get_text", node_id)
        if text is None:
            raise NotSupported(f"Element {node_id} does not have text content", code="no_text")
        return text

    async def set_text(self, node_id: int, text: str):
        _, result = await self._call("set_text_contents", node_id, text)
        if result is None:
            raise NotSupported(f"Element {node_id} is not editable text", code="not_editable")
        if not result:
            raise BridgeError(f"Element {node_id} rejected the new text", code="set_text_failed")

    async def get_text_selection(self, node_id: int) -> Optional[TextSelection]:
        _, selection = await self._call("get_text_selection", node_id)
        return selection

    async def get_caret_position(self, node_id: int) -> int:
        _, text = await self._call("get_text", node_id)
        return text.caret_offset if text is not None else -1

    async def _require_focus(self, node_id: int):
        info = await self._live_info(node_id)
        if not info.has_state("focused"):
            raise NotFocused(f"Element {node_id} must have keyboard focus; call focus_element first")

    async def set_text_selection(self, node_id: int, start: int, end: int):
        if start < 0 or end < start:
            raise InvalidArgument(f"Invalid selection range {start}..{end}")
        await self._require_focus(node_id)
        _, applied = await self._call("set_text_selection", node_id, start, end)
        if not applied:
            raise BridgeError(f"Element {node_id} rejected selection {start}..{end}", code="selection_failed")

    async def set_caret_position(self, node_id: int, offset: int):
        if offset < 0:
            raise InvalidArgument(f"Invalid caret offset {offset}")
        await self._require_focus(node_id)
        _, applied = await self._call("set_caret_offset", node_id, offset)
        if not applied:
            raise BridgeError(f"Element {node_id} rejected caret offset {offset}", code="caret_failed")

    # State. None when the source cannot report states for the element, as in the tree

    async def is_visible(self, node_id: int) -> Optional[bool]:
        return (await self._live_info(node_id)).tristate("visible")

    async def is_enabled(self, node_id: int) -> Optional[bool]:
        return (await self._live_info(node_id)).tristate("enabled")

    async def is_focused(self, node_id: int) -> Optional[bool]:
        return (await self._live_info(node_id)).tristate("focused")

    async def is_checked(self, node_id: int) -> CheckState:
        checked = (await self._live_info(node_id)).checked()
        if checked is None:
            return CheckState.NOT_CHECKABLE
        return CheckState.CHECKED if checked else CheckState.UNCHECKED

    async def state_of(self, node_id: int, state: str) -> Optional[bool]:
        """Read one named state. Non-checkable elements read as unchecked."""
        if state not in STATE_NAMES:
            raise InvalidArgument(f"Unknown state '{state}', expected one of {', '.join(STATE_NAMES)}",
                                  code="invalid_state")
        if state == "checked":
            return await self.is_checked(node_id) == CheckState.CHECKED
        return (await self._live_info(node_id)).tristate(state)

    # Coordinate input

    async def click_at(self, x: float, y: float, button: str = "left"):
        await self.channel.click(x, y, button)

    async def double_click(self, x: float, y: float, button: str = "left"):
        await self.channel.double_click(x, y, button)

    async def hover(self, x: float, y: float):
        await self.channel.move_mouse(x, y)

    async def drag(self, start_x: float, start_y: float, end_x: float, end_y: float, button: str = "left"):
        await self.channel.drag(start_x, start_y, end_x, end_y, button)

    async def keyboard_input(self, key: str):
        await self.channel.keyboard_input(key)

    async def scroll(self, x: float, y: float, delta_x: float = 0.0, delta_y: float = 0.0):
        await self.channel.scroll(x, y, delta_x, delta_y)
