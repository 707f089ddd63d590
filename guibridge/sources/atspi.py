"""
Linux accessibility source.
Reads the target application's tree from the AT-SPI2 bus via GObject Introspection.
"""

import logging
from typing import List, Optional

import gi

gi.require_version("Atspi", "2.0")
from gi.repository import Atspi, GLib  # noqa: E402

from guibridge.core.models import Bounds, ElementInfo, Role, TextInfo, TextSelection, ValueInfo  # noqa: E402
from guibridge.core.source import TreeSource  # noqa: E402
from guibridge.errors import ElementGone  # noqa: E402

logger = logging.getLogger(__name__)

# AT-SPI role names, lowercased with dashes
ROLE_MAP = {
    "application": Role.APPLICATION,
    "frame": Role.FRAME,
    "window": Role.WINDOW,
    "dialog": Role.DIALOG,
    "alert": Role.DIALOG,
    "file-chooser": Role.DIALOG,
    "panel": Role.PANEL,
    "filler": Role.GROUP,
    "grouping": Role.GROUP,
    "section": Role.GROUP,
    "push-button": Role.BUTTON,
    "button": Role.BUTTON,
    "toggle-button": Role.TOGGLE_BUTTON,
    "check-box": Role.CHECK_BOX,
    "check-menu-item": Role.CHECK_BOX,
    "radio-button": Role.RADIO_BUTTON,
    "radio-menu-item": Role.RADIO_BUTTON,
    "combo-box": Role.COMBO_BOX,
    "text": Role.TEXT_INPUT,
    "entry": Role.TEXT_INPUT,
    "password-text": Role.TEXT_INPUT,
    "label": Role.LABEL,
    "static": Role.LABEL,
    "link": Role.LINK,
    "image": Role.IMAGE,
    "icon": Role.IMAGE,
    "slider": Role.SLIDER,
    "spin-button": Role.SPIN_BUTTON,
    "progress-bar": Role.PROGRESS_INDICATOR,
    "scroll-pane": Role.SCROLL_VIEW,
    "viewport": Role.SCROLL_VIEW,
    "scroll-bar": Role.SCROLL_BAR,
    "list": Role.LIST,
    "list-box": Role.LIST,
    "list-item": Role.LIST_ITEM,
    "table": Role.TABLE,
    "table-cell": Role.TABLE_CELL,
    "tree": Role.TREE,
    "tree-table": Role.TREE,
    "tree-item": Role.TREE_ITEM,
    "menu": Role.MENU,
    "popup-menu": Role.MENU,
    "menu-bar": Role.MENU_BAR,
    "menu-item": Role.MENU_ITEM,
    "page-tab-list": Role.TAB_LIST,
    "page-tab": Role.TAB,
    "tool-bar": Role.TOOLBAR,
    "separator": Role.SEPARATOR,
    "canvas": Role.CANVAS,
    "drawing-area": Role.CANVAS,
}

# AT-SPI state nicks mapped onto the bridge's state names
STATE_MAP = {
    "enabled": "enabled",
    "sensitive": "enabled",
    "focused": "focused",
    "checkable": "checkable",
    "checked": "checked",
    # Toggle buttons report their on state as pressed
    "pressed": "checked",
    "editable": "editable",
    "selected": "selected",
}


def _role_name(accessible) -> str:
    raw = accessible.get_role_name() or ""
    return raw.lower().replace(" ", "-") if raw else "unknown"


def _text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _guard(func):
    """Report GLib failures on a destroyed accessible as ElementGone."""

    def wrapper(self, handle, *args):
        try:
            return func(self, handle, *args)
        except GLib.Error as e:
            raise ElementGone(f"Accessible no longer exists: {e.message}")

    wrapper.__name__ = func.__name__
    wrapper.__doc__ = func.__doc__
    return wrapper


class AtspiTreeSource(TreeSource):
    """TreeSource backed by AT-SPI2.

    Every accessible is addressed on the bus by its owner's bus name and its
    object path, so node ids derived from that pair stay stable across walks.
    """

    stable_handles = True

    def __init__(self):
        if Atspi.init() not in (0, 1):
            logger.warning("AT-SPI initialization reported an error")

    def find_application(self, app_name: str) -> Optional[Atspi.Accessible]:
        desktop = Atspi.get_desktop(0)
        wanted = app_name.lower()
        for i in range(desktop.get_child_count()):
            app = desktop.get_child_at_index(i)
            if app is None:
                continue
            try:
                name = app.get_name()
            except GLib.Error as e:
                logger.debug(f"Skipping unreadable application at index {i}: {e.message}")
                continue
            if name and name.lower() == wanted:
                logger.debug(f"Found application '{name}' on the accessibility bus")
                return app
        return None

    @_guard
    def get_children(self, handle: Atspi.Accessible) -> List[Atspi.Accessible]:
        children = []
        for i in range(handle.get_child_count()):
            child = handle.get_child_at_index(i)
            if child is not None:
                children.append(child)
        return children

    def _states(self, handle: Atspi.Accessible) -> frozenset:
        states = set()
        nicks = {state.value_nick.replace("_", "-") for state in handle.get_state_set().get_states()}
        for nick in nicks:
            if nick in STATE_MAP:
                states.add(STATE_MAP[nick])
        # Showing alone includes elements clipped by a scrolled parent
        if "visible" in nicks and "showing" in nicks:
            states.add("visible")
        if not nicks:
            states.add("states_unknown")
        return frozenset(states)

    def _bounds(self, handle: Atspi.Accessible) -> Optional[Bounds]:
        component = handle.get_component_iface()
        if component is None:
            return None
        rect = component.get_extents(Atspi.CoordType.SCREEN)
        return Bounds(rect.x, rect.y, rect.width, rect.height)

    @_guard
    def describe(self, handle: Atspi.Accessible) -> ElementInfo:
        role_name = _role_name(handle)
        value = None
        value_iface = handle.get_value_iface()
        if value_iface is not None:
            value = _text(value_iface.get_current_value())
        else:
            text_iface = handle.get_text_iface()
            if text_iface is not None:
                count = text_iface.get_character_count()
                value = _text(text_iface.get_text(0, count)) if count > 0 else None

        return ElementInfo(
            role=ROLE_MAP.get(role_name, Role.UNKNOWN).value,
            name=_text(handle.get_name()),
            description=_text(handle.get_description()),
            value=value,
            bounds=self._bounds(handle),
            states=self._states(handle),
            native_key=f"{handle.get_bus_name()}:{handle.get_path()}",
        )

    @_guard
    def get_actions(self, handle: Atspi.Accessible) -> List[str]:
        action = handle.get_action_iface()
        if action is None:
            return []
        return [name for name in (action.get_action_name(i) for i in range(action.get_n_actions())) if name]

    @_guard
    def do_action(self, handle: Atspi.Accessible, action_name: str) -> bool:
        action = handle.get_action_iface()
        if action is None:
            return False
        for i in range(action.get_n_actions()):
            if action.get_action_name(i) == action_name:
                return bool(action.do_action(i))
        return False

    @_guard
    def grab_focus(self, handle: Atspi.Accessible) -> bool:
        component = handle.get_component_iface()
        return bool(component.grab_focus()) if component is not None else False

    @_guard
    def scroll_into_view(self, handle: Atspi.Accessible) -> bool:
        component = handle.get_component_iface()
        if component is None:
            return False
        return bool(component.scroll_to(Atspi.ScrollType.ANYWHERE))

    @_guard
    def get_value(self, handle: Atspi.Accessible) -> Optional[ValueInfo]:
        value = handle.get_value_iface()
        if value is None:
            return None
        increment = value.get_minimum_increment()
        return ValueInfo(
            current=value.get_current_value(),
            minimum=value.get_minimum_value(),
            maximum=value.get_maximum_value(),
            increment=increment if increment > 0 else None,
        )

    @_guard
    def set_value(self, handle: Atspi.Accessible, value: float) -> bool:
        value_iface = handle.get_value_iface()
        return bool(value_iface.set_current_value(value)) if value_iface is not None else False

    @_guard
    def get_text(self, handle: Atspi.Accessible) -> Optional[TextInfo]:
        text = handle.get_text_iface()
        if text is None:
            return None
        count = text.get_character_count()
        return TextInfo(
            text=text.get_text(0, count) if count > 0 else "",
            length=count,
            caret_offset=text.get_caret_offset(),
        )

    @_guard
    def set_text_contents(self, handle: Atspi.Accessible, text: str) -> Optional[bool]:
        editable = handle.get_editable_text_iface()
        if editable is None:
            return None
        return bool(editable.set_text_contents(text))

    @_guard
    def get_text_selection(self, handle: Atspi.Accessible) -> Optional[TextSelection]:
        text = handle.get_text_iface()
        if text is None or text.get_n_selections() == 0:
            return None
        selection = text.get_selection(0)
        return TextSelection(selection.start_offset, selection.end_offset)

    @_guard
    def set_text_selection(self, handle: Atspi.Accessible, start: int, end: int) -> bool:
        text = handle.get_text_iface()
        if text is None:
            return False
        if text.get_n_selections() > 0:
            return bool(text.set_selection(0, start, end))
        return bool(text.add_selection(start, end))

    @_guard
    def set_caret_offset(self, handle: Atspi.Accessible, offset: int) -> bool:
        text = handle.get_text_iface()
        return bool(text.set_caret_offset(offset)) if text is not None else False

    @_guard
    def get_selected_count(self, handle: Atspi.Accessible) -> Optional[int]:
        selection = handle.get_selection_iface()
        return selection.get_n_selected_children() if selection is not None else None

    @_guard
    def select_child(self, handle: Atspi.Accessible, index: int) -> Optional[bool]:
        selection = handle.get_selection_iface()
        return bool(selection.select_child(index)) if selection is not None else None

    @_guard
    def deselect_child(self, handle: Atspi.Accessible, index: int) -> Optional[bool]:
        selection = handle.get_selection_iface()
        return bool(selection.deselect_child(index)) if selection is not None else None

    @_guard
    def select_all(self, handle: Atspi.Accessible) -> Optional[bool]:
        selection = handle.get_selection_iface()
        return bool(selection.select_all()) if selection is not None else None

    @_guard
    def clear_selection(self, handle: Atspi.Accessible) -> Optional[bool]:
        selection = handle.get_selection_iface()
        return bool(selection.clear_selection()) if selection is not None else None
