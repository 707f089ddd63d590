"""
macOS accessibility source.
Reads the target application's tree through the AXUIElement API.
"""

import logging
from typing import List, Optional

import AppKit
from ApplicationServices import (
    AXUIElementCopyActionNames,
    AXUIElementCopyAttributeValue,
    AXUIElementCreateApplication,
    AXUIElementIsAttributeSettable,
    AXUIElementPerformAction,
    AXUIElementSetAttributeValue,
    AXValueCreate,
    AXValueGetValue,
    kAXErrorInvalidUIElement,
    kAXErrorSuccess,
    kAXValueCFRangeType,
    kAXValueCGPointType,
    kAXValueCGSizeType,
)
from CoreFoundation import CFRangeMake

from guibridge.core.models import Bounds, ElementInfo, Role, TextInfo, TextSelection, ValueInfo
from guibridge.core.source import TreeSource
from guibridge.errors import ElementGone

logger = logging.getLogger(__name__)

ROLE_MAP = {
    "AXApplication": Role.APPLICATION,
    "AXWindow": Role.WINDOW,
    "AXSheet": Role.DIALOG,
    "AXDialog": Role.DIALOG,
    "AXGroup": Role.GROUP,
    "AXSplitGroup": Role.GROUP,
    "AXButton": Role.BUTTON,
    "AXPopUpButton": Role.COMBO_BOX,
    "AXComboBox": Role.COMBO_BOX,
    "AXMenuButton": Role.BUTTON,
    "AXCheckBox": Role.CHECK_BOX,
    "AXRadioButton": Role.RADIO_BUTTON,
    "AXTextField": Role.TEXT_INPUT,
    "AXTextArea": Role.TEXT_INPUT,
    "AXSearchField": Role.TEXT_INPUT,
    "AXStaticText": Role.LABEL,
    "AXLink": Role.LINK,
    "AXImage": Role.IMAGE,
    "AXSlider": Role.SLIDER,
    "AXIncrementor": Role.SPIN_BUTTON,
    "AXProgressIndicator": Role.PROGRESS_INDICATOR,
    "AXScrollArea": Role.SCROLL_VIEW,
    "AXScrollBar": Role.SCROLL_BAR,
    "AXList": Role.LIST,
    "AXTable": Role.TABLE,
    "AXRow": Role.LIST_ITEM,
    "AXCell": Role.TABLE_CELL,
    "AXOutline": Role.TREE,
    "AXMenu": Role.MENU,
    "AXMenuBar": Role.MENU_BAR,
    "AXMenuBarItem": Role.MENU_ITEM,
    "AXMenuItem": Role.MENU_ITEM,
    "AXTabGroup": Role.TAB_LIST,
    "AXToolbar": Role.TOOLBAR,
    "AXSplitter": Role.SEPARATOR,
}

CHECKABLE_ROLES = {"AXCheckBox", "AXRadioButton"}
TEXT_ROLES = {"AXTextField", "AXTextArea", "AXSearchField", "AXComboBox"}
SELECTION_ATTRIBUTES = ("AXSelectedChildren", "AXSelectedRows")


def _text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class AXElement:
    """Wrapper for an AXUIElement that reports destroyed elements as ElementGone."""

    def __init__(self, ax_ui_element):
        self.element = ax_ui_element

    @classmethod
    def application(cls, pid):
        return cls(AXUIElementCreateApplication(pid))

    def get_attribute(self, attribute_name):
        err, value = AXUIElementCopyAttributeValue(self.element, attribute_name, None)
        if err == kAXErrorInvalidUIElement:
            raise ElementGone("Element no longer exists")
        if err != kAXErrorSuccess:
            return None
        return value

    def set_attribute(self, attribute_name, value) -> bool:
        err = AXUIElementSetAttributeValue(self.element, attribute_name, value)
        if err == kAXErrorInvalidUIElement:
            raise ElementGone("Element no longer exists")
        return err == kAXErrorSuccess

    def is_settable(self, attribute_name) -> bool:
        err, settable = AXUIElementIsAttributeSettable(self.element, attribute_name, None)
        return err == kAXErrorSuccess and bool(settable)

    def perform_action(self, action_name) -> bool:
        err = AXUIElementPerformAction(self.element, action_name)
        if err == kAXErrorInvalidUIElement:
            raise ElementGone("Element no longer exists")
        return err == kAXErrorSuccess

    def action_names(self) -> List[str]:
        err, names = AXUIElementCopyActionNames(self.element, None)
        if err == kAXErrorInvalidUIElement:
            raise ElementGone("Element no longer exists")
        return [str(name) for name in names] if err == kAXErrorSuccess and names else []

    def get_children(self) -> List["AXElement"]:
        children = self.get_attribute("AXChildren") or []
        return [AXElement(child) for child in children]

    def get_bounds(self) -> Optional[Bounds]:
        position = self.get_attribute("AXPosition")
        size = self.get_attribute("AXSize")
        if position is None or size is None:
            return None
        ok_pos, point = AXValueGetValue(position, kAXValueCGPointType, None)
        ok_size, extent = AXValueGetValue(size, kAXValueCGSizeType, None)
        if not (ok_pos and ok_size):
            logger.debug("Could not decode AXPosition/AXSize")
            return None
        return Bounds(point.x, point.y, extent.width, extent.height)


class AXTreeSource(TreeSource):
    """TreeSource backed by the macOS Accessibility API.

    AXUIElement references carry no identity that survives a re-walk, so node
    ids come from traversal order.
    """

    stable_handles = False

    def __init__(self):
        from HIServices import AXIsProcessTrusted

        if not AXIsProcessTrusted():
            logger.warning("Accessibility permissions not granted. Add this program under "
                           "System Settings > Privacy & Security > Accessibility.")

    def find_application(self, app_name: str) -> Optional[AXElement]:
        workspace = AppKit.NSWorkspace.sharedWorkspace()
        wanted = app_name.lower()
        for app in workspace.runningApplications():
            name = app.localizedName()
            if name and name.lower() == wanted:
                logger.debug(f"Found application '{name}' (pid {app.processIdentifier()})")
                return AXElement.application(app.processIdentifier())
        return None

    def get_children(self, handle: AXElement) -> List[AXElement]:
        return handle.get_children()

    def describe(self, handle: AXElement) -> ElementInfo:
        ax_role = _text(handle.get_attribute("AXRole")) or ""
        role = ROLE_MAP.get(ax_role, Role.UNKNOWN)

        states = set()
        if handle.get_attribute("AXEnabled") is not False:
            states.add("enabled")
        if handle.get_attribute("AXFocused"):
            states.add("focused")
        bounds = handle.get_bounds()
        if bounds is not None and not bounds.is_empty() and not handle.get_attribute("AXHidden"):
            states.add("visible")

        raw_value = handle.get_attribute("AXValue")
        if ax_role in CHECKABLE_ROLES:
            states.add("checkable")
            if raw_value is not None and int(raw_value) == 1:
                states.add("checked")

        return ElementInfo(
            role=role.value,
            name=_text(handle.get_attribute("AXTitle")),
            description=_text(handle.get_attribute("AXDescription")),
            value=_text(raw_value) if ax_role not in CHECKABLE_ROLES else None,
            bounds=bounds,
            states=frozenset(states),
        )

    def get_actions(self, handle: AXElement) -> List[str]:
        return handle.action_names()

    def do_action(self, handle: AXElement, action_name: str) -> bool:
        return handle.perform_action(action_name)

    def grab_focus(self, handle: AXElement) -> bool:
        if handle.set_attribute("AXFocused", True):
            return True
        return handle.perform_action("AXRaise")

    def scroll_into_view(self, handle: AXElement) -> bool:
        return handle.perform_action("AXScrollToVisible")

    def get_value(self, handle: AXElement) -> Optional[ValueInfo]:
        minimum = handle.get_attribute("AXMinValue")
        maximum = handle.get_attribute("AXMaxValue")
        current = handle.get_attribute("AXValue")
        if minimum is None or maximum is None or current is None:
            return None
        try:
            return ValueInfo(float(current), float(minimum), float(maximum))
        except (TypeError, ValueError):
            return None

    def set_value(self, handle: AXElement, value: float) -> bool:
        return handle.set_attribute("AXValue", value)

    def _is_text(self, handle: AXElement) -> bool:
        return (_text(handle.get_attribute("AXRole")) or "") in TEXT_ROLES

    def get_text(self, handle: AXElement) -> Optional[TextInfo]:
        if not self._is_text(handle):
            return None
        text = str(handle.get_attribute("AXValue") or "")
        selection = self.get_text_selection(handle)
        caret = selection.end if selection is not None else -1
        return TextInfo(text=text, length=len(text), caret_offset=caret)

    def set_text_contents(self, handle: AXElement, text: str) -> Optional[bool]:
        if not self._is_text(handle) or not handle.is_settable("AXValue"):
            return None
        return handle.set_attribute("AXValue", text)

    def get_text_selection(self, handle: AXElement) -> Optional[TextSelection]:
        selected = handle.get_attribute("AXSelectedTextRange")
        if selected is None:
            return None
        ok, text_range = AXValueGetValue(selected, kAXValueCFRangeType, None)
        if not ok:
            return None
        return TextSelection(text_range.location, text_range.location + text_range.length)

    def set_text_selection(self, handle: AXElement, start: int, end: int) -> bool:
        value = AXValueCreate(kAXValueCFRangeType, CFRangeMake(start, end - start))
        return handle.set_attribute("AXSelectedTextRange", value)

    def set_caret_offset(self, handle: AXElement, offset: int) -> bool:
        return self.set_text_selection(handle, offset, offset)

    def _selected(self, handle: AXElement):
        for attribute in SELECTION_ATTRIBUTES:
            if handle.is_settable(attribute) or handle.get_attribute(attribute) is not None:
                return attribute, list(handle.get_attribute(attribute) or [])
        return None, None

    def get_selected_count(self, handle: AXElement) -> Optional[int]:
        attribute, selected = self._selected(handle)
        return None if attribute is None else len(selected)

    def select_child(self, handle: AXElement, index: int) -> Optional[bool]:
        attribute, _ = self._selected(handle)
        if attribute is None:
            return None
        children = handle.get_children()
        if not 0 <= index < len(children):
            return False
        return children[index].set_attribute("AXSelected", True)

    def deselect_child(self, handle: AXElement, index: int) -> Optional[bool]:
        attribute, _ = self._selected(handle)
        if attribute is None:
            return None
        children = handle.get_children()
        if not 0 <= index < len(children):
            return False
        return children[index].set_attribute("AXSelected", False)

    def select_all(self, handle: AXElement) -> Optional[bool]:
        attribute, _ = self._selected(handle)
        if attribute is None:
            return None
        return handle.set_attribute(attribute, [child.element for child in handle.get_children()])

    def clear_selection(self, handle: AXElement) -> Optional[bool]:
        attribute, _ = self._selected(handle)
        if attribute is None:
            return None
        return handle.set_attribute(attribute, [])
