"""
Data model for the indexed UI tree.
NodeRecord and UiTree are immutable so snapshots can share them freely.
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


class Role(str, Enum):
    """Normalized widget categories shared by every accessibility source."""
    APPLICATION = "application"
    WINDOW = "window"
    FRAME = "frame"
    DIALOG = "dialog"
    PANEL = "panel"
    GROUP = "group"
    BUTTON = "button"
    TOGGLE_BUTTON = "toggle_button"
    CHECK_BOX = "check_box"
    RADIO_BUTTON = "radio_button"
    COMBO_BOX = "combo_box"
    TEXT_INPUT = "text_input"
    LABEL = "label"
    LINK = "link"
    IMAGE = "image"
    SLIDER = "slider"
    SPIN_BUTTON = "spin_button"
    PROGRESS_INDICATOR = "progress_indicator"
    SCROLL_VIEW = "scroll_view"
    SCROLL_BAR = "scroll_bar"
    LIST = "list"
    LIST_ITEM = "list_item"
    TABLE = "table"
    TABLE_CELL = "table_cell"
    TREE = "tree"
    TREE_ITEM = "tree_item"
    MENU = "menu"
    MENU_BAR = "menu_bar"
    MENU_ITEM = "menu_item"
    TAB_LIST = "tab_list"
    TAB = "tab"
    TOOLBAR = "toolbar"
    SEPARATOR = "separator"
    CANVAS = "canvas"
    UNKNOWN = "unknown"


def normalize_role_name(name: Optional[str]) -> str:
    """Fold a role name to lowercase alphanumerics so "Check Box", "check-box"
    and "CHECK_BOX" all compare equal."""
    if not name:
        return ""
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


_ROLES_BY_KEY = {normalize_role_name(role.value): role for role in Role}


def role_from_name(name: Optional[str]) -> Role:
    """Look up a normalized Role, falling back to UNKNOWN."""
    return _ROLES_BY_KEY.get(normalize_role_name(name), Role.UNKNOWN)


@dataclass(frozen=True)
class Bounds:
    """Screen rectangle in target coordinates."""
    x: float
    y: float
    width: float
    height: float

    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class NodeRecord:
    """One indexed element. A None state means the element does not report it."""
    id: int
    role: str
    label: Optional[str] = None
    value: Optional[str] = None
    bounds: Optional[Bounds] = None
    visible: Optional[bool] = None
    enabled: Optional[bool] = None
    focused: Optional[bool] = None
    checked: Optional[bool] = None
    parent_id: Optional[int] = None
    children: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable dictionary."""
        return {
            "id": self.id,
            "role": self.role,
            "label": self.label,
            "value": self.value,
            "bounds": self.bounds.to_dict() if self.bounds else None,
            "visible": self.visible,
            "enabled": self.enabled,
            "focused": self.focused,
            "checked": self.checked,
            "parent_id": self.parent_id,
            "children": list(self.children),
        }


@dataclass(frozen=True)
class UiTree:
    """An immutable, indexed copy of the target's widget tree."""
    roots: Tuple[int, ...]
    nodes: Mapping[int, NodeRecord]
    built_at: float = field(default_factory=time.time)
    id_scheme: str = "handle"

    @classmethod
    def from_records(cls, records: Sequence[NodeRecord], roots: Sequence[int],
                     id_scheme: str = "handle", built_at: Optional[float] = None) -> "UiTree":
        nodes = MappingProxyType({record.id: record for record in records})
        return cls(
            roots=tuple(roots),
            nodes=nodes,
            built_at=time.time() if built_at is None else built_at,
            id_scheme=id_scheme,
        )

    def get(self, node_id: int) -> Optional[NodeRecord]:
        return self.nodes.get(node_id)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id) -> bool:
        return node_id in self.nodes

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable dictionary."""
        return {
            "roots": list(self.roots),
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "built_at": self.built_at,
            "id_scheme": self.id_scheme,
        }


class CheckState(str, Enum):
    CHECKED = "checked"
    UNCHECKED = "unchecked"
    NOT_CHECKABLE = "not_checkable"


@dataclass
class ElementInfo:
    """Raw description of one element as reported by an accessibility source.

    `native_key` identifies the underlying object across walks. Sources
    without persistent handles leave it None.
    """
    role: str
    name: Optional[str] = None
    description: Optional[str] = None
    value: Optional[str] = None
    bounds: Optional[Bounds] = None
    states: frozenset = frozenset()
    native_key: Optional[str] = None

    @property
    def label(self) -> Optional[str]:
        return self.name or self.description or None

    def has_state(self, state: str) -> bool:
        return state in self.states

    def checked(self) -> Optional[bool]:
        """True/False for checkable elements and toggle buttons, None otherwise."""
        if ("checkable" in self.states or "checked" in self.states
                or role_from_name(self.role) == Role.TOGGLE_BUTTON):
            return "checked" in self.states
        return None

    def tristate(self, state: str) -> Optional[bool]:
        """Report a state as True/False, or None if the source never reports it."""
        if "states_unknown" in self.states:
            return None
        return state in self.states


@dataclass
class ValueInfo:
    current: float
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    increment: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current,
            "minimum": self.minimum,
            "maximum": self.maximum,
            "increment": self.increment,
        }


@dataclass
class TextInfo:
    text: str
    length: int
    caret_offset: int = -1

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "length": self.length, "caret_offset": self.caret_offset}


@dataclass
class TextSelection:
    start: int
    end: int

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}
