"""
Key name utilities.
Parses key combinations such as "Ctrl+Shift+a" into modifiers and a key.
"""

from typing import List, Tuple

from guibridge.errors import InvalidArgument

# Accepted modifier spellings mapped to canonical names
MODIFIER_ALIASES = {
    "ctrl": "ctrl",
    "control": "ctrl",
    "shift": "shift",
    "alt": "alt",
    "option": "alt",
    "opt": "alt",
    "cmd": "cmd",
    "command": "cmd",
    "super": "cmd",
    "meta": "cmd",
    "win": "cmd",
}

# Named keys mapped to pynput Key attribute names
NAMED_KEYS = {
    "enter": "enter",
    "return": "enter",
    "tab": "tab",
    "space": "space",
    "backspace": "backspace",
    "delete": "delete",
    "del": "delete",
    "escape": "esc",
    "esc": "esc",
    "up": "up",
    "arrowup": "up",
    "down": "down",
    "arrowdown": "down",
    "left": "left",
    "arrowleft": "left",
    "right": "right",
    "arrowright": "right",
    "home": "home",
    "end": "end",
    "pageup": "page_up",
    "pagedown": "page_down",
    "insert": "insert",
    "capslock": "caps_lock",
}
NAMED_KEYS.update({f"f{number}": f"f{number}" for number in range(1, 21)})


def parse_key_combo(combo: str) -> Tuple[List[str], str]:
    """Split "Ctrl+Shift+a" into (["ctrl", "shift"], "a").

    The final part is the key. A literal "+" can be pressed as "Ctrl++".
    Named keys come back as pynput Key attribute names, single characters
    come back unchanged.
    """
    if not combo:
        raise InvalidArgument("Empty key combination", code="invalid_key")

    if combo.endswith("++"):
        parts = combo[:-2].split("+") + ["+"]
    elif combo == "+":
        parts = ["+"]
    else:
        parts = combo.split("+")
    parts = [part.strip() for part in parts if part.strip() or part == "+"]

    if not parts:
        raise InvalidArgument(f"Invalid key combination '{combo}'", code="invalid_key")

    modifiers = []
    for part in parts[:-1]:
        canonical = MODIFIER_ALIASES.get(part.lower())
        if canonical is None:
            raise InvalidArgument(f"Unknown modifier '{part}' in '{combo}'", code="invalid_key")
        if canonical not in modifiers:
            modifiers.append(canonical)

    key = parts[-1]
    if len(key) == 1:
        return modifiers, key
    named = NAMED_KEYS.get(key.lower().replace(" ", "").replace("_", ""))
    if named is None:
        raise InvalidArgument(f"Unknown key '{key}'", code="invalid_key")
    return modifiers, named
