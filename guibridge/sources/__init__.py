"""
Platform accessibility sources.
"""

import logging
import sys

from guibridge.core.source import TreeSource
from guibridge.errors import InvalidArgument

logger = logging.getLogger(__name__)

SOURCES = ("auto", "macos", "atspi")


def create_source(name: str = "auto") -> TreeSource:
    """Create the TreeSource for `name`, picking one for this platform when 'auto'."""
    name = (name or "auto").lower()
    if name not in SOURCES:
        raise InvalidArgument(f"Unknown accessibility source '{name}', expected one of {', '.join(SOURCES)}",
                              code="invalid_source")
    if name == "auto":
        name = "macos" if sys.platform == "darwin" else "atspi"
        logger.debug(f"Using the {name} accessibility source on {sys.platform}")

    # Platform bindings are only importable on their own platform
    if name == "macos":
        from guibridge.sources.macos import AXTreeSource
        return AXTreeSource()
    from guibridge.sources.atspi import AtspiTreeSource
    return AtspiTreeSource()
