"""
Accessibility source abstraction.

A TreeSource talks to one platform accessibility API with blocking calls on
opaque element handles. SourceGateway turns those into serialized, bounded
coroutines so the rest of the bridge never blocks on the bus.
"""

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional

from guibridge.constants import BUS_CALL_TIMEOUT
from guibridge.core.models import ElementInfo, TextInfo, TextSelection, ValueInfo
from guibridge.errors import BridgeError, SourceError

logger = logging.getLogger(__name__)


class TreeSource(ABC):
    """Blocking accessibility API keyed by opaque element handles.

    Optional interfaces return None when the element does not expose them.
    Operations the element refuses return False. A handle whose element has
    been destroyed raises ElementGone.
    """

    # True when ElementInfo.native_key survives across walks
    stable_handles = False

    @abstractmethod
    def find_application(self, app_name: str) -> Optional[Any]:
        """Return the root handle of the named application, or None."""

    @abstractmethod
    def get_children(self, handle: Any) -> List[Any]:
        """Return child handles in the order the source reports them."""

    @abstractmethod
    def describe(self, handle: Any) -> ElementInfo:
        """Read role, name, value, bounds and states of one element."""

    def get_actions(self, handle: Any) -> List[str]:
        return []

    def do_action(self, handle: Any, action_name: str) -> bool:
        return False

    def grab_focus(self, handle: Any) -> bool:
        return False

    def scroll_into_view(self, handle: Any) -> bool:
        return False

    def get_value(self, handle: Any) -> Optional[ValueInfo]:
        return None

    def set_value(self, handle: Any, value: float) -> bool:
        return False

    def get_text(self, handle: Any) -> Optional[TextInfo]:
        return None

    def set_text_contents(self, handle: Any, text: str) -> Optional[bool]:
        """Replace the full text. None means the element is not editable."""
        return None

    def get_text_selection(self, handle: Any) -> Optional[TextSelection]:
        return None

    def set_text_selection(self, handle: Any, start: int, end: int) -> bool:
        return False

    def set_caret_offset(self, handle: Any, offset: int) -> bool:
        return False

    def get_selected_count(self, handle: Any) -> Optional[int]:
        return None

    def select_child(self, handle: Any, index: int) -> Optional[bool]:
        return None

    def deselect_child(self, handle: Any, index: int) -> Optional[bool]:
        return None

    def select_all(self, handle: Any) -> Optional[bool]:
        return None

    def clear_selection(self, handle: Any) -> Optional[bool]:
        return None

    def close(self):
        """Release any connection to the accessibility bus."""


class SourceGateway:
    """Runs TreeSource calls one at a time on a worker thread, each bounded
    by a timeout.

    A cancelled or timed out caller stops waiting immediately. The blocking
    call still finishes on the worker thread and its result is dropped.
    """

    def __init__(self, source: TreeSource, call_timeout: float = BUS_CALL_TIMEOUT):
        self.source = source
        self.call_timeout = call_timeout
        self._lock = asyncio.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="guibridge-source")

    @property
    def stable_handles(self) -> bool:
        return bool(getattr(self.source, "stable_handles", False))

    async def call(self, method: str, *args) -> Any:
        """Invoke one source method and map raw failures to bridge errors."""
        func = functools.partial(getattr(self.source, method), *args)
        async with self._lock:
            loop = asyncio.get_running_loop()
            future = loop.run_in_executor(self._executor, func)
            try:
                return await asyncio.wait_for(future, timeout=self.call_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Accessibility call {method} timed out after {self.call_timeout}s")
                raise SourceError(f"Accessibility call {method} timed out")
            except BridgeError:
                raise
            except Exception as e:
                logger.debug(f"Accessibility call {method} failed: {e}")
                raise SourceError(f"Accessibility call {method} failed: {e}")

    def close(self):
        self._executor.shutdown(wait=False)
        try:
            self.source.close()
        except Exception as e:
            logger.debug(f"Error closing accessibility source: {e}")
