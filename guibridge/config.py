"""
Configuration for the bridge server and the in-process agent.
Values come from defaults, then environment variables, then CLI flags.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from guibridge import constants
from guibridge.errors import InvalidArgument
from guibridge.protocol.paths import default_socket_path

logger = logging.getLogger(__name__)


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgument(f"{key} must be an integer, got '{raw}'")


def _env_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise InvalidArgument(f"{key} must be a number, got '{raw}'")


@dataclass
class BridgeConfig:
    """Settings for the controller facing bridge server."""
    app_name: Optional[str] = None
    socket_path: str = field(default_factory=default_socket_path)
    source: str = "auto"
    log_level: str = "INFO"
    max_message_size: int = constants.MAX_MESSAGE_SIZE
    request_timeout: float = constants.REQUEST_TIMEOUT
    bus_call_timeout: float = constants.BUS_CALL_TIMEOUT
    connect_attempts: int = constants.CONNECT_ATTEMPTS
    backoff_initial: float = constants.BACKOFF_INITIAL
    backoff_max: float = constants.BACKOFF_MAX
    wait_timeout_ms: int = constants.WAIT_TIMEOUT_MS
    wait_interval_ms: int = constants.WAIT_INTERVAL_MS
    max_tree_depth: int = constants.MAX_TREE_DEPTH
    max_tree_nodes: int = constants.MAX_TREE_NODES

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BridgeConfig":
        """Build a config from GUIBRIDGE_* environment variables."""
        environ = os.environ if environ is None else environ
        config = cls(
            app_name=environ.get(constants.APP_NAME_ENV) or None,
            socket_path=default_socket_path(environ),
            source=environ.get(constants.SOURCE_ENV, "auto"),
            log_level=environ.get(constants.LOG_LEVEL_ENV, "INFO").upper(),
            max_message_size=_env_int(environ, constants.MAX_MESSAGE_SIZE_ENV, constants.MAX_MESSAGE_SIZE),
            bus_call_timeout=_env_float(environ, constants.BUS_TIMEOUT_ENV, constants.BUS_CALL_TIMEOUT),
        )
        logger.debug(f"Loaded config from environment: {config.to_dict()}")
        return config

    def with_overrides(self, **overrides: Any) -> "BridgeConfig":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable dictionary."""
        return {
            "app_name": self.app_name,
            "socket_path": self.socket_path,
            "source": self.source,
            "log_level": self.log_level,
            "max_message_size": self.max_message_size,
            "request_timeout": self.request_timeout,
            "bus_call_timeout": self.bus_call_timeout,
        }


@dataclass
class AgentConfig:
    """Settings for the agent embedded in the target application."""
    socket_path: str = field(default_factory=default_socket_path)
    max_message_size: int = constants.MAX_MESSAGE_SIZE
    frame_buffer_capacity: int = constants.FRAME_BUFFER_CAPACITY
    log_buffer_capacity: int = constants.LOG_BUFFER_CAPACITY
    log_buffer_max_bytes: int = constants.LOG_BUFFER_MAX_BYTES
    log_entry_max_bytes: int = constants.LOG_ENTRY_MAX_BYTES
    screenshot_wait: float = constants.SCREENSHOT_WAIT_SECONDS
    # Capture the whole screen when the host supplies no screenshot provider
    grab_screen: bool = False
