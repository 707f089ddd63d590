"""
Error types for the GUI bridge.
Every failure that reaches a controller carries a machine readable code.
"""

from typing import Any, Dict, Optional, Type


class BridgeError(Exception):
    """Base class for all bridge failures."""

    code = "internal_error"

    def __init__(self, message: str = "", code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the controller facing error shape."""
        result = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class TransportError(BridgeError):
    """The channel or the accessibility bus failed."""
    code = "transport_error"


class Truncated(TransportError):
    code = "truncated"


class OversizedMessage(TransportError):
    code = "oversized_message"


class MalformedPayload(TransportError):
    code = "malformed_payload"


class ConnectionClosed(TransportError):
    code = "connection_closed"


class SourceError(TransportError):
    """An accessibility call failed or timed out."""
    code = "source_error"


class NotFound(BridgeError):
    code = "not_found"


class ElementGone(NotFound):
    """The element was destroyed between lookup and use."""
    code = "element_gone"


class NotSupported(BridgeError):
    code = "not_supported"


class NoSuchAction(BridgeError):
    code = "no_such_action"


class NotFocused(BridgeError):
    code = "not_focused"


class WaitTimeout(BridgeError):
    """A wait expired. `observation` is the last thing the predicate saw."""

    code = "timeout"

    def __init__(self, message: str = "", observation: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.observation = observation


class WaitCancelled(BridgeError):
    code = "cancelled"


class TargetUnavailable(BridgeError):
    code = "target_unavailable"


class NoRecordingActive(BridgeError):
    code = "no_recording_active"


class NotYetComplete(BridgeError):
    code = "not_yet_complete"


class InvalidArgument(BridgeError):
    code = "invalid_argument"


_ERRORS_BY_CODE: Dict[str, Type[BridgeError]] = {
    cls.code: cls
    for cls in (
        TransportError, Truncated, OversizedMessage, MalformedPayload,
        ConnectionClosed, SourceError, NotFound, ElementGone, NotSupported,
        NoSuchAction, NotFocused, WaitTimeout, WaitCancelled,
        TargetUnavailable, NoRecordingActive, NotYetComplete, InvalidArgument,
    )
}


def error_from_code(code: str, message: str) -> BridgeError:
    """Rebuild a typed error from a wire level error code."""
    cls = _ERRORS_BY_CODE.get(code, BridgeError)
    return cls(message, code=code)
