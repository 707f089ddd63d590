"""
Wire messages exchanged between the bridge server and the in-process agent.
Every message is a JSON object tagged by its "type" field.
"""

import json
import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from guibridge.errors import MalformedPayload

logger = logging.getLogger(__name__)


class MouseButton(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    MIDDLE = "middle"


# Requests

class Ping(BaseModel):
    type: Literal["Ping"] = "Ping"


class MoveMouse(BaseModel):
    type: Literal["MoveMouse"] = "MoveMouse"
    x: float
    y: float


class Click(BaseModel):
    type: Literal["Click"] = "Click"
    x: float
    y: float
    button: MouseButton = MouseButton.LEFT


class DoubleClick(BaseModel):
    type: Literal["DoubleClick"] = "DoubleClick"
    x: float
    y: float
    button: MouseButton = MouseButton.LEFT


class Drag(BaseModel):
    type: Literal["Drag"] = "Drag"
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    button: MouseButton = MouseButton.LEFT


class KeyboardInput(BaseModel):
    type: Literal["KeyboardInput"] = "KeyboardInput"
    key: str


class Scroll(BaseModel):
    type: Literal["Scroll"] = "Scroll"
    x: float
    y: float
    delta_x: float = 0.0
    delta_y: float = 0.0


class TakeScreenshot(BaseModel):
    type: Literal["TakeScreenshot"] = "TakeScreenshot"


class CropRegion(BaseModel):
    type: Literal["CropRegion"] = "CropRegion"
    x: float
    y: float
    width: float
    height: float


class HighlightElement(BaseModel):
    type: Literal["HighlightElement"] = "HighlightElement"
    x: float
    y: float
    width: float
    height: float
    color: List[int] = Field(min_length=4, max_length=4)
    duration_ms: int = 0


class ClearHighlights(BaseModel):
    type: Literal["ClearHighlights"] = "ClearHighlights"


class GetFrameStats(BaseModel):
    type: Literal["GetFrameStats"] = "GetFrameStats"


class StartPerfRecording(BaseModel):
    type: Literal["StartPerfRecording"] = "StartPerfRecording"
    duration_ms: int = 0


class StopPerfRecording(BaseModel):
    type: Literal["StopPerfRecording"] = "StopPerfRecording"


class GetPerfReport(BaseModel):
    type: Literal["GetPerfReport"] = "GetPerfReport"


class GetLogs(BaseModel):
    type: Literal["GetLogs"] = "GetLogs"
    level: Optional[str] = None
    limit: Optional[int] = None


class ClearLogs(BaseModel):
    type: Literal["ClearLogs"] = "ClearLogs"


Request = Annotated[
    Union[
        Ping, MoveMouse, Click, DoubleClick, Drag, KeyboardInput, Scroll,
        TakeScreenshot, CropRegion, HighlightElement, ClearHighlights,
        GetFrameStats, StartPerfRecording, StopPerfRecording, GetPerfReport,
        GetLogs, ClearLogs,
    ],
    Field(discriminator="type"),
]


# Responses

class Pong(BaseModel):
    type: Literal["Pong"] = "Pong"


class Success(BaseModel):
    type: Literal["Success"] = "Success"


class Screenshot(BaseModel):
    type: Literal["Screenshot"] = "Screenshot"
    data: str
    format: str = "png"
    origin_x: float = 0.0
    origin_y: float = 0.0


class HighlightAdded(BaseModel):
    type: Literal["HighlightAdded"] = "HighlightAdded"
    handle: int


class FrameStatsResponse(BaseModel):
    type: Literal["FrameStats"] = "FrameStats"
    fps: float
    frame_time_ms: float
    min_frame_time_ms: float
    max_frame_time_ms: float
    sample_count: int


class PerfReportResponse(BaseModel):
    type: Literal["PerfReport"] = "PerfReport"
    duration_ms: float
    total_frames: int
    avg_fps: float
    avg_frame_time_ms: float
    min_frame_time_ms: float
    max_frame_time_ms: float
    p95_frame_time_ms: float
    p99_frame_time_ms: float


class WireLogEntry(BaseModel):
    level: str
    target: str
    message: str
    timestamp_ms: float


class Logs(BaseModel):
    type: Literal["Logs"] = "Logs"
    entries: List[WireLogEntry] = Field(default_factory=list)


class Error(BaseModel):
    type: Literal["Error"] = "Error"
    code: str
    message: str


Response = Annotated[
    Union[
        Pong, Success, Screenshot, HighlightAdded, FrameStatsResponse,
        PerfReportResponse, Logs, Error,
    ],
    Field(discriminator="type"),
]

_request_adapter = TypeAdapter(Request)
_response_adapter = TypeAdapter(Response)


def encode_message(message: BaseModel) -> bytes:
    """Serialize a request or response to JSON bytes."""
    return message.model_dump_json().encode("utf-8")


def _decode(adapter: TypeAdapter, payload: bytes, kind: str):
    try:
        return adapter.validate_json(payload)
    except ValidationError as e:
        raise MalformedPayload(f"Invalid {kind}: {e.errors()[0].get('msg', str(e))}")
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayload(f"Invalid {kind} JSON: {e}")


def decode_request(payload: bytes):
    """Parse JSON bytes into one of the request models."""
    return _decode(_request_adapter, payload, "request")


def decode_response(payload: bytes):
    """Parse JSON bytes into one of the response models."""
    return _decode(_response_adapter, payload, "response")


def error_response(code: str, message: str) -> Error:
    return Error(code=code, message=message)


def to_plain(message: BaseModel) -> Dict[str, Any]:
    """Dump a model to plain JSON types, dropping the type tag."""
    data = json.loads(message.model_dump_json())
    data.pop("type", None)
    return data
