"""
Bridge side of the agent channel.

One long-lived Unix socket connection to the in-process agent, used for a
single request/response exchange at a time.
"""

import asyncio
import logging
import os
from typing import List, Optional, Tuple

from pydantic import BaseModel

from guibridge.constants import (
    BACKOFF_INITIAL,
    BACKOFF_MAX,
    CONNECT_ATTEMPTS,
    MAX_MESSAGE_SIZE,
    REQUEST_TIMEOUT,
)
from guibridge.errors import (
    MalformedPayload,
    TargetUnavailable,
    TransportError,
    error_from_code,
)
from guibridge.protocol import messages
from guibridge.protocol.framing import FrameCodec

logger = logging.getLogger(__name__)


class AgentChannel:
    """Serialized request/response client for the agent socket.

    Any transport failure or cancellation during an exchange closes the
    connection, so a late reply can never be read as the answer to the next
    request. The next call reconnects.
    """

    def __init__(self, socket_path: str,
                 max_message_size: int = MAX_MESSAGE_SIZE,
                 request_timeout: float = REQUEST_TIMEOUT,
                 connect_attempts: int = CONNECT_ATTEMPTS,
                 backoff_initial: float = BACKOFF_INITIAL,
                 backoff_max: float = BACKOFF_MAX):
        self.socket_path = socket_path
        self.codec = FrameCodec(max_message_size)
        self.request_timeout = request_timeout
        self.connect_attempts = max(connect_attempts, 1)
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self._lock = asyncio.Lock()
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    def socket_available(self) -> bool:
        return os.path.exists(self.socket_path)

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def _connect(self):
        delay = self.backoff_initial
        last_error = None
        for attempt in range(1, self.connect_attempts + 1):
            try:
                self._reader, self._writer = await asyncio.open_unix_connection(
                    self.socket_path, limit=self.codec.max_size + 4)
                logger.info(f"Connected to agent at {self.socket_path}")
                return
            except (OSError, ConnectionError) as e:
                last_error = e
                logger.debug(f"Connect attempt {attempt}/{self.connect_attempts} failed: {e}")
                if attempt < self.connect_attempts:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, self.backoff_max)
        raise TargetUnavailable(
            f"No agent listening at {self.socket_path} after {self.connect_attempts} attempts: {last_error}")

    async def _drop_connection(self):
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (OSError, ConnectionError):
            pass

    async def _exchange(self, request: BaseModel):
        await self.codec.write_frame(self._writer, messages.encode_message(request))
        payload = await self.codec.read_frame(self._reader)
        return messages.decode_response(payload)

    async def request(self, request: BaseModel):
        """Send one request and return the agent's response model.

        Error responses are raised as the matching BridgeError.
        """
        async with self._lock:
            if not self.connected:
                await self._connect()
            try:
                response = await asyncio.wait_for(self._exchange(request), timeout=self.request_timeout)
            except asyncio.TimeoutError:
                await self._drop_connection()
                raise TransportError(f"Agent did not answer {request.type} within {self.request_timeout}s",
                                     code="ipc_timeout")
            except asyncio.CancelledError:
                await self._drop_connection()
                raise
            except TransportError:
                await self._drop_connection()
                raise
            except (OSError, ConnectionError) as e:
                await self._drop_connection()
                raise TransportError(f"Agent connection failed: {e}", code="connection_lost")

        if isinstance(response, messages.Error):
            raise error_from_code(response.code, response.message)
        return response

    async def _expect(self, request: BaseModel, response_type):
        response = await self.request(request)
        if not isinstance(response, response_type):
            raise MalformedPayload(f"Unexpected response {response.type} to {request.type}")
        return response

    async def close(self):
        async with self._lock:
            await self._drop_connection()

    # Typed helpers

    async def ping(self) -> bool:
        await self._expect(messages.Ping(), messages.Pong)
        return True

    async def move_mouse(self, x: float, y: float):
        await self._expect(messages.MoveMouse(x=x, y=y), messages.Success)

    async def click(self, x: float, y: float, button: str = "left"):
        await self._expect(messages.Click(x=x, y=y, button=button), messages.Success)

    async def double_click(self, x: float, y: float, button: str = "left"):
        await self._expect(messages.DoubleClick(x=x, y=y, button=button), messages.Success)

    async def drag(self, start_x: float, start_y: float, end_x: float, end_y: float, button: str = "left"):
        request = messages.Drag(start_x=start_x, start_y=start_y, end_x=end_x, end_y=end_y, button=button)
        await self._expect(request, messages.Success)

    async def keyboard_input(self, key: str):
        await self._expect(messages.KeyboardInput(key=key), messages.Success)

    async def scroll(self, x: float, y: float, delta_x: float = 0.0, delta_y: float = 0.0):
        await self._expect(messages.Scroll(x=x, y=y, delta_x=delta_x, delta_y=delta_y), messages.Success)

    async def take_screenshot(self) -> Tuple[str, Tuple[float, float]]:
        """Return (base64 PNG, screen origin of the image)."""
        response = await self._expect(messages.TakeScreenshot(), messages.Screenshot)
        return response.data, (response.origin_x, response.origin_y)

    async def crop_region(self, x: float, y: float, width: float, height: float) -> str:
        request = messages.CropRegion(x=x, y=y, width=width, height=height)
        response = await self._expect(request, messages.Screenshot)
        return response.data

    async def highlight(self, x: float, y: float, width: float, height: float,
                        color: Tuple[int, int, int, int], duration_ms: int) -> int:
        request = messages.HighlightElement(x=x, y=y, width=width, height=height,
                                            color=list(color), duration_ms=duration_ms)
        response = await self._expect(request, messages.HighlightAdded)
        return response.handle

    async def clear_highlights(self):
        await self._expect(messages.ClearHighlights(), messages.Success)

    async def get_frame_stats(self) -> messages.FrameStatsResponse:
        return await self._expect(messages.GetFrameStats(), messages.FrameStatsResponse)

    async def start_perf_recording(self, duration_ms: int = 0):
        await self._expect(messages.StartPerfRecording(duration_ms=duration_ms), messages.Success)

    async def stop_perf_recording(self) -> messages.PerfReportResponse:
        return await self._expect(messages.StopPerfRecording(), messages.PerfReportResponse)

    async def get_perf_report(self) -> messages.PerfReportResponse:
        return await self._expect(messages.GetPerfReport(), messages.PerfReportResponse)

    async def get_logs(self, level: Optional[str] = None, limit: Optional[int] = None) -> List[messages.WireLogEntry]:
        response = await self._expect(messages.GetLogs(level=level, limit=limit), messages.Logs)
        return response.entries

    async def clear_logs(self):
        await self._expect(messages.ClearLogs(), messages.Success)
