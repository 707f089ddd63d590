"""
In-process agent embedded in the target application.

The agent listens on the bridge socket and answers requests for coordinate
input, screenshots, highlights, frame statistics and logs. The host
application feeds it once per frame:

    agent = InProcessAgent()
    agent.install_log_handler()
    agent.start()
    ...
    # every frame
    agent.on_frame(frame_ms)
    for event in agent.take_pending_inputs():
        apply(event)
    if agent.take_screenshot_request():
        agent.set_screenshot(render_png(), origin=(0, 0))
"""

import asyncio
import base64
import io
import logging
import os
import threading
import time
from collections import deque
from typing import Callable, List, Optional, Tuple

from PIL import Image

from guibridge.config import AgentConfig
from guibridge.constants import SCREENSHOT_POLL_SECONDS
from guibridge.core.highlight import Highlight, HighlightOverlay
from guibridge.core.models import Bounds
from guibridge.core.screenshots import crop_png, encode_png, grab_screen
from guibridge.core.telemetry import BufferLogHandler, FrameStatsBuffer, LogRingBuffer, PerfRecorder
from guibridge.errors import BridgeError, ConnectionClosed, MalformedPayload, TransportError
from guibridge.channel.input_sink import PendingInput
from guibridge.protocol import messages
from guibridge.protocol.framing import FrameCodec

logger = logging.getLogger(__name__)

ScreenshotProvider = Callable[[], Tuple[bytes, Tuple[float, float]]]


class InProcessAgent:
    """Serves bridge requests from inside the target process."""

    def __init__(self, config: Optional[AgentConfig] = None,
                 screenshot_provider: Optional[ScreenshotProvider] = None,
                 input_sink=None,
                 frame_stats: Optional[FrameStatsBuffer] = None,
                 perf: Optional[PerfRecorder] = None,
                 logs: Optional[LogRingBuffer] = None,
                 highlights: Optional[HighlightOverlay] = None,
                 paint_highlights: bool = False):
        self.config = config or AgentConfig()
        self.codec = FrameCodec(self.config.max_message_size)
        if screenshot_provider is None and self.config.grab_screen:
            screenshot_provider = grab_screen
        self.screenshot_provider = screenshot_provider
        self.input_sink = input_sink
        self.frame_stats = frame_stats or FrameStatsBuffer(self.config.frame_buffer_capacity)
        self.perf = perf or PerfRecorder()
        self.logs = logs or LogRingBuffer(
            self.config.log_buffer_capacity,
            self.config.log_buffer_max_bytes,
            self.config.log_entry_max_bytes,
        )
        self.highlights = highlights or HighlightOverlay()
        self.paint_highlights = paint_highlights

        self._state_lock = threading.Lock()
        self._pending_inputs: deque = deque()
        self._screenshot_requested = False
        self._screenshot: Optional[Tuple[bytes, Tuple[float, float]]] = None

        self._server: Optional[asyncio.AbstractServer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None

    @property
    def socket_path(self) -> str:
        return self.config.socket_path

    # Host integration

    def on_frame(self, duration_ms: float):
        """Record the duration of one rendered frame."""
        self.frame_stats.push(duration_ms)
        self.perf.record(duration_ms)

    def take_pending_inputs(self) -> List[PendingInput]:
        """Drain input events queued for the host to apply."""
        with self._state_lock:
            events = list(self._pending_inputs)
            self._pending_inputs.clear()
        return events

    def take_screenshot_request(self) -> bool:
        """Return True once per outstanding screenshot request."""
        with self._state_lock:
            requested = self._screenshot_requested
            self._screenshot_requested = False
        return requested

    def set_screenshot(self, png: bytes, origin: Tuple[float, float] = (0.0, 0.0)):
        """Hand over the PNG rendered in answer to a screenshot request."""
        with self._state_lock:
            self._screenshot = (png, origin)

    def active_highlights(self) -> List[Highlight]:
        return self.highlights.active()

    def install_log_handler(self, target: Optional[logging.Logger] = None,
                            level: int = logging.DEBUG) -> BufferLogHandler:
        """Copy records from `target` (the root logger by default) into the log buffer."""
        handler = BufferLogHandler(self.logs, level)
        (target or logging.getLogger()).addHandler(handler)
        return handler

    # Lifecycle

    async def serve(self) -> asyncio.AbstractServer:
        """Start listening on the socket within the running event loop."""
        path = self.socket_path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if os.path.exists(path):
            logger.debug(f"Removing stale socket {path}")
            os.unlink(path)
        self._server = await asyncio.start_unix_server(
            self._handle_connection, path=path, limit=self.codec.max_size + 4)
        logger.info(f"Agent listening on {path}")
        return self._server

    def start(self, timeout: float = 5.0):
        """Run the listener on a background thread with its own event loop."""
        if self._thread is not None:
            return
        self._ready.clear()
        self._startup_error = None
        self._thread = threading.Thread(target=self._run, name="guibridge-agent", daemon=True)
        self._thread.start()
        if not self._ready.wait(timeout):
            raise RuntimeError("Agent did not start listening in time")
        if self._startup_error is not None:
            error = self._startup_error
            self._thread = None
            raise RuntimeError(f"Agent failed to start: {error}")

    def _run(self):
        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self.serve())
        except Exception as e:
            logger.error(f"Agent failed to listen on {self.socket_path}: {e}")
            self._startup_error = e
            self._ready.set()
            loop.close()
            return
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(self._shutdown())
            loop.close()

    async def _shutdown(self):
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        tasks = [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def stop(self, timeout: float = 5.0):
        """Stop the background listener and remove the socket file."""
        loop, thread = self._loop, self._thread
        if loop is not None and thread is not None:
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout)
        self._thread = None
        self._loop = None
        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError as e:
                logger.debug(f"Could not remove socket {self.socket_path}: {e}")
        logger.info("Agent stopped")

    # Connection handling

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        logger.debug("Bridge connected")
        try:
            while True:
                try:
                    payload = await self.codec.read_frame(reader)
                except ConnectionClosed:
                    break
                try:
                    request = messages.decode_request(payload)
                except MalformedPayload as e:
                    logger.warning(f"Rejecting malformed request: {e}")
                    response = messages.error_response(e.code, e.message)
                else:
                    response = await self.dispatch(request)
                await self.codec.write_frame(writer, messages.encode_message(response))
        except TransportError as e:
            logger.warning(f"Dropping bridge connection: {e}")
        except (OSError, ConnectionError) as e:
            logger.debug(f"Bridge connection lost: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (OSError, ConnectionError):
                pass
            logger.debug("Bridge disconnected")

    async def dispatch(self, request):
        """Answer one decoded request. Failures become Error responses."""
        try:
            return await self._dispatch(request)
        except BridgeError as e:
            return messages.error_response(e.code, e.message)
        except Exception as e:
            logger.error(f"Failed to handle {request.type}: {e}")
            return messages.error_response("agent_error", str(e))

    async def _dispatch(self, request):
        if isinstance(request, messages.Ping):
            return messages.Pong()

        if isinstance(request, messages.MoveMouse):
            return await self._input("move", x=request.x, y=request.y)
        if isinstance(request, messages.Click):
            return await self._input("click", x=request.x, y=request.y, button=request.button.value)
        if isinstance(request, messages.DoubleClick):
            return await self._input("double_click", x=request.x, y=request.y, button=request.button.value)
        if isinstance(request, messages.Drag):
            return await self._input("drag", start_x=request.start_x, start_y=request.start_y,
                                     end_x=request.end_x, end_y=request.end_y, button=request.button.value)
        if isinstance(request, messages.KeyboardInput):
            return await self._input("key", key=request.key)
        if isinstance(request, messages.Scroll):
            return await self._input("scroll", x=request.x, y=request.y,
                                     delta_x=request.delta_x, delta_y=request.delta_y)

        if isinstance(request, messages.TakeScreenshot):
            png, origin = await self._capture()
            return messages.Screenshot(data=base64.b64encode(png).decode("ascii"),
                                       origin_x=origin[0], origin_y=origin[1])
        if isinstance(request, messages.CropRegion):
            png, origin = await self._capture()
            bounds = Bounds(request.x, request.y, request.width, request.height)
            cropped = crop_png(base64.b64encode(png).decode("ascii"), bounds, origin)
            return messages.Screenshot(data=cropped, origin_x=request.x, origin_y=request.y)

        if isinstance(request, messages.HighlightElement):
            bounds = Bounds(request.x, request.y, request.width, request.height)
            handle = self.highlights.add(bounds, tuple(request.color), request.duration_ms)
            return messages.HighlightAdded(handle=handle)
        if isinstance(request, messages.ClearHighlights):
            self.highlights.clear()
            return messages.Success()

        if isinstance(request, messages.GetFrameStats):
            return messages.FrameStatsResponse(**self.frame_stats.stats().to_dict())
        if isinstance(request, messages.StartPerfRecording):
            self.perf.start(request.duration_ms)
            return messages.Success()
        if isinstance(request, messages.StopPerfRecording):
            return messages.PerfReportResponse(**self.perf.stop().to_dict())
        if isinstance(request, messages.GetPerfReport):
            return messages.PerfReportResponse(**self.perf.report().to_dict())

        if isinstance(request, messages.GetLogs):
            entries = self.logs.query(request.level, request.limit)
            return messages.Logs(entries=[messages.WireLogEntry(**entry.to_dict()) for entry in entries])
        if isinstance(request, messages.ClearLogs):
            self.logs.clear()
            return messages.Success()

        return messages.error_response("unsupported_request", f"Unsupported request {request.type}")

    async def _input(self, kind: str, **params):
        event = PendingInput(kind, params)
        if self.input_sink is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.input_sink.apply, event)
        else:
            with self._state_lock:
                self._pending_inputs.append(event)
        return messages.Success()

    async def _capture(self) -> Tuple[bytes, Tuple[float, float]]:
        if self.screenshot_provider is not None:
            loop = asyncio.get_running_loop()
            png, origin = await loop.run_in_executor(None, self.screenshot_provider)
        else:
            png, origin = await self._wait_for_host_screenshot()
        if self.paint_highlights and self.highlights.active():
            image = self.highlights.draw(Image.open(io.BytesIO(png)), origin)
            png = base64.b64decode(encode_png(image))
        return png, origin

    async def _wait_for_host_screenshot(self) -> Tuple[bytes, Tuple[float, float]]:
        with self._state_lock:
            self._screenshot = None
            self._screenshot_requested = True
        deadline = time.monotonic() + self.config.screenshot_wait
        while time.monotonic() < deadline:
            await asyncio.sleep(SCREENSHOT_POLL_SECONDS)
            with self._state_lock:
                result = self._screenshot
                if result is not None:
                    self._screenshot = None
                    return result
        with self._state_lock:
            self._screenshot_requested = False
        raise BridgeError("Host did not provide a screenshot in time", code="screenshot_timeout")
