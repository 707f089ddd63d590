"""
Bounded telemetry buffers kept inside the target process.

FrameStatsBuffer holds recent frame durations, PerfRecorder captures a
fixed window of frames for a report, and LogRingBuffer retains recent log
records for get_logs.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np

from guibridge.constants import (
    FRAME_BUFFER_CAPACITY,
    LOG_BUFFER_CAPACITY,
    LOG_BUFFER_MAX_BYTES,
    LOG_ENTRY_MAX_BYTES,
)
from guibridge.errors import InvalidArgument, NoRecordingActive, NotYetComplete

logger = logging.getLogger(__name__)

LEVEL_PRIORITY = {
    "TRACE": 1,
    "DEBUG": 2,
    "INFO": 3,
    "WARN": 4,
    "ERROR": 5,
    "CRITICAL": 6,
}

TRUNCATION_MARKER = "...[truncated]"


def normalize_level(level: str) -> str:
    """Map Python and tracing style level names onto LEVEL_PRIORITY keys."""
    name = (level or "").strip().upper()
    if name == "WARNING":
        return "WARN"
    if name == "FATAL":
        return "CRITICAL"
    if name not in LEVEL_PRIORITY:
        raise InvalidArgument(f"Unknown log level '{level}'", code="invalid_level")
    return name


@dataclass(frozen=True)
class FrameSample:
    seq: int
    duration_ms: float


@dataclass
class FrameStats:
    fps: float
    frame_time_ms: float
    min_frame_time_ms: float
    max_frame_time_ms: float
    sample_count: int

    def to_dict(self) -> Dict:
        return {
            "fps": self.fps,
            "frame_time_ms": self.frame_time_ms,
            "min_frame_time_ms": self.min_frame_time_ms,
            "max_frame_time_ms": self.max_frame_time_ms,
            "sample_count": self.sample_count,
        }


@dataclass
class PerfReport:
    duration_ms: float
    total_frames: int
    avg_fps: float
    avg_frame_time_ms: float
    min_frame_time_ms: float
    max_frame_time_ms: float
    p95_frame_time_ms: float
    p99_frame_time_ms: float

    def to_dict(self) -> Dict:
        return {
            "duration_ms": self.duration_ms,
            "total_frames": self.total_frames,
            "avg_fps": self.avg_fps,
            "avg_frame_time_ms": self.avg_frame_time_ms,
            "min_frame_time_ms": self.min_frame_time_ms,
            "max_frame_time_ms": self.max_frame_time_ms,
            "p95_frame_time_ms": self.p95_frame_time_ms,
            "p99_frame_time_ms": self.p99_frame_time_ms,
        }


@dataclass(frozen=True)
class LogEntry:
    level: str
    target: str
    message: str
    timestamp_ms: float = field(default_factory=lambda: time.time() * 1000.0)

    def size(self) -> int:
        """Bytes held by this entry, as counted against the buffer caps."""
        return sum(len(text.encode("utf-8")) for text in (self.level, self.target, self.message))

    def to_dict(self) -> Dict:
        return {
            "level": self.level,
            "target": self.target,
            "message": self.message,
            "timestamp_ms": self.timestamp_ms,
        }


def _fps(mean_ms: float) -> float:
    return 1000.0 / mean_ms if mean_ms > 0 else 0.0


def _clip(text: str, limit: int) -> str:
    """Shorten `text` to at most `limit` UTF-8 bytes, ending in TRUNCATION_MARKER."""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    if limit <= len(TRUNCATION_MARKER):
        return TRUNCATION_MARKER[:max(limit, 0)]
    return encoded[:limit - len(TRUNCATION_MARKER)].decode("utf-8", errors="ignore") + TRUNCATION_MARKER


class FrameStatsBuffer:
    """Fixed capacity ring of frame durations. Oldest samples are overwritten."""

    def __init__(self, capacity: int = FRAME_BUFFER_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._samples: deque = deque(maxlen=capacity)
        self._seq = 0

    def push(self, duration_ms: float):
        with self._lock:
            self._seq += 1
            self._samples.append(FrameSample(self._seq, float(duration_ms)))

    def samples(self) -> List[FrameSample]:
        with self._lock:
            return list(self._samples)

    def stats(self) -> FrameStats:
        """Summarize the live contents without consuming them."""
        with self._lock:
            durations = np.array([sample.duration_ms for sample in self._samples], dtype=float)
        if durations.size == 0:
            return FrameStats(0.0, 0.0, 0.0, 0.0, 0)
        mean = float(durations.mean())
        return FrameStats(
            fps=_fps(mean),
            frame_time_ms=mean,
            min_frame_time_ms=float(durations.min()),
            max_frame_time_ms=float(durations.max()),
            sample_count=int(durations.size),
        )

    def clear(self):
        with self._lock:
            self._samples.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)


class PerfRecorder:
    """Captures every frame between start and stop for a performance report.

    A duration of 0 records until stopped. With a positive duration, frames
    arriving after the window closes are ignored.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._lock = threading.Lock()
        self._durations: List[float] = []
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._duration_ms = 0

    @property
    def recording(self) -> bool:
        with self._lock:
            return self._started_at is not None and self._stopped_at is None and not self._window_closed()

    def _window_closed(self, now: Optional[float] = None) -> bool:
        if self._duration_ms <= 0 or self._started_at is None:
            return False
        now = self.clock() if now is None else now
        return (now - self._started_at) * 1000.0 >= self._duration_ms

    def start(self, duration_ms: int = 0):
        """Begin a new capture, discarding any previous one."""
        if duration_ms < 0:
            raise InvalidArgument("duration_ms must not be negative")
        with self._lock:
            self._durations = []
            self._started_at = self.clock()
            self._stopped_at = None
            self._duration_ms = int(duration_ms)
        logger.info(f"Performance recording started ({duration_ms}ms)")

    def record(self, duration_ms: float):
        with self._lock:
            if self._started_at is None or self._stopped_at is not None:
                return
            if self._window_closed():
                return
            self._durations.append(float(duration_ms))

    def stop(self) -> PerfReport:
        """End the capture early and return its report."""
        with self._lock:
            if self._started_at is None:
                raise NoRecordingActive("No performance recording has been started")
            if self._stopped_at is None:
                self._stopped_at = self.clock()
        return self.report()

    def report(self) -> PerfReport:
        """Report on the current capture.

        Raises NoRecordingActive if nothing was started and NotYetComplete
        while a fixed-duration capture is still running.
        """
        with self._lock:
            if self._started_at is None:
                raise NoRecordingActive("No performance recording has been started")
            now = self.clock()
            if self._stopped_at is not None:
                end = self._stopped_at
            elif self._duration_ms > 0:
                if not self._window_closed(now):
                    elapsed = (now - self._started_at) * 1000.0
                    raise NotYetComplete(
                        f"Recording still running ({elapsed:.0f} of {self._duration_ms}ms)")
                end = self._started_at + self._duration_ms / 1000.0
            else:
                end = now
            durations = np.array(self._durations, dtype=float)
            elapsed_ms = (end - self._started_at) * 1000.0

        if durations.size == 0:
            return PerfReport(elapsed_ms, 0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
        mean = float(durations.mean())
        return PerfReport(
            duration_ms=elapsed_ms,
            total_frames=int(durations.size),
            avg_fps=_fps(mean),
            avg_frame_time_ms=mean,
            min_frame_time_ms=float(durations.min()),
            max_frame_time_ms=float(durations.max()),
            p95_frame_time_ms=float(np.percentile(durations, 95)),
            p99_frame_time_ms=float(np.percentile(durations, 99)),
        )


class LogRingBuffer:
    """Recent log entries, evicted oldest-first by count and by total bytes."""

    def __init__(self, capacity: int = LOG_BUFFER_CAPACITY,
                 max_bytes: int = LOG_BUFFER_MAX_BYTES,
                 max_entry_bytes: int = LOG_ENTRY_MAX_BYTES):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.max_bytes = max_bytes
        self.max_entry_bytes = min(max_entry_bytes, max_bytes)
        self._lock = threading.Lock()
        self._entries: deque = deque()
        self._bytes = 0

    def _truncate(self, entry: LogEntry) -> LogEntry:
        """Clip an entry so it never exceeds max_entry_bytes.

        The target may use at most half of the allowance; the message gets the rest.
        """
        if entry.size() <= self.max_entry_bytes:
            return entry
        level_bytes = len(entry.level.encode("utf-8"))
        target = _clip(entry.target, max(self.max_entry_bytes // 2 - level_bytes, 0))
        message = _clip(entry.message, self.max_entry_bytes - level_bytes - len(target.encode("utf-8")))
        return LogEntry(entry.level, target, message, entry.timestamp_ms)

    def push(self, entry: LogEntry):
        entry = self._truncate(entry)
        with self._lock:
            self._entries.append(entry)
            self._bytes += entry.size()
            while self._entries and (len(self._entries) > self.capacity or self._bytes > self.max_bytes):
                evicted = self._entries.popleft()
                self._bytes -= evicted.size()

    def append(self, level: str, target: str, message: str, timestamp_ms: Optional[float] = None):
        if timestamp_ms is None:
            timestamp_ms = time.time() * 1000.0
        self.push(LogEntry(normalize_level(level), target, message, timestamp_ms))

    def query(self, level: Optional[str] = None, limit: Optional[int] = None) -> List[LogEntry]:
        """Most recent entries at or above `level`, oldest first.

        Reading never removes entries.
        """
        minimum = LEVEL_PRIORITY[normalize_level(level)] if level else 0
        with self._lock:
            matching = [entry for entry in self._entries
                        if LEVEL_PRIORITY.get(entry.level, 0) >= minimum]
        if limit is not None:
            if limit <= 0:
                return []
            matching = matching[-limit:]
        return matching

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._bytes = 0

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._bytes

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class BufferLogHandler(logging.Handler):
    """logging.Handler that copies records into a LogRingBuffer."""

    def __init__(self, buffer: LogRingBuffer, level: int = logging.NOTSET):
        super().__init__(level)
        self.buffer = buffer

    def emit(self, record: logging.LogRecord):
        try:
            level = record.levelname
            if level not in LEVEL_PRIORITY and level != "WARNING":
                level = "TRACE" if record.levelno < logging.DEBUG else "INFO"
            self.buffer.push(LogEntry(
                level=normalize_level(level),
                target=record.name,
                message=record.getMessage(),
                timestamp_ms=record.created * 1000.0,
            ))
        except Exception:
            self.handleError(record)
