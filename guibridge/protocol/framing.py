"""
Length-prefixed framing for the agent socket.
Each frame is a 4-byte big-endian length followed by exactly that many bytes.
"""

import asyncio
import logging
import struct
from typing import List, Tuple

from guibridge.constants import LENGTH_PREFIX_SIZE, MAX_MESSAGE_SIZE
from guibridge.errors import ConnectionClosed, OversizedMessage, Truncated

logger = logging.getLogger(__name__)

_PREFIX = struct.Struct(">I")


class FrameCodec:
    """Encodes and decodes length-prefixed frames with a size ceiling."""

    def __init__(self, max_size: int = MAX_MESSAGE_SIZE):
        self.max_size = max_size

    def encode(self, payload: bytes) -> bytes:
        """Prefix a payload with its length."""
        if len(payload) > self.max_size:
            raise OversizedMessage(f"Payload of {len(payload)} bytes exceeds limit of {self.max_size}")
        return _PREFIX.pack(len(payload)) + payload

    def _check_length(self, length: int):
        if length > self.max_size:
            raise OversizedMessage(f"Frame declares {length} bytes, limit is {self.max_size}")

    async def write_frame(self, writer: asyncio.StreamWriter, payload: bytes):
        """Write one frame as a single buffer and wait for it to drain."""
        writer.write(self.encode(payload))
        await writer.drain()

    async def read_frame(self, reader: asyncio.StreamReader) -> bytes:
        """Read exactly one frame.

        A clean close before any prefix byte raises ConnectionClosed, a close
        part way through the prefix or body raises Truncated.
        """
        try:
            prefix = await reader.readexactly(LENGTH_PREFIX_SIZE)
        except asyncio.IncompleteReadError as e:
            if not e.partial:
                raise ConnectionClosed("Peer closed the connection")
            raise Truncated(f"Connection closed after {len(e.partial)} of {LENGTH_PREFIX_SIZE} prefix bytes")

        (length,) = _PREFIX.unpack(prefix)
        self._check_length(length)

        try:
            return await reader.readexactly(length)
        except asyncio.IncompleteReadError as e:
            raise Truncated(f"Connection closed after {len(e.partial)} of {length} body bytes")

    def decode_frames(self, buffer: bytes) -> Tuple[List[bytes], bytes]:
        """Split a byte buffer into complete frames and the unconsumed rest."""
        frames = []
        offset = 0
        while len(buffer) - offset >= LENGTH_PREFIX_SIZE:
            (length,) = _PREFIX.unpack_from(buffer, offset)
            self._check_length(length)
            end = offset + LENGTH_PREFIX_SIZE + length
            if end > len(buffer):
                break
            frames.append(bytes(buffer[offset + LENGTH_PREFIX_SIZE:end]))
            offset = end
        return frames, bytes(buffer[offset:])
