"""
Tests for length-prefixed framing.
"""

import asyncio
import struct

import pytest

from guibridge.errors import ConnectionClosed, OversizedMessage, Truncated
from guibridge.protocol.framing import FrameCodec


def _reader_with(data: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


def test_encode_prefixes_big_endian_length():
    frame = FrameCodec().encode(b"0123456789")
    assert frame[:4] == b"\x00\x00\x00\x0a"
    assert frame[4:] == b"0123456789"


def test_encode_rejects_oversized_payload():
    codec = FrameCodec(max_size=8)
    with pytest.raises(OversizedMessage):
        codec.encode(b"x" * 9)
    assert len(codec.encode(b"x" * 8)) == 12


def test_read_frame_returns_exact_payload():
    async def scenario():
        codec = FrameCodec()
        reader = _reader_with(codec.encode(b"hello") + codec.encode(b"") + codec.encode(b"world"))
        return [await codec.read_frame(reader) for _ in range(3)]

    assert asyncio.run(scenario()) == [b"hello", b"", b"world"]


def test_read_frame_on_clean_close_is_connection_closed():
    async def scenario():
        await FrameCodec().read_frame(_reader_with(b""))

    with pytest.raises(ConnectionClosed):
        asyncio.run(scenario())


def test_read_frame_with_partial_prefix_is_truncated():
    async def scenario():
        await FrameCodec().read_frame(_reader_with(b"\x00\x00"))

    with pytest.raises(Truncated):
        asyncio.run(scenario())


def test_read_frame_with_short_body_is_truncated():
    async def scenario():
        await FrameCodec().read_frame(_reader_with(struct.pack(">I", 10) + b"abc"))

    with pytest.raises(Truncated):
        asyncio.run(scenario())


def test_read_frame_rejects_declared_length_over_limit():
    async def scenario():
        await FrameCodec(max_size=4).read_frame(_reader_with(struct.pack(">I", 5) + b"abcde"))

    with pytest.raises(OversizedMessage):
        asyncio.run(scenario())


def test_decode_frames_keeps_incomplete_remainder():
    codec = FrameCodec()
    buffer = codec.encode(b"one") + codec.encode(b"two") + codec.encode(b"three")[:5]
    frames, rest = codec.decode_frames(buffer)
    assert frames == [b"one", b"two"]
    assert rest == codec.encode(b"three")[:5]


def test_decode_frames_with_short_prefix():
    frames, rest = FrameCodec().decode_frames(b"\x00\x00")
    assert frames == []
    assert rest == b"\x00\x00"
