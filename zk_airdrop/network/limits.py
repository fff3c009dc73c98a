"""
Length-prefixed framing over trio streams.

A frame is a 4-byte big-endian payload length followed by the payload.
Reads and writes enforce ``MAX_FRAME_BYTES`` and a deadline that covers the
whole frame, so a peer trickling bytes cannot hold a connection open.
"""

from __future__ import annotations

import struct

import trio

from .errors import SchemaError, SizeLimitError

MAX_FRAME_BYTES = 8192
READ_TIMEOUT = 5.0
WRITE_TIMEOUT = 5.0

_HEADER = struct.Struct(">I")


async def _receive_exactly(stream: trio.abc.ReceiveStream, count: int) -> bytes:
    buf = bytearray()
    while len(buf) < count:
        chunk = await stream.receive_some(count - len(buf))
        if not chunk:
            raise SchemaError(f"unexpected EOF after {len(buf)} of {count} bytes")
        buf += chunk
    return bytes(buf)


async def read_frame(
    stream: trio.abc.ReceiveStream,
    max_bytes: int = MAX_FRAME_BYTES,
    timeout: float = READ_TIMEOUT,
) -> bytes:
    """
    Read one frame.

    Raises:
        SizeLimitError: If the announced length is over ``max_bytes``.
        SchemaError: If the stream ends mid-frame.
        trio.TooSlowError: If the frame is not complete within ``timeout``.
    """
    with trio.fail_after(timeout):
        (length,) = _HEADER.unpack(await _receive_exactly(stream, _HEADER.size))
        if length > max_bytes:
            raise SizeLimitError("frame", length, max_bytes)
        return await _receive_exactly(stream, length)


async def write_frame(
    stream: trio.abc.SendStream,
    payload: bytes,
    max_bytes: int = MAX_FRAME_BYTES,
    timeout: float = WRITE_TIMEOUT,
) -> None:
    if len(payload) > max_bytes:
        raise SizeLimitError("frame", len(payload), max_bytes)
    with trio.fail_after(timeout):
        await stream.send_all(_HEADER.pack(len(payload)) + payload)
