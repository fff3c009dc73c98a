"""Client utilities for claim submission."""

from __future__ import annotations

import trio

from .limits import READ_TIMEOUT, WRITE_TIMEOUT, read_frame, write_frame
from .messages import ClaimRequest, ClaimResponse, decode_response, encode_request


async def submit_claim_stream(
    stream: trio.abc.Stream, req: ClaimRequest, *, timeout: float | None = None
) -> ClaimResponse:
    """Send ``req`` over an open stream and read the response."""
    frame_timeout = READ_TIMEOUT if timeout is None else timeout
    write_timeout = WRITE_TIMEOUT if timeout is None else timeout
    request_blob = encode_request(req)
    await write_frame(stream, request_blob, timeout=write_timeout)
    response_blob = await read_frame(stream, timeout=frame_timeout)
    return decode_response(response_blob)


async def submit_claim(
    host: str, port: int, req: ClaimRequest, *, timeout: float | None = None
) -> ClaimResponse:
    stream = await trio.open_tcp_stream(host, port)
    async with stream:
        return await submit_claim_stream(stream, req, timeout=timeout)
