"""Stream handling and TCP serving for claim submission."""

from __future__ import annotations

import logging
from typing import List, Optional

import trio

from .constants import ERR_BAD_REQUEST, PROTOCOL_ID
from .handler import ClaimService, handle_claim_request_bytes
from .limits import read_frame, write_frame
from .messages import ClaimResponse, encode_response

logger = logging.getLogger(__name__)

TOTAL_TIMEOUT = 120.0


async def handle_claim_stream(stream: trio.abc.Stream, engine: ClaimService) -> None:
    """
    Serve one request/response exchange on ``stream`` and close it.

    The engine call runs in a worker thread; claims serialize on the engine's
    own lock, not on the event loop.
    """
    try:
        with trio.fail_after(TOTAL_TIMEOUT):
            request_blob = await read_frame(stream)
            response_blob = await trio.to_thread.run_sync(
                handle_claim_request_bytes, request_blob, engine
            )
            await write_frame(stream, response_blob)
    except Exception as exc:
        logger.info("Claim stream failed: %s", exc)
        response = ClaimResponse.failure(ERR_BAD_REQUEST, f"protocol error: {exc}")
        try:
            await write_frame(stream, encode_response(response))
        except (trio.BrokenResourceError, trio.ClosedResourceError, trio.TooSlowError) as write_exc:
            logger.debug("Could not report protocol error: %s", write_exc)
    finally:
        await stream.aclose()


async def serve_claims(
    engine: ClaimService,
    host: str = "127.0.0.1",
    port: int = 0,
    *,
    task_status=trio.TASK_STATUS_IGNORED,
) -> None:
    """
    Accept claim connections until cancelled.

    ``task_status.started`` receives the bound listeners, so callers using
    ``nursery.start`` can discover an ephemeral port.
    """

    async def _handler(stream: trio.SocketStream) -> None:
        await handle_claim_stream(stream, engine)

    logger.info("Serving %s on %s:%s", PROTOCOL_ID, host, port)
    await trio.serve_tcp(_handler, port, host=host, task_status=task_status)


def bound_port(listeners: List[trio.SocketListener]) -> Optional[int]:
    """Port of the first TCP listener returned by ``serve_claims``."""
    for listener in listeners:
        return listener.socket.getsockname()[1]
    return None
