"""Errors raised while framing, decoding or validating claim messages."""

from .constants import ERR_BAD_REQUEST


class ProtocolError(Exception):
    """
    A claim message could not be framed, decoded or validated.

    ``code`` is the wire error code reported to the peer.
    """

    code = ERR_BAD_REQUEST


class SchemaError(ProtocolError):
    """Payload is not CBOR, or a field is missing, mistyped or out of range."""


class SizeLimitError(ProtocolError):
    """A frame or payload is over its byte limit."""

    def __init__(self, what: str, size: int, limit: int) -> None:
        super().__init__(f"{what} too large ({size} > {limit} bytes)")
        self.size = size
        self.limit = limit
